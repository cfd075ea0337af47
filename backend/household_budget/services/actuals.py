from __future__ import annotations

from typing import Any
from uuid import uuid4

from ..dates import utc_now_iso, validate_month
from ..errors import not_found
from ..persistence import DataStore
from ..schemas import ActualsOverrideUpsert

ACTUALS_OVERRIDES = "actuals_overrides"


class ActualsOverrideService:
    def __init__(self, store: DataStore) -> None:
        self.store = store

    def _load(self, user_id: str) -> list[dict[str, Any]]:
        return self.store.get_list(ACTUALS_OVERRIDES, user_id)

    def list_overrides(self, user_id: str) -> list[dict[str, Any]]:
        return sorted(self._load(user_id), key=lambda o: o["month"], reverse=True)

    def get_for_month(self, user_id: str, month: str) -> dict[str, Any] | None:
        validate_month(month)
        return next((o for o in self._load(user_id) if o["month"] == month), None)

    def by_month(self, user_id: str) -> dict[str, dict[str, Any]]:
        return {o["month"]: o for o in self._load(user_id)}

    def upsert(self, user_id: str, payload: ActualsOverrideUpsert) -> dict[str, Any]:
        overrides = self._load(user_id)
        now = utc_now_iso()
        fields = {
            "totalIncome": payload.totalIncome,
            "totalExpenses": payload.totalExpenses,
            "notes": (payload.notes or "").strip() or None,
            "updatedAt": now,
        }
        existing = next((o for o in overrides if o["month"] == payload.month), None)
        if existing is not None:
            existing.update(fields)
            record = existing
        else:
            record = {"id": str(uuid4()), "userId": user_id, "month": payload.month, "createdAt": now, **fields}
            overrides.append(record)
        self.store.save_list(ACTUALS_OVERRIDES, user_id, overrides)
        return record

    def delete(self, user_id: str, override_id: str) -> None:
        overrides = self._load(user_id)
        remaining = [o for o in overrides if o["id"] != override_id]
        if len(remaining) == len(overrides):
            raise not_found("Actuals override not found")
        self.store.save_list(ACTUALS_OVERRIDES, user_id, remaining)

    def in_range(self, user_id: str, start_month: str, end_month: str) -> list[dict[str, Any]]:
        validate_month(start_month)
        validate_month(end_month)
        return sorted(
            (o for o in self._load(user_id) if start_month <= o["month"] <= end_month),
            key=lambda o: o["month"],
        )
