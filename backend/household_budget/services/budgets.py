from __future__ import annotations

from typing import Any
from uuid import uuid4

from ..dates import utc_now_iso, validate_month
from ..errors import not_found, validation_error
from ..persistence import DataStore
from ..schemas import BudgetCreate

BUDGETS = "budgets"


def compare(category_id: str, month: str, budgeted: float, actual: float) -> dict[str, Any]:
    percent_used = (actual / budgeted) * 100 if budgeted > 0 else 0
    return {
        "categoryId": category_id,
        "month": month,
        "budgeted": budgeted,
        "actual": actual,
        "remaining": budgeted - actual,
        "percentUsed": round(percent_used),
        "isOverBudget": actual > budgeted,
    }


class BudgetService:
    def __init__(self, store: DataStore) -> None:
        self.store = store

    def list_budgets(self, user_id: str) -> list[dict[str, Any]]:
        return self.store.get_list(BUDGETS, user_id)

    def _save(self, user_id: str, budgets: list[dict[str, Any]]) -> None:
        self.store.save_list(BUDGETS, user_id, budgets)

    def get_budget(self, user_id: str, category_id: str, month: str) -> dict[str, Any] | None:
        validate_month(month)
        return next(
            (b for b in self.list_budgets(user_id) if b["categoryId"] == category_id and b["month"] == month),
            None,
        )

    def _upsert(self, user_id: str, budgets: list[dict[str, Any]], category_id: str, month: str, amount: float) -> dict[str, Any]:
        validate_month(month)
        if amount <= 0:
            raise validation_error("Budget amount must be positive")
        now = utc_now_iso()
        for budget in budgets:
            if budget["categoryId"] == category_id and budget["month"] == month:
                budget["amount"] = amount
                budget["updatedAt"] = now
                return budget
        budget = {
            "id": str(uuid4()),
            "userId": user_id,
            "categoryId": category_id,
            "month": month,
            "amount": amount,
            "createdAt": now,
            "updatedAt": now,
        }
        budgets.append(budget)
        return budget

    def create_or_update(self, user_id: str, payload: BudgetCreate) -> dict[str, Any]:
        budgets = self.list_budgets(user_id)
        budget = self._upsert(user_id, budgets, payload.categoryId, payload.month, payload.amount)
        self._save(user_id, budgets)
        return budget

    def batch_update(self, user_id: str, updates: list[BudgetCreate]) -> list[dict[str, Any]]:
        budgets = self.list_budgets(user_id)
        updated = [self._upsert(user_id, budgets, u.categoryId, u.month, u.amount) for u in updates]
        self._save(user_id, budgets)
        return updated

    def delete_budget(self, user_id: str, budget_id: str) -> None:
        budgets = self.list_budgets(user_id)
        remaining = [b for b in budgets if b["id"] != budget_id]
        if len(remaining) == len(budgets):
            raise not_found("Budget not found")
        self._save(user_id, remaining)

    def delete_by_category(self, user_id: str, category_id: str) -> int:
        budgets = self.list_budgets(user_id)
        remaining = [b for b in budgets if b["categoryId"] != category_id]
        self._save(user_id, remaining)
        return len(budgets) - len(remaining)

    def monthly(self, user_id: str, month: str) -> list[dict[str, Any]]:
        validate_month(month)
        return [b for b in self.list_budgets(user_id) if b["month"] == month]

    def monthly_total(self, user_id: str, month: str) -> float:
        return sum(b["amount"] for b in self.monthly(user_id, month))

    def available_months(self, user_id: str) -> list[str]:
        return sorted({b["month"] for b in self.list_budgets(user_id)}, reverse=True)

    def by_category(self, user_id: str, category_id: str) -> list[dict[str, Any]]:
        return sorted(
            (b for b in self.list_budgets(user_id) if b["categoryId"] == category_id),
            key=lambda b: b["month"],
        )

    def yearly(self, user_id: str, year: int) -> list[dict[str, Any]]:
        if year < 1900 or year > 2100:
            raise validation_error("Invalid year. Year must be between 1900 and 2100")
        prefix = f"{year:04d}-"
        return sorted(
            (b for b in self.list_budgets(user_id) if b["month"].startswith(prefix)),
            key=lambda b: (b["month"], b["categoryId"]),
        )

    def copy(self, user_id: str, from_month: str, to_month: str) -> list[dict[str, Any]]:
        budgets = self.list_budgets(user_id)
        sources = [dict(b) for b in self.monthly(user_id, from_month)]
        validate_month(to_month)
        copied = [self._upsert(user_id, budgets, s["categoryId"], to_month, s["amount"]) for s in sources]
        self._save(user_id, budgets)
        return copied

    def comparison(
        self,
        user_id: str,
        month: str,
        actuals: dict[str, float],
        skip_category_ids: set[str] | None = None,
    ) -> dict[str, Any]:
        skip = skip_category_ids or set()
        budgets = {b["categoryId"]: b["amount"] for b in self.monthly(user_id, month)}
        comparisons = [
            compare(category_id, month, amount, actuals.get(category_id, 0))
            for category_id, amount in budgets.items()
            if category_id not in skip
        ]
        comparisons.extend(
            compare(category_id, month, 0, actual)
            for category_id, actual in actuals.items()
            if category_id not in budgets and category_id not in skip
        )
        budgeted = sum(c["budgeted"] for c in comparisons)
        actual = sum(c["actual"] for c in comparisons)
        return {
            "month": month,
            "comparisons": comparisons,
            "totals": {
                "budgeted": budgeted,
                "actual": actual,
                "remaining": budgeted - actual,
                "percentUsed": round((actual / budgeted) * 100) if budgeted > 0 else 0,
                "isOverBudget": actual > budgeted,
            },
        }

    def history(self, user_id: str, category_id: str, start_month: str, end_month: str) -> list[dict[str, Any]]:
        validate_month(start_month)
        validate_month(end_month)
        return [b for b in self.by_category(user_id, category_id) if start_month <= b["month"] <= end_month]

    def average(self, user_id: str, category_id: str, start_month: str, end_month: str) -> int:
        history = self.history(user_id, category_id, start_month, end_month)
        if not history:
            return 0
        return round(sum(b["amount"] for b in history) / len(history))

    def rollover_amount(self, user_id: str, category_id: str, month: str, actual_spent: float) -> float:
        budget = self.get_budget(user_id, category_id, month)
        if budget is None:
            return 0
        return max(0, budget["amount"] - actual_spent)

    def apply_rollover(self, user_id: str, category_id: str, month: str, rollover: float) -> dict[str, Any]:
        budgets = self.list_budgets(user_id)
        target = next((b for b in budgets if b["categoryId"] == category_id and b["month"] == month), None)
        if target is None:
            raise not_found("Budget not found for applying rollover")
        budget = self._upsert(user_id, budgets, category_id, month, target["amount"] + rollover)
        self._save(user_id, budgets)
        return budget
