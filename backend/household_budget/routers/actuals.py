from typing import Any

from fastapi import APIRouter, Depends

from ..deps import current_user_id, get_store
from ..persistence import DataStore
from ..schemas import ActualsOverrideUpsert
from ..services.actuals import ActualsOverrideService

router = APIRouter(prefix="/actuals-overrides", tags=["actuals-overrides"])


@router.get("")
async def list_overrides(user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)) -> dict[str, Any]:
    return {"success": True, "overrides": ActualsOverrideService(store).list_overrides(user_id)}


@router.get("/range/{start_month}/{end_month}")
async def overrides_in_range(
    start_month: str, end_month: str, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    return {"success": True, "overrides": ActualsOverrideService(store).in_range(user_id, start_month, end_month)}


@router.get("/{month}")
async def override_for_month(
    month: str, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    return {"success": True, "override": ActualsOverrideService(store).get_for_month(user_id, month)}


@router.post("", status_code=201)
async def upsert_override(
    payload: ActualsOverrideUpsert, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    return {"success": True, "override": ActualsOverrideService(store).upsert(user_id, payload)}


@router.delete("/{override_id}")
async def delete_override(
    override_id: str, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    ActualsOverrideService(store).delete(user_id, override_id)
    return {"success": True}
