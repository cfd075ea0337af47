from typing import Any, Optional

from fastapi import APIRouter, Depends

from ..deps import current_user_id, get_store
from ..persistence import DataStore
from ..schemas import ApplyRulesRequest, RuleCreate, RuleReorder, RuleUpdate
from ..services.autocategorize import AutoCategorizeService

router = APIRouter(prefix="/autocategorize", tags=["autocategorize"])


@router.get("/rules")
async def list_rules(user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)) -> dict[str, Any]:
    return {"success": True, "rules": AutoCategorizeService(store).list_rules(user_id)}


@router.post("/rules", status_code=201)
async def create_rule(
    payload: RuleCreate,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    return {"success": True, "rule": AutoCategorizeService(store).create_rule(user_id, payload)}


@router.put("/rules/reorder")
async def reorder_rules(
    payload: RuleReorder,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    return {"success": True, "rules": AutoCategorizeService(store).reorder_rules(user_id, payload.ruleIds)}


@router.put("/rules/{rule_id}")
async def update_rule(
    rule_id: str,
    payload: RuleUpdate,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    return {"success": True, "rule": AutoCategorizeService(store).update_rule(user_id, rule_id, payload)}


@router.delete("/rules/{rule_id}")
async def delete_rule(
    rule_id: str,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    AutoCategorizeService(store).delete_rule(user_id, rule_id)
    return {"success": True}


@router.put("/rules/{rule_id}/move-up")
async def move_rule_up(
    rule_id: str,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    return {"success": True, "rules": AutoCategorizeService(store).move_up(user_id, rule_id)}


@router.put("/rules/{rule_id}/move-down")
async def move_rule_down(
    rule_id: str,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    return {"success": True, "rules": AutoCategorizeService(store).move_down(user_id, rule_id)}


@router.post("/apply")
async def apply_rules(
    payload: Optional[ApplyRulesRequest] = None,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    force = payload.forceRecategorize if payload else False
    return {"success": True, **AutoCategorizeService(store).apply(user_id, force).to_dict()}


@router.post("/preview")
async def preview_rules(
    payload: Optional[ApplyRulesRequest] = None,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    force = payload.forceRecategorize if payload else False
    return {"success": True, **AutoCategorizeService(store).preview(user_id, force).to_dict()}
