from typing import Any

from fastapi import APIRouter, Depends, Response

from ..dates import validate_month
from ..deps import current_user_id, get_store
from ..errors import not_found, validation_error
from ..persistence import DataStore
from ..schemas import BudgetBatchRequest, BudgetComparisonRequest, BudgetCopy, BudgetCreate, BudgetRolloverRequest
from ..services.budgets import BudgetService
from ..services.categories import CategoryService

router = APIRouter(prefix="/budgets", tags=["budgets"])


@router.get("")
async def list_budgets(user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)) -> dict[str, Any]:
    return {"success": True, "budgets": BudgetService(store).list_budgets(user_id)}


@router.get("/available-months")
async def available_months(user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)) -> dict[str, Any]:
    return {"success": True, "months": BudgetService(store).available_months(user_id)}


@router.get("/month/{month}")
async def monthly_budgets(
    month: str, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    service = BudgetService(store)
    budgets = service.monthly(user_id, month)
    return {"success": True, "month": month, "budgets": budgets, "total": sum(b["amount"] for b in budgets)}


@router.get("/category/{category_id}")
async def category_budgets(
    category_id: str, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    return {"success": True, "budgets": BudgetService(store).by_category(user_id, category_id)}


@router.get("/category/{category_id}/month/{month}")
async def category_month_budget(
    category_id: str, month: str, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    budget = BudgetService(store).get_budget(user_id, category_id, month)
    if budget is None:
        raise not_found("Budget not found")
    return {"success": True, "budget": budget}


@router.post("", status_code=201)
async def create_or_update_budget(
    payload: BudgetCreate, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    return {"success": True, "budget": BudgetService(store).create_or_update(user_id, payload)}


@router.post("/copy")
async def copy_budgets(
    payload: BudgetCopy, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    copied = BudgetService(store).copy(user_id, payload.fromMonth, payload.toMonth)
    return {
        "success": True,
        "message": f"Copied {len(copied)} budgets from {payload.fromMonth} to {payload.toMonth}",
        "budgets": copied,
    }


@router.post("/comparison/{month}")
async def budget_comparison(
    month: str,
    payload: BudgetComparisonRequest,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    validate_month(month)
    hidden = CategoryService(store).hidden_ids(user_id)
    return {"success": True, **BudgetService(store).comparison(user_id, month, payload.actuals, hidden)}


@router.get("/history/{category_id}")
async def budget_history(
    category_id: str,
    startMonth: str,
    endMonth: str,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    service = BudgetService(store)
    return {
        "success": True,
        "categoryId": category_id,
        "history": service.history(user_id, category_id, startMonth, endMonth),
        "average": service.average(user_id, category_id, startMonth, endMonth),
    }


@router.delete("/category/{category_id}", status_code=204)
async def delete_category_budgets(
    category_id: str, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> Response:
    BudgetService(store).delete_by_category(user_id, category_id)
    return Response(status_code=204)


@router.delete("/{budget_id}", status_code=204)
async def delete_budget(
    budget_id: str, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> Response:
    BudgetService(store).delete_budget(user_id, budget_id)
    return Response(status_code=204)


@router.post("/rollover")
async def apply_rollover(
    payload: BudgetRolloverRequest, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    service = BudgetService(store)
    rollover = service.rollover_amount(user_id, payload.categoryId, payload.fromMonth, payload.actualSpent)
    if rollover <= 0:
        return {"success": True, "rolloverAmount": 0, "message": "No rollover amount to apply"}
    budget = service.apply_rollover(user_id, payload.categoryId, payload.toMonth, rollover)
    return {"success": True, "rolloverAmount": rollover, "budget": budget}


@router.get("/year/{year}")
async def yearly_budgets(
    year: str, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    if not (len(year) == 4 and year.isdigit()):
        raise validation_error("Invalid year format. Use YYYY")
    budgets = BudgetService(store).yearly(user_id, int(year))
    return {"success": True, "year": int(year), "budgets": budgets, "count": len(budgets)}


@router.post("/batch")
async def batch_update(
    payload: BudgetBatchRequest, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    budgets = BudgetService(store).batch_update(user_id, payload.updates)
    return {
        "success": True,
        "message": f"Updated {len(budgets)} budgets",
        "budgets": budgets,
        "count": len(budgets),
    }
