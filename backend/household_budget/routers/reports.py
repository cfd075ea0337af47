from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from ..dates import DATE_RE
from ..deps import current_user_id, get_store
from ..errors import validation_error
from ..persistence import DataStore
from ..services.reports import ReportService

router = APIRouter(prefix="/reports", tags=["reports"])


def _check_range(start_date: str, end_date: str) -> None:
    if not DATE_RE.match(start_date) or not DATE_RE.match(end_date):
        raise validation_error("Invalid date format. Use YYYY-MM-DD")


@router.get("/spending-trends")
async def spending_trends(
    startMonth: str,
    endMonth: str,
    categoryIds: Optional[list[str]] = Query(default=None),
    categoryIdsBracket: Optional[list[str]] = Query(default=None, alias="categoryIds[]"),
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    wanted = (categoryIds or []) + (categoryIdsBracket or [])
    return {"success": True, "trends": ReportService(store).spending_trends(user_id, startMonth, endMonth, wanted)}


@router.get("/category-breakdown")
async def category_breakdown(
    startDate: str,
    endDate: str,
    includeSubcategories: bool = True,
    grouped: bool = False,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    _check_range(startDate, endDate)
    report = ReportService(store).category_breakdown(user_id, startDate, endDate, includeSubcategories, grouped)
    return {"success": True, **report}


@router.get("/income-breakdown")
async def income_breakdown(
    startDate: str,
    endDate: str,
    includeSubcategories: bool = True,
    grouped: bool = False,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    _check_range(startDate, endDate)
    report = ReportService(store).income_breakdown(user_id, startDate, endDate, includeSubcategories, grouped)
    return {"success": True, **report}


@router.get("/cash-flow")
async def cash_flow(
    startMonth: str,
    endMonth: str,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    return {"success": True, "summary": ReportService(store).cash_flow(user_id, startMonth, endMonth)}


@router.get("/projections")
async def projections(
    months: int = 6,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    return {"success": True, "projections": ReportService(store).projections(user_id, months)}


@router.get("/year-to-date")
async def year_to_date(user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)) -> dict[str, Any]:
    return {"success": True, "summary": ReportService(store).year_to_date(user_id)}
