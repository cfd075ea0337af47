from __future__ import annotations

import statistics
from datetime import date
from typing import Any, Callable, Optional

from ..dates import add_months, month_bounds, month_of, month_range, today, validate_month
from ..errors import validation_error
from ..persistence import DataStore
from .actuals import ActualsOverrideService
from .bucketing import bucket_breakdown
from .categories import CategoryService
from .transactions import TransactionService, effective_category

UNCATEGORIZED = "uncategorized"
HISTORY_MONTHS = 6
TOP_CATEGORIES = 5


def _is_expense(txn: dict[str, Any]) -> bool:
    return txn["amount"] > 0


def _is_income(txn: dict[str, Any]) -> bool:
    return txn["amount"] < 0


def confidence_for(incomes: list[float], expenses: list[float]) -> str:
    def variation(values: list[float]) -> float:
        mean = statistics.fmean(values) if values else 0
        if mean == 0:
            return 0.0
        return statistics.pstdev(values) / mean

    volatility = (variation(incomes) + variation(expenses)) / 2
    if volatility < 0.1:
        return "high"
    if volatility < 0.25:
        return "medium"
    return "low"


class ReportService:
    def __init__(self, store: DataStore) -> None:
        self.transactions = TransactionService(store)
        self.categories = CategoryService(store)
        self.actuals = ActualsOverrideService(store)

    def _reportable(self, user_id: str, start_date: str, end_date: str) -> list[dict[str, Any]]:
        hidden = self.categories.hidden_ids(user_id)
        return [
            t
            for t in self.transactions.list_all(user_id)
            if start_date <= t["date"] <= end_date
            and t.get("status") != "removed"
            and not t.get("isHidden")
            and not t.get("pending")
            and effective_category(t) not in hidden
        ]

    @staticmethod
    def _totals_by_category(rows: list[dict[str, Any]]) -> dict[str, dict[str, float]]:
        totals: dict[str, dict[str, float]] = {}
        for txn in rows:
            bucket = totals.setdefault(effective_category(txn) or UNCATEGORIZED, {"amount": 0.0, "count": 0})
            bucket["amount"] += abs(txn["amount"])
            bucket["count"] += 1
        return totals

    def spending_trends(
        self, user_id: str, start_month: str, end_month: str, category_ids: Optional[list[str]] = None
    ) -> list[dict[str, Any]]:
        validate_month(start_month)
        validate_month(end_month)
        names = {c["id"]: c["name"] for c in self.categories.list_categories(user_id)}
        wanted = set(category_ids or [])
        trends = []
        for month in month_range(start_month, end_month):
            first, last = month_bounds(month)
            rows = [t for t in self._reportable(user_id, first, last) if _is_expense(t)]
            for category_id, data in self._totals_by_category(rows).items():
                if wanted and category_id not in wanted:
                    continue
                trends.append(
                    {
                        "month": month,
                        "categoryId": category_id,
                        "categoryName": names.get(category_id, "Uncategorized"),
                        "amount": data["amount"],
                        "transactionCount": data["count"],
                    }
                )
        return trends

    def _breakdown(
        self,
        user_id: str,
        start_date: str,
        end_date: str,
        keep: Callable[[dict[str, Any]], bool],
        include_subcategories: bool,
        grouped: bool,
    ) -> dict[str, Any]:
        rows = [t for t in self._reportable(user_id, start_date, end_date) if keep(t)]
        total = sum(abs(t["amount"]) for t in rows)
        totals = self._totals_by_category(rows)
        categories = self.categories.list_categories(user_id)

        def entry(category_id: str, name: str, amount: float, count: float) -> dict[str, Any]:
            return {
                "categoryId": category_id,
                "categoryName": name,
                "amount": amount,
                "percentage": (amount / total) * 100 if total > 0 else 0,
                "transactionCount": int(count),
            }

        breakdown: list[dict[str, Any]] = []
        if include_subcategories:
            for parent in (c for c in categories if not c.get("parentId")):
                own = totals.get(parent["id"], {"amount": 0.0, "count": 0})
                amount, count = own["amount"], own["count"]
                subcategories = []
                for child in (c for c in categories if c.get("parentId") == parent["id"]):
                    spent = totals.get(child["id"])
                    if spent is None:
                        continue
                    amount += spent["amount"]
                    count += spent["count"]
                    subcategories.append(entry(child["id"], child["name"], spent["amount"], spent["count"]))
                if amount > 0:
                    item = entry(parent["id"], parent["name"], amount, count)
                    if subcategories:
                        item["subcategories"] = sorted(subcategories, key=lambda s: s["amount"], reverse=True)
                    breakdown.append(item)
            uncategorized = totals.get(UNCATEGORIZED)
            if uncategorized:
                breakdown.append(entry(UNCATEGORIZED, "Uncategorized", uncategorized["amount"], uncategorized["count"]))
        else:
            names = {c["id"]: c["name"] for c in categories}
            for category_id, data in totals.items():
                breakdown.append(entry(category_id, names.get(category_id, "Uncategorized"), data["amount"], data["count"]))

        breakdown.sort(key=lambda b: b["amount"], reverse=True)
        if grouped:
            breakdown = bucket_breakdown(breakdown, total)
        return {"breakdown": breakdown, "total": total}

    def category_breakdown(
        self, user_id: str, start_date: str, end_date: str, include_subcategories: bool = True, grouped: bool = False
    ) -> dict[str, Any]:
        return self._breakdown(user_id, start_date, end_date, _is_expense, include_subcategories, grouped)

    def income_breakdown(
        self, user_id: str, start_date: str, end_date: str, include_subcategories: bool = True, grouped: bool = False
    ) -> dict[str, Any]:
        return self._breakdown(user_id, start_date, end_date, _is_income, include_subcategories, grouped)

    def cash_flow(self, user_id: str, start_month: str, end_month: str) -> list[dict[str, Any]]:
        validate_month(start_month)
        validate_month(end_month)
        overrides = self.actuals.by_month(user_id)
        summary = []
        for month in month_range(start_month, end_month):
            override = overrides.get(month)
            if override is not None:
                income, expenses = override["totalIncome"], override["totalExpenses"]
            else:
                first, last = month_bounds(month)
                rows = self._reportable(user_id, first, last)
                income = sum(-t["amount"] for t in rows if _is_income(t))
                expenses = sum(t["amount"] for t in rows if _is_expense(t))
            net = income - expenses
            summary.append(
                {
                    "month": month,
                    "income": income,
                    "expenses": expenses,
                    "netFlow": net,
                    "savingsRate": (net / income) * 100 if income > 0 else 0,
                    "isOverride": override is not None,
                }
            )
        return summary

    def projections(self, user_id: str, months: int = 6, on: date | None = None) -> list[dict[str, Any]]:
        if months < 1 or months > 24:
            raise validation_error("months must be between 1 and 24")
        current = month_of(on or today())
        history = self.cash_flow(user_id, add_months(current, -HISTORY_MONTHS), add_months(current, -1))
        incomes = [m["income"] for m in history]
        expenses = [m["expenses"] for m in history]
        avg_income = statistics.fmean(incomes)
        avg_expenses = statistics.fmean(expenses)
        confidence = confidence_for(incomes, expenses)
        return [
            {
                "month": add_months(current, offset),
                "projectedIncome": avg_income,
                "projectedExpenses": avg_expenses,
                "projectedNetFlow": avg_income - avg_expenses,
                "confidence": confidence,
            }
            for offset in range(1, months + 1)
        ]

    def year_to_date(self, user_id: str, on: date | None = None) -> dict[str, Any]:
        day = on or today()
        rows = self._reportable(user_id, f"{day.year:04d}-01-01", day.isoformat())
        total_income = sum(-t["amount"] for t in rows if _is_income(t))
        total_expenses = sum(t["amount"] for t in rows if _is_expense(t))
        net = total_income - total_expenses
        names = {c["id"]: c["name"] for c in self.categories.list_categories(user_id)}
        by_category = self._totals_by_category([t for t in rows if _is_expense(t)])
        top = sorted(
            (
                {
                    "categoryId": category_id,
                    "categoryName": names.get(category_id, "Uncategorized"),
                    "amount": data["amount"],
                    "percentage": (data["amount"] / total_expenses) * 100 if total_expenses > 0 else 0,
                }
                for category_id, data in by_category.items()
            ),
            key=lambda c: c["amount"],
            reverse=True,
        )[:TOP_CATEGORIES]
        return {
            "totalIncome": total_income,
            "totalExpenses": total_expenses,
            "netIncome": net,
            "averageMonthlyIncome": total_income / day.month,
            "averageMonthlyExpenses": total_expenses / day.month,
            "savingsRate": (net / total_income) * 100 if total_income > 0 else 0,
            "topCategories": top,
        }
