import re
from calendar import monthrange
from datetime import date, datetime, timezone

from .errors import validation_error

MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
INVALID_MONTH = "Invalid month format. Use YYYY-MM"


def is_month(value: str | None) -> bool:
    return bool(value) and bool(MONTH_RE.match(value))


def validate_month(value: str) -> str:
    if not is_month(value):
        raise validation_error(INVALID_MONTH)
    return value


def add_months(month: str, months: int) -> str:
    year, mon = (int(part) for part in month.split("-"))
    total = (mon - 1) + months
    return f"{year + total // 12:04d}-{(total % 12) + 1:02d}"


def month_range(start_month: str, end_month: str) -> list[str]:
    months: list[str] = []
    current = start_month
    while current <= end_month:
        months.append(current)
        current = add_months(current, 1)
    return months


def month_bounds(month: str) -> tuple[str, str]:
    year, mon = (int(part) for part in month.split("-"))
    return f"{month}-01", f"{month}-{monthrange(year, mon)[1]:02d}"


def month_of(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def today() -> date:
    return date.today()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
