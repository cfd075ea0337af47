import csv
import io
from dataclasses import asdict, dataclass, field
from typing import Optional

from .errors import validation_error

REQUIRED_HEADERS = ("Parent", "Child")
TRUE_VALUES = {"yes", "true", "1", "y"}
MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500


@dataclass
class CategoryRow:
    row: int
    parent: Optional[str]
    name: str
    type: str = ""
    is_hidden: bool = False
    is_savings: bool = False
    description: Optional[str] = None


@dataclass
class RowError:
    row: int
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CategoryCsv:
    rows: list[CategoryRow] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)


def parse_bool(value: str) -> bool:
    return value.strip().lower() in TRUE_VALUES


def parse_category_csv(content: str) -> CategoryCsv:
    """Parse a ``Parent,Child[,Type,Hidden,Savings,Description]`` file.

    Header problems abort the whole import; bad data rows are collected in
    ``errors`` and skipped.
    """
    if not content or not content.strip():
        raise validation_error("CSV content is required")

    reader = csv.reader(io.StringIO(content.lstrip("\ufeff").strip()))
    records = [record for record in reader if any(cell.strip() for cell in record)]
    if len(records) < 2:
        raise validation_error("CSV file must have a header row and at least one data row")

    header = [cell.strip().lower() for cell in records[0]]
    missing = [name for name in REQUIRED_HEADERS if name.lower() not in header]
    if missing:
        raise validation_error(f"Missing required headers: {', '.join(missing)}. Expected header: Parent,Child,Type,Hidden,Savings,Description")
    index = {name: i for i, name in enumerate(header)}

    result = CategoryCsv()
    for row_number, record in enumerate(records[1:], start=2):

        def cell(column: str) -> str:
            i = index.get(column)
            if i is None or i >= len(record):
                return ""
            return record[i].strip()

        if len(record) > len(header):
            result.errors.append(RowError(row_number, f"Row has {len(record)} columns but header has {len(header)}"))
            continue
        name = cell("child")
        if not name:
            result.errors.append(RowError(row_number, "Category name is required"))
            continue
        if len(name) > MAX_NAME_LENGTH:
            result.errors.append(RowError(row_number, f"Category name must be {MAX_NAME_LENGTH} characters or less"))
            continue
        description = cell("description") or None
        if description and len(description) > MAX_DESCRIPTION_LENGTH:
            result.errors.append(RowError(row_number, f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less"))
            continue
        result.rows.append(
            CategoryRow(
                row=row_number,
                parent=cell("parent") or None,
                name=name,
                type=cell("type").lower(),
                is_hidden=parse_bool(cell("hidden")),
                is_savings=parse_bool(cell("savings")),
                description=description,
            )
        )
    return result
