from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from ..csv_import import RowError, parse_category_csv
from ..dates import utc_now_iso
from ..errors import not_found, validation_error
from ..persistence import DataStore
from ..schemas import CategoryCreate, CategoryUpdate

logger = logging.getLogger(__name__)

CATEGORIES = "categories"

DEFAULT_CATEGORIES: list[dict[str, Any]] = [
    {"name": "Income", "plaidCategory": "INCOME"},
    {"name": "Housing", "plaidCategory": "HOUSING"},
    {"name": "Transportation", "plaidCategory": "TRANSPORTATION"},
    {"name": "Food & Dining", "plaidCategory": "FOOD_AND_DRINK"},
    {"name": "Shopping", "plaidCategory": "SHOPS"},
    {"name": "Entertainment", "plaidCategory": "ENTERTAINMENT"},
    {"name": "Bills & Utilities", "plaidCategory": "SERVICE"},
    {"name": "Healthcare", "plaidCategory": "HEALTHCARE"},
    {"name": "Education", "plaidCategory": "EDUCATION"},
    {"name": "Personal", "plaidCategory": "PERSONAL_CARE"},
    {"name": "Savings", "plaidCategory": None, "isSavings": True},
    {"name": "Transfers", "plaidCategory": "TRANSFER", "isHidden": True},
]


def _new_category(name: str, parent_id: str | None = None, **fields: Any) -> dict[str, Any]:
    return {
        "id": str(uuid4()),
        "name": name,
        "parentId": parent_id,
        "plaidCategory": fields.get("plaidCategory"),
        "isHidden": bool(fields.get("isHidden", False)),
        "isSavings": bool(fields.get("isSavings", False)),
        "description": fields.get("description"),
        "isCustom": bool(fields.get("isCustom", True)),
        "createdAt": utc_now_iso(),
    }


class CategoryService:
    def __init__(self, store: DataStore) -> None:
        self.store = store

    def list_categories(self, user_id: str) -> list[dict[str, Any]]:
        return self.store.get_list(CATEGORIES, user_id)

    def _save(self, user_id: str, categories: list[dict[str, Any]]) -> None:
        self.store.save_list(CATEGORIES, user_id, categories)

    def get_category(self, user_id: str, category_id: str) -> dict[str, Any] | None:
        return next((c for c in self.list_categories(user_id) if c["id"] == category_id), None)

    def require_category(self, user_id: str, category_id: str) -> dict[str, Any]:
        category = self.get_category(user_id, category_id)
        if category is None:
            raise not_found("Category not found")
        return category

    def parents(self, user_id: str) -> list[dict[str, Any]]:
        return [c for c in self.list_categories(user_id) if not c.get("parentId")]

    def subcategories(self, user_id: str, parent_id: str) -> list[dict[str, Any]]:
        return [c for c in self.list_categories(user_id) if c.get("parentId") == parent_id]

    def hidden(self, user_id: str) -> list[dict[str, Any]]:
        return [c for c in self.list_categories(user_id) if c.get("isHidden")]

    def hidden_ids(self, user_id: str) -> set[str]:
        return {c["id"] for c in self.hidden(user_id)}

    def savings(self, user_id: str) -> list[dict[str, Any]]:
        return [c for c in self.list_categories(user_id) if c.get("isSavings")]

    def tree(self, user_id: str) -> list[dict[str, Any]]:
        categories = self.list_categories(user_id)
        return [
            {**parent, "children": [c for c in categories if c.get("parentId") == parent["id"]]}
            for parent in categories
            if not parent.get("parentId")
        ]

    def _check_parent(self, categories: list[dict[str, Any]], parent_id: str | None) -> None:
        if not parent_id:
            return
        parent = next((c for c in categories if c["id"] == parent_id), None)
        if parent is None:
            raise not_found("Parent category not found")
        if parent.get("parentId"):
            raise validation_error("Cannot create subcategory under another subcategory")

    def create_category(self, user_id: str, payload: CategoryCreate) -> dict[str, Any]:
        categories = self.list_categories(user_id)
        self._check_parent(categories, payload.parentId)
        category = _new_category(
            payload.name,
            payload.parentId or None,
            plaidCategory=payload.plaidCategory,
            isHidden=payload.isHidden,
            isSavings=payload.isSavings,
            description=payload.description,
        )
        categories.append(category)
        self._save(user_id, categories)
        return category

    def update_category(self, user_id: str, category_id: str, payload: CategoryUpdate) -> dict[str, Any]:
        categories = self.list_categories(user_id)
        category = next((c for c in categories if c["id"] == category_id), None)
        if category is None:
            raise not_found("Category not found")
        changes = payload.model_dump(exclude_unset=True)
        if "parentId" in changes:
            parent_id = changes["parentId"] or None
            if parent_id == category_id:
                raise validation_error("Category cannot be its own parent")
            if parent_id and any(c.get("parentId") == category_id for c in categories):
                raise validation_error("Cannot nest a category that has subcategories")
            self._check_parent(categories, parent_id)
            changes["parentId"] = parent_id
        if changes.get("name") is not None:
            changes["name"] = changes["name"].strip()
        category.update({k: v for k, v in changes.items() if v is not None or k in ("parentId", "description")})
        self._save(user_id, categories)
        return category

    def delete_category(self, user_id: str, category_id: str) -> int:
        categories = self.list_categories(user_id)
        if not any(c["id"] == category_id for c in categories):
            raise not_found("Category not found")
        remaining = [c for c in categories if c["id"] != category_id and c.get("parentId") != category_id]
        self._save(user_id, remaining)
        return len(categories) - len(remaining)

    def initialize_defaults(self, user_id: str) -> list[dict[str, Any]]:
        categories = self.list_categories(user_id)
        if categories:
            return categories
        categories = [_new_category(isCustom=False, **fields) for fields in DEFAULT_CATEGORIES]
        self._save(user_id, categories)
        return categories

    def import_csv(self, user_id: str, content: str) -> dict[str, Any]:
        parsed = parse_category_csv(content)
        errors: list[RowError] = list(parsed.errors)
        if not parsed.rows:
            raise validation_error(
                "No valid category rows found in CSV",
                [e.to_dict() for e in sorted(errors, key=lambda e: e.row)],
            )

        categories = self.list_categories(user_id)
        parents = {c["name"].lower(): c for c in categories if not c.get("parentId")}
        imported = 0
        skipped = 0
        for row in parsed.rows:
            if row.parent is None:
                if row.name.lower() in parents:
                    errors.append(RowError(row.row, f'Category "{row.name}" already exists'))
                    skipped += 1
                    continue
                created = _new_category(
                    row.name, isHidden=row.is_hidden, isSavings=row.is_savings, description=row.description
                )
                categories.append(created)
                parents[row.name.lower()] = created
                imported += 1
                continue

            parent = parents.get(row.parent.lower())
            if parent is None:
                parent = _new_category(row.parent)
                categories.append(parent)
                parents[row.parent.lower()] = parent
                imported += 1
            siblings = {c["name"].lower() for c in categories if c.get("parentId") == parent["id"]}
            if row.name.lower() in siblings:
                errors.append(RowError(row.row, f'Category "{row.name}" already exists'))
                skipped += 1
                continue
            categories.append(
                _new_category(
                    row.name,
                    parent["id"],
                    isHidden=row.is_hidden,
                    isSavings=row.is_savings,
                    description=row.description,
                )
            )
            imported += 1

        self._save(user_id, categories)
        logger.info(
            "imported %d categories for user %s (%d skipped, %d row errors)", imported, user_id, skipped, len(errors)
        )
        message = f"Successfully imported {imported} categories"
        if skipped:
            message += f", skipped {skipped} duplicates"
        return {
            "importedCount": imported,
            "skipped": skipped,
            "message": message,
            "errors": [e.to_dict() for e in sorted(errors, key=lambda e: e.row)],
        }
