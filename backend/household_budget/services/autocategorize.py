from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable
from uuid import uuid4

from ..dates import utc_now_iso
from ..errors import not_found, validation_error
from ..persistence import DataStore
from ..schemas import RuleCreate, RuleUpdate
from .categories import CategoryService
from .transactions import TransactionService, effective_category, is_uncategorized

logger = logging.getLogger(__name__)

RULES = "autocategorize_rules"


def _normalize_rule(rule: dict[str, Any]) -> dict[str, Any]:
    if not rule.get("patterns") and rule.get("pattern"):
        rule["patterns"] = [rule["pattern"]]
    rule.pop("pattern", None)
    rule.setdefault("isActive", True)
    return rule


def rule_matches(rule: dict[str, Any], txn: dict[str, Any]) -> bool:
    fields = [txn.get("userDescription"), txn.get("merchantName"), txn.get("name")]
    texts = [f.lower() for f in fields if f]
    return any(pattern.lower() in text for pattern in rule.get("patterns", []) for text in texts)


def find_matching_rule(rules: Iterable[dict[str, Any]], txn: dict[str, Any]) -> dict[str, Any] | None:
    active = sorted((r for r in rules if r.get("isActive", True)), key=lambda r: r["priority"])
    for rule in active:
        if rule_matches(rule, txn):
            return rule
    return None


def match_plaid_category(txn: dict[str, Any], categories: list[dict[str, Any]]) -> str | None:
    plaid_path = txn.get("category") or []
    if not plaid_path:
        return None
    primary = str(plaid_path[0]).lower()
    for category in categories:
        if category["name"].lower() == primary or (category.get("plaidCategory") or "").lower() == primary:
            return category["id"]
    return None


@dataclass
class Assignment:
    transaction_id: str
    category_id: str
    user_description: str | None
    was_categorized: bool


@dataclass
class ApplyResult:
    categorized: int
    recategorized: int
    total: int

    @property
    def message(self) -> str:
        changed = self.categorized + self.recategorized
        if self.recategorized:
            return (
                f"Categorized {self.categorized} and recategorized {self.recategorized} "
                f"of {self.total} transactions"
            )
        return f"Categorized {changed} of {self.total} transactions"

    def to_dict(self) -> dict[str, Any]:
        return {
            "categorized": self.categorized,
            "recategorized": self.recategorized,
            "total": self.total,
            "message": self.message,
        }


class AutoCategorizeService:
    def __init__(self, store: DataStore) -> None:
        self.store = store
        self.transactions = TransactionService(store)
        self.categories = CategoryService(store)

    def list_rules(self, user_id: str) -> list[dict[str, Any]]:
        rules = [_normalize_rule(r) for r in self.store.get_list(RULES, user_id)]
        return sorted(rules, key=lambda r: r["priority"])

    def _save(self, user_id: str, rules: list[dict[str, Any]]) -> None:
        self.store.save_list(RULES, user_id, rules)

    @staticmethod
    def _renumber(rules: list[dict[str, Any]]) -> list[dict[str, Any]]:
        now = utc_now_iso()
        for position, rule in enumerate(rules, start=1):
            if rule["priority"] != position:
                rule["priority"] = position
                rule["updatedAt"] = now
        return rules

    @staticmethod
    def _check_duplicates(rules: list[dict[str, Any]], patterns: list[str], exclude_id: str | None = None) -> None:
        taken = {p.lower() for r in rules if r["id"] != exclude_id for p in r.get("patterns", [])}
        duplicates = [p for p in patterns if p.lower() in taken]
        if duplicates:
            quoted = ", ".join(f'"{p}"' for p in duplicates)
            raise validation_error(f"Pattern(s) already exist in another rule: {quoted}")

    def _find(self, rules: list[dict[str, Any]], rule_id: str) -> dict[str, Any]:
        for rule in rules:
            if rule["id"] == rule_id:
                return rule
        raise not_found("Rule not found")

    def _category_name(self, user_id: str, category_id: str, fallback: str | None) -> str:
        category = self.categories.get_category(user_id, category_id)
        if category is not None:
            return category["name"]
        return fallback or category_id

    def create_rule(self, user_id: str, payload: RuleCreate) -> dict[str, Any]:
        rules = self.list_rules(user_id)
        self._check_duplicates(rules, payload.patterns)
        now = utc_now_iso()
        rule = {
            "id": str(uuid4()),
            "userId": user_id,
            "description": payload.description or ", ".join(payload.patterns),
            "patterns": payload.patterns,
            "categoryId": payload.categoryId,
            "categoryName": self._category_name(user_id, payload.categoryId, payload.categoryName),
            "userDescription": payload.userDescription or None,
            "priority": max((r["priority"] for r in rules), default=0) + 1,
            "isActive": payload.isActive,
            "createdAt": now,
            "updatedAt": now,
        }
        rules.append(rule)
        self._save(user_id, rules)
        logger.info("created auto-categorize rule %s for user %s", rule["id"], user_id)
        return rule

    def update_rule(self, user_id: str, rule_id: str, payload: RuleUpdate) -> dict[str, Any]:
        rules = self.list_rules(user_id)
        rule = self._find(rules, rule_id)
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("patterns") is not None:
            self._check_duplicates(rules, changes["patterns"], exclude_id=rule_id)
        for key, value in changes.items():
            if value is None and key in ("patterns", "categoryId", "isActive"):
                continue
            rule[key] = value
        if "categoryId" in changes and changes["categoryId"]:
            rule["categoryName"] = self._category_name(user_id, rule["categoryId"], changes.get("categoryName"))
        if "userDescription" in changes:
            rule["userDescription"] = changes["userDescription"] or None
        rule["updatedAt"] = utc_now_iso()
        self._save(user_id, rules)
        return rule

    def delete_rule(self, user_id: str, rule_id: str) -> None:
        rules = self.list_rules(user_id)
        rule = self._find(rules, rule_id)
        rules.remove(rule)
        self._save(user_id, self._renumber(rules))

    def reorder_rules(self, user_id: str, rule_ids: list[str]) -> list[dict[str, Any]]:
        rules = self.list_rules(user_id)
        by_id = {r["id"]: r for r in rules}
        for rule_id in rule_ids:
            if rule_id not in by_id:
                raise validation_error(f"Rule {rule_id} not found")
        requested = list(dict.fromkeys(rule_ids))
        ordered = [by_id[rule_id] for rule_id in requested]
        ordered.extend(r for r in rules if r["id"] not in requested)
        self._save(user_id, self._renumber(ordered))
        return ordered

    def _swap(self, user_id: str, rule_id: str, offset: int) -> list[dict[str, Any]]:
        rules = self.list_rules(user_id)
        rule = self._find(rules, rule_id)
        position = rules.index(rule)
        target = position + offset
        if target < 0:
            raise validation_error("Cannot move rule up - already at highest priority")
        if target >= len(rules):
            raise validation_error("Cannot move rule down - already at lowest priority")
        neighbour = rules[target]
        rule["priority"], neighbour["priority"] = neighbour["priority"], rule["priority"]
        now = utc_now_iso()
        rule["updatedAt"] = neighbour["updatedAt"] = now
        self._save(user_id, rules)
        return sorted(rules, key=lambda r: r["priority"])

    def move_up(self, user_id: str, rule_id: str) -> list[dict[str, Any]]:
        return self._swap(user_id, rule_id, -1)

    def move_down(self, user_id: str, rule_id: str) -> list[dict[str, Any]]:
        return self._swap(user_id, rule_id, 1)

    def _plan(self, user_id: str, transactions: list[dict[str, Any]], force: bool) -> tuple[list[Assignment], int]:
        rules = self.list_rules(user_id)
        categories = self.categories.list_categories(user_id)
        if force:
            candidates = [t for t in transactions if t.get("status") != "removed"]
        else:
            candidates = [
                t for t in transactions if t.get("status") != "removed" and not t.get("isHidden") and is_uncategorized(t)
            ]
        plan: list[Assignment] = []
        for txn in candidates:
            rule = find_matching_rule(rules, txn)
            if rule is not None:
                category_id, description = rule["categoryId"], rule.get("userDescription") or None
            else:
                category_id, description = match_plaid_category(txn, categories), None
            if category_id is None:
                continue
            current = effective_category(txn)
            if current == category_id and (not description or description == txn.get("userDescription")):
                continue
            plan.append(Assignment(txn["id"], category_id, description, current is not None))
        return plan, len(candidates)

    @staticmethod
    def _summarize(plan: list[Assignment], total: int) -> ApplyResult:
        recategorized = sum(1 for a in plan if a.was_categorized)
        return ApplyResult(categorized=len(plan) - recategorized, recategorized=recategorized, total=total)

    def preview(self, user_id: str, force: bool = False) -> ApplyResult:
        plan, total = self._plan(user_id, self.transactions.list_all(user_id), force)
        return self._summarize(plan, total)

    def apply(self, user_id: str, force: bool = False) -> ApplyResult:
        transactions = self.transactions.list_all(user_id)
        plan, total = self._plan(user_id, transactions, force)
        by_id = {t["id"]: t for t in transactions}
        now = utc_now_iso()
        for assignment in plan:
            txn = by_id[assignment.transaction_id]
            txn["categoryId"] = assignment.category_id
            txn["userCategoryId"] = assignment.category_id
            if assignment.user_description:
                txn["userDescription"] = assignment.user_description
            txn["updatedAt"] = now
        if plan:
            self.transactions.save_all(user_id, transactions)
        result = self._summarize(plan, total)
        logger.info("auto-categorize for user %s: %s", user_id, result.message)
        return result
