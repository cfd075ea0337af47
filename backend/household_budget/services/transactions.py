from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable
from uuid import uuid4

from ..dates import month_bounds, month_of, today, utc_now_iso
from ..encryption import EncryptionError, EncryptionService, get_encryption_service
from ..errors import ApiError, ErrorKind, not_found, validation_error
from ..persistence import DataStore
from ..plaid_client import PlaidClientProtocol, PlaidError
from ..schemas import SplitItem, TransactionFilter, TransactionType
from .sync import SyncStats, merge_plaid_transactions

logger = logging.getLogger(__name__)

TRANSACTIONS = "transactions"
DEFAULT_SYNC_START = "2025-01-01"
SPLIT_TOLERANCE = 0.01


def effective_category(txn: dict[str, Any]) -> str | None:
    return txn.get("userCategoryId") or txn.get("categoryId")


def is_uncategorized(txn: dict[str, Any]) -> bool:
    return effective_category(txn) is None


def parse_transaction_type(value: str | None) -> TransactionType:
    if value is None or value == "":
        return TransactionType.all
    try:
        return TransactionType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in TransactionType)
        raise validation_error(f"Invalid transactionType '{value}'. Must be one of: {allowed}") from None


def _matches_search(txn: dict[str, Any], query: str) -> bool:
    haystack = [txn.get("name"), txn.get("merchantName"), txn.get("notes"), *(txn.get("tags") or [])]
    return any(query in value.lower() for value in haystack if value)


@dataclass
class FilterResult:
    transactions: list[dict[str, Any]]
    total_count: int
    unfiltered_total: int


def filter_transactions(transactions: Iterable[dict[str, Any]], flt: TransactionFilter) -> FilterResult:
    """Apply a filter to a user's transactions.

    ``unfiltered_total`` counts what is left after the status, date and
    account filters (and hidden visibility), before any category, tag,
    amount, search or type filtering.
    """
    txn_type = parse_transaction_type(flt.transactionType)

    rows = [t for t in transactions if t.get("status") != "removed"]
    if not flt.includePending:
        rows = [t for t in rows if not t.get("pending")]
    if flt.startDate:
        rows = [t for t in rows if t["date"] >= flt.startDate]
    if flt.endDate:
        rows = [t for t in rows if t["date"] <= flt.endDate]
    if flt.accountIds:
        account_ids = set(flt.accountIds)
        rows = [t for t in rows if t.get("accountId") in account_ids]

    unfiltered_total = len(rows if flt.includeHidden else [t for t in rows if not t.get("isHidden")])

    if flt.categoryIds:
        category_ids = set(flt.categoryIds)
        rows = [t for t in rows if effective_category(t) in category_ids]
    if flt.tags:
        wanted = set(flt.tags)
        rows = [t for t in rows if wanted.intersection(t.get("tags") or [])]
    if not flt.includeHidden:
        rows = [t for t in rows if not t.get("isHidden")]
    if flt.onlyUncategorized:
        rows = [t for t in rows if is_uncategorized(t)]

    if flt.exactAmount is not None:
        target = abs(flt.exactAmount)
        rows = [t for t in rows if abs(abs(t["amount"]) - target) <= flt.amountTolerance]
    else:
        if flt.minAmount is not None:
            rows = [t for t in rows if abs(t["amount"]) >= flt.minAmount]
        if flt.maxAmount is not None:
            rows = [t for t in rows if abs(t["amount"]) <= flt.maxAmount]

    query = (flt.searchQuery or "").strip().lower()
    if query:
        rows = [t for t in rows if _matches_search(t, query)]

    if txn_type is TransactionType.income:
        rows = [t for t in rows if t["amount"] < 0]
    elif txn_type is TransactionType.expense:
        rows = [t for t in rows if t["amount"] >= 0]

    rows.sort(key=lambda t: t["date"], reverse=True)
    return FilterResult(transactions=rows, total_count=len(rows), unfiltered_total=unfiltered_total)


class TransactionService:
    def __init__(
        self,
        store: DataStore,
        plaid: PlaidClientProtocol | None = None,
        encryption: EncryptionService | None = None,
    ) -> None:
        self.store = store
        self.plaid = plaid
        self._encryption = encryption

    @property
    def encryption(self) -> EncryptionService:
        if self._encryption is None:
            self._encryption = get_encryption_service()
        return self._encryption

    def list_all(self, user_id: str) -> list[dict[str, Any]]:
        return self.store.get_list(TRANSACTIONS, user_id)

    def save_all(self, user_id: str, rows: list[dict[str, Any]]) -> None:
        self.store.save_list(TRANSACTIONS, user_id, rows)

    def get_transactions(self, user_id: str, flt: TransactionFilter) -> FilterResult:
        return filter_transactions(self.list_all(user_id), flt)

    def _find(self, rows: list[dict[str, Any]], transaction_id: str) -> dict[str, Any]:
        for row in rows:
            if row["id"] == transaction_id:
                return row
        raise not_found("Transaction not found")

    def _update(self, user_id: str, transaction_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        rows = self.list_all(user_id)
        txn = self._find(rows, transaction_id)
        txn.update(changes)
        txn["updatedAt"] = utc_now_iso()
        self.save_all(user_id, rows)
        return txn

    def update_category(self, user_id: str, transaction_id: str, category_id: str) -> dict[str, Any]:
        return self._update(user_id, transaction_id, {"userCategoryId": category_id})

    def replace_tags(self, user_id: str, transaction_id: str, tags: list[str]) -> dict[str, Any]:
        return self._update(user_id, transaction_id, {"tags": list(dict.fromkeys(tags))})

    def update_description(self, user_id: str, transaction_id: str, description: str | None) -> dict[str, Any]:
        return self._update(user_id, transaction_id, {"userDescription": (description or "").strip() or None})

    def set_hidden(self, user_id: str, transaction_id: str, hidden: bool) -> dict[str, Any]:
        return self._update(user_id, transaction_id, {"isHidden": hidden})

    def update_notes(self, user_id: str, transaction_id: str, notes: str | None) -> dict[str, Any]:
        return self._update(user_id, transaction_id, {"notes": notes or None})

    def split_transaction(self, user_id: str, transaction_id: str, splits: list[SplitItem]) -> list[dict[str, Any]]:
        rows = self.list_all(user_id)
        original = self._find(rows, transaction_id)
        if original.get("isSplit"):
            raise validation_error("Transaction is already split")
        total = sum(split.amount for split in splits)
        if abs(total - abs(original["amount"])) > SPLIT_TOLERANCE:
            raise validation_error("Split amounts must equal original transaction amount")

        now = utc_now_iso()
        sign = 1 if original["amount"] > 0 else -1
        children: list[dict[str, Any]] = []
        for index, split in enumerate(splits, start=1):
            child = {
                **original,
                "id": str(uuid4()),
                "plaidTransactionId": None,
                "amount": round(sign * split.amount, 2),
                "name": split.description or f"{original['name']} (Split {index})",
                "userDescription": split.description or None,
                "categoryId": split.categoryId,
                "userCategoryId": split.categoryId,
                "tags": list(split.tags),
                "notes": split.description or None,
                "isHidden": False,
                "isSplit": False,
                "parentTransactionId": original["id"],
                "splitTransactionIds": [],
                "createdAt": now,
                "updatedAt": now,
            }
            children.append(child)
        rows.extend(children)
        original.update(
            {
                "isSplit": True,
                "isHidden": True,
                "splitTransactionIds": [c["id"] for c in children],
                "updatedAt": now,
            }
        )
        self.save_all(user_id, rows)
        return children

    def monthly_summary(self, user_id: str, on: date | None = None) -> dict[str, Any]:
        month = month_of(on or today())
        start, end = month_bounds(month)
        result = self.get_transactions(user_id, TransactionFilter(startDate=start, endDate=end))
        income = sum(-t["amount"] for t in result.transactions if t["amount"] < 0)
        expenses = sum(t["amount"] for t in result.transactions if t["amount"] >= 0)
        return {
            "month": month,
            "totalIncome": round(income, 2),
            "totalExpenses": round(expenses, 2),
            "netIncome": round(income - expenses, 2),
            "transactionCount": result.total_count,
        }

    def _decrypt_token(self, encrypted: str) -> str:
        try:
            return self.encryption.decrypt(encrypted)
        except EncryptionError as exc:
            if encrypted.startswith("access-"):
                raise EncryptionError("Invalid access token format. Please reconnect your bank account.") from exc
            raise EncryptionError("Failed to decrypt access token. Please reconnect your bank account.") from exc

    def sync_transactions(
        self,
        user_id: str,
        accounts: list[dict[str, Any]],
        start_date: str = DEFAULT_SYNC_START,
        end_date: str | None = None,
    ) -> SyncStats:
        if self.plaid is None:
            raise ApiError(ErrorKind.internal, "Plaid client is not configured")
        end_date = end_date or today().isoformat()
        groups: dict[str, list[dict[str, Any]]] = {}
        for account in accounts:
            groups.setdefault(account["plaidAccessToken"], []).append(account)

        rows = self.list_all(user_id)
        stats = SyncStats()
        for encrypted_token, group in groups.items():
            names = [a.get("nickname") or a["accountName"] for a in group]
            try:
                access_token = self._decrypt_token(encrypted_token)
            except EncryptionError as exc:
                logger.warning("skipping %d accounts for user %s: %s", len(group), user_id, exc)
                stats.failed_accounts.extend(names)
                stats.reauth_account_ids.extend(a["id"] for a in group)
                continue
            logger.info("syncing transactions for %d accounts from %s to %s", len(group), start_date, end_date)
            try:
                plaid_rows = self.plaid.get_transactions(access_token, start_date, end_date)
            except PlaidError as exc:
                logger.error("Plaid transaction fetch failed (%s): %s", exc.error_code, exc.message)
                stats.failed_accounts.extend(names)
                if exc.requires_reauth:
                    stats.reauth_account_ids.extend(a["id"] for a in group)
                continue
            group_stats = merge_plaid_transactions(user_id, rows, group, plaid_rows)
            logger.info(
                "sync complete: %d added, %d modified, %d removed",
                group_stats.added,
                group_stats.modified,
                group_stats.removed,
            )
            group_stats.synced_items = 1
            stats.merge(group_stats)

        self.save_all(user_id, rows)
        return stats
