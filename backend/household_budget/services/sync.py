from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from ..dates import utc_now_iso


@dataclass
class SyncStats:
    added: int = 0
    modified: int = 0
    removed: int = 0
    synced_items: int = 0
    failed_accounts: list[str] = field(default_factory=list)
    reauth_account_ids: list[str] = field(default_factory=list)

    def merge(self, other: "SyncStats") -> None:
        self.added += other.added
        self.modified += other.modified
        self.removed += other.removed
        self.synced_items += other.synced_items
        self.failed_accounts.extend(other.failed_accounts)
        self.reauth_account_ids.extend(other.reauth_account_ids)

    @property
    def all_failed(self) -> bool:
        return bool(self.failed_accounts) and self.synced_items == 0


def new_transaction(user_id: str, account_id: str, plaid_txn: dict[str, Any]) -> dict[str, Any]:
    now = utc_now_iso()
    return {
        "id": str(uuid4()),
        "userId": user_id,
        "accountId": account_id,
        "plaidTransactionId": plaid_txn["plaidTransactionId"],
        "plaidAccountId": plaid_txn["accountId"],
        "amount": plaid_txn["amount"],
        "date": plaid_txn["date"],
        "name": plaid_txn.get("name") or "",
        "userDescription": None,
        "merchantName": plaid_txn.get("merchantName"),
        "category": plaid_txn.get("category"),
        "plaidCategoryId": plaid_txn.get("categoryId"),
        "categoryId": None,
        "userCategoryId": None,
        "status": "pending" if plaid_txn.get("pending") else "posted",
        "pending": bool(plaid_txn.get("pending")),
        "isoCurrencyCode": plaid_txn.get("isoCurrencyCode"),
        "tags": [],
        "notes": None,
        "isHidden": False,
        "isSplit": False,
        "parentTransactionId": None,
        "splitTransactionIds": [],
        "location": plaid_txn.get("location"),
        "createdAt": now,
        "updatedAt": now,
    }


def apply_plaid_update(existing: dict[str, Any], plaid_txn: dict[str, Any]) -> bool:
    changed = False
    if existing["amount"] != plaid_txn["amount"]:
        existing["amount"] = plaid_txn["amount"]
        changed = True
    pending = bool(plaid_txn.get("pending"))
    if existing.get("pending") != pending:
        existing["pending"] = pending
        existing["status"] = "pending" if pending else "posted"
        changed = True
    for key in ("name", "merchantName"):
        if existing.get(key) != plaid_txn.get(key):
            existing[key] = plaid_txn.get(key)
            changed = True
    if existing.get("status") == "removed":
        existing["status"] = "pending" if pending else "posted"
        changed = True
    if changed:
        existing["updatedAt"] = utc_now_iso()
    return changed


def merge_plaid_transactions(
    user_id: str,
    existing: list[dict[str, Any]],
    accounts: list[dict[str, Any]],
    plaid_transactions: list[dict[str, Any]],
) -> SyncStats:
    """Fold one Plaid item's transactions into ``existing`` in place."""
    stats = SyncStats()
    by_plaid_id = {t["plaidTransactionId"]: t for t in existing if t.get("plaidTransactionId")}
    account_by_plaid_id = {a["plaidAccountId"]: a for a in accounts}
    seen: set[str] = set()

    for plaid_txn in plaid_transactions:
        seen.add(plaid_txn["plaidTransactionId"])
        account = account_by_plaid_id.get(plaid_txn["accountId"])
        if account is None:
            continue
        current = by_plaid_id.get(plaid_txn["plaidTransactionId"])
        if current is None:
            created = new_transaction(user_id, account["id"], plaid_txn)
            existing.append(created)
            by_plaid_id[created["plaidTransactionId"]] = created
            stats.added += 1
        elif apply_plaid_update(current, plaid_txn):
            stats.modified += 1

    synced_account_ids = {a["id"] for a in accounts}
    for txn in existing:
        if (
            txn["accountId"] in synced_account_ids
            and txn.get("plaidTransactionId")
            and txn["plaidTransactionId"] not in seen
            and txn.get("status") != "removed"
        ):
            txn["status"] = "removed"
            txn["updatedAt"] = utc_now_iso()
            stats.removed += 1
    return stats
