from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from ..dates import utc_now_iso
from ..encryption import EncryptionError, EncryptionService, get_encryption_service
from ..errors import ApiError, ErrorKind, not_found
from ..persistence import DataStore
from ..plaid_client import PlaidClientProtocol, PlaidError

logger = logging.getLogger(__name__)

ACCOUNTS = "accounts"


def public_account(account: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in account.items() if k != "plaidAccessToken"}


def plaid_api_error(exc: PlaidError) -> ApiError:
    return ApiError(
        ErrorKind.upstream,
        exc.display_message or exc.message,
        [{"errorType": exc.error_type, "errorCode": exc.error_code, "requiresReauth": exc.requires_reauth}],
    )


class AccountService:
    def __init__(
        self,
        store: DataStore,
        plaid: PlaidClientProtocol,
        encryption: EncryptionService | None = None,
    ) -> None:
        self.store = store
        self.plaid = plaid
        self.encryption = encryption or get_encryption_service()

    def _load(self, user_id: str) -> list[dict[str, Any]]:
        return self.store.get_list(ACCOUNTS, user_id)

    def _save(self, user_id: str, accounts: list[dict[str, Any]]) -> None:
        self.store.save_list(ACCOUNTS, user_id, accounts)

    def list_accounts(self, user_id: str) -> list[dict[str, Any]]:
        return [a for a in self._load(user_id) if a.get("status") != "inactive"]

    def get_account(self, user_id: str, account_id: str) -> dict[str, Any] | None:
        return next((a for a in self.list_accounts(user_id) if a["id"] == account_id), None)

    def connect(self, user_id: str, public_token: str, institution_id: str, institution_name: str) -> list[dict[str, Any]]:
        try:
            exchanged = self.plaid.exchange_public_token(public_token)
            plaid_accounts = self.plaid.get_accounts(exchanged["accessToken"])
        except PlaidError as exc:
            logger.error("account connection failed for user %s: %s", user_id, exc.error_code)
            raise plaid_api_error(exc) from exc

        encrypted = self.encryption.encrypt(exchanged["accessToken"])
        now = utc_now_iso()
        accounts = self._load(user_id)
        created = []
        for plaid_account in plaid_accounts:
            account = {
                "id": str(uuid4()),
                "userId": user_id,
                "plaidItemId": exchanged["itemId"],
                "plaidAccountId": plaid_account["plaidAccountId"],
                "plaidAccessToken": encrypted,
                "institutionId": institution_id,
                "institutionName": institution_name,
                "accountName": plaid_account["name"],
                "officialName": plaid_account.get("officialName"),
                "nickname": None,
                "type": plaid_account.get("type") or "other",
                "subtype": plaid_account.get("subtype"),
                "mask": plaid_account.get("mask"),
                "currentBalance": plaid_account.get("currentBalance"),
                "availableBalance": plaid_account.get("availableBalance"),
                "creditLimit": plaid_account.get("creditLimit"),
                "currency": plaid_account.get("currency") or "USD",
                "status": "active",
                "lastSynced": now,
                "createdAt": now,
                "updatedAt": now,
            }
            accounts.append(account)
            created.append(account)
        self._save(user_id, accounts)
        logger.info("connected %d accounts from %s for user %s", len(created), institution_name or "unknown", user_id)
        return created

    def sync_balances(self, user_id: str) -> int:
        accounts = self._load(user_id)
        groups: dict[str, list[dict[str, Any]]] = {}
        for account in accounts:
            if account.get("status") != "inactive":
                groups.setdefault(account["plaidAccessToken"], []).append(account)

        updated = 0
        now = utc_now_iso()
        for encrypted_token, group in groups.items():
            try:
                plaid_accounts = self.plaid.get_accounts(self.encryption.decrypt(encrypted_token))
            except EncryptionError as exc:
                logger.warning("cannot decrypt access token for %d accounts: %s", len(group), exc)
                continue
            except PlaidError as exc:
                logger.warning("balance refresh failed (%s)", exc.error_code)
                if exc.requires_reauth:
                    for account in group:
                        account["status"] = "requires_reauth"
                        account["updatedAt"] = now
                continue
            by_plaid_id = {a["plaidAccountId"]: a for a in group}
            for plaid_account in plaid_accounts:
                stored = by_plaid_id.get(plaid_account["plaidAccountId"])
                if stored is None:
                    continue
                stored.update(
                    {
                        "currentBalance": plaid_account.get("currentBalance"),
                        "availableBalance": plaid_account.get("availableBalance"),
                        "creditLimit": plaid_account.get("creditLimit"),
                        "status": "active",
                        "lastSynced": now,
                        "updatedAt": now,
                    }
                )
                updated += 1
        self._save(user_id, accounts)
        return updated

    def update_nickname(self, user_id: str, account_id: str, nickname: str | None) -> dict[str, Any]:
        accounts = self._load(user_id)
        account = next((a for a in accounts if a["id"] == account_id and a.get("status") != "inactive"), None)
        if account is None:
            raise not_found("Account not found")
        account["nickname"] = nickname
        account["updatedAt"] = utc_now_iso()
        self._save(user_id, accounts)
        return account

    def disconnect(self, user_id: str, account_id: str) -> None:
        accounts = self._load(user_id)
        account = next((a for a in accounts if a["id"] == account_id and a.get("status") != "inactive"), None)
        if account is None:
            raise not_found("Account not found")
        try:
            self.plaid.remove_item(self.encryption.decrypt(account["plaidAccessToken"]))
        except (PlaidError, EncryptionError) as exc:
            logger.error("failed to remove Plaid item %s: %s", account.get("plaidItemId"), exc)
        account["status"] = "inactive"
        account["updatedAt"] = utc_now_iso()
        self._save(user_id, accounts)
        logger.info("disconnected account %s for user %s", account_id, user_id)

    def mark_requires_reauth(self, user_id: str, account_ids: list[str]) -> None:
        if not account_ids:
            return
        wanted = set(account_ids)
        accounts = self._load(user_id)
        now = utc_now_iso()
        for account in accounts:
            if account["id"] in wanted:
                account["status"] = "requires_reauth"
                account["updatedAt"] = now
        self._save(user_id, accounts)
