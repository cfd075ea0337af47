"""Thin JSON client for the Plaid REST API.

Only the endpoints the app needs are wrapped. Responses are normalized into
camelCase dicts so the services never see Plaid's wire field names.
"""

import logging
from typing import Any, Optional, Protocol

import requests

from .config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

PLAID_HOSTS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}
TRANSACTIONS_PAGE_SIZE = 500
DAYS_REQUESTED = 730
REAUTH_CODES = {"ITEM_LOGIN_REQUIRED", "INVALID_ACCESS_TOKEN", "ITEM_LOCKED", "PENDING_EXPIRATION"}


class PlaidError(Exception):
    def __init__(
        self,
        message: str,
        error_type: str = "API_ERROR",
        error_code: str = "UNKNOWN",
        display_message: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.error_code = error_code
        self.display_message = display_message

    @property
    def requires_reauth(self) -> bool:
        return self.error_code in REAUTH_CODES


class PlaidClientProtocol(Protocol):
    def create_link_token(self, user_id: str) -> dict[str, Any]:
        ...

    def exchange_public_token(self, public_token: str) -> dict[str, str]:
        ...

    def get_accounts(self, access_token: str) -> list[dict[str, Any]]:
        ...

    def get_transactions(self, access_token: str, start_date: str, end_date: str) -> list[dict[str, Any]]:
        ...

    def remove_item(self, access_token: str) -> None:
        ...


def _normalize_account(raw: dict[str, Any]) -> dict[str, Any]:
    balances = raw.get("balances") or {}
    return {
        "plaidAccountId": raw["account_id"],
        "name": raw.get("name") or "",
        "officialName": raw.get("official_name"),
        "type": raw.get("type") or "other",
        "subtype": raw.get("subtype"),
        "mask": raw.get("mask"),
        "currentBalance": balances.get("current"),
        "availableBalance": balances.get("available"),
        "creditLimit": balances.get("limit"),
        "currency": balances.get("iso_currency_code") or "USD",
    }


def _normalize_transaction(raw: dict[str, Any]) -> dict[str, Any]:
    location = raw.get("location") or None
    if location:
        location = {
            "address": location.get("address"),
            "city": location.get("city"),
            "region": location.get("region"),
            "postalCode": location.get("postal_code"),
            "country": location.get("country"),
        }
    return {
        "plaidTransactionId": raw["transaction_id"],
        "accountId": raw["account_id"],
        "amount": raw["amount"],
        "date": raw["date"],
        "name": raw.get("name") or "",
        "merchantName": raw.get("merchant_name"),
        "category": raw.get("category"),
        "categoryId": raw.get("category_id"),
        "pending": bool(raw.get("pending")),
        "isoCurrencyCode": raw.get("iso_currency_code"),
        "location": location,
    }


class PlaidClient:
    def __init__(self, config: Settings | None = None, session: requests.Session | None = None, timeout: float = 30.0) -> None:
        self.config = config or default_settings
        self.base_url = PLAID_HOSTS.get(self.config.plaid_env, PLAID_HOSTS["sandbox"])
        self.session = session or requests.Session()
        self.timeout = timeout
        logger.info("Plaid client initialized for %s environment", self.config.plaid_env)

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        body = {"client_id": self.config.plaid_client_id, "secret": self.config.plaid_secret, **payload}
        try:
            response = self.session.post(f"{self.base_url}{path}", json=body, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            logger.error("Plaid request %s failed: %s", path, exc)
            raise PlaidError(f"Plaid request failed: {exc.__class__.__name__}") from exc
        try:
            data = response.json() if response.content else {}
        except ValueError:
            if response.status_code < 400:
                raise PlaidError(f"Plaid returned a non-JSON response for {path}") from None
            data = {}
        if response.status_code >= 400:
            logger.warning("Plaid %s returned %s: %s", path, response.status_code, data.get("error_code"))
            raise PlaidError(
                data.get("error_message") or f"Plaid request failed with status {response.status_code}",
                error_type=data.get("error_type", "API_ERROR"),
                error_code=data.get("error_code", "UNKNOWN"),
                display_message=data.get("display_message"),
            )
        return data

    def create_link_token(self, user_id: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "user": {"client_user_id": user_id},
            "client_name": self.config.app_name,
            "products": [p.strip() for p in self.config.plaid_products.split(",") if p.strip()],
            "country_codes": [c.strip() for c in self.config.plaid_country_codes.split(",") if c.strip()],
            "language": "en",
            "transactions": {"days_requested": DAYS_REQUESTED},
        }
        if self.config.plaid_redirect_uri:
            payload["redirect_uri"] = self.config.plaid_redirect_uri
        data = self._post("/link/token/create", payload)
        return {"linkToken": data["link_token"], "expiration": data.get("expiration")}

    def exchange_public_token(self, public_token: str) -> dict[str, str]:
        data = self._post("/item/public_token/exchange", {"public_token": public_token})
        return {"accessToken": data["access_token"], "itemId": data["item_id"]}

    def get_accounts(self, access_token: str) -> list[dict[str, Any]]:
        data = self._post("/accounts/get", {"access_token": access_token})
        return [_normalize_account(raw) for raw in data.get("accounts", [])]

    def get_transactions(self, access_token: str, start_date: str, end_date: str) -> list[dict[str, Any]]:
        transactions: list[dict[str, Any]] = []
        offset = 0
        while True:
            data = self._post(
                "/transactions/get",
                {
                    "access_token": access_token,
                    "start_date": start_date,
                    "end_date": end_date,
                    "options": {"count": TRANSACTIONS_PAGE_SIZE, "offset": offset},
                },
            )
            page = data.get("transactions", [])
            transactions.extend(_normalize_transaction(raw) for raw in page)
            offset += len(page)
            if not page or offset >= data.get("total_transactions", 0):
                break
        return transactions

    def remove_item(self, access_token: str) -> None:
        self._post("/item/remove", {"access_token": access_token})
