import copy
from typing import Any
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from household_budget.main import create_app
from household_budget.persistence import InMemoryDataStore
from household_budget.plaid_client import PlaidError

PASSWORD = "correct horse battery staple"


class FakePlaidClient:
    def __init__(self) -> None:
        self.accounts: list[dict[str, Any]] = [
            {
                "plaidAccountId": "plaid-acc-1",
                "name": "Everyday Checking",
                "officialName": "Everyday Checking Account",
                "type": "depository",
                "subtype": "checking",
                "mask": "0000",
                "currentBalance": 1200.0,
                "availableBalance": 1100.0,
                "creditLimit": None,
                "currency": "USD",
            }
        ]
        self.transactions: list[dict[str, Any]] = []
        self.failures: dict[str, PlaidError] = {}
        self.removed_tokens: list[str] = []
        self.transaction_calls: list[tuple[str, str, str]] = []

    def _maybe_fail(self, method: str) -> None:
        if method in self.failures:
            raise self.failures[method]

    def create_link_token(self, user_id: str) -> dict[str, Any]:
        self._maybe_fail("create_link_token")
        return {"linkToken": f"link-sandbox-{user_id[:8]}", "expiration": "2030-01-01T00:00:00Z"}

    def exchange_public_token(self, public_token: str) -> dict[str, str]:
        self._maybe_fail("exchange_public_token")
        return {"accessToken": f"access-sandbox-{public_token}", "itemId": "item-1"}

    def get_accounts(self, access_token: str) -> list[dict[str, Any]]:
        self._maybe_fail("get_accounts")
        return copy.deepcopy(self.accounts)

    def get_transactions(self, access_token: str, start_date: str, end_date: str) -> list[dict[str, Any]]:
        self._maybe_fail("get_transactions")
        self.transaction_calls.append((access_token, start_date, end_date))
        return copy.deepcopy(self.transactions)

    def remove_item(self, access_token: str) -> None:
        self._maybe_fail("remove_item")
        self.removed_tokens.append(access_token)


def make_txn(**fields: Any) -> dict[str, Any]:
    txn = {
        "id": str(uuid4()),
        "userId": "user",
        "accountId": "acc-1",
        "plaidTransactionId": None,
        "plaidAccountId": None,
        "amount": 10.0,
        "date": "2025-03-15",
        "name": "Purchase",
        "userDescription": None,
        "merchantName": None,
        "category": None,
        "plaidCategoryId": None,
        "categoryId": None,
        "userCategoryId": None,
        "status": "posted",
        "pending": False,
        "isoCurrencyCode": "USD",
        "tags": [],
        "notes": None,
        "isHidden": False,
        "isSplit": False,
        "parentTransactionId": None,
        "splitTransactionIds": [],
        "location": None,
        "createdAt": "2025-03-15T00:00:00+00:00",
        "updatedAt": "2025-03-15T00:00:00+00:00",
    }
    txn.update(fields)
    return txn


@pytest.fixture
def store() -> InMemoryDataStore:
    return InMemoryDataStore()


@pytest.fixture
def plaid() -> FakePlaidClient:
    return FakePlaidClient()


@pytest.fixture
def client(store: InMemoryDataStore, plaid: FakePlaidClient) -> TestClient:
    return TestClient(create_app(store=store, plaid_client=plaid))


@pytest.fixture
def auth_headers(client: TestClient) -> dict[str, str]:
    res = client.post("/api/v1/auth/register", json={"username": "tester", "password": PASSWORD})
    assert res.status_code == 201
    return {"Authorization": f"Bearer {res.json()['token']}"}


@pytest.fixture
def user_id(client: TestClient, auth_headers: dict[str, str]) -> str:
    return client.get("/api/v1/auth/verify", headers=auth_headers).json()["user"]["userId"]
