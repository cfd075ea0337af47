from datetime import date

from conftest import make_txn
from household_budget.schemas import SplitItem
from household_budget.services.transactions import TRANSACTIONS, TransactionService


def _seed(store, user_id, *rows):
    store.save_list(TRANSACTIONS, user_id, list(rows))


def _stored(store, user_id, txn_id):
    return next(t for t in store.get_list(TRANSACTIONS, user_id) if t["id"] == txn_id)


def test_category_override_sets_user_category(client, auth_headers, store, user_id) -> None:
    _seed(store, user_id, make_txn(id="t1", categoryId="plaid-food"))
    res = client.put("/api/v1/transactions/t1/category", json={"categoryId": "dining"}, headers=auth_headers)
    assert res.status_code == 200
    stored = _stored(store, user_id, "t1")
    assert stored["userCategoryId"] == "dining"
    assert stored["categoryId"] == "plaid-food"


def test_unknown_transaction_is_404(client, auth_headers) -> None:
    res = client.put("/api/v1/transactions/missing/hidden", json={"isHidden": True}, headers=auth_headers)
    assert res.status_code == 404
    assert res.json()["error"] == "Transaction not found"


def test_tags_description_notes_and_hidden(client, auth_headers, store, user_id) -> None:
    _seed(store, user_id, make_txn(id="t1"))
    assert client.post("/api/v1/transactions/t1/tags", json={"tags": ["trip", "trip", "work"]}, headers=auth_headers).status_code == 200
    assert client.put("/api/v1/transactions/t1/description", json={"description": "  Team lunch "}, headers=auth_headers).status_code == 200
    assert client.put("/api/v1/transactions/t1/notes", json={"notes": "expense it"}, headers=auth_headers).status_code == 200
    assert client.put("/api/v1/transactions/t1/hidden", json={"isHidden": True}, headers=auth_headers).status_code == 200
    stored = _stored(store, user_id, "t1")
    assert stored["tags"] == ["trip", "work"]
    assert stored["userDescription"] == "Team lunch"
    assert stored["notes"] == "expense it"
    assert stored["isHidden"] is True


def test_split_creates_children_and_hides_parent(client, auth_headers, store, user_id) -> None:
    _seed(store, user_id, make_txn(id="t1", amount=100.0, name="Costco"))
    res = client.post(
        "/api/v1/transactions/t1/split",
        json={"splits": [{"amount": 60, "categoryId": "groceries"}, {"amount": 40, "categoryId": "household"}]},
        headers=auth_headers,
    )
    assert res.status_code == 200
    children = res.json()["transactions"]
    assert [c["amount"] for c in children] == [60.0, 40.0]
    assert all(c["parentTransactionId"] == "t1" for c in children)
    assert children[0]["name"] == "Costco (Split 1)"
    parent = _stored(store, user_id, "t1")
    assert parent["isSplit"] is True
    assert parent["isHidden"] is True
    assert parent["splitTransactionIds"] == [c["id"] for c in children]


def test_split_keeps_income_sign(store) -> None:
    store.save_list(TRANSACTIONS, "u1", [make_txn(id="t1", amount=-50.0)])
    children = TransactionService(store).split_transaction("u1", "t1", [SplitItem(amount=20), SplitItem(amount=30)])
    assert [c["amount"] for c in children] == [-20.0, -30.0]


def test_split_amounts_must_match(client, auth_headers, store, user_id) -> None:
    _seed(store, user_id, make_txn(id="t1", amount=100.0))
    res = client.post(
        "/api/v1/transactions/t1/split",
        json={"splits": [{"amount": 60}, {"amount": 30}]},
        headers=auth_headers,
    )
    assert res.status_code == 400
    assert res.json()["error"] == "Split amounts must equal original transaction amount"


def test_split_twice_is_rejected(client, auth_headers, store, user_id) -> None:
    _seed(store, user_id, make_txn(id="t1", amount=10.0))
    body = {"splits": [{"amount": 5}, {"amount": 5}]}
    assert client.post("/api/v1/transactions/t1/split", json=body, headers=auth_headers).status_code == 200
    res = client.post("/api/v1/transactions/t1/split", json=body, headers=auth_headers)
    assert res.status_code == 400
    assert res.json()["error"] == "Transaction is already split"


def test_split_needs_two_parts(client, auth_headers, store, user_id) -> None:
    _seed(store, user_id, make_txn(id="t1", amount=10.0))
    res = client.post("/api/v1/transactions/t1/split", json={"splits": [{"amount": 10}]}, headers=auth_headers)
    assert res.status_code == 400
    assert res.json()["error"] == "Invalid request data"


def test_monthly_summary(store) -> None:
    store.save_list(
        TRANSACTIONS,
        "u1",
        [
            make_txn(amount=-1000.0, date="2025-04-01"),
            make_txn(amount=250.0, date="2025-04-10"),
            make_txn(amount=50.0, date="2025-04-20", pending=True),
            make_txn(amount=75.0, date="2025-03-31"),
        ],
    )
    summary = TransactionService(store).monthly_summary("u1", on=date(2025, 4, 15))
    assert summary == {
        "month": "2025-04",
        "totalIncome": 1000.0,
        "totalExpenses": 250.0,
        "netIncome": 750.0,
        "transactionCount": 2,
    }
