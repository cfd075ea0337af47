import pytest

from conftest import make_txn
from household_budget.errors import ApiError
from household_budget.schemas import TransactionFilter
from household_budget.services.transactions import TRANSACTIONS, filter_transactions


def _ids(result) -> list[str]:
    return [t["id"] for t in result.transactions]


@pytest.fixture
def rows() -> list[dict]:
    return [
        make_txn(id="salary", amount=-2500.0, date="2025-03-01", name="ACME PAYROLL", categoryId="income"),
        make_txn(id="coffee", amount=4.5, date="2025-03-02", name="Blue Bottle", merchantName="Blue Bottle Coffee"),
        make_txn(id="groceries", amount=82.4, date="2025-03-05", name="WHOLE FOODS", categoryId="food", tags=["weekly"]),
        make_txn(id="refund", amount=-75.0, date="2025-03-07", name="Cashback", userCategoryId="food"),
        make_txn(id="zero", amount=0.0, date="2025-03-08", name="Card verification"),
        make_txn(id="hidden", amount=20.0, date="2025-03-09", name="Transfer", isHidden=True),
        make_txn(id="pending", amount=15.0, date="2025-03-10", name="Lyft", pending=True, status="pending"),
        make_txn(id="removed", amount=9.0, date="2025-03-11", name="Gone", status="removed"),
        make_txn(id="other-account", amount=30.0, date="2025-02-20", name="Gas", accountId="acc-2"),
    ]


def test_default_filter_drops_removed_pending_and_hidden(rows) -> None:
    result = filter_transactions(rows, TransactionFilter())
    assert set(_ids(result)) == {"salary", "coffee", "groceries", "refund", "zero", "other-account"}
    assert result.total_count == 6
    assert result.unfiltered_total == 6


def test_results_sorted_by_date_descending(rows) -> None:
    result = filter_transactions(rows, TransactionFilter(includePending=True))
    dates = [t["date"] for t in result.transactions]
    assert dates == sorted(dates, reverse=True)
    assert result.transactions[0]["id"] == "pending"


def test_income_keeps_negative_amounts_only(rows) -> None:
    result = filter_transactions(rows, TransactionFilter(transactionType="income"))
    assert set(_ids(result)) == {"salary", "refund"}


def test_expense_includes_zero_amount(rows) -> None:
    result = filter_transactions(rows, TransactionFilter(transactionType="expense"))
    assert set(_ids(result)) == {"coffee", "groceries", "zero", "other-account"}


def test_all_type_is_same_as_absent(rows) -> None:
    everything = filter_transactions(rows, TransactionFilter(transactionType="all"))
    default = filter_transactions(rows, TransactionFilter())
    assert _ids(everything) == _ids(default)


def test_invalid_transaction_type_is_validation_error(rows) -> None:
    with pytest.raises(ApiError) as exc_info:
        filter_transactions(rows, TransactionFilter(transactionType="refunds"))
    assert exc_info.value.status_code == 400
    assert exc_info.value.message.startswith("Invalid transactionType 'refunds'")


def test_min_amount_combined_with_income(rows) -> None:
    result = filter_transactions(rows, TransactionFilter(transactionType="income", minAmount=100))
    assert _ids(result) == ["salary"]


def test_type_and_min_amount_over_mixed_amounts() -> None:
    mixed = [make_txn(amount=amount) for amount in (-2500, -150, -75, 150, 65.50, 1200)]
    assert filter_transactions(mixed, TransactionFilter(transactionType="income")).total_count == 3
    assert filter_transactions(mixed, TransactionFilter(transactionType="expense")).total_count == 3
    result = filter_transactions(mixed, TransactionFilter(transactionType="income", minAmount=100))
    assert sorted(t["amount"] for t in result.transactions) == [-2500, -150]


def test_type_combined_with_date_range(rows) -> None:
    income = filter_transactions(rows, TransactionFilter(transactionType="income", startDate="2025-03-02"))
    assert _ids(income) == ["refund"]
    expense = filter_transactions(rows, TransactionFilter(transactionType="expense", endDate="2025-03-02"))
    assert _ids(expense) == ["coffee", "other-account"]


def test_type_combined_with_search(rows) -> None:
    assert filter_transactions(rows, TransactionFilter(transactionType="income", searchQuery="blue")).total_count == 0
    assert _ids(filter_transactions(rows, TransactionFilter(transactionType="expense", searchQuery="blue"))) == ["coffee"]
    assert _ids(filter_transactions(rows, TransactionFilter(transactionType="income", searchQuery="cashback"))) == [
        "refund"
    ]


@pytest.mark.parametrize(
    "flt",
    [
        TransactionFilter(),
        TransactionFilter(transactionType="income"),
        TransactionFilter(transactionType="expense", searchQuery="blue"),
        TransactionFilter(categoryIds=["food"], minAmount=50),
        TransactionFilter(tags=["weekly"], includeHidden=True),
        TransactionFilter(onlyUncategorized=True, startDate="2025-03-01", endDate="2025-03-31"),
        TransactionFilter(exactAmount=4.5, includePending=True),
    ],
)
def test_unfiltered_total_never_below_total_count(rows, flt) -> None:
    result = filter_transactions(rows, flt)
    assert result.unfiltered_total >= result.total_count


def test_exact_amount_uses_tolerance(rows) -> None:
    result = filter_transactions(rows, TransactionFilter(exactAmount=82.0))
    assert _ids(result) == ["groceries"]
    result = filter_transactions(rows, TransactionFilter(exactAmount=82.0, amountTolerance=0.1))
    assert result.total_count == 0


def test_exact_amount_ignores_min_and_max(rows) -> None:
    result = filter_transactions(rows, TransactionFilter(exactAmount=75, minAmount=1000, maxAmount=1))
    assert _ids(result) == ["refund"]


def test_category_filter_uses_effective_category(rows) -> None:
    result = filter_transactions(rows, TransactionFilter(categoryIds=["food"]))
    assert set(_ids(result)) == {"groceries", "refund"}


def test_only_uncategorized(rows) -> None:
    result = filter_transactions(rows, TransactionFilter(onlyUncategorized=True))
    assert set(_ids(result)) == {"coffee", "zero", "other-account"}


def test_tags_match_any(rows) -> None:
    result = filter_transactions(rows, TransactionFilter(tags=["weekly", "nope"]))
    assert _ids(result) == ["groceries"]


def test_search_covers_name_merchant_tags_and_notes(rows) -> None:
    rows[4]["notes"] = "Bank checked the card"
    assert _ids(filter_transactions(rows, TransactionFilter(searchQuery="coffee"))) == ["coffee"]
    assert _ids(filter_transactions(rows, TransactionFilter(searchQuery="WEEKLY"))) == ["groceries"]
    assert _ids(filter_transactions(rows, TransactionFilter(searchQuery="checked"))) == ["zero"]


def test_search_does_not_match_user_description(rows) -> None:
    rows[1]["userDescription"] = "morning latte"
    result = filter_transactions(rows, TransactionFilter(searchQuery="latte"))
    assert result.total_count == 0


def test_unfiltered_total_ignores_later_filters(rows) -> None:
    result = filter_transactions(
        rows, TransactionFilter(startDate="2025-03-01", endDate="2025-03-31", searchQuery="payroll")
    )
    assert result.total_count == 1
    assert result.unfiltered_total == 5


def test_unfiltered_total_counts_hidden_when_included(rows) -> None:
    result = filter_transactions(rows, TransactionFilter(includeHidden=True, accountIds=["acc-1"]))
    assert result.unfiltered_total == 6
    assert "hidden" in _ids(result)


def test_account_filter(rows) -> None:
    result = filter_transactions(rows, TransactionFilter(accountIds=["acc-2"]))
    assert _ids(result) == ["other-account"]


def test_list_endpoint_returns_counts(client, auth_headers, store, user_id, rows) -> None:
    store.save_list(TRANSACTIONS, user_id, rows)
    res = client.get("/api/v1/transactions", params={"transactionType": "expense"}, headers=auth_headers)
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["totalCount"] == 4
    assert body["unfilteredTotal"] == 6
    assert [t["id"] for t in body["transactions"]][0] == "zero"


def test_list_endpoint_accepts_bracket_list_params(client, auth_headers, store, user_id, rows) -> None:
    store.save_list(TRANSACTIONS, user_id, rows)
    res = client.get("/api/v1/transactions?accountIds[]=acc-2", headers=auth_headers)
    assert res.status_code == 200
    assert [t["id"] for t in res.json()["transactions"]] == ["other-account"]
    res = client.get("/api/v1/transactions?categoryIds=food&categoryIds=income", headers=auth_headers)
    assert {t["id"] for t in res.json()["transactions"]} == {"salary", "groceries", "refund"}


def test_list_endpoint_rejects_unknown_type(client, auth_headers) -> None:
    res = client.get("/api/v1/transactions", params={"transactionType": "bogus"}, headers=auth_headers)
    assert res.status_code == 400
    assert res.json()["success"] is False
    assert "Invalid transactionType" in res.json()["error"]


def test_list_endpoint_rejects_bad_date(client, auth_headers) -> None:
    res = client.get("/api/v1/transactions", params={"startDate": "03/01/2025"}, headers=auth_headers)
    assert res.status_code == 400
    assert res.json()["error"] == "Invalid request data"


def test_list_requires_token(client) -> None:
    res = client.get("/api/v1/transactions")
    assert res.status_code == 401
    assert res.json() == {"success": False, "error": "No token provided"}
