from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError

from ..deps import current_user_id, get_plaid, get_store
from ..errors import ApiError, ErrorKind, not_found, validation_error
from ..persistence import DataStore
from ..plaid_client import PlaidClientProtocol
from ..schemas import (
    SplitRequest,
    TransactionCategoryUpdate,
    TransactionDescriptionUpdate,
    TransactionFilter,
    TransactionHiddenUpdate,
    TransactionNotesUpdate,
    TransactionSyncRequest,
    TransactionTagsUpdate,
)
from ..services.accounts import AccountService
from ..services.transactions import DEFAULT_SYNC_START, TransactionService

router = APIRouter(prefix="/transactions", tags=["transactions"])


def _merge(*values: Optional[list[str]]) -> list[str]:
    return [item for value in values if value for item in value]


def build_filter(**fields: Any) -> TransactionFilter:
    try:
        return TransactionFilter(**{k: v for k, v in fields.items() if v is not None})
    except ValidationError as exc:
        details = [
            {"field": ".".join(str(p) for p in err["loc"]) or "query", "message": err["msg"]} for err in exc.errors()
        ]
        raise validation_error("Invalid request data", details) from None


@router.get("")
async def list_transactions(
    transactionType: Optional[str] = None,
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    accountIds: Optional[list[str]] = Query(default=None),
    accountIdsBracket: Optional[list[str]] = Query(default=None, alias="accountIds[]"),
    categoryIds: Optional[list[str]] = Query(default=None),
    categoryIdsBracket: Optional[list[str]] = Query(default=None, alias="categoryIds[]"),
    tags: Optional[list[str]] = Query(default=None),
    tagsBracket: Optional[list[str]] = Query(default=None, alias="tags[]"),
    onlyUncategorized: bool = False,
    minAmount: Optional[float] = None,
    maxAmount: Optional[float] = None,
    exactAmount: Optional[float] = None,
    amountTolerance: Optional[float] = None,
    includeHidden: bool = False,
    includePending: bool = False,
    searchQuery: Optional[str] = None,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    flt = build_filter(
        transactionType=transactionType,
        startDate=startDate,
        endDate=endDate,
        accountIds=_merge(accountIds, accountIdsBracket),
        categoryIds=_merge(categoryIds, categoryIdsBracket),
        tags=_merge(tags, tagsBracket),
        onlyUncategorized=onlyUncategorized,
        minAmount=minAmount,
        maxAmount=maxAmount,
        exactAmount=exactAmount,
        amountTolerance=amountTolerance,
        includeHidden=includeHidden,
        includePending=includePending,
        searchQuery=searchQuery,
    )
    result = TransactionService(store).get_transactions(user_id, flt)
    return {
        "success": True,
        "transactions": result.transactions,
        "totalCount": result.total_count,
        "unfilteredTotal": result.unfiltered_total,
    }


@router.get("/summary")
async def monthly_summary(user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)) -> dict[str, Any]:
    return {"success": True, "summary": TransactionService(store).monthly_summary(user_id)}


@router.post("/sync")
async def sync_transactions(
    payload: Optional[TransactionSyncRequest] = None,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
    plaid: PlaidClientProtocol = Depends(get_plaid),
) -> dict[str, Any]:
    accounts_service = AccountService(store, plaid)
    accounts = accounts_service.list_accounts(user_id)
    if not accounts:
        raise not_found("No accounts to sync")
    start_date = (payload.startDate if payload else None) or DEFAULT_SYNC_START
    stats = TransactionService(store, plaid).sync_transactions(user_id, accounts, start_date)
    accounts_service.mark_requires_reauth(user_id, stats.reauth_account_ids)
    if stats.all_failed:
        raise ApiError(ErrorKind.upstream, "All accounts need reconnection. Please reconnect your bank accounts.")
    accounts_service.sync_balances(user_id)

    response: dict[str, Any] = {
        "success": True,
        "added": stats.added,
        "modified": stats.modified,
        "removed": stats.removed,
    }
    if stats.failed_accounts:
        response["warning"] = (
            f"Some accounts need reconnection: {', '.join(stats.failed_accounts)}. "
            "Please reconnect these accounts to sync their transactions."
        )
    return response


@router.put("/{transaction_id}/category")
async def update_category(
    transaction_id: str,
    payload: TransactionCategoryUpdate,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    txn = TransactionService(store).update_category(user_id, transaction_id, payload.categoryId)
    return {"success": True, "transaction": txn}


@router.post("/{transaction_id}/tags")
async def update_tags(
    transaction_id: str,
    payload: TransactionTagsUpdate,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    txn = TransactionService(store).replace_tags(user_id, transaction_id, payload.tags)
    return {"success": True, "transaction": txn}


@router.put("/{transaction_id}/description")
async def update_description(
    transaction_id: str,
    payload: TransactionDescriptionUpdate,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    txn = TransactionService(store).update_description(user_id, transaction_id, payload.description)
    return {"success": True, "transaction": txn}


@router.put("/{transaction_id}/hidden")
async def update_hidden(
    transaction_id: str,
    payload: TransactionHiddenUpdate,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    txn = TransactionService(store).set_hidden(user_id, transaction_id, payload.isHidden)
    return {"success": True, "transaction": txn}


@router.put("/{transaction_id}/notes")
async def update_notes(
    transaction_id: str,
    payload: TransactionNotesUpdate,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    txn = TransactionService(store).update_notes(user_id, transaction_id, payload.notes)
    return {"success": True, "transaction": txn}


@router.post("/{transaction_id}/split")
async def split_transaction(
    transaction_id: str,
    payload: SplitRequest,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    children = TransactionService(store).split_transaction(user_id, transaction_id, payload.splits)
    return {"success": True, "transactions": children}
