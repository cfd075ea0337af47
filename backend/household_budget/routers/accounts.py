from typing import Any, Optional

from fastapi import APIRouter, Depends

from ..deps import current_user_id, get_plaid, get_store
from ..errors import ApiError, ErrorKind, not_found
from ..persistence import DataStore
from ..plaid_client import PlaidClientProtocol
from ..schemas import AccountNicknameUpdate, ConnectAccountRequest, TransactionSyncRequest
from ..services.accounts import AccountService, public_account
from ..services.transactions import DEFAULT_SYNC_START, TransactionService

router = APIRouter(tags=["accounts"])


def _connect(payload: ConnectAccountRequest, user_id: str, store: DataStore, plaid: PlaidClientProtocol) -> dict[str, Any]:
    accounts = AccountService(store, plaid).connect(
        user_id, payload.publicToken, payload.institutionId, payload.institutionName
    )
    return {
        "success": True,
        "account": public_account(accounts[0]) if accounts else None,
        "accounts": [public_account(a) for a in accounts],
    }


@router.post("/plaid/link-token")
async def create_link_token(
    user_id: str = Depends(current_user_id),
    plaid: PlaidClientProtocol = Depends(get_plaid),
) -> dict[str, Any]:
    return {"success": True, **plaid.create_link_token(user_id)}


@router.post("/plaid/exchange-token", status_code=201)
async def exchange_token(
    payload: ConnectAccountRequest,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
    plaid: PlaidClientProtocol = Depends(get_plaid),
) -> dict[str, Any]:
    return _connect(payload, user_id, store, plaid)


@router.post("/accounts/connect", status_code=201)
async def connect_account(
    payload: ConnectAccountRequest,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
    plaid: PlaidClientProtocol = Depends(get_plaid),
) -> dict[str, Any]:
    return _connect(payload, user_id, store, plaid)


@router.get("/accounts")
async def list_accounts(
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
    plaid: PlaidClientProtocol = Depends(get_plaid),
) -> dict[str, Any]:
    accounts = AccountService(store, plaid).list_accounts(user_id)
    return {"success": True, "accounts": [public_account(a) for a in accounts]}


@router.post("/accounts/sync")
async def sync_balances(
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
    plaid: PlaidClientProtocol = Depends(get_plaid),
) -> dict[str, Any]:
    updated = AccountService(store, plaid).sync_balances(user_id)
    return {"success": True, "accountsUpdated": updated}


@router.put("/accounts/{account_id}")
async def update_account_nickname(
    account_id: str,
    payload: AccountNicknameUpdate,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
    plaid: PlaidClientProtocol = Depends(get_plaid),
) -> dict[str, Any]:
    account = AccountService(store, plaid).update_nickname(user_id, account_id, payload.nickname)
    return {"success": True, "account": public_account(account)}


@router.delete("/accounts/{account_id}")
async def disconnect_account(
    account_id: str,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
    plaid: PlaidClientProtocol = Depends(get_plaid),
) -> dict[str, Any]:
    AccountService(store, plaid).disconnect(user_id, account_id)
    return {"success": True, "message": "Account disconnected"}


@router.post("/accounts/{account_id}/sync-transactions")
async def sync_account_transactions(
    account_id: str,
    payload: Optional[TransactionSyncRequest] = None,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
    plaid: PlaidClientProtocol = Depends(get_plaid),
) -> dict[str, Any]:
    accounts_service = AccountService(store, plaid)
    account = accounts_service.get_account(user_id, account_id)
    if account is None:
        raise not_found("Account not found")
    start_date = (payload.startDate if payload else None) or DEFAULT_SYNC_START
    stats = TransactionService(store, plaid).sync_transactions(user_id, [account], start_date)
    accounts_service.mark_requires_reauth(user_id, stats.reauth_account_ids)
    if stats.all_failed:
        raise ApiError(ErrorKind.upstream, "Account needs reconnection. Please reconnect your bank account.")
    return {"success": True, "added": stats.added, "modified": stats.modified, "removed": stats.removed}
