from typing import Any

from fastapi import Depends, Header, Request

from .errors import ApiError, ErrorKind
from .persistence import DataStore
from .plaid_client import PlaidClientProtocol
from .services.auth import AuthService


def get_store(request: Request) -> DataStore:
    return request.app.state.store


def get_plaid(request: Request) -> PlaidClientProtocol:
    return request.app.state.plaid


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth


def token_from_header(authorization: str | None) -> str:
    if not authorization:
        raise ApiError(ErrorKind.unauthorized, "No token provided")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise ApiError(ErrorKind.unauthorized, "No token provided")
    return parts[1].strip()


def current_claims(
    authorization: str | None = Header(default=None),
    auth: AuthService = Depends(get_auth_service),
) -> dict[str, Any]:
    return auth.validate_token(token_from_header(authorization))


def current_user_id(claims: dict[str, Any] = Depends(current_claims)) -> str:
    return claims["userId"]
