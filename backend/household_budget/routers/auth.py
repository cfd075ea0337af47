from typing import Any

from fastapi import APIRouter, Depends, Header

from ..deps import current_claims, current_user_id, get_auth_service, get_store, token_from_header
from ..errors import not_found
from ..persistence import DataStore
from ..schemas import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    ResetRequest,
)
from ..services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(payload: RegisterRequest, auth: AuthService = Depends(get_auth_service)) -> AuthResponse:
    return AuthResponse(**auth.register(payload.username, payload.password))


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginRequest, auth: AuthService = Depends(get_auth_service)) -> AuthResponse:
    return AuthResponse(**auth.login(payload.username, payload.password))


@router.post("/refresh")
async def refresh(
    authorization: str | None = Header(default=None),
    auth: AuthService = Depends(get_auth_service),
) -> dict[str, Any]:
    return {"success": True, "token": auth.refresh(token_from_header(authorization))}


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordRequest,
    user_id: str = Depends(current_user_id),
    auth: AuthService = Depends(get_auth_service),
) -> dict[str, Any]:
    auth.change_password(user_id, payload.currentPassword, payload.newPassword)
    return {"success": True, "message": "Password changed successfully"}


@router.get("/me")
async def me(user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)) -> dict[str, Any]:
    user = store.get_user(user_id)
    if user is None:
        raise not_found("User not found")
    return {
        "success": True,
        "user": {
            "id": user["id"],
            "username": user["username"],
            "createdAt": user.get("createdAt"),
            "lastLogin": user.get("lastLogin"),
        },
    }


@router.post("/logout")
async def logout(claims: dict[str, Any] = Depends(current_claims)) -> dict[str, Any]:
    return {"success": True, "message": "Logged out successfully"}


@router.get("/verify")
async def verify(claims: dict[str, Any] = Depends(current_claims)) -> dict[str, Any]:
    return {
        "success": True,
        "valid": True,
        "user": {"userId": claims["userId"], "username": claims["username"]},
    }


@router.post("/request-reset")
async def request_reset(payload: ResetRequest, auth: AuthService = Depends(get_auth_service)) -> dict[str, Any]:
    auth.request_reset(payload.username)
    return {"success": True, "message": "If the account exists, a reset token has been issued"}


@router.post("/reset-password")
async def reset_password(payload: ResetPasswordRequest, auth: AuthService = Depends(get_auth_service)) -> dict[str, Any]:
    auth.reset_password(payload.username, payload.token, payload.newPassword)
    return {"success": True, "message": "Password has been reset"}
