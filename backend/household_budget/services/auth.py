from __future__ import annotations

import hashlib
import logging
import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import uuid4

import jwt

from ..auth_utils import decode_token, hash_password, issue_token, verify_password
from ..config import Settings, settings as default_settings
from ..dates import utc_now_iso
from ..errors import ApiError, ErrorKind, validation_error
from ..persistence import DataStore

logger = logging.getLogger(__name__)

MAX_FAILED_ATTEMPTS = 5
LOCKOUT = timedelta(minutes=15)
RESET_TOKEN_TTL = timedelta(hours=1)
MIN_PASSWORD_LENGTH = 15
COMMON_PASSWORDS = {
    "password123456",
    "123456789012345",
    "qwertyuiopasdfg",
    "aaaaaaaaaaaaaaa",
    "111111111111111",
}
INVALID_CREDENTIALS = "Invalid username or password"
LOCKED_OUT = "Too many failed attempts. Please try again later."


def password_errors(password: str) -> list[str]:
    errors = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if password.lower() in COMMON_PASSWORDS:
        errors.append("Password is too common or weak")
    if len(password) >= MIN_PASSWORD_LENGTH and len(set(password)) < 3:
        errors.append("Password must contain more variety")
    return errors


def check_password_strength(password: str) -> None:
    errors = password_errors(password)
    if errors:
        raise validation_error(errors[0], errors)


def _hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthService:
    """Accounts, JWTs and the in-process login lockout.

    Failed-attempt counters and reset tokens live in memory, so one instance
    must be shared for the lifetime of the app.
    """

    def __init__(
        self,
        store: DataStore,
        config: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.config = config or default_settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._failed_attempts: dict[str, tuple[int, datetime]] = {}
        self._locked_until: dict[str, datetime] = {}
        self._reset_tokens: dict[str, tuple[str, datetime]] = {}

    def _security_event(self, event: str, username: str, **details: Any) -> None:
        logger.info("security event %s user=%s %s", event, username, details or "")

    def _token_for(self, user: dict[str, Any]) -> dict[str, Any]:
        token = issue_token(user["id"], user["username"], self.config.jwt_secret, self.config.jwt_expires_in_days)
        return {"token": token, "user": {"id": user["id"], "username": user["username"]}}

    # lockout

    def _is_locked(self, username: str) -> bool:
        with self._lock:
            until = self._locked_until.get(username)
            if until is None:
                return False
            if self._clock() > until:
                self._locked_until.pop(username, None)
                self._failed_attempts.pop(username, None)
                return False
            return True

    def _prune(self, now: datetime) -> None:
        # caller holds self._lock
        for username, until in list(self._locked_until.items()):
            if now > until:
                del self._locked_until[username]
                self._failed_attempts.pop(username, None)
        for username, (_, last) in list(self._failed_attempts.items()):
            if username not in self._locked_until and now - last > LOCKOUT:
                del self._failed_attempts[username]

    def _record_failure(self, username: str, reason: str) -> None:
        with self._lock:
            now = self._clock()
            self._prune(now)
            attempts = self._failed_attempts.get(username, (0, now))[0] + 1
            self._failed_attempts[username] = (attempts, now)
            if attempts >= MAX_FAILED_ATTEMPTS:
                self._locked_until[username] = now + LOCKOUT
        self._security_event("LOGIN_FAILED", username, reason=reason, attempts=attempts)
        if attempts >= MAX_FAILED_ATTEMPTS:
            self._security_event("ACCOUNT_LOCKED", username, attempts=attempts)

    def _reset_failures(self, username: str) -> None:
        with self._lock:
            self._failed_attempts.pop(username, None)
            self._locked_until.pop(username, None)

    def failed_attempts(self, username: str) -> int:
        with self._lock:
            return self._failed_attempts.get(username.lower(), (0, None))[0]

    def tracked_usernames(self) -> list[str]:
        with self._lock:
            return sorted(self._failed_attempts)

    def reset_rate_limiting(self) -> None:
        with self._lock:
            self._failed_attempts.clear()
            self._locked_until.clear()

    # accounts

    def register(self, username: str, password: str) -> dict[str, Any]:
        username = username.lower()
        check_password_strength(password)
        if self.store.get_user_by_username(username) is not None:
            raise validation_error("Username already exists")
        user = self.store.create_user(
            {
                "id": str(uuid4()),
                "username": username,
                "passwordHash": hash_password(password),
                "createdAt": utc_now_iso(),
                "lastLogin": None,
            }
        )
        self._security_event("USER_REGISTERED", username, userId=user["id"])
        return self._token_for(user)

    def login(self, username: str, password: str) -> dict[str, Any]:
        username = username.lower()
        if self._is_locked(username):
            raise ApiError(ErrorKind.rate_limited, LOCKED_OUT)
        user = self.store.get_user_by_username(username)
        if user is None:
            self._record_failure(username, "User not found")
            raise ApiError(ErrorKind.unauthorized, INVALID_CREDENTIALS)
        if not verify_password(password, user["passwordHash"]):
            self._record_failure(username, "Invalid password")
            raise ApiError(ErrorKind.unauthorized, INVALID_CREDENTIALS)
        self._reset_failures(username)
        self.store.update_user(user["id"], {"lastLogin": utc_now_iso()})
        self._security_event("LOGIN_SUCCESS", username, userId=user["id"])
        return self._token_for(user)

    def validate_token(self, token: str) -> dict[str, Any]:
        try:
            claims = decode_token(token, self.config.jwt_secret)
        except jwt.ExpiredSignatureError:
            raise ApiError(ErrorKind.unauthorized, "Token expired") from None
        except jwt.InvalidTokenError:
            raise ApiError(ErrorKind.unauthorized, "Invalid token") from None
        if not claims.get("userId") or not claims.get("username"):
            raise ApiError(ErrorKind.unauthorized, "Invalid token structure")
        return claims

    def refresh(self, token: str) -> str:
        claims = self.validate_token(token)
        return issue_token(claims["userId"], claims["username"], self.config.jwt_secret, self.config.jwt_expires_in_days)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        user = self.store.get_user(user_id)
        if user is None:
            raise ApiError(ErrorKind.not_found, "User not found")
        if not verify_password(current_password, user["passwordHash"]):
            self._security_event("PASSWORD_CHANGE_FAILED", user["username"], reason="Invalid current password")
            raise ApiError(ErrorKind.unauthorized, "Current password is incorrect")
        check_password_strength(new_password)
        self.store.update_user(user_id, {"passwordHash": hash_password(new_password)})
        self._security_event("PASSWORD_CHANGED", user["username"], userId=user_id)

    def request_reset(self, username: str) -> None:
        username = username.lower()
        user = self.store.get_user_by_username(username)
        if user is None:
            self._security_event("RESET_REQUESTED_UNKNOWN_USER", username)
            return
        token = secrets.token_hex(32)
        with self._lock:
            self._reset_tokens[username] = (_hash_reset_token(token), self._clock() + RESET_TOKEN_TTL)
        # no mail transport: the operator relays the token
        logger.warning("password reset token for %s: %s (valid for 1 hour)", username, token)

    def reset_password(self, username: str, token: str, new_password: str) -> None:
        username = username.lower()
        with self._lock:
            entry = self._reset_tokens.get(username)
        if entry is None:
            raise validation_error("Invalid or expired reset token")
        digest, expires = entry
        if self._clock() > expires or not secrets.compare_digest(digest, _hash_reset_token(token)):
            raise validation_error("Invalid or expired reset token")
        user = self.store.get_user_by_username(username)
        if user is None:
            raise validation_error("Invalid or expired reset token")
        check_password_strength(new_password)
        self.store.update_user(user["id"], {"passwordHash": hash_password(new_password)})
        with self._lock:
            self._reset_tokens.pop(username, None)
        self._reset_failures(username)
        self._security_event("PASSWORD_RESET", username, userId=user["id"])
