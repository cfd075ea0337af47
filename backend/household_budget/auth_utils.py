import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

PBKDF2_ROUNDS = 120_000
JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ROUNDS).hex()
    return f"{salt}${digest}"


def verify_password(password: str, stored_hash: str) -> bool:
    try:
        salt, expected = stored_hash.split("$", 1)
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ROUNDS).hex()
    return secrets.compare_digest(digest, expected)


def issue_token(user_id: str, username: str, secret: str, expires_in_days: int) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "userId": user_id,
        "username": username,
        "iat": now,
        "exp": now + timedelta(days=expires_in_days),
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(claims, secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, secret: str) -> dict[str, Any]:
    # raises jwt.ExpiredSignatureError / jwt.InvalidTokenError
    return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
