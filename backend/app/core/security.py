"""Security helpers for password hashing and token management."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from fastapi import status
from passlib.context import CryptContext

from app.config import get_settings
from app.core.errors import ApiError

settings = get_settings()

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

INVALID_TOKEN = "Invalid Token"


@dataclass(slots=True, frozen=True)
class TokenClaims:
    user_id: int
    password_version: int


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against its hashed counterpart."""

    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password for storing in the database."""

    return pwd_context.hash(password)


def create_access_token(data: Dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Create a signed JWT access token with an expiration time."""

    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta is not None else timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def generate_token(user_id: int, password_version: int) -> str:
    """Issue a token bound to the account's current password version.

    Incrementing the password version invalidates every token issued before.
    """

    return create_access_token({"sub": str(user_id), "pv": password_version})


def decode_access_token(token: str) -> TokenClaims:
    """Decode a token into its claims or raise a 401 :class:`ApiError`."""

    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.InvalidTokenError as exc:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, INVALID_TOKEN) from exc

    try:
        return TokenClaims(user_id=int(payload["sub"]), password_version=int(payload.get("pv", 0)))
    except (KeyError, TypeError, ValueError):
        raise ApiError(status.HTTP_401_UNAUTHORIZED, INVALID_TOKEN) from None
