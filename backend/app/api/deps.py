"""FastAPI dependencies for the API layer."""

from typing import Callable

from fastapi import Depends, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.errors import ApiError
from app.core.security import INVALID_TOKEN, decode_access_token
from app.database import get_db
from app.models import MODERATOR_BADGES
from app.services.cache import AccountCache, get_account_cache
from app.services.channel_cache import ChannelContext, resolve_channel
from app.services.rate_limit import get_rate_limiter

settings = get_settings()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_current_account(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> AccountCache:
    """Resolve the caller from the bearer token."""

    return get_account_from_token(token, db)


def get_account_from_token(token: str, db: Session) -> AccountCache:
    """Resolve a token to its account snapshot or raise an HTTP 401 error.

    Tokens issued before the last password change carry a stale password
    version and are rejected.
    """

    claims = decode_access_token(token)
    account = get_account_cache(db, claims.user_id)
    if account is None or account.password_version != claims.password_version:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, INVALID_TOKEN)
    return account


def get_channel_context(
    channel_id: int,
    account: AccountCache = Depends(get_current_account),
    db: Session = Depends(get_db),
) -> ChannelContext:
    context, error = resolve_channel(db, channel_id, account.user_id, account.badges)
    if error is not None:
        raise ApiError.from_service_error(error)
    return context


def require_moderator(account: AccountCache = Depends(get_current_account)) -> AccountCache:
    if not account.badges & MODERATOR_BADGES:
        raise ApiError(status.HTTP_403_FORBIDDEN, "Admin access only!")
    return account


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("cf-connecting-ip") or request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


async def enforce_rate_limit(name: str, identity: str, *, window_ms: int, limit: int) -> None:
    """Raise 429 once ``identity`` exhausted ``limit`` hits of ``name`` in the window."""

    decision = await get_rate_limiter().hit(name, identity, window_ms=window_ms, limit=limit)
    if not decision.allowed:
        raise ApiError(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "Slow down!",
            extra={"ttl": decision.retry_after_ms},
        )


def rate_limit(name: str, *, window_ms: int, limit: int, use_ip: bool = False) -> Callable:
    """Build a dependency limiting callers by IP or by authenticated user."""

    if use_ip:

        async def limit_by_ip(request: Request) -> None:
            await enforce_rate_limit(name, client_ip(request), window_ms=window_ms, limit=limit)

        return limit_by_ip

    async def limit_by_user(account: AccountCache = Depends(get_current_account)) -> None:
        await enforce_rate_limit(name, str(account.user_id), window_ms=window_ms, limit=limit)

    return limit_by_user


async def global_rate_limit(request: Request) -> None:
    if request.method == "OPTIONS":
        return
    await enforce_rate_limit(
        "global_limit",
        client_ip(request),
        window_ms=settings.global_rate_window_ms,
        limit=settings.global_rate_limit,
    )


__all__ = [
    "client_ip",
    "enforce_rate_limit",
    "get_account_from_token",
    "get_channel_context",
    "get_current_account",
    "global_rate_limit",
    "oauth2_scheme",
    "rate_limit",
    "require_moderator",
]
