"""Shared read cache for authentication-relevant user data."""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass
from functools import lru_cache
from typing import Iterable, Protocol

from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import Account, User

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    """Protocol describing cache operations we rely on."""

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a key/value pair with a time-to-live in seconds."""

    def get(self, key: str) -> str | None:
        """Retrieve a cached value if it exists and has not expired."""

    def delete(self, *keys: str) -> None:
        """Remove cached entries, ignoring missing values."""


class _InMemoryCache:
    """Process-local cache used when no Redis URL is configured."""

    def __init__(self) -> None:
        self._store: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        expires_at: float | None = None
        if ttl_seconds > 0:
            expires_at = time.time() + ttl_seconds
        with self._lock:
            self._store[key] = (value, expires_at)

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._store.get(key)
            if not entry:
                return None
            value, expires_at = entry
            if expires_at is not None and expires_at <= time.time():
                self._store.pop(key, None)
                return None
            return value

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._store.pop(key, None)


class _RedisCache:
    """Thin Redis wrapper adhering to :class:`CacheBackend`."""

    def __init__(self, url: str) -> None:
        self._client = Redis.from_url(url, decode_responses=True)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds > 0:
            self._client.setex(key, ttl_seconds, value)
        else:
            self._client.set(key, value)

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def delete(self, *keys: str) -> None:
        if keys:
            self._client.delete(*keys)


@lru_cache(maxsize=1)
def get_cache() -> CacheBackend:
    """Return the configured cache backend, shared by every worker when Redis is used."""

    settings = get_settings()
    cache_url = settings.auth_cache_url or settings.realtime_redis_url
    if cache_url:
        return _RedisCache(cache_url)
    logger.info("No cache URL configured; using a process-local user cache")
    return _InMemoryCache()


@dataclass(slots=True)
class AccountCache:
    """Snapshot of the fields authentication needs for a user."""

    user_id: int
    username: str
    tag: str
    badges: int
    bot: bool
    account_id: int
    email_confirmed: bool
    password_version: int


def _user_cache_key(user_id: int) -> str:
    return f"user:{user_id}"


def get_account_cache(db: Session, user_id: int) -> AccountCache | None:
    """Return the cached account snapshot, loading it from the database on a miss."""

    cache = get_cache()
    key = _user_cache_key(user_id)
    try:
        cached = cache.get(key)
    except RedisError:
        logger.warning("User cache read failed", exc_info=True, extra={"user_id": user_id})
        cached = None
    if cached is not None:
        try:
            return AccountCache(**json.loads(cached))
        except (TypeError, ValueError):
            cache.delete(key)

    row = db.execute(
        select(Account, User).join(User, Account.user_id == User.id).where(User.id == user_id)
    ).first()
    if row is None:
        return None
    account, user = row
    snapshot = AccountCache(
        user_id=user.id,
        username=user.username,
        tag=user.tag,
        badges=user.badges,
        bot=user.bot,
        account_id=account.id,
        email_confirmed=account.email_confirmed,
        password_version=account.password_version,
    )
    cache.set(key, json.dumps(asdict(snapshot)), get_settings().user_cache_ttl_seconds)
    return snapshot


def remove_user_cache_by_user_ids(user_ids: Iterable[int]) -> None:
    """Invalidate cached snapshots; callers re-read from the database next time."""

    keys = [_user_cache_key(user_id) for user_id in user_ids]
    if keys:
        get_cache().delete(*keys)
