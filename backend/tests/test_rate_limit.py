from __future__ import annotations

import pytest

from app.monitoring.metrics import rate_limit_rejections_total
from app.services.rate_limit import RateLimiter, _InMemoryWindowStore


class BrokenStore:
    async def incr(self, key: str, window_ms: int) -> tuple[int, int]:
        raise ConnectionError("store down")


@pytest.fixture(autouse=True)
def reset_rejection_metric():
    samples = rate_limit_rejections_total._samples
    samples.clear()
    yield
    samples.clear()


@pytest.mark.anyio
async def test_limiter_rejects_once_window_is_exhausted():
    limiter = RateLimiter(_InMemoryWindowStore())

    decisions = [
        await limiter.hit("create_message", "1", window_ms=20_000, limit=3) for _ in range(4)
    ]

    assert [decision.allowed for decision in decisions] == [True, True, True, False]
    assert [decision.count for decision in decisions] == [1, 2, 3, 4]
    assert 0 < decisions[-1].retry_after_ms <= 20_000
    assert rate_limit_rejections_total.value("create_message") == 1


@pytest.mark.anyio
async def test_identities_and_names_have_separate_windows():
    limiter = RateLimiter(_InMemoryWindowStore())

    await limiter.hit("create_message", "1", window_ms=1_000, limit=1)
    other_user = await limiter.hit("create_message", "2", window_ms=1_000, limit=1)
    other_name = await limiter.hit("global_limit", "1", window_ms=1_000, limit=1)
    same = await limiter.hit("create_message", "1", window_ms=1_000, limit=1)

    assert other_user.allowed
    assert other_name.allowed
    assert not same.allowed


@pytest.mark.anyio
async def test_window_resets_after_expiry(monkeypatch):
    clock = {"now": 100.0}
    monkeypatch.setattr("app.services.rate_limit.time.monotonic", lambda: clock["now"])
    limiter = RateLimiter(_InMemoryWindowStore())

    assert (await limiter.hit("reset", "ip", window_ms=1_000, limit=1)).allowed
    assert not (await limiter.hit("reset", "ip", window_ms=1_000, limit=1)).allowed

    clock["now"] += 1.5

    assert (await limiter.hit("reset", "ip", window_ms=1_000, limit=1)).allowed


@pytest.mark.anyio
async def test_broken_store_fails_open():
    limiter = RateLimiter(BrokenStore())

    decision = await limiter.hit("create_message", "1", window_ms=1_000, limit=1)

    assert decision.allowed
    assert rate_limit_rejections_total.value("create_message") == 0


@pytest.mark.anyio
async def test_zero_limit_always_rejects():
    limiter = RateLimiter(_InMemoryWindowStore())

    decision = await limiter.hit("create_message", "1", window_ms=5_000, limit=0)

    assert not decision.allowed
    assert decision.retry_after_ms == 5_000
