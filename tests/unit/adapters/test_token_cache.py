"""
토큰 캐시 단위 테스트

이 모듈은 요청 병합, 만료 계산, 실패 후 재시도 가능성을 테스트합니다.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock
from crowdsafe.adapters.oauth.token_cache import TokenCache
from crowdsafe.core.errors import UpstreamAuthError


def make_authority(*results):
    authority = MagicMock()
    authority.exchange = AsyncMock(side_effect=list(results))
    return authority


class TestCacheKey:

    def test_scopes_sorted(self):
        assert TokenCache.cache_key(["b", "a"], "aud") == "a b::aud"
        assert TokenCache.cache_key(["a", "b"]) == "a b::"


class TestCoalescing:
    """동시 요청 병합 테스트"""

    async def test_concurrent_calls_share_one_exchange(self, fake_clock):
        gate = asyncio.Event()

        async def slow_exchange(scopes, audience=None):
            await gate.wait()
            return "tok-1", 3600

        authority = MagicMock()
        authority.exchange = AsyncMock(side_effect=slow_exchange)
        cache = TokenCache(authority, clock=fake_clock)

        t1 = asyncio.create_task(cache.get_token(["b", "a"]))
        t2 = asyncio.create_task(cache.get_token(["a", "b"]))
        await asyncio.sleep(0)
        gate.set()

        assert await asyncio.gather(t1, t2) == ["tok-1", "tok-1"]
        assert authority.exchange.await_count == 1

    async def test_concurrent_callers_share_failure(self, fake_clock):
        gate = asyncio.Event()

        async def failing_exchange(scopes, audience=None):
            await gate.wait()
            raise UpstreamAuthError("denied")

        authority = MagicMock()
        authority.exchange = AsyncMock(side_effect=failing_exchange)
        cache = TokenCache(authority, clock=fake_clock)

        tasks = [asyncio.create_task(cache.get_token(["s"])) for _ in range(3)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(r, UpstreamAuthError) for r in results)
        assert authority.exchange.await_count == 1

    async def test_different_audience_is_separate_key(self, fake_clock):
        authority = make_authority(("tok-a", 3600), ("tok-b", 3600))
        cache = TokenCache(authority, clock=fake_clock)

        assert await cache.get_token(["s"], "aud-a") == "tok-a"
        assert await cache.get_token(["s"], "aud-b") == "tok-b"
        assert authority.exchange.await_count == 2


class TestExpiry:
    """만료 계산 테스트"""

    async def test_reused_until_expiry_then_refreshed(self, fake_clock):
        authority = make_authority(("tok-1", 100), ("tok-2", 100))
        cache = TokenCache(authority, clock=fake_clock)

        assert await cache.get_token(["s"]) == "tok-1"
        # 만료 = 발급 + (100 - 30) = +70초
        fake_clock.advance(69)
        assert await cache.get_token(["s"]) == "tok-1"
        fake_clock.advance(1)
        assert await cache.get_token(["s"]) == "tok-2"
        assert authority.exchange.await_count == 2

    @pytest.mark.parametrize("expires_in,expected", [
        (3600, 1000 + 3570),
        (10, 1000 + 5),
        (None, 1000 + 300),
        ("garbage", 1000 + 300),
        (0, 1000 + 300),
    ])
    def test_compute_expiry(self, fake_clock, expires_in, expected):
        cache = TokenCache(MagicMock(), clock=fake_clock)
        assert cache.compute_expiry(1000, expires_in) == expected

    async def test_missing_expiry_uses_five_minutes(self, fake_clock):
        authority = make_authority(("tok-1", None), ("tok-2", None))
        cache = TokenCache(authority, clock=fake_clock)

        await cache.get_token(["s"])
        fake_clock.advance(299)
        assert await cache.get_token(["s"]) == "tok-1"
        fake_clock.advance(1)
        assert await cache.get_token(["s"]) == "tok-2"


class TestFailureRecovery:
    """실패 후 재시도 테스트"""

    async def test_failure_does_not_poison_cache(self, fake_clock):
        authority = make_authority(UpstreamAuthError("temporarily down"), ("tok-1", 3600))
        cache = TokenCache(authority, clock=fake_clock)

        with pytest.raises(UpstreamAuthError):
            await cache.get_token(["s"])
        assert await cache.get_token(["s"]) == "tok-1"
        assert authority.exchange.await_count == 2

    async def test_unexpected_error_wrapped(self, fake_clock):
        authority = make_authority(RuntimeError("socket closed"))
        cache = TokenCache(authority, clock=fake_clock)

        with pytest.raises(UpstreamAuthError) as exc_info:
            await cache.get_token(["s"])
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    async def test_invalidate_forces_new_exchange(self, fake_clock):
        authority = make_authority(("tok-1", 3600), ("tok-2", 3600))
        cache = TokenCache(authority, clock=fake_clock)

        await cache.get_token(["s"], "aud")
        cache.invalidate(["s"], "aud")
        assert await cache.get_token(["s"], "aud") == "tok-2"

    async def test_clear(self, fake_clock):
        authority = make_authority(("tok-1", 3600), ("tok-2", 3600))
        cache = TokenCache(authority, clock=fake_clock)

        await cache.get_token(["s"])
        cache.clear()
        assert await cache.get_token(["s"]) == "tok-2"

    async def test_clear_keeps_inflight_exchange_shared(self, fake_clock):
        gate = asyncio.Event()

        async def slow_exchange(scopes, audience=None):
            await gate.wait()
            return "tok-1", 3600

        authority = MagicMock()
        authority.exchange = AsyncMock(side_effect=slow_exchange)
        cache = TokenCache(authority, clock=fake_clock)

        first = asyncio.create_task(cache.get_token(["s"]))
        await asyncio.sleep(0)
        cache.clear()
        second = asyncio.create_task(cache.get_token(["s"]))
        await asyncio.sleep(0)
        gate.set()

        assert await asyncio.gather(first, second) == ["tok-1", "tok-1"]
        assert authority.exchange.await_count == 1
