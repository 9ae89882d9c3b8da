"""
Access-token cache for CrowdSafe.

This module caches bearer tokens per (scopes, audience) key and coalesces
concurrent requests for the same key into one credential exchange.
"""

import asyncio
import math
import time
from typing import Callable, Dict, Iterable, Optional
from crowdsafe.core.errors import UpstreamAuthError
from crowdsafe.core.models import TokenCacheEntry
from crowdsafe.ports.credentials import CredentialAuthorityPort
from crowdsafe.observability import metrics
from crowdsafe.observability.logging_setup import get_logger

log = get_logger("crowdsafe.token_cache")

class TokenCache:
    """스코프/audience 키 기반 토큰 캐시 (요청 병합)"""

    def __init__(self,
                 authority: CredentialAuthorityPort,
                 *,
                 clock: Callable[[], float] = time.monotonic,
                 default_ttl_sec: float = 300,
                 refresh_margin_sec: float = 30,
                 min_ttl_sec: float = 5):
        """
        초기화합니다.

        Args:
            authority: 자격 증명 발급 포트
            clock: 만료 계산용 시계 (초)
            default_ttl_sec: 제공자가 만료를 주지 않을 때 TTL
            refresh_margin_sec: 만료보다 앞당겨 갱신할 시간
            min_ttl_sec: 최소 TTL
        """
        self.authority = authority
        self.clock = clock
        self.default_ttl_sec = default_ttl_sec
        self.refresh_margin_sec = refresh_margin_sec
        self.min_ttl_sec = min_ttl_sec

        self._entries: Dict[str, TokenCacheEntry] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def cache_key(scopes: Iterable[str], audience: Optional[str] = None) -> str:
        """정렬된 스코프와 audience로 캐시 키를 만듭니다."""
        return f"{' '.join(sorted(scopes))}::{audience or ''}"

    def compute_expiry(self, issued_at: float, expires_in) -> float:
        """
        만료 시각을 계산합니다.

        issued_at + max(expires_in - 30, 5), 만료 정보가 없으면 issued_at + 5분.
        """
        try:
            seconds = float(expires_in) if expires_in is not None else None
        except (TypeError, ValueError):
            seconds = None
        if not seconds or math.isnan(seconds):
            return issued_at + self.default_ttl_sec
        return issued_at + max(seconds - self.refresh_margin_sec, self.min_ttl_sec)

    async def get_token(self, scopes: Iterable[str], audience: Optional[str] = None) -> str:
        """
        토큰을 반환합니다. 캐시가 유효하면 재사용하고, 아니면 교환합니다.

        같은 키로 진행 중인 교환이 있으면 그 결과를 함께 기다립니다.

        Raises:
            UpstreamAuthError: 교환 실패
        """
        scope_list = sorted(set(scopes))
        key = self.cache_key(scope_list, audience)

        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if self.clock() < entry.expires_at:
                    metrics.token_cache_hits.inc()
                    log.debug(f"캐시된 토큰 사용 key:{key}")
                    return entry.access_token
                # 만료 항목은 조회 시점에 제거
                del self._entries[key]

            task = self._inflight.get(key)
            if task is None:
                log.info(f"캐시 미스, 새 토큰 요청 key:{key}")
                task = asyncio.create_task(self._exchange(key, scope_list, audience))
                self._inflight[key] = task
            else:
                log.info(f"진행 중인 토큰 요청에 합류 key:{key}")

        return await asyncio.shield(task)

    async def _exchange(self, key: str, scopes, audience: Optional[str]) -> str:
        issued_at = self.clock()
        try:
            access_token, expires_in = await self.authority.exchange(scopes, audience)
        except Exception as e:
            # 실패를 알리기 전에 진행 중 표시를 해제해 재시도 가능하게 함
            self._inflight.pop(key, None)
            metrics.token_exchanges.labels(outcome="failure").inc()
            log.error(f"토큰 교환 실패 key:{key} error:{e}")
            if isinstance(e, UpstreamAuthError):
                raise
            raise UpstreamAuthError(f"토큰 교환 실패: {e}") from e

        self._entries[key] = TokenCacheEntry(
            access_token=access_token,
            expires_at=self.compute_expiry(issued_at, expires_in)
        )
        self._inflight.pop(key, None)
        metrics.token_exchanges.labels(outcome="success").inc()
        return access_token

    def invalidate(self, scopes: Iterable[str], audience: Optional[str] = None) -> None:
        """해당 키의 캐시 항목을 제거합니다 (예: 401 응답 후)."""
        self._entries.pop(self.cache_key(sorted(set(scopes)), audience), None)

    def clear(self) -> None:
        """
        캐시된 토큰을 모두 비웁니다.

        진행 중인 교환은 유지되어 이후 요청도 같은 교환에 합류합니다.
        """
        self._entries.clear()
