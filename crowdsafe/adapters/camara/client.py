"""
CAMARA population density client for CrowdSafe.

This module queries the operator's population-density API with a bearer
token obtained from the token cache.
"""

import asyncio
import aiohttp
from datetime import datetime
from typing import Any, Dict, List, Optional
from crowdsafe.adapters.oauth.token_cache import TokenCache
from crowdsafe.common.retry import retry_with_backoff
from crowdsafe.core.errors import DataUnavailable, UpstreamAuthError
from crowdsafe.core.models import Point, utc_iso
from crowdsafe.observability.logging_setup import get_logger

log = get_logger("crowdsafe.camara")

RETRIEVE_PATH = "/populationdensitydata/retrieve"

class PopulationDensityClient:
    """CAMARA Population Density Data API 클라이언트"""

    def __init__(self,
                 base_url: str,
                 token_cache: TokenCache,
                 *,
                 scopes: List[str],
                 audience: Optional[str] = None,
                 timeout: float = 10,
                 max_retries: int = 1,
                 backoff_initial_sec: float = 0.5,
                 session: Optional[aiohttp.ClientSession] = None):
        """
        초기화합니다.

        Args:
            base_url: API 기본 URL
            token_cache: 토큰 캐시
            scopes: 토큰 스코프
            audience: 토큰 audience
            timeout: 요청 타임아웃 (초)
            max_retries: 전송 오류 재시도 횟수
            backoff_initial_sec: 재시도 초기 지연
            session: 외부에서 주입하는 aiohttp 세션
        """
        self.base_url = base_url.rstrip('/')
        self.token_cache = token_cache
        self.scopes = list(scopes)
        self.audience = audience
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_initial_sec = backoff_initial_sec
        self.session = session
        self._owns_session = session is None

        log.info(f"PopulationDensityClient 초기화됨 base_url:{self.base_url}")

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self.session

    async def close(self) -> None:
        if self.session and self._owns_session and not self.session.closed:
            await self.session.close()

    @staticmethod
    def build_payload(boundary: List[Point], start: datetime, end: datetime, precision: int) -> Dict[str, Any]:
        """retrieve 요청 본문을 구성합니다."""
        return {
            "area": {
                "areaType": "POLYGON",
                "boundary": [{"latitude": p.latitude, "longitude": p.longitude} for p in boundary],
            },
            "startTime": utc_iso(start),
            "endTime": utc_iso(end),
            "precision": precision,
        }

    async def retrieve(self, boundary: List[Point], start: datetime, end: datetime,
                       precision: int) -> List[Dict[str, Any]]:
        """
        밀도 데이터를 조회합니다.

        Returns:
            timedPopulationDensityData 구간 목록 (빈 목록 가능)

        Raises:
            UpstreamAuthError: 토큰 교환 실패 또는 401/403 응답
            DataUnavailable: 비정상 응답, 전송 오류
        """
        token = await self.token_cache.get_token(self.scopes, self.audience)
        url = f"{self.base_url}{RETRIEVE_PATH}"
        payload = self.build_payload(boundary, start, end, precision)

        async def _request():
            async with self._get_session().post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                if resp.status in (401, 403):
                    # 폐기된 토큰일 수 있으므로 캐시에서 제거
                    self.token_cache.invalidate(self.scopes, self.audience)
                    raise UpstreamAuthError(f"밀도 API 인증 실패 status:{resp.status}")
                if resp.status >= 400:
                    raise DataUnavailable(f"밀도 API 오류 status:{resp.status}")
                return await resp.json(content_type=None)

        try:
            data = await retry_with_backoff(
                _request,
                max_retries=self.max_retries,
                base_delay=self.backoff_initial_sec,
                max_delay=self.timeout,
                retry_on=(aiohttp.ClientError, asyncio.TimeoutError)
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.error(f"밀도 API 요청 실패 url:{url} error:{e!r}")
            raise DataUnavailable(f"밀도 API 요청 실패: {e!r}") from e

        intervals = (data or {}).get("timedPopulationDensityData") or []
        log.info(f"밀도 데이터 수신 intervals:{len(intervals)} precision:{precision}")
        return intervals
