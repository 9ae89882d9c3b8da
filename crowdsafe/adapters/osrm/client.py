"""
OSRM path-finder client for CrowdSafe.

This module asks an OSRM-compatible routing service for a street path
between two points.
"""

import asyncio
import aiohttp
from typing import List, Optional, Tuple
from crowdsafe.core.errors import PathfinderUnavailable
from crowdsafe.core.models import Point
from crowdsafe.observability.logging_setup import get_logger

log = get_logger("crowdsafe.osrm")

class OSRMPathfinder:
    """OSRM route API 클라이언트"""

    def __init__(self,
                 base_url: str = "https://router.project-osrm.org",
                 *,
                 profile: str = "driving",
                 timeout: float = 5,
                 session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip('/')
        self.profile = profile
        self.timeout = timeout
        self.session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self.session

    async def close(self) -> None:
        if self.session and self._owns_session and not self.session.closed:
            await self.session.close()

    def build_url(self, origin: Point, destination: Point) -> str:
        # OSRM 좌표 순서는 경도,위도
        return (f"{self.base_url}/route/v1/{self.profile}/"
                f"{origin.longitude},{origin.latitude};{destination.longitude},{destination.latitude}")

    async def route(self, origin: Point, destination: Point) -> Tuple[List[Point], float]:
        """
        두 지점 간 경로를 조회합니다.

        Returns:
            (경로 좌표 목록, 소요 시간 초)

        Raises:
            PathfinderUnavailable: 타임아웃, 비정상 응답, 빈 결과
        """
        url = self.build_url(origin, destination)
        try:
            async with self._get_session().get(
                url,
                params={"overview": "full", "geometries": "geojson"},
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise PathfinderUnavailable(f"경로 API 오류 status:{resp.status}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PathfinderUnavailable(f"경로 API 요청 실패: {e!r}") from e

        data = data or {}
        routes = data.get("routes") or []
        if data.get("code") != "Ok" or not routes:
            raise PathfinderUnavailable(f"경로 없음 code:{data.get('code')}")

        best = routes[0]
        coords = (best.get("geometry") or {}).get("coordinates") or []
        try:
            path = [Point(latitude=lat, longitude=lon) for lon, lat, *_ in coords]
        except (TypeError, ValueError) as e:
            raise PathfinderUnavailable(f"경로 geometry 해석 실패: {e}") from e
        if len(path) < 2:
            raise PathfinderUnavailable("경로 좌표가 2개 미만입니다")

        duration = float(best.get("duration") or 0.0)
        log.info(f"경로 수신 points:{len(path)} duration:{duration:.0f}s")
        return path, duration
