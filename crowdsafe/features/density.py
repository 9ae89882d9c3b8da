"""
Density aggregation feature for CrowdSafe.

This module turns a queried area into a normalized density snapshot and
a time-windowed flow series, either from the live population-density
provider or from the deterministic synthetic generator.
"""

import random
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from crowdsafe.core.errors import CrowdSafeError, DataUnavailable
from crowdsafe.core.models import Area, DensitySnapshot, FlowSample, FlowSeries, utc_iso
from crowdsafe.core.normalize import area_boundary, ensure_closed, interval_points, interval_total, to_area
from crowdsafe.core.synthetic import synthetic_flow, synthetic_snapshot
from crowdsafe.ports.density import DensityProviderPort
from crowdsafe.observability import metrics
from crowdsafe.observability.logging_setup import get_logger

log = get_logger("crowdsafe.density")

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class DensityAggregator:
    """영역 밀도 스냅샷 및 흐름 시계열 집계기"""

    def __init__(self,
                 provider: Optional[DensityProviderPort] = None,
                 *,
                 live: bool = False,
                 window_minutes: int = 60,
                 precision: int = 7,
                 flow_hours: int = 6,
                 default_flow_area: Optional[Area] = None,
                 rng: Optional[random.Random] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        초기화합니다.

        Args:
            provider: 실측 밀도 제공자 (없으면 합성 모드)
            live: 실측 모드 사용 여부
            window_minutes: 스냅샷 조회 구간 (분)
            precision: 기본 geohash 정밀도
            flow_hours: 흐름 조회 시간 수
            default_flow_area: 캐시에 없는 area_id의 흐름 조회 시 사용할 영역
            rng: 합성 데이터용 난수 생성기
            clock: 현재 UTC 시각 공급자
        """
        self.provider = provider
        self.live = live
        self.window_minutes = window_minutes
        self.precision = precision
        self.flow_hours = flow_hours
        self.default_flow_area = ensure_closed(default_flow_area) if default_flow_area else None
        self.rng = rng or random.Random()
        self.clock = clock or _utcnow

        self._areas: Dict[str, Area] = {}
        self._areas_lock = threading.Lock()

        log.info(f"DensityAggregator 초기화됨 mode:{self.mode} precision:{precision}")

    @property
    def is_live(self) -> bool:
        return self.live and self.provider is not None

    @property
    def mode(self) -> str:
        return "live" if self.is_live else "synthetic"

    def area_for(self, area_id: str) -> Optional[Area]:
        """area_id에 마지막으로 연결된 영역을 반환합니다."""
        with self._areas_lock:
            return self._areas.get(area_id)

    def _remember(self, area_id: str, area: Area) -> None:
        # 마지막 쓰기 우선
        with self._areas_lock:
            self._areas[area_id] = area

    def forget(self, area_id: str) -> None:
        with self._areas_lock:
            self._areas.pop(area_id, None)

    async def snapshot(self, area_id: str, area: Any, *,
                       precision: Optional[int] = None,
                       remember: bool = True) -> DensitySnapshot:
        """
        영역의 밀도 스냅샷을 생성합니다.

        Args:
            area_id: 영역 식별자
            area: Circle/Polygon 또는 원시 영역 입력
            precision: 이번 호출에만 적용할 정밀도
            remember: 흐름/경로 조회 재사용을 위해 영역을 캐시할지 여부

        Returns:
            DensitySnapshot

        Raises:
            DataUnavailable: 실측 조회 실패
        """
        normalized = ensure_closed(to_area(area))
        if remember:
            self._remember(area_id, normalized)

        if not self.is_live:
            snap = synthetic_snapshot(area_id, normalized, self.rng, now=self.clock())
            metrics.density_queries.labels(mode="synthetic", outcome="success").inc()
            return snap

        end = self.clock()
        start = end - timedelta(minutes=self.window_minutes)
        intervals = await self._retrieve(normalized, start, end, precision or self.precision, area_id)

        if not intervals:
            log.info(f"밀도 구간 없음, 0 스냅샷 반환 area:{area_id}")
            return DensitySnapshot(area_id=area_id, timestamp=utc_iso(end), total_devices=0, points=[])

        latest = intervals[-1]
        points = interval_points(latest)
        return DensitySnapshot(
            area_id=area_id,
            timestamp=latest.get("endTime") or utc_iso(end),
            total_devices=sum(p.count for p in points),
            points=points
        )

    async def flow(self, area_id: str) -> FlowSeries:
        """
        영역의 흐름 시계열을 반환합니다.

        Raises:
            DataUnavailable: 알려진 영역과 기본 영역이 모두 없거나 실측 조회 실패
        """
        area = self.area_for(area_id) or self.default_flow_area
        if area is None:
            metrics.density_queries.labels(mode=self.mode, outcome="unknown_area").inc()
            raise DataUnavailable(f"알 수 없는 영역입니다 area_id:{area_id}")

        if not self.is_live:
            metrics.density_queries.labels(mode="synthetic", outcome="success").inc()
            return synthetic_flow(area_id, self.rng, now=self.clock())

        end = self.clock()
        start = end - timedelta(minutes=self.flow_hours * self.window_minutes)
        intervals = await self._retrieve(area, start, end, self.precision, area_id)

        series: List[FlowSample] = [
            FlowSample(
                timestamp=interval.get("endTime") or interval.get("startTime") or utc_iso(end),
                total_devices=interval_total(interval)
            )
            for interval in intervals
        ]
        return FlowSeries(area_id=area_id, interval_minutes=self.window_minutes, series=series)

    async def _retrieve(self, area: Area, start: datetime, end: datetime,
                        precision: int, area_id: str) -> List[Dict[str, Any]]:
        boundary = area_boundary(area)
        try:
            intervals = await self.provider.retrieve(boundary, start, end, precision)
        except DataUnavailable:
            metrics.density_queries.labels(mode="live", outcome="failure").inc()
            raise
        except CrowdSafeError as e:
            metrics.density_queries.labels(mode="live", outcome="failure").inc()
            log.error(f"실측 밀도 조회 실패 area:{area_id} code:{e.code} error:{e.message}")
            raise DataUnavailable(f"밀도 데이터를 가져올 수 없습니다: {e.message}") from e
        except Exception as e:
            metrics.density_queries.labels(mode="live", outcome="failure").inc()
            log.error(f"실측 밀도 조회 오류 area:{area_id} error:{e!r}")
            raise DataUnavailable(f"밀도 데이터를 가져올 수 없습니다: {e!r}") from e

        metrics.density_queries.labels(mode="live", outcome="success").inc()
        return list(intervals or [])
