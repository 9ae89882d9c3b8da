"""
Route risk scoring feature for CrowdSafe.

This module plans a route between two points, samples crowd density
along it, intersects it with active alert zones and returns an adjusted
ETA with advisories. Planning never fails outward: any failure degrades
to the synthetic straight-line fallback plan.
"""

import asyncio
import random
from datetime import datetime
from typing import Callable, List, Optional, Tuple
from crowdsafe.common.geo import path_length_km, sample_indices
from crowdsafe.core.errors import PathfinderUnavailable
from crowdsafe.core.models import Circle, Point, RoutePlan
from crowdsafe.core.route_scoring import (
    CRITICAL_ZONE_THRESHOLD, RouteRisk, adjust_eta, classify_zone,
    compose_advisories, path_intersects_area
)
from crowdsafe.core.synthetic import fallback_route
from crowdsafe.features.density import DensityAggregator
from crowdsafe.features.geofence import GeofenceEngine
from crowdsafe.ports.pathfinder import PathfinderPort
from crowdsafe.observability import metrics
from crowdsafe.observability.logging_setup import get_logger

log = get_logger("crowdsafe.routing")

class RouteRiskScorer:
    """경로 위험도 평가기"""

    def __init__(self,
                 density: DensityAggregator,
                 geofence: GeofenceEngine,
                 pathfinder: Optional[PathfinderPort] = None,
                 *,
                 sample_count: int = 10,
                 sample_radius_m: float = 200,
                 pathfinder_timeout: float = 5.0,
                 critical_threshold: int = CRITICAL_ZONE_THRESHOLD,
                 rng: Optional[random.Random] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        초기화합니다.

        Args:
            density: 밀도 집계기
            geofence: 활성 규칙 조회용 지오펜스 엔진
            pathfinder: 외부 경로 탐색기 (없으면 항상 대체 경로)
            sample_count: 경로 밀도 샘플 수
            sample_radius_m: 샘플 지점 주변 조회 반경 (미터)
            pathfinder_timeout: 경로 탐색 타임아웃 (초)
            critical_threshold: critical 구역으로 분류할 규칙 임계값
            rng: 대체 경로용 난수 생성기
            clock: 현지 시각 공급자 (시간대 안내용)
        """
        self.density = density
        self.geofence = geofence
        self.pathfinder = pathfinder
        self.sample_count = sample_count
        self.sample_radius_m = sample_radius_m
        self.pathfinder_timeout = pathfinder_timeout
        self.critical_threshold = critical_threshold
        self.rng = rng or random.Random()
        self.clock = clock or datetime.now

    async def plan_route(self, from_point: Point, to_point: Point) -> RoutePlan:
        """
        경로를 계획합니다. 예외를 던지지 않습니다.

        Returns:
            RoutePlan (실패 시 fallback=True인 대체 경로)
        """
        with metrics.route_plan_seconds.time():
            try:
                path, duration_sec = await self._find_path(from_point, to_point)
            except PathfinderUnavailable as e:
                log.warning(f"경로 탐색 불가, 대체 경로 사용 error:{e}")
                return self._fallback(from_point, to_point)

            try:
                plan = await self._score(from_point, to_point, path, duration_sec)
            except Exception as e:
                log.error(f"경로 위험도 평가 실패, 대체 경로 사용 error:{e!r}")
                return self._fallback(from_point, to_point)

        metrics.route_plans.labels(mode="scored").inc()
        return plan

    def _fallback(self, from_point: Point, to_point: Point) -> RoutePlan:
        metrics.route_plans.labels(mode="fallback").inc()
        return fallback_route(from_point, to_point, self.rng)

    async def _find_path(self, origin: Point, destination: Point) -> Tuple[List[Point], float]:
        if self.pathfinder is None:
            raise PathfinderUnavailable("경로 탐색기가 설정되지 않았습니다")
        try:
            return await asyncio.wait_for(self.pathfinder.route(origin, destination), self.pathfinder_timeout)
        except PathfinderUnavailable:
            raise
        except asyncio.TimeoutError as e:
            raise PathfinderUnavailable(f"경로 탐색 타임아웃 {self.pathfinder_timeout}s") from e
        except Exception as e:
            raise PathfinderUnavailable(f"경로 탐색 오류: {e!r}") from e

    async def sample_path(self, path: List[Point]) -> List[Tuple[Point, float]]:
        """
        경로를 균등 간격으로 샘플링해 각 지점 주변 디바이스 수를 조회합니다.

        실패한 샘플은 결과에서 제외됩니다.
        """
        samples = [path[i] for i in sample_indices(len(path), self.sample_count)]
        results = await asyncio.gather(
            *(self.density.snapshot(f"route-sample-{i}",
                                    Circle(center=p, radius=self.sample_radius_m),
                                    remember=False)
              for i, p in enumerate(samples)),
            return_exceptions=True
        )

        observed: List[Tuple[Point, float]] = []
        for point, result in zip(samples, results):
            if isinstance(result, BaseException):
                log.debug(f"경로 샘플 조회 실패 lat:{point.latitude:.4f} lon:{point.longitude:.4f} error:{result!r}")
                continue
            observed.append((point, float(result.total_devices)))
        return observed

    def count_zones(self, path: List[Point]) -> Tuple[int, int]:
        """경로가 지나는 활성 규칙 영역을 (critical, high-density) 개수로 셉니다."""
        critical = high = 0
        for rule in self.geofence.active_rules():
            if not path_intersects_area(path, rule.polygon):
                continue
            if classify_zone(rule, self.critical_threshold) == "critical":
                critical += 1
            else:
                high += 1
        return critical, high

    async def _score(self, origin: Point, destination: Point,
                     path: List[Point], duration_sec: float) -> RoutePlan:
        observed = await self.sample_path(path)
        avg_density = sum(c for _, c in observed) / len(observed) if observed else 0.0
        hotspot, max_density = max(observed, key=lambda s: s[1]) if observed else (None, 0.0)

        critical, high = self.count_zones(path)
        risk = RouteRisk(
            avg_density=avg_density,
            max_density=max_density,
            hotspot=hotspot,
            critical_zones=critical,
            high_density_zones=high,
            distance_km=path_length_km([p.as_tuple() for p in path]),
            hour=self.clock().hour
        )

        advisories = compose_advisories(risk)
        eta = adjust_eta(duration_sec / 60.0, risk)
        log.info(f"경로 평가 완료 points:{len(path)} avg:{avg_density:.0f} max:{max_density:.0f} "
                 f"critical:{critical} high:{high} eta:{eta}")

        return RoutePlan(
            from_point=origin,
            to_point=destination,
            path=path,
            eta_minutes=eta,
            advisories=advisories
        )
