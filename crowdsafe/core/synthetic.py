"""
Synthetic data generation for CrowdSafe.

Deterministic (given a seeded ``random.Random``) stand-ins for the upstream
density provider and the external path-finder. Nothing here touches the
network.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from .models import (
    Area, Circle, DensityPoint, DensitySnapshot, FlowSample, FlowSeries,
    Point, RoutePlan, utc_iso
)
from .normalize import ensure_closed
from crowdsafe.common.geo import calculate_bounding_box, path_length_km, random_point_in_disc

SNAPSHOT_POINTS = 200
FLOW_INTERVAL_MINUTES = 15
FLOW_SEGMENTS = 24
FLOW_FLOOR = 500

ROUTE_SEGMENTS = 10
ROUTE_JITTER_DEG = 0.0008
BASE_SPEED_KMH = 30.0

def _point_count(rng: random.Random) -> int:
    # 절반 확률로 1~3배 가중
    boost = rng.uniform(1, 3) if rng.random() > 0.5 else 1
    return round(rng.uniform(1, 50) * boost)

def synthetic_snapshot(area_id: str, area: Area, rng: random.Random,
                       now: Optional[datetime] = None,
                       total_points: int = SNAPSHOT_POINTS) -> DensitySnapshot:
    """
    영역 경계 내부에 균일 분포 점을 생성해 스냅샷을 만듭니다.

    폴리곤은 경계 상자, 원은 원판 내부에서 샘플링합니다.
    total_devices는 점 카운트의 정확한 합입니다.
    """
    points: List[DensityPoint] = []

    if isinstance(area, Circle):
        for _ in range(total_points):
            lat, lon = random_point_in_disc(area.center.latitude, area.center.longitude, area.radius, rng)
            points.append(DensityPoint(lat=lat, lon=lon, count=_point_count(rng)))
    else:
        min_lon, min_lat, max_lon, max_lat = calculate_bounding_box(ensure_closed(area).ring())
        for _ in range(total_points):
            lon = rng.uniform(min_lon, max_lon)
            lat = rng.uniform(min_lat, max_lat)
            points.append(DensityPoint(lat=lat, lon=lon, count=_point_count(rng)))

    return DensitySnapshot(
        area_id=area_id,
        timestamp=utc_iso(now),
        total_devices=sum(p.count for p in points),
        points=points
    )

def synthetic_flow(area_id: str, rng: random.Random, now: Optional[datetime] = None) -> FlowSeries:
    """15분 간격 24구간, 하한 500인 랜덤 워크 시계열"""
    now = now or datetime.now(timezone.utc)
    base = round(rng.uniform(1000, 5000))
    series = []
    for i in range(FLOW_SEGMENTS):
        ts = now - timedelta(minutes=(FLOW_SEGMENTS - i) * FLOW_INTERVAL_MINUTES)
        base = max(FLOW_FLOOR, base + round(rng.uniform(-400, 400)))
        series.append(FlowSample(timestamp=utc_iso(ts), total_devices=base))
    return FlowSeries(area_id=area_id, interval_minutes=FLOW_INTERVAL_MINUTES, series=series)

def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))

def fallback_route(origin: Point, destination: Point, rng: random.Random) -> RoutePlan:
    """
    직선 + 지터 경로와 속도 기반 ETA로 대체 경로를 만듭니다.

    추가 분석(밀도 샘플링, 경보 구역 교차)은 적용하지 않습니다.
    """
    path = []
    for i in range(ROUTE_SEGMENTS + 1):
        t = i / ROUTE_SEGMENTS
        lat = origin.latitude + (destination.latitude - origin.latitude) * t + rng.uniform(-ROUTE_JITTER_DEG, ROUTE_JITTER_DEG)
        lon = origin.longitude + (destination.longitude - origin.longitude) * t + rng.uniform(-ROUTE_JITTER_DEG, ROUTE_JITTER_DEG)
        path.append(Point(latitude=_clamp(lat, -90, 90), longitude=_clamp(lon, -180, 180)))

    distance_km = path_length_km([p.as_tuple() for p in path])
    congestion = rng.uniform(0.8, 1.6)
    speed_kmh = BASE_SPEED_KMH / congestion
    eta_minutes = max(0, round(distance_km / speed_kmh * 60))
    advisories = ["Avoid main boulevard due to crowding"] if congestion > 1.3 else ["Route clear"]

    return RoutePlan(
        from_point=origin,
        to_point=destination,
        path=path,
        eta_minutes=eta_minutes,
        advisories=advisories,
        fallback=True
    )
