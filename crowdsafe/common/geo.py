"""
Geographic utilities for CrowdSafe.

This module provides geographic calculations including
distance calculation, point-in-polygon testing, geohash decoding,
polyline sampling and path/area intersection tests.
"""

import math
import random
from typing import List, Tuple, Sequence

# (경도, 위도) 튜플
LonLat = Tuple[float, float]

EARTH_RADIUS_KM = 6371.0
METERS_PER_DEG_LAT = 111320.0

GEOHASH_BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"

def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    두 지점 간의 Haversine 거리를 계산합니다 (킬로미터).

    Args:
        lat1: 첫 번째 지점의 위도
        lon1: 첫 번째 지점의 경도
        lat2: 두 번째 지점의 위도
        lon2: 두 번째 지점의 경도

    Returns:
        두 지점 간의 거리 (킬로미터)
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2) - math.radians(lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2)
    c = 2 * math.asin(min(1.0, math.sqrt(a)))

    return c * EARTH_RADIUS_KM

def point_in_polygon(point: LonLat, polygon: Sequence[LonLat]) -> bool:
    """
    점이 폴리곤 내부에 있는지 Ray casting 알고리즘으로 확인합니다.

    Args:
        point: 확인할 점 (경도, 위도)
        polygon: 폴리곤의 꼭짓점들 [(경도, 위도), ...]

    Returns:
        점이 폴리곤 내부에 있으면 True, 외부에 있으면 False
    """
    if len(polygon) < 3:
        return False

    x, y = point
    n = len(polygon)
    inside = False

    p1x, p1y = polygon[0]
    for i in range(1, n + 1):
        p2x, p2y = polygon[i % n]
        if y > min(p1y, p2y):
            if y <= max(p1y, p2y):
                if x <= max(p1x, p2x):
                    if p1y != p2y:
                        xinters = (y - p1y) * (p2x - p1x) / (p2y - p1y) + p1x
                    if p1x == p2x or x <= xinters:
                        inside = not inside
        p1x, p1y = p2x, p2y

    return inside

def calculate_bounding_box(polygon: Sequence[LonLat]) -> Tuple[float, float, float, float]:
    """
    폴리곤의 경계 상자를 계산합니다.

    Returns:
        (min_lon, min_lat, max_lon, max_lat)
    """
    if not polygon:
        return (0, 0, 0, 0)

    lons = [p[0] for p in polygon]
    lats = [p[1] for p in polygon]

    return (min(lons), min(lats), max(lons), max(lats))

def decode_geohash(code: str) -> Tuple[float, float]:
    """
    geohash 문자열을 셀 중심 좌표로 디코딩합니다.

    Args:
        code: geohash 문자열

    Returns:
        (위도, 경도)

    Raises:
        ValueError: geohash 문자가 유효하지 않은 경우
    """
    if not code:
        raise ValueError("빈 geohash")

    lat_lo, lat_hi = -90.0, 90.0
    lon_lo, lon_hi = -180.0, 180.0
    even = True

    for ch in code.lower():
        idx = GEOHASH_BASE32.find(ch)
        if idx < 0:
            raise ValueError(f"잘못된 geohash 문자: {ch!r} in {code!r}")
        for mask in (16, 8, 4, 2, 1):
            # 짝수 비트는 경도, 홀수 비트는 위도
            if even:
                mid = (lon_lo + lon_hi) / 2
                if idx & mask:
                    lon_lo = mid
                else:
                    lon_hi = mid
            else:
                mid = (lat_lo + lat_hi) / 2
                if idx & mask:
                    lat_lo = mid
                else:
                    lat_hi = mid
            even = not even

    return ((lat_lo + lat_hi) / 2, (lon_lo + lon_hi) / 2)

def path_length_km(path: Sequence[Tuple[float, float]]) -> float:
    """(위도, 경도) 폴리라인의 총 길이를 킬로미터로 계산합니다."""
    total = 0.0
    for (lat1, lon1), (lat2, lon2) in zip(path, path[1:]):
        total += haversine_distance(lat1, lon1, lat2, lon2)
    return total

def sample_indices(length: int, count: int) -> List[int]:
    """
    길이 length인 시퀀스에서 균등 간격의 인덱스를 최대 count개 고릅니다.

    양 끝점은 항상 포함됩니다.
    """
    if length <= 0 or count <= 0:
        return []
    if length <= count:
        return list(range(length))
    if count == 1:
        return [0]

    indices = []
    for i in range(count):
        idx = round(i * (length - 1) / (count - 1))
        if not indices or indices[-1] != idx:
            indices.append(idx)
    return indices

def _to_local_meters(lat: float, lon: float, lat0: float, lon0: float) -> Tuple[float, float]:
    # 기준점 주변 등거리 원통 투영
    x = (lon - lon0) * METERS_PER_DEG_LAT * math.cos(math.radians(lat0))
    y = (lat - lat0) * METERS_PER_DEG_LAT
    return x, y

def point_segment_distance_m(lat: float, lon: float,
                             a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """
    점에서 선분 (a, b)까지의 최단 거리를 미터로 계산합니다.

    a, b는 (위도, 경도) 튜플입니다.
    """
    ax, ay = _to_local_meters(a[0], a[1], lat, lon)
    bx, by = _to_local_meters(b[0], b[1], lat, lon)
    dx, dy = bx - ax, by - ay
    seg_len_sq = dx * dx + dy * dy
    if seg_len_sq == 0:
        return math.hypot(ax, ay)
    t = max(0.0, min(1.0, -(ax * dx + ay * dy) / seg_len_sq))
    return math.hypot(ax + t * dx, ay + t * dy)

def _orientation(p: LonLat, q: LonLat, r: LonLat) -> int:
    val = (q[1] - p[1]) * (r[0] - q[0]) - (q[0] - p[0]) * (r[1] - q[1])
    if abs(val) < 1e-15:
        return 0
    return 1 if val > 0 else 2

def _on_segment(p: LonLat, q: LonLat, r: LonLat) -> bool:
    return (min(p[0], r[0]) <= q[0] <= max(p[0], r[0]) and
            min(p[1], r[1]) <= q[1] <= max(p[1], r[1]))

def segments_intersect(p1: LonLat, p2: LonLat, q1: LonLat, q2: LonLat) -> bool:
    """두 선분이 교차(접촉 포함)하는지 확인합니다."""
    o1 = _orientation(p1, p2, q1)
    o2 = _orientation(p1, p2, q2)
    o3 = _orientation(q1, q2, p1)
    o4 = _orientation(q1, q2, p2)

    if o1 != o2 and o3 != o4:
        return True

    # 공선(collinear) 특수 경우
    if o1 == 0 and _on_segment(p1, q1, p2):
        return True
    if o2 == 0 and _on_segment(p1, q2, p2):
        return True
    if o3 == 0 and _on_segment(q1, p1, q2):
        return True
    if o4 == 0 and _on_segment(q1, p2, q2):
        return True

    return False

def path_intersects_polygon(path: Sequence[Tuple[float, float]], ring: Sequence[LonLat]) -> bool:
    """
    (위도, 경도) 폴리라인이 폴리곤과 겹치는지 확인합니다.

    Args:
        path: 경로 [(위도, 경도), ...]
        ring: 폴리곤 링 [(경도, 위도), ...]
    """
    if len(ring) < 3 or not path:
        return False

    pts = [(lon, lat) for lat, lon in path]

    # 경로 꼭짓점 중 하나라도 폴리곤 내부에 있는지
    for pt in pts:
        if point_in_polygon(pt, ring):
            return True

    # 경로 선분이 폴리곤 경계를 가로지르는지
    edges = list(zip(ring, list(ring[1:]) + [ring[0]]))
    for a, b in zip(pts, pts[1:]):
        for c, d in edges:
            if segments_intersect(a, b, c, d):
                return True

    return False

def path_intersects_circle(path: Sequence[Tuple[float, float]],
                           center: Tuple[float, float], radius_m: float) -> bool:
    """(위도, 경도) 폴리라인이 원(중심 위도/경도, 반경 미터)과 겹치는지 확인합니다."""
    if not path:
        return False
    lat, lon = center
    if len(path) == 1:
        return haversine_distance(lat, lon, path[0][0], path[0][1]) * 1000 <= radius_m
    for a, b in zip(path, path[1:]):
        if point_segment_distance_m(lat, lon, a, b) <= radius_m:
            return True
    return False

def random_point_in_disc(lat: float, lon: float, radius_m: float,
                         rng: random.Random) -> Tuple[float, float]:
    """원 내부의 균일 분포 무작위 점을 (위도, 경도)로 반환합니다."""
    r = radius_m * math.sqrt(rng.random())
    theta = rng.uniform(0, 2 * math.pi)
    dlat = (r * math.sin(theta)) / METERS_PER_DEG_LAT
    cos_lat = max(1e-6, math.cos(math.radians(lat)))
    dlon = (r * math.cos(theta)) / (METERS_PER_DEG_LAT * cos_lat)
    return lat + dlat, lon + dlon

def circle_to_ring(lat: float, lon: float, radius_m: float, sides: int = 12) -> List[Tuple[float, float]]:
    """
    원을 정다각형 꼭짓점 목록 [(위도, 경도), ...]으로 근사합니다.

    첫 점과 마지막 점이 같은 닫힌 링을 반환합니다.
    """
    cos_lat = max(1e-6, math.cos(math.radians(lat)))
    ring = []
    for i in range(sides):
        theta = 2 * math.pi * i / sides
        ring.append((
            lat + (radius_m * math.sin(theta)) / METERS_PER_DEG_LAT,
            lon + (radius_m * math.cos(theta)) / (METERS_PER_DEG_LAT * cos_lat),
        ))
    ring.append(ring[0])
    return ring
