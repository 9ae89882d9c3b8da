"""
Normalization functions for CrowdSafe.

This module contains pure functions for converting areas into their
query-ready form and raw population-density provider payloads into
internal domain models.
"""

import math
from typing import Any, Dict, List, Optional, Union
from .models import Area, Circle, DensityPoint, LegacyPolygon, Point, Polygon, legacy_to_polygon
from crowdsafe.common.geo import circle_to_ring, decode_geohash
from crowdsafe.observability.logging_setup import get_logger

log = get_logger("crowdsafe.normalize")

DENSITY_ESTIMATION = "DENSITY_ESTIMATION"

def ensure_closed(area: Area) -> Area:
    """
    폴리곤 경계의 첫 점과 마지막 점이 같도록 닫습니다.

    이미 닫혀 있거나 원형 영역이면 그대로 반환합니다.
    """
    if isinstance(area, Circle):
        return area
    boundary = area.boundary
    if boundary and boundary[0] != boundary[-1]:
        return Polygon(boundary=[*boundary, boundary[0]])
    return area

def to_area(raw: Union[Area, LegacyPolygon, Dict[str, Any]]) -> Area:
    """
    원시 영역 입력을 Area로 변환합니다.

    CAMARA 형식 (areaType=CIRCLE/POLYGON)과 레거시 좌표 배열을 모두 받습니다.
    """
    if isinstance(raw, (Circle, Polygon)):
        return raw
    if isinstance(raw, LegacyPolygon):
        return legacy_to_polygon(raw)
    if not isinstance(raw, dict):
        raise ValueError(f"영역은 객체여야 합니다: {type(raw).__name__}")

    area_type = str(raw.get("areaType") or raw.get("area_type") or "").upper()
    if area_type == "CIRCLE":
        return Circle.model_validate(raw)
    if area_type == "POLYGON":
        return Polygon.model_validate(raw)
    if "coordinates" in raw:
        log.debug("레거시 폴리곤 형식 변환")
        return legacy_to_polygon(LegacyPolygon.model_validate(raw))

    raise ValueError(f"알 수 없는 영역 형식: keys:{sorted(raw.keys())}")

def area_boundary(area: Area, circle_sides: int = 12) -> List[Point]:
    """
    상위 밀도 API에 보낼 폴리곤 경계를 만듭니다.

    원형 영역은 내접 정다각형으로 근사합니다.
    """
    if isinstance(area, Polygon):
        return list(ensure_closed(area).boundary)
    ring = circle_to_ring(area.center.latitude, area.center.longitude, area.radius, circle_sides)
    return [Point(latitude=lat, longitude=lon) for lat, lon in ring]

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)

def cell_count(cell: Dict[str, Any]) -> float:
    """
    밀도 셀 하나의 디바이스 수를 계산합니다.

    우선순위: pplDensity → (max+min)/2 반올림 → 0.
    DENSITY_ESTIMATION 타입이 아닌 셀은 0입니다.
    """
    if cell.get("dataType") != DENSITY_ESTIMATION:
        return 0
    direct = cell.get("pplDensity")
    if _is_number(direct):
        return direct
    hi, lo = cell.get("maxPplDensity"), cell.get("minPplDensity")
    if _is_number(hi) and _is_number(lo):
        # 0.5는 올림 (Math.round 동작)
        return math.floor((hi + lo) / 2 + 0.5)
    return 0

def cell_to_point(cell: Dict[str, Any]) -> Optional[DensityPoint]:
    """geohash 셀을 DensityPoint로 변환합니다. 디코딩 불가 셀은 None."""
    try:
        lat, lon = decode_geohash(str(cell.get("geohash") or ""))
    except ValueError as e:
        log.warning(f"geohash 디코딩 실패 cell:{cell.get('geohash')} error:{e}")
        return None
    return DensityPoint(lat=lat, lon=lon, count=max(0, cell_count(cell)))

def interval_points(interval: Dict[str, Any]) -> List[DensityPoint]:
    """시간 구간 하나의 셀들을 DensityPoint 목록으로 변환합니다."""
    points = []
    for cell in interval.get("cellPopulationDensityData") or []:
        point = cell_to_point(cell)
        if point is not None:
            points.append(point)
    return points

def interval_total(interval: Dict[str, Any]) -> float:
    """시간 구간의 총 디바이스 수"""
    return sum(max(0, cell_count(c)) for c in interval.get("cellPopulationDensityData") or [])
