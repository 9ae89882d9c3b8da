"""
Route risk scoring functions for CrowdSafe.

This module contains pure functions that turn a route's sampled density,
alert-zone crossings, length and departure hour into advisories and an
adjusted ETA.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple
from .models import Area, Circle, GeofenceRule, Point, Polygon
from .normalize import ensure_closed
from crowdsafe.common.geo import path_intersects_circle, path_intersects_polygon

# 평균 밀도 구간: (하한, ETA 배수, 안내 문구) - 내림차순
DENSITY_BANDS: List[Tuple[float, float, str]] = [
    (800, 1.5, "Very high crowd density along route; expect significant delays"),
    (400, 1.3, "High crowd density along route; expect delays"),
    (150, 1.15, "Moderate crowd density along route"),
    (50, 1.0, "Low crowd density along route"),
]

HOTSPOT_THRESHOLD = 1000
CRITICAL_ZONE_THRESHOLD = 5000
ZONE_PENALTY_MINUTES = 2.0
LONG_DISTANCE_KM = 10.0

MORNING_RUSH = (7, 10)
EVENING_RUSH = (16, 19)
RUSH_MULTIPLIERS = {"morning": 1.25, "evening": 1.3}

ROUTE_CLEAR = "Route clear"

@dataclass(frozen=True)
class RouteRisk:
    """경로 위험도 요약"""
    avg_density: float = 0.0
    max_density: float = 0.0
    hotspot: Optional[Point] = None
    critical_zones: int = 0
    high_density_zones: int = 0
    distance_km: float = 0.0
    hour: int = 12

def classify_zone(rule: GeofenceRule, critical_threshold: int = CRITICAL_ZONE_THRESHOLD) -> str:
    """교차한 규칙을 critical / high-density 로 분류합니다."""
    return "critical" if rule.threshold_devices > critical_threshold else "high-density"

def path_intersects_area(path: List[Point], area: Area) -> bool:
    """경로 폴리라인이 원형 또는 폴리곤 영역과 겹치는지 확인합니다."""
    coords = [p.as_tuple() for p in path]
    if isinstance(area, Circle):
        return path_intersects_circle(coords, area.center.as_tuple(), area.radius)
    if isinstance(area, Polygon):
        return path_intersects_polygon(coords, ensure_closed(area).ring())
    raise TypeError(f"지원하지 않는 영역 타입: {type(area).__name__}")

def time_of_day(hour: int) -> Optional[str]:
    """morning / evening (러시아워), night, 또는 None"""
    if MORNING_RUSH[0] <= hour < MORNING_RUSH[1]:
        return "morning"
    if EVENING_RUSH[0] <= hour < EVENING_RUSH[1]:
        return "evening"
    if hour >= 22 or hour < 5:
        return "night"
    return None

def density_band(avg_density: float) -> Optional[Tuple[float, float, str]]:
    for band in DENSITY_BANDS:
        if avg_density >= band[0]:
            return band
    return None

def density_multiplier(avg_density: float) -> float:
    band = density_band(avg_density)
    return band[1] if band else 1.0

def compose_advisories(risk: RouteRisk) -> List[str]:
    """
    경로 안내 문구를 고정된 우선순위로 구성합니다.

    조건에 해당하는 문구는 모두 포함되며, 아무것도 없으면 "Route clear" 하나를 반환합니다.
    """
    advisories: List[str] = []

    if risk.critical_zones > 0:
        advisories.append(f"Route crosses {risk.critical_zones} critical alert zone(s); consider an alternative")
    if risk.high_density_zones > 0:
        advisories.append(f"Route crosses {risk.high_density_zones} high-density alert zone(s)")

    band = density_band(risk.avg_density)
    if band:
        advisories.append(f"{band[2]} (avg ~{round(risk.avg_density)} devices)")

    if risk.hotspot is not None and risk.max_density >= HOTSPOT_THRESHOLD:
        advisories.append(
            f"Hotspot near ({risk.hotspot.latitude:.4f}, {risk.hotspot.longitude:.4f}) "
            f"with ~{round(risk.max_density)} devices"
        )

    period = time_of_day(risk.hour)
    if period == "morning":
        advisories.append("Morning rush hour: allow extra travel time")
    elif period == "evening":
        advisories.append("Evening rush hour: allow extra travel time")
    elif period == "night":
        advisories.append("Night travel: prefer well-lit, busier streets")

    if risk.distance_km > LONG_DISTANCE_KM:
        advisories.append(f"Long route ({risk.distance_km:.1f} km): plan for extra travel time")

    return advisories or [ROUTE_CLEAR]

def adjust_eta(base_minutes: float, risk: RouteRisk) -> int:
    """
    기본 ETA에 밀도 배수, 경보 구역 가산, 러시아워 배수를 순서대로 적용합니다.

    Returns:
        반올림된 분 단위 ETA (음수 없음)
    """
    eta = max(0.0, base_minutes) * density_multiplier(risk.avg_density)
    eta += ZONE_PENALTY_MINUTES * (risk.critical_zones + risk.high_density_zones)
    eta *= RUSH_MULTIPLIERS.get(time_of_day(risk.hour) or "", 1.0)
    return max(0, int(round(eta)))
