"""
Core domain models for CrowdSafe.

This module defines the core domain models using Pydantic v2
for type safety and validation. Field names are snake_case in Python
and camelCase on the wire (``model_dump(by_alias=True)``).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, FrozenSet, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# 숫자 카운트 (실측은 실수, 합성은 정수)
Number = Union[int, float]

AlertLevel = Literal["info", "warning", "critical"]
AlertChannel = Literal["ui", "webhook"]

def utc_iso(dt: Optional[datetime] = None) -> str:
    """UTC ISO-8601 문자열 (Z 접미사)"""
    dt = dt or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")

class WireModel(BaseModel):
    """camelCase 별칭을 사용하는 불변 모델 베이스"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

class Point(WireModel):
    """위경도 좌표"""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    def as_tuple(self) -> tuple:
        return (self.latitude, self.longitude)

class Circle(WireModel):
    """원형 영역 (반경 미터)"""
    area_type: Literal["CIRCLE"] = "CIRCLE"
    center: Point
    radius: float = Field(ge=1)

# 닫힘 점을 제외한 최대 꼭짓점 수
MAX_POLYGON_VERTICES = 15

class Polygon(WireModel):
    """다각형 영역. 최대 15개 꼭짓점, 16번째 점은 닫힘 점만 허용"""
    area_type: Literal["POLYGON"] = "POLYGON"
    boundary: List[Point] = Field(min_length=3, max_length=MAX_POLYGON_VERTICES + 1)

    @model_validator(mode="after")
    def _limit_vertices(self):
        # 닫힘 점을 덧붙여도 최대 길이를 넘지 않아야 함
        distinct = len(self.boundary) - (1 if self.is_closed() else 0)
        if distinct > MAX_POLYGON_VERTICES:
            raise ValueError(f"polygon allows at most {MAX_POLYGON_VERTICES} vertices, got {distinct}")
        return self

    def is_closed(self) -> bool:
        return self.boundary[0] == self.boundary[-1]

    def ring(self) -> List[tuple]:
        """(경도, 위도) 링"""
        return [(p.longitude, p.latitude) for p in self.boundary]

Area = Annotated[Union[Circle, Polygon], Field(discriminator="area_type")]

class LegacyPolygon(BaseModel):
    """레거시 [[경도, 위도], ...] 좌표 배열 형식"""
    coordinates: List[List[float]] = Field(min_length=3)

class DensityPoint(WireModel):
    lat: float
    lon: float
    count: Number = Field(ge=0)

class DensitySnapshot(WireModel):
    """영역 밀도 스냅샷. 요청마다 새로 생성되며 저장되지 않음"""
    area_id: str
    timestamp: str
    total_devices: Number = Field(ge=0)
    points: List[DensityPoint] = Field(default_factory=list)

class FlowSample(WireModel):
    timestamp: str
    total_devices: Number = Field(ge=0)

class FlowSeries(WireModel):
    """시간순 집계 디바이스 수 시계열"""
    area_id: str
    interval_minutes: int
    series: List[FlowSample] = Field(default_factory=list)

class GeofenceRuleSpec(WireModel):
    """id가 없는 지오펜스 규칙 입력"""
    name: str
    polygon: Area
    threshold_devices: int = Field(ge=1)
    alert_channels: FrozenSet[AlertChannel] = frozenset({"ui"})
    webhook_url: Optional[str] = None
    active: bool = True

    @field_validator("polygon", mode="before")
    @classmethod
    def _accept_legacy_polygon(cls, value):
        # 레거시 좌표 배열은 규칙 생성 시점에 Polygon으로 변환
        if isinstance(value, LegacyPolygon):
            return legacy_to_polygon(value)
        if isinstance(value, dict) and "coordinates" in value and "boundary" not in value:
            return legacy_to_polygon(LegacyPolygon.model_validate(value))
        return value

    @model_validator(mode="after")
    def _require_webhook_url(self):
        if "webhook" in self.alert_channels and not self.webhook_url:
            raise ValueError("webhook_url is required when the webhook channel is enabled")
        return self

class GeofenceRule(GeofenceRuleSpec):
    """규칙 저장소가 소유하는 지오펜스 규칙"""
    id: str

class AlertEvent(WireModel):
    """규칙 평가로 생성되는 일시적 경보 이벤트"""
    rule_id: str
    triggered_at: str
    total_devices: Number
    level: AlertLevel
    message: str

class RoutePlan(WireModel):
    """경로 계획 결과"""
    from_point: Point = Field(alias="from")
    to_point: Point = Field(alias="to")
    path: List[Point]
    eta_minutes: int = Field(ge=0)
    advisories: List[str] = Field(default_factory=list)
    fallback: bool = False

@dataclass(frozen=True)
class TokenCacheEntry:
    """토큰 캐시 항목 (expires_at은 캐시 시계 기준 초)"""
    access_token: str
    expires_at: float

def legacy_to_polygon(legacy: LegacyPolygon) -> Polygon:
    """레거시 [[경도, 위도], ...] 좌표를 Polygon으로 변환합니다."""
    return Polygon(boundary=[Point(latitude=lat, longitude=lon) for lon, lat, *_ in legacy.coordinates])
