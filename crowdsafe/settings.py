# crowdsafe/settings.py
from __future__ import annotations
from typing import Dict, List
from pydantic import BaseModel, Field

class OAuthSettings(BaseModel):
    token_url: str | None = None
    discovery_url: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    grant_type: str = "client_credentials"
    default_scopes: List[str] = Field(default_factory=list)
    audience: str | None = None
    additional_params: Dict[str, str] = Field(default_factory=dict)
    timeout_sec: float = 10.0
    refresh_margin_sec: float = 30.0       # 만료 30초 전 갱신
    default_ttl_sec: float = 300.0         # expires_in 누락 시

class CamaraSettings(BaseModel):
    enabled: bool = True                   # population density 제품 활성화
    base_url: str = ""
    scopes: List[str] = Field(default_factory=list)
    audience: str | None = None
    timeout_sec: float = 10.0
    max_retries: int = 1
    backoff_initial_sec: float = 0.5

class DensitySettings(BaseModel):
    window_minutes: int = 60
    precision: int = 7
    flow_hours: int = 6
    # 캐시에 없는 영역의 흐름 조회용 기본 사각형 (부쿠레슈티)
    default_flow_area: List[float] | None = Field(default_factory=lambda: [44.41, 26.08, 44.44, 26.12])
    seed: int | None = None

class GeofenceSettings(BaseModel):
    eval_interval_sec: float = 120.0
    cycle_timeout_sec: float | None = None
    subscriber_queue_size: int = 100

class RoutingSettings(BaseModel):
    osrm_base_url: str = "https://router.project-osrm.org"
    profile: str = "driving"
    timeout_sec: float = 5.0
    sample_count: int = 10
    sample_radius_m: float = 200.0
    critical_threshold: int = 5000

class WebhookSettings(BaseModel):
    timeout_sec: float = 5.0

class Observability(BaseModel):
    http_port: int = 8099
    metrics_enabled: bool = True
    service_name: str = "CrowdSafe"
    build_version: str = "0.1.0"
    build_date: str = "2025-01-01"
    log_level: str = "INFO"

class Settings(BaseModel):
    # 상위 플래그
    use_mock: bool = True

    # 하위 섹션 (기본값/팩토리로 누락 방지)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    camara: CamaraSettings = Field(default_factory=CamaraSettings)
    density: DensitySettings = Field(default_factory=DensitySettings)
    geofence: GeofenceSettings = Field(default_factory=GeofenceSettings)
    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    observability: Observability = Field(default_factory=Observability)
