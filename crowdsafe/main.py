# crowdsafe/main.py
import os, asyncio, random, signal
from dataclasses import dataclass
from typing import List, Optional
import uvicorn
from crowdsafe.settings import Settings
from crowdsafe.core.models import Point, Polygon
from crowdsafe.adapters.oauth.client import OAuthClient
from crowdsafe.adapters.oauth.token_cache import TokenCache
from crowdsafe.adapters.camara.client import PopulationDensityClient
from crowdsafe.adapters.osrm.client import OSRMPathfinder
from crowdsafe.adapters.webhook.sender import WebhookSender
from crowdsafe.features.density import DensityAggregator
from crowdsafe.features.geofence import GeofenceEngine
from crowdsafe.features.routing import RouteRiskScorer
from crowdsafe.orchestrators.scheduler import EvaluationScheduler
from crowdsafe.observability.health import create_app
from crowdsafe.observability.logging_setup import setup_logging_dev, get_logger

def _b(name, default=False): return os.getenv(name, str(default)).lower() in ("1","true","yes","y","on")

def _list(name, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw or not raw.strip(): return list(default)
    return [item for item in raw.replace(",", " ").split() if item]

def build_settings() -> Settings:
    s = Settings()
    # 플래그
    s.use_mock = _b("USE_MOCK", s.use_mock)

    # OAuth
    s.oauth.token_url = os.getenv("CAMARA_OAUTH_TOKEN_URL", s.oauth.token_url)
    s.oauth.discovery_url = os.getenv("CAMARA_OAUTH_DISCOVERY_URL", s.oauth.discovery_url)
    s.oauth.client_id = os.getenv("CAMARA_OAUTH_CLIENT_ID") or os.getenv("CAMARA_CLIENT_ID", s.oauth.client_id)
    s.oauth.client_secret = os.getenv("CAMARA_OAUTH_CLIENT_SECRET") or os.getenv("CAMARA_CLIENT_SECRET", s.oauth.client_secret)
    s.oauth.grant_type = os.getenv("CAMARA_OAUTH_GRANT_TYPE", s.oauth.grant_type)
    s.oauth.default_scopes = _list("CAMARA_OAUTH_SCOPES", _list("CAMARA_SCOPES", s.oauth.default_scopes))
    s.oauth.audience = os.getenv("CAMARA_OAUTH_AUDIENCE", s.oauth.audience)
    if os.getenv("CAMARA_OAUTH_RESOURCE"):
        s.oauth.additional_params["resource"] = os.getenv("CAMARA_OAUTH_RESOURCE")

    # CAMARA population density
    s.camara.enabled = _b("POPULATION_DENSITY_ENABLED", s.camara.enabled)
    s.camara.base_url = os.getenv("POPULATION_DENSITY_BASE_URL") or os.getenv("CAMARA_BASE_URL", s.camara.base_url)
    s.camara.scopes = _list("POPULATION_DENSITY_SCOPES", _list("CAMARA_SCOPES", s.camara.scopes))
    s.camara.audience = os.getenv("POPULATION_DENSITY_AUDIENCE", s.camara.audience)

    # 밀도
    s.density.precision = int(os.getenv("CAMARA_POPULATION_DENSITY_PRECISION", s.density.precision))
    s.density.flow_hours = int(os.getenv("CAMARA_POPULATION_DENSITY_FLOW_HOURS", s.density.flow_hours))
    if os.getenv("DENSITY_SEED"):
        s.density.seed = int(os.getenv("DENSITY_SEED"))

    # 지오펜스
    s.geofence.eval_interval_sec = float(os.getenv("ALERT_EVAL_INTERVAL_SEC", s.geofence.eval_interval_sec))

    # 경로
    s.routing.osrm_base_url = os.getenv("OSRM_BASE_URL", s.routing.osrm_base_url)
    s.routing.profile = os.getenv("OSRM_PROFILE", s.routing.profile)
    s.routing.timeout_sec = float(os.getenv("OSRM_TIMEOUT_SEC", s.routing.timeout_sec))

    # 관측성
    s.observability.metrics_enabled = _b("METRICS_ENABLED", s.observability.metrics_enabled)
    s.observability.http_port = int(os.getenv("METRICS_PORT", s.observability.http_port))
    s.observability.log_level = os.getenv("LOG_LEVEL", s.observability.log_level)

    return s

def rectangle(south: float, west: float, north: float, east: float) -> Polygon:
    """남서/북동 모서리로 닫힌 사각형 폴리곤을 만듭니다."""
    corners = [(south, west), (south, east), (north, east), (north, west), (south, west)]
    return Polygon(boundary=[Point(latitude=lat, longitude=lon) for lat, lon in corners])

@dataclass
class Services:
    """프로세스 수명 동안 공유되는 서비스 묶음"""
    settings: Settings
    density: DensityAggregator
    geofence: GeofenceEngine
    routing: RouteRiskScorer
    scheduler: EvaluationScheduler
    webhook: WebhookSender
    token_cache: Optional[TokenCache] = None
    oauth: Optional[OAuthClient] = None
    density_client: Optional[PopulationDensityClient] = None
    pathfinder: Optional[OSRMPathfinder] = None

    async def aclose(self) -> None:
        """소유한 HTTP 세션을 모두 닫습니다."""
        await self.scheduler.stop()
        for client in (self.oauth, self.density_client, self.pathfinder, self.webhook):
            if client is not None:
                await client.close()

def build_services(s: Settings) -> Services:
    log = get_logger()
    live = not s.use_mock and s.camara.enabled and bool(s.camara.base_url)
    rng = random.Random(s.density.seed) if s.density.seed is not None else random.Random()

    oauth = token_cache = density_client = None
    if live:
        oauth = OAuthClient(
            client_id=s.oauth.client_id,
            client_secret=s.oauth.client_secret,
            token_url=s.oauth.token_url,
            discovery_url=s.oauth.discovery_url,
            grant_type=s.oauth.grant_type,
            default_scopes=s.oauth.default_scopes,
            audience=s.oauth.audience,
            additional_params=s.oauth.additional_params,
            timeout=s.oauth.timeout_sec,
        )
        token_cache = TokenCache(
            oauth,
            default_ttl_sec=s.oauth.default_ttl_sec,
            refresh_margin_sec=s.oauth.refresh_margin_sec,
        )
        density_client = PopulationDensityClient(
            s.camara.base_url,
            token_cache,
            scopes=s.camara.scopes or s.oauth.default_scopes,
            audience=s.camara.audience or s.oauth.audience,
            timeout=s.camara.timeout_sec,
            max_retries=s.camara.max_retries,
            backoff_initial_sec=s.camara.backoff_initial_sec,
        )
        log.info(f"실측 밀도 모드 base_url:{s.camara.base_url}")
    else:
        log.info("합성 밀도 모드")

    default_area = rectangle(*s.density.default_flow_area) if s.density.default_flow_area else None
    density = DensityAggregator(
        density_client,
        live=live,
        window_minutes=s.density.window_minutes,
        precision=s.density.precision,
        flow_hours=s.density.flow_hours,
        default_flow_area=default_area,
        rng=rng,
    )

    webhook = WebhookSender(timeout=s.webhook.timeout_sec)
    geofence = GeofenceEngine(density, webhook=webhook)

    pathfinder = None
    if s.routing.osrm_base_url:
        pathfinder = OSRMPathfinder(s.routing.osrm_base_url, profile=s.routing.profile, timeout=s.routing.timeout_sec)
    routing = RouteRiskScorer(
        density,
        geofence,
        pathfinder,
        sample_count=s.routing.sample_count,
        sample_radius_m=s.routing.sample_radius_m,
        pathfinder_timeout=s.routing.timeout_sec,
        critical_threshold=s.routing.critical_threshold,
        rng=rng,
    )

    scheduler = EvaluationScheduler(
        geofence,
        interval_sec=s.geofence.eval_interval_sec,
        cycle_timeout_sec=s.geofence.cycle_timeout_sec,
    )

    return Services(
        settings=s,
        density=density,
        geofence=geofence,
        routing=routing,
        scheduler=scheduler,
        webhook=webhook,
        token_cache=token_cache,
        oauth=oauth,
        density_client=density_client,
        pathfinder=pathfinder,
    )

async def start_http(settings: Settings, services: Optional[Services] = None) -> asyncio.Task:
    app = create_app(settings, services)
    return asyncio.create_task(uvicorn.Server(
        uvicorn.Config(app, host="0.0.0.0", port=settings.observability.http_port, log_level="info")
    ).serve())

async def main():
    # 로거 초기화 (환경변수 LOG_LEVEL 우선)
    setup_logging_dev(os.getenv("LOG_LEVEL", "INFO"))
    log = get_logger()

    s = build_settings()
    log.info(f"설정 로드 완료 use_mock:{s.use_mock} interval:{s.geofence.eval_interval_sec}s")

    services = build_services(s)
    log.info("서비스 구성 완료")

    http_task = await start_http(s, services)
    log.info(f"HTTP 서버 시작됨 port:{s.observability.http_port}")

    services.scheduler.start()

    stop = asyncio.Future()
    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try: loop.add_signal_handler(sig, lambda: (not stop.done()) and stop.set_result(True))
            except NotImplementedError: pass
    except RuntimeError: pass

    await stop
    log.info("종료 신호 수신, 정리 중")
    http_task.cancel()
    await services.aclose()

def run():
    asyncio.run(main())

if __name__ == "__main__":
    run()
