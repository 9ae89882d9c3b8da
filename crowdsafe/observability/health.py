"""
HTTP endpoints for CrowdSafe.

This module implements health, readiness, metrics and info endpoints,
plus the thin REST layer over the alert, density and routing services
when a service container is supplied.
"""

import asyncio
import json
import time
from typing import Any, AsyncIterator, Dict, Optional
from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from crowdsafe.core.errors import CrowdSafeError, RuleNotFound
from crowdsafe.core.models import Point
from crowdsafe.core.normalize import to_area
from crowdsafe.features.geofence import GeofenceEngine, QueueSubscriber
from crowdsafe.settings import Settings
from crowdsafe.observability.logging_setup import get_logger

log = get_logger("crowdsafe.http")

KEEPALIVE_SEC = 20.0

def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)

def _point(raw: Any) -> Point:
    """{lat, lon} 또는 {latitude, longitude} 형식의 좌표를 Point로 변환합니다."""
    if not isinstance(raw, dict):
        raise ValueError("coordinate object required")
    if "lat" in raw or "lon" in raw:
        return Point(latitude=raw.get("lat"), longitude=raw.get("lon"))
    return Point.model_validate(raw)

async def alert_stream(engine: GeofenceEngine, request: Request, *,
                       keepalive_sec: float = KEEPALIVE_SEC,
                       queue_size: int = 100) -> AsyncIterator[str]:
    """
    경보 이벤트를 SSE 형식으로 흘려보냅니다.

    연결이 끊기면 구독을 해제합니다.
    """
    subscriber = QueueSubscriber(maxsize=queue_size)
    unsubscribe = engine.subscribe(subscriber)
    log.info(f"SSE 클라이언트 연결됨 subscriber:{unsubscribe.subscriber_id}")
    try:
        while not await request.is_disconnected():
            try:
                event = await asyncio.wait_for(subscriber.queue.get(), keepalive_sec)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            yield f"data: {json.dumps(_dump(event))}\n\n"
    finally:
        unsubscribe()
        log.info(f"SSE 클라이언트 연결 해제 subscriber:{unsubscribe.subscriber_id}")

def create_app(settings: Settings, services: Optional[Any] = None) -> FastAPI:
    """FastAPI 애플리케이션을 생성합니다."""
    app = FastAPI(
        title=settings.observability.service_name,
        version=settings.observability.build_version,
        description="CrowdSafe Crowd Density Analytics Service"
    )

    start_time = time.time()

    @app.exception_handler(CrowdSafeError)
    async def crowdsafe_error(_request: Request, exc: CrowdSafeError):
        log.warning(f"요청 처리 실패 code:{exc.code} status:{exc.status} message:{exc.message}")
        return JSONResponse(status_code=exc.status, content=exc.to_dict())

    @app.get("/health")
    async def health():
        """헬스 체크 엔드포인트"""
        return JSONResponse({
            "status": "ok",
            "service": settings.observability.service_name,
            "timestamp": time.time()
        })

    @app.get("/ready")
    async def ready():
        """레디니스 체크 엔드포인트"""
        body = {
            "status": "ready",
            "service": settings.observability.service_name,
            "timestamp": time.time()
        }
        if services is not None:
            body["density_mode"] = services.density.mode
            body["scheduler_running"] = services.scheduler.running
        return JSONResponse(body)

    @app.get("/metrics")
    async def metrics():
        """Prometheus 메트릭 엔드포인트"""
        if not settings.observability.metrics_enabled:
            raise HTTPException(status_code=503, detail="Metrics disabled")

        try:
            return Response(
                generate_latest(),
                media_type=CONTENT_TYPE_LATEST
            )
        except Exception as e:
            log.error(f"메트릭 생성 오류: {e}")
            raise HTTPException(status_code=500, detail="Metrics generation failed")

    @app.get("/info")
    async def info():
        """서비스 정보 엔드포인트"""
        uptime = time.time() - start_time
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "build_date": settings.observability.build_date,
            "uptime_seconds": int(uptime),
            "metrics_enabled": settings.observability.metrics_enabled,
            "log_level": settings.observability.log_level,
            "use_mock": settings.use_mock
        })

    endpoints = {
        "health": "/health",
        "ready": "/ready",
        "metrics": "/metrics",
        "info": "/info",
    }

    if services is not None:
        _mount_api(app, services)
        endpoints.update({
            "alert_rules": "/alerts/rules",
            "alert_stream": "/alerts/stream",
            "density_snapshot": "/density/snapshot",
            "density_flow": "/density/flow/{area_id}",
            "route_plan": "/routing/plan",
        })

    @app.get("/")
    async def root():
        """루트 엔드포인트"""
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "endpoints": endpoints
        })

    return app

def _mount_api(app: FastAPI, services: Any) -> None:
    geofence: GeofenceEngine = services.geofence

    @app.get("/alerts/rules")
    async def list_rules():
        rules = geofence.list_rules()
        log.info(f"규칙 목록 조회 count:{len(rules)}")
        return [_dump(r) for r in rules]

    @app.post("/alerts/rules")
    async def create_rule(payload: dict = Body(...)):
        try:
            rule = geofence.add_rule(payload)
        except ValueError as e:
            log.warning(f"잘못된 규칙 요청 name:{payload.get('name', 'unnamed')} error:{e}")
            return JSONResponse(status_code=400, content={"error": "Invalid rule", "details": str(e)})
        return _dump(rule)

    @app.get("/alerts/rules/{rule_id}")
    async def get_rule(rule_id: str):
        rule = geofence.get_rule(rule_id)
        if rule is None:
            raise RuleNotFound(f"알 수 없는 규칙입니다 id:{rule_id}")
        return _dump(rule)

    @app.delete("/alerts/rules/{rule_id}")
    async def delete_rule(rule_id: str):
        geofence.delete_rule(rule_id)
        return {"ok": True}

    @app.get("/alerts/stream")
    async def stream(request: Request):
        return StreamingResponse(
            alert_stream(geofence, request, queue_size=services.settings.geofence.subscriber_queue_size),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"}
        )

    @app.post("/density/snapshot")
    async def density_snapshot(payload: dict = Body(...)):
        try:
            area = to_area(payload.get("polygon") or payload.get("area") or {})
        except ValueError as e:
            log.warning(f"잘못된 영역 형식 error:{e}")
            return JSONResponse(status_code=400, content={
                "error": "Invalid polygon format. Use CAMARA format with areaType and boundary.",
                "details": str(e)
            })

        area_id = payload.get("areaId") or f"area-{int(time.time() * 1000)}"
        snap = await services.density.snapshot(area_id, area)
        log.info(f"스냅샷 응답 area:{area_id} devices:{snap.total_devices} points:{len(snap.points)}")
        return _dump(snap)

    @app.get("/density/flow/{area_id}")
    async def density_flow(area_id: str):
        series = await services.density.flow(area_id)
        log.info(f"흐름 응답 area:{area_id} samples:{len(series.series)}")
        return _dump(series)

    @app.post("/routing/plan")
    async def routing_plan(payload: dict = Body(...)):
        try:
            origin = _point(payload.get("from"))
            destination = _point(payload.get("to"))
        except ValueError as e:
            log.warning(f"잘못된 좌표 from:{payload.get('from')} to:{payload.get('to')}")
            return JSONResponse(status_code=400, content={"error": "Invalid coordinates", "details": str(e)})

        plan = await services.routing.plan_route(origin, destination)
        log.info(f"경로 응답 points:{len(plan.path)} eta:{plan.eta_minutes} advisories:{len(plan.advisories)}")
        return _dump(plan)
