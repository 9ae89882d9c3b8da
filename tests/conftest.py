"""
테스트 설정 및 픽스처

이 모듈은 pytest 설정과 공통 픽스처를 제공합니다.
"""

import random
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from crowdsafe.settings import Settings
from crowdsafe.core.models import AlertEvent, Circle, Point, Polygon


def make_session(method: str = "post", status: int = 200, json_body=None, exc: Exception = None):
    """
    aiohttp ClientSession 대역을 만듭니다.

    session.<method>(...) 는 async with 로 사용할 수 있는 컨텍스트를 반환하고,
    exc가 주어지면 호출 시 해당 예외를 던집니다.
    """
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=json_body)

    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp)
    ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.closed = False
    session.close = AsyncMock()
    call = getattr(session, method)
    if exc is not None:
        call.side_effect = exc
    else:
        call.return_value = ctx
    return session


class FakeClock:
    """수동으로 진행시키는 단조 시계"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def session_factory():
    """aiohttp 세션 대역 팩토리"""
    return make_session


@pytest.fixture
def fake_clock():
    """테스트용 단조 시계"""
    return FakeClock()


@pytest.fixture
def rng():
    """시드 고정 난수 생성기"""
    return random.Random(42)


@pytest.fixture
def fixed_now():
    """고정 UTC 시각"""
    return datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def bucharest_square():
    """부쿠레슈티 중심부 열린 사각형 폴리곤"""
    return Polygon(boundary=[
        Point(latitude=44.42, longitude=26.09),
        Point(latitude=44.42, longitude=26.11),
        Point(latitude=44.44, longitude=26.11),
        Point(latitude=44.44, longitude=26.09),
    ])


@pytest.fixture
def bucharest_circle():
    """부쿠레슈티 중심 반경 500m 원"""
    return Circle(center=Point(latitude=44.4268, longitude=26.1025), radius=500)


@pytest.fixture
def sample_settings():
    """테스트용 설정"""
    settings = Settings()
    settings.observability.service_name = "test-service"
    settings.observability.build_version = "1.0.0"
    settings.observability.log_level = "INFO"
    settings.observability.http_port = 8080
    return settings


@pytest.fixture
def sample_event():
    """테스트용 경보 이벤트"""
    return AlertEvent(
        rule_id="rule-1",
        triggered_at="2025-03-14T12:00:00Z",
        total_devices=150,
        level="warning",
        message="High density detected. Monitor and prepare resources."
    )
