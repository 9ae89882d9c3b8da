"""
Port 모듈 단위 테스트

이 모듈은 포트 인터페이스를 만족하는 인메모리 구현이
기능 계층에 그대로 연결되는지 테스트합니다.
"""

import pytest
from datetime import datetime, timezone
from crowdsafe.adapters.oauth.token_cache import TokenCache
from crowdsafe.core.errors import UpstreamAuthError
from crowdsafe.core.models import Point
from crowdsafe.features.density import DensityAggregator
from crowdsafe.features.geofence import GeofenceEngine
from crowdsafe.features.routing import RouteRiskScorer
from crowdsafe.ports import (
    AlertSubscriber, CredentialAuthorityPort, DensityProviderPort, PathfinderPort, WebhookPort
)

NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


class StaticAuthority:
    """고정 토큰을 발급하는 자격 증명 포트 구현"""

    def __init__(self):
        self.calls = []

    async def exchange(self, scopes, audience=None):
        self.calls.append((tuple(scopes), audience))
        return f"token-{len(self.calls)}", 60


class StaticDensityProvider:
    """고정 셀 하나를 돌려주는 밀도 제공자 포트 구현"""

    async def retrieve(self, boundary, start, end, precision):
        return [{
            "startTime": "2025-03-14T11:00:00Z",
            "endTime": "2025-03-14T12:00:00Z",
            "cellPopulationDensityData": [
                {"geohash": "sxfsg0s", "dataType": "DENSITY_ESTIMATION", "pplDensity": 250}
            ],
        }]


class StraightPathfinder:
    """두 점을 잇는 경로 포트 구현"""

    async def route(self, origin, destination):
        return [origin, destination], 300.0


class RecordingWebhook:
    """발송 내역을 기록하는 웹훅 포트 구현"""

    def __init__(self):
        self.sent = []

    async def deliver(self, url, event):
        self.sent.append((url, event))
        return True


class RecordingSubscriber:
    """경보 구독자 포트 구현"""

    def __init__(self):
        self.events = []

    async def deliver(self, event):
        self.events.append(event)


class TestCredentialAuthorityPort:
    """자격 증명 포트 테스트"""

    async def test_authority_drives_token_cache(self, fake_clock):
        authority: CredentialAuthorityPort = StaticAuthority()
        cache = TokenCache(authority, clock=fake_clock)

        assert await cache.get_token(["read"]) == "token-1"
        assert await cache.get_token(["read"]) == "token-1"
        assert authority.calls == [(("read",), None)]

    async def test_authority_error_propagates(self, fake_clock):
        class FailingAuthority:
            async def exchange(self, scopes, audience=None):
                raise UpstreamAuthError("invalid_client")

        cache = TokenCache(FailingAuthority(), clock=fake_clock)
        with pytest.raises(UpstreamAuthError, match="invalid_client"):
            await cache.get_token(["read"])


class TestDensityProviderPort:
    """밀도 제공자 포트 테스트"""

    async def test_provider_drives_live_snapshot(self, bucharest_square):
        provider: DensityProviderPort = StaticDensityProvider()
        density = DensityAggregator(provider, live=True, clock=lambda: NOW)

        snap = await density.snapshot("plaza", bucharest_square)

        assert snap.total_devices == 250
        assert len(snap.points) == 1


class TestAlertPorts:
    """경보 전달 포트 테스트"""

    async def test_subscriber_and_webhook(self, bucharest_square):
        webhook: WebhookPort = RecordingWebhook()
        subscriber: AlertSubscriber = RecordingSubscriber()
        density = DensityAggregator(StaticDensityProvider(), live=True, clock=lambda: NOW)
        engine = GeofenceEngine(density, webhook=webhook)
        engine.subscribe(subscriber)
        engine.add_rule({
            "name": "plaza",
            "polygon": bucharest_square.model_dump(by_alias=True),
            "thresholdDevices": 100,
            "alertChannels": ["ui", "webhook"],
            "webhookUrl": "https://hooks.example.org/crowd",
        })

        await engine.run_cycle()

        assert [e.level for e in subscriber.events] == ["critical"]
        assert webhook.sent[0][0] == "https://hooks.example.org/crowd"


class TestPathfinderPort:
    """경로 탐색 포트 테스트"""

    async def test_pathfinder_drives_scored_plan(self):
        pathfinder: PathfinderPort = StraightPathfinder()
        density = DensityAggregator(StaticDensityProvider(), live=True, clock=lambda: NOW)
        scorer = RouteRiskScorer(density, GeofenceEngine(density), pathfinder,
                                 clock=lambda: datetime(2025, 3, 14, 12, 0))
        origin = Point(latitude=44.4268, longitude=26.1025)
        destination = Point(latitude=44.439, longitude=26.096)

        plan = await scorer.plan_route(origin, destination)

        assert plan.fallback is False
        assert plan.path == [origin, destination]
        # 평균 250 -> 중간 밀도 배수 1.15
        assert plan.eta_minutes == 6
        assert plan.advisories[0].startswith("Moderate crowd density along route")
