"""
경로 위험도 평가기 단위 테스트

이 모듈은 경로 탐색 폴백, 밀도 샘플링, 경보 구역 교차 계산을 테스트합니다.
"""

import asyncio
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock
from crowdsafe.core.errors import DataUnavailable, PathfinderUnavailable
from crowdsafe.core.models import Circle, DensitySnapshot, Point, Polygon
from crowdsafe.features.geofence import GeofenceEngine
from crowdsafe.features.routing import RouteRiskScorer

ORIGIN = Point(latitude=44.4268, longitude=26.1025)
DESTINATION = Point(latitude=44.439, longitude=26.096)
PATH = [ORIGIN, Point(latitude=44.432, longitude=26.1), DESTINATION]
NOON = datetime(2025, 3, 14, 12, 0)


def density_with(total):
    async def snapshot(area_id, area, **_):
        if isinstance(total, Exception):
            raise total
        return DensitySnapshot(area_id=area_id, timestamp="2025-03-14T12:00:00Z", total_devices=total)

    density = MagicMock()
    density.snapshot = AsyncMock(side_effect=snapshot)
    return density


def pathfinder_with(result=None, exc=None):
    pathfinder = MagicMock()
    pathfinder.route = AsyncMock(return_value=result, side_effect=exc)
    return pathfinder


def make_scorer(density, pathfinder=None, geofence=None, **kwargs):
    geofence = geofence or GeofenceEngine(density)
    return RouteRiskScorer(density, geofence, pathfinder, clock=lambda: NOON, **kwargs)


class TestFallback:
    """대체 경로 테스트"""

    async def test_no_pathfinder(self, rng):
        scorer = make_scorer(density_with(0), rng=rng)

        plan = await scorer.plan_route(ORIGIN, DESTINATION)

        assert plan.fallback is True
        assert len(plan.path) >= 2
        assert plan.eta_minutes >= 0
        assert plan.advisories
        assert plan.from_point == ORIGIN
        assert plan.to_point == DESTINATION

    async def test_pathfinder_error(self, rng):
        scorer = make_scorer(density_with(0), pathfinder_with(exc=PathfinderUnavailable("NoRoute")), rng=rng)
        plan = await scorer.plan_route(ORIGIN, DESTINATION)
        assert plan.fallback is True

    async def test_pathfinder_timeout(self, rng):
        async def slow(_origin, _destination):
            await asyncio.sleep(1)
            return PATH, 600.0

        pathfinder = MagicMock()
        pathfinder.route = slow
        scorer = make_scorer(density_with(0), pathfinder, pathfinder_timeout=0.01, rng=rng)

        plan = await scorer.plan_route(ORIGIN, DESTINATION)

        assert plan.fallback is True

    async def test_unexpected_pathfinder_exception(self, rng):
        scorer = make_scorer(density_with(0), pathfinder_with(exc=KeyError("routes")), rng=rng)
        plan = await scorer.plan_route(ORIGIN, DESTINATION)
        assert plan.fallback is True

    async def test_scoring_failure(self, rng):
        geofence = MagicMock()
        geofence.active_rules.side_effect = RuntimeError("store unavailable")
        scorer = make_scorer(density_with(10), pathfinder_with((PATH, 600.0)), geofence=geofence, rng=rng)

        plan = await scorer.plan_route(ORIGIN, DESTINATION)

        assert plan.fallback is True


class TestScoredRoute:
    """평가된 경로 테스트"""

    async def test_quiet_route_is_clear(self):
        scorer = make_scorer(density_with(10), pathfinder_with((PATH, 600.0)))

        plan = await scorer.plan_route(ORIGIN, DESTINATION)

        assert plan.fallback is False
        assert plan.path == PATH
        assert plan.advisories == ["Route clear"]
        assert plan.eta_minutes == 10

    async def test_density_and_zone_crossings(self, bucharest_square):
        density = density_with(100)
        geofence = GeofenceEngine(density)
        square = bucharest_square.model_dump(by_alias=True)
        geofence.add_rule({"name": "stadium", "polygon": square, "thresholdDevices": 6000})
        geofence.add_rule({"name": "market", "polygon": square, "thresholdDevices": 100})
        geofence.add_rule({
            "name": "paris",
            "polygon": {"areaType": "CIRCLE", "center": {"latitude": 48.85, "longitude": 2.35}, "radius": 500},
            "thresholdDevices": 100,
        })
        geofence.add_rule({"name": "inactive", "polygon": square, "thresholdDevices": 100, "active": False})
        scorer = make_scorer(density, pathfinder_with((PATH, 600.0)), geofence=geofence)

        plan = await scorer.plan_route(ORIGIN, DESTINATION)

        assert plan.advisories[0].startswith("Route crosses 1 critical alert zone")
        assert plan.advisories[1].startswith("Route crosses 1 high-density alert zone")
        assert plan.advisories[2].startswith("Low crowd density along route")
        # 10분 + 구역 2개 x 2분
        assert plan.eta_minutes == 14

    async def test_samples_use_circles_without_caching(self):
        density = density_with(10)
        scorer = make_scorer(density, pathfinder_with((PATH, 600.0)), sample_radius_m=150)

        await scorer.plan_route(ORIGIN, DESTINATION)

        assert density.snapshot.await_count == len(PATH)
        for call in density.snapshot.await_args_list:
            area = call.args[1]
            assert isinstance(area, Circle)
            assert area.radius == 150
            assert call.kwargs["remember"] is False

    async def test_failed_samples_ignored(self):
        scorer = make_scorer(density_with(DataUnavailable("down")), pathfinder_with((PATH, 600.0)))

        plan = await scorer.plan_route(ORIGIN, DESTINATION)

        assert plan.fallback is False
        assert plan.advisories == ["Route clear"]

    async def test_hotspot_and_evening_rush(self):
        density = density_with(1200)
        scorer = RouteRiskScorer(density, GeofenceEngine(density), pathfinder_with((PATH, 600.0)),
                                 clock=lambda: datetime(2025, 3, 14, 17, 30))

        plan = await scorer.plan_route(ORIGIN, DESTINATION)

        assert any(a.startswith("Very high crowd density") for a in plan.advisories)
        assert any(a.startswith("Hotspot near") for a in plan.advisories)
        assert "Evening rush hour: allow extra travel time" in plan.advisories
        # 10분 x 1.5 x 1.3
        assert plan.eta_minutes == 20


class TestCountZones:
    """경보 구역 교차 계산 테스트"""

    def test_critical_threshold_configurable(self, bucharest_square):
        density = density_with(0)
        geofence = GeofenceEngine(density)
        geofence.add_rule({"name": "a", "polygon": bucharest_square.model_dump(by_alias=True), "thresholdDevices": 600})
        scorer = make_scorer(density, geofence=geofence, critical_threshold=500)

        assert scorer.count_zones(PATH) == (1, 0)

    def test_path_outside_all_zones(self):
        density = density_with(0)
        geofence = GeofenceEngine(density)
        far = Polygon(boundary=[
            Point(latitude=10, longitude=10),
            Point(latitude=10, longitude=11),
            Point(latitude=11, longitude=11),
        ])
        geofence.add_rule({"name": "far", "polygon": far.model_dump(by_alias=True), "thresholdDevices": 10})
        assert make_scorer(density, geofence=geofence).count_zones(PATH) == (0, 0)
