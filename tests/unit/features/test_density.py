"""
밀도 집계기 단위 테스트

이 모듈은 합성/실측 모드 스냅샷과 흐름 시계열을 테스트합니다.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from crowdsafe.core.errors import DataUnavailable, UpstreamAuthError
from crowdsafe.core.models import Circle, Point, Polygon
from crowdsafe.features.density import DensityAggregator


def cell(geohash, ppl=None, lo=None, hi=None, data_type="DENSITY_ESTIMATION"):
    body = {"geohash": geohash, "dataType": data_type}
    if ppl is not None:
        body["pplDensity"] = ppl
    if lo is not None:
        body["minPplDensity"] = lo
        body["maxPplDensity"] = hi
    return body


def interval(end, cells):
    return {"startTime": "2025-03-14T11:00:00Z", "endTime": end, "cellPopulationDensityData": cells}


def make_provider(result=None, exc=None):
    provider = MagicMock()
    provider.retrieve = AsyncMock(return_value=result, side_effect=exc)
    return provider


@pytest.fixture
def synthetic(rng, fixed_now):
    return DensityAggregator(rng=rng, clock=lambda: fixed_now)


class TestSyntheticSnapshot:
    """합성 모드 스냅샷 테스트"""

    async def test_total_matches_points(self, synthetic, bucharest_square):
        snap = await synthetic.snapshot("plaza", bucharest_square)

        assert snap.area_id == "plaza"
        assert snap.timestamp == "2025-03-14T12:00:00Z"
        assert len(snap.points) == 200
        assert snap.total_devices == sum(p.count for p in snap.points)

    async def test_open_polygon_is_closed_and_cached(self, synthetic, bucharest_square):
        await synthetic.snapshot("plaza", bucharest_square)

        cached = synthetic.area_for("plaza")
        assert isinstance(cached, Polygon)
        assert cached.is_closed()
        assert len(cached.boundary) == len(bucharest_square.boundary) + 1

    async def test_remember_false_leaves_cache_untouched(self, synthetic, bucharest_circle):
        await synthetic.snapshot("probe", bucharest_circle, remember=False)
        assert synthetic.area_for("probe") is None

    async def test_raw_camara_area(self, synthetic):
        raw = {"areaType": "CIRCLE", "center": {"latitude": 44.43, "longitude": 26.1}, "radius": 300}
        snap = await synthetic.snapshot("raw", raw)
        assert isinstance(synthetic.area_for("raw"), Circle)
        assert snap.total_devices > 0

    async def test_invalid_area(self, synthetic):
        with pytest.raises(ValueError):
            await synthetic.snapshot("bad", {"areaType": "HEXAGON"})

    def test_mode(self, synthetic):
        assert synthetic.mode == "synthetic"
        assert DensityAggregator(make_provider([]), live=True).mode == "live"
        # 제공자가 없으면 live 플래그와 무관하게 합성 모드
        assert DensityAggregator(None, live=True).mode == "synthetic"


class TestLiveSnapshot:
    """실측 모드 스냅샷 테스트"""

    async def test_latest_interval_used(self, fixed_now, bucharest_square):
        provider = make_provider([
            interval("2025-03-14T11:30:00Z", [cell("sxfsg0s", ppl=999)]),
            interval("2025-03-14T12:00:00Z", [cell("sxfsg0s", ppl=40), cell("sxfsg0t", lo=10, hi=21)]),
        ])
        density = DensityAggregator(provider, live=True, clock=lambda: fixed_now)

        snap = await density.snapshot("plaza", bucharest_square)

        assert snap.timestamp == "2025-03-14T12:00:00Z"
        assert [p.count for p in snap.points] == [40, 16]
        assert snap.total_devices == 56

    async def test_query_window_and_precision(self, fixed_now, bucharest_square):
        provider = make_provider([])
        density = DensityAggregator(provider, live=True, window_minutes=60, precision=7, clock=lambda: fixed_now)

        await density.snapshot("plaza", bucharest_square, precision=6)

        boundary, start, end, precision = provider.retrieve.call_args.args
        assert boundary[0] == boundary[-1]
        assert (end - start).total_seconds() == 3600
        assert end == fixed_now
        assert precision == 6

    async def test_empty_response_yields_zero_snapshot(self, fixed_now, bucharest_square):
        density = DensityAggregator(make_provider([]), live=True, clock=lambda: fixed_now)

        snap = await density.snapshot("plaza", bucharest_square)

        assert snap.total_devices == 0
        assert snap.points == []
        assert snap.timestamp == "2025-03-14T12:00:00Z"

    async def test_undecodable_cells_skipped(self, fixed_now, bucharest_square):
        provider = make_provider([interval("2025-03-14T12:00:00Z", [cell("sxfsg0s", ppl=5), cell("!!", ppl=50)])])
        density = DensityAggregator(provider, live=True, clock=lambda: fixed_now)

        snap = await density.snapshot("plaza", bucharest_square)

        assert len(snap.points) == 1
        assert snap.total_devices == 5

    @pytest.mark.parametrize("exc", [UpstreamAuthError("denied"), RuntimeError("boom"), DataUnavailable("down")])
    async def test_provider_errors_become_data_unavailable(self, fixed_now, bucharest_square, exc):
        density = DensityAggregator(make_provider(exc=exc), live=True, clock=lambda: fixed_now)
        with pytest.raises(DataUnavailable):
            await density.snapshot("plaza", bucharest_square)


class TestFlow:
    """흐름 시계열 테스트"""

    async def test_unknown_area_without_default(self, synthetic):
        with pytest.raises(DataUnavailable):
            await synthetic.flow("nowhere")

    async def test_synthetic_flow_after_snapshot(self, synthetic, bucharest_square):
        await synthetic.snapshot("plaza", bucharest_square)

        series = await synthetic.flow("plaza")

        assert series.area_id == "plaza"
        assert series.interval_minutes == 15
        assert len(series.series) == 24
        assert all(s.total_devices >= 500 for s in series.series)
        stamps = [s.timestamp for s in series.series]
        assert stamps == sorted(stamps)

    async def test_default_area(self, rng, fixed_now, bucharest_square):
        density = DensityAggregator(rng=rng, clock=lambda: fixed_now, default_flow_area=bucharest_square)
        series = await density.flow("anything")
        assert series.area_id == "anything"

    async def test_live_flow_uses_cached_area(self, fixed_now, bucharest_circle):
        provider = make_provider([
            interval("2025-03-14T11:00:00Z", [cell("sxfsg0s", ppl=10), cell("!!", ppl=5)]),
            interval("2025-03-14T12:00:00Z", [cell("sxfsg0s", ppl=30)]),
        ])
        density = DensityAggregator(provider, live=True, flow_hours=6, window_minutes=60, clock=lambda: fixed_now)
        await density.snapshot("plaza", bucharest_circle)

        series = await density.flow("plaza")

        assert series.interval_minutes == 60
        assert [s.total_devices for s in series.series] == [15, 30]
        _, start, end, _ = provider.retrieve.call_args.args
        assert (end - start).total_seconds() == 6 * 3600

    def test_forget(self, synthetic):
        synthetic._remember("x", Circle(center=Point(latitude=1, longitude=1), radius=10))
        synthetic.forget("x")
        synthetic.forget("x")
        assert synthetic.area_for("x") is None
