"""
test_aggregator.py — Cluster statistics and Hotspot assembly.
"""

import pytest

from campus_pulse.models.alert import AlertPoint
from campus_pulse.models.geocode import GeocodeResult
from campus_pulse.models.hotspot import HotspotParams
from campus_pulse.services.aggregator import (
    aggregate_clusters,
    build_hotspot,
    centroid_of,
    compute_severity,
    dominant_type,
    trend_score,
    window_counts,
)

from conftest import FakeResolver

HOUR_MS = 3_600_000
NOW_MS = 1_772_366_400_000  # 2026-03-01T12:00:00Z


def _point(i, lat=18.0, lng=-76.7, hours_ago=1.0, type="threat", severity=1.0, name=None):
    return AlertPoint(
        id=f"a{i}", lat=lat, lng=lng, type=type, severity=severity,
        created_at_ms=int(NOW_MS - hours_ago * HOUR_MS), location_name=name,
    )


class TestCentroidAndType:

    def test_centroid_is_arithmetic_mean(self):
        c = centroid_of([_point(0, 18.0, -76.7), _point(1, 18.002, -76.704)])
        assert c.lat == pytest.approx(18.001)
        assert c.lng == pytest.approx(-76.702)

    def test_dominant_type(self):
        points = [_point(0, type="fire"), _point(1, type="threat"), _point(2, type="threat")]
        assert dominant_type(points) == "threat"

    def test_dominant_type_tie_goes_to_first_seen(self):
        points = [_point(0, type="medical"), _point(1, type="fire"), _point(2, type="fire"), _point(3, type="medical")]
        assert dominant_type(points) == "medical"


class TestTrend:

    @pytest.mark.parametrize(
        "now, prev, expected",
        [(0, 0, 0.0), (5, 0, 1.0), (10, 5, 1.0), (5, 10, -0.5), (4, 4, 0.0), (9, 3, 2.0)],
    )
    def test_trend_score(self, now, prev, expected):
        assert trend_score(now, prev) == pytest.approx(expected)

    def test_window_counts_boundaries(self):
        points = [
            _point(0, hours_ago=0),      # current
            _point(1, hours_ago=24),     # exactly at current window start → current
            _point(2, hours_ago=24.5),   # previous
            _point(3, hours_ago=48),     # exactly at previous window start → previous
            _point(4, hours_ago=60),     # outside both
        ]
        assert window_counts(points, NOW_MS, 24) == (2, 2)


class TestSeverity:

    def test_bucket_low(self):
        assert compute_severity([_point(i) for i in range(3)], 0.0) == ("low", 1.0)

    def test_bucket_moderate_at_eight(self):
        label, _ = compute_severity([_point(i) for i in range(8)], 0.0)
        assert label == "moderate"

    def test_bucket_severe_at_fifteen(self):
        label, _ = compute_severity([_point(i) for i in range(15)], 0.0)
        assert label == "severe"

    def test_bucket_score_is_mean_severity(self):
        points = [_point(0, severity=2), _point(1, severity=3), _point(2, severity=3)]
        assert compute_severity(points, 0.0) == ("low", 2.7)

    def test_score_mode_growth_amplifies(self):
        points = [_point(i, severity=2) for i in range(4)]
        assert compute_severity(points, 0.5, mode="score") == ("moderate", 12.0)

    def test_score_mode_decline_not_penalised(self):
        points = [_point(i, severity=2) for i in range(4)]
        assert compute_severity(points, -0.5, mode="score") == ("low", 8.0)

    def test_score_mode_severe(self):
        points = [_point(i, severity=5) for i in range(6)]
        assert compute_severity(points, 0.0, mode="score") == ("severe", 30.0)


class TestBuildHotspot:

    async def test_fields_from_geocode_and_probe(self):
        cluster = [_point(i, lat=18.0, lng=-76.7, hours_ago=i + 1, name="Ring Road, Kingston") for i in range(3)]
        resolver = FakeResolver(
            results={(18.0, -76.7): GeocodeResult(provider="google", display_name="Ring Road, Mona", road="Ring Road")},
            default=GeocodeResult(provider="google", display_name="Hope Road, Kingston", road="Hope Road"),
        )
        h = await build_hotspot(2, cluster, resolver, HotspotParams(), NOW_MS)

        assert h.id == "hotspot-2"
        assert h.count == 3
        assert h.member_ids == ["a0", "a1", "a2"]
        assert h.area_name == "Ring Road, Mona"
        assert h.primary_road == "Ring Road"
        assert h.nearby_road_variants == ["Hope Road"]
        assert h.recommendation == "Avoid Ring Road; take Hope Road instead."
        assert h.alternative_route == "Hope Road"
        assert h.needs_ai is False
        assert h.summary == "Ring Road, Mona reported 3 recent incident(s)"
        assert h.summary_visible is True
        assert h.first_seen == "2026-03-01T09:00:00+00:00"
        assert h.last_seen == "2026-03-01T11:00:00+00:00"
        assert (h.count_now, h.count_prev, h.trend_score) == (3, 0, 1.0)

    async def test_unresolved_centroid_falls_back_to_alert_location(self):
        cluster = [_point(i, name="12 Ring Road, Kingston") for i in range(3)]
        h = await build_hotspot(0, cluster, FakeResolver(), HotspotParams(), NOW_MS)

        assert h.area_name == "12 Ring Road, Kingston"
        assert h.primary_road == "Ring Road"
        assert h.nearby_road_variants == []
        assert h.alternative_route is None
        assert h.needs_ai is True
        assert h.recommendation == "Avoid 12 Ring Road, Kingston; choose a nearby main road."

    async def test_nothing_resolves_uses_coordinates(self):
        cluster = [_point(i, lat=18.00512, lng=-76.74681) for i in range(3)]
        h = await build_hotspot(0, cluster, FakeResolver(), HotspotParams(), NOW_MS)
        assert h.area_name is None
        assert h.recommendation == "Avoid coords 18.0051,-76.7468; choose a nearby main road."

    async def test_resolver_exception_tolerated(self):
        class Broken:
            async def resolve(self, lat, lng):
                raise RuntimeError("geocoder down")

        h = await build_hotspot(0, [_point(i) for i in range(3)], Broken(), HotspotParams(), NOW_MS)
        assert h.needs_ai is True


class TestAggregateClusters:

    async def test_order_and_ids_follow_clusters(self):
        clusters = [
            [_point(0, lat=18.0), _point(1, lat=18.0)],
            [_point(2, lat=18.1), _point(3, lat=18.1), _point(4, lat=18.1)],
        ]
        hotspots = await aggregate_clusters(clusters, FakeResolver(), HotspotParams(), NOW_MS)
        assert [h.id for h in hotspots] == ["hotspot-0", "hotspot-1"]
        assert [h.count for h in hotspots] == [2, 3]

    async def test_no_clusters(self):
        assert await aggregate_clusters([], FakeResolver(), HotspotParams(), NOW_MS) == []
