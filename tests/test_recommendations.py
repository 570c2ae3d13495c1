"""
test_recommendations.py — Heuristic "avoid X; take Y" guidance.
"""

from campus_pulse.models.hotspot import LatLng
from campus_pulse.services.recommendations import (
    heuristic_recommendation,
    pick_alternate,
    short_area_name,
    summary_label,
)

CENTROID = LatLng(lat=18.00512, lng=-76.74681)


class TestPickAlternate:

    def test_skips_primary_case_insensitively(self):
        assert pick_alternate(["ring road", "Hope Road"], "Ring Road") == "Hope Road"

    def test_none_when_only_primary(self):
        assert pick_alternate(["Ring Road"], "Ring Road") is None

    def test_none_when_empty(self):
        assert pick_alternate([], None) is None


class TestShortAreaName:

    def test_short_name_kept(self):
        assert short_area_name("Ring Road, Kingston", CENTROID) == "Ring Road, Kingston"

    def test_long_name_replaced_by_neighbourhood(self):
        long_name = "X" * 61
        assert short_area_name(long_name, CENTROID, neighbourhood="Mona") == "Mona"

    def test_coords_as_last_resort(self):
        assert short_area_name(None, CENTROID) == "coords 18.0051,-76.7468"


class TestHeuristicRecommendation:

    def test_alternate_found(self):
        rec = heuristic_recommendation(
            primary_road="Ring Road", area_name="Ring Road, Mona",
            variants=["Hope Road"], centroid=CENTROID,
        )
        assert rec.recommendation == "Avoid Ring Road; take Hope Road instead."
        assert rec.alternative_route == "Hope Road"
        assert rec.needs_ai is False

    def test_alternate_without_primary_uses_area(self):
        rec = heuristic_recommendation(
            primary_road=None, area_name="Papine Square",
            variants=["Hope Road"], centroid=CENTROID,
        )
        assert rec.recommendation == "Avoid Papine Square; take Hope Road instead."

    def test_alternate_without_any_name(self):
        rec = heuristic_recommendation(None, None, ["Hope Road"], CENTROID)
        assert rec.recommendation == "Avoid this area; take Hope Road instead."

    def test_no_alternate_needs_ai(self):
        rec = heuristic_recommendation(
            primary_road="Ring Road", area_name="Ring Road, Mona",
            variants=["Ring Road"], centroid=CENTROID,
        )
        assert rec.recommendation == "Avoid Ring Road, Mona; choose a nearby main road."
        assert rec.alternative_route is None
        assert rec.needs_ai is True

    def test_no_alternate_no_name_uses_coords(self):
        rec = heuristic_recommendation(None, None, [], CENTROID)
        assert rec.recommendation == "Avoid coords 18.0051,-76.7468; choose a nearby main road."


class TestSummaryLabel:

    def test_with_area(self):
        assert summary_label("Ring Road", CENTROID, 4) == "Ring Road reported 4 recent incident(s)"

    def test_without_area(self):
        assert summary_label(None, CENTROID, 1) == "18.0051, -76.7468 reported 1 recent incident(s)"
