"""Tests for stop search and the route explorer."""

from datetime import date

import pytest

from transit_mcp.data.store import FeedStore, StopSearchRow
from transit_mcp.errors import FeedNotReadyError, RouteNotFoundError
from transit_mcp.services.stop_service import StopService, cluster_search_results, score_name

MONDAY = date(2024, 6, 3)
SUNDAY = date(2024, 6, 9)


class TestClusterSearchResults:
    def test_merges_close_names(self):
        rows = [
            StopSearchRow(name="Lake St & Lyndale Ave", lat=44.9485, lon=-93.2880),
            StopSearchRow(name="Lyndale Ave & Lake St", lat=44.9490, lon=-93.2880),
            StopSearchRow(name="Lake St & Chicago Ave", lat=44.9485, lon=-93.2625),
        ]
        clusters = cluster_search_results(rows)

        assert [c.name for c in clusters] == ["Lake St & Lyndale Ave", "Lake St & Chicago Ave"]
        assert clusters[0].size == 2
        assert clusters[0].lat == pytest.approx(44.94875)
        assert clusters[1].size == 1

    def test_custom_radius(self):
        rows = [
            StopSearchRow(name="A", lat=44.9485, lon=-93.2880),
            StopSearchRow(name="B", lat=44.9490, lon=-93.2880),
        ]
        assert len(cluster_search_results(rows, radius_meters=10)) == 2


class TestScoreName:
    def test_word_order_does_not_matter(self):
        assert score_name("Lyndale & Lake", "Lake St & Lyndale Ave") > 80

    def test_unrelated_scores_lower(self):
        related = score_name("Lake Lyndale", "Lake St & Lyndale Ave")
        unrelated = score_name("Lake Lyndale", "Franklin Ave & Chicago Ave")
        assert related > unrelated


class TestStopService:
    async def test_cross_street_search(self, loaded_store: FeedStore):
        response = await StopService(loaded_store).search("Lake & Lyndale")

        assert response.count == 1
        result = response.results[0]
        assert result.name == "Lake St & Lyndale Ave"
        assert result.lat == pytest.approx(44.94835)
        assert result.stop_count == 1

    async def test_results_ranked_by_score(self, loaded_store: FeedStore):
        response = await StopService(loaded_store).search("lake")

        assert response.count == 2
        scores = [r.score for r in response.results]
        assert scores == sorted(scores, reverse=True)

    async def test_blank_query(self, loaded_store: FeedStore):
        response = await StopService(loaded_store).search("   ")
        assert response.results == []
        assert response.count == 0

    async def test_no_match(self, loaded_store: FeedStore):
        response = await StopService(loaded_store).search("Nicollet Mall")
        assert response.count == 0

    async def test_not_ready(self, empty_store: FeedStore):
        with pytest.raises(FeedNotReadyError):
            await StopService(empty_store).search("Lake")


class TestRouteDetail:
    async def test_both_directions(self, loaded_store: FeedStore):
        response = await StopService(loaded_store).route_detail("21", MONDAY)

        assert response.route.route_short_name == "21"
        assert response.service_date == "2024-06-03"
        outbound, inbound = response.directions
        assert (outbound.direction_id, outbound.direction_name) == (0, "Outbound")
        assert outbound.headsign == "Lake St / Minnehaha"
        assert [s.stop_id for s in outbound.stops] == ["HENNEPIN", "LYNDALE_E"]
        assert (inbound.direction_id, inbound.direction_name) == (1, "Inbound")
        assert [s.stop_id for s in inbound.stops] == ["LYNDALE_W", "HENNEPIN"]

    async def test_single_direction_route(self, loaded_store: FeedStore):
        response = await StopService(loaded_store).route_detail("2", MONDAY)

        assert response.route.route_short_name == "Franklin Av Crosstown"
        assert [d.direction_id for d in response.directions] == [0]

    async def test_no_service_that_day(self, loaded_store: FeedStore):
        response = await StopService(loaded_store).route_detail("21", SUNDAY)
        assert response.directions == []

    async def test_unknown_route(self, loaded_store: FeedStore):
        with pytest.raises(RouteNotFoundError):
            await StopService(loaded_store).route_detail("999", MONDAY)


class TestListRoutes:
    async def test_lists_in_sort_order(self, loaded_store: FeedStore):
        response = await StopService(loaded_store).list_routes()

        assert response.count == 2
        assert [r.route_id for r in response.routes] == ["2", "21"]
        assert response.routes[0].route_short_name == "Franklin Av Crosstown"
        assert response.routes[1].route_color == "0053A0"
