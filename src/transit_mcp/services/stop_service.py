"""Stop search and route explorer."""

import logging
from dataclasses import dataclass
from datetime import date

from rapidfuzz import fuzz

from transit_mcp.data.store import FeedStore, StopSearchRow
from transit_mcp.errors import FeedNotReadyError, RouteNotFoundError
from transit_mcp.geo import haversine_distance
from transit_mcp.matching.normalizers import normalize_text
from transit_mcp.models.gtfs import Route
from transit_mcp.models.responses import (
    ListRoutesResponse,
    RouteDetailResponse,
    RouteDirection,
    RouteInfo,
    RouteStop,
    SearchStopsResponse,
    StopSearchResult,
)

logger = logging.getLogger(__name__)

# Name groups closer than this are one place (e.g. "Lake St & Lyndale Ave" and "Lyndale Ave & Lake St")
CLUSTER_RADIUS_METERS = 500.0

DIRECTION_NAMES = {0: "Outbound", 1: "Inbound"}


@dataclass
class SearchCluster:
    """Nearby search hits merged into one place, named after the first member."""

    name: str
    lat: float
    lon: float
    size: int = 1


def cluster_search_results(
    results: list[StopSearchRow], radius_meters: float = CLUSTER_RADIUS_METERS
) -> list[SearchCluster]:
    """Merge results within ``radius_meters`` of an existing cluster's centroid.

    Each merge moves the centroid to the running mean of its members.
    """
    clusters: list[SearchCluster] = []
    for result in results:
        for cluster in clusters:
            if haversine_distance(cluster.lat, cluster.lon, result.lat, result.lon) <= radius_meters:
                n = cluster.size
                cluster.lat = (cluster.lat * n + result.lat) / (n + 1)
                cluster.lon = (cluster.lon * n + result.lon) / (n + 1)
                cluster.size += 1
                break
        else:
            clusters.append(SearchCluster(name=result.name, lat=result.lat, lon=result.lon))
    return clusters


def score_name(query: str, name: str) -> float:
    """Fuzzy similarity between a query and a stop name (0-100).

    token_set_ratio handles word order ("Lyndale & Lake"), partial_ratio
    handles abbreviated queries.
    """
    query_normalized = normalize_text(query)
    name_normalized = normalize_text(name)
    token_score = fuzz.token_set_ratio(query_normalized, name_normalized)
    partial_score = fuzz.partial_ratio(query_normalized, name_normalized)
    return token_score * 0.7 + partial_score * 0.3


def route_info(route: Route) -> RouteInfo:
    return RouteInfo(
        route_id=route.route_id,
        route_short_name=route.display_name,
        route_long_name=route.route_long_name,
        route_type=route.route_type,
        route_color=route.route_color,
        route_text_color=route.route_text_color,
    )


class StopService:
    """Name search over stops and ordered stop lists for routes."""

    def __init__(self, store: FeedStore):
        self.store = store

    async def _require_data(self) -> None:
        if not await self.store.has_data():
            raise FeedNotReadyError("Transit data is still loading, try again shortly")

    async def search(self, query: str) -> SearchStopsResponse:
        """Find places matching a stop name or cross-street query.

        Args:
            query: Free text such as "Lake & Lyndale" or "Uptown Transit Center".

        Returns:
            SearchStopsResponse with clusters ranked by name similarity.

        Raises:
            FeedNotReadyError: If no feed has been imported yet.
        """
        await self._require_data()
        query = query.strip()
        if not query:
            return SearchStopsResponse(query=query, results=[], count=0)

        rows = await self.store.search_stops(query)
        clusters = cluster_search_results(rows)
        results = [
            StopSearchResult(
                name=c.name,
                lat=round(c.lat, 6),
                lon=round(c.lon, 6),
                score=round(score_name(query, c.name), 1),
                stop_count=c.size,
            )
            for c in clusters
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        logger.debug(f"Stop search {query!r}: {len(rows)} names in {len(results)} places")
        return SearchStopsResponse(query=query, results=results, count=len(results))

    async def route_detail(self, route_id: str, service_date: date) -> RouteDetailResponse:
        """Ordered stops of a route in both directions on a service date.

        Raises:
            FeedNotReadyError: If no feed has been imported yet.
            RouteNotFoundError: If the route does not exist.
        """
        await self._require_data()
        route = await self.store.get_route(route_id)
        if route is None:
            raise RouteNotFoundError(f"Route not found: {route_id}")

        directions: list[RouteDirection] = []
        for direction_id, direction_name in DIRECTION_NAMES.items():
            headsign, stops = await self.store.stops_for_route(route_id, direction_id, service_date)
            if not stops:
                continue
            directions.append(
                RouteDirection(
                    direction_id=direction_id,
                    direction_name=direction_name,
                    headsign=headsign,
                    stops=[
                        RouteStop(
                            stop_id=s.stop_id,
                            stop_name=s.stop_name,
                            stop_lat=s.stop_lat,
                            stop_lon=s.stop_lon,
                            stop_sequence=s.stop_sequence,
                        )
                        for s in stops
                    ],
                )
            )

        return RouteDetailResponse(
            route=route_info(route),
            service_date=service_date.isoformat(),
            directions=directions,
        )

    async def list_routes(self) -> ListRoutesResponse:
        await self._require_data()
        routes = [route_info(r) for r in await self.store.all_routes()]
        return ListRoutesResponse(routes=routes, count=len(routes))
