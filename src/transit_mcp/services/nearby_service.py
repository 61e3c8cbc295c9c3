"""Nearby search: stops and route/directions around a point.

The spatial index gives a coarse candidate box; exact ranking uses
great-circle distance. Results escalate through radius tiers until a page
has something to show.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from transit_mcp.data.store import FeedStore, NearbyStopRow
from transit_mcp.errors import FeedNotReadyError
from transit_mcp.geo import bounding_box_radius, haversine_distance, manhattan_distance
from transit_mcp.matching.normalizers import format_stop_desc
from transit_mcp.models.responses import (
    Departure,
    LaterDeparture,
    NearbyResponse,
    NearbyRouteRow,
    NearbyStop,
    NearbyView,
    StopRouteGroup,
)
from transit_mcp.services.departure_service import DepartureService

logger = logging.getLogger(__name__)

# Search box half-widths in meters, tuned for a grid of ~200 m blocks
RADIUS_TIERS: tuple[float, ...] = (450.0, 900.0, 1800.0, 3600.0, 7200.0, 14400.0)

# Stops this close to a displayed stop are pulled in as its other-side twin
COMPANION_RADIUS_METERS = 50.0

DEPARTURES_PER_STOP = 30
DEPARTURES_PER_GROUP = 3
PAGE_LIMIT = 5

# Concurrent per-stop departure fetches within one search
MAX_CONCURRENT_FETCHES = 8


def next_radius(current: float) -> float | None:
    """The next tier strictly above ``current``, or None at the top."""
    for tier in RADIUS_TIERS:
        if tier > current:
            return tier
    return None


def limits_for_radius(radius: float) -> tuple[int, int]:
    """(store fan-out, display limit) for a tier; sparser areas need more fan-out."""
    if radius <= 450:
        return 15, 10
    if radius <= 900:
        return 40, 25
    if radius <= 1800:
        return 80, 50
    if radius <= 3600:
        return 150, 100
    if radius <= 7200:
        return 300, 200
    return 500, 300


@dataclass
class StopCandidate:
    row: NearbyStopRow
    distance_m: float


def rank_candidates(rows: list[NearbyStopRow], lat: float, lon: float) -> list[StopCandidate]:
    """Boarding stops sorted by great-circle distance from the point."""
    candidates = [
        StopCandidate(row=row, distance_m=haversine_distance(lat, lon, row.stop_lat, row.stop_lon))
        for row in rows
        if row.location_type == 0
    ]
    candidates.sort(key=lambda c: c.distance_m)
    return candidates


def with_companions(candidates: list[StopCandidate], display_limit: int) -> list[StopCandidate]:
    """Top ``display_limit`` candidates plus stops within 50 m of one of them."""
    primary = candidates[:display_limit]
    selected = list(primary)
    for candidate in candidates[display_limit:]:
        for stop in primary:
            gap = haversine_distance(
                stop.row.stop_lat, stop.row.stop_lon, candidate.row.stop_lat, candidate.row.stop_lon
            )
            if gap <= COMPANION_RADIUS_METERS:
                selected.append(candidate)
                break
    return selected


def group_departures(departures: list[Departure]) -> list[list[Departure]]:
    """Group by (route, direction) in first-seen order, at most 3 per group."""
    groups: dict[tuple[str, int], list[Departure]] = {}
    for dep in departures:
        group = groups.setdefault((dep.route_id, dep.direction_id), [])
        if len(group) < DEPARTURES_PER_GROUP:
            group.append(dep)
    return list(groups.values())


def pair_opposite_directions(rows: list[NearbyRouteRow]) -> list[NearbyRouteRow]:
    """Attach each route's opposite direction to its sooner side.

    First match wins: a row pairs with the first unpaired row of the same route
    and the other direction. The sooner departure stays as the primary row;
    the other becomes its ``alternate`` and leaves the list.
    """
    paired: set[int] = set()
    removed: set[int] = set()
    for i, row in enumerate(rows):
        if i in paired or i in removed:
            continue
        for j, other in enumerate(rows):
            if i == j or j in paired or j in removed:
                continue
            if other.route_id != row.route_id or other.direction_id == row.direction_id:
                continue
            if other.departure.minutes_away < row.departure.minutes_away:
                primary, alternate = j, i
            else:
                primary, alternate = i, j
            rows[primary].alternate = rows[alternate]
            paired.add(primary)
            removed.add(alternate)
            break
    return [row for k, row in enumerate(rows) if k not in removed]


def _later(departures: list[Departure]) -> list[LaterDeparture]:
    return [
        LaterDeparture(
            time=d.realtime if d.is_realtime and d.realtime else d.scheduled,
            minutes_away=d.minutes_away,
            is_realtime=d.is_realtime,
        )
        for d in departures
    ]


def _paginate(items: list, offset: int, limit: int) -> tuple[list, bool]:
    if offset >= len(items):
        return [], False
    end = offset + limit
    return items[offset:end], end < len(items)


class NearbySearchEngine:
    """Radius-tiered nearby search over the feed store.

    Borrows the store and the departure service.
    """

    def __init__(
        self,
        store: FeedStore,
        departures: DepartureService,
        max_concurrency: int = MAX_CONCURRENT_FETCHES,
    ):
        self.store = store
        self.departures = departures
        self.max_concurrency = max_concurrency

    async def search(
        self,
        lat: float,
        lon: float,
        now: datetime,
        view: NearbyView = NearbyView.ROUTES,
        offset: int = 0,
        radius: float | None = None,
        limit: int = PAGE_LIMIT,
    ) -> NearbyResponse:
        """One page of nearby results, escalating the radius past empty tiers.

        Args:
            lat, lon: Search point.
            now: Aware reference time in the operating timezone.
            view: Group by route/direction or by stop.
            offset: Items already shown to the caller.
            radius: Tier to search; defaults to the smallest.
            limit: Page size.

        Returns:
            NearbyResponse; ``next_offset``/``next_radius_m`` continue the listing.

        Raises:
            FeedNotReadyError: If no feed has been imported yet.
        """
        if not await self.store.has_data():
            raise FeedNotReadyError("Transit data is still loading, try again shortly")

        radius = radius if radius and radius > 0 else RADIUS_TIERS[0]
        finder = self.find_stops if view == NearbyView.STOPS else self.find_routes

        page, has_more = await finder(lat, lon, offset, limit, radius, now)
        new_offset = offset + len(page)
        while not page and not has_more:
            wider = next_radius(radius)
            if wider is None:
                break
            logger.debug(f"No nearby results within {radius:.0f} m, widening to {wider:.0f} m")
            radius = wider
            page, has_more = await finder(lat, lon, new_offset, limit, radius, now)
            new_offset += len(page)

        next_offset: int | None = None
        next_radius_m: float | None = None
        if has_more:
            next_offset, next_radius_m = new_offset, radius
        elif new_offset > 0:
            wider = next_radius(radius)
            if wider is not None:
                has_more = True
                next_offset, next_radius_m = new_offset, wider

        return NearbyResponse(
            view=view,
            lat=lat,
            lon=lon,
            radius_m=radius,
            offset=offset,
            routes=page if view == NearbyView.ROUTES else [],
            stops=page if view == NearbyView.STOPS else [],
            count=len(page),
            has_more=has_more,
            next_offset=next_offset,
            next_radius_m=next_radius_m,
        )

    async def _candidates(self, lat: float, lon: float, radius: float) -> list[StopCandidate]:
        store_limit, _ = limits_for_radius(radius)
        lat_deg, lon_deg = bounding_box_radius(lat, radius)
        rows = await self.store.nearby_stops(lat, lon, lat_deg, lon_deg, store_limit)
        return rank_candidates(rows, lat, lon)

    async def _fetch_all(
        self, stops: list[StopCandidate], now: datetime
    ) -> list[list[Departure]]:
        """Departures for each stop, at most ``max_concurrency`` fetches at a time."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def fetch(stop: StopCandidate) -> list[Departure]:
            async with semaphore:
                batch = await self.departures.fetch_departures(
                    stop.row.stop_id, now, DEPARTURES_PER_STOP
                )
                return batch.departures

        return await asyncio.gather(*(fetch(stop) for stop in stops))

    async def find_routes(
        self,
        lat: float,
        lon: float,
        offset: int,
        limit: int,
        radius: float,
        now: datetime,
    ) -> tuple[list[NearbyRouteRow], bool]:
        """Route/direction rows at the closest stop serving each, paired and paged."""
        _, display_limit = limits_for_radius(radius)
        candidates = await self._candidates(lat, lon, radius)
        stops = with_companions(candidates, display_limit)
        per_stop = await self._fetch_all(stops, now)

        # Stops are in distance order, so the first stop to serve a group owns it
        owners: dict[tuple[str, int], StopCandidate] = {}
        grouped: dict[tuple[str, int], list[Departure]] = {}
        for stop, departures in zip(stops, per_stop):
            for group in group_departures(departures):
                key = (group[0].route_id, group[0].direction_id)
                if key not in grouped:
                    grouped[key] = group
                    owners[key] = stop
                else:
                    room = DEPARTURES_PER_GROUP - len(grouped[key])
                    grouped[key].extend(group[:room])

        rows = [self._route_row(lat, lon, owners[key], deps) for key, deps in grouped.items()]
        rows = pair_opposite_directions(rows)

        page, has_more = _paginate(rows, offset, limit)
        await self._attach_headways(page, now)
        return page, has_more

    def _route_row(
        self, lat: float, lon: float, stop: StopCandidate, departures: list[Departure]
    ) -> NearbyRouteRow:
        first = departures[0]
        return NearbyRouteRow(
            route_id=first.route_id,
            route_short_name=first.route_short_name,
            route_color=first.route_color,
            route_text_color=first.route_text_color,
            headsign=first.headsign,
            direction_id=first.direction_id,
            direction_text=first.direction_text,
            stop_id=stop.row.stop_id,
            stop_name=stop.row.stop_name,
            distance_m=stop.distance_m,
            walk_distance_m=manhattan_distance(lat, lon, stop.row.stop_lat, stop.row.stop_lon),
            departure=first,
            later=_later(departures[1:]),
        )

    async def _attach_headways(self, rows: list[NearbyRouteRow], now: datetime) -> None:
        targets = list(rows)
        targets.extend(row.alternate for row in rows if row.alternate is not None)
        headways = await asyncio.gather(
            *(
                self.departures.headway_for(row.stop_id, row.route_id, row.direction_id, now)
                for row in targets
            )
        )
        for row, headway in zip(targets, headways):
            row.headway = headway

    async def find_stops(
        self,
        lat: float,
        lon: float,
        offset: int,
        limit: int,
        radius: float,
        now: datetime,
    ) -> tuple[list[NearbyStop], bool]:
        """Stops by distance, each with its departures grouped by route/direction."""
        candidates = await self._candidates(lat, lon, radius)
        page, has_more = _paginate(candidates, offset, limit)
        if not page:
            return [], has_more

        per_stop = await self._fetch_all(page, now)

        name_counts: dict[str, int] = {}
        for stop in page:
            name_counts[stop.row.stop_name] = name_counts.get(stop.row.stop_name, 0) + 1

        result: list[NearbyStop] = []
        for stop, departures in zip(page, per_stop):
            row = stop.row
            desc = format_stop_desc(row.stop_desc) if name_counts[row.stop_name] > 1 else ""
            result.append(
                NearbyStop(
                    stop_id=row.stop_id,
                    stop_name=row.stop_name,
                    stop_desc=desc or None,
                    distance_m=stop.distance_m,
                    walk_distance_m=manhattan_distance(lat, lon, row.stop_lat, row.stop_lon),
                    routes=[
                        StopRouteGroup(
                            route_id=group[0].route_id,
                            route_short_name=group[0].route_short_name,
                            route_color=group[0].route_color,
                            route_text_color=group[0].route_text_color,
                            direction_id=group[0].direction_id,
                            direction_text=group[0].direction_text,
                            headsign=group[0].headsign,
                            departures=group,
                        )
                        for group in group_departures(departures)
                    ],
                )
            )
        return result, has_more
