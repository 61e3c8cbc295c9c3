"""Query surface over the imported feed."""

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path

import aiosqlite

from transit_mcp.data.database import get_db
from transit_mcp.data.schema import ACTIVE_SERVICE_SQL, FEED_TABLES, MIGRATIONS, WEEKDAY_COLUMNS
from transit_mcp.errors import StoreUnavailableError
from transit_mcp.matching.normalizers import split_cross_street
from transit_mcp.models.gtfs import Route, Stop

logger = logging.getLogger(__name__)

# Maximum name groups returned by a stop search
SEARCH_LIMIT = 20


@dataclass
class NearbyStopRow:
    """Stop candidate from the spatial index (distance computed by the caller)."""

    stop_id: str
    stop_code: str | None
    stop_name: str
    stop_desc: str | None
    stop_lat: float
    stop_lon: float
    location_type: int
    wheelchair_boarding: int


@dataclass
class ScheduledDepartureRow:
    """Scheduled departure at a stop on a given service date."""

    trip_id: str
    route_id: str
    route_short_name: str | None
    route_long_name: str | None
    route_color: str | None
    route_text_color: str | None
    route_type: int
    trip_headsign: str | None
    direction_id: int
    departure_time: str  # HH:MM:SS, may exceed 24:00:00
    stop_sequence: int
    service_date: date


@dataclass
class RouteStopRow:
    stop_id: str
    stop_name: str
    stop_lat: float
    stop_lon: float
    stop_sequence: int


@dataclass
class StopSearchRow:
    """Stops sharing a name, collapsed to their centroid."""

    name: str
    lat: float
    lon: float


def _like_escape(text: str) -> str:
    """Escape LIKE wildcards so user text matches literally (ESCAPE '\\')."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _service_params(service_date: date) -> tuple[str, tuple[str, str, str, str]]:
    """Return the active-service SQL fragment and its parameters for a date."""
    date_str = service_date.strftime("%Y%m%d")
    weekday_col = WEEKDAY_COLUMNS[service_date.weekday()]
    return ACTIVE_SERVICE_SQL.format(weekday=weekday_col), (date_str, date_str, date_str, date_str)


def _row_to_route(row: aiosqlite.Row) -> Route:
    return Route(
        route_id=row["route_id"],
        agency_id=row["agency_id"],
        route_short_name=row["route_short_name"],
        route_long_name=row["route_long_name"],
        route_type=int(row["route_type"]),
        route_color=row["route_color"],
        route_text_color=row["route_text_color"],
        route_sort_order=row["route_sort_order"],
    )


class FeedStore:
    """Handle on the feed database.

    Each query opens its own connection, so concurrent requests never share a
    cursor and WAL mode lets them read the last committed feed while an import
    is running.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    async def open(self) -> None:
        """Create the database if needed and apply migrations.

        Raises:
            StoreUnavailableError: If the file cannot be created or migrated.
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA journal_mode=WAL")
                for statement in MIGRATIONS:
                    await db.execute(statement)
                await db.commit()
        except (OSError, aiosqlite.Error) as e:
            raise StoreUnavailableError(f"Cannot open feed store at {self.db_path}: {e}") from e
        logger.info(f"Feed store ready: {self.db_path}")

    def connect(self):
        """Read connection context manager (see ``get_db``)."""
        return get_db(self.db_path)

    # Metadata

    async def get_metadata(self, key: str) -> str | None:
        async with self.connect() as db:
            async with db.execute("SELECT value FROM feed_metadata WHERE key = ?", (key,)) as cursor:
                row = await cursor.fetchone()
        return row["value"] if row else None

    async def get_all_metadata(self) -> dict[str, str]:
        async with self.connect() as db:
            async with db.execute("SELECT key, value FROM feed_metadata") as cursor:
                rows = await cursor.fetchall()
        return {row["key"]: row["value"] for row in rows}

    async def has_data(self) -> bool:
        """True once at least one route has been imported."""
        async with self.connect() as db:
            async with db.execute("SELECT COUNT(*) FROM routes") as cursor:
                row = await cursor.fetchone()
        return bool(row and row[0] > 0)

    async def agency_timezone(self) -> str | None:
        async with self.connect() as db:
            async with db.execute("SELECT agency_timezone FROM agency LIMIT 1") as cursor:
                row = await cursor.fetchone()
        return row["agency_timezone"] if row else None

    async def table_counts(self) -> dict[str, int]:
        """Row counts for every feed table."""
        counts: dict[str, int] = {}
        async with self.connect() as db:
            for table_name in FEED_TABLES:
                async with db.execute(f"SELECT COUNT(*) FROM {table_name}") as cursor:
                    row = await cursor.fetchone()
                    counts[table_name] = row[0] if row else 0
        return counts

    # Spatial

    async def nearby_stops(
        self,
        lat: float,
        lon: float,
        lat_deg: float,
        lon_deg: float,
        limit: int,
    ) -> list[NearbyStopRow]:
        """Find stops inside a bounding box using the R-Tree index.

        Rows come back in planar-degree order; the caller should refine with
        great-circle distance and re-sort.
        """
        sql = """
            SELECT s.stop_id, s.stop_code, s.stop_name, s.stop_desc,
                   s.stop_lat, s.stop_lon, s.location_type, s.wheelchair_boarding
            FROM stops_rtree AS r
            JOIN stops AS s ON s.rowid = r.id
            WHERE r.min_lat >= ? AND r.max_lat <= ?
              AND r.min_lon >= ? AND r.max_lon <= ?
            ORDER BY (s.stop_lat - ?) * (s.stop_lat - ?) + (s.stop_lon - ?) * (s.stop_lon - ?)
            LIMIT ?
        """
        params = (
            lat - lat_deg,
            lat + lat_deg,
            lon - lon_deg,
            lon + lon_deg,
            lat,
            lat,
            lon,
            lon,
            limit,
        )
        async with self.connect() as db:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()

        return [
            NearbyStopRow(
                stop_id=row["stop_id"],
                stop_code=row["stop_code"],
                stop_name=row["stop_name"],
                stop_desc=row["stop_desc"],
                stop_lat=float(row["stop_lat"]),
                stop_lon=float(row["stop_lon"]),
                location_type=int(row["location_type"] or 0),
                wheelchair_boarding=int(row["wheelchair_boarding"] or 0),
            )
            for row in rows
        ]

    # Schedule

    async def departures_for_stop(
        self,
        stop_id: str,
        service_date: date,
        after_time: str,
        limit: int,
    ) -> list[ScheduledDepartureRow]:
        """Scheduled departures at a stop at or after a time on a service date.

        Args:
            stop_id: Stop to query.
            service_date: Calendar date whose active services are used.
            after_time: Lower bound in HH:MM:SS (use hours >= 24 to continue
                the previous service day past midnight).
            limit: Maximum number of rows.

        Returns:
            Rows ordered by departure time.
        """
        active_sql, active_params = _service_params(service_date)
        sql = f"""
            SELECT st.trip_id, t.route_id, r.route_short_name, r.route_long_name,
                   r.route_color, r.route_text_color, r.route_type, t.trip_headsign,
                   t.direction_id, st.departure_time, st.stop_sequence
            FROM stop_times st
            JOIN trips t ON t.trip_id = st.trip_id
            JOIN routes r ON r.route_id = t.route_id
            WHERE st.stop_id = ?
              AND st.departure_time >= ?
              AND {active_sql}
            ORDER BY st.departure_time
            LIMIT ?
        """
        async with self.connect() as db:
            async with db.execute(sql, (stop_id, after_time, *active_params, limit)) as cursor:
                rows = await cursor.fetchall()

        return [
            ScheduledDepartureRow(
                trip_id=row["trip_id"],
                route_id=row["route_id"],
                route_short_name=row["route_short_name"],
                route_long_name=row["route_long_name"],
                route_color=row["route_color"],
                route_text_color=row["route_text_color"],
                route_type=int(row["route_type"]),
                trip_headsign=row["trip_headsign"],
                direction_id=int(row["direction_id"] or 0),
                departure_time=row["departure_time"],
                stop_sequence=int(row["stop_sequence"]),
                service_date=service_date,
            )
            for row in rows
        ]

    async def all_departures_for_stop_route(
        self,
        stop_id: str,
        route_id: str,
        direction_id: int,
        service_date: date,
    ) -> list[str]:
        """Every departure time of one route/direction at a stop on a service date."""
        active_sql, active_params = _service_params(service_date)
        sql = f"""
            SELECT st.departure_time
            FROM stop_times st
            JOIN trips t ON t.trip_id = st.trip_id
            WHERE st.stop_id = ?
              AND t.route_id = ?
              AND t.direction_id = ?
              AND {active_sql}
            ORDER BY st.departure_time
        """
        async with self.connect() as db:
            async with db.execute(
                sql, (stop_id, route_id, direction_id, *active_params)
            ) as cursor:
                rows = await cursor.fetchall()
        return [row["departure_time"] for row in rows]

    async def stops_for_route(
        self,
        route_id: str,
        direction_id: int,
        service_date: date,
    ) -> tuple[str | None, list[RouteStopRow]]:
        """Ordered stops of a representative trip for a route/direction.

        The representative trip is the active trip with the most stops, so
        short-turn trips do not hide the outer end of the line.

        Returns:
            (headsign, stops). Empty list when nothing runs that day.
        """
        active_sql, active_params = _service_params(service_date)
        trip_sql = f"""
            SELECT t.trip_id, t.trip_headsign, COUNT(st.stop_sequence) AS stop_count
            FROM trips t
            JOIN stop_times st ON st.trip_id = t.trip_id
            WHERE t.route_id = ?
              AND t.direction_id = ?
              AND {active_sql}
            GROUP BY t.trip_id
            ORDER BY stop_count DESC, t.trip_id
            LIMIT 1
        """
        stops_sql = """
            SELECT s.stop_id, s.stop_name, s.stop_lat, s.stop_lon, st.stop_sequence
            FROM stop_times st
            JOIN stops s ON s.stop_id = st.stop_id
            WHERE st.trip_id = ?
            ORDER BY st.stop_sequence
        """
        async with self.connect() as db:
            async with db.execute(trip_sql, (route_id, direction_id, *active_params)) as cursor:
                trip_row = await cursor.fetchone()
            if trip_row is None:
                return None, []
            async with db.execute(stops_sql, (trip_row["trip_id"],)) as cursor:
                rows = await cursor.fetchall()

        stops = [
            RouteStopRow(
                stop_id=row["stop_id"],
                stop_name=row["stop_name"],
                stop_lat=float(row["stop_lat"]),
                stop_lon=float(row["stop_lon"]),
                stop_sequence=int(row["stop_sequence"]),
            )
            for row in rows
        ]
        return trip_row["trip_headsign"], stops

    # Lookup and search

    async def search_stops(self, query: str) -> list[StopSearchRow]:
        """Search boarding stops by name, splitting cross-street queries.

        Both halves of "Lake & Lyndale" must appear in the stop name. Stops
        with the same name are collapsed to their average position.
        """
        parts = [_like_escape(p) for p in split_cross_street(query)]
        where = " AND ".join(["LOWER(stop_name) LIKE '%' || ? || '%' ESCAPE '\\'"] * len(parts))
        sql = f"""
            SELECT stop_name, AVG(stop_lat) AS lat, AVG(stop_lon) AS lon
            FROM stops
            WHERE {where}
              AND location_type = 0
            GROUP BY stop_name
            ORDER BY stop_name
            LIMIT ?
        """
        async with self.connect() as db:
            async with db.execute(sql, (*parts, SEARCH_LIMIT)) as cursor:
                rows = await cursor.fetchall()
        return [StopSearchRow(name=row["stop_name"], lat=row["lat"], lon=row["lon"]) for row in rows]

    async def get_stop(self, stop_id: str) -> Stop | None:
        sql = """
            SELECT stop_id, stop_code, stop_name, stop_desc, stop_lat, stop_lon, zone_id,
                   stop_url, location_type, parent_station, wheelchair_boarding
            FROM stops
            WHERE stop_id = ?
        """
        async with self.connect() as db:
            async with db.execute(sql, (stop_id,)) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return Stop(
            stop_id=row["stop_id"],
            stop_code=row["stop_code"],
            stop_name=row["stop_name"],
            stop_desc=row["stop_desc"],
            stop_lat=float(row["stop_lat"]),
            stop_lon=float(row["stop_lon"]),
            zone_id=row["zone_id"],
            stop_url=row["stop_url"],
            location_type=int(row["location_type"] or 0),
            parent_station=row["parent_station"],
            wheelchair_boarding=int(row["wheelchair_boarding"] or 0),
        )

    async def get_route(self, route_id: str) -> Route | None:
        sql = """
            SELECT route_id, agency_id, route_short_name, route_long_name, route_type,
                   route_color, route_text_color, route_sort_order
            FROM routes
            WHERE route_id = ?
        """
        async with self.connect() as db:
            async with db.execute(sql, (route_id,)) as cursor:
                row = await cursor.fetchone()
        return _row_to_route(row) if row else None

    async def all_routes(self) -> list[Route]:
        """All routes ordered by sort order then short name."""
        sql = """
            SELECT route_id, agency_id, route_short_name, route_long_name, route_type,
                   route_color, route_text_color, route_sort_order
            FROM routes
            ORDER BY route_sort_order, route_short_name
        """
        async with self.connect() as db:
            async with db.execute(sql) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_route(row) for row in rows]
