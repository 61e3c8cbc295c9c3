"""Atomic feed import into the SQLite store."""

import asyncio
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from itertools import islice
from typing import Any

import aiosqlite

from transit_mcp.data.database import get_write_db
from transit_mcp.data.feed_parser import FeedArchive, FeedTables
from transit_mcp.data.schema import CLEAR_ORDER, REBUILD_RTREE_SQL
from transit_mcp.data.store import FeedStore
from transit_mcp.errors import FeedImportError
from transit_mcp.models.gtfs import FeedValidators, ShapePoint, StopTime

logger = logging.getLogger(__name__)

# Rows per executemany batch (and per pull from a streamed table)
CHUNK_SIZE = 10000

# Streamed rows between progress log lines
PROGRESS_EVERY = 500_000

AGENCY_SQL = """
    INSERT INTO agency (agency_id, agency_name, agency_url, agency_timezone)
    VALUES (?, ?, ?, ?)
"""
ROUTE_SQL = """
    INSERT INTO routes (route_id, agency_id, route_short_name, route_long_name, route_type,
                        route_color, route_text_color, route_sort_order)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""
STOP_SQL = """
    INSERT INTO stops (stop_id, stop_code, stop_name, stop_desc, stop_lat, stop_lon, zone_id,
                       stop_url, location_type, parent_station, wheelchair_boarding)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""
CALENDAR_SQL = """
    INSERT INTO calendar (service_id, monday, tuesday, wednesday, thursday, friday,
                          saturday, sunday, start_date, end_date)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""
CALENDAR_DATE_SQL = """
    INSERT INTO calendar_dates (service_id, date, exception_type) VALUES (?, ?, ?)
"""
TRIP_SQL = """
    INSERT INTO trips (trip_id, route_id, service_id, trip_headsign, direction_id,
                       block_id, shape_id)
    VALUES (?, ?, ?, ?, ?, ?, ?)
"""
STOP_TIME_SQL = """
    INSERT INTO stop_times (trip_id, arrival_time, departure_time, stop_id, stop_sequence,
                            pickup_type, drop_off_type, timepoint)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""
SHAPE_SQL = """
    INSERT INTO shapes (shape_id, shape_pt_lat, shape_pt_lon, shape_pt_sequence,
                        shape_dist_traveled)
    VALUES (?, ?, ?, ?, ?)
"""


@dataclass
class FeedStreams:
    """Single-pass sources for the large tables."""

    stop_times: Iterator[StopTime]
    shapes: Iterator[ShapePoint]


def _stop_time_values(st: StopTime) -> tuple[Any, ...]:
    return (
        st.trip_id,
        st.arrival_time,
        st.departure_time,
        st.stop_id,
        st.stop_sequence,
        st.pickup_type,
        st.drop_off_type,
        st.timepoint,
    )


def _shape_values(sp: ShapePoint) -> tuple[Any, ...]:
    return (
        sp.shape_id,
        sp.shape_pt_lat,
        sp.shape_pt_lon,
        sp.shape_pt_sequence,
        sp.shape_dist_traveled,
    )


def _next_chunk(records: Iterator[Any]) -> list[Any]:
    return list(islice(records, CHUNK_SIZE))


class FeedImporter:
    """Replace the whole feed in one transaction.

    Clear every feed table, insert the reference tables, drain the streamed
    tables in chunks, rebuild the stop R-Tree and stamp the metadata, then
    commit. Any failure rolls back so readers keep the previous feed.
    """

    def __init__(self, store: FeedStore):
        self.store = store

    async def import_feed(
        self,
        tables: FeedTables,
        streams: FeedStreams,
        validators: FeedValidators | None = None,
    ) -> dict[str, int]:
        """Import a parsed feed.

        Args:
            tables: Reference tables.
            streams: stop_times and shapes generators (consumed once).
            validators: Last-Modified / ETag of the downloaded archive.

        Returns:
            Dictionary with row counts per table.

        Raises:
            FeedImportError: On a referential or constraint violation.
            FeedParseError: If a streamed table fails to decode mid-import.
        """
        validators = validators or FeedValidators()
        logger.info("Starting feed import...")

        async with get_write_db(self.store.db_path) as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                await self._clear(db)
                row_counts = await self._insert_tables(db, tables)
                row_counts["stop_times"] = await self._insert_stream(
                    db, "stop_times", STOP_TIME_SQL, streams.stop_times, _stop_time_values
                )
                row_counts["shapes"] = await self._insert_stream(
                    db, "shapes", SHAPE_SQL, streams.shapes, _shape_values
                )
                await self._rebuild_rtree(db)
                await self._stamp_metadata(db, validators)
                await db.execute("COMMIT")
            except aiosqlite.IntegrityError as e:
                await db.execute("ROLLBACK")
                logger.error(f"Feed import rolled back: {e}")
                raise FeedImportError(f"Integrity violation during import: {e}") from e
            except BaseException:
                await db.execute("ROLLBACK")
                logger.error("Feed import rolled back")
                raise

        logger.info(f"Feed import complete: {row_counts}")
        return row_counts

    async def import_archive(
        self, archive: FeedArchive, validators: FeedValidators | None = None
    ) -> dict[str, int]:
        """Parse an open archive and import it."""
        tables = await asyncio.to_thread(archive.read_tables)
        streams = FeedStreams(stop_times=archive.stop_times(), shapes=archive.shapes())
        return await self.import_feed(tables, streams, validators)

    async def _clear(self, db: aiosqlite.Connection) -> None:
        for table_name in CLEAR_ORDER:
            await db.execute(f"DELETE FROM {table_name}")

    async def _insert_tables(self, db: aiosqlite.Connection, tables: FeedTables) -> dict[str, int]:
        await db.executemany(
            AGENCY_SQL,
            [(a.agency_id, a.agency_name, a.agency_url, a.agency_timezone) for a in tables.agencies],
        )
        await db.executemany(
            ROUTE_SQL,
            [
                (
                    r.route_id,
                    r.agency_id,
                    r.route_short_name,
                    r.route_long_name,
                    r.route_type,
                    r.route_color,
                    r.route_text_color,
                    r.route_sort_order,
                )
                for r in tables.routes
            ],
        )
        await db.executemany(
            STOP_SQL,
            [
                (
                    s.stop_id,
                    s.stop_code,
                    s.stop_name,
                    s.stop_desc,
                    s.stop_lat,
                    s.stop_lon,
                    s.zone_id,
                    s.stop_url,
                    s.location_type,
                    s.parent_station,
                    s.wheelchair_boarding,
                )
                for s in tables.stops
            ],
        )
        await db.executemany(
            CALENDAR_SQL,
            [
                (
                    c.service_id,
                    int(c.monday),
                    int(c.tuesday),
                    int(c.wednesday),
                    int(c.thursday),
                    int(c.friday),
                    int(c.saturday),
                    int(c.sunday),
                    c.start_date,
                    c.end_date,
                )
                for c in tables.calendar
            ],
        )
        await db.executemany(
            CALENDAR_DATE_SQL,
            [(cd.service_id, cd.date, cd.exception_type) for cd in tables.calendar_dates],
        )
        await db.executemany(
            TRIP_SQL,
            [
                (
                    t.trip_id,
                    t.route_id,
                    t.service_id,
                    t.trip_headsign,
                    t.direction_id,
                    t.block_id,
                    t.shape_id,
                )
                for t in tables.trips
            ],
        )
        counts = tables.counts()
        for table_name, count in counts.items():
            logger.info(f"  Loaded {count:,} rows into {table_name}")
        return counts

    async def _insert_stream(
        self,
        db: aiosqlite.Connection,
        table_name: str,
        insert_sql: str,
        records: Iterable[Any],
        to_values,
    ) -> int:
        """Drain a generator into a table, CHUNK_SIZE rows at a time."""
        iterator = iter(records)
        total_rows = 0
        next_progress = PROGRESS_EVERY
        while True:
            # Decoding runs in a worker thread so the event loop keeps serving reads
            chunk = await asyncio.to_thread(_next_chunk, iterator)
            if not chunk:
                break
            await db.executemany(insert_sql, [to_values(record) for record in chunk])
            total_rows += len(chunk)
            if total_rows >= next_progress:
                logger.info(f"  {table_name}: {total_rows:,} rows imported...")
                next_progress += PROGRESS_EVERY

        logger.info(f"  Loaded {total_rows:,} rows into {table_name}")
        return total_rows

    async def _rebuild_rtree(self, db: aiosqlite.Connection) -> None:
        logger.info("Rebuilding stop spatial index...")
        await db.execute("DELETE FROM stops_rtree")
        await db.execute(REBUILD_RTREE_SQL)

    async def _stamp_metadata(self, db: aiosqlite.Connection, validators: FeedValidators) -> None:
        metadata = {
            "imported_at": datetime.now(UTC).isoformat(),
            "last_modified": validators.last_modified,
            "etag": validators.etag,
        }
        await db.executemany(
            "INSERT OR REPLACE INTO feed_metadata (key, value) VALUES (?, ?)",
            list(metadata.items()),
        )
