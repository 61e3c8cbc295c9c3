"""GTFS archive reader.

Small reference tables are read fully into memory; stop_times and shapes are
exposed as single-pass generators so an import never holds them whole.
"""

import csv
import io
import logging
import zipfile
import zlib
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, TypeVar

from transit_mcp.errors import FeedParseError
from transit_mcp.models.gtfs import (
    Agency,
    CalendarDate,
    CalendarEntry,
    Route,
    ShapePoint,
    Stop,
    StopTime,
    Trip,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Columns = dict[str, int]

REQUIRED_FILES = ("agency.txt", "routes.txt", "stops.txt", "trips.txt", "stop_times.txt")
CALENDAR_FILES = ("calendar.txt", "calendar_dates.txt")

# Columns that must appear in the header of each file.
REQUIRED_COLUMNS: dict[str, list[str]] = {
    "agency.txt": ["agency_name"],
    "routes.txt": ["route_id"],
    "stops.txt": ["stop_id", "stop_name", "stop_lat", "stop_lon"],
    "calendar.txt": [
        "service_id",
        "monday",
        "tuesday",
        "wednesday",
        "thursday",
        "friday",
        "saturday",
        "sunday",
        "start_date",
        "end_date",
    ],
    "calendar_dates.txt": ["service_id", "date", "exception_type"],
    "trips.txt": ["trip_id", "route_id", "service_id"],
    "stop_times.txt": ["trip_id", "stop_id", "stop_sequence"],
    "shapes.txt": ["shape_id", "shape_pt_lat", "shape_pt_lon", "shape_pt_sequence"],
}


@dataclass
class FeedTables:
    """Fully materialized reference tables."""

    agencies: list[Agency] = field(default_factory=list)
    routes: list[Route] = field(default_factory=list)
    stops: list[Stop] = field(default_factory=list)
    calendar: list[CalendarEntry] = field(default_factory=list)
    calendar_dates: list[CalendarDate] = field(default_factory=list)
    trips: list[Trip] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {
            "agency": len(self.agencies),
            "routes": len(self.routes),
            "stops": len(self.stops),
            "calendar": len(self.calendar),
            "calendar_dates": len(self.calendar_dates),
            "trips": len(self.trips),
        }


# Field helpers


def _get(row: list[str], columns: Columns, name: str) -> str:
    idx = columns.get(name)
    if idx is None or idx >= len(row):
        return ""
    return row[idx].strip()


def _required(row: list[str], columns: Columns, name: str) -> str:
    value = _get(row, columns, name)
    if not value:
        raise ValueError(f"missing value for {name}")
    return value


def _optional(row: list[str], columns: Columns, name: str) -> str | None:
    return _get(row, columns, name) or None


def _int(row: list[str], columns: Columns, name: str, default: int = 0) -> int:
    value = _get(row, columns, name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"invalid integer for {name}: {value!r}") from None


def _float(row: list[str], columns: Columns, name: str) -> float:
    value = _required(row, columns, name)
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"invalid number for {name}: {value!r}") from None


def normalize_gtfs_time(value: str) -> str:
    """Zero-pad a GTFS time so string order matches chronological order.

    "7:05:00" -> "07:05:00"; hours past 24 are kept ("25:10:00").
    """
    parts = value.split(":")
    if len(parts) != 3:
        raise ValueError(f"invalid time: {value!r}")
    try:
        hours, minutes, seconds = (int(p) for p in parts)
    except ValueError:
        raise ValueError(f"invalid time: {value!r}") from None
    if hours < 0 or not 0 <= minutes < 60 or not 0 <= seconds < 60:
        raise ValueError(f"invalid time: {value!r}")
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


# Per-record decoders


def decode_agency(row: list[str], columns: Columns) -> Agency:
    return Agency(
        # agency_id is optional for single-agency feeds
        agency_id=_get(row, columns, "agency_id") or "1",
        agency_name=_required(row, columns, "agency_name"),
        agency_url=_get(row, columns, "agency_url"),
        agency_timezone=_get(row, columns, "agency_timezone") or "America/Chicago",
    )


def decode_route(row: list[str], columns: Columns) -> Route:
    sort_order = _get(row, columns, "route_sort_order")
    return Route(
        route_id=_required(row, columns, "route_id"),
        agency_id=_optional(row, columns, "agency_id"),
        route_short_name=_optional(row, columns, "route_short_name"),
        route_long_name=_optional(row, columns, "route_long_name"),
        route_type=_int(row, columns, "route_type", default=3),
        route_color=_optional(row, columns, "route_color"),
        route_text_color=_optional(row, columns, "route_text_color"),
        route_sort_order=int(sort_order) if sort_order else None,
    )


def decode_stop(row: list[str], columns: Columns) -> Stop:
    return Stop(
        stop_id=_required(row, columns, "stop_id"),
        stop_code=_optional(row, columns, "stop_code"),
        stop_name=_required(row, columns, "stop_name"),
        stop_desc=_optional(row, columns, "stop_desc"),
        stop_lat=_float(row, columns, "stop_lat"),
        stop_lon=_float(row, columns, "stop_lon"),
        zone_id=_optional(row, columns, "zone_id"),
        stop_url=_optional(row, columns, "stop_url"),
        location_type=_int(row, columns, "location_type"),
        parent_station=_optional(row, columns, "parent_station"),
        wheelchair_boarding=_int(row, columns, "wheelchair_boarding"),
    )


def decode_calendar(row: list[str], columns: Columns) -> CalendarEntry:
    return CalendarEntry(
        service_id=_required(row, columns, "service_id"),
        monday=_int(row, columns, "monday") == 1,
        tuesday=_int(row, columns, "tuesday") == 1,
        wednesday=_int(row, columns, "wednesday") == 1,
        thursday=_int(row, columns, "thursday") == 1,
        friday=_int(row, columns, "friday") == 1,
        saturday=_int(row, columns, "saturday") == 1,
        sunday=_int(row, columns, "sunday") == 1,
        start_date=_required(row, columns, "start_date"),
        end_date=_required(row, columns, "end_date"),
    )


def decode_calendar_date(row: list[str], columns: Columns) -> CalendarDate:
    exception_type = _int(row, columns, "exception_type")
    if exception_type not in (1, 2):
        raise ValueError(f"invalid exception_type: {exception_type}")
    return CalendarDate(
        service_id=_required(row, columns, "service_id"),
        date=_required(row, columns, "date"),
        exception_type=exception_type,
    )


def decode_trip(row: list[str], columns: Columns) -> Trip:
    return Trip(
        trip_id=_required(row, columns, "trip_id"),
        route_id=_required(row, columns, "route_id"),
        service_id=_required(row, columns, "service_id"),
        trip_headsign=_optional(row, columns, "trip_headsign"),
        direction_id=_int(row, columns, "direction_id"),
        block_id=_optional(row, columns, "block_id"),
        shape_id=_optional(row, columns, "shape_id"),
    )


def decode_stop_time(row: list[str], columns: Columns) -> StopTime:
    arrival = _get(row, columns, "arrival_time")
    departure = _get(row, columns, "departure_time")
    # Untimed stops may leave one of the pair empty; mirror the other.
    arrival = arrival or departure
    departure = departure or arrival
    if arrival:
        arrival = normalize_gtfs_time(arrival)
        departure = normalize_gtfs_time(departure)
    return StopTime(
        trip_id=_required(row, columns, "trip_id"),
        arrival_time=arrival,
        departure_time=departure,
        stop_id=_required(row, columns, "stop_id"),
        stop_sequence=_int(row, columns, "stop_sequence"),
        pickup_type=_int(row, columns, "pickup_type"),
        drop_off_type=_int(row, columns, "drop_off_type"),
        timepoint=_int(row, columns, "timepoint"),
    )


def decode_shape_point(row: list[str], columns: Columns) -> ShapePoint:
    dist = _get(row, columns, "shape_dist_traveled")
    return ShapePoint(
        shape_id=_required(row, columns, "shape_id"),
        shape_pt_lat=_float(row, columns, "shape_pt_lat"),
        shape_pt_lon=_float(row, columns, "shape_pt_lon"),
        shape_pt_sequence=_int(row, columns, "shape_pt_sequence"),
        shape_dist_traveled=float(dist) if dist else None,
    )


def build_header_index(header: list[str], filename: str) -> Columns:
    """Map column names to positions, tolerating a BOM and stray whitespace.

    Raises:
        FeedParseError: If a required column is missing.
    """
    columns: Columns = {}
    for idx, name in enumerate(header):
        cleaned = name.lstrip("\ufeff").strip()
        if cleaned and cleaned not in columns:
            columns[cleaned] = idx
    missing = [col for col in REQUIRED_COLUMNS.get(filename, []) if col not in columns]
    if missing:
        raise FeedParseError(filename, 1, f"missing columns: {', '.join(missing)}")
    return columns


class FeedArchive:
    """A GTFS feed on disk, either a ZIP file or a directory of .txt files.

    Usage:
        with FeedArchive(path) as archive:
            tables = archive.read_tables()
            for stop_time in archive.stop_times():
                ...
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._zip: zipfile.ZipFile | None = None
        self._members: dict[str, str] = {}

    def __enter__(self) -> "FeedArchive":
        if not self.path.exists():
            raise FeedParseError(self.path.name, None, "feed path not found")

        if self.path.is_dir():
            self._members = {p.name: p.name for p in self.path.glob("*.txt")}
        else:
            try:
                self._zip = zipfile.ZipFile(self.path, "r")
            except zipfile.BadZipFile as e:
                raise FeedParseError(self.path.name, None, f"not a valid zip archive: {e}") from e
            # Some publishers nest the files in a folder inside the archive
            self._members = {
                Path(name).name: name
                for name in self._zip.namelist()
                if name.endswith(".txt") and not name.endswith("/")
            }

        try:
            self._check_required_files()
        except FeedParseError:
            self.close()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None

    def has_file(self, filename: str) -> bool:
        return filename in self._members

    def _check_required_files(self) -> None:
        missing = [name for name in REQUIRED_FILES if not self.has_file(name)]
        if not any(self.has_file(name) for name in CALENDAR_FILES):
            missing.append("calendar.txt or calendar_dates.txt")
        if missing:
            raise FeedParseError(self.path.name, None, f"missing required files: {', '.join(missing)}")

    @contextmanager
    def _open_text(self, filename: str) -> Iterator[IO[str]]:
        member = self._members[filename]
        if self._zip is not None:
            with self._zip.open(member) as raw:
                yield io.TextIOWrapper(raw, encoding="utf-8-sig", newline="")
        else:
            with open(self.path / member, encoding="utf-8-sig", newline="") as f:
                yield f

    def records(self, filename: str, decoder: Callable[[list[str], Columns], T]) -> Iterator[T]:
        """Decode a file one record at a time.

        Row numbers in errors count the header as row 1.

        Raises:
            FeedParseError: On a missing header column, undecodable or corrupt
                bytes, or a bad row.
        """
        row_number = 1
        try:
            with self._open_text(filename) as f:
                reader = csv.reader(f)
                header = next(reader, None)
                if header is None:
                    return
                columns = build_header_index(header, filename)
                for row_number, row in enumerate(reader, start=2):
                    if not any(cell.strip() for cell in row):
                        continue
                    try:
                        yield decoder(row, columns)
                    except ValueError as e:
                        raise FeedParseError(filename, row_number, str(e)) from e
        except (UnicodeDecodeError, csv.Error, zipfile.BadZipFile, zlib.error, EOFError) as e:
            raise FeedParseError(filename, row_number, str(e)) from e

    def _read_all(self, filename: str, decoder: Callable[[list[str], Columns], T]) -> list[T]:
        if not self.has_file(filename):
            return []
        items = list(self.records(filename, decoder))
        logger.info(f"  Parsed {len(items):,} rows from {filename}")
        return items

    def read_tables(self) -> FeedTables:
        """Read every small table into memory."""
        logger.info(f"Parsing reference tables from {self.path.name}...")
        return FeedTables(
            agencies=self._read_all("agency.txt", decode_agency),
            routes=self._read_all("routes.txt", decode_route),
            stops=self._read_all("stops.txt", decode_stop),
            calendar=self._read_all("calendar.txt", decode_calendar),
            calendar_dates=self._read_all("calendar_dates.txt", decode_calendar_date),
            trips=self._read_all("trips.txt", decode_trip),
        )

    def stop_times(self) -> Iterator[StopTime]:
        """Single-pass generator over stop_times.txt."""
        return self.records("stop_times.txt", decode_stop_time)

    def shapes(self) -> Iterator[ShapePoint]:
        """Single-pass generator over shapes.txt (empty when the file is absent)."""
        if not self.has_file("shapes.txt"):
            return iter(())
        return self.records("shapes.txt", decode_shape_point)
