"""SQLite schema for the imported feed."""

# Applied in order on every start; each statement is idempotent.
MIGRATIONS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS agency (
        agency_id TEXT PRIMARY KEY,
        agency_name TEXT NOT NULL,
        agency_url TEXT NOT NULL DEFAULT '',
        agency_timezone TEXT NOT NULL DEFAULT 'America/Chicago'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS routes (
        route_id TEXT PRIMARY KEY,
        agency_id TEXT REFERENCES agency(agency_id),
        route_short_name TEXT,
        route_long_name TEXT,
        route_type INTEGER NOT NULL DEFAULT 3,
        route_color TEXT,
        route_text_color TEXT,
        route_sort_order INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stops (
        stop_id TEXT PRIMARY KEY,
        stop_code TEXT,
        stop_name TEXT NOT NULL,
        stop_desc TEXT,
        stop_lat REAL NOT NULL,
        stop_lon REAL NOT NULL,
        zone_id TEXT,
        stop_url TEXT,
        location_type INTEGER DEFAULT 0,
        parent_station TEXT,
        wheelchair_boarding INTEGER DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS calendar (
        service_id TEXT PRIMARY KEY,
        monday INTEGER NOT NULL DEFAULT 0,
        tuesday INTEGER NOT NULL DEFAULT 0,
        wednesday INTEGER NOT NULL DEFAULT 0,
        thursday INTEGER NOT NULL DEFAULT 0,
        friday INTEGER NOT NULL DEFAULT 0,
        saturday INTEGER NOT NULL DEFAULT 0,
        sunday INTEGER NOT NULL DEFAULT 0,
        start_date TEXT NOT NULL,
        end_date TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS calendar_dates (
        service_id TEXT NOT NULL,
        date TEXT NOT NULL,
        exception_type INTEGER NOT NULL,
        PRIMARY KEY (service_id, date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS trips (
        trip_id TEXT PRIMARY KEY,
        route_id TEXT NOT NULL REFERENCES routes(route_id),
        service_id TEXT NOT NULL,
        trip_headsign TEXT,
        direction_id INTEGER,
        block_id TEXT,
        shape_id TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stop_times (
        trip_id TEXT NOT NULL REFERENCES trips(trip_id),
        arrival_time TEXT NOT NULL,
        departure_time TEXT NOT NULL,
        stop_id TEXT NOT NULL REFERENCES stops(stop_id),
        stop_sequence INTEGER NOT NULL,
        pickup_type INTEGER DEFAULT 0,
        drop_off_type INTEGER DEFAULT 0,
        timepoint INTEGER DEFAULT 0,
        PRIMARY KEY (trip_id, stop_sequence)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS shapes (
        shape_id TEXT NOT NULL,
        shape_pt_lat REAL NOT NULL,
        shape_pt_lon REAL NOT NULL,
        shape_pt_sequence INTEGER NOT NULL,
        shape_dist_traveled REAL,
        PRIMARY KEY (shape_id, shape_pt_sequence)
    )
    """,
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS stops_rtree USING rtree(
        id,
        min_lat, max_lat,
        min_lon, max_lon
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS feed_metadata (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_stop_times_stop ON stop_times(stop_id)",
    "CREATE INDEX IF NOT EXISTS idx_stop_times_trip ON stop_times(trip_id)",
    "CREATE INDEX IF NOT EXISTS idx_stop_times_departure ON stop_times(stop_id, departure_time)",
    "CREATE INDEX IF NOT EXISTS idx_trips_route ON trips(route_id)",
    "CREATE INDEX IF NOT EXISTS idx_trips_service ON trips(service_id)",
    "CREATE INDEX IF NOT EXISTS idx_trips_route_direction ON trips(route_id, direction_id)",
    "CREATE INDEX IF NOT EXISTS idx_calendar_dates_date ON calendar_dates(date)",
    "CREATE INDEX IF NOT EXISTS idx_stops_name ON stops(stop_name)",
]

# Children before parents so foreign keys hold while clearing.
CLEAR_ORDER: list[str] = [
    "stop_times",
    "shapes",
    "trips",
    "calendar_dates",
    "calendar",
    "stops",
    "routes",
    "agency",
    "stops_rtree",
    "feed_metadata",
]

FEED_TABLES: list[str] = [
    "agency",
    "routes",
    "stops",
    "calendar",
    "calendar_dates",
    "trips",
    "stop_times",
    "shapes",
]

REBUILD_RTREE_SQL = """
    INSERT INTO stops_rtree (id, min_lat, max_lat, min_lon, max_lon)
    SELECT rowid, stop_lat, stop_lat, stop_lon, stop_lon FROM stops
"""

# A service runs on a date when its weekly pattern covers the date and no
# removal exception exists, or when an addition exception exists.
# Parameters: date, date, date, date. The weekday column is formatted in.
ACTIVE_SERVICE_SQL = """
    (
        (t.service_id IN (
            SELECT service_id FROM calendar
            WHERE {weekday} = 1 AND start_date <= ? AND end_date >= ?
        ) AND t.service_id NOT IN (
            SELECT service_id FROM calendar_dates
            WHERE date = ? AND exception_type = 2
        ))
        OR t.service_id IN (
            SELECT service_id FROM calendar_dates
            WHERE date = ? AND exception_type = 1
        )
    )
"""

# GTFS calendar weekday columns indexed by date.weekday() (0=Monday)
WEEKDAY_COLUMNS = [
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
]
