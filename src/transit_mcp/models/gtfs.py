"""Pydantic models for GTFS feed records."""

from pydantic import BaseModel


class Agency(BaseModel):
    """GTFS agency entity."""

    agency_id: str
    agency_name: str
    agency_url: str = ""
    agency_timezone: str = "America/Chicago"


class Route(BaseModel):
    """GTFS route entity."""

    route_id: str
    agency_id: str | None = None
    route_short_name: str | None = None
    route_long_name: str | None = None
    route_type: int = 3  # 0=tram, 2=rail, 3=bus
    route_color: str | None = None
    route_text_color: str | None = None
    route_sort_order: int | None = None

    @property
    def display_name(self) -> str:
        """Short name, falling back to the long name."""
        return self.route_short_name or self.route_long_name or self.route_id


class Stop(BaseModel):
    """GTFS stop entity."""

    stop_id: str
    stop_code: str | None = None
    stop_name: str
    stop_desc: str | None = None  # e.g. "Nearside S"
    stop_lat: float
    stop_lon: float
    zone_id: str | None = None
    stop_url: str | None = None
    location_type: int = 0  # 0=stop, 1=station, 2=entrance
    parent_station: str | None = None
    wheelchair_boarding: int = 0


class CalendarEntry(BaseModel):
    """GTFS calendar entity for weekly service patterns."""

    service_id: str
    monday: bool = False
    tuesday: bool = False
    wednesday: bool = False
    thursday: bool = False
    friday: bool = False
    saturday: bool = False
    sunday: bool = False
    start_date: str  # YYYYMMDD
    end_date: str  # YYYYMMDD


class CalendarDate(BaseModel):
    """GTFS calendar_dates entity for service exceptions."""

    service_id: str
    date: str  # YYYYMMDD
    exception_type: int  # 1=added, 2=removed


class Trip(BaseModel):
    """GTFS trip entity."""

    trip_id: str
    route_id: str
    service_id: str
    trip_headsign: str | None = None
    direction_id: int = 0
    block_id: str | None = None
    shape_id: str | None = None


class StopTime(BaseModel):
    """GTFS stop_times entity."""

    trip_id: str
    arrival_time: str  # HH:MM:SS (can exceed 24:00:00)
    departure_time: str
    stop_id: str
    stop_sequence: int
    pickup_type: int = 0
    drop_off_type: int = 0
    timepoint: int = 0


class ShapePoint(BaseModel):
    """GTFS shapes entity (one polyline vertex)."""

    shape_id: str
    shape_pt_lat: float
    shape_pt_lon: float
    shape_pt_sequence: int
    shape_dist_traveled: float | None = None


class FeedValidators(BaseModel):
    """Conditional-fetch validators recorded with each import."""

    last_modified: str = ""
    etag: str = ""
