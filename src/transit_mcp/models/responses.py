from enum import Enum

from pydantic import BaseModel, Field


class DepartureSource(str, Enum):
    """Where a merged departure's time came from."""

    SCHEDULE = "schedule"  # static GTFS only
    REALTIME = "realtime"  # scheduled trip with a live prediction overlaid
    UNSCHEDULED = "unscheduled"  # realtime-only extra trip


class Departure(BaseModel):
    """A scheduled departure merged with realtime prediction data."""

    trip_id: str | None = None
    route_id: str
    route_short_name: str = Field(description="Short name, falling back to the long name")
    route_color: str | None = None
    route_text_color: str | None = None
    headsign: str | None = Field(default=None, description="Destination displayed on vehicle")
    direction_id: int
    direction_text: str = Field(default="", description="e.g. 'Northbound'")

    scheduled_time: str | None = Field(
        default=None, description="Scheduled departure in GTFS HH:MM:SS (hours may exceed 24)"
    )
    scheduled: str = Field(description="Human-readable scheduled time (e.g. '1:30 AM')")
    realtime: str | None = Field(default=None, description="Human-readable predicted time")
    minutes_away: int = Field(description="Minutes from now until departure")
    delay_seconds: int | None = Field(
        default=None, description="Prediction minus schedule (positive=late)"
    )
    is_realtime: bool = False
    is_late: bool = Field(default=False, description="Predicted more than 2 minutes late")
    source: DepartureSource = DepartureSource.SCHEDULE


class Headway(BaseModel):
    """Regular service interval detected for one route/direction at a stop."""

    minutes: int = Field(description="Interval rounded to the nearest 5 minutes")
    until: str = Field(description="Last departure of the regular pattern (e.g. '8:00 PM')")
    description: str = Field(description="e.g. 'Every 20 min until 8:00 PM'")


class LaterDeparture(BaseModel):
    time: str
    minutes_away: int
    is_realtime: bool = False


class NearbyRouteRow(BaseModel):
    """Next departure of one route/direction at the closest stop serving it."""

    route_id: str
    route_short_name: str
    route_color: str | None = None
    route_text_color: str | None = None
    headsign: str | None = None
    direction_id: int
    direction_text: str = ""
    stop_id: str
    stop_name: str
    distance_m: float = Field(description="Great-circle distance from the search point")
    walk_distance_m: float = Field(description="Street-grid walking estimate")
    departure: Departure
    later: list[LaterDeparture] = Field(default_factory=list)
    headway: Headway | None = None
    alternate: "NearbyRouteRow | None" = Field(
        default=None, description="Opposite direction of the same route at a nearby stop"
    )


NearbyRouteRow.model_rebuild()


class StopRouteGroup(BaseModel):
    """Departures of one route/direction at a stop."""

    route_id: str
    route_short_name: str
    route_color: str | None = None
    route_text_color: str | None = None
    direction_id: int
    direction_text: str = ""
    headsign: str | None = None
    departures: list[Departure]


class NearbyStop(BaseModel):
    stop_id: str
    stop_name: str
    stop_desc: str | None = Field(
        default=None, description="Side-of-street label when several stops share a name"
    )
    distance_m: float
    walk_distance_m: float
    routes: list[StopRouteGroup] = Field(default_factory=list)


class NearbyView(str, Enum):
    ROUTES = "routes"
    STOPS = "stops"


class NearbyResponse(BaseModel):
    """One page of a nearby search."""

    view: NearbyView
    lat: float
    lon: float
    radius_m: float = Field(description="Radius tier that produced this page")
    offset: int
    routes: list[NearbyRouteRow] = Field(default_factory=list)
    stops: list[NearbyStop] = Field(default_factory=list)
    count: int = Field(description="Number of items in this page")
    has_more: bool
    next_offset: int | None = Field(default=None, description="Offset for the next page")
    next_radius_m: float | None = Field(default=None, description="Radius for the next page")


class StopInfo(BaseModel):
    stop_id: str
    stop_name: str
    stop_code: str | None = None
    stop_desc: str | None = None
    stop_lat: float
    stop_lon: float
    wheelchair_boarding: int = 0


class DeparturesResponse(BaseModel):
    """Merged departures at one stop."""

    stop: StopInfo
    departures: list[Departure]
    headway: Headway | None = Field(
        default=None, description="Headway of the first departure's route/direction"
    )
    count: int
    realtime_available: bool = Field(
        description="Whether realtime predictions were retrieved for this query"
    )
    alerts: list[str] = Field(default_factory=list, description="Realtime alert texts")
    service_date: str = Field(description="Service date in YYYY-MM-DD format")
    query_time: str = Field(description="Query time in HH:MM:SS format")


class LaterDeparturesResponse(BaseModel):
    """All remaining departures of one route/direction at a stop."""

    stop: StopInfo
    route_id: str
    route_short_name: str
    direction_id: int
    direction_text: str = ""
    departures: list[Departure]
    headway: Headway | None = None
    count: int


class StopSearchResult(BaseModel):
    name: str = Field(description="Stop name of the first member of the cluster")
    lat: float
    lon: float
    score: float = Field(description="Name similarity to the query (0-100)")
    stop_count: int = Field(description="Number of name groups merged into this place")


class SearchStopsResponse(BaseModel):
    query: str
    results: list[StopSearchResult]
    count: int = Field(description="Number of places returned")


class RouteStop(BaseModel):
    stop_id: str
    stop_name: str
    stop_lat: float
    stop_lon: float
    stop_sequence: int


class RouteDirection(BaseModel):
    direction_id: int
    direction_name: str = Field(description="'Outbound' for 0, 'Inbound' for 1")
    headsign: str | None = None
    stops: list[RouteStop]


class RouteInfo(BaseModel):
    route_id: str
    route_short_name: str
    route_long_name: str | None = None
    route_type: int
    route_color: str | None = None
    route_text_color: str | None = None


class RouteDetailResponse(BaseModel):
    route: RouteInfo
    service_date: str
    directions: list[RouteDirection]


class ListRoutesResponse(BaseModel):
    routes: list[RouteInfo]
    count: int


class FeedStatusResponse(BaseModel):
    """State of the imported feed and the update scheduler."""

    has_data: bool
    imported_at: str | None = None
    last_modified: str | None = None
    etag: str | None = None
    last_check_date: str | None = Field(
        default=None, description="Operating-timezone day of the last conditional check"
    )
    next_check_at: str | None = None
    table_counts: dict[str, int] = Field(default_factory=dict)


class RefreshFeedResponse(BaseModel):
    success: bool
    row_counts: dict[str, int] = Field(default_factory=dict)
    error: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str
