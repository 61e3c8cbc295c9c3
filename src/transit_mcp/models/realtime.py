"""Pydantic models for realtime departure predictions.

The field names follow the NexTrip JSON payload; the GTFS-RT adapter fills the
same models from trip updates so the merge engine sees one shape.
"""

from pydantic import BaseModel, Field


class RealtimeDeparture(BaseModel):
    """One predicted (or feed-scheduled) departure at a stop."""

    actual: bool = False  # True when backed by live vehicle tracking
    trip_id: str = ""
    stop_id: int | str | None = None
    departure_text: str = ""  # "3 Min", "11:26"
    departure_time: int  # unix timestamp
    description: str = ""  # headsign
    route_id: str = ""
    route_short_name: str = ""
    direction_id: int = 0
    direction_text: str = ""  # "NB", "SB", "EB", "WB"
    terminal: str | None = None
    schedule_relationship: str = "Scheduled"


class PredictionStop(BaseModel):
    stop_id: int | str
    latitude: float | None = None
    longitude: float | None = None
    description: str = ""


class RealtimeAlert(BaseModel):
    stop_closed: bool = False
    alert_text: str = ""


class StopPredictions(BaseModel):
    """Realtime payload for a single stop."""

    stops: list[PredictionStop] = Field(default_factory=list)
    alerts: list[RealtimeAlert] = Field(default_factory=list)
    departures: list[RealtimeDeparture] = Field(default_factory=list)
