"""Departure merge engine: static schedule overlaid with realtime predictions.

Static-first with graceful degradation:
- Every query works from the imported schedule alone
- Realtime predictions replace display times when a trip matches
- A failing or slow prediction source degrades to schedule-only results
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from transit_mcp.data.store import FeedStore, ScheduledDepartureRow
from transit_mcp.errors import FeedNotReadyError, RouteNotFoundError, StopNotFoundError
from transit_mcp.matching.normalizers import expand_direction_text
from transit_mcp.models.gtfs import Stop
from transit_mcp.models.realtime import RealtimeDeparture, StopPredictions
from transit_mcp.models.responses import (
    Departure,
    DepartureSource,
    DeparturesResponse,
    Headway,
    LaterDeparturesResponse,
    StopInfo,
)
from transit_mcp.services.headway_service import detect_headway
from transit_mcp.services.realtime_service import NoPredictions, PredictionSource
from transit_mcp.services.schedule_service import (
    format_datetime,
    format_gtfs_time,
    minutes_between,
    service_dates_for,
    service_datetime,
)

logger = logging.getLogger(__name__)

# A prediction must trail the schedule by more than this to count as late
LATE_TOLERANCE_SECONDS = 120

LATER_FETCH_LIMIT = 200
LATER_HORIZON_MINUTES = 18 * 60


@dataclass
class DepartureBatch:
    """Merged departures at one stop plus what the realtime source reported."""

    departures: list[Departure]
    realtime_available: bool = False
    alerts: list[str] = field(default_factory=list)


def _direction_key(route_id: str, direction_id: int) -> str:
    return f"{route_id}:{direction_id}"


def _rt_datetime(rt: RealtimeDeparture, now: datetime) -> datetime:
    return datetime.fromtimestamp(rt.departure_time, tz=now.tzinfo)


def merge_departures(
    scheduled: list[ScheduledDepartureRow],
    predictions: list[RealtimeDeparture],
    now: datetime,
    limit: int,
) -> list[Departure]:
    """Overlay realtime predictions onto scheduled rows.

    Predictions match scheduled rows by trip id. Direction text comes from the
    matching prediction, or from any prediction for the same route and
    direction. Predictions with no scheduled counterpart are added as
    unscheduled departures when they are still in the future.

    Args:
        scheduled: Scheduled rows, each carrying its service date.
        predictions: Realtime departures for the same stop.
        now: Aware reference time in the operating timezone.
        limit: Maximum number of departures returned.

    Returns:
        Departures sorted by minutes away, truncated to ``limit``.
    """
    by_trip = {rt.trip_id: rt for rt in predictions if rt.trip_id}
    direction_texts: dict[str, str] = {}
    for rt in predictions:
        if rt.direction_text:
            key = _direction_key(rt.route_id, rt.direction_id)
            direction_texts.setdefault(key, expand_direction_text(rt.direction_text))

    scheduled_times = [service_datetime(r.service_date, r.departure_time, now) for r in scheduled]

    # A trip id can appear once per queried service date; its prediction
    # belongs to the run scheduled closest to the predicted time
    owner_rows: dict[str, int] = {}
    for i, row in enumerate(scheduled):
        rt = by_trip.get(row.trip_id)
        if rt is None:
            continue
        best = owner_rows.get(row.trip_id)
        offset = abs(rt.departure_time - scheduled_times[i].timestamp())
        if best is None or offset < abs(rt.departure_time - scheduled_times[best].timestamp()):
            owner_rows[row.trip_id] = i

    merged: list[Departure] = []
    matched_trips: set[str] = set()
    route_styles: dict[str, tuple[str | None, str | None]] = {}

    for i, row in enumerate(scheduled):
        route_styles.setdefault(row.route_id, (row.route_color, row.route_text_color))
        scheduled_at = scheduled_times[i]
        rt = by_trip.get(row.trip_id) if owner_rows.get(row.trip_id) == i else None

        departure = Departure(
            trip_id=row.trip_id,
            route_id=row.route_id,
            route_short_name=row.route_short_name
            or row.route_long_name
            or (rt.route_short_name if rt else "")
            or row.route_id,
            route_color=row.route_color,
            route_text_color=row.route_text_color,
            headsign=row.trip_headsign,
            direction_id=row.direction_id,
            direction_text=direction_texts.get(_direction_key(row.route_id, row.direction_id), ""),
            scheduled_time=row.departure_time,
            scheduled=format_gtfs_time(row.departure_time),
            minutes_away=minutes_between(now, scheduled_at),
        )

        if rt is not None:
            matched_trips.add(row.trip_id)
            if rt.direction_text:
                departure.direction_text = expand_direction_text(rt.direction_text)
            departure.is_realtime = rt.actual
            if rt.actual:
                predicted_at = _rt_datetime(rt, now)
                delay = int(rt.departure_time - scheduled_at.timestamp())
                departure.realtime = format_datetime(predicted_at)
                departure.minutes_away = max(0, minutes_between(now, predicted_at))
                departure.delay_seconds = delay
                departure.is_late = delay > LATE_TOLERANCE_SECONDS
                departure.source = DepartureSource.REALTIME

        merged.append(departure)

    for rt in predictions:
        if rt.trip_id and rt.trip_id in matched_trips:
            continue
        predicted_at = _rt_datetime(rt, now)
        minutes_away = minutes_between(now, predicted_at)
        if minutes_away < 0:
            continue
        color, text_color = route_styles.get(rt.route_id, (None, None))
        merged.append(
            Departure(
                trip_id=rt.trip_id or None,
                route_id=rt.route_id,
                route_short_name=rt.route_short_name or rt.route_id,
                route_color=color,
                route_text_color=text_color,
                headsign=rt.description or None,
                direction_id=rt.direction_id,
                direction_text=expand_direction_text(rt.direction_text),
                scheduled=format_datetime(predicted_at),
                realtime=format_datetime(predicted_at) if rt.actual else None,
                minutes_away=minutes_away,
                is_realtime=rt.actual,
                source=DepartureSource.UNSCHEDULED,
            )
        )

    merged.sort(key=lambda d: d.minutes_away)
    return merged[:limit]


def stop_info(stop: Stop) -> StopInfo:
    return StopInfo(
        stop_id=stop.stop_id,
        stop_name=stop.stop_name,
        stop_code=stop.stop_code,
        stop_desc=stop.stop_desc,
        stop_lat=stop.stop_lat,
        stop_lon=stop.stop_lon,
        wheelchair_boarding=stop.wheelchair_boarding,
    )


class DepartureService:
    """Merged departures for stops.

    Borrows the feed store and the prediction source; neither is owned.
    """

    def __init__(
        self,
        store: FeedStore,
        predictions: PredictionSource,
        realtime_timeout: float = 10.0,
    ):
        self.store = store
        self.predictions = predictions
        self.realtime_timeout = realtime_timeout

    async def scheduled_rows(
        self, stop_id: str, now: datetime, limit: int
    ) -> list[ScheduledDepartureRow]:
        """Scheduled rows at or after now, including yesterday's post-midnight trips."""
        rows: list[ScheduledDepartureRow] = []
        for service_date, after_time in service_dates_for(now):
            rows.extend(await self.store.departures_for_stop(stop_id, service_date, after_time, limit))
        rows.sort(key=lambda r: service_datetime(r.service_date, r.departure_time, now))
        return rows

    async def fetch_predictions(self, stop_id: str) -> StopPredictions | None:
        """Predictions for a stop, or None if the source failed or timed out."""
        try:
            async with asyncio.timeout(self.realtime_timeout):
                return await self.predictions.departures_for_stop(stop_id)
        except Exception as e:
            logger.warning(f"Realtime predictions unavailable for stop {stop_id}: {e!r}")
            return None

    async def fetch_departures(self, stop_id: str, now: datetime, limit: int = 10) -> DepartureBatch:
        """Merge scheduled and realtime departures for one stop.

        Args:
            stop_id: Stop to query.
            now: Aware reference time in the operating timezone.
            limit: Maximum number of departures.

        Returns:
            DepartureBatch; schedule-only if the realtime source failed.
        """
        rows, predictions = await asyncio.gather(
            self.scheduled_rows(stop_id, now, limit * 2),
            self.fetch_predictions(stop_id),
        )

        realtime_available = predictions is not None and not isinstance(
            self.predictions, NoPredictions
        )
        predicted = predictions.departures if predictions else []
        alerts = [a.alert_text for a in predictions.alerts if a.alert_text] if predictions else []

        departures = merge_departures(rows, predicted, now, limit)
        return DepartureBatch(
            departures=departures, realtime_available=realtime_available, alerts=alerts
        )

    async def headway_for(
        self, stop_id: str, route_id: str, direction_id: int, now: datetime
    ) -> Headway | None:
        """Current headway of a route/direction at a stop, if one is regular."""
        for service_date, after_time in service_dates_for(now):
            times = await self.store.all_departures_for_stop_route(
                stop_id, route_id, direction_id, service_date
            )
            headway = detect_headway(times, after_time)
            if headway is not None:
                return headway
        return None

    async def _require_stop(self, stop_id: str) -> Stop:
        if not await self.store.has_data():
            raise FeedNotReadyError("Transit data is still loading, try again shortly")
        stop = await self.store.get_stop(stop_id)
        if stop is None:
            raise StopNotFoundError(f"Stop not found: {stop_id}")
        return stop

    async def stop_departures(
        self, stop_id: str, now: datetime, limit: int = 10
    ) -> DeparturesResponse:
        """Next departures at a stop with the headway of the first one's route.

        Raises:
            FeedNotReadyError: If no feed has been imported yet.
            StopNotFoundError: If the stop does not exist.
        """
        stop = await self._require_stop(stop_id)
        batch = await self.fetch_departures(stop_id, now, limit)

        headway = None
        if batch.departures:
            first = batch.departures[0]
            headway = await self.headway_for(stop_id, first.route_id, first.direction_id, now)

        return DeparturesResponse(
            stop=stop_info(stop),
            departures=batch.departures,
            headway=headway,
            count=len(batch.departures),
            realtime_available=batch.realtime_available,
            alerts=batch.alerts,
            service_date=now.date().isoformat(),
            query_time=now.strftime("%H:%M:%S"),
        )

    async def later_departures(
        self,
        stop_id: str,
        route_id: str,
        direction_id: int,
        now: datetime,
    ) -> LaterDeparturesResponse:
        """Remaining departures of one route/direction at a stop (next 18 hours).

        Raises:
            FeedNotReadyError: If no feed has been imported yet.
            StopNotFoundError: If the stop does not exist.
            RouteNotFoundError: If the route does not exist.
        """
        stop = await self._require_stop(stop_id)
        route = await self.store.get_route(route_id)
        if route is None:
            raise RouteNotFoundError(f"Route not found: {route_id}")

        batch, headway = await asyncio.gather(
            self.fetch_departures(stop_id, now, LATER_FETCH_LIMIT),
            self.headway_for(stop_id, route_id, direction_id, now),
        )
        departures = [
            d
            for d in batch.departures
            if d.route_id == route_id
            and d.direction_id == direction_id
            and d.minutes_away <= LATER_HORIZON_MINUTES
        ]
        direction_text = next((d.direction_text for d in departures if d.direction_text), "")

        return LaterDeparturesResponse(
            stop=stop_info(stop),
            route_id=route_id,
            route_short_name=route.display_name,
            direction_id=direction_id,
            direction_text=direction_text,
            departures=departures,
            headway=headway,
            count=len(departures),
        )
