"""Tests for the departure merge engine and DepartureService."""

import asyncio
from dataclasses import replace
from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import httpx
import pytest

from transit_mcp.data.store import FeedStore, ScheduledDepartureRow
from transit_mcp.errors import FeedNotReadyError, RouteNotFoundError, StopNotFoundError
from transit_mcp.models.realtime import RealtimeAlert, RealtimeDeparture, StopPredictions
from transit_mcp.models.responses import DepartureSource
from transit_mcp.services.departure_service import DepartureService, merge_departures
from transit_mcp.services.realtime_service import NoPredictions

CHICAGO = ZoneInfo("America/Chicago")
MONDAY = date(2024, 6, 3)
NOW = datetime(2024, 6, 3, 7, 55, tzinfo=CHICAGO)


def _at(hour: int, minute: int, second: int = 0) -> int:
    return int(datetime(2024, 6, 3, hour, minute, second, tzinfo=CHICAGO).timestamp())


def _row(trip_id: str, departure_time: str, route_id: str = "21", direction_id: int = 0):
    return ScheduledDepartureRow(
        trip_id=trip_id,
        route_id=route_id,
        route_short_name=route_id,
        route_long_name=None,
        route_color="0053A0",
        route_text_color="FFFFFF",
        route_type=3,
        trip_headsign="Lake St / Minnehaha",
        direction_id=direction_id,
        departure_time=departure_time,
        stop_sequence=2,
        service_date=MONDAY,
    )


def _prediction(trip_id: str, departure_time: int, **fields) -> RealtimeDeparture:
    fields.setdefault("actual", True)
    fields.setdefault("route_id", "21")
    return RealtimeDeparture(trip_id=trip_id, departure_time=departure_time, **fields)


def _source(*departures: RealtimeDeparture, alerts=()) -> MagicMock:
    source = MagicMock()
    source.departures_for_stop = AsyncMock(
        return_value=StopPredictions(departures=list(departures), alerts=list(alerts))
    )
    return source


class TestMergeDepartures:
    def test_schedule_only(self):
        merged = merge_departures([_row("A", "08:00:00"), _row("B", "08:20:00")], [], NOW, 10)

        assert [d.minutes_away for d in merged] == [5, 25]
        first = merged[0]
        assert first.scheduled == "8:00 AM"
        assert first.scheduled_time == "08:00:00"
        assert first.realtime is None
        assert first.is_realtime is False
        assert first.source == DepartureSource.SCHEDULE

    def test_prediction_overlays_matching_trip(self):
        merged = merge_departures(
            [_row("A", "08:00:00")],
            [_prediction("A", _at(8, 5), direction_text="EB")],
            NOW,
            10,
        )

        departure = merged[0]
        assert departure.realtime == "8:05 AM"
        assert departure.scheduled == "8:00 AM"
        assert departure.minutes_away == 10
        assert departure.delay_seconds == 300
        assert departure.is_late is True
        assert departure.is_realtime is True
        assert departure.direction_text == "Eastbound"
        assert departure.source == DepartureSource.REALTIME

    @pytest.mark.parametrize(
        ("predicted", "late"),
        [((8, 1, 0), False), ((8, 2, 0), False), ((8, 2, 1), True), ((7, 58, 0), False)],
    )
    def test_late_threshold(self, predicted, late):
        merged = merge_departures(
            [_row("A", "08:00:00")], [_prediction("A", _at(*predicted))], NOW, 10
        )
        assert merged[0].is_late is late

    def test_unconfirmed_prediction_keeps_schedule(self):
        merged = merge_departures(
            [_row("A", "08:00:00")],
            [_prediction("A", _at(8, 10), actual=False, direction_text="EB")],
            NOW,
            10,
        )

        departure = merged[0]
        assert departure.minutes_away == 5
        assert departure.realtime is None
        assert departure.delay_seconds is None
        assert departure.is_realtime is False
        assert departure.source == DepartureSource.SCHEDULE
        # Direction text still comes from the feed
        assert departure.direction_text == "Eastbound"

    def test_direction_text_from_same_route_direction(self):
        merged = merge_departures(
            [_row("A", "08:00:00"), _row("W", "08:10:00", direction_id=1)],
            [_prediction("OTHER", _at(8, 30), direction_text="EB")],
            NOW,
            10,
        )

        by_trip = {d.trip_id: d for d in merged}
        assert by_trip["A"].direction_text == "Eastbound"
        assert by_trip["W"].direction_text == ""

    def test_unscheduled_extra_added(self):
        merged = merge_departures(
            [_row("A", "08:20:00")],
            [
                _prediction(
                    "EXTRA",
                    _at(8, 3),
                    route_short_name="21",
                    description="Lake St / Hiawatha",
                    direction_text="EB",
                )
            ],
            NOW,
            10,
        )

        extra = merged[0]
        assert extra.trip_id == "EXTRA"
        assert extra.source == DepartureSource.UNSCHEDULED
        assert extra.minutes_away == 8
        assert extra.headsign == "Lake St / Hiawatha"
        assert extra.route_color == "0053A0"
        assert extra.scheduled_time is None

    def test_departed_extra_dropped(self):
        merged = merge_departures([], [_prediction("GONE", _at(7, 50))], NOW, 10)
        assert merged == []

    def test_prediction_reorders(self):
        merged = merge_departures(
            [_row("A", "08:00:00"), _row("B", "08:05:00")],
            [_prediction("A", _at(8, 12))],
            NOW,
            10,
        )
        assert [d.trip_id for d in merged] == ["B", "A"]

    def test_limit(self):
        rows = [_row(f"T{i}", f"08:{i:02d}:00") for i in range(10, 20)]
        assert len(merge_departures(rows, [], NOW, 3)) == 3

    def test_previous_service_day(self):
        row = _row("LATE", "25:10:00")
        now = datetime(2024, 6, 4, 1, 0, tzinfo=CHICAGO)
        merged = merge_departures([row], [], now, 10)
        assert merged[0].minutes_away == 10
        assert merged[0].scheduled == "1:10 AM"

    def test_prediction_matches_one_run_of_repeated_trip(self):
        """The same trip id on two service dates takes the prediction only once."""
        tonight = _row("LATE", "25:07:00")
        tomorrow_night = replace(tonight, service_date=date(2024, 6, 4))
        now = datetime(2024, 6, 4, 1, 0, tzinfo=CHICAGO)
        predicted = int(datetime(2024, 6, 4, 1, 9, tzinfo=CHICAGO).timestamp())

        merged = merge_departures(
            [tomorrow_night, tonight], [_prediction("LATE", predicted)], now, 10
        )

        assert [d.source for d in merged] == [DepartureSource.REALTIME, DepartureSource.SCHEDULE]
        assert merged[0].minutes_away == 9
        assert merged[0].delay_seconds == 120
        assert merged[1].realtime is None
        assert merged[1].delay_seconds is None
        assert merged[1].minutes_away == 24 * 60 + 7


class TestDepartureService:
    async def test_schedule_only_source(self, loaded_store: FeedStore):
        service = DepartureService(loaded_store, NoPredictions())

        response = await service.stop_departures("LYNDALE_E", NOW)

        assert response.stop.stop_name == "Lake St & Lyndale Ave"
        assert [d.minutes_away for d in response.departures] == [5, 25, 45, 65, 100, 1035]
        assert response.realtime_available is False
        assert response.headway is not None
        assert response.headway.description == "Every 20 min until 9:00 AM"
        assert response.service_date == "2024-06-03"
        assert response.query_time == "07:55:00"
        assert response.count == 6

    async def test_realtime_overlay_and_alerts(self, loaded_store: FeedStore):
        source = _source(
            _prediction("T21E0", _at(8, 5), direction_text="EB"),
            alerts=[RealtimeAlert(alert_text="Detour on Lake St"), RealtimeAlert()],
        )
        service = DepartureService(loaded_store, source)

        response = await service.stop_departures("LYNDALE_E", NOW, limit=2)

        source.departures_for_stop.assert_awaited_once_with("LYNDALE_E")
        assert response.realtime_available is True
        assert response.alerts == ["Detour on Lake St"]
        first = response.departures[0]
        assert first.trip_id == "T21E0"
        assert first.is_late is True
        assert first.direction_text == "Eastbound"
        assert response.departures[1].direction_text == "Eastbound"

    async def test_source_failure_degrades(self, loaded_store: FeedStore):
        source = MagicMock()
        source.departures_for_stop = AsyncMock(side_effect=httpx.ConnectError("down"))
        service = DepartureService(loaded_store, source)

        response = await service.stop_departures("LYNDALE_E", NOW, limit=3)

        assert response.realtime_available is False
        assert [d.trip_id for d in response.departures] == ["T21E0", "T21E1", "T21E2"]

    async def test_slow_source_times_out(self, loaded_store: FeedStore):
        async def hang(stop_id: str) -> StopPredictions:
            await asyncio.sleep(5)
            return StopPredictions()

        source = MagicMock()
        source.departures_for_stop = hang
        service = DepartureService(loaded_store, source, realtime_timeout=0.05)

        batch = await service.fetch_departures("LYNDALE_E", NOW, limit=3)

        assert batch.realtime_available is False
        assert len(batch.departures) == 3

    async def test_late_night_includes_previous_service_day(self, loaded_store: FeedStore):
        now = datetime(2024, 6, 4, 1, 0, tzinfo=CHICAGO)
        service = DepartureService(loaded_store, NoPredictions())

        response = await service.stop_departures("LYNDALE_E", now, limit=3)

        first = response.departures[0]
        assert first.trip_id == "T21E_LATE"
        assert first.minutes_away == 10
        assert first.scheduled == "1:10 AM"

    async def test_late_night_prediction_not_duplicated(self, loaded_store: FeedStore):
        now = datetime(2024, 6, 4, 1, 0, tzinfo=CHICAGO)
        predicted = int(datetime(2024, 6, 4, 1, 9, tzinfo=CHICAGO).timestamp())
        service = DepartureService(loaded_store, _source(_prediction("T21E_LATE", predicted)))

        batch = await service.fetch_departures("HENNEPIN", now, limit=10)

        late_runs = [d for d in batch.departures if d.trip_id == "T21E_LATE"]
        assert [d.source for d in late_runs] == [
            DepartureSource.REALTIME,
            DepartureSource.SCHEDULE,
        ]
        assert late_runs[0].minutes_away == 9
        assert late_runs[0].delay_seconds == 120
        assert late_runs[1].minutes_away == 24 * 60 + 7

    async def test_holiday_exception(self, loaded_store: FeedStore):
        now = datetime(2024, 7, 4, 7, 55, tzinfo=CHICAGO)
        service = DepartureService(loaded_store, NoPredictions())

        response = await service.stop_departures("FRANKLIN", now)

        assert [d.trip_id for d in response.departures] == ["T2_SAT"]
        assert response.departures[0].route_short_name == "Franklin Av Crosstown"

    async def test_weekday_service(self, loaded_store: FeedStore):
        service = DepartureService(loaded_store, NoPredictions())
        response = await service.stop_departures("FRANKLIN", NOW)
        assert [d.trip_id for d in response.departures] == ["T2_WKDY"]
        assert response.headway is None

    async def test_unknown_stop(self, loaded_store: FeedStore):
        service = DepartureService(loaded_store, NoPredictions())
        with pytest.raises(StopNotFoundError):
            await service.stop_departures("NOPE", NOW)

    async def test_not_ready(self, empty_store: FeedStore):
        service = DepartureService(empty_store, NoPredictions())
        with pytest.raises(FeedNotReadyError):
            await service.stop_departures("LYNDALE_E", NOW)


class TestLaterDepartures:
    async def test_route_direction_filter(self, loaded_store: FeedStore):
        service = DepartureService(loaded_store, NoPredictions())

        response = await service.later_departures("LYNDALE_E", "21", 0, NOW)

        assert response.route_short_name == "21"
        assert [d.trip_id for d in response.departures] == [
            "T21E0",
            "T21E1",
            "T21E2",
            "T21E3",
            "T21E4",
            "T21E_LATE",
        ]
        assert response.headway is not None
        assert response.headway.minutes == 20

    async def test_horizon(self, loaded_store: FeedStore):
        # 25:10 is more than 18 hours after 07:00
        now = datetime(2024, 6, 3, 7, 0, tzinfo=CHICAGO)
        service = DepartureService(loaded_store, NoPredictions())

        response = await service.later_departures("LYNDALE_E", "21", 0, now)

        assert "T21E_LATE" not in [d.trip_id for d in response.departures]

    async def test_direction_not_served(self, loaded_store: FeedStore):
        service = DepartureService(loaded_store, NoPredictions())
        response = await service.later_departures("LYNDALE_E", "21", 1, NOW)
        assert response.departures == []
        assert response.count == 0

    async def test_unknown_route(self, loaded_store: FeedStore):
        service = DepartureService(loaded_store, NoPredictions())
        with pytest.raises(RouteNotFoundError):
            await service.later_departures("LYNDALE_E", "999", 0, NOW)
