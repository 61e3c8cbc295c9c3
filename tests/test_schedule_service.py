"""Tests for GTFS time helpers."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from transit_mcp.services.schedule_service import (
    LATE_NIGHT_THRESHOLD_HOUR,
    date_to_gtfs_format,
    format_gtfs_time,
    gtfs_time_to_seconds,
    minutes_between,
    parse_gtfs_time,
    service_dates_for,
    service_datetime,
    time_to_gtfs_format,
)

CHICAGO = ZoneInfo("America/Chicago")


class TestGTFSTimeParsing:
    """Tests for GTFS time parsing functions."""

    def test_parse_normal_time(self) -> None:
        assert parse_gtfs_time("08:30:15") == (8, 30, 15)

    def test_parse_time_exceeding_24(self) -> None:
        assert parse_gtfs_time("25:30:00") == (25, 30, 0)

    def test_parse_invalid_format(self) -> None:
        with pytest.raises(ValueError, match="Invalid GTFS time format"):
            parse_gtfs_time("8:30")

    def test_parse_non_numeric(self) -> None:
        with pytest.raises(ValueError, match="Invalid GTFS time format"):
            parse_gtfs_time("aa:bb:cc")

    def test_seconds_past_midnight(self) -> None:
        assert gtfs_time_to_seconds("00:00:00") == 0
        assert gtfs_time_to_seconds("25:00:00") == 90000


class TestFormatGTFSTime:
    """Hours past 24 wrap onto the next day's 12-hour clock."""

    def test_format_morning(self) -> None:
        assert format_gtfs_time("08:30:00") == "8:30 AM"

    def test_format_noon(self) -> None:
        assert format_gtfs_time("12:00:00") == "12:00 PM"

    def test_format_evening(self) -> None:
        assert format_gtfs_time("23:05:00") == "11:05 PM"

    def test_format_midnight(self) -> None:
        assert format_gtfs_time("00:00:00") == "12:00 AM"

    @pytest.mark.parametrize(
        ("gtfs_time", "expected"),
        [("24:00:00", "12:00 AM"), ("25:30:00", "1:30 AM"), ("26:15:00", "2:15 AM")],
    )
    def test_format_exceeding_24(self, gtfs_time: str, expected: str) -> None:
        assert format_gtfs_time(gtfs_time) == expected

    def test_string_order_is_chronological_across_midnight(self) -> None:
        times = ["25:00:00", "23:00:00", "24:30:00"]
        assert sorted(times) == ["23:00:00", "24:30:00", "25:00:00"]
        assert [gtfs_time_to_seconds(t) for t in sorted(times)] == sorted(
            gtfs_time_to_seconds(t) for t in times
        )


class TestTimeConversion:
    def test_time_to_gtfs_format(self) -> None:
        assert time_to_gtfs_format(datetime(2024, 6, 3, 8, 5, 9)) == "08:05:09"

    def test_extended_time_adds_a_day(self) -> None:
        assert time_to_gtfs_format(datetime(2024, 6, 4, 1, 30), extended=True) == "25:30:00"

    def test_date_to_gtfs_format(self) -> None:
        assert date_to_gtfs_format(date(2024, 7, 4)) == "20240704"

    def test_service_datetime_past_midnight(self) -> None:
        now = datetime(2024, 6, 4, 1, 0, tzinfo=CHICAGO)
        result = service_datetime(date(2024, 6, 3), "25:10:00", now)
        assert result == datetime(2024, 6, 4, 1, 10, tzinfo=CHICAGO)

    def test_minutes_between_floors(self) -> None:
        start = datetime(2024, 6, 3, 8, 0, 0, tzinfo=CHICAGO)
        assert minutes_between(start, datetime(2024, 6, 3, 8, 5, 59, tzinfo=CHICAGO)) == 5
        assert minutes_between(start, datetime(2024, 6, 3, 7, 59, 30, tzinfo=CHICAGO)) == -1


class TestServiceDatesFor:
    def test_daytime_queries_today_only(self) -> None:
        now = datetime(2024, 6, 3, 14, 0, tzinfo=CHICAGO)
        assert service_dates_for(now) == [(date(2024, 6, 3), "14:00:00")]

    def test_late_night_includes_previous_service_day(self) -> None:
        now = datetime(2024, 6, 4, 1, 30, tzinfo=CHICAGO)
        assert service_dates_for(now) == [
            (date(2024, 6, 3), "25:30:00"),
            (date(2024, 6, 4), "01:30:00"),
        ]

    def test_threshold_boundary(self) -> None:
        now = datetime(2024, 6, 4, LATE_NIGHT_THRESHOLD_HOUR, 0, tzinfo=CHICAGO)
        assert len(service_dates_for(now)) == 1
