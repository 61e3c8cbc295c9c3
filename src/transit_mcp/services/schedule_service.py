"""GTFS time helpers and service-day arithmetic."""

from datetime import date, datetime, time, timedelta


# Before this hour, trips of the previous service day may still be running
LATE_NIGHT_THRESHOLD_HOUR = 4


def parse_gtfs_time(time_str: str) -> tuple[int, int, int]:
    """Split "HH:MM:SS" into integers; hours run past 23 for post-midnight trips.

    Raises:
        ValueError: If the text is not three numeric fields or minutes/seconds
            are out of range.
    """
    fields = time_str.strip().split(":")
    if len(fields) != 3 or not all(f.isdigit() for f in fields):
        raise ValueError(f"Invalid GTFS time format: {time_str}")
    hours, minutes, seconds = (int(f) for f in fields)
    if minutes > 59 or seconds > 59:
        raise ValueError(f"Invalid GTFS time format: {time_str}")
    return hours, minutes, seconds


def gtfs_time_to_seconds(time_str: str) -> int:
    """Seconds after the service day's midnight ("25:00:00" -> 90000)."""
    hours, minutes, seconds = parse_gtfs_time(time_str)
    return (hours * 60 + minutes) * 60 + seconds


def format_clock(hours: int, minutes: int) -> str:
    """12-hour clock text for an hour in 0-23."""
    period = "AM" if hours < 12 else "PM"
    display_hour = hours % 12 or 12
    return f"{display_hour}:{minutes:02d} {period}"


def format_gtfs_time(time_str: str) -> str:
    """Format a GTFS time string for human display.

    Hours past 24 wrap onto the next day's clock: "24:00:00" -> "12:00 AM",
    "25:30:00" -> "1:30 AM".

    Args:
        time_str: Time string in HH:MM:SS format.

    Returns:
        Human-readable time like "8:30 AM".
    """
    hours, minutes, _ = parse_gtfs_time(time_str)
    return format_clock(hours % 24, minutes)


def format_datetime(dt: datetime) -> str:
    return format_clock(dt.hour, dt.minute)


def time_to_gtfs_format(dt: datetime, extended: bool = False) -> str:
    """Convert a datetime to GTFS time format.

    Args:
        dt: Datetime object.
        extended: Add 24 hours, expressing the time on the previous service day.

    Returns:
        Time string in HH:MM:SS format.
    """
    hours = dt.hour + 24 if extended else dt.hour
    return f"{hours:02d}:{dt.minute:02d}:{dt.second:02d}"


def date_to_gtfs_format(d: date) -> str:
    """Convert a date to GTFS date format (YYYYMMDD)."""
    return d.strftime("%Y%m%d")


def service_datetime(service_date: date, time_str: str, now: datetime) -> datetime:
    """Wall-clock datetime of a GTFS time on a service date, in now's timezone."""
    midnight = datetime.combine(service_date, time(0), tzinfo=now.tzinfo)
    return midnight + timedelta(seconds=gtfs_time_to_seconds(time_str))


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end (floored), in real elapsed time."""
    return int((end.timestamp() - start.timestamp()) // 60)


def service_dates_for(now: datetime) -> list[tuple[date, str]]:
    """(service_date, after_time) pairs to query for departures at ``now``.

    In the small hours the previous service day is still running with times
    past 24:00, so it is queried first with an extended time.
    """
    today = now.date()
    pairs: list[tuple[date, str]] = []
    if now.hour < LATE_NIGHT_THRESHOLD_HOUR:
        pairs.append((today - timedelta(days=1), time_to_gtfs_format(now, extended=True)))
    pairs.append((today, time_to_gtfs_format(now)))
    return pairs
