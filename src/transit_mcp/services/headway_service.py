"""Headway detection over one route/direction's daily departures at a stop."""

from transit_mcp.models.responses import Headway
from transit_mcp.services.schedule_service import format_gtfs_time, gtfs_time_to_seconds

# Gaps within this many minutes of a run's first gap belong to the run
GAP_TOLERANCE_MINUTES = 2

MIN_FUTURE_DEPARTURES = 3
MIN_RUN_GAPS = 3


def round_to_five(minutes: int) -> int:
    """Round to the nearest 5 minutes, keeping the raw value if that gives 0."""
    rounded = ((minutes + 2) // 5) * 5
    return rounded or minutes


def detect_headway(times: list[str], after_time: str) -> Headway | None:
    """Find the current regular service interval.

    Only departures at or after ``after_time`` count. The longest run of
    consecutive gaps within ``GAP_TOLERANCE_MINUTES`` of the run's first gap
    wins, so a change of regime later in the day (rush hour to midday) does
    not blur the interval being reported.

    Args:
        times: GTFS departure times (HH:MM:SS), sorted ascending.
        after_time: Lower bound in the same time base as ``times``.

    Returns:
        Headway, or None when fewer than three consistent gaps exist.
    """
    future = [t for t in times if t >= after_time]
    if len(future) < MIN_FUTURE_DEPARTURES:
        return None

    gaps: list[int] = []
    for earlier, later in zip(future, future[1:]):
        gap = (gtfs_time_to_seconds(later) - gtfs_time_to_seconds(earlier)) // 60
        if gap > 0:
            gaps.append(gap)
    if len(gaps) < 2:
        return None

    best_start, best_len = 0, 0
    for start in range(len(gaps)):
        base = gaps[start]
        run_len = 1
        for gap in gaps[start + 1 :]:
            if abs(gap - base) > GAP_TOLERANCE_MINUTES:
                break
            run_len += 1
        if run_len > best_len:
            best_start, best_len = start, run_len

    if best_len < MIN_RUN_GAPS:
        return None

    run = gaps[best_start : best_start + best_len]
    minutes = round_to_five(sum(run) // len(run))
    # Run of n gaps spans n + 1 departures; the last one closes the pattern
    end_time = future[min(best_start + best_len, len(future) - 1)]
    until = format_gtfs_time(end_time)
    return Headway(
        minutes=minutes,
        until=until,
        description=f"Every {minutes} min until {until}",
    )
