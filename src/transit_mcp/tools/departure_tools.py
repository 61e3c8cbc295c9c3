import asyncio

from mcp.server.fastmcp import Context

from transit_mcp.app import mcp
from transit_mcp.models.responses import DeparturesResponse, LaterDeparturesResponse
from transit_mcp.runtime import get_app_context


@mcp.tool()
async def get_departures(stop_id: str, ctx: Context, limit: int = 10) -> DeparturesResponse:
    """Get upcoming departures at a transit stop with realtime predictions.

    Scheduled departures are overlaid with live predictions when available.
    A departure predicted more than 2 minutes behind schedule is marked late.
    If realtime data is unavailable the schedule alone is returned and
    realtime_available is false.

    Args:
        stop_id: The stop ID (e.g., "56001").
        limit: Maximum number of departures to return (1-50, default: 10).

    Returns:
        DeparturesResponse with departures, the headway of the next route and alerts.
    """
    # Validate and clamp limit to 1-50
    limit = max(1, min(50, limit))

    app = get_app_context(ctx)
    async with asyncio.timeout(app.settings.request_timeout_seconds):
        return await app.departures.stop_departures(stop_id, app.now(), limit)


@mcp.tool()
async def get_later_departures(
    stop_id: str,
    route_id: str,
    direction_id: int,
    ctx: Context,
) -> LaterDeparturesResponse:
    """Get the rest of today's departures for one route and direction at a stop.

    Covers the next 18 hours and reports the regular service interval
    (e.g. "Every 15 min until 7:00 PM") when one exists.

    Args:
        stop_id: The stop ID.
        route_id: The route ID (e.g., "21").
        direction_id: 0 or 1.

    Returns:
        LaterDeparturesResponse with departures and headway.
    """
    if direction_id not in (0, 1):
        raise ValueError(f"direction_id must be 0 or 1, got {direction_id}")

    app = get_app_context(ctx)
    async with asyncio.timeout(app.settings.request_timeout_seconds):
        return await app.departures.later_departures(stop_id, route_id, direction_id, app.now())
