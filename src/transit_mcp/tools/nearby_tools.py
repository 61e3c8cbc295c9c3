"""MCP tool for nearby stops and routes."""

import asyncio

from mcp.server.fastmcp import Context

from transit_mcp.app import mcp
from transit_mcp.models.responses import NearbyResponse, NearbyView
from transit_mcp.runtime import get_app_context
from transit_mcp.services.nearby_service import PAGE_LIMIT


@mcp.tool()
async def find_nearby(
    lat: float,
    lon: float,
    ctx: Context,
    view: str = "routes",
    offset: int = 0,
    radius_m: float | None = None,
) -> NearbyResponse:
    """Find transit departures near a location.

    The "routes" view lists each route and direction once, at the closest stop
    serving it, with the opposite direction attached as an alternate when it
    stops nearby. The "stops" view lists stops by distance with their
    departures grouped by route.

    The search radius widens automatically until something is found. To get
    the next page, call again with offset=next_offset and radius_m=next_radius_m
    from the previous response.

    Args:
        lat: Latitude in degrees.
        lon: Longitude in degrees.
        view: "routes" (default) or "stops".
        offset: Number of items already shown (default 0).
        radius_m: Search radius tier in meters (default: smallest tier).

    Returns:
        NearbyResponse with one page of routes or stops.
    """
    if not -90 <= lat <= 90 or not -180 <= lon <= 180:
        raise ValueError(f"Invalid coordinates: {lat}, {lon}")
    nearby_view = NearbyView.STOPS if view == "stops" else NearbyView.ROUTES
    offset = max(0, offset)

    app = get_app_context(ctx)
    async with asyncio.timeout(app.settings.request_timeout_seconds):
        return await app.nearby.search(
            lat,
            lon,
            app.now(),
            view=nearby_view,
            offset=offset,
            radius=radius_m,
            limit=PAGE_LIMIT,
        )
