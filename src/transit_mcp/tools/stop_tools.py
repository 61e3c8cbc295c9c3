"""MCP tools for searching stops and exploring routes."""

import asyncio
from datetime import date

from mcp.server.fastmcp import Context

from transit_mcp.app import mcp
from transit_mcp.models.responses import (
    ListRoutesResponse,
    RouteDetailResponse,
    SearchStopsResponse,
)
from transit_mcp.runtime import get_app_context


@mcp.tool()
async def search_stops(query: str, ctx: Context) -> SearchStopsResponse:
    """Search for transit stops by name or cross streets.

    Cross-street queries are split on "&", "and", "at", "/" or "near", and both
    streets must appear in the stop name. Stops close together are merged into
    one place.

    Examples:
        search_stops(query="Lake & Lyndale")
        search_stops(query="Uptown Transit Center")

    Args:
        query: Stop name or cross streets.

    Returns:
        SearchStopsResponse with places (name and centroid) ranked by similarity.
        Pass a place's lat/lon to find_nearby for departures.
    """
    app = get_app_context(ctx)
    async with asyncio.timeout(app.settings.request_timeout_seconds):
        return await app.stops.search(query)


@mcp.tool()
async def get_route(
    route_id: str,
    ctx: Context,
    service_date: str | None = None,
) -> RouteDetailResponse:
    """Get the ordered stops of a route in each direction.

    Args:
        route_id: The route ID (e.g., "21").
        service_date: Date in YYYY-MM-DD format (default: today).

    Returns:
        RouteDetailResponse with stops for each direction that runs that day.
    """
    app = get_app_context(ctx)
    query_date = date.fromisoformat(service_date) if service_date else app.now().date()
    async with asyncio.timeout(app.settings.request_timeout_seconds):
        return await app.stops.route_detail(route_id, query_date)


@mcp.tool()
async def list_routes(ctx: Context) -> ListRoutesResponse:
    """List every route in the feed, in the agency's display order."""
    app = get_app_context(ctx)
    async with asyncio.timeout(app.settings.request_timeout_seconds):
        return await app.stops.list_routes()
