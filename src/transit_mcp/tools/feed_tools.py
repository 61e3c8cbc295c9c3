"""MCP tools for inspecting and refreshing the imported feed."""

import logging

from mcp.server.fastmcp import Context

from transit_mcp.app import mcp
from transit_mcp.errors import TransitError
from transit_mcp.models.responses import FeedStatusResponse, RefreshFeedResponse
from transit_mcp.runtime import AppContext, get_app_context

logger = logging.getLogger(__name__)


async def build_feed_status(app: AppContext) -> FeedStatusResponse:
    metadata = await app.store.get_all_metadata()
    scheduler = app.scheduler
    return FeedStatusResponse(
        has_data=await app.store.has_data(),
        imported_at=metadata.get("imported_at"),
        last_modified=metadata.get("last_modified") or None,
        etag=metadata.get("etag") or None,
        last_check_date=scheduler.last_check_date.isoformat() if scheduler.last_check_date else None,
        next_check_at=scheduler.next_check_at.isoformat() if scheduler.next_check_at else None,
        table_counts=await app.store.table_counts(),
    )


@mcp.tool()
async def feed_status(ctx: Context) -> FeedStatusResponse:
    """Report when the transit feed was imported and when it is next checked.

    Returns:
        FeedStatusResponse with import time, HTTP validators, scheduler state
        and row counts per table.
    """
    return await build_feed_status(get_app_context(ctx))


@mcp.tool()
async def refresh_feed(ctx: Context) -> RefreshFeedResponse:
    """Download and import the transit feed now, replacing the current data.

    The previous data stays in place if the download or import fails.
    This can take several minutes for a large feed.
    """
    app = get_app_context(ctx)
    try:
        row_counts = await app.scheduler.force_refresh()
    except TransitError as e:
        logger.error(f"Forced feed refresh failed: {e}")
        return RefreshFeedResponse(success=False, error=str(e))
    return RefreshFeedResponse(success=True, row_counts=row_counts)
