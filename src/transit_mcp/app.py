"""MCP application instance.

This module exists to avoid circular import issues when running with `python -m`.
All tool modules should import `mcp` from here, not from server.py.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

from transit_mcp.data.config import get_settings
from transit_mcp.runtime import AppContext, build_context

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Open the store, load a feed if none exists and run the daily refresh.

    A store that cannot be opened stops the server. A failed initial import
    is logged; tools report the feed as not ready until an import succeeds.
    """
    context = build_context(get_settings())
    await context.store.open()

    try:
        await context.scheduler.ensure_data()
    except Exception as e:
        logger.error(f"Initial feed import failed: {e!r}")

    async with context.predictions:
        context.scheduler.start()
        try:
            yield context
        finally:
            context.scheduler.stop()


mcp = FastMCP(
    "Transit",
    instructions=(
        "Transit departures from a GTFS feed with realtime predictions - nearby stops "
        "and routes, departures at a stop, stop search and route stop lists"
    ),
    lifespan=lifespan,
)
