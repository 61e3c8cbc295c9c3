import argparse
import asyncio
import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from transit_mcp.app import mcp
from transit_mcp.data.config import Settings, get_settings
from transit_mcp.models.responses import HealthResponse
from transit_mcp.runtime import build_context

# Registers the tools on mcp
from transit_mcp.tools import departure_tools, feed_tools, nearby_tools, stop_tools  # noqa: F401


@mcp.tool()
def health() -> HealthResponse:
    """Check if the transit MCP server is running and healthy.

    Returns the server status, version, and current timestamp.
    Use feed_status to see whether transit data has been imported.
    """
    from transit_mcp import __version__

    return HealthResponse(
        status="ok",
        version=__version__,
        timestamp=datetime.now(UTC).isoformat(),
    )


def print_row_counts(row_counts: dict[str, int]) -> None:
    print("\nImport complete. Row counts:")
    for table, count in row_counts.items():
        print(f"  {table}: {count:,}")


async def run_import(settings: Settings) -> dict[str, int]:
    """Download the feed unconditionally and import it."""
    context = build_context(settings)
    await context.store.open()
    return await context.scheduler.force_refresh()


async def run_ingest(feed_path: Path, settings: Settings) -> dict[str, int]:
    """Import a local GTFS zip or directory."""
    context = build_context(settings)
    await context.store.open()
    return await context.scheduler.ingest_path(feed_path)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="transit-mcp",
        description="Transit departures MCP server",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="SQLite database path (default: data/transit.db or TRANSIT_DB_PATH env var)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser(
        "import",
        help="Download the configured feed and import it, then exit",
    )
    ingest_parser = subparsers.add_parser(
        "ingest",
        help="Import a local GTFS directory or ZIP file, then exit",
    )
    ingest_parser.add_argument(
        "gtfs_path",
        type=Path,
        help="Path to GTFS directory or ZIP file",
    )
    subparsers.add_parser("serve", help="Run the MCP server (default)")

    args = parser.parse_args()

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.db is not None:
        os.environ["TRANSIT_DB_PATH"] = str(args.db)
    settings = get_settings()

    if args.command == "import":
        print_row_counts(asyncio.run(run_import(settings)))
    elif args.command == "ingest":
        print_row_counts(asyncio.run(run_ingest(args.gtfs_path, settings)))
    else:
        # Default: run MCP server
        mcp.run()


if __name__ == "__main__":
    main()
