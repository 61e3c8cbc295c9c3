"""Wiring of the store, scheduler, realtime source and query services."""

from dataclasses import dataclass
from datetime import datetime

import httpx
from mcp.server.fastmcp import Context

from transit_mcp.data.config import Settings
from transit_mcp.data.downloader import FeedDownloader
from transit_mcp.data.importer import FeedImporter
from transit_mcp.data.scheduler import FeedScheduler
from transit_mcp.data.store import FeedStore
from transit_mcp.services.departure_service import DepartureService
from transit_mcp.services.nearby_service import NearbySearchEngine
from transit_mcp.services.realtime_service import PredictionSource, build_prediction_source
from transit_mcp.services.stop_service import StopService


@dataclass
class AppContext:
    """Long-lived components shared by every tool call."""

    settings: Settings
    store: FeedStore
    scheduler: FeedScheduler
    predictions: PredictionSource
    departures: DepartureService
    nearby: NearbySearchEngine
    stops: StopService

    def now(self) -> datetime:
        """Current time in the feed's operating timezone."""
        return self.scheduler.now()


def build_context(
    settings: Settings,
    predictions: PredictionSource | None = None,
    feed_transport: httpx.AsyncBaseTransport | None = None,
) -> AppContext:
    """Construct every component; nothing is opened or started here."""
    store = FeedStore(settings.db_path)
    downloader = FeedDownloader(
        settings.feed_url,
        settings.feed_dir,
        timeout=settings.download_timeout_seconds,
        transport=feed_transport,
    )
    scheduler = FeedScheduler(
        store,
        downloader,
        FeedImporter(store),
        settings.tz,
        check_hour=settings.feed_check_hour,
    )
    if predictions is None:
        predictions = build_prediction_source(settings)
    departures = DepartureService(
        store, predictions, realtime_timeout=settings.realtime_timeout_seconds
    )
    return AppContext(
        settings=settings,
        store=store,
        scheduler=scheduler,
        predictions=predictions,
        departures=departures,
        nearby=NearbySearchEngine(store, departures),
        stops=StopService(store),
    )


def get_app_context(ctx: Context) -> AppContext:
    """The AppContext yielded by the server lifespan."""
    return ctx.request_context.lifespan_context
