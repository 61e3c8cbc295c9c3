"""Realtime prediction sources.

The merge engine only needs ``departures_for_stop``; which upstream answers it
is chosen by ``Settings.realtime_provider``. Sources are async context
managers so their HTTP clients live as long as the server.
"""

import logging
from typing import Protocol

from transit_mcp.data.config import Settings
from transit_mcp.data.gtfsrt_client import GTFSRTClient
from transit_mcp.data.nextrip_client import NexTripClient
from transit_mcp.models.realtime import StopPredictions

logger = logging.getLogger(__name__)


class PredictionSource(Protocol):
    async def __aenter__(self) -> "PredictionSource": ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None: ...

    async def departures_for_stop(self, stop_id: str) -> StopPredictions: ...


class NoPredictions:
    """Source used when realtime is disabled; every stop has no predictions."""

    available = False

    async def __aenter__(self) -> "NoPredictions":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    async def departures_for_stop(self, stop_id: str) -> StopPredictions:
        return StopPredictions()


def build_prediction_source(settings: Settings) -> PredictionSource:
    """Create the configured prediction source (not yet entered)."""
    provider = settings.realtime_provider
    if provider == "nextrip":
        logger.info(f"Realtime predictions from NexTrip: {settings.nextrip_base_url}")
        return NexTripClient(
            settings.nextrip_base_url,
            timeout=settings.realtime_timeout_seconds,
            cache_ttl=settings.realtime_cache_ttl_seconds,
        )
    if provider == "gtfs-rt":
        if not settings.trip_updates_url:
            logger.warning("TRANSIT_TRIP_UPDATES_URL not set, realtime disabled")
            return NoPredictions()
        logger.info(f"Realtime predictions from GTFS-RT: {settings.trip_updates_url}")
        return GTFSRTClient(
            settings.trip_updates_url,
            api_key=settings.api_key,
            timeout=settings.realtime_timeout_seconds,
            cache_ttl=settings.realtime_cache_ttl_seconds,
        )
    logger.info("Realtime predictions disabled")
    return NoPredictions()
