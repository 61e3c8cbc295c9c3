import logging
from collections import defaultdict

import httpx
from google.transit import gtfs_realtime_pb2

from transit_mcp.data.cache import TTLCache
from transit_mcp.models.realtime import RealtimeDeparture, StopPredictions

logger = logging.getLogger(__name__)

_FEED_KEY = "trip_updates"


class GTFSRTClient:
    """Prediction source backed by a GTFS-RT TripUpdates feed.

    The whole feed is fetched at once, indexed by stop and cached, so
    per-stop lookups within the TTL cost nothing.

    Usage:
        async with GTFSRTClient(url) as client:
            predictions = await client.departures_for_stop("56001")
    """

    def __init__(
        self,
        trip_updates_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        cache_ttl: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._url = trip_updates_url
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._cache: TTLCache[dict[str, list[RealtimeDeparture]]] = TTLCache(ttl=cache_ttl)
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GTFSRTClient":
        """Enter async context - create HTTP client."""
        headers = {}
        if self._api_key:
            headers["apikey"] = self._api_key
        self._client = httpx.AsyncClient(
            headers=headers, timeout=self._timeout, transport=self._transport
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context - close HTTP client."""
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def departures_for_stop(self, stop_id: str) -> StopPredictions:
        """Predictions for one stop from the cached feed index.

        Raises:
            RuntimeError: If client not initialized.
            httpx.HTTPError: If the HTTP request fails.
        """
        index = await self._get_index()
        return StopPredictions(departures=index.get(stop_id, []))

    async def _get_index(self) -> dict[str, list[RealtimeDeparture]]:
        if not self._client:
            raise RuntimeError("Client not initialized - use 'async with'")

        cached = self._cache.get(_FEED_KEY)
        if cached is not None:
            return cached

        async with self._cache.lock(_FEED_KEY):
            cached = self._cache.get(_FEED_KEY)
            if cached is not None:
                return cached

            response = await self._client.get(self._url)
            response.raise_for_status()

            feed = gtfs_realtime_pb2.FeedMessage()
            feed.ParseFromString(response.content)

            index = parse_trip_updates(feed)
            self._cache.set(_FEED_KEY, index)
            logger.debug(f"Indexed trip updates for {len(index)} stops")
            return index


def parse_trip_updates(feed: gtfs_realtime_pb2.FeedMessage) -> dict[str, list[RealtimeDeparture]]:
    """Index a TripUpdates feed by stop id.

    Only stop time updates carrying an absolute time are kept; delay-only
    updates cannot be placed without the static schedule.
    """
    index: dict[str, list[RealtimeDeparture]] = defaultdict(list)
    for entity in feed.entity:
        if not entity.HasField("trip_update"):
            continue
        tu = entity.trip_update
        trip = tu.trip
        canceled = trip.schedule_relationship == gtfs_realtime_pb2.TripDescriptor.CANCELED
        if canceled:
            continue
        for stu in tu.stop_time_update:
            if not stu.stop_id:
                continue
            event_time = 0
            if stu.HasField("departure") and stu.departure.time:
                event_time = stu.departure.time
            elif stu.HasField("arrival") and stu.arrival.time:
                event_time = stu.arrival.time
            if not event_time:
                continue
            index[stu.stop_id].append(
                RealtimeDeparture(
                    actual=True,
                    trip_id=trip.trip_id,
                    stop_id=stu.stop_id,
                    departure_time=event_time,
                    route_id=trip.route_id,
                    direction_id=trip.direction_id if trip.HasField("direction_id") else 0,
                )
            )

    for departures in index.values():
        departures.sort(key=lambda d: d.departure_time)
    return dict(index)
