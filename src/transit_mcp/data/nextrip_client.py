import logging

import httpx

from transit_mcp.data.cache import TTLCache
from transit_mcp.models.realtime import StopPredictions

logger = logging.getLogger(__name__)


class NexTripClient:
    """Async client for the NexTrip per-stop departures API.

    Responses are cached per stop for ``cache_ttl`` seconds.

    Usage:
        async with NexTripClient(base_url) as client:
            predictions = await client.departures_for_stop("56001")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        cache_ttl: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: API root, e.g. https://svc.metrotransit.org/nextrip
            timeout: Request timeout in seconds.
            cache_ttl: Seconds a stop's predictions stay cached.
            transport: Optional httpx transport (tests pass httpx.MockTransport).
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._cache: TTLCache[StopPredictions] = TTLCache(ttl=cache_ttl)
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "NexTripClient":
        """Enter async context - create HTTP client."""
        self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context - close HTTP client."""
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def departures_for_stop(self, stop_id: str) -> StopPredictions:
        """Fetch predictions for one stop (cached).

        Raises:
            RuntimeError: If client not initialized.
            httpx.HTTPError: If the HTTP request fails.
            pydantic.ValidationError: If the payload doesn't match the schema.
        """
        if not self._client:
            raise RuntimeError("Client not initialized - use 'async with'")

        cached = self._cache.get(stop_id)
        if cached is not None:
            return cached

        async with self._cache.lock(stop_id):
            # Double-check cache after acquiring lock
            cached = self._cache.get(stop_id)
            if cached is not None:
                return cached

            response = await self._client.get(f"{self._base_url}/{stop_id}")
            response.raise_for_status()

            # parse JSON directly into Pydantic model
            predictions = StopPredictions.model_validate(response.json())
            self._cache.set(stop_id, predictions)
            logger.debug(f"Fetched {len(predictions.departures)} predictions for stop {stop_id}")
            return predictions
