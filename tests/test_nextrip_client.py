"""Tests for the NexTrip predictions client."""

import httpx
import pytest
from pydantic import ValidationError

from transit_mcp.data.nextrip_client import NexTripClient

BASE_URL = "https://svc.example.org/nextrip/"

SAMPLE_PAYLOAD = {
    "stops": [
        {"stop_id": 1001, "latitude": 44.9485, "longitude": -93.288, "description": "Lake St & Lyndale Ave"}
    ],
    "alerts": [{"stop_closed": False, "alert_text": "Detour on Lake St"}],
    "departures": [
        {
            "actual": True,
            "trip_id": "T21E0",
            "stop_id": 1001,
            "departure_text": "5 Min",
            "departure_time": 1717419300,
            "description": "Lake St / Minnehaha",
            "route_id": "21",
            "route_short_name": "21",
            "direction_id": 0,
            "direction_text": "EB",
            "schedule_relationship": "Scheduled",
        }
    ],
}


class Upstream:
    def __init__(self, status: int = 200, payload=None):
        self.status = status
        self.payload = SAMPLE_PAYLOAD if payload is None else payload
        self.paths: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.paths.append(request.url.path)
        return httpx.Response(self.status, json=self.payload)


class TestNexTripClient:
    async def test_parses_payload(self) -> None:
        upstream = Upstream()
        async with NexTripClient(BASE_URL, transport=httpx.MockTransport(upstream)) as client:
            predictions = await client.departures_for_stop("1001")

        assert upstream.paths == ["/nextrip/1001"]
        assert predictions.stops[0].description == "Lake St & Lyndale Ave"
        assert predictions.alerts[0].alert_text == "Detour on Lake St"
        departure = predictions.departures[0]
        assert departure.actual is True
        assert departure.trip_id == "T21E0"
        assert departure.direction_text == "EB"
        assert departure.terminal is None

    async def test_cached_per_stop(self) -> None:
        upstream = Upstream()
        async with NexTripClient(BASE_URL, transport=httpx.MockTransport(upstream)) as client:
            await client.departures_for_stop("1001")
            await client.departures_for_stop("1001")
            await client.departures_for_stop("1002")

        assert upstream.paths == ["/nextrip/1001", "/nextrip/1002"]

    async def test_error_status_raises(self) -> None:
        upstream = Upstream(status=500)
        async with NexTripClient(BASE_URL, transport=httpx.MockTransport(upstream)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.departures_for_stop("1001")

    async def test_failures_are_not_cached(self) -> None:
        upstream = Upstream(status=500)
        async with NexTripClient(BASE_URL, transport=httpx.MockTransport(upstream)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.departures_for_stop("1001")
            upstream.status = 200
            predictions = await client.departures_for_stop("1001")

        assert len(predictions.departures) == 1
        assert len(upstream.paths) == 2

    async def test_malformed_payload(self) -> None:
        upstream = Upstream(payload={"departures": [{"trip_id": "T1"}]})
        async with NexTripClient(BASE_URL, transport=httpx.MockTransport(upstream)) as client:
            with pytest.raises(ValidationError):
                await client.departures_for_stop("1001")

    async def test_requires_context(self) -> None:
        client = NexTripClient(BASE_URL)
        with pytest.raises(RuntimeError, match="not initialized"):
            await client.departures_for_stop("1001")
