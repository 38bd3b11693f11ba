"""Tests for the debug event server."""

import asyncio
import json

import httpx
import pytest

from cdata_sync_mcp.events import MAX_QUEUED_EVENTS, EventBroadcaster, format_event


def test_format_event():
    assert format_event("tool_success", {"tool": "read_jobs"}) == (
        'event: tool_success\ndata: {"tool": "read_jobs"}\n\n'
    )


class TestBroadcaster:
    """Tests for subscription and fan-out."""

    @pytest.mark.asyncio
    async def test_subscribe_sends_connected_first(self):
        events = EventBroadcaster()

        client_id, queue = events.subscribe()
        name, data = queue.get_nowait()

        assert name == "connected"
        assert data["clientId"] == client_id
        assert events.connected_clients == 1

    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_client(self):
        events = EventBroadcaster()
        _, first = events.subscribe()
        _, second = events.subscribe()

        events.broadcast_event("job_executed", {"jobName": "Daily"})

        for queue in (first, second):
            queue.get_nowait()
            assert queue.get_nowait() == ("job_executed", {"jobName": "Daily"})

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        events = EventBroadcaster()
        client_id, queue = events.subscribe()

        events.unsubscribe(client_id)
        events.broadcast_event("tool_success", {})

        assert events.connected_clients == 0
        assert queue.qsize() == 1

    @pytest.mark.asyncio
    async def test_slow_client_drops_events(self):
        """Test that a full client queue does not block other clients."""
        events = EventBroadcaster()
        _, slow = events.subscribe()

        for index in range(MAX_QUEUED_EVENTS + 5):
            events.broadcast_event("tool_execution", {"index": index})

        assert slow.qsize() == MAX_QUEUED_EVENTS

    def test_not_running_until_served(self):
        assert EventBroadcaster().running is False


class TestHealth:
    """Tests for the event server's health endpoint."""

    @pytest.mark.asyncio
    async def test_health_reports_clients(self):
        events = EventBroadcaster()
        events.subscribe()

        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=events.app), base_url="http://testserver"
        ) as client:
            response = await client.get("/health", headers={"Origin": "http://dashboard.local"})

        body = response.json()
        assert body["status"] == "healthy"
        assert body["connectedClients"] == 1
        assert response.headers["access-control-allow-origin"] == "*"


@pytest.mark.asyncio
async def test_events_are_encoded_for_the_stream():
    events = EventBroadcaster()
    _, queue = events.subscribe()
    events.broadcast_event("config_changed", {"baseUrl": "http://sync.test:8181/api.rsc"})

    queue.get_nowait()
    name, data = await asyncio.wait_for(queue.get(), 1)

    assert json.loads(format_event(name, data).split("data: ")[1]) == {"baseUrl": "http://sync.test:8181/api.rsc"}
