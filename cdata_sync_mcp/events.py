"""Debug event server: broadcasts tool lifecycle events over Server-Sent Events."""

import asyncio
import json
import logging
import uuid
from typing import Any

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from .transport import listen_socket, utc_timestamp, uvicorn_server

logger = logging.getLogger(__name__)

# per-client backlog; a stalled client loses events rather than memory
MAX_QUEUED_EVENTS = 100


def format_event(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


class EventBroadcaster:
    def __init__(self):
        self._clients: dict[str, asyncio.Queue] = {}
        self._server: uvicorn.Server | None = None
        self.app = Starlette(
            routes=[
                Route("/events", self.handle_events, methods=["GET"]),
                Route("/health", self.handle_health, methods=["GET"]),
            ],
            middleware=[
                Middleware(
                    CORSMiddleware,
                    allow_origins=["*"],
                    allow_methods=["GET"],
                    allow_headers=["Cache-Control"],
                )
            ],
        )

    @property
    def connected_clients(self) -> int:
        return len(self._clients)

    @property
    def running(self) -> bool:
        return self._server is not None and self._server.started

    def subscribe(self) -> tuple[str, asyncio.Queue]:
        client_id = str(uuid.uuid4())
        queue: asyncio.Queue = asyncio.Queue(maxsize=MAX_QUEUED_EVENTS)
        self._clients[client_id] = queue
        queue.put_nowait(("connected", {"clientId": client_id, "timestamp": utc_timestamp()}))
        return client_id, queue

    def unsubscribe(self, client_id: str) -> None:
        self._clients.pop(client_id, None)

    def broadcast_event(self, event: str, data: dict[str, Any]) -> None:
        for client_id, queue in self._clients.items():
            try:
                queue.put_nowait((event, data))
            except asyncio.QueueFull:
                logger.warning("Event client %s is not keeping up, dropping '%s'", client_id, event)

    async def handle_events(self, request: Request) -> StreamingResponse:
        client_id, queue = self.subscribe()

        async def stream():
            try:
                while True:
                    event, data = await queue.get()
                    yield format_event(event, data)
            finally:
                self.unsubscribe(client_id)

        return StreamingResponse(
            stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    async def handle_health(self, request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "healthy",
                "timestamp": utc_timestamp(),
                "connectedClients": self.connected_clients,
            }
        )

    async def serve(self, port: int, host: str = "0.0.0.0") -> None:
        sock = listen_socket(host, port)
        self._server = uvicorn_server(self.app, host, port)
        logger.info("Debug event server listening on port %s (events: http://localhost:%s/events)", port, port)
        await self._server.serve(sockets=[sock])

    def close(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
