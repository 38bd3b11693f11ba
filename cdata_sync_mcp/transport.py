"""Streamable HTTP transport: JSON-RPC over POST plus a Server-Sent Events stream.

POST {path}/message carries one JSON-RPC message. Requests are forwarded to
the MCP session and answered with the matching response, correlated by id.
Everything else the session sends (notifications, server requests) goes to
the connected GET {path}/stream clients, or into a bounded buffer that is
flushed to the next client that connects.
"""

import asyncio
import json
import logging
import socket
import uuid
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import anyio
import uvicorn
from anyio.abc import ObjectSendStream
from mcp.shared.message import SessionMessage
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    PARSE_ERROR,
    JSONRPCError,
    JSONRPCMessage,
    JSONRPCRequest,
    JSONRPCResponse,
)
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

logger = logging.getLogger(__name__)

SERVER_NAME = "cdata-sync-mcp-server"
PROTOCOL_VERSION = "0.1.0"
MAX_BUFFERED_MESSAGES = 1000


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def error_envelope(request_id: Any, code: int, message: str, data: Any = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


def uvicorn_server(app: Starlette, host: str, port: int) -> uvicorn.Server:
    return uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))


def listen_socket(host: str, port: int) -> socket.socket:
    """Bind up front so a busy port raises OSError instead of uvicorn's sys.exit."""
    sock = socket.socket(socket.AF_INET6 if ":" in host else socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


class StreamableHttpTransport:
    def __init__(
        self,
        path: str = "/mcp/v1",
        cors: bool = True,
        timeout: float = 30.0,
        max_buffer: int = MAX_BUFFERED_MESSAGES,
    ):
        self.path = "/" + path.strip("/") if path.strip("/") else ""
        self.cors = cors
        self.timeout = timeout
        self._pending: dict[str | int, asyncio.Future] = {}
        self._buffer: deque[dict[str, Any]] = deque(maxlen=max_buffer)
        self._streams: dict[str, asyncio.Queue] = {}
        self._read_send: ObjectSendStream | None = None
        self._server: uvicorn.Server | None = None
        self.app = self._build_app()

    @property
    def pending_requests(self) -> int:
        return len(self._pending)

    @property
    def buffered_messages(self) -> int:
        return len(self._buffer)

    @property
    def connected_streams(self) -> int:
        return len(self._streams)

    def _build_app(self) -> Starlette:
        middleware = []
        if self.cors:
            middleware.append(
                Middleware(
                    CORSMiddleware,
                    allow_origin_regex=".*",
                    allow_methods=["GET", "POST", "OPTIONS"],
                    allow_headers=["Content-Type", "Authorization", "x-mcp-client-id"],
                    allow_credentials=True,
                )
            )
        routes = [
            Route(f"{self.path}/health", self.handle_health, methods=["GET"]),
            Route(f"{self.path}/info", self.handle_info, methods=["GET"]),
            Route(f"{self.path}/message", self.handle_message, methods=["POST"]),
            Route(f"{self.path}/stream", self.handle_stream, methods=["GET"]),
        ]
        return Starlette(routes=routes, middleware=middleware)

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[tuple[Any, Any]]:
        """Yield (read_stream, write_stream) for Server.run, like stdio_server does."""
        read_send, read_stream = anyio.create_memory_object_stream[SessionMessage | Exception](0)
        write_stream, write_receive = anyio.create_memory_object_stream[SessionMessage](0)

        async with anyio.create_task_group() as tg:
            tg.start_soon(self._forward_outgoing, write_receive)
            self._read_send = read_send
            try:
                yield read_stream, write_stream
            finally:
                self._read_send = None
                await read_send.aclose()
                tg.cancel_scope.cancel()

    async def _forward_outgoing(self, write_receive) -> None:
        async with write_receive:
            async for session_message in write_receive:
                self.deliver(session_message.message)

    def deliver(self, message: JSONRPCMessage) -> None:
        """Resolve the pending request a response belongs to, or stream the message."""
        payload = message.model_dump(by_alias=True, mode="json", exclude_none=True)
        root = message.root
        if isinstance(root, (JSONRPCResponse, JSONRPCError)):
            future = self._pending.get(root.id)
            if future is not None:
                if not future.done():
                    future.set_result(payload)
                return
        self._send_to_streams(payload)

    def _send_to_streams(self, payload: dict[str, Any]) -> None:
        if not self._streams:
            if len(self._buffer) == self._buffer.maxlen:
                logger.warning("Stream buffer full, dropping oldest message")
            self._buffer.append(payload)
            return
        for client_id, queue in self._streams.items():
            try:
                queue.put_nowait(payload)
            except asyncio.QueueFull:
                logger.warning("Stream client %s is not keeping up, dropping message", client_id)

    async def handle_health(self, request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "healthy",
                "transport": "streamable-http",
                "timestamp": utc_timestamp(),
                "pendingRequests": self.pending_requests,
                "bufferedMessages": self.buffered_messages,
            }
        )

    async def handle_info(self, request: Request) -> JSONResponse:
        base = f"{request.url.scheme}://{request.url.netloc}{self.path}"
        return JSONResponse(
            {
                "protocol": "Model Context Protocol",
                "version": PROTOCOL_VERSION,
                "transport": "streamable-http",
                "server": SERVER_NAME,
                "endpoints": {
                    "message": f"{base}/message",
                    "stream": f"{base}/stream",
                    "health": f"{base}/health",
                },
                "features": [
                    "bidirectional-communication",
                    "streaming-responses",
                    "request-response-correlation",
                ],
            }
        )

    async def handle_message(self, request: Request) -> Response:
        try:
            body = await request.json()
        except ValueError as e:
            return JSONResponse(error_envelope(None, PARSE_ERROR, "Parse error", str(e)), status_code=400)

        if not isinstance(body, dict) or body.get("jsonrpc") != "2.0":
            request_id = body.get("id") if isinstance(body, dict) else None
            return JSONResponse(
                error_envelope(request_id, INVALID_REQUEST, "Invalid Request", "Invalid JSON-RPC version"),
                status_code=400,
            )

        try:
            message = JSONRPCMessage.model_validate(body)
        except ValidationError as e:
            return JSONResponse(
                error_envelope(body.get("id"), INVALID_REQUEST, "Invalid Request", str(e)),
                status_code=400,
            )

        root = message.root
        if isinstance(root, JSONRPCRequest):
            if root.id in self._pending:
                return JSONResponse(
                    error_envelope(root.id, INVALID_REQUEST, "Invalid Request", "Request id already in flight"),
                    status_code=400,
                )
            return await self._handle_request(root.id, message)

        # notifications and responses to server requests need no answer
        try:
            await self._forward_incoming(message)
        except ConnectionError as e:
            return JSONResponse(error_envelope(None, INTERNAL_ERROR, str(e)), status_code=503)
        return Response(status_code=204)

    async def _handle_request(self, request_id: str | int, message: JSONRPCMessage) -> Response:
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._forward_incoming(message)
            payload = await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Request %s timed out after %ss", request_id, self.timeout)
            return JSONResponse(
                error_envelope(request_id, INTERNAL_ERROR, "Request timeout"), status_code=504
            )
        except ConnectionError as e:
            return JSONResponse(error_envelope(request_id, INTERNAL_ERROR, str(e)), status_code=503)
        finally:
            self._pending.pop(request_id, None)
        return JSONResponse(payload)

    async def _forward_incoming(self, message: JSONRPCMessage) -> None:
        if self._read_send is None:
            raise ConnectionError("Transport not connected")
        try:
            await self._read_send.send(SessionMessage(message))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise ConnectionError("Transport closing") from e

    def open_stream(self, client_id: str) -> asyncio.Queue:
        """Register a stream client; it first receives the buffered backlog."""
        # backlog plus the connected notification always fit
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._buffer.maxlen + 1)
        while self._buffer:
            queue.put_nowait(self._buffer.popleft())
        queue.put_nowait(
            {"jsonrpc": "2.0", "method": "transport/connected", "params": {"clientId": client_id}}
        )
        self._streams[client_id] = queue
        logger.info("Stream client connected: %s", client_id)
        return queue

    def close_stream(self, client_id: str, queue: asyncio.Queue) -> None:
        if self._streams.get(client_id) is queue:
            del self._streams[client_id]
            logger.info("Stream client disconnected: %s", client_id)

    async def handle_stream(self, request: Request) -> StreamingResponse:
        client_id = request.headers.get("x-mcp-client-id") or str(uuid.uuid4())
        queue = self.open_stream(client_id)

        async def events():
            try:
                while True:
                    payload = await queue.get()
                    if payload is None:
                        break
                    yield f"data: {json.dumps(payload)}\n\n"
            finally:
                self.close_stream(client_id, queue)

        return StreamingResponse(
            events(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
        )

    async def serve(self, host: str, port: int) -> None:
        sock = listen_socket(host, port)
        self._server = uvicorn_server(self.app, host, port)
        logger.info("HTTP transport listening on http://%s:%s%s", host, port, self.path)
        await self._server.serve(sockets=[sock])

    def close(self) -> None:
        """Fail every pending request and end every stream."""
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ConnectionError("Transport closing"))
        self._pending.clear()
        for queue in self._streams.values():
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(None)
        self._streams.clear()
        if self._server is not None:
            self._server.should_exit = True
