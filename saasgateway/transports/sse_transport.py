# -*- coding: utf-8 -*-
"""Location: ./saasgateway/transports/sse_transport.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

SSE Transport Implementation.
This module implements the legacy HTTP+SSE transport kept for older MCP clients:

- ``GET /sse`` bootstraps a session eagerly (same configuration path as
  Streamable HTTP), stores it in the shared session table before streaming, and
  keeps the connection open. The first event is ``endpoint``, telling the client
  where to POST its messages.
- ``POST /message?sessionId=<id>`` delivers one client message to the open
  session. It never creates or destroys sessions.
- Closing the stream removes the session.
"""

# Standard
import asyncio
from typing import Any, AsyncGenerator, Dict, Optional
from uuid import uuid4

# Third-Party
import anyio
from mcp import types
from mcp.shared.message import SessionMessage
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.status import HTTP_202_ACCEPTED, HTTP_400_BAD_REQUEST, HTTP_401_UNAUTHORIZED, HTTP_404_NOT_FOUND, HTTP_503_SERVICE_UNAVAILABLE
from starlette.types import Receive, Scope, Send

# First-Party
from saasgateway.cache.session_table import SessionEntry, SessionTable
from saasgateway.config import settings
from saasgateway.registry import ClientRegistry, ConfigurationError
from saasgateway.services.logging_service import logging_service
from saasgateway.transports.base import Transport
from saasgateway.transports.bootstrap import header_error_message, header_resolver, new_server

logger = logging_service.get_logger(__name__)


class SSETransport(Transport):
    """Transport implementation using Server-Sent Events with a satellite POST endpoint.

    Inbound messages are pushed with ``handle_message`` and read by the server
    from ``streams[0]``; the server's replies are written to ``streams[1]`` and
    streamed to the client by ``create_sse_response``.

    Examples:
        >>> transport = SSETransport("/message")
        >>> transport.endpoint_url == f"/message?sessionId={transport.session_id}"
        True
        >>> import asyncio
        >>> asyncio.run(transport.is_connected())
        False
        >>> SSETransport().session_id != SSETransport().session_id
        True
    """

    def __init__(self, endpoint: str = "/message", session_id: Optional[str] = None, max_buffered: int = 100):
        """Initialize SSE transport.

        Args:
            endpoint: Path of the message endpoint advertised to the client
            session_id: Session id; a fresh unguessable id by default
            max_buffered: Messages buffered in each direction before senders wait
        """
        self._endpoint = endpoint
        self._session_id = session_id or uuid4().hex
        self._connected = False
        self._client_gone = asyncio.Event()
        self._read_send, self._read_recv = anyio.create_memory_object_stream(max_buffered)
        self._write_send, self._write_recv = anyio.create_memory_object_stream(max_buffered)

        logger.info(f"Creating SSE transport with endpoint={self._endpoint}, session_id={self._session_id}")

    @property
    def session_id(self) -> str:
        """Session id of this transport."""
        return self._session_id

    @property
    def endpoint_url(self) -> str:
        """Message endpoint URL sent to the client in the ``endpoint`` event."""
        return f"{self._endpoint}?sessionId={self._session_id}"

    @property
    def streams(self):
        """The (read, write) stream pair for ``GatewayServer.run``."""
        return self._read_recv, self._write_send

    async def connect(self) -> None:
        """Set up SSE connection."""
        self._connected = True
        logger.info(f"SSE transport connected: {self._session_id}")

    async def disconnect(self) -> None:
        """Clean up SSE connection.

        Examples:
            >>> import asyncio
            >>> transport = SSETransport()
            >>> asyncio.run(transport.connect())
            >>> asyncio.run(transport.disconnect())
            >>> asyncio.run(transport.is_connected())
            False
        """
        if not self._connected:
            return
        self._connected = False
        self._client_gone.set()
        for stream in (self._read_send, self._read_recv, self._write_send, self._write_recv):
            await stream.aclose()
        logger.info(f"SSE transport disconnected: {self._session_id}")

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Deliver one client message to the server.

        Args:
            message: Decoded JSON-RPC message

        Raises:
            RuntimeError: If transport is not connected
            ValueError: If the message is not a valid JSON-RPC message
        """
        if not self._connected:
            raise RuntimeError("Transport not connected")

        try:
            parsed = types.JSONRPCMessage.model_validate(message)
        except ValidationError as e:
            raise ValueError(f"Invalid JSON-RPC message: {e}") from e

        await self._read_send.send(SessionMessage(parsed))
        logger.debug(f"Message delivered to SSE session {self._session_id}")

    async def is_connected(self) -> bool:
        """Check if transport is connected.

        Returns:
            True if connected
        """
        return self._connected

    async def _event_generator(self) -> AsyncGenerator[Dict[str, Any], None]:
        yield {"event": "endpoint", "data": self.endpoint_url, "retry": settings.sse_retry_timeout}

        timeout = settings.sse_keepalive_interval if settings.sse_keepalive_enabled else None
        try:
            while not self._client_gone.is_set():
                with anyio.move_on_after(timeout) as scope:
                    session_message = await self._write_recv.receive()
                if scope.cancelled_caught:
                    yield {"event": "keepalive", "data": "{}", "retry": settings.sse_retry_timeout}
                    continue

                data = session_message.message.model_dump_json(by_alias=True, exclude_none=True)
                logger.debug(f"Sending SSE message: {data}")
                yield {"event": "message", "data": data, "retry": settings.sse_retry_timeout}
        except (anyio.EndOfStream, anyio.ClosedResourceError):
            logger.debug(f"SSE stream ended: {self._session_id}")
        finally:
            logger.info(f"SSE event generator completed: {self._session_id}")

    def create_sse_response(self) -> EventSourceResponse:
        """Create SSE response for streaming.

        Returns:
            SSE response object
        """
        return EventSourceResponse(
            self._event_generator(),
            status_code=200,
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-MCP-SSE": "true",
            },
        )


class LegacySSEHandler:
    """ASGI handlers for ``GET /sse`` and ``POST /message``."""

    def __init__(self, registry: ClientRegistry, sessions: SessionTable, message_path: str = "/message", max_sessions: int = settings.max_sessions):
        """Initialize the handler.

        Args:
            registry: Client registry used to configure new sessions
            sessions: Session table shared with the Streamable HTTP transport
            message_path: Path of the message endpoint
            max_sessions: Maximum live sessions in the shared table; 0 for unbounded
        """
        self.registry = registry
        self.sessions = sessions
        self.message_path = message_path
        self.max_sessions = max_sessions

    async def handle_sse(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Open a legacy SSE session and stream until the client goes away.

        Args:
            scope: ASGI scope
            receive: ASGI receive callable
            send: ASGI send callable
        """
        if not await self.sessions.reserve(self.max_sessions):
            logger.warning(f"Refusing new SSE session: {len(self.sessions)} sessions open, {self.sessions.reserved} starting")
            await PlainTextResponse("Too many sessions", status_code=HTTP_503_SERVICE_UNAVAILABLE)(scope, receive, send)
            return

        added = False
        try:
            try:
                server = await new_server(self.registry, header_resolver(Headers(scope=scope)))
            except ConfigurationError as e:
                logger.warning(f"SSE session bootstrap failed: {e}")
                await PlainTextResponse(header_error_message(self.registry, e), status_code=HTTP_401_UNAUTHORIZED)(scope, receive, send)
                return

            transport = SSETransport(endpoint=scope.get("root_path", "") + self.message_path)
            session_id = transport.session_id
            await self.sessions.add(session_id, SessionEntry(server=server, transport=transport), reserved=True)
            added = True
        finally:
            if not added:
                with anyio.CancelScope(shield=True):
                    await self.sessions.release()
        await transport.connect()
        logger.info(f"New SSE session opened: {session_id}")

        try:
            async with anyio.create_task_group() as tg:

                async def run_server() -> None:
                    read_stream, write_stream = transport.streams
                    try:
                        await server.run(read_stream, write_stream)
                    finally:
                        tg.cancel_scope.cancel()

                tg.start_soon(run_server)
                await transport.create_sse_response()(scope, receive, send)
                tg.cancel_scope.cancel()
        finally:
            with anyio.CancelScope(shield=True):
                await self.sessions.remove(session_id)
                await transport.disconnect()
                await server.close()
            logger.info(f"SSE session closed: {session_id}")

    async def handle_message(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Route one client message to its open SSE session.

        Args:
            scope: ASGI scope
            receive: ASGI receive callable
            send: ASGI send callable
        """
        request = Request(scope, receive)
        session_id = request.query_params.get("sessionId") or request.query_params.get("session_id")
        if not session_id:
            response = PlainTextResponse("Missing sessionId parameter", status_code=HTTP_400_BAD_REQUEST)
        else:
            response = await self._deliver(session_id, request)
        await response(scope, receive, send)

    async def _deliver(self, session_id: str, request: Request) -> PlainTextResponse:
        entry = await self.sessions.get(session_id)
        if entry is None:
            logger.warning(f"Message for unknown session {session_id}")
            return PlainTextResponse("Session not found", status_code=HTTP_404_NOT_FOUND)

        if not isinstance(entry.transport, SSETransport):
            logger.warning(f"Message for session {session_id} created by another transport")
            return PlainTextResponse("Invalid transport for this endpoint", status_code=HTTP_400_BAD_REQUEST)

        try:
            message = await request.json()
        except ValueError:
            return PlainTextResponse("Could not parse message", status_code=HTTP_400_BAD_REQUEST)

        try:
            await entry.transport.handle_message(message)
        except ValueError as e:
            logger.warning(f"Invalid message for session {session_id}: {e}")
            return PlainTextResponse("Could not parse message", status_code=HTTP_400_BAD_REQUEST)
        except (RuntimeError, anyio.ClosedResourceError, anyio.BrokenResourceError):
            return PlainTextResponse("Session not found", status_code=HTTP_404_NOT_FOUND)

        return PlainTextResponse("Accepted", status_code=HTTP_202_ACCEPTED)
