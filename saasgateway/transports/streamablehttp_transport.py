# -*- coding: utf-8 -*-
"""Streamable HTTP Transport Implementation.

Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Keval Mahajan

This module implements the Streamable HTTP transport (``/mcp``) on top of the
MCP SDK's ``StreamableHTTPServerTransport``, with the gateway owning the session
table instead of the SDK's session manager.

Session lifecycle:
1. A POST carrying an ``initialize`` request and no ``Mcp-Session-Id`` header
   bootstraps a session: the server is configured from the request headers (401
   on failure), a session id is issued, the capability flags are taken from the
   initialize payload and the server starts in the manager's task group.
2. Requests carrying a known session id are routed to that session's transport.
   A session created by the legacy SSE transport is rejected (protocol mismatch).
3. Unknown ids, and requests without an id that are not initialize requests,
   are rejected with HTTP 400.
4. When the transport closes (DELETE, stream end, shutdown) the session leaves the table.

Examples:
    >>> from saasgateway.registry import ClientRegistry
    >>> from saasgateway.cache.session_table import SessionTable
    >>> manager = StreamableSessionManager(ClientRegistry(), SessionTable())
    >>> len(manager.session_id_factory())
    32
    >>> isinstance(manager.stack, AsyncExitStack)
    True
"""

# Standard
from contextlib import asynccontextmanager, AsyncExitStack
from typing import Any, Callable, Optional
from uuid import uuid4

# Third-Party
import anyio
from anyio.abc import TaskGroup
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER, StreamableHTTPServerTransport
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_401_UNAUTHORIZED, HTTP_503_SERVICE_UNAVAILABLE
from starlette.types import Message, Receive, Scope, Send

# First-Party
from saasgateway.cache.session_table import SessionEntry, SessionTable
from saasgateway.config import settings
from saasgateway.registry import ClientRegistry, ConfigurationError
from saasgateway.server import GatewayServer
from saasgateway.services.logging_service import logging_service
from saasgateway.transports.bootstrap import header_error_message, header_resolver, new_server
from saasgateway.validation.jsonrpc import get_initialize_params, is_initialize_request, JSONRPCError, parse_json_body, SERVER_ERROR_START

logger = logging_service.get_logger(__name__)

INVALID_REQUEST_MESSAGE = "Bad Request: Invalid request"
PROTOCOL_MISMATCH_MESSAGE = "Bad Request: Session exists but uses a different transport protocol"
TOO_MANY_SESSIONS_MESSAGE = "Service Unavailable: Too many sessions"


def jsonrpc_error_response(message: str, status_code: int = HTTP_400_BAD_REQUEST) -> JSONResponse:
    """Build a routing error response carrying a JSON-RPC error object.

    Args:
        message: Error message
        status_code: HTTP status

    Returns:
        JSONResponse: Response with ``{"jsonrpc": "2.0", "error": {...}, "id": null}``

    Examples:
        >>> response = jsonrpc_error_response(INVALID_REQUEST_MESSAGE)
        >>> response.status_code
        400
        >>> response.body
        b'{"jsonrpc":"2.0","error":{"code":-32000,"message":"Bad Request: Invalid request"},"id":null}'
    """
    return JSONResponse(JSONRPCError(SERVER_ERROR_START, message).to_dict(), status_code=status_code)


def replay_receive(body: bytes, receive: Receive) -> Receive:
    """Return an ASGI receive callable that replays an already-read body.

    The handler reads POST bodies to classify them; the SDK transport then reads
    the same body again through this callable.

    Args:
        body: Full request body
        receive: Original receive callable, used after the body has been replayed

    Returns:
        Receive: Replaying receive callable

    Examples:
        >>> import asyncio
        >>> async def original():
        ...     return {"type": "http.disconnect"}
        >>> receive = replay_receive(b"{}", original)
        >>> asyncio.run(receive())
        {'type': 'http.request', 'body': b'{}', 'more_body': False}
        >>> asyncio.run(receive())
        {'type': 'http.disconnect'}
    """
    replayed = False

    async def receive_body() -> Message:
        nonlocal replayed
        if not replayed:
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return receive_body


class StreamableSessionManager:
    """
    Owns the Streamable HTTP sessions: bootstrap, routing and teardown.

    The manager runs one task per session inside its task group, started by
    ``initialize`` and cancelled by ``shutdown``.
    """

    def __init__(
        self,
        registry: ClientRegistry,
        sessions: SessionTable,
        json_response: bool = settings.json_response_enabled,
        max_sessions: int = settings.max_sessions,
        session_id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        """
        Initialize the manager.

        Args:
            registry: Client registry used to configure new sessions
            sessions: Session table shared with the SSE transport
            json_response: Answer POSTs with JSON instead of an SSE stream
            max_sessions: Maximum live sessions in the shared table; 0 for unbounded
            session_id_factory: Session id generator; unguessable uuid4 hex by default
        """
        self.registry = registry
        self.sessions = sessions
        self.json_response = json_response
        self.max_sessions = max_sessions
        self.session_id_factory = session_id_factory or (lambda: uuid4().hex)
        self.stack = AsyncExitStack()
        self._task_group: Optional[TaskGroup] = None

    @asynccontextmanager
    async def run(self):
        """Run the task group hosting the session servers.

        Yields:
            None, while sessions can be served
        """
        async with anyio.create_task_group() as tg:
            self._task_group = tg
            try:
                yield
            finally:
                tg.cancel_scope.cancel()
                self._task_group = None

    async def initialize(self) -> None:
        """Start the Streamable HTTP service."""
        logger.info("Initializing Streamable HTTP service")
        await self.stack.enter_async_context(self.run())

    async def shutdown(self) -> None:
        """Stop the service, closing every Streamable HTTP session."""
        logger.info("Stopping Streamable HTTP service...")
        await self.stack.aclose()

    async def handle_streamable_http(self, scope: Scope, receive: Receive, send: Send) -> None:
        """
        Handle one ASGI request to the ``/mcp`` endpoint.

        Args:
            scope: ASGI scope
            receive: ASGI receive callable
            send: ASGI send callable
        """
        request = Request(scope, receive)
        payload: Any = None
        if request.method == "POST":
            body = await request.body()
            payload = parse_json_body(body)
            receive = replay_receive(body, receive)

        headers = Headers(scope=scope)
        session_id = headers.get(MCP_SESSION_ID_HEADER)

        if session_id:
            await self._route(session_id, scope, receive, send)
            return

        if request.method == "POST" and is_initialize_request(payload):
            await self._bootstrap(payload, headers, scope, receive, send)
            return

        logger.warning(f"Rejected {request.method} /mcp request without a session")
        await jsonrpc_error_response(INVALID_REQUEST_MESSAGE)(scope, receive, send)

    async def _route(self, session_id: str, scope: Scope, receive: Receive, send: Send) -> None:
        entry = await self.sessions.get(session_id)
        if entry is None:
            logger.warning(f"Rejected request for unknown session {session_id}")
            await jsonrpc_error_response(INVALID_REQUEST_MESSAGE)(scope, receive, send)
            return

        transport = entry.transport
        if not isinstance(transport, StreamableHTTPServerTransport):
            logger.warning(f"Rejected Streamable HTTP request for session {session_id} created by another transport")
            await jsonrpc_error_response(PROTOCOL_MISMATCH_MESSAGE)(scope, receive, send)
            return

        await transport.handle_request(scope, receive, send)
        if transport.is_terminated:
            # DELETE closes the session before its server task has wound down
            await self.sessions.remove(session_id)

    async def _bootstrap(self, payload: Any, headers: Headers, scope: Scope, receive: Receive, send: Send) -> None:
        if not await self.sessions.reserve(self.max_sessions):
            logger.warning(f"Refusing new session: {len(self.sessions)} sessions open, {self.sessions.reserved} starting")
            await jsonrpc_error_response(TOO_MANY_SESSIONS_MESSAGE, HTTP_503_SERVICE_UNAVAILABLE)(scope, receive, send)
            return

        added = False
        try:
            try:
                server = await new_server(self.registry, header_resolver(headers))
            except ConfigurationError as e:
                logger.warning(f"Session bootstrap failed: {e}")
                await PlainTextResponse(header_error_message(self.registry, e), status_code=HTTP_401_UNAUTHORIZED)(scope, receive, send)
                return

            server.apply_client_capabilities(get_initialize_params(payload).get("capabilities") or {})

            if self._task_group is None:
                await server.close()
                raise RuntimeError("Streamable HTTP service is not initialized")

            session_id = self.session_id_factory()
            transport = StreamableHTTPServerTransport(
                mcp_session_id=session_id,
                is_json_response_enabled=self.json_response,
                event_store=None,
            )
            await self.sessions.add(session_id, SessionEntry(server=server, transport=transport), reserved=True)
            added = True
        finally:
            if not added:
                with anyio.CancelScope(shield=True):
                    await self.sessions.release()

        await self._task_group.start(self._run_session, session_id, server, transport)
        logger.info(f"New Streamable HTTP session initialized: {session_id}")

        await transport.handle_request(scope, receive, send)

    async def _run_session(
        self,
        session_id: str,
        server: GatewayServer,
        transport: StreamableHTTPServerTransport,
        *,
        task_status=anyio.TASK_STATUS_IGNORED,
    ) -> None:
        try:
            async with transport.connect() as (read_stream, write_stream):
                task_status.started()
                await server.run(read_stream, write_stream)
        except Exception:
            logger.exception(f"Streamable HTTP session {session_id} crashed")
        finally:
            with anyio.CancelScope(shield=True):
                await self.sessions.remove(session_id)
                await server.close()
            logger.info(f"Streamable HTTP session closed: {session_id}")
