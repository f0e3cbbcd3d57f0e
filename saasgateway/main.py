# -*- coding: utf-8 -*-
"""Location: ./saasgateway/main.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

SaaS MCP Gateway - HTTP application.
This module builds the FastAPI application serving the HTTP transports:

- ``/mcp``: Streamable HTTP (POST, GET, DELETE)
- ``GET /sse`` and ``POST /message``: legacy HTTP+SSE
- ``GET /health``: liveness check

Both MCP transports share one session table, so a session id issued by one
transport is known (and rejected as a protocol mismatch) by the other.

Run with:
    uvicorn saasgateway.main:app --host 127.0.0.1 --port 3000

Examples:
    >>> from fastapi import FastAPI
    >>> isinstance(app, FastAPI)
    True
    >>> app.state.streamable_http is not None
    True
"""

# Standard
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

# Third-Party
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import PlainTextResponse
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR
from starlette.types import ASGIApp, Message, Receive, Scope, Send

# First-Party
from saasgateway import __version__
from saasgateway.cache.session_table import SessionTable
from saasgateway.config import settings, Settings
from saasgateway.observability import init_telemetry, shutdown_telemetry
from saasgateway.registry import build_registry, ClientRegistry
from saasgateway.services.logging_service import logging_service
from saasgateway.transports.sse_transport import LegacySSEHandler
from saasgateway.transports.streamablehttp_transport import StreamableSessionManager

logger = logging_service.get_logger(__name__)

MCP_PATH = "/mcp"
SSE_PATH = "/sse"
MESSAGE_PATH = "/message"

BASE_CORS_HEADERS = ["Content-Type", "Authorization", "Mcp-Session-Id", "Last-Event-ID", "Mcp-Protocol-Version"]


class MCPTransportMiddleware:
    """
    Dispatches the MCP transport paths to their raw ASGI handlers.

    - ``/mcp`` (any method) goes to the Streamable HTTP session manager.
    - ``GET /sse`` opens a legacy SSE session.
    - ``POST /message`` delivers a message to a legacy SSE session.
    - All other requests are passed through to the application.

    Unexpected exceptions raised by a handler are logged and answered with HTTP
    500 if the response has not started yet; sessions are left untouched.
    """

    def __init__(self, application: ASGIApp, streamable_http: StreamableSessionManager, sse: LegacySSEHandler):
        """
        Initialize the middleware.

        Args:
            application: The next ASGI application in the middleware stack
            streamable_http: Streamable HTTP session manager
            sse: Legacy SSE handler
        """
        self.application = application
        self.streamable_http = streamable_http
        self.sse = sse

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """
        Route MCP transport requests, pass everything else through.

        Args:
            scope: The ASGI connection scope
            receive: Awaitable that yields events from the client
            send: Awaitable used to send events to the client

        Raises:
            Exception: Handler errors raised after the response has started

        Examples:
            >>> import asyncio
            >>> from unittest.mock import AsyncMock, Mock
            >>> app_mock = AsyncMock()
            >>> manager, sse = Mock(handle_streamable_http=AsyncMock()), Mock()
            >>> middleware = MCPTransportMiddleware(app_mock, manager, sse)
            >>> asyncio.run(middleware({"type": "http", "path": "/health", "method": "GET"}, AsyncMock(), AsyncMock()))
            >>> app_mock.await_count
            1
            >>> asyncio.run(middleware({"type": "http", "path": "/mcp/", "method": "POST"}, AsyncMock(), AsyncMock()))
            >>> manager.handle_streamable_http.await_count
            1
        """
        if scope["type"] != "http":
            await self.application(scope, receive, send)
            return

        handler = self._handler_for(scope)
        if handler is None:
            await self.application(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await handler(scope, receive, send_wrapper)
        except Exception:
            logger.exception(f"Error handling {scope.get('method')} {scope.get('path')}")
            if response_started:
                raise
            await PlainTextResponse("Internal server error", status_code=HTTP_500_INTERNAL_SERVER_ERROR)(scope, receive, send)

    def _handler_for(self, scope: Scope):
        path = scope.get("path", "").rstrip("/") or "/"
        method = scope.get("method", "GET")
        if path == MCP_PATH:
            return self.streamable_http.handle_streamable_http
        if path == SSE_PATH and method == "GET":
            return self.sse.handle_sse
        if path == MESSAGE_PATH and method == "POST":
            return self.sse.handle_message
        return None


def create_app(registry: Optional[ClientRegistry] = None, cfg: Optional[Settings] = None) -> FastAPI:
    """Build the gateway's HTTP application.

    Args:
        registry: Client registry; the built-in clients filtered by settings by default
        cfg: Settings; the process settings by default

    Returns:
        FastAPI: The application
    """
    cfg = cfg or settings
    registry = registry or build_registry(cfg)
    sessions = SessionTable()
    streamable_http = StreamableSessionManager(registry, sessions, json_response=cfg.json_response_enabled, max_sessions=cfg.max_sessions)
    sse = LegacySSEHandler(registry, sessions, message_path=MESSAGE_PATH, max_sessions=cfg.max_sessions)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        """
        Manage the application's startup and shutdown lifecycle.

        Args:
            _app (FastAPI): FastAPI app

        Yields:
            None
        """
        await logging_service.initialize(cfg.log_level)
        logger.info(f"Starting {cfg.app_name} {__version__} with clients: {', '.join(c.name for c in registry.get_all()) or 'none'}")
        init_telemetry("http", cfg)
        await streamable_http.initialize()
        try:
            yield
        finally:
            logger.info("Shutting down gateway")
            await streamable_http.shutdown()
            await sessions.clear()
            shutdown_telemetry()
            await logging_service.shutdown()

    application = FastAPI(
        title=cfg.app_name,
        version=__version__,
        description="MCP gateway exposing SaaS backends over Streamable HTTP, SSE and stdio",
        lifespan=lifespan,
    )
    application.state.registry = registry
    application.state.sessions = sessions
    application.state.streamable_http = streamable_http
    application.state.sse = sse

    @application.get("/health")
    async def healthcheck():
        """
        Report liveness.

        Returns:
            A dictionary with the health status and the current time.
        """
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    application.add_middleware(MCPTransportMiddleware, streamable_http=streamable_http, sse=sse)

    # Added last so preflight requests for the MCP paths are answered here
    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=BASE_CORS_HEADERS + registry.header_names(),
        expose_headers=["Mcp-Session-Id"],
    )
    return application


app = create_app()
