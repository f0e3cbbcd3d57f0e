# -*- coding: utf-8 -*-
"""Location: ./tests/unit/saasgateway/transports/test_sse_transport.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Tests for the legacy SSE transport: the ``SSETransport`` streams and the
``/sse`` + ``/message`` handlers.
"""

# Standard
import asyncio
import json
import re
from unittest.mock import AsyncMock, MagicMock, patch

# Third-Party
from fastapi.testclient import TestClient
from mcp import types
from mcp.shared.message import SessionMessage
import pytest

# First-Party
from saasgateway.cache.session_table import SessionEntry, SessionTable
from saasgateway.config import Settings
from saasgateway.main import create_app
from saasgateway.registry import ConfigurationError
from saasgateway.transports.sse_transport import LegacySSEHandler, SSETransport

PING = {"jsonrpc": "2.0", "id": 7, "method": "ping"}


@pytest.fixture
def sse_transport():
    """Create an SSE transport instance."""
    return SSETransport(endpoint="/message")


@pytest.fixture
def app(registry):
    return create_app(registry, Settings(json_response_enabled=True, max_sessions=0))


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


# --------------------------------------------------------------------------- #
# SSETransport                                                                #
# --------------------------------------------------------------------------- #


class TestSSETransport:
    """Tests for the SSETransport class."""

    def test_endpoint_url_carries_session_id(self, sse_transport):
        assert sse_transport.endpoint_url == f"/message?sessionId={sse_transport.session_id}"
        assert len(sse_transport.session_id) == 32

    @pytest.mark.asyncio
    async def test_connect_disconnect(self, sse_transport):
        assert not await sse_transport.is_connected()
        await sse_transport.connect()
        assert await sse_transport.is_connected()
        await sse_transport.disconnect()
        assert not await sse_transport.is_connected()
        # second disconnect is a no-op
        await sse_transport.disconnect()

    @pytest.mark.asyncio
    async def test_handle_message_not_connected(self, sse_transport):
        with pytest.raises(RuntimeError, match="Transport not connected"):
            await sse_transport.handle_message(PING)

    @pytest.mark.asyncio
    async def test_handle_message_invalid(self, sse_transport):
        await sse_transport.connect()
        with pytest.raises(ValueError, match="Invalid JSON-RPC message"):
            await sse_transport.handle_message({"hello": "world"})

    @pytest.mark.asyncio
    async def test_handle_message_reaches_server_stream(self, sse_transport):
        await sse_transport.connect()
        await sse_transport.handle_message(PING)

        read_stream, _ = sse_transport.streams
        received = await read_stream.receive()
        assert isinstance(received, SessionMessage)
        assert received.message.root.method == "ping"

    @pytest.mark.asyncio
    async def test_event_generator_sends_endpoint_then_messages(self, sse_transport):
        await sse_transport.connect()
        generator = sse_transport._event_generator()

        endpoint_event = await generator.__anext__()
        assert endpoint_event["event"] == "endpoint"
        assert endpoint_event["data"] == sse_transport.endpoint_url

        _, write_stream = sse_transport.streams
        response = types.JSONRPCMessage(types.JSONRPCResponse(jsonrpc="2.0", id=7, result={}))
        await write_stream.send(SessionMessage(response))

        message_event = await generator.__anext__()
        assert message_event["event"] == "message"
        assert json.loads(message_event["data"]) == {"jsonrpc": "2.0", "id": 7, "result": {}}
        await generator.aclose()

    def test_create_sse_response_headers(self, sse_transport):
        response = sse_transport.create_sse_response()
        assert response.headers["X-MCP-SSE"] == "true"
        assert response.headers["Cache-Control"] == "no-cache"


# --------------------------------------------------------------------------- #
# /sse                                                                        #
# --------------------------------------------------------------------------- #


def test_sse_without_configuration_is_401(client):
    response = client.get("/sse")
    assert response.status_code == 401
    assert "Alpha-Token (required)" in response.text
    assert len(client.app.state.sessions) == 0


def test_sse_session_cap_returns_503(registry):
    app = create_app(registry, Settings(max_sessions=1))
    with TestClient(app) as client:
        client.portal.call(app.state.sessions.add, "taken", SessionEntry(server=MagicMock(), transport=MagicMock()))
        response = client.get("/sse", headers={"Alpha-Token": "t"})
    assert response.status_code == 503


# --------------------------------------------------------------------------- #
# /message                                                                    #
# --------------------------------------------------------------------------- #


def test_message_without_session_id(client):
    response = client.post("/message", json=PING)
    assert response.status_code == 400
    assert response.text == "Missing sessionId parameter"


def test_message_for_unknown_session(client):
    response = client.post("/message?sessionId=missing", json=PING)
    assert response.status_code == 404
    assert response.text == "Session not found"


def test_message_for_streamable_session_is_mismatch(client):
    init = client.post(
        "/mcp",
        json={"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"protocolVersion": "2025-06-18", "capabilities": {}, "clientInfo": {"name": "t", "version": "1"}}},
        headers={"Accept": "application/json, text/event-stream", "Alpha-Token": "t"},
    )
    session_id = init.headers["mcp-session-id"]

    response = client.post(f"/message?sessionId={session_id}", json=PING)
    assert response.status_code == 400
    assert response.text == "Invalid transport for this endpoint"
    assert session_id in client.app.state.sessions


def test_message_delivered_to_sse_session(client, app):
    transport = SSETransport()
    client.portal.call(transport.connect)
    client.portal.call(app.state.sessions.add, transport.session_id, SessionEntry(server=MagicMock(), transport=transport))

    response = client.post(f"/message?sessionId={transport.session_id}", json=PING)

    assert response.status_code == 202
    read_stream, _ = transport.streams
    received = client.portal.call(read_stream.receive)
    assert received.message.root.id == 7


def test_message_accepts_session_id_alias(client, app):
    transport = SSETransport()
    client.portal.call(transport.connect)
    client.portal.call(app.state.sessions.add, transport.session_id, SessionEntry(server=MagicMock(), transport=transport))

    assert client.post(f"/message?session_id={transport.session_id}", json=PING).status_code == 202


def test_invalid_message_for_sse_session(client, app):
    transport = SSETransport()
    client.portal.call(transport.connect)
    client.portal.call(app.state.sessions.add, transport.session_id, SessionEntry(server=MagicMock(), transport=transport))

    bad_json = client.post(f"/message?sessionId={transport.session_id}", content=b"{oops", headers={"Content-Type": "application/json"})
    not_jsonrpc = client.post(f"/message?sessionId={transport.session_id}", json={"hello": "world"})

    assert bad_json.status_code == 400 and bad_json.text == "Could not parse message"
    assert not_jsonrpc.status_code == 400


def test_message_for_closed_sse_transport(client, app):
    transport = SSETransport()
    client.portal.call(app.state.sessions.add, transport.session_id, SessionEntry(server=MagicMock(), transport=transport))

    response = client.post(f"/message?sessionId={transport.session_id}", json=PING)
    assert response.status_code == 404


# --------------------------------------------------------------------------- #
# Live handler calls                                                          #
# --------------------------------------------------------------------------- #

INITIALIZE = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "initialize",
    "params": {"protocolVersion": "2025-06-18", "capabilities": {}, "clientInfo": {"name": "pytest", "version": "1.0"}},
}


def http_scope(method, path, headers=None, query_string=b""):
    return {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "root_path": "",
        "query_string": query_string,
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
    }


class Recorder:
    """ASGI send callable keeping every message."""

    def __init__(self):
        self.messages = []

    async def __call__(self, message):
        self.messages.append(message)

    @property
    def status(self):
        return next(m["status"] for m in self.messages if m["type"] == "http.response.start")

    @property
    def body(self):
        return b"".join(m.get("body", b"") for m in self.messages if m["type"] == "http.response.body").decode()

    async def wait_for(self, text, timeout=5.0):
        async def poll():
            while text not in self.body:
                await asyncio.sleep(0.01)
            return self.body

        return await asyncio.wait_for(poll(), timeout)


def disconnect_after(event):
    async def receive():
        await event.wait()
        return {"type": "http.disconnect"}

    return receive


async def post_message(handler, session_id, message):
    sent = Recorder()
    body = json.dumps(message).encode()
    replayed = False

    async def receive():
        nonlocal replayed
        if not replayed:
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}
        return {"type": "http.disconnect"}

    scope = http_scope("POST", "/message", {"Content-Type": "application/json"}, f"sessionId={session_id}".encode())
    await handler.handle_message(scope, receive, sent)
    return sent


@pytest.mark.asyncio
async def test_sse_session_lifecycle(registry, alpha_cls):
    sessions = SessionTable()
    handler = LegacySSEHandler(registry, sessions, max_sessions=0)
    stream = Recorder()
    gone = asyncio.Event()

    task = asyncio.create_task(handler.handle_sse(http_scope("GET", "/sse", {"Alpha-Token": "t"}), disconnect_after(gone), stream))

    body = await stream.wait_for("event: endpoint")
    session_id = re.search(r"sessionId=([0-9a-f]{32})", body).group(1)
    assert stream.status == 200
    assert session_id in sessions
    assert "data: /message?sessionId=" in body

    accepted = await post_message(handler, session_id, INITIALIZE)
    assert accepted.status == 202

    body = await stream.wait_for("serverInfo")
    assert "event: message" in body
    assert '"result"' in body

    gone.set()
    await asyncio.wait_for(task, 5.0)

    assert session_id not in sessions
    assert alpha_cls.instances[0].closed is True
    assert (await post_message(handler, session_id, PING)).status == 404


@pytest.mark.asyncio
async def test_concurrent_sse_bootstraps_share_one_slot(registry):
    sessions = SessionTable()
    handler = LegacySSEHandler(registry, sessions, max_sessions=1)

    async def slow_failure(*args, **kwargs):
        await asyncio.sleep(0.05)
        raise ConfigurationError("No clients were configured")

    async def open_stream():
        sent = Recorder()
        await handler.handle_sse(http_scope("GET", "/sse", {"Alpha-Token": "t"}), AsyncMock(return_value={"type": "http.disconnect"}), sent)
        return sent.status

    with patch("saasgateway.transports.sse_transport.new_server", new=AsyncMock(side_effect=slow_failure)):
        statuses = await asyncio.gather(open_stream(), open_stream())
        assert sorted(statuses) == [401, 503]
        assert sessions.reserved == 0
        assert await open_stream() == 401
