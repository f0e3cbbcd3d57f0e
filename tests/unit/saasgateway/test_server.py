# -*- coding: utf-8 -*-
"""Location: ./tests/unit/saasgateway/test_server.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Unit tests for **saasgateway.server**: capability flags, tool registration and
invocation, resources, prompts and per-session isolation.
"""

# Standard
import logging
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock, patch

# Third-Party
from mcp import types
import pytest

# First-Party
from saasgateway.clients.base import Client, ConfigField, ToolError, ToolParams
from saasgateway.server import build_input_schema, GatewayServer, tool_name
from saasgateway.services.logging_service import logging_service
from saasgateway.transports.bootstrap import header_resolver, new_server
from saasgateway.types import LogLevel


class ToolboxClient(Client):
    """Backend with tools covering every result shape."""

    name = "Toolbox"
    tool_prefix = "toolbox"
    config_prefix = "Toolbox"
    config_schema = (ConfigField("token"),)

    async def configure(self, server, config):
        return True

    def is_configured(self):
        return True

    def register_tools(self, register, get_input):
        async def fail(args):
            raise ToolError("backend said no")

        async def crash(args):
            raise RuntimeError("boom")

        async def structured(args) -> Dict[str, Any]:
            return {"count": 2}

        async def unstructured(args):
            return "plain text"

        async def nothing(args):
            return None

        async def ask(args):
            return await get_input("Proceed?", {"type": "object", "properties": {"ok": {"type": "boolean"}}})

        register(ToolParams(title="Fail", summary="Always fails"), fail)
        register(ToolParams(title="Crash", summary="Raises unexpectedly"), crash)
        register(ToolParams(title="Structured", summary="Returns a dict", output_schema={"type": "object"}), structured)
        register(ToolParams(title="Unstructured", summary="Returns text", output_schema={"type": "object"}), unstructured)
        register(ToolParams(title="Nothing", summary="Returns None"), nothing)
        register(ToolParams(title="Ask", summary="Asks the user", read_only=False, destructive=True), ask)

    def register_resources(self, register):
        async def read_item(uri, variables):
            return {"id": variables["item_id"]}

        register("item", "{item_id}", read_item)

    def register_prompts(self, register):
        async def greet(arguments):
            return f"Say hello to {arguments.get('name', 'nobody')}"

        register("greet", "Greeting prompt", [types.PromptArgument(name="name", required=False)], greet)


@pytest.fixture
def server():
    srv = GatewayServer(name="test-gateway")
    srv.add_client(ToolboxClient())
    return srv


# --------------------------------------------------------------------------- #
# Capability flags                                                            #
# --------------------------------------------------------------------------- #


def test_capability_flags_default_false():
    srv = GatewayServer()
    assert srv.is_sampling_supported() is False
    assert srv.is_elicitation_supported() is False


def test_capability_flags_are_monotonic():
    srv = GatewayServer()
    srv.set_elicitation_supported(True)
    srv.set_elicitation_supported(False)
    srv.set_sampling_supported(False)
    assert srv.is_elicitation_supported() is True
    assert srv.is_sampling_supported() is False


def test_capabilities_from_initialize_payload():
    srv = GatewayServer()
    srv.apply_client_capabilities({"elicitation": {}})
    assert srv.is_elicitation_supported() is True
    assert srv.is_sampling_supported() is False


def test_capabilities_from_sdk_model():
    srv = GatewayServer()
    srv.apply_client_capabilities(types.ClientCapabilities(sampling=types.SamplingCapability()))
    assert srv.is_sampling_supported() is True
    assert srv.is_elicitation_supported() is False


# --------------------------------------------------------------------------- #
# Tool registration                                                           #
# --------------------------------------------------------------------------- #


def test_tool_names_are_prefixed(server):
    names = [tool.name for tool in server.tools]
    assert names[0] == "toolbox_fail"
    assert "toolbox_structured" in names


def test_tool_title_and_annotations(server):
    ask = next(tool for tool in server.tools if tool.name == "toolbox_ask")
    assert ask.title == "Toolbox: Ask"
    assert ask.annotations.readOnlyHint is False
    assert ask.annotations.destructiveHint is True


def test_duplicate_tool_name_rejected(server):
    with pytest.raises(ValueError, match="already registered"):
        server.add_client(ToolboxClient())


def test_tool_name_collapses_whitespace():
    stub = MagicMock(tool_prefix="alertsite")
    assert tool_name(stub, "Create or Add User") == "alertsite_create_or_add_user"


def test_input_schema_without_parameters():
    assert build_input_schema(ToolParams(title="List", summary="List all")) == {"type": "object", "properties": {}}


# --------------------------------------------------------------------------- #
# Tool invocation                                                             #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio
async def test_unknown_tool(server):
    with pytest.raises(ToolError, match="Unknown tool"):
        await server.call_tool("toolbox_missing", {})


@pytest.mark.asyncio
async def test_tool_error_is_prefixed_with_title(server):
    with pytest.raises(ToolError, match="Error executing Toolbox: Fail: backend said no"):
        await server.call_tool("toolbox_fail", {})


@pytest.mark.asyncio
async def test_unexpected_error_propagates(server):
    with pytest.raises(RuntimeError, match="boom"):
        await server.call_tool("toolbox_crash", {})


@pytest.mark.asyncio
async def test_structured_result(server):
    assert await server.call_tool("toolbox_structured", None) == {"count": 2}


@pytest.mark.asyncio
async def test_output_schema_requires_structured_content(server):
    with pytest.raises(ToolError, match="returned no structured content"):
        await server.call_tool("toolbox_unstructured", {})


@pytest.mark.asyncio
async def test_none_result_is_empty_content(server):
    assert await server.call_tool("toolbox_nothing", {}) == []


@pytest.mark.asyncio
async def test_get_input_without_elicitation_returns_polyfill(server):
    result = await server.call_tool("toolbox_ask", {})
    assert result["requiresInputCollection"] is True
    assert result["inputRequest"]["message"] == "Proceed?"


@pytest.mark.asyncio
async def test_get_input_with_elicitation_uses_session(server):
    server.set_elicitation_supported(True)
    session = MagicMock()
    session.elicit = AsyncMock(return_value=types.ElicitResult(action="accept", content={"ok": True}))
    with patch.object(server, "current_session", return_value=session):
        result = await server.get_input("Proceed?", {"type": "object", "properties": {}})
    assert result == {"action": "accept", "content": {"ok": True}}
    session.elicit.assert_awaited_once()


# --------------------------------------------------------------------------- #
# Resources and prompts                                                       #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio
async def test_read_resource_matches_template(server):
    contents = await server.read_resource("toolbox://item/42")
    assert contents[0].content == '{"id": "42"}'
    assert contents[0].mime_type == "application/json"


@pytest.mark.asyncio
async def test_read_unknown_resource(server):
    with pytest.raises(ValueError, match="Unknown resource"):
        await server.read_resource("toolbox://other/42")


@pytest.mark.asyncio
async def test_get_prompt_renders_text(server):
    result = await server.get_prompt("greet", {"name": "Ada"})
    assert result.messages[0].content.text == "Say hello to Ada"
    assert result.description == "Greeting prompt"


@pytest.mark.asyncio
async def test_get_unknown_prompt(server):
    with pytest.raises(ValueError, match="Unknown prompt"):
        await server.get_prompt("missing", {})


# --------------------------------------------------------------------------- #
# Client log level                                                            #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio
async def test_set_level_request_stays_in_its_session():
    first, second = GatewayServer(), GatewayServer()
    gateway_logger = logging.getLogger("saasgateway.registry")
    before = gateway_logger.level
    handler = first._server.request_handlers[types.SetLevelRequest]

    await handler(types.SetLevelRequest(method="logging/setLevel", params=types.SetLevelRequestParams(level="emergency")))

    assert first.get_log_level() == LogLevel.EMERGENCY
    assert second.get_log_level() == LogLevel.INFO
    assert logging_service.get_level() != LogLevel.EMERGENCY
    assert gateway_logger.level == before


@pytest.mark.asyncio
async def test_notify_filters_by_session_level(server):
    session = MagicMock()
    session.send_log_message = AsyncMock()
    server.set_log_level(LogLevel.WARNING)

    with patch.object(server, "current_session", return_value=session):
        assert await server.notify("chatty", LogLevel.DEBUG) is False
        assert await server.notify("broken", LogLevel.ERROR, logger_name="toolbox") is True

    session.send_log_message.assert_awaited_once_with(level="error", data="broken", logger="toolbox")


@pytest.mark.asyncio
async def test_tool_error_is_sent_as_log_notification(server):
    session = MagicMock()
    session.send_log_message = AsyncMock()
    session.client_params = None

    with patch.object(server, "current_session", return_value=session):
        with pytest.raises(ToolError):
            await server.call_tool("toolbox_fail", {})

    assert session.send_log_message.call_args.kwargs["level"] == "error"
    assert "backend said no" in session.send_log_message.call_args.kwargs["data"]


# --------------------------------------------------------------------------- #
# Session isolation                                                           #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio
async def test_sessions_get_independent_clients(registry, alpha_cls):
    first = await new_server(registry, header_resolver({"Alpha-Token": "one"}))
    second = await new_server(registry, header_resolver({"Alpha-Token": "two"}))

    assert first.clients[0] is not second.clients[0]
    assert first.clients[0].config == {"token": "one"}
    assert second.clients[0].config == {"token": "two"}
    assert first.get_cache() is not second.get_cache()

    assert await first.call_tool("alpha_echo", {"text": "hi"}) == [types.TextContent(type="text", text="Alpha:hi")]


@pytest.mark.asyncio
async def test_close_releases_clients(registry, alpha_cls):
    srv = await new_server(registry, header_resolver({"Alpha-Token": "one"}))
    srv.get_cache().set("k", "v")
    await srv.close()
    assert alpha_cls.instances[0].closed is True
    assert srv.get_cache().get("k") is None
