# -*- coding: utf-8 -*-
"""Location: ./saasgateway/server.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Gateway Server.
One ``GatewayServer`` exists per session. It wraps the MCP SDK's low-level
``Server`` and holds everything a session owns:

- the clients activated for this session and their tools, resources and prompts
- the sampling/elicitation capability flags negotiated with the connected client
- a private backend data cache

Backends never talk to the SDK directly. They receive a tool registration
callback and a ``get_input`` callback (elicitation with a polyfill fallback)
from ``add_client``.

Examples:
    >>> from saasgateway.clients.base import ToolParams
    >>> print(build_description(ToolParams(title="List Suites", summary="List all suites.", hints=["Use pagination"])))
    List all suites.
    <BLANKLINE>
    **Hints:** 1. Use pagination
"""

# Standard
from dataclasses import dataclass
import json
import re
from typing import Any, Dict, Iterable, List, Optional, Pattern

# Third-Party
import anyio
from mcp import types
from mcp.server.lowlevel import NotificationOptions, Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from pydantic import AnyUrl, BaseModel

# First-Party
from saasgateway import __version__
from saasgateway.cache.cache_service import CacheService
from saasgateway.clients.base import Client, PromptHandler, ResourceHandler, ToolError, ToolHandler, ToolParams
from saasgateway.config import settings
from saasgateway.observability import create_span
from saasgateway.services.logging_service import logging_service
from saasgateway.types import LogLevel
from saasgateway.utils.polyfills import execute_elicitation_or_polyfill, execute_sampling_or_polyfill

logger = logging_service.get_logger(__name__)

# RFC 5424 severity order for client log notifications
_LEVEL_VALUES = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.NOTICE: 2,
    LogLevel.WARNING: 3,
    LogLevel.ERROR: 4,
    LogLevel.CRITICAL: 5,
    LogLevel.ALERT: 6,
    LogLevel.EMERGENCY: 7,
}


def _readable_type(schema: Dict[str, Any]) -> str:
    """Name a JSON schema fragment for humans.

    Args:
        schema: JSON schema fragment

    Returns:
        str: Short type name

    Examples:
        >>> _readable_type({"type": "string"})
        'string'
        >>> _readable_type({"type": "string", "enum": ["a", "b"]})
        'enum'
        >>> _readable_type({"anyOf": [{"type": "string"}, {"type": "null"}]})
        'any'
    """
    if "enum" in schema:
        return "enum"
    schema_type = schema.get("type")
    return schema_type if isinstance(schema_type, str) else "any"


def build_description(params: ToolParams) -> str:
    """Render a tool's description from its specification.

    Sections are added in order when present: summary, parameters, output
    description, use cases, examples and hints.

    Args:
        params: Tool specification

    Returns:
        str: Markdown description

    Examples:
        >>> from saasgateway.clients.base import ToolParameter
        >>> params = ToolParams(
        ...     title="Get Test Status",
        ...     summary="Get the status of a test execution.",
        ...     parameters=[ToolParameter(name="execution_id", type={"type": "string"}, description="Execution ID", required=True)],
        ...     use_cases=["Poll a running test"],
        ... )
        >>> print(build_description(params))
        Get the status of a test execution.
        <BLANKLINE>
        **Parameters:**
        - execution_id (string) *required*: Execution ID
        <BLANKLINE>
        **Use Cases:** 1. Poll a running test
    """
    description = params.summary
    lines: List[str] = []

    for parameter in params.parameters:
        line = f"- {parameter.name} ({_readable_type(parameter.type)})"
        if parameter.required:
            line += " *required*"
        if parameter.description:
            line += f": {parameter.description}"
        if parameter.examples:
            line += f" (e.g. {', '.join(parameter.examples)})"
        if parameter.constraints:
            line += "\n  - " + "\n  - ".join(parameter.constraints)
        lines.append(line)

    if params.input_schema:
        required = set(params.input_schema.get("required", []))
        for key, schema in params.input_schema.get("properties", {}).items():
            line = f"- {key} ({_readable_type(schema)})"
            if key in required:
                line += " *required*"
            if schema.get("description"):
                line += f": {schema['description']}"
            lines.append(line)

    if lines:
        description += "\n\n**Parameters:**\n" + "\n".join(lines)

    if params.output_description:
        description += f"\n\n**Output Description:** {params.output_description}"

    if params.use_cases:
        description += "\n\n**Use Cases:** " + " ".join(f"{i}. {use_case}" for i, use_case in enumerate(params.use_cases, 1))

    if params.examples:
        rendered = []
        for i, example in enumerate(params.examples, 1):
            text = f"{i}. {example.description}\n```json\n{json.dumps(example.parameters, indent=2)}\n```"
            if example.expected_output:
                text += f"\nExpected Output: {example.expected_output}"
            rendered.append(text)
        description += "\n\n**Examples:**\n" + "\n\n".join(rendered)

    if params.hints:
        description += "\n\n**Hints:** " + " ".join(f"{i}. {hint}" for i, hint in enumerate(params.hints, 1))

    return description.strip()


def build_input_schema(params: ToolParams) -> Dict[str, Any]:
    """Merge documented parameters and a raw input schema into one JSON schema.

    Args:
        params: Tool specification

    Returns:
        Dict[str, Any]: Object schema

    Examples:
        >>> from saasgateway.clients.base import ToolParameter
        >>> build_input_schema(ToolParams(
        ...     title="Run Test", summary="Run a test",
        ...     parameters=[ToolParameter(name="test_id", required=True)],
        ...     input_schema={"properties": {"region": {"type": "string"}}},
        ... ))
        {'type': 'object', 'properties': {'test_id': {'type': 'string'}, 'region': {'type': 'string'}}, 'required': ['test_id']}
    """
    properties: Dict[str, Any] = {}
    required: List[str] = []
    for parameter in params.parameters:
        schema = dict(parameter.type)
        if parameter.description:
            schema.setdefault("description", parameter.description)
        properties[parameter.name] = schema
        if parameter.required:
            required.append(parameter.name)

    if params.input_schema:
        properties.update(params.input_schema.get("properties", {}))
        required.extend(name for name in params.input_schema.get("required", []) if name not in required)

    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def tool_name(client: Client, title: str) -> str:
    """Build the namespaced tool name for a tool title.

    Args:
        client: Owning client
        title: Tool title

    Returns:
        str: Tool name

    Examples:
        >>> class Stub:
        ...     tool_prefix = "reflect"
        >>> tool_name(Stub(), "Get Suite  Execution Status")
        'reflect_get_suite_execution_status'
    """
    slug = re.sub(r"\s+", "_", title).lower()
    return f"{client.tool_prefix}_{slug}"


@dataclass
class RegisteredTool:
    """A tool exposed by this session."""

    tool: types.Tool
    title: str
    handler: ToolHandler
    output_schema: Optional[Dict[str, Any]] = None


@dataclass
class RegisteredResource:
    """A resource template exposed by this session."""

    name: str
    uri_template: str
    pattern: Pattern[str]
    handler: ResourceHandler


@dataclass
class RegisteredPrompt:
    """A prompt exposed by this session."""

    prompt: types.Prompt
    handler: PromptHandler


def compile_uri_template(uri_template: str) -> Pattern[str]:
    """Compile a ``{variable}`` URI template into a matching regex.

    Args:
        uri_template: Template such as ``reflect://suite/{suite_id}``

    Returns:
        Pattern[str]: Regex with one named group per variable

    Examples:
        >>> compile_uri_template("reflect://suite/{suite_id}").match("reflect://suite/42").groupdict()
        {'suite_id': '42'}
        >>> compile_uri_template("reflect://suite/{suite_id}").match("reflect://suite/42/x") is None
        True
    """
    regex = ""
    position = 0
    for match in re.finditer(r"\{(\w+)\}", uri_template):
        regex += re.escape(uri_template[position : match.start()]) + f"(?P<{match.group(1)}>[^/]+)"
        position = match.end()
    regex += re.escape(uri_template[position:])
    return re.compile(f"^{regex}$")


class GatewayServer:
    """Per-session MCP server holding the session's activated backends."""

    def __init__(self, name: Optional[str] = None, cache: Optional[CacheService] = None):
        """Initialize the server and register the MCP request handlers.

        Args:
            name: Server name reported at initialization; defaults to APP_NAME
            cache: Backend data cache; a fresh one by default

        Examples:
            >>> server = GatewayServer()
            >>> server.is_sampling_supported(), server.is_elicitation_supported()
            (False, False)
            >>> server.clients
            []
        """
        self._server = Server(name or settings.app_name, version=__version__)
        self._clients: List[Client] = []
        self._tools: Dict[str, RegisteredTool] = {}
        self._resources: List[RegisteredResource] = []
        self._prompts: Dict[str, RegisteredPrompt] = {}
        self._sampling_supported = False
        self._elicitation_supported = False
        self._log_level = LogLevel.INFO
        self._cache = cache or CacheService()
        self._register_handlers()

    # ------------------------------------------------------------------ state

    @property
    def clients(self) -> List[Client]:
        """Clients activated for this session, in activation order."""
        return list(self._clients)

    @property
    def tools(self) -> List[types.Tool]:
        """Tool definitions, in registration order."""
        return [entry.tool for entry in self._tools.values()]

    def get_cache(self) -> CacheService:
        """Return this session's backend data cache."""
        return self._cache

    def set_sampling_supported(self, supported: bool) -> None:
        """Record whether the client supports sampling.

        The flag only ever moves from False to True; a later False is ignored.

        Args:
            supported: Negotiated value

        Examples:
            >>> server = GatewayServer()
            >>> server.set_sampling_supported(True)
            >>> server.set_sampling_supported(False)
            >>> server.is_sampling_supported()
            True
        """
        if supported:
            self._sampling_supported = True
        elif self._sampling_supported:
            logger.warning("Ignoring attempt to disable sampling support after it was negotiated")

    def set_elicitation_supported(self, supported: bool) -> None:
        """Record whether the client supports elicitation.

        The flag only ever moves from False to True; a later False is ignored.

        Args:
            supported: Negotiated value
        """
        if supported:
            self._elicitation_supported = True
        elif self._elicitation_supported:
            logger.warning("Ignoring attempt to disable elicitation support after it was negotiated")

    def get_log_level(self) -> LogLevel:
        """Return the minimum level of log notifications sent to this session's client."""
        return self._log_level

    def set_log_level(self, level: LogLevel) -> None:
        """Set the minimum level of log notifications for this session (``logging/setLevel``).

        Only this session's notifications are affected; the gateway's own loggers
        keep the level configured by LOG_LEVEL.

        Args:
            level: New minimum level

        Examples:
            >>> server = GatewayServer()
            >>> server.set_log_level(LogLevel.ERROR)
            >>> server.get_log_level()
            <LogLevel.ERROR: 'error'>
        """
        self._log_level = LogLevel(level)
        logger.debug(f"Client log level set to {self._log_level.value}")

    def _should_notify(self, level: LogLevel) -> bool:
        return _LEVEL_VALUES[LogLevel(level)] >= _LEVEL_VALUES[self._log_level]

    async def notify(self, data: Any, level: LogLevel = LogLevel.INFO, logger_name: Optional[str] = None) -> bool:
        """Send a log notification to the client of the request being handled.

        Args:
            data: Log payload
            level: Severity of the message
            logger_name: Optional logger name shown by the client

        Returns:
            bool: True if a notification was sent

        Examples:
            >>> import asyncio
            >>> asyncio.run(GatewayServer().notify("outside of a request"))
            False
        """
        level = LogLevel(level)
        if not self._should_notify(level):
            return False
        try:
            session = self.current_session()
        except LookupError:
            return False
        try:
            await session.send_log_message(level=level.value, data=data, logger=logger_name)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            logger.debug("Log notification dropped: session stream closed")
            return False
        return True

    def is_sampling_supported(self) -> bool:
        """Return True when the client negotiated sampling."""
        return self._sampling_supported

    def is_elicitation_supported(self) -> bool:
        """Return True when the client negotiated elicitation."""
        return self._elicitation_supported

    def apply_client_capabilities(self, capabilities: Any) -> None:
        """Set the capability flags from an initialize ``capabilities`` object.

        Args:
            capabilities: Either the raw JSON dict or an ``mcp.types.ClientCapabilities``

        Examples:
            >>> server = GatewayServer()
            >>> server.apply_client_capabilities({"elicitation": {}})
            >>> server.is_elicitation_supported(), server.is_sampling_supported()
            (True, False)
        """
        if isinstance(capabilities, dict):
            sampling = capabilities.get("sampling")
            elicitation = capabilities.get("elicitation")
        else:
            sampling = getattr(capabilities, "sampling", None)
            elicitation = getattr(capabilities, "elicitation", None)
        if sampling is not None:
            self.set_sampling_supported(True)
        if elicitation is not None:
            self.set_elicitation_supported(True)

    def current_session(self):
        """Return the SDK session of the request being handled.

        Returns:
            mcp.server.session.ServerSession: Active session

        Raises:
            LookupError: If called outside of request handling
        """
        return self._server.request_context.session

    def _sync_client_capabilities(self) -> None:
        # Covers stdio, where there is no HTTP initialize payload to inspect
        try:
            session = self.current_session()
        except LookupError:
            return
        params = getattr(session, "client_params", None)
        if params is not None:
            self.apply_client_capabilities(params.capabilities)

    # ---------------------------------------------------------------- clients

    def add_client(self, client: Client) -> None:
        """Register a configured client's tools, resources and prompts.

        Args:
            client: Client whose ``configure`` succeeded

        Raises:
            ValueError: If one of its tool names is already registered
        """
        client.register_tools(self._tool_registrar(client), self.get_input)
        client.register_resources(self._resource_registrar(client))
        client.register_prompts(self._prompt_registrar(client))
        self._clients.append(client)

    def _tool_registrar(self, client: Client):
        def register(params: ToolParams, handler: ToolHandler) -> None:
            name = tool_name(client, params.title)
            if name in self._tools:
                raise ValueError(f"Tool {name} is already registered")
            title = f"{client.name}: {params.title}"
            tool = types.Tool(
                name=name,
                title=title,
                description=build_description(params),
                inputSchema=build_input_schema(params),
                outputSchema=params.output_schema,
                annotations=types.ToolAnnotations(
                    title=title,
                    readOnlyHint=params.read_only,
                    destructiveHint=params.destructive,
                    idempotentHint=params.idempotent,
                    openWorldHint=params.open_world,
                ),
            )
            self._tools[name] = RegisteredTool(tool=tool, title=title, handler=handler, output_schema=params.output_schema)
            logger.debug(f"Registered tool {name}")

        return register

    def _resource_registrar(self, client: Client):
        def register(name: str, path: str, handler: ResourceHandler) -> None:
            uri_template = f"{client.tool_prefix}://{name}/{path}"
            self._resources.append(RegisteredResource(name=name, uri_template=uri_template, pattern=compile_uri_template(uri_template), handler=handler))

        return register

    def _prompt_registrar(self, client: Client):
        def register(name: str, description: str, arguments: Iterable[types.PromptArgument], handler: PromptHandler) -> None:
            if name in self._prompts:
                raise ValueError(f"Prompt {name} is already registered")
            prompt = types.Prompt(name=name, description=description, arguments=list(arguments))
            self._prompts[name] = RegisteredPrompt(prompt=prompt, handler=handler)

        return register

    # ------------------------------------------------------------- callbacks

    async def get_input(self, message: str, requested_schema: Dict[str, Any]) -> Dict[str, Any]:
        """Ask the end user for input during a tool call.

        Args:
            message: Question for the end user
            requested_schema: JSON schema of the expected answer

        Returns:
            Dict[str, Any]: ``{"action", "content"}`` or an elicitation polyfill result
        """
        return await execute_elicitation_or_polyfill(self, message, requested_schema)

    async def sample(self, prompt: str, max_tokens: int = 1000):
        """Ask the connected client's model to run a prompt during a tool call.

        Args:
            prompt: Prompt text
            max_tokens: Maximum tokens for the response

        Returns:
            The sampled text or a sampling polyfill result
        """
        return await execute_sampling_or_polyfill(self, prompt, max_tokens)

    # --------------------------------------------------------------- requests

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]]) -> Any:
        """Execute a tool.

        Args:
            name: Tool name
            arguments: Tool arguments

        Returns:
            Structured content (dict) or a list of content blocks

        Raises:
            ToolError: For unknown tools, tool-level failures (prefixed with the tool
                title) and tools that declare an output schema but return no structured content
            Exception: Unexpected handler failures, after logging
        """
        entry = self._tools.get(name)
        if entry is None:
            raise ToolError(f"Unknown tool: {name}")

        self._sync_client_capabilities()
        try:
            with create_span("tool.invoke", {"tool.name": name, "tool.title": entry.title}):
                result = await entry.handler(arguments or {})
        except ToolError as e:
            message = f"Error executing {entry.title}: {e}"
            await self.notify(message, LogLevel.ERROR, logger_name=name)
            raise ToolError(message) from e
        except Exception:
            logger.exception(f"Unexpected error executing tool {name}")
            raise

        if isinstance(result, BaseModel):
            result = result.model_dump(mode="json", exclude_none=True)
        if entry.output_schema is not None and not isinstance(result, dict):
            raise ToolError(f"Error executing {entry.title}: tool has an output schema but returned no structured content")
        if result is None:
            return []
        if isinstance(result, str):
            return [types.TextContent(type="text", text=result)]
        return result

    async def read_resource(self, uri: str) -> List[ReadResourceContents]:
        """Read a resource by URI.

        Args:
            uri: Resource URI matching one of the registered templates

        Returns:
            List[ReadResourceContents]: Resource contents

        Raises:
            ValueError: If no template matches
        """
        for resource in self._resources:
            match = resource.pattern.match(uri)
            if match is None:
                continue
            result = await resource.handler(uri, match.groupdict())
            if isinstance(result, (str, bytes)):
                return [ReadResourceContents(content=result, mime_type="text/plain")]
            return [ReadResourceContents(content=json.dumps(result, default=str), mime_type="application/json")]
        raise ValueError(f"Unknown resource: {uri}")

    async def get_prompt(self, name: str, arguments: Optional[Dict[str, str]]) -> types.GetPromptResult:
        """Render a prompt.

        Args:
            name: Prompt name
            arguments: Prompt arguments

        Returns:
            types.GetPromptResult: Rendered prompt

        Raises:
            ValueError: If the prompt is unknown
        """
        entry = self._prompts.get(name)
        if entry is None:
            raise ValueError(f"Unknown prompt: {name}")
        result = await entry.handler(arguments or {})
        if isinstance(result, types.GetPromptResult):
            return result
        if isinstance(result, str):
            result = [types.PromptMessage(role="user", content=types.TextContent(type="text", text=result))]
        return types.GetPromptResult(description=entry.prompt.description, messages=list(result))

    def _register_handlers(self) -> None:
        server = self._server

        @server.list_tools()
        async def list_tools() -> List[types.Tool]:
            return self.tools

        @server.call_tool()
        async def call_tool(name: str, arguments: Dict[str, Any]):
            return await self.call_tool(name, arguments)

        @server.list_resources()
        async def list_resources() -> List[types.Resource]:
            return []

        @server.list_resource_templates()
        async def list_resource_templates() -> List[types.ResourceTemplate]:
            return [types.ResourceTemplate(uriTemplate=resource.uri_template, name=resource.name) for resource in self._resources]

        @server.read_resource()
        async def read_resource(uri: AnyUrl):
            return await self.read_resource(str(uri))

        @server.list_prompts()
        async def list_prompts() -> List[types.Prompt]:
            return [entry.prompt for entry in self._prompts.values()]

        @server.get_prompt()
        async def get_prompt(name: str, arguments: Optional[Dict[str, str]]) -> types.GetPromptResult:
            return await self.get_prompt(name, arguments)

        @server.set_logging_level()
        async def set_logging_level(level: types.LoggingLevel) -> None:
            self.set_log_level(LogLevel(level))

    # -------------------------------------------------------------- lifecycle

    def create_initialization_options(self):
        """Build the SDK initialization options advertising this server's capabilities.

        Returns:
            mcp.server.models.InitializationOptions: Options for ``run``
        """
        return self._server.create_initialization_options(notification_options=NotificationOptions(tools_changed=True, resources_changed=True))

    async def run(self, read_stream, write_stream, stateless: bool = False) -> None:
        """Serve this session over a pair of SDK message streams.

        Args:
            read_stream: Stream of incoming ``SessionMessage`` (or exceptions)
            write_stream: Stream receiving outgoing ``SessionMessage``
            stateless: Forwarded to the SDK; the gateway always runs stateful sessions
        """
        await self._server.run(read_stream, write_stream, self.create_initialization_options(), stateless=stateless)

    async def close(self) -> None:
        """Release the session's clients and cached data."""
        for client in self._clients:
            try:
                await client.aclose()
            except Exception as e:
                logger.warning(f"Error closing client {client.name}: {e}")
        self._cache.clear()
