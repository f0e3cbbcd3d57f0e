# -*- coding: utf-8 -*-
"""Location: ./saasgateway/clients/base.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Backend Client Contract.
Every SaaS backend the gateway exposes implements ``Client``: a display name, a
tool prefix, a configuration prefix, an ordered configuration schema, an async
``configure`` step and registration hooks for tools, resources and prompts.

The registry keeps the ``Client`` *classes*; every session instantiates its own
clients, so tokens and API handles never cross sessions.

Examples:
    >>> field = ConfigField("api_token", description="API token")
    >>> field.required, field.url
    (True, False)
    >>> ToolParams(title="List Suites", summary="List all suites").read_only
    True
"""

# Standard
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING

# Third-Party
from pydantic import BaseModel, Field

# First-Party
from saasgateway.utils.carrier_keys import is_valid_field_name

if TYPE_CHECKING:
    # First-Party
    from saasgateway.server import GatewayServer


class ToolError(Exception):
    """Tool-level failure reported back to the caller as an error result.

    Raise this from a tool handler for expected failures (bad input, a backend
    returning 4xx). Anything else is treated as unexpected and logged with a traceback.

    Examples:
        >>> str(ToolError("Suite not found"))
        'Suite not found'
    """


@dataclass(frozen=True)
class ConfigField:
    """One configuration field of a backend.

    Attributes:
        name: snake_case field name, mapped onto carrier keys
        required: Whether the backend can be activated without it
        description: Human readable description used in help text
        url: Whether the value is a URL checked against MCP_ALLOWED_ENDPOINTS

    Examples:
        >>> ConfigField("base_url", required=False, description="API base URL", url=True).url
        True
        >>> try:
        ...     ConfigField("apiToken")
        ... except ValueError as e:
        ...     print(e)
        Configuration field names must be snake_case: apiToken
    """

    name: str
    required: bool = True
    description: str = ""
    url: bool = False

    def __post_init__(self):
        if not is_valid_field_name(self.name):
            raise ValueError(f"Configuration field names must be snake_case: {self.name}")


class ToolParameter(BaseModel):
    """A documented tool parameter.

    ``type`` is a JSON schema fragment, e.g. ``{"type": "string"}``.
    """

    name: str
    type: Dict[str, Any] = Field(default_factory=lambda: {"type": "string"})
    description: Optional[str] = None
    required: bool = False
    examples: Optional[List[str]] = None
    constraints: Optional[List[str]] = None


class ToolExample(BaseModel):
    """A worked example shown in the tool description."""

    description: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    expected_output: Optional[str] = None


class ToolParams(BaseModel):
    """Declarative tool specification.

    Parameters can be given as ``parameters`` (documented one by one) and/or as a
    raw JSON ``input_schema``; both are merged into the tool's input schema.
    """

    title: str
    summary: str
    parameters: List[ToolParameter] = Field(default_factory=list)
    input_schema: Optional[Dict[str, Any]] = None
    output_schema: Optional[Dict[str, Any]] = None
    output_description: Optional[str] = None
    use_cases: List[str] = Field(default_factory=list)
    examples: List[ToolExample] = Field(default_factory=list)
    hints: List[str] = Field(default_factory=list)
    read_only: bool = True
    destructive: bool = False
    idempotent: bool = True
    open_world: bool = False


ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]
RegisterTool = Callable[[ToolParams, ToolHandler], None]
GetInput = Callable[[str, Dict[str, Any]], Awaitable[Dict[str, Any]]]
ResourceHandler = Callable[[str, Dict[str, str]], Awaitable[Any]]
RegisterResource = Callable[[str, str, ResourceHandler], None]
PromptHandler = Callable[[Dict[str, str]], Awaitable[Any]]
RegisterPrompt = Callable[..., None]


class Client(ABC):
    """Base class for backend integrations.

    Subclasses set the identity class attributes and ``config_schema`` and
    implement ``configure``, ``is_configured`` and ``register_tools``.

    Examples:
        >>> class Demo(Client):
        ...     name = "Demo"
        ...     tool_prefix = "demo"
        ...     config_prefix = "Demo"
        ...     config_schema = (ConfigField("token"),)
        ...     async def configure(self, server, config):
        ...         return True
        ...     def is_configured(self):
        ...         return True
        ...     def register_tools(self, register, get_input):
        ...         pass
        >>> Demo.field_names()
        ['token']
        >>> Demo().register_resources(None) is None
        True
    """

    name: str = ""
    tool_prefix: str = ""
    config_prefix: str = ""
    config_schema: Tuple[ConfigField, ...] = ()

    @classmethod
    def field_names(cls) -> List[str]:
        """Return the configuration field names in declaration order.

        Returns:
            List[str]: Field names
        """
        return [field.name for field in cls.config_schema]

    @abstractmethod
    async def configure(self, server: "GatewayServer", config: Dict[str, Optional[str]]) -> bool:
        """Materialize backend state from resolved configuration.

        Args:
            server: The session's gateway server
            config: Resolved values keyed by field name; absent optional fields are None

        Returns:
            bool: True when the backend is ready to serve tools
        """

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True once ``configure`` succeeded."""

    @abstractmethod
    def register_tools(self, register: RegisterTool, get_input: GetInput) -> None:
        """Register this backend's tools.

        Args:
            register: Callback taking a ToolParams and an async handler
            get_input: Request-scoped callback asking the end user for input
        """

    def register_resources(self, register: RegisterResource) -> None:
        """Register resource templates. Optional."""

    def register_prompts(self, register: RegisterPrompt) -> None:
        """Register prompts. Optional."""

    async def aclose(self) -> None:
        """Release backend resources when the session ends. Optional."""
