# -*- coding: utf-8 -*-
"""Location: ./saasgateway/registry.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Client Registry.
The registry is the catalog of every backend ``Client`` class known to the
process. One instance is built at startup and handed to the HTTP and stdio entry
points. For each new session it resolves every visible backend's configuration
from a caller-supplied value source (environment variables or request headers),
activates the backends whose required fields are all present, and reports how
many were activated.

Examples:
    >>> from saasgateway.clients.base import Client, ConfigField
    >>> class Alpha(Client):
    ...     name, tool_prefix, config_prefix = "Alpha", "alpha", "Alpha"
    ...     config_schema = (ConfigField("token", description="Alpha token"),)
    ...     async def configure(self, server, config): return True
    ...     def is_configured(self): return True
    ...     def register_tools(self, register, get_input): pass
    >>> registry = ClientRegistry(enabled_clients={"ALPHA"})
    >>> registry.register(Alpha)
    >>> [c.name for c in registry.get_all()]
    ['Alpha']
    >>> registry.header_names()
    ['Alpha-Token']
    >>> registry.header_help()
    ['  Alpha:', '    - Alpha-Token (required): Alpha token']
"""

# Standard
import re
from typing import Callable, Dict, Iterable, List, Optional, Pattern, Tuple, Type, TYPE_CHECKING

# First-Party
from saasgateway.clients import BUILTIN_CLIENTS
from saasgateway.clients.base import Client
from saasgateway.config import settings, Settings
from saasgateway.services.logging_service import logging_service
from saasgateway.utils.carrier_keys import to_env_var_name, to_header_name

if TYPE_CHECKING:
    # First-Party
    from saasgateway.server import GatewayServer

logger = logging_service.get_logger(__name__)

# resolve_value(client_cls, field_name) -> value or None when absent
ValueResolver = Callable[[Type[Client], str], Optional[str]]


class ConfigurationError(Exception):
    """Raised when a session cannot be configured.

    Examples:
        >>> str(ConfigurationError("No clients were configured"))
        'No clients were configured'
    """


def _compile_endpoints(entries: Optional[Iterable[str]]) -> Tuple[Optional[List[str]], List[Pattern[str]]]:
    """Split MCP_ALLOWED_ENDPOINTS entries into exact URLs and regex patterns.

    Args:
        entries: Raw entries; ``/.../`` entries are regular expressions

    Returns:
        Tuple of exact URLs (None when unrestricted) and compiled patterns

    Examples:
        >>> exact, patterns = _compile_endpoints(["https://a.com", "/^https://b\\\\./", "/[/"])
        >>> exact, [p.pattern for p in patterns]
        (['https://a.com'], ['^https://b\\\\.'])
        >>> _compile_endpoints(None)
        (None, [])
    """
    if entries is None:
        return None, []

    exact: List[str] = []
    patterns: List[Pattern[str]] = []
    for entry in entries:
        entry = entry.strip()
        if not entry:
            continue
        if len(entry) > 2 and entry.startswith("/") and entry.endswith("/"):
            try:
                patterns.append(re.compile(entry[1:-1]))
            except re.error as e:
                logger.warning(f"Invalid regex pattern in MCP_ALLOWED_ENDPOINTS: {entry} ({e})")
        else:
            exact.append(entry)
    return exact, patterns


class ClientRegistry:
    """Process-wide catalog of backend client classes.

    Attributes:
        enabled_clients: Lower-cased display names allowed by MCP_ENABLED_CLIENTS, or None for all
    """

    def __init__(self, enabled_clients: Optional[Iterable[str]] = None, allowed_endpoints: Optional[Iterable[str]] = None):
        """Initialize the registry.

        Args:
            enabled_clients: Display names to expose (case-insensitive); None or empty exposes all
            allowed_endpoints: Exact URLs and /regex/ patterns URL fields may use; None allows any URL

        Examples:
            >>> ClientRegistry().enabled_clients is None
            True
            >>> ClientRegistry(enabled_clients=[" ", ""]).enabled_clients is None
            True
            >>> sorted(ClientRegistry(enabled_clients=["Reflect", " AlertSite "]).enabled_clients)
            ['alertsite', 'reflect']
        """
        self._entries: List[Type[Client]] = []
        names = {name.strip().lower() for name in (enabled_clients or []) if name.strip()}
        self.enabled_clients = names or None
        self._exact_endpoints, self._endpoint_patterns = _compile_endpoints(allowed_endpoints)

    def register(self, client_cls: Type[Client]) -> None:
        """Append a client class.

        Duplicate display names are kept but logged. Both entries stay visible, but
        if both activate in one session their tool names collide and the session
        cannot be configured.

        Args:
            client_cls: Client class to register
        """
        if any(entry.name.lower() == client_cls.name.lower() for entry in self._entries):
            logger.warning(f"Client '{client_cls.name}' is already registered; keeping both registrations, sessions activating both will fail on duplicate tool names")
        self._entries.append(client_cls)

    def get_all(self) -> List[Type[Client]]:
        """Return the visible client classes in registration order.

        Returns:
            List[Type[Client]]: Registered classes filtered by the enabled-clients allow-list
        """
        if self.enabled_clients is None:
            return list(self._entries)
        return [entry for entry in self._entries if entry.name.lower() in self.enabled_clients]

    def clear(self) -> None:
        """Remove all registrations. Test harnesses only."""
        self._entries = []

    def is_url_allowed(self, url: str) -> bool:
        """Check a URL against MCP_ALLOWED_ENDPOINTS.

        Args:
            url: URL supplied as configuration

        Returns:
            bool: True when allowed

        Examples:
            >>> ClientRegistry().is_url_allowed("https://anything.example")
            True
            >>> registry = ClientRegistry(allowed_endpoints=["https://api.reflect.run/v1", "/^https://[a-z]+\\\\.alertsite\\\\.com/"])
            >>> registry.is_url_allowed("https://api.reflect.run/v1")
            True
            >>> registry.is_url_allowed("https://api.reflect.run/v2")
            False
            >>> registry.is_url_allowed("https://api.alertsite.com/path")
            True
        """
        if self._exact_endpoints is None:
            return True
        if url in self._exact_endpoints:
            return True
        return any(pattern.search(url) for pattern in self._endpoint_patterns)

    async def configure(self, server: "GatewayServer", resolve_value: ValueResolver) -> int:
        """Configure every visible backend that has all of its required fields.

        Fields are resolved in schema order. A missing required field skips the
        backend before it is instantiated; its partial configuration is dropped.
        Each backend is a fresh instance owned by ``server``.

        Args:
            server: Session server receiving the activated clients
            resolve_value: Returns a field's value for a client class, or None when absent

        Returns:
            int: Number of clients activated

        Raises:
            ConfigurationError: If a URL field is not allowed by MCP_ALLOWED_ENDPOINTS
            ValueError: If a client registers a tool name already taken in this session;
                the rejected client is closed first
        """
        configured = 0
        for client_cls in self.get_all():
            config: Dict[str, Optional[str]] = {}
            missing: Optional[str] = None
            for field in client_cls.config_schema:
                value = resolve_value(client_cls, field.name)
                if value is None:
                    if field.required:
                        missing = field.name
                        break
                    config[field.name] = None
                    continue
                if field.url and not self.is_url_allowed(value):
                    raise ConfigurationError(f"URL {value} is not allowed")
                config[field.name] = value

            if missing is not None:
                logger.debug(f"Skipping {client_cls.name}: missing required field '{missing}'")
                continue

            client = client_cls()
            try:
                accepted = await client.configure(server, config)
                if accepted:
                    server.add_client(client)
            except Exception:
                # not owned by the server yet, so server.close() would miss it
                await client.aclose()
                raise
            if not accepted:
                logger.warning(f"Client {client_cls.name} declined configuration")
                await client.aclose()
                continue
            configured += 1
            logger.info(f"Configured client: {client_cls.name}")

        return configured

    def header_names(self) -> List[str]:
        """Return every configuration header name for visible clients.

        Returns:
            List[str]: Sorted, deduplicated header names
        """
        names = {to_header_name(client_cls.config_prefix, field.name) for client_cls in self.get_all() for field in client_cls.config_schema}
        return sorted(names)

    def header_help(self) -> List[str]:
        """Describe the accepted configuration headers, grouped by client.

        Returns:
            List[str]: Help lines
        """
        lines: List[str] = []
        for client_cls in self.get_all():
            lines.append(f"  {client_cls.name}:")
            for field in client_cls.config_schema:
                requirement = "required" if field.required else "optional"
                lines.append(f"    - {to_header_name(client_cls.config_prefix, field.name)} ({requirement}): {field.description}")
        return lines

    def env_var_help(self) -> List[str]:
        """Describe the accepted configuration environment variables, grouped by client.

        Returns:
            List[str]: Help lines

        Examples:
            >>> ClientRegistry().env_var_help()
            []
        """
        lines: List[str] = []
        for client_cls in self.get_all():
            lines.append(f"  {client_cls.name}:")
            for field in client_cls.config_schema:
                requirement = "required" if field.required else "optional"
                lines.append(f"    - {to_env_var_name(client_cls.config_prefix, field.name)} ({requirement}): {field.description}")
        return lines


def build_registry(cfg: Optional[Settings] = None) -> ClientRegistry:
    """Build the registry of built-in clients, filtered by the gateway settings.

    Args:
        cfg: Settings to read MCP_ENABLED_CLIENTS and MCP_ALLOWED_ENDPOINTS from

    Returns:
        ClientRegistry: Registry with every built-in client registered

    Examples:
        >>> registry = build_registry(Settings(mcp_enabled_clients="reflect"))
        >>> [client.name for client in registry.get_all()]
        ['Reflect']
        >>> "AlertSite-Base-Url" in build_registry(Settings()).header_names()
        True
    """
    cfg = cfg or settings
    registry = ClientRegistry(enabled_clients=cfg.enabled_clients, allowed_endpoints=cfg.allowed_endpoints)
    for client_cls in BUILTIN_CLIENTS:
        registry.register(client_cls)
    return registry
