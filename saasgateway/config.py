# -*- coding: utf-8 -*-
"""Location: ./saasgateway/config.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

SaaS Gateway Configuration.
This module defines configuration settings for the SaaS MCP Gateway using Pydantic.
It loads configuration from environment variables (or a ``.env`` file) with sensible defaults.

Environment variables:
- APP_NAME: Gateway name (default: "saas-mcp-gateway")
- HOST: Host to bind to (default: "127.0.0.1")
- PORT: Port to listen on (default: 3000)
- MCP_TRANSPORT: Transport to serve, "stdio" or "http" (default: "stdio")
- ALLOWED_ORIGINS: CORS origins, CSV or JSON list (default: "http://localhost:3000")
- MCP_ENABLED_CLIENTS: Comma-separated, case-insensitive list of backend names (default: all)
- MCP_ALLOWED_ENDPOINTS: Comma-separated URLs or /regex/ patterns backends may target (default: any)
- LOG_LEVEL: Logging level (default: "INFO")
- CACHE_ENABLED: Enable the per-session backend cache (default: True)
- CACHE_TTL: Cache TTL in seconds (default: 86400)
- MAX_SESSIONS: Maximum concurrent HTTP sessions, 0 for unbounded (default: 0)
- OTEL_ENABLE_OBSERVABILITY: Enable OpenTelemetry tracing (default: True)
- OTEL_TRACES_EXPORTER: "otlp", "console" or "none" (default: "otlp")
- OTEL_EXPORTER_OTLP_ENDPOINT: OTLP/HTTP traces endpoint (default: none, tracing stays off)
- MCP_SERVER_BUGSNAG_API_KEY: Sends traces to the BugSnag OTLP endpoint when no endpoint is set

Examples:
    >>> from saasgateway.config import Settings
    >>> s = Settings(mcp_transport='http')
    >>> s.validate_transport()  # no error
    >>> s2 = Settings(mcp_transport='invalid')
    >>> try:
    ...     s2.validate_transport()
    ... except ValueError as e:
    ...     print('error')
    error
    >>> Settings(mcp_enabled_clients=' Reflect, ALERTSITE ,').enabled_clients == {'reflect', 'alertsite'}
    True
"""

# Standard
from functools import lru_cache
import json
import logging
from typing import Annotated, List, Optional, Set

# Third-Party
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Only configure basic logging if no handlers exist yet
# This prevents conflicts with LoggingService while ensuring config logging works
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    SaaS MCP Gateway configuration settings.

    Examples:
        >>> from saasgateway.config import Settings
        >>> s = Settings()
        >>> s.app_name
        'saas-mcp-gateway'
        >>> s.port
        3000
        >>> s.mcp_transport
        'stdio'
        >>> isinstance(s.allowed_origins, set)
        True
        >>> s.enabled_clients is None
        True
    """

    # Basic Settings
    app_name: str = "saas-mcp-gateway"
    host: str = "127.0.0.1"
    port: int = 3000

    # Transport
    mcp_transport: str = "stdio"
    json_response_enabled: bool = False
    max_sessions: int = 0

    # SSE keepalive
    sse_keepalive_enabled: bool = True
    sse_keepalive_interval: int = 30
    sse_retry_timeout: int = 5000  # milliseconds

    # CORS
    allowed_origins: Annotated[Set[str], NoDecode] = {"http://localhost:3000"}

    # Backend selection
    mcp_enabled_clients: str = ""
    mcp_allowed_endpoints: str = ""

    # Logging
    log_level: str = "INFO"

    # Per-session cache
    cache_enabled: bool = True
    cache_ttl: int = 86400
    cache_max_size: int = 1000

    # Backend HTTP retries
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0  # seconds
    retry_max_delay: int = 60  # seconds
    retry_jitter_max: float = 0.5  # fraction of base delay
    backend_timeout: float = 30.0  # seconds

    # Observability (OpenTelemetry)
    otel_enable_observability: bool = True
    otel_traces_exporter: str = "otlp"  # otlp, console, none
    otel_exporter_otlp_endpoint: Optional[str] = None
    otel_exporter_otlp_headers: Optional[str] = None
    otel_service_name: str = "saas-mcp-gateway"
    otel_resource_attributes: Optional[str] = None
    deployment_env: str = "development"
    mcp_server_bugsnag_api_key: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore")

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _parse_allowed_origins(cls, v):
        """Parse allowed origins from environment variable or config value.

        Handles multiple input formats for the allowed_origins field:
        - JSON array string: '["http://localhost", "http://example.com"]'
        - Comma-separated string: "http://localhost, http://example.com"
        - Already parsed set/list

        Args:
            v: The input value to parse. Can be a string (JSON or CSV), set, list, or other iterable.

        Returns:
            Set[str]: A set of allowed origin strings.

        Examples:
            >>> sorted(Settings._parse_allowed_origins('["https://a.com", "https://b.com"]'))
            ['https://a.com', 'https://b.com']
            >>> sorted(Settings._parse_allowed_origins("https://x.com , https://y.com"))
            ['https://x.com', 'https://y.com']
            >>> Settings._parse_allowed_origins('""')
            set()
            >>> Settings._parse_allowed_origins('"https://single.com"')
            {'https://single.com'}
        """
        if isinstance(v, str):
            v = v.strip()
            if v[:1] in "\"'" and v[-1:] == v[:1]:  # strip 1 outer quote pair
                v = v[1:-1]
            try:
                parsed = set(json.loads(v))
            except json.JSONDecodeError:
                parsed = {s.strip() for s in v.split(",") if s.strip()}
            return parsed
        return set(v)

    @property
    def enabled_clients(self) -> Optional[Set[str]]:
        """Lower-cased backend names from MCP_ENABLED_CLIENTS.

        Returns:
            Optional[Set[str]]: The allow-list, or None when every backend is enabled.

        Examples:
            >>> Settings(mcp_enabled_clients='').enabled_clients is None
            True
            >>> Settings(mcp_enabled_clients=' , ').enabled_clients is None
            True
            >>> sorted(Settings(mcp_enabled_clients='Reflect,AlertSite').enabled_clients)
            ['alertsite', 'reflect']
        """
        names = {name.strip().lower() for name in self.mcp_enabled_clients.split(",") if name.strip()}
        return names or None

    @property
    def allowed_endpoints(self) -> Optional[List[str]]:
        """Endpoint patterns from MCP_ALLOWED_ENDPOINTS.

        Returns:
            Optional[List[str]]: Exact URLs and /regex/ entries, or None when unrestricted.

        Examples:
            >>> Settings().allowed_endpoints is None
            True
            >>> Settings(mcp_allowed_endpoints='https://a.com, /^https://api/').allowed_endpoints
            ['https://a.com', '/^https://api/']
        """
        entries = [entry.strip() for entry in self.mcp_allowed_endpoints.split(",") if entry.strip()]
        return entries or None

    def validate_transport(self) -> None:
        """
        Validate transport configuration.

        Raises:
            ValueError: If the transport is not one of the valid options.

        Examples:
            >>> Settings(mcp_transport='HTTP').validate_transport()  # case-insensitive
            >>> try:
            ...     Settings(mcp_transport='ws').validate_transport()
            ... except ValueError as e:
            ...     print(e)
            Invalid transport: ws. Must be one of: http, stdio
        """
        valid_types = {"stdio", "http"}
        if self.mcp_transport.lower() not in valid_types:
            raise ValueError(f"Invalid transport: {self.mcp_transport}. Must be one of: {', '.join(sorted(valid_types))}")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: A cached instance of the Settings class.

    Examples:
        >>> settings = get_settings()
        >>> isinstance(settings, Settings)
        True
        >>> settings is get_settings()
        True
    """
    cfg = Settings()
    cfg.validate_transport()
    return cfg


# Create settings instance
settings = get_settings()
