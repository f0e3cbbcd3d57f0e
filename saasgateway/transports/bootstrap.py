# -*- coding: utf-8 -*-
"""Location: ./saasgateway/transports/bootstrap.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Session bootstrap.
Every new session, whatever its transport, is built by ``new_server``: a fresh
``GatewayServer`` configured by the registry from a value resolver. The HTTP
transports bind the resolver to the request headers; stdio binds it to the
process environment. Both resolvers derive key names through
``saasgateway.utils.carrier_keys``.

Examples:
    >>> from saasgateway.clients.base import Client, ConfigField
    >>> class Alpha(Client):
    ...     name, tool_prefix, config_prefix = "Alpha", "alpha", "Alpha"
    ...     config_schema = (ConfigField("api_token"),)
    >>> resolve = header_resolver({"alpha-api-token": "secret"})
    >>> resolve(Alpha, "api_token")
    'secret'
    >>> env_resolver({"ALPHA_API_TOKEN": ""})(Alpha, "api_token") is None
    True
"""

# Standard
import os
from typing import Mapping, Optional, Type

# First-Party
from saasgateway.clients.base import Client
from saasgateway.registry import ClientRegistry, ConfigurationError, ValueResolver
from saasgateway.server import GatewayServer
from saasgateway.services.logging_service import logging_service
from saasgateway.utils.carrier_keys import to_env_var_name, to_header_name

logger = logging_service.get_logger(__name__)


def header_resolver(headers: Mapping[str, str]) -> ValueResolver:
    """Resolve configuration values from HTTP request headers.

    The exact header name is tried first, then its lower-cased form, since
    proxies and ASGI servers may normalize header case. Empty values count as absent.

    Args:
        headers: Request headers (a starlette ``Headers`` or any mapping)

    Returns:
        ValueResolver: Resolver for ``ClientRegistry.configure``
    """

    def resolve(client_cls: Type[Client], field_name: str) -> Optional[str]:
        header_name = to_header_name(client_cls.config_prefix, field_name)
        value = headers.get(header_name)
        if value is None:
            value = headers.get(header_name.lower())
        return value or None

    return resolve


def env_resolver(environ: Optional[Mapping[str, str]] = None) -> ValueResolver:
    """Resolve configuration values from environment variables.

    Args:
        environ: Environment mapping; defaults to ``os.environ``

    Returns:
        ValueResolver: Resolver for ``ClientRegistry.configure``
    """
    source = os.environ if environ is None else environ

    def resolve(client_cls: Type[Client], field_name: str) -> Optional[str]:
        return source.get(to_env_var_name(client_cls.config_prefix, field_name)) or None

    return resolve


async def new_server(registry: ClientRegistry, resolve_value: ValueResolver) -> GatewayServer:
    """Build and configure the server for a new session.

    Args:
        registry: Client registry
        resolve_value: Configuration value source

    Returns:
        GatewayServer: Server with at least one active client

    Raises:
        ConfigurationError: If no client could be activated or a client failed to configure
    """
    server = GatewayServer()
    try:
        configured = await registry.configure(server, resolve_value)
    except ConfigurationError:
        await server.close()
        raise
    except Exception as e:
        await server.close()
        logger.warning(f"Client configuration failed: {e}")
        raise ConfigurationError(str(e)) from e

    if configured == 0:
        await server.close()
        raise ConfigurationError("No clients were configured")
    return server


def header_error_message(registry: ClientRegistry, error: Exception) -> str:
    """Build the 401 body sent when an HTTP session cannot be configured.

    Args:
        registry: Client registry, for the list of accepted headers
        error: The configuration failure

    Returns:
        str: Plain-text message

    Examples:
        >>> header_error_message(ClientRegistry(), ConfigurationError("boom"))
        'No clients support HTTP header configuration.'
    """
    help_lines = registry.header_help()
    if not help_lines:
        return "No clients support HTTP header configuration."
    return f"Configuration error: {error}. Please provide valid headers:\n" + "\n".join(help_lines)


def env_error_message(registry: ClientRegistry) -> str:
    """Build the message logged when stdio mode finds no configured client.

    Args:
        registry: Client registry

    Returns:
        str: Message listing the accepted environment variables

    Examples:
        >>> env_error_message(ClientRegistry())
        'No product authentication found. Please configure at least one product client.'
    """
    help_lines = registry.env_var_help()
    if not help_lines:
        return "No product authentication found. Please configure at least one product client."
    return "No product authentication found. Please set the environment variables of at least one client:\n" + "\n".join(help_lines)
