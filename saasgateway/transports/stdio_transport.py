# -*- coding: utf-8 -*-
"""Location: ./saasgateway/transports/stdio_transport.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

stdio Transport Implementation.
Serves a single session over standard input/output. The session's backends are
configured from environment variables (``REFLECT_API_TOKEN``...), derived
from the same schema as the HTTP headers.
"""

# Standard
from typing import Mapping, Optional

# Third-Party
from mcp.server.stdio import stdio_server

# First-Party
from saasgateway.observability import init_telemetry, shutdown_telemetry
from saasgateway.registry import ClientRegistry, ConfigurationError
from saasgateway.services.logging_service import logging_service
from saasgateway.transports.bootstrap import env_error_message, env_resolver, new_server

logger = logging_service.get_logger(__name__)


async def run_stdio(registry: ClientRegistry, environ: Optional[Mapping[str, str]] = None) -> int:
    """Configure one session from the environment and serve it over stdio.

    Tracing starts before the session is configured and is flushed on exit.

    Args:
        registry: Client registry
        environ: Environment mapping; defaults to ``os.environ``

    Returns:
        int: Process exit status, 1 when no backend could be configured
    """
    init_telemetry("stdio")
    try:
        try:
            server = await new_server(registry, env_resolver(environ))
        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            logger.error(env_error_message(registry))
            return 1

        logger.info(f"Serving {len(server.clients)} client(s) over stdio")
        try:
            async with stdio_server() as (read_stream, write_stream):
                await server.run(read_stream, write_stream)
        finally:
            await server.close()
        return 0
    finally:
        shutdown_telemetry()
