# -*- coding: utf-8 -*-
"""Location: ./saasgateway/transports/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

MCP Transport Package.
This package provides the transports the gateway serves sessions over:
- stdio: one session configured from environment variables
- Streamable HTTP: the ``/mcp`` endpoint
- SSE: the legacy ``/sse`` + ``/message`` endpoints

Examples:
    >>> from saasgateway.transports import SSETransport, Transport
    >>> issubclass(SSETransport, Transport)
    True
"""

from saasgateway.transports.base import Transport
from saasgateway.transports.sse_transport import LegacySSEHandler, SSETransport
from saasgateway.transports.stdio_transport import run_stdio
from saasgateway.transports.streamablehttp_transport import StreamableSessionManager

__all__ = ["LegacySSEHandler", "SSETransport", "StreamableSessionManager", "Transport", "run_stdio"]
