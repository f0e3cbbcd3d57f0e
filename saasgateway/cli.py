# -*- coding: utf-8 -*-
"""Location: ./saasgateway/cli.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

saasgateway CLI
This module is exposed as a **console-script** via:

    [project.scripts]
    saasgateway = "saasgateway.cli:main"

It starts the gateway on one of two transports:

* ``stdio`` (default): one session, backends configured from environment
  variables such as ``REFLECT_API_TOKEN``.
* ``http``: Uvicorn serving ``saasgateway.main:app`` (Streamable HTTP on
  ``/mcp``, legacy SSE on ``/sse`` + ``/message``), backends configured per
  session from request headers such as ``Reflect-Api-Token``.

The transport, host and port default to ``MCP_TRANSPORT``, ``HOST`` and ``PORT``.

Typical usage
─────────────
```console
$ REFLECT_API_TOKEN=... saasgateway                 # stdio
$ saasgateway --transport http --port 3000          # HTTP on 127.0.0.1:3000
```
"""

# Standard
import argparse
import sys
from typing import List, Optional

# Third-Party
import anyio
import uvicorn

# First-Party
from saasgateway import __version__
from saasgateway.config import settings
from saasgateway.registry import build_registry
from saasgateway.services.logging_service import logging_service
from saasgateway.transports.stdio_transport import run_stdio

DEFAULT_APP = "saasgateway.main:app"  # dotted path to FastAPI instance
TRANSPORTS = ("http", "stdio")


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser.

    Returns:
        argparse.ArgumentParser: Parser

    Examples:
        >>> args = build_parser().parse_args(["--transport", "http", "--port", "8080"])
        >>> args.transport, args.port
        ('http', 8080)
        >>> build_parser().parse_args([]).host == settings.host
        True
    """
    parser = argparse.ArgumentParser(prog="saasgateway", description="MCP gateway for SaaS backends")
    parser.add_argument("-V", "--version", action="version", version=f"saasgateway {__version__}")
    parser.add_argument("--transport", choices=TRANSPORTS, default=settings.mcp_transport.lower(), help="Transport to serve (default: MCP_TRANSPORT)")
    parser.add_argument("--host", default=settings.host, help="HTTP bind address (default: HOST)")
    parser.add_argument("--port", type=int, default=settings.port, help="HTTP port (default: PORT)")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the *saasgateway* console script.

    Args:
        argv: Arguments without the program name; ``sys.argv[1:]`` by default

    Raises:
        ValueError: If MCP_TRANSPORT names an unknown transport
    """
    settings.validate_transport()
    args = build_parser().parse_args(argv)

    if args.transport == "stdio":
        # stdout carries the protocol; logs go to stderr
        anyio.run(logging_service.initialize, settings.log_level)
        sys.exit(anyio.run(run_stdio, build_registry()))

    uvicorn.run(DEFAULT_APP, host=args.host, port=args.port, log_level=settings.log_level.lower())


if __name__ == "__main__":  # pragma: no cover - executed only when run directly
    main()
