# -*- coding: utf-8 -*-
"""Location: ./saasgateway/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

SaaS Gateway - exposes SaaS product APIs as Model Context Protocol (MCP) tools
over stdio, streamable HTTP and legacy SSE.
"""

__author__ = "Mihai Criveti"
__copyright__ = "Copyright 2025"
__license__ = "Apache 2.0"
__version__ = "0.1.0"
__description__ = "MCP gateway for SaaS product APIs"
__packages__ = ["saasgateway"]

__all__ = [
    "__version__",
    "__author__",
    "__license__",
]
