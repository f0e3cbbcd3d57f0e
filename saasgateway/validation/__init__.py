# -*- coding: utf-8 -*-
"""Location: ./saasgateway/validation/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Validation Package.
Provides JSON-RPC helpers used by the HTTP transports.
"""

from saasgateway.validation.jsonrpc import is_initialize_request, JSONRPCError, parse_json_body

__all__ = ["JSONRPCError", "is_initialize_request", "parse_json_body"]
