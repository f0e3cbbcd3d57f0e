# -*- coding: utf-8 -*-
"""Location: ./saasgateway/clients/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Backend clients shipped with the gateway.

Examples:
    >>> [client.name for client in BUILTIN_CLIENTS]
    ['Reflect', 'AlertSite']
"""

# First-Party
from saasgateway.clients.alertsite import AlertSiteClient
from saasgateway.clients.base import Client, ConfigField, ToolError, ToolParameter, ToolParams
from saasgateway.clients.reflect import ReflectClient

BUILTIN_CLIENTS = (ReflectClient, AlertSiteClient)

__all__ = ["AlertSiteClient", "BUILTIN_CLIENTS", "Client", "ConfigField", "ReflectClient", "ToolError", "ToolParameter", "ToolParams"]
