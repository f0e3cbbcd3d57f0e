# -*- coding: utf-8 -*-
"""Location: ./saasgateway/transports/base.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Base Transport Interface.
This module defines the base protocol for gateway-owned MCP transports, i.e.
transports whose inbound messages arrive on a different request than the one
carrying the outbound stream.
"""

# Standard
from abc import ABC, abstractmethod
from typing import Any, Dict


class Transport(ABC):
    """Base class for gateway-owned transport implementations.

    Examples:
        >>> try:
        ...     Transport()
        ... except TypeError as e:
        ...     print("Cannot instantiate abstract class")
        Cannot instantiate abstract class
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the transport. Must be called before messages are exchanged."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the transport and release its streams."""

    @abstractmethod
    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Deliver one inbound JSON-RPC message to the session's server.

        Args:
            message: Decoded JSON-RPC message
        """

    @abstractmethod
    async def is_connected(self) -> bool:
        """Check if transport is connected.

        Returns:
            True if connected
        """
