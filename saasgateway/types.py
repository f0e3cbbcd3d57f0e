# -*- coding: utf-8 -*-
"""Location: ./saasgateway/types.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Shared Gateway Type Definitions.
Protocol-level enums used across the gateway. Wire types (requests, results,
content blocks) come from ``mcp.types``.
"""

# Standard
from enum import Enum


class LogLevel(str, Enum):
    """Standard syslog severity levels as defined in RFC 5424.

    The values match the ``logging/setLevel`` levels clients send.

    Attributes:
        DEBUG (str): Debug level.
        INFO (str): Informational level.
        NOTICE (str): Notice level.
        WARNING (str): Warning level.
        ERROR (str): Error level.
        CRITICAL (str): Critical level.
        ALERT (str): Alert level.
        EMERGENCY (str): Emergency level.

    Examples:
        >>> LogLevel("warning") is LogLevel.WARNING
        True
        >>> LogLevel.ERROR.value
        'error'
    """

    DEBUG = "debug"
    INFO = "info"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    ALERT = "alert"
    EMERGENCY = "emergency"
