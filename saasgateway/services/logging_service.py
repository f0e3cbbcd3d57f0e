# -*- coding: utf-8 -*-
"""Logging Service Implementation.

Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

This module implements logging for the gateway on top of the standard library.
It accepts RFC 5424 severity names for LOG_LEVEL and keeps
every gateway logger at the same level. All output goes to stderr so the stdio
transport never sees log lines on its protocol stream.
"""

# Standard
import logging
import sys
from typing import Dict, Optional

# First-Party
from saasgateway.types import LogLevel

# RFC 5424 levels folded onto the stdlib ones
_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.NOTICE: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
    LogLevel.ALERT: logging.CRITICAL,
    LogLevel.EMERGENCY: logging.CRITICAL,
}


class LoggingService:
    """Gateway logging service.

    Implements logging with:
    - RFC 5424 severity levels
    - Log level management
    - Logger name tracking

    Examples:
        >>> service = LoggingService()
        >>> service.get_level()
        <LogLevel.INFO: 'info'>
        >>> service.get_logger("saasgateway.example").name
        'saasgateway.example'
    """

    def __init__(self, level: LogLevel = LogLevel.INFO):
        """Initialize logging service.

        Args:
            level: Initial minimum level
        """
        self._level = level
        self._loggers: Dict[str, logging.Logger] = {}

    async def initialize(self, level: Optional[str] = None) -> None:
        """Initialize logging service.

        Args:
            level: Optional level name (``INFO``, ``debug``...) overriding the current level
        """
        if level:
            self._level = LogLevel(level.lower())
        logging.basicConfig(
            level=_STDLIB_LEVELS[self._level],
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            stream=sys.stderr,
        )
        self._apply_level()
        logging.getLogger(__name__).info("Logging service initialized")

    async def shutdown(self) -> None:
        """Shutdown logging service."""
        logging.getLogger(__name__).info("Logging service shutdown")

    def get_logger(self, name: str) -> logging.Logger:
        """Get or create logger instance.

        Args:
            name: Logger name

        Returns:
            Logger instance
        """
        if name not in self._loggers:
            logger = logging.getLogger(name)
            logger.setLevel(_STDLIB_LEVELS[self._level])
            self._loggers[name] = logger

        return self._loggers[name]

    def get_level(self) -> LogLevel:
        """Return the current minimum level.

        Returns:
            LogLevel: Current level
        """
        return self._level

    def _apply_level(self) -> None:
        stdlib_level = _STDLIB_LEVELS[self._level]
        for logger in self._loggers.values():
            logger.setLevel(stdlib_level)


# Shared by every gateway module so that LOG_LEVEL reaches all of them
logging_service = LoggingService()
