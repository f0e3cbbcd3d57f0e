# -*- coding: utf-8 -*-
"""Location: ./saasgateway/cache/session_table.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Session Table.
Maps session ids to the (server, transport) pair serving that session. Both HTTP
wire protocols share one table, so a session id is unique across them and a
request can be checked against the transport type that created its session.

Entries are inserted when a session is bootstrapped and deleted when its
transport closes, for whatever reason. Every access goes through one asyncio lock.

A bootstrap first reserves a slot with ``reserve`` so that the session cap
holds while backends are being configured; ``add(..., reserved=True)`` turns the
reservation into a live entry and ``release`` gives it back on failure.

Examples:
    >>> import asyncio
    >>> table = SessionTable()
    >>> entry = SessionEntry(server="server", transport="transport")
    >>> asyncio.run(table.add("abc", entry))
    >>> asyncio.run(table.get("abc")) is entry
    True
    >>> asyncio.run(table.remove("abc")) is entry
    True
    >>> asyncio.run(table.get("abc")) is None
    True
"""

# Standard
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TYPE_CHECKING

# First-Party
from saasgateway.services.logging_service import logging_service

if TYPE_CHECKING:
    # First-Party
    from saasgateway.server import GatewayServer

logger = logging_service.get_logger(__name__)


@dataclass
class SessionEntry:
    """A live session.

    Attributes:
        server: The session's configured gateway server
        transport: Transport instance (its type identifies the wire protocol)
    """

    server: "GatewayServer"
    transport: Any


class SessionTable:
    """Session id to (server, transport) mapping shared by the HTTP transports.

    Examples:
        >>> import asyncio
        >>> table = SessionTable()
        >>> len(table)
        0
        >>> asyncio.run(table.add("s1", SessionEntry("srv", "tr")))
        >>> len(table), "s1" in table
        (1, True)
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, SessionEntry] = {}
        self._reserved = 0
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    @property
    def reserved(self) -> int:
        """Number of slots held by bootstraps still in progress."""
        return self._reserved

    async def reserve(self, max_sessions: int = 0) -> bool:
        """Claim a slot for a session being bootstrapped.

        Live sessions and pending reservations both count against the cap.

        Args:
            max_sessions: Maximum number of sessions; 0 for unbounded

        Returns:
            bool: False when the table is full

        Examples:
            >>> import asyncio
            >>> table = SessionTable()
            >>> asyncio.run(table.reserve(1)), asyncio.run(table.reserve(1))
            (True, False)
            >>> asyncio.run(table.release())
            >>> asyncio.run(table.reserve(1))
            True
        """
        async with self._lock:
            if max_sessions and len(self._sessions) + self._reserved >= max_sessions:
                return False
            self._reserved += 1
            return True

    async def release(self) -> None:
        """Give back a slot claimed by ``reserve`` for a bootstrap that failed."""
        async with self._lock:
            self._reserved = max(self._reserved - 1, 0)

    async def add(self, session_id: str, entry: SessionEntry, reserved: bool = False) -> None:
        """Insert a session.

        Args:
            session_id: Unique session identifier
            entry: Server and transport for the session
            reserved: The caller holds a slot from ``reserve``, consumed by this insert

        Raises:
            KeyError: If the session id is already in use
        """
        async with self._lock:
            if session_id in self._sessions:
                raise KeyError(f"Session already exists: {session_id}")
            self._sessions[session_id] = entry
            if reserved:
                self._reserved = max(self._reserved - 1, 0)
        logger.info(f"Added session: {session_id}")

    async def get(self, session_id: str) -> Optional[SessionEntry]:
        """Look up a session.

        Args:
            session_id: Session identifier

        Returns:
            The entry, or None when unknown or closed
        """
        async with self._lock:
            return self._sessions.get(session_id)

    async def remove(self, session_id: str) -> Optional[SessionEntry]:
        """Delete a session.

        Removing an unknown id is a no-op, so every close path may call this.

        Args:
            session_id: Session identifier

        Returns:
            The removed entry, or None
        """
        async with self._lock:
            entry = self._sessions.pop(session_id, None)
        if entry is not None:
            logger.info(f"Removed session: {session_id}")
        return entry

    async def session_ids(self) -> List[str]:
        """Return the ids of all live sessions.

        Returns:
            List[str]: Session ids
        """
        async with self._lock:
            return list(self._sessions)

    async def clear(self) -> List[SessionEntry]:
        """Drop every session, e.g. at shutdown.

        Returns:
            List[SessionEntry]: The dropped entries
        """
        async with self._lock:
            entries = list(self._sessions.values())
            self._sessions.clear()
        return entries
