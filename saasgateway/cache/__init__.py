# -*- coding: utf-8 -*-
"""Location: ./saasgateway/cache/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Cache Package.
Provides in-memory state for the SaaS Gateway including:
- The session table shared by the HTTP transports
- The per-session backend data cache
"""

from saasgateway.cache.cache_service import CacheService
from saasgateway.cache.session_table import SessionEntry, SessionTable

__all__ = ["CacheService", "SessionEntry", "SessionTable"]
