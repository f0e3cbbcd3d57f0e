# -*- coding: utf-8 -*-
"""Location: ./tests/unit/saasgateway/cache/test_cache_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Tests for the per-session backend data cache.
"""

# Standard
from unittest.mock import AsyncMock, patch

# Third-Party
import pytest

# First-Party
from saasgateway.cache.cache_service import CacheService


def test_set_and_get():
    cache = CacheService(enabled=True, ttl=60, max_size=10)
    cache.set("suites", [1, 2])
    assert cache.get("suites") == [1, 2]


def test_disabled_cache_is_always_empty():
    cache = CacheService(enabled=False)
    cache.set("suites", [1])
    assert cache.is_enabled() is False
    assert cache.get("suites") is None


def test_entries_expire():
    cache = CacheService(enabled=True, ttl=10, max_size=10)
    with patch("saasgateway.cache.cache_service.time.monotonic", return_value=1000.0):
        cache.set("k", "v")
    with patch("saasgateway.cache.cache_service.time.monotonic", return_value=1011.0):
        assert cache.get("k") is None


def test_per_entry_ttl_overrides_default():
    cache = CacheService(enabled=True, ttl=10, max_size=10)
    with patch("saasgateway.cache.cache_service.time.monotonic", return_value=1000.0):
        cache.set("k", "v", ttl=100)
    with patch("saasgateway.cache.cache_service.time.monotonic", return_value=1050.0):
        assert cache.get("k") == "v"


def test_least_recently_used_entry_is_evicted():
    cache = CacheService(enabled=True, ttl=60, max_size=2)
    with patch("saasgateway.cache.cache_service.time.monotonic", return_value=1.0):
        cache.set("a", 1)
    with patch("saasgateway.cache.cache_service.time.monotonic", return_value=2.0):
        cache.set("b", 2)
    with patch("saasgateway.cache.cache_service.time.monotonic", return_value=3.0):
        cache.get("a")
    with patch("saasgateway.cache.cache_service.time.monotonic", return_value=4.0):
        cache.set("c", 3)
        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3


def test_delete_and_clear():
    cache = CacheService(enabled=True, ttl=60, max_size=10)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.delete("a")
    cache.delete("missing")
    assert cache.get("a") is None
    cache.clear()
    assert cache.get("b") is None


@pytest.mark.asyncio
async def test_get_or_load_calls_loader_once():
    cache = CacheService(enabled=True, ttl=60, max_size=10)
    loader = AsyncMock(return_value={"results": []})

    assert await cache.get_or_load("users", loader) == {"results": []}
    assert await cache.get_or_load("users", loader) == {"results": []}
    loader.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_or_load_without_caching_always_loads():
    cache = CacheService(enabled=False)
    loader = AsyncMock(return_value=[1])

    await cache.get_or_load("users", loader)
    await cache.get_or_load("users", loader)
    assert loader.await_count == 2
