# -*- coding: utf-8 -*-
"""

Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Shared fixtures: fake backends and registries built from them.
"""

# Standard
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

# Third-Party
import pytest

# First-Party
from saasgateway.clients.base import Client, ConfigField, ToolParameter, ToolParams
from saasgateway.registry import ClientRegistry


class FakeClient(Client):
    """Backend recording its configuration; registers one echo tool."""

    instances: List["FakeClient"] = []
    configure_result = True

    def __init__(self):
        self.config: Optional[Dict[str, Any]] = None
        self.closed = False
        type(self).instances.append(self)

    async def configure(self, server, config):
        self.config = dict(config)
        return type(self).configure_result

    def is_configured(self):
        return self.config is not None

    def register_tools(self, register, get_input):
        async def echo(args):
            return f"{self.name}:{args.get('text', '')}"

        register(
            ToolParams(
                title="Echo",
                summary=f"Echo text back from {self.name}",
                parameters=[ToolParameter(name="text", description="Text to echo", required=True)],
            ),
            echo,
        )

    async def aclose(self):
        self.closed = True


class AlphaClient(FakeClient):
    name = "Alpha"
    tool_prefix = "alpha"
    config_prefix = "Alpha"
    config_schema = (ConfigField("token", description="Alpha token"),)
    instances: List[FakeClient] = []


class BetaClient(FakeClient):
    name = "Beta"
    tool_prefix = "beta"
    config_prefix = "Beta"
    config_schema = (
        ConfigField("api_key", description="Beta API key"),
        ConfigField("base_url", required=False, description="Beta base URL", url=True),
    )
    instances: List[FakeClient] = []


@pytest.fixture(autouse=True)
def _reset_fake_clients():
    """Forget instances created by previous tests."""
    AlphaClient.instances = []
    BetaClient.instances = []
    yield


@pytest.fixture
def alpha_cls():
    return AlphaClient


@pytest.fixture
def beta_cls():
    return BetaClient


@pytest.fixture
def registry():
    """Registry exposing the Alpha and Beta fakes."""
    reg = ClientRegistry()
    reg.register(AlphaClient)
    reg.register(BetaClient)
    return reg


@pytest.fixture
def mock_http_client():
    """Create a mock resilient HTTP client."""
    mock = AsyncMock()
    mock.aclose = AsyncMock()
    return mock
