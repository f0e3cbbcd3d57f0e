# -*- coding: utf-8 -*-
"""Location: ./saasgateway/clients/reflect.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Reflect Backend.
Exposes the Reflect test automation API (suites, suite executions, tests and
test executions) as MCP tools. Configured with a single API token:

- header: ``Reflect-Api-Token``
- environment variable: ``REFLECT_API_TOKEN``

Examples:
    >>> ReflectClient.field_names()
    ['api_token']
    >>> ReflectClient().is_configured()
    False
"""

# Standard
import json
from typing import Any, Dict, List, Optional, TYPE_CHECKING
from urllib.parse import quote

# First-Party
from saasgateway import __version__
from saasgateway.clients.base import Client, ConfigField, GetInput, RegisterTool, ToolError, ToolParameter, ToolParams
from saasgateway.config import settings
from saasgateway.services.logging_service import logging_service
from saasgateway.utils.retry_manager import ResilientHttpClient

if TYPE_CHECKING:
    # First-Party
    from saasgateway.server import GatewayServer

logger = logging_service.get_logger(__name__)

BASE_URL = "https://api.reflect.run/v1"


def _id_parameter(name: str, description: str) -> ToolParameter:
    return ToolParameter(name=name, description=description, required=True)


def _segment(value: Any) -> str:
    """Quote an id for use as one URL path segment.

    Examples:
        >>> _segment("../admin")
        '..%2Fadmin'
        >>> _segment("abc-123")
        'abc-123'
    """
    return quote(str(value), safe="")


def _require(args: Dict[str, Any], *names: str) -> List[str]:
    """Return the values of required string arguments.

    Args:
        args: Tool arguments
        *names: Required argument names

    Returns:
        List[str]: Values in the order requested

    Raises:
        ToolError: If any argument is missing or empty

    Examples:
        >>> _require({"suiteId": "s1", "executionId": "e1"}, "suiteId", "executionId")
        ['s1', 'e1']
        >>> try:
        ...     _require({"suiteId": ""}, "suiteId")
        ... except ToolError as e:
        ...     print(e)
        suiteId argument is required
    """
    missing = [name for name in names if not args.get(name)]
    if len(missing) == 1:
        raise ToolError(f"{missing[0]} argument is required")
    if missing:
        raise ToolError(f"{' and '.join(missing)} arguments are required")
    return [str(args[name]) for name in names]


class ReflectClient(Client):
    """Reflect test automation backend."""

    name = "Reflect"
    tool_prefix = "reflect"
    config_prefix = "Reflect"
    config_schema = (ConfigField("api_token", description="Reflect API authentication token"),)

    def __init__(self, http_client: Optional[ResilientHttpClient] = None):
        """Initialize an unconfigured client.

        Args:
            http_client: HTTP client to use; one is created by ``configure`` otherwise
        """
        self._http = http_client
        self._headers: Dict[str, str] = {}

    async def configure(self, server: "GatewayServer", config: Dict[str, Optional[str]]) -> bool:
        self._headers = {
            "X-API-KEY": config["api_token"] or "",
            "Content-Type": "application/json",
            "User-Agent": f"{settings.app_name}/{__version__}",
        }
        if self._http is None:
            self._http = ResilientHttpClient(client_args={"timeout": settings.backend_timeout})
        return True

    def is_configured(self) -> bool:
        return bool(self._headers.get("X-API-KEY"))

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()

    async def _call(self, method: str, path: str) -> Any:
        """Call the Reflect API.

        Args:
            method: HTTP method
            path: Path relative to the API base URL

        Returns:
            Any: Decoded JSON body

        Raises:
            ToolError: If the client is not configured or the API answers with an error
        """
        if self._http is None or not self.is_configured():
            raise ToolError("Reflect client not configured")

        response = await self._http.request(method, f"{BASE_URL}{path}", headers=self._headers)
        if not response.is_success:
            raise ToolError(f"Reflect API request failed: {response.status_code} - {response.text}")
        return response.json()

    async def list_suites(self) -> Any:
        return await self._call("GET", "/suites")

    async def list_suite_executions(self, suite_id: str) -> Any:
        return await self._call("GET", f"/suites/{_segment(suite_id)}/executions")

    async def get_suite_execution_status(self, suite_id: str, execution_id: str) -> Any:
        return await self._call("GET", f"/suites/{_segment(suite_id)}/executions/{_segment(execution_id)}")

    async def execute_suite(self, suite_id: str) -> Any:
        return await self._call("POST", f"/suites/{_segment(suite_id)}/executions")

    async def cancel_suite_execution(self, suite_id: str, execution_id: str) -> Any:
        return await self._call("PATCH", f"/suites/{_segment(suite_id)}/executions/{_segment(execution_id)}/cancel")

    async def list_tests(self) -> Any:
        return await self._call("GET", "/tests")

    async def run_test(self, test_id: str) -> Any:
        return await self._call("POST", f"/tests/{_segment(test_id)}/executions")

    async def get_test_status(self, execution_id: str) -> Any:
        # Test executions are addressed by execution id alone
        return await self._call("GET", f"/executions/{_segment(execution_id)}")

    def register_tools(self, register: RegisterTool, get_input: GetInput) -> None:
        """Register the Reflect tools.

        Args:
            register: Tool registration callback
            get_input: Unused; Reflect tools never ask the user for input
        """

        async def list_suites(args: Dict[str, Any]) -> str:
            return json.dumps(await self.list_suites())

        async def list_suite_executions(args: Dict[str, Any]) -> str:
            (suite_id,) = _require(args, "suiteId")
            return json.dumps(await self.list_suite_executions(suite_id))

        async def get_suite_execution_status(args: Dict[str, Any]) -> str:
            suite_id, execution_id = _require(args, "suiteId", "executionId")
            return json.dumps(await self.get_suite_execution_status(suite_id, execution_id))

        async def execute_suite(args: Dict[str, Any]) -> str:
            (suite_id,) = _require(args, "suiteId")
            return json.dumps(await self.execute_suite(suite_id))

        async def cancel_suite_execution(args: Dict[str, Any]) -> str:
            suite_id, execution_id = _require(args, "suiteId", "executionId")
            return json.dumps(await self.cancel_suite_execution(suite_id, execution_id))

        async def list_tests(args: Dict[str, Any]) -> str:
            return json.dumps(await self.list_tests())

        async def run_test(args: Dict[str, Any]) -> str:
            (test_id,) = _require(args, "testId")
            return json.dumps(await self.run_test(test_id))

        async def get_test_status(args: Dict[str, Any]) -> str:
            _, execution_id = _require(args, "testId", "executionId")
            return json.dumps(await self.get_test_status(execution_id))

        register(ToolParams(title="List Suites", summary="Retrieve a list of all reflect suites available"), list_suites)
        register(
            ToolParams(
                title="List Suite Executions",
                summary="List all executions for a given suite",
                parameters=[_id_parameter("suiteId", "ID of the reflect suite to list executions for")],
            ),
            list_suite_executions,
        )
        register(
            ToolParams(
                title="Get Suite Execution Status",
                summary="Get the status of a reflect suite execution",
                parameters=[
                    _id_parameter("suiteId", "ID of the reflect suite to get execution status for"),
                    _id_parameter("executionId", "ID of the reflect suite execution to get status for"),
                ],
            ),
            get_suite_execution_status,
        )
        register(
            ToolParams(
                title="Execute Suite",
                summary="Execute a reflect suite",
                parameters=[_id_parameter("suiteId", "ID of the reflect suite to execute")],
                read_only=False,
                idempotent=False,
            ),
            execute_suite,
        )
        register(
            ToolParams(
                title="Cancel Suite Execution",
                summary="Cancel a reflect suite execution",
                parameters=[
                    _id_parameter("suiteId", "ID of the reflect suite to cancel execution for"),
                    _id_parameter("executionId", "ID of the reflect suite execution to cancel"),
                ],
                read_only=False,
                destructive=True,
            ),
            cancel_suite_execution,
        )
        register(ToolParams(title="List Tests", summary="List all reflect tests"), list_tests)
        register(
            ToolParams(
                title="Run Test",
                summary="Run a reflect test",
                parameters=[_id_parameter("testId", "ID of the reflect test to run")],
                read_only=False,
                idempotent=False,
            ),
            run_test,
        )
        register(
            ToolParams(
                title="Get Test Status",
                summary="Get the status of a reflect test execution",
                parameters=[
                    _id_parameter("testId", "ID of the reflect test"),
                    _id_parameter("executionId", "ID of the reflect test execution to get status for"),
                ],
            ),
            get_test_status,
        )
