# -*- coding: utf-8 -*-
"""Location: ./saasgateway/clients/alertsite.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

AlertSite Backend.
Exposes AlertSite user management as MCP tools and a ``user`` resource template.

Configuration:
- ``AlertSite-Username`` / ``ALERTSITE_USERNAME`` (required)
- ``AlertSite-Password`` / ``ALERTSITE_PASSWORD`` (required)
- ``AlertSite-Base-Url`` / ``ALERTSITE_BASE_URL`` (optional, checked against
  MCP_ALLOWED_ENDPOINTS)

The client exchanges the username and password for a bearer token at
``/api/v3/access-tokens``. Tokens are reused until five minutes before they
expire; a 401 from the API drops the token and the call is repeated once.

Lookups by email scan the user directory, which is kept in the session cache.
"Get All Users" refreshes it and creating, modifying or deleting a user drops it.

Examples:
    >>> AlertSiteClient.field_names()
    ['username', 'password', 'base_url']
    >>> [field.name for field in AlertSiteClient.config_schema if field.url]
    ['base_url']
"""

# Standard
from datetime import datetime, timezone
import json
import time
from typing import Any, Dict, List, Optional, TYPE_CHECKING
from urllib.parse import quote

# Third-Party
import httpx

# First-Party
from saasgateway.cache.cache_service import CacheService
from saasgateway.clients.base import Client, ConfigField, GetInput, RegisterResource, RegisterTool, ToolError, ToolParams
from saasgateway.config import settings
from saasgateway.services.logging_service import logging_service
from saasgateway.utils.polyfills import is_elicitation_polyfill_result
from saasgateway.utils.retry_manager import ResilientHttpClient

if TYPE_CHECKING:
    # First-Party
    from saasgateway.server import GatewayServer

logger = logging_service.get_logger(__name__)

DEFAULT_BASE_URL = "https://alert-api.dev.aws.alertsite.com"
TOKEN_PATH = "/api/v3/access-tokens"
USERS_PATH = "/api/v3/users"
USERS_CACHE_KEY = "alertsite:users"
TOKEN_EXPIRY_BUFFER = 300

EMAIL_SCHEMA = {"type": "string", "format": "email"}
ROLES_HINT = "e.g. CO-ADMIN, POWER-USER, READONLY, REPORTONLY"


def format_response(message: str, data: Any = None) -> str:
    """Format a tool response as a message optionally followed by pretty JSON.

    Args:
        message: Leading message
        data: Optional data appended as indented JSON

    Returns:
        str: Response text

    Examples:
        >>> format_response("User deleted.")
        'User deleted.'
        >>> print(format_response("All users:", {"results": []}))
        All users:
        {
          "results": []
        }
    """
    if data is None:
        return message
    return f"{message}\n{json.dumps(data, indent=2)}"


class AlertSiteClient(Client):
    """AlertSite monitoring backend."""

    name = "AlertSite"
    tool_prefix = "alertsite"
    config_prefix = "AlertSite"
    config_schema = (
        ConfigField("username", description="AlertSite username for authentication"),
        ConfigField("password", description="AlertSite password for authentication"),
        ConfigField("base_url", required=False, description=f"AlertSite API base URL (default {DEFAULT_BASE_URL})", url=True),
    )

    def __init__(self, http_client: Optional[ResilientHttpClient] = None):
        """Initialize an unconfigured client.

        Args:
            http_client: HTTP client to use; one is created by ``configure`` otherwise
        """
        self._http = http_client
        self.base_url = DEFAULT_BASE_URL
        self._username: Optional[str] = None
        self._password: Optional[str] = None
        self._access_token: Optional[str] = None
        self._token_expiry = 0.0
        self._cache: Optional[CacheService] = None

    async def configure(self, server: "GatewayServer", config: Dict[str, Optional[str]]) -> bool:
        if not config.get("username") or not config.get("password"):
            return False
        self._username = config["username"]
        self._password = config["password"]
        self.base_url = (config.get("base_url") or DEFAULT_BASE_URL).rstrip("/")
        self._cache = server.get_cache()
        if self._http is None:
            self._http = ResilientHttpClient(client_args={"timeout": settings.backend_timeout})
        return True

    def is_configured(self) -> bool:
        return bool(self._username and self._password)

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()

    async def get_token(self) -> str:
        """Return a valid access token, requesting a new one when needed.

        Returns:
            str: Bearer token

        Raises:
            ToolError: If the client is not configured or the token request fails
        """
        if self._http is None or not self.is_configured():
            raise ToolError("AlertSite client not configured")

        now = time.time()
        if self._access_token and self._token_expiry > now + TOKEN_EXPIRY_BUFFER:
            return self._access_token

        response = await self._http.post(
            f"{self.base_url}{TOKEN_PATH}",
            json={"username": self._username, "password": self._password},
            headers={"Content-Type": "application/json"},
        )
        if not response.is_success:
            raise ToolError(f"AlertSite token request failed: {response.status_code} - {response.text}")

        token_data = response.json()
        self._access_token = token_data["access_token"]
        self._token_expiry = now + float(token_data.get("expires_in", 0))
        logger.debug("Obtained AlertSite access token")
        return self._access_token

    async def call(self, endpoint: str, method: str = "GET", body: Optional[Dict[str, Any]] = None) -> Any:
        """Make an authenticated call to the AlertSite API.

        Args:
            endpoint: Path relative to the base URL
            method: HTTP method
            body: JSON body for POST, PUT and PATCH

        Returns:
            Any: Decoded JSON body, or None for 204 responses

        Raises:
            ToolError: If the API answers with an error, including after a token refresh
        """
        url = f"{self.base_url}{endpoint}"
        kwargs: Dict[str, Any] = {}
        if body is not None and method in ("POST", "PUT", "PATCH"):
            kwargs["json"] = body

        response = await self._send(method, url, **kwargs)
        if response.status_code == 401:
            self._access_token = None
            self._token_expiry = 0.0
            response = await self._send(method, url, **kwargs)
            if not response.is_success:
                raise ToolError(f"AlertSite API call failed after token refresh: {response.status_code} - {response.text}")
        elif not response.is_success:
            raise ToolError(f"AlertSite API call failed: {response.status_code} - {response.text}")

        if response.status_code == 204:
            return None
        return response.json()

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        token = await self.get_token()
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        return await self._http.request(method, url, headers=headers, **kwargs)

    async def list_users(self) -> Dict[str, Any]:
        """Fetch the user directory and refresh the cached copy.

        Returns:
            Dict[str, Any]: AlertSite users response
        """
        users = await self.call(USERS_PATH) or {}
        if self._cache is not None:
            self._cache.set(USERS_CACHE_KEY, users)
        return users

    async def _user_directory(self) -> Dict[str, Any]:
        if self._cache is None:
            return await self.list_users()
        return await self._cache.get_or_load(USERS_CACHE_KEY, lambda: self.call(USERS_PATH))

    def _forget_users(self) -> None:
        if self._cache is not None:
            self._cache.delete(USERS_CACHE_KEY)

    async def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Find a user by email address, case-insensitively.

        Args:
            email: Email address

        Returns:
            Optional[Dict[str, Any]]: The user, or None
        """
        users: List[Dict[str, Any]] = ((await self._user_directory()) or {}).get("results") or []
        return next((user for user in users if str(user.get("email", "")).lower() == email.lower()), None)

    async def get_user_details(self, email: str) -> Optional[Dict[str, Any]]:
        user = await self.find_user_by_email(email)
        if user is None:
            return None
        return await self.call(f"{USERS_PATH}/{quote(str(user['guid']), safe='')}")

    def register_tools(self, register: RegisterTool, get_input: GetInput) -> None:
        """Register the AlertSite user tools.

        Args:
            register: Tool registration callback
            get_input: Asks the end user to confirm destructive operations
        """

        async def create_user(args: Dict[str, Any]) -> str:
            user_data = {
                "date_joined": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
                "email": args.get("email"),
                "first_name": args.get("first_name"),
                "last_name": args.get("last_name"),
                "password": args.get("password"),
                "role": args.get("role"),
                "work_phone": args.get("work_phone"),
            }
            result = await self.call(USERS_PATH, "POST", user_data)
            self._forget_users()
            return format_response("User created successfully:", result)

        async def get_all_users(args: Dict[str, Any]) -> str:
            return format_response("All users:", await self.list_users())

        async def get_user_details(args: Dict[str, Any]) -> str:
            email = args.get("email") or ""
            details = await self.get_user_details(email)
            if details is None:
                return format_response(f"User with email {email} not found.")
            return format_response("User details:", details)

        async def modify_user(args: Dict[str, Any]) -> str:
            email = args.get("email") or ""
            user = await self.find_user_by_email(email)
            if user is None:
                return format_response(f"User with email {email} not found.")

            if args.get("password") is not None:
                if args.get("confirm_password") is None:
                    return format_response("Confirm password is required when setting a new password.")
                if args["password"] != args["confirm_password"]:
                    return format_response("Password and confirm password do not match.")

            fields = ("first_name", "last_name", "role", "work_phone", "home_phone", "password")
            update = {field: args[field] for field in fields if args.get(field) is not None}
            if not update:
                return format_response("No fields provided to update.")

            result = await self.call(f"{USERS_PATH}/{quote(str(user['guid']), safe='')}", "PATCH", update)
            self._forget_users()
            return format_response(f"User {email} updated successfully:", result)

        async def delete_user(args: Dict[str, Any]) -> Any:
            email = args.get("email") or ""
            user = await self.find_user_by_email(email)
            if user is None:
                return format_response(f"User with email {email} not found.")

            if args.get("confirm") is not True:
                answer = await get_input(
                    f"Delete AlertSite user {email}? This cannot be undone.",
                    {
                        "type": "object",
                        "properties": {"confirm": {"type": "boolean", "description": "Confirm deletion of the user"}},
                        "required": ["confirm"],
                    },
                )
                if is_elicitation_polyfill_result(answer):
                    return answer
                if answer.get("action") != "accept" or not answer.get("content", {}).get("confirm"):
                    return format_response(f"Deletion of user {email} cancelled.")

            await self.call(f"{USERS_PATH}/{quote(str(user['guid']), safe='')}", "DELETE")
            self._forget_users()
            return format_response(f"User {email} deleted successfully.")

        register(
            ToolParams(
                title="Create or Add User",
                summary="Creates a new user in AlertSite with the specified details.",
                input_schema={
                    "properties": {
                        "email": {**EMAIL_SCHEMA, "description": "Email address of the user"},
                        "first_name": {"type": "string", "description": "First name of the user"},
                        "last_name": {"type": "string", "description": "Last name of the user"},
                        "password": {"type": "string", "minLength": 8, "description": "Password for the user"},
                        "role": {"type": "string", "description": f"Role to assign to the user ({ROLES_HINT})"},
                        "work_phone": {"type": "string", "description": "Work phone number of the user"},
                    },
                    "required": ["email", "first_name", "last_name", "password", "role", "work_phone"],
                },
                read_only=False,
                idempotent=False,
            ),
            create_user,
        )
        register(ToolParams(title="Get All Users", summary="Gets all users from AlertSite with their details."), get_all_users)
        register(
            ToolParams(
                title="Get User Details",
                summary="Gets detailed information about a user from AlertSite by email address.",
                input_schema={
                    "properties": {"email": {**EMAIL_SCHEMA, "description": "Email address of the user to get details for"}},
                    "required": ["email"],
                },
            ),
            get_user_details,
        )
        register(
            ToolParams(
                title="Modify User",
                summary="Modifies an existing user's details in AlertSite by email address.",
                input_schema={
                    "properties": {
                        "email": {**EMAIL_SCHEMA, "description": "Email address of the user to modify"},
                        "first_name": {"type": "string", "description": "New first name for the user"},
                        "last_name": {"type": "string", "description": "New last name for the user"},
                        "role": {"type": "string", "description": f"New role for the user ({ROLES_HINT})"},
                        "work_phone": {"type": "string", "description": "New work phone number for the user"},
                        "home_phone": {"type": "string", "description": "New home phone number for the user"},
                        "password": {"type": "string", "minLength": 8, "description": "New password for the user (minimum 8 characters)"},
                        "confirm_password": {"type": "string", "minLength": 8, "description": "Confirm new password - must match the password field"},
                    },
                    "required": ["email"],
                },
                read_only=False,
            ),
            modify_user,
        )
        register(
            ToolParams(
                title="Delete User",
                summary="Deletes an existing user from AlertSite by email address.",
                input_schema={
                    "properties": {
                        "email": {**EMAIL_SCHEMA, "description": "Email address of the user to delete"},
                        "confirm": {"type": "boolean", "description": "Set to true once the end user has confirmed the deletion"},
                    },
                    "required": ["email"],
                },
                hints=["The end user is asked to confirm the deletion unless confirm is true"],
                read_only=False,
                destructive=True,
            ),
            delete_user,
        )

    def register_resources(self, register: RegisterResource) -> None:
        """Register the ``alertsite://user/{email}`` resource template.

        Args:
            register: Resource registration callback
        """

        async def read_user(uri: str, variables: Dict[str, str]) -> Dict[str, Any]:
            email = variables["email"]
            details = await self.get_user_details(email)
            if details is None:
                raise ToolError(f"User with email {email} not found")
            return details

        register("user", "{email}", read_user)
