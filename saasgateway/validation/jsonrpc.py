# -*- coding: utf-8 -*-
"""Location: ./saasgateway/validation/jsonrpc.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

JSON-RPC helpers for the HTTP transports.
The gateway answers routing failures (unknown session, protocol mismatch,
unparseable body) itself, before the MCP SDK sees the request, so it needs to
build JSON-RPC 2.0 error objects and classify raw request bodies.

Includes:
- JSONRPCError and its wire form
- Standard error codes
- Lenient body parsing (garbage becomes ``None``)
- Initialize request detection

Examples:
    >>> from saasgateway.validation.jsonrpc import JSONRPCError, SERVER_ERROR_START
    >>> error = JSONRPCError(SERVER_ERROR_START, "Bad Request: Invalid request")
    >>> error.to_dict()
    {'jsonrpc': '2.0', 'error': {'code': -32000, 'message': 'Bad Request: Invalid request'}, 'id': None}
"""

# Standard
import json
from typing import Any, Dict, Optional, Union


class JSONRPCError(Exception):
    """JSON-RPC protocol error."""

    def __init__(
        self,
        code: int,
        message: str,
        data: Optional[Any] = None,
        request_id: Optional[Union[str, int]] = None,
    ):
        """Initialize JSON-RPC error.

        Args:
            code: Error code
            message: Error message
            data: Optional error data
            request_id: Optional request ID
        """
        self.code = code
        self.message = message
        self.data = data
        self.request_id = request_id
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to JSON-RPC error response dict.

        Returns:
            Error response dictionary

        Examples:
            >>> JSONRPCError(-32602, "Invalid params", data={"param": "x"}, request_id=7).to_dict()
            {'jsonrpc': '2.0', 'error': {'code': -32602, 'message': 'Invalid params', 'data': {'param': 'x'}}, 'id': 7}
        """
        error = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data

        return {"jsonrpc": "2.0", "error": error, "id": self.request_id}


# Standard JSON-RPC error codes
PARSE_ERROR = -32700  # Invalid JSON
INVALID_REQUEST = -32600  # Invalid Request object
METHOD_NOT_FOUND = -32601  # Method not found
INVALID_PARAMS = -32602  # Invalid method parameters
INTERNAL_ERROR = -32603  # Internal JSON-RPC error
SERVER_ERROR_START = -32000  # Start of server error codes
SERVER_ERROR_END = -32099  # End of server error codes


def parse_json_body(raw: bytes) -> Optional[Any]:
    """Decode a request body, mapping anything unparseable to ``None``.

    Args:
        raw: Raw request body

    Returns:
        The decoded JSON value, or None for empty or malformed bodies

    Examples:
        >>> parse_json_body(b'{"jsonrpc": "2.0", "method": "ping", "id": 1}')
        {'jsonrpc': '2.0', 'method': 'ping', 'id': 1}
        >>> parse_json_body(b'{not json') is None
        True
        >>> parse_json_body(b'') is None
        True
        >>> parse_json_body(b'\\xff\\xfe') is None
        True
    """
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def is_initialize_request(body: Any) -> bool:
    """Check whether a decoded body is (or contains) an ``initialize`` request.

    Args:
        body: Decoded JSON body, a single message or a batch

    Returns:
        bool: True for an initialize request

    Examples:
        >>> is_initialize_request({"jsonrpc": "2.0", "method": "initialize", "id": 1, "params": {}})
        True
        >>> is_initialize_request([{"jsonrpc": "2.0", "method": "initialize", "id": 1}])
        True
        >>> is_initialize_request({"jsonrpc": "2.0", "method": "tools/list", "id": 2})
        False
        >>> is_initialize_request({"jsonrpc": "2.0", "method": "initialize"})  # notification, no id
        False
        >>> is_initialize_request(None)
        False
    """
    if isinstance(body, list):
        return any(is_initialize_request(item) for item in body)
    return isinstance(body, dict) and body.get("method") == "initialize" and "id" in body


def get_initialize_params(body: Any) -> Dict[str, Any]:
    """Extract the params of the initialize request in a body.

    Args:
        body: Decoded JSON body, a single message or a batch

    Returns:
        Dict[str, Any]: The initialize params, empty when absent

    Examples:
        >>> get_initialize_params({"method": "initialize", "id": 1, "params": {"capabilities": {"sampling": {}}}})
        {'capabilities': {'sampling': {}}}
        >>> get_initialize_params([{"method": "ping", "id": 1}])
        {}
    """
    messages = body if isinstance(body, list) else [body]
    for message in messages:
        if is_initialize_request(message):
            params = message.get("params")
            return params if isinstance(params, dict) else {}
    return {}
