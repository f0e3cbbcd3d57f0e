# -*- coding: utf-8 -*-
"""Location: ./saasgateway/utils/polyfills.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Sampling and elicitation fallbacks.
Tools may ask the connected client to run an LLM prompt (sampling) or to ask the
end user for input (elicitation). Not every client supports these. When the
session has not negotiated the capability, or the request fails, the helpers
return a structured result telling the host application to do the work itself
and call the tool again.

Examples:
    >>> is_sampling_polyfill_result(sampling_polyfill_result("Summarize"))
    True
    >>> is_elicitation_polyfill_result({"action": "accept", "content": {}})
    False
"""

# Standard
from typing import Any, Dict, TYPE_CHECKING, Union

# Third-Party
from mcp import types

# First-Party
from saasgateway.clients.base import ToolError
from saasgateway.services.logging_service import logging_service

if TYPE_CHECKING:
    # First-Party
    from saasgateway.server import GatewayServer

logger = logging_service.get_logger(__name__)

SAMPLING_INSTRUCTIONS = (
    "Please execute the above prompt using your AI capabilities and re-request this tool with the result. "
    "Include the prompt result in your next request to continue the operation."
)
ELICITATION_INSTRUCTIONS = (
    "Please collect the requested input from the user and re-request this tool with the collected values. "
    "Include the input results in your next request to continue the operation."
)


def sampling_polyfill_result(prompt: str) -> Dict[str, Any]:
    """Build the result returned instead of a sampling response.

    Args:
        prompt: Prompt the host should execute

    Returns:
        Dict[str, Any]: Polyfill result

    Examples:
        >>> sampling_polyfill_result("Hi")["requiresPromptExecution"]
        True
    """
    return {"requiresPromptExecution": True, "prompt": prompt, "instructions": SAMPLING_INSTRUCTIONS}


def elicitation_polyfill_result(message: str, requested_schema: Dict[str, Any]) -> Dict[str, Any]:
    """Build the result returned instead of an elicitation response.

    Args:
        message: Question for the end user
        requested_schema: JSON schema of the expected answer

    Returns:
        Dict[str, Any]: Polyfill result

    Examples:
        >>> result = elicitation_polyfill_result("Confirm?", {"type": "object", "properties": {}})
        >>> result["requiresInputCollection"], result["inputRequest"]["message"]
        (True, 'Confirm?')
    """
    return {
        "requiresInputCollection": True,
        "inputRequest": {"message": message, "requestedSchema": requested_schema},
        "instructions": ELICITATION_INSTRUCTIONS,
    }


def is_sampling_polyfill_result(value: Any) -> bool:
    """Return True for a sampling polyfill result."""
    return isinstance(value, dict) and value.get("requiresPromptExecution") is True


def is_elicitation_polyfill_result(value: Any) -> bool:
    """Return True for an elicitation polyfill result."""
    return isinstance(value, dict) and value.get("requiresInputCollection") is True


async def execute_sampling_or_polyfill(server: "GatewayServer", prompt: str, max_tokens: int = 1000) -> Union[str, Dict[str, Any]]:
    """Ask the client to run ``prompt``, or return a polyfill result.

    Must be called while a request is being handled (i.e. from a tool handler).

    Args:
        server: Session server
        prompt: Prompt to execute
        max_tokens: Maximum tokens for the response

    Returns:
        The sampled text, or a polyfill result

    Raises:
        ToolError: If the client answered with non-text content
    """
    if not server.is_sampling_supported():
        return sampling_polyfill_result(prompt)

    try:
        response = await server.current_session().create_message(
            messages=[types.SamplingMessage(role="user", content=types.TextContent(type="text", text=prompt))],
            max_tokens=max_tokens,
        )
    except Exception as e:
        logger.warning(f"Sampling request failed, falling back to polyfill: {e}")
        return sampling_polyfill_result(prompt)

    if response.content.type != "text":
        raise ToolError(f"Received unexpected response type from sampling: {response.content.type}")
    return response.content.text


async def execute_elicitation_or_polyfill(server: "GatewayServer", message: str, requested_schema: Dict[str, Any]) -> Dict[str, Any]:
    """Ask the end user for input, or return a polyfill result.

    Must be called while a request is being handled (i.e. from a tool handler).

    Args:
        server: Session server
        message: Question for the end user
        requested_schema: JSON schema of the expected answer

    Returns:
        ``{"action": ..., "content": {...}}`` from the client, or a polyfill result
    """
    if not server.is_elicitation_supported():
        return elicitation_polyfill_result(message, requested_schema)

    try:
        result = await server.current_session().elicit(message=message, requestedSchema=requested_schema)
    except Exception as e:
        logger.warning(f"Elicitation request failed, falling back to polyfill: {e}")
        return elicitation_polyfill_result(message, requested_schema)

    return {"action": result.action, "content": result.content or {}}
