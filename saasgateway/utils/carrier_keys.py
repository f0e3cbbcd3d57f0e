# -*- coding: utf-8 -*-
"""Location: ./saasgateway/utils/carrier_keys.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Configuration carrier key names.
A backend's configuration fields reach the gateway either as environment
variables (stdio) or as HTTP request headers. Both names are derived here from
the backend's config prefix and the snake_case field name. The header reader,
the CORS accept-list and the help text all call these functions, so the name a
deployment advertises is always the name it reads.

Examples:
    >>> to_header_name("Bugsnag", "project_api_key")
    'Bugsnag-Project-Api-Key'
    >>> to_env_var_name("Bugsnag", "project_api_key")
    'BUGSNAG_PROJECT_API_KEY'
"""

# Standard
import re

FIELD_NAME_RE = re.compile(r"^[a-z][a-z0-9]*(?:_[a-z0-9]+)*$")


def is_valid_field_name(field_name: str) -> bool:
    """Check that a configuration field name is a snake_case ASCII identifier.

    Args:
        field_name: Field name to check

    Returns:
        bool: True when the name can be mapped onto a carrier key

    Examples:
        >>> is_valid_field_name("api_token")
        True
        >>> is_valid_field_name("apiToken")
        False
        >>> is_valid_field_name("_token")
        False
        >>> is_valid_field_name("token__id")
        False
    """
    return bool(FIELD_NAME_RE.match(field_name))


def to_header_name(config_prefix: str, field_name: str) -> str:
    """Derive the HTTP header carrying ``field_name`` for a backend.

    Each ``_``-separated segment gets an upper-case first character and a
    lower-cased remainder; segments are joined with ``-`` and prefixed with
    ``config_prefix``.

    Args:
        config_prefix: Backend configuration prefix, used verbatim
        field_name: snake_case field name

    Returns:
        str: Header name

    Examples:
        >>> to_header_name("Reflect", "api_token")
        'Reflect-Api-Token'
        >>> to_header_name("AlertSite", "username")
        'AlertSite-Username'
        >>> to_header_name("Reflect", "api_token") == to_header_name("Reflect", "api_token")
        True
    """
    segments = [segment[:1].upper() + segment[1:].lower() for segment in field_name.split("_")]
    return f"{config_prefix}-{'-'.join(segments)}"


def to_env_var_name(config_prefix: str, field_name: str) -> str:
    """Derive the environment variable carrying ``field_name`` for a backend.

    Args:
        config_prefix: Backend configuration prefix
        field_name: snake_case field name

    Returns:
        str: Environment variable name

    Examples:
        >>> to_env_var_name("Reflect", "api_token")
        'REFLECT_API_TOKEN'
        >>> to_env_var_name("AlertSite", "base_url")
        'ALERTSITE_BASE_URL'
    """
    return f"{config_prefix}_{field_name}".upper()
