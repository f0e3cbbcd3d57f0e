# -*- coding: utf-8 -*-
"""Location: ./saasgateway/utils/retry_manager.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Keval Mahajan

Resilient backend HTTP client.
Backends call their SaaS APIs through ``ResilientHttpClient``, an
``httpx.AsyncClient`` wrapper that retries transient failures with exponential
backoff and jitter, and honours ``Retry-After`` on HTTP 429, in seconds or as an HTTP-date,
never waiting longer than the maximum retry delay.

Retryable status codes: 408, 429, 502, 503, 504.
Non-retryable status codes: 400, 401, 403, 404, 405, 406 (returned immediately).
Connection timeouts, read timeouts and network errors are retried.

Examples:
    >>> from saasgateway.utils.retry_manager import RETRYABLE_STATUS_CODES, NON_RETRYABLE_STATUS_CODES
    >>> 429 in RETRYABLE_STATUS_CODES
    True
    >>> 401 in NON_RETRYABLE_STATUS_CODES
    True
    >>> len(RETRYABLE_STATUS_CODES & NON_RETRYABLE_STATUS_CODES)
    0
"""

# Standard
import asyncio
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
import random
from typing import Any, Dict, Optional

# Third-Party
import httpx

# First-Party
from saasgateway.config import settings
from saasgateway.services.logging_service import logging_service

logger = logging_service.get_logger(__name__)

RETRYABLE_STATUS_CODES = {
    429,  # Too Many Requests
    503,  # Service Unavailable
    502,  # Bad Gateway
    504,  # Gateway Timeout
    408,  # Request Timeout
}

NON_RETRYABLE_STATUS_CODES = {
    400,  # Bad Request
    401,  # Unauthorized
    403,  # Forbidden
    404,  # Not Found
    405,  # Method Not Allowed
    406,  # Not Acceptable
}


def retry_after_delay(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Seconds to wait according to a ``Retry-After`` header.

    Args:
        value: Header value, either delay-seconds or an HTTP-date
        now: Current time, for HTTP-date values; the system clock by default

    Returns:
        Optional[float]: Non-negative delay, or None when the header is missing or malformed

    Examples:
        >>> retry_after_delay("2")
        2.0
        >>> retry_after_delay("Wed, 21 Oct 2015 07:28:00 GMT", now=datetime(2015, 10, 21, 7, 27, 30, tzinfo=timezone.utc))
        30.0
        >>> retry_after_delay("Wed, 21 Oct 2015 07:28:00 GMT", now=datetime(2016, 1, 1, tzinfo=timezone.utc))
        0.0
        >>> retry_after_delay("soon") is None
        True
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - (now or datetime.now(timezone.utc))).total_seconds())


class ResilientHttpClient:
    """HTTP client with automatic retries for backend API calls.

    Delay before retry ``n`` (0-based) is ``base_backoff * 2**n`` plus up to
    ``jitter_max`` of that value, capped at ``max_delay``.

    Attributes:
        max_retries: Maximum number of attempts
        base_backoff: Base delay in seconds before the first retry
        max_delay: Maximum delay between retries in seconds
        jitter_max: Maximum jitter fraction (0-1)
        client_args: Arguments forwarded to httpx.AsyncClient
        client: The underlying httpx.AsyncClient instance

    Examples:
        >>> client = ResilientHttpClient(max_retries=5, base_backoff=2.0)
        >>> client.max_retries, client.base_backoff
        (5, 2.0)
        >>> isinstance(client.client, httpx.AsyncClient)
        True
        >>> ResilientHttpClient(client_args={"timeout": 10.0}).client_args
        {'timeout': 10.0}
    """

    def __init__(
        self,
        max_retries: int = settings.retry_max_attempts,
        base_backoff: float = settings.retry_base_delay,
        max_delay: float = settings.retry_max_delay,
        jitter_max: float = settings.retry_jitter_max,
        client_args: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the client.

        Args:
            max_retries: Maximum number of attempts before giving up
            base_backoff: Base delay in seconds before retrying a request
            max_delay: Maximum backoff delay in seconds
            jitter_max: Maximum jitter fraction (0-1) to add randomness
            client_args: Additional arguments to pass to httpx.AsyncClient
        """
        self.max_retries = max_retries
        self.base_backoff = base_backoff
        self.max_delay = max_delay
        self.jitter_max = jitter_max
        self.client_args = client_args or {}
        self.client = httpx.AsyncClient(**self.client_args)

    def _backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after the given 0-based attempt.

        Args:
            attempt: Number of the attempt that just failed, from 0

        Returns:
            float: Seconds to wait, never more than ``max_delay``

        Examples:
            >>> ResilientHttpClient(base_backoff=1.0, max_delay=5, jitter_max=0.0)._backoff_delay(1)
            2.0
            >>> ResilientHttpClient(base_backoff=1.0, max_delay=5, jitter_max=0.0)._backoff_delay(10)
            5
        """
        base = self.base_backoff * (2**attempt)
        # random.uniform() is safe here as jitter is only used for retry timing, not security
        return min(base + random.uniform(0, base * self.jitter_max), self.max_delay)  # nosec B311

    def _should_retry(self, exc: Optional[Exception], response: Optional[httpx.Response]) -> bool:
        """Decide whether a failed attempt is worth repeating.

        Args:
            exc: Exception raised during the attempt, if any
            response: Response received, if any

        Returns:
            True if the request should be retried

        Examples:
            >>> from unittest.mock import Mock
            >>> client = ResilientHttpClient()
            >>> client._should_retry(httpx.ReadTimeout("slow"), None)
            True
            >>> client._should_retry(None, Mock(status_code=401))
            False
            >>> client._should_retry(None, Mock(status_code=503))
            True
            >>> client._should_retry(None, Mock(status_code=418))
            False
        """
        if isinstance(exc, (httpx.ConnectTimeout, httpx.ReadTimeout, httpx.NetworkError)):
            return True
        if response is not None:
            if response.status_code in NON_RETRYABLE_STATUS_CODES:
                logger.info(f"Response {response.status_code}: Not retrying.")
                return False
            if response.status_code in RETRYABLE_STATUS_CODES:
                logger.info(f"Response {response.status_code}: Retrying.")
                return True
        return False

    def _response_delay(self, response: httpx.Response, attempt: int) -> float:
        if response.status_code == 429:
            delay = retry_after_delay(response.headers.get("Retry-After"))
            if delay is not None:
                logger.info(f"Rate-limited. Retrying after {min(delay, self.max_delay)}s.")
                return min(delay, self.max_delay)
        return self._backoff_delay(attempt)

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Make an HTTP request, retrying transient failures.

        No delay follows the final attempt.

        Args:
            method: HTTP method (GET, POST, PATCH, DELETE...)
            url: Target URL
            **kwargs: Additional parameters for httpx.AsyncClient.request

        Returns:
            The last response received

        Raises:
            Exception: The last network exception when every attempt failed, or any
                non-retryable exception immediately
        """
        response = None
        for attempt in range(self.max_retries):
            last = attempt == self.max_retries - 1
            try:
                logger.debug(f"Attempt {attempt + 1} to {method} {url}")
                response = await self.client.request(method, url, **kwargs)
            except Exception as exc:
                if last or not self._should_retry(exc, None):
                    raise
                logger.warning(f"Retrying due to error: {exc}")
                await asyncio.sleep(self._backoff_delay(attempt))
                continue

            if response.is_success or not self._should_retry(None, response):
                return response
            if not last:
                await asyncio.sleep(self._response_delay(response, attempt))

        logger.error(f"Max retries reached for {url}")
        return response

    async def post(self, url: str, **kwargs) -> httpx.Response:
        """Make a resilient POST request.

        Args:
            url: URL to send the POST request to
            **kwargs: Additional parameters to pass to the request

        Returns:
            HTTP response object
        """
        return await self.request("POST", url, **kwargs)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()
