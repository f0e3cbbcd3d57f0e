# -*- coding: utf-8 -*-
"""Location: ./tests/unit/saasgateway/utils/test_retry_manager.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Keval Mahajan

Tests for the resilient backend HTTP client.
"""

# Standard
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from unittest.mock import AsyncMock, patch

# Third-Party
import httpx
import pytest

# First-Party
from saasgateway.utils.retry_manager import NON_RETRYABLE_STATUS_CODES, ResilientHttpClient, retry_after_delay, RETRYABLE_STATUS_CODES

REFLECT_URL = "https://api.reflect.run/v1/suites"


@pytest.fixture
def client():
    return ResilientHttpClient(max_retries=3, base_backoff=1.0, max_delay=60, jitter_max=0.5)


@pytest.mark.asyncio
async def test_successful_request_no_retry(client):
    with patch.object(client.client, "request", new=AsyncMock(return_value=httpx.Response(200))) as mock_req:
        resp = await client.request("GET", REFLECT_URL)
    assert resp.status_code == 200
    assert mock_req.call_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", sorted(RETRYABLE_STATUS_CODES - {429}))
async def test_retry_on_retryable_status(client, status_code):
    with patch.object(client.client, "request", new=AsyncMock(return_value=httpx.Response(status_code))) as mock_req:
        with patch("asyncio.sleep", new=AsyncMock()):  # skip actual sleep
            resp = await client.request("GET", REFLECT_URL)
    assert resp.status_code == status_code
    assert mock_req.call_count == client.max_retries


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", sorted(NON_RETRYABLE_STATUS_CODES))
async def test_no_retry_on_non_retryable_status(client, status_code):
    with patch.object(client.client, "request", new=AsyncMock(return_value=httpx.Response(status_code))) as mock_req:
        resp = await client.request("GET", REFLECT_URL)
    assert mock_req.call_count == 1
    assert resp.status_code == status_code


@pytest.mark.asyncio
async def test_retry_after_header_respected(client):
    with patch.object(client.client, "request", new=AsyncMock(return_value=httpx.Response(429, headers={"Retry-After": "2"}))) as mock_req:
        with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
            await client.request("GET", REFLECT_URL)
    assert mock_sleep.call_args_list[0][0][0] == 2.0
    assert mock_req.call_count == client.max_retries


@pytest.mark.asyncio
async def test_network_errors_are_retried_then_raised(client):
    failing = AsyncMock(side_effect=httpx.ConnectTimeout("Connection failed"))
    with patch.object(client.client, "request", new=failing):
        with patch("asyncio.sleep", new=AsyncMock()):
            with pytest.raises(httpx.ConnectTimeout):
                await client.request("GET", REFLECT_URL)
    assert failing.call_count == client.max_retries


@pytest.mark.asyncio
async def test_success_after_one_retry(client):
    responses = AsyncMock(side_effect=[httpx.Response(503), httpx.Response(200)])
    with patch.object(client.client, "request", new=responses):
        with patch("asyncio.sleep", new=AsyncMock()):
            resp = await client.post(REFLECT_URL)
    assert resp.status_code == 200
    assert responses.call_count == 2


@pytest.mark.asyncio
async def test_non_httpx_exception_does_not_retry(client):
    failing = AsyncMock(side_effect=ValueError("bad url"))
    with patch.object(client.client, "request", new=failing):
        with pytest.raises(ValueError):
            await client.request("GET", REFLECT_URL)
    assert failing.call_count == 1


@pytest.mark.asyncio
async def test_backoff_delay_never_exceeds_max():
    client = ResilientHttpClient(max_retries=4, base_backoff=10.0, max_delay=15, jitter_max=0.0)
    with patch.object(client.client, "request", new=AsyncMock(return_value=httpx.Response(502))):
        with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
            await client.request("GET", REFLECT_URL)
    assert all(call.args[0] <= 15 for call in mock_sleep.call_args_list)


@pytest.mark.asyncio
async def test_post_forwards_arguments(client):
    with patch.object(client.client, "request", new=AsyncMock(return_value=httpx.Response(200))) as mock_req:
        await client.post(REFLECT_URL, headers={"X-API-KEY": "k"})
    assert mock_req.call_args.args == ("POST", REFLECT_URL)
    assert mock_req.call_args.kwargs == {"headers": {"X-API-KEY": "k"}}


def test_custom_client_args():
    client = ResilientHttpClient(client_args={"timeout": 10.0})
    assert client.client.timeout.read == 10.0


@pytest.mark.asyncio
async def test_aclose_closes_client():
    client = ResilientHttpClient()
    with patch.object(client.client, "aclose", new=AsyncMock()) as mock_close:
        await client.aclose()
    mock_close.assert_awaited_once()


@pytest.mark.asyncio
async def test_retry_after_http_date_is_honoured(client):
    when = format_datetime(datetime.now(timezone.utc) + timedelta(seconds=30), usegmt=True)
    responses = AsyncMock(side_effect=[httpx.Response(429, headers={"Retry-After": when}), httpx.Response(200)])
    with patch.object(client.client, "request", new=responses):
        with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
            resp = await client.request("GET", REFLECT_URL)
    assert resp.status_code == 200
    assert 25 <= mock_sleep.call_args.args[0] <= 30


@pytest.mark.asyncio
async def test_retry_after_is_capped_at_max_delay():
    client = ResilientHttpClient(max_retries=2, base_backoff=1.0, max_delay=5, jitter_max=0.0)
    with patch.object(client.client, "request", new=AsyncMock(return_value=httpx.Response(429, headers={"Retry-After": "3600"}))):
        with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
            await client.request("GET", REFLECT_URL)
    assert mock_sleep.call_args_list[0].args[0] == 5


@pytest.mark.asyncio
async def test_malformed_retry_after_falls_back_to_backoff():
    client = ResilientHttpClient(max_retries=2, base_backoff=1.0, max_delay=5, jitter_max=0.0)
    with patch.object(client.client, "request", new=AsyncMock(return_value=httpx.Response(429, headers={"Retry-After": "soon"}))):
        with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
            await client.request("GET", REFLECT_URL)
    assert mock_sleep.call_args_list[0].args[0] == 1.0


@pytest.mark.asyncio
async def test_no_sleep_after_final_attempt(client):
    with patch.object(client.client, "request", new=AsyncMock(return_value=httpx.Response(503))):
        with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
            await client.request("GET", REFLECT_URL)
    assert mock_sleep.call_count == client.max_retries - 1


def test_retry_after_values():
    now = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert retry_after_delay(None) is None
    assert retry_after_delay(" 7 ") == 7.0
    assert retry_after_delay("-3") == 0.0
    assert retry_after_delay("Wed, 01 Jan 2025 12:00:10 GMT", now=now) == 10.0
    assert retry_after_delay("not a date") is None
