"""
Tests for the rate-limited fetch client.

Tests cover:
- TTL caching (one network call within the TTL, a new one after expiry)
- In-flight de-duplication of concurrent calls
- 429 Retry-After handling and the single retry
- Offline, timeout, HTTP status and malformed payload failures
- Throttled failure warnings
"""

import asyncio
import logging
import random
from unittest.mock import AsyncMock

import aiohttp
import pytest

from exceptions import (
    FetchError, FetchTimeoutError, HTTPStatusError, MalformedPayloadError,
    OfflineError, RateLimitedError
)
from helpers import json_response, make_client
from utils.fetch_client import _header, compute_retry_wait

URL = "https://api.example.test/v2/real-time/api/rainfall"


class TestComputeRetryWait:
    """Test the Retry-After wait computation."""

    def test_large_retry_after_is_capped_at_two_seconds(self):
        assert compute_retry_wait("5") == 2.0

    def test_small_retry_after_is_honoured(self):
        assert compute_retry_wait("1.5") == 1.5

    def test_zero_retry_after_waits_zero(self):
        assert compute_retry_wait("0") == 0.0

    def test_negative_retry_after_clamps_to_zero(self):
        assert compute_retry_wait("-3") == 0.0

    @pytest.mark.parametrize("header", [None, "", "soon", "Wed, 21 Oct 2026 07:28:00 GMT", "nan"])
    def test_missing_or_non_numeric_is_randomized(self, header):
        for seed in range(25):
            wait = compute_retry_wait(header, random.Random(seed))
            assert 0.8 <= wait < 1.2

    def test_header_lookup_is_case_insensitive(self):
        assert _header({"retry-after": "3"}, "Retry-After") == "3"
        assert _header({}, "Retry-After") is None


class TestCaching:
    """Test TTL cache and in-flight sharing."""

    @pytest.mark.asyncio
    async def test_second_call_within_ttl_uses_cache(self, fetch_client, upstream, clock):
        upstream.set_json(URL, {"ok": 1})

        first = await fetch_client.fetch_json(URL, "NEA rainfall", ttl=60)
        clock.advance(30)
        second = await fetch_client.fetch_json(URL, "NEA rainfall", ttl=60)

        assert first == second == {"ok": 1}
        assert upstream.count(URL) == 1

    @pytest.mark.asyncio
    async def test_call_after_expiry_hits_network_again(self, fetch_client, upstream, clock):
        upstream.set_sequence(URL, json_response({"v": 1}), json_response({"v": 2}))

        assert await fetch_client.fetch_json(URL, "NEA rainfall", ttl=60) == {"v": 1}
        clock.advance(61)
        assert await fetch_client.fetch_json(URL, "NEA rainfall", ttl=60) == {"v": 2}
        assert upstream.count(URL) == 2

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_network_call(self, fetch_client, upstream):
        upstream.set_json(URL, {"shared": True})
        upstream.gate = asyncio.Event()

        first = asyncio.ensure_future(fetch_client.fetch_json(URL, "NEA rainfall"))
        second = asyncio.ensure_future(fetch_client.fetch_json(URL, "NEA rainfall"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        upstream.gate.set()

        a, b = await asyncio.gather(first, second)
        assert a == b == {"shared": True}
        assert upstream.count(URL) == 1
        assert fetch_client.network_calls == 1
        assert len(fetch_client.inflight) == 0

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, fetch_client, upstream):
        upstream.set_sequence(URL, json_response({}, status=500), json_response({"ok": True}))

        with pytest.raises(HTTPStatusError):
            await fetch_client.fetch_json(URL, "NEA rainfall")
        assert await fetch_client.fetch_json(URL, "NEA rainfall") == {"ok": True}


class TestRateLimiting:
    """Test 429 handling."""

    @pytest.mark.asyncio
    async def test_retries_once_after_retry_after(self, fetch_client, upstream):
        upstream.set_sequence(
            URL,
            json_response({}, status=429, headers={"Retry-After": "5"}),
            json_response({"ok": True}),
        )

        assert await fetch_client.fetch_json(URL, "NEA rainfall") == {"ok": True}
        fetch_client._sleep.assert_awaited_once_with(2.0)
        assert upstream.count(URL) == 2

    @pytest.mark.asyncio
    async def test_second_429_fails_without_further_retries(self, fetch_client, upstream):
        upstream.set_json(URL, {}, status=429)

        with pytest.raises(RateLimitedError) as excinfo:
            await fetch_client.fetch_json(URL, "NEA rainfall")

        assert excinfo.value.status == 429
        assert upstream.count(URL) == 2
        wait = fetch_client._sleep.await_args.args[0]
        assert 0.8 <= wait < 1.2

    @pytest.mark.asyncio
    async def test_retry_with_other_error_status_fails(self, fetch_client, upstream):
        upstream.set_sequence(URL, json_response({}, status=429), json_response({}, status=503))

        with pytest.raises(HTTPStatusError) as excinfo:
            await fetch_client.fetch_json(URL, "NEA rainfall")
        assert excinfo.value.status == 503
        assert not isinstance(excinfo.value, RateLimitedError)


class TestFailures:
    """Test the failure taxonomy raised by the client."""

    @pytest.mark.asyncio
    async def test_offline_fails_fast_without_network_call(self, upstream, clock):
        client = make_client(upstream, clock, connectivity=AsyncMock(return_value=False))
        upstream.set_json(URL, {"never": "served"})

        with pytest.raises(OfflineError):
            await client.fetch_json(URL, "NEA rainfall")
        assert upstream.calls == []
        assert client.network_calls == 0

    @pytest.mark.asyncio
    async def test_timeout_becomes_fetch_timeout_error(self, fetch_client):
        async def slow(url, timeout):
            await asyncio.sleep(1)

        fetch_client._request = slow
        with pytest.raises(FetchTimeoutError) as excinfo:
            await fetch_client.fetch_json(URL, "NEA rainfall", timeout=0.01)
        assert excinfo.value.timeout == 0.01

    @pytest.mark.asyncio
    async def test_non_2xx_is_http_status_error(self, fetch_client, upstream):
        upstream.set_json(URL, {"error": "nope"}, status=404)
        with pytest.raises(HTTPStatusError) as excinfo:
            await fetch_client.fetch_json(URL, "NEA rainfall")
        assert excinfo.value.status == 404
        assert upstream.count(URL) == 1

    @pytest.mark.asyncio
    async def test_invalid_json_is_malformed(self, fetch_client, upstream):
        upstream.set_json(URL, "<html>maintenance</html>")
        with pytest.raises(MalformedPayloadError):
            await fetch_client.fetch_json(URL, "NEA rainfall")

    @pytest.mark.asyncio
    async def test_client_error_is_wrapped(self, fetch_client, upstream):
        upstream.set_error(URL, aiohttp.ClientConnectionError("connection reset"))
        with pytest.raises(FetchError) as excinfo:
            await fetch_client.fetch_json(URL, "NEA rainfall")
        assert "connection reset" in excinfo.value.message

    @pytest.mark.asyncio
    async def test_failure_warnings_are_throttled(self, fetch_client, upstream, clock, caplog):
        upstream.set_json(URL, {}, status=500)

        with caplog.at_level(logging.WARNING):
            for _ in range(3):
                with pytest.raises(HTTPStatusError):
                    await fetch_client.fetch_json(URL, "NEA rainfall")
            clock.advance(61)
            with pytest.raises(HTTPStatusError):
                await fetch_client.fetch_json(URL, "NEA rainfall")

        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert warnings == ["NEA rainfall fetch error: HTTP 500"] * 2

    @pytest.mark.asyncio
    async def test_rate_limited_warning_is_distinct(self, fetch_client, upstream, caplog):
        upstream.set_json(URL, {}, status=429)
        with caplog.at_level(logging.WARNING):
            with pytest.raises(RateLimitedError):
                await fetch_client.fetch_json(URL, "NEA rainfall")
        assert any("rate-limited" in r.getMessage() for r in caplog.records)
