"""Rate-limit aware JSON fetch client for the upstream environmental feeds.

- Returns a cached value while it is fresh (per-call TTL)
- De-duplicates concurrent calls for the same URL
- Fails fast with OfflineError when the connectivity check fails
- Bounds every network call by a timeout
- Retries exactly once on HTTP 429, honouring Retry-After (max 2s)

Failures are raised as FetchError subclasses; turning them into a fallback is
the aggregator's job.
"""
import asyncio
import json
import logging
import math
import random
import socket
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional
from urllib.parse import urlparse

import aiohttp

from cache_utils import InFlightTracker, TTLCache, WarningThrottle
from config import (
    CONNECTIVITY_CHECK_ENABLED, CONNECTIVITY_TIMEOUT, DEFAULT_FEED_TTL_SECONDS,
    HTTP_TIMEOUT_FEED, WARN_THROTTLE_SECONDS
)
from constants import RETRY_AFTER_MAX_SECONDS, RETRY_JITTER_MIN_SECONDS, RETRY_JITTER_SPAN_SECONDS
from exceptions import (
    FetchError, FetchTimeoutError, HTTPStatusError, MalformedPayloadError,
    OfflineError, RateLimitedError
)
from utils.sanitization import sanitize_url

logger = logging.getLogger(__name__)

ConnectivityCheck = Callable[[str], Awaitable[bool]]

_MISSING = object()


@dataclass
class FetchResponse:
    status: int
    headers: Mapping[str, str]
    body: str


def compute_retry_wait(retry_after: Optional[str], rng: Optional[random.Random] = None) -> float:
    """Seconds to wait before the single 429 retry.

    A numeric Retry-After is clamped to [0, 2]; an absent or non-numeric header
    yields a randomized wait in [0.8, 1.2).
    """
    if retry_after is not None:
        try:
            seconds = float(str(retry_after).strip())
        except ValueError:
            seconds = None
        if seconds is not None and math.isfinite(seconds):
            return min(RETRY_AFTER_MAX_SECONDS, max(0.0, seconds))
    source = rng or random
    return RETRY_JITTER_MIN_SECONDS + source.random() * RETRY_JITTER_SPAN_SECONDS


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


async def dns_check(url: str, timeout: float = CONNECTIVITY_TIMEOUT) -> bool:
    """Cheap reachability check: can the feed's host be resolved?"""
    host = urlparse(url).hostname
    if not host:
        return False
    loop = asyncio.get_running_loop()
    try:
        await asyncio.wait_for(loop.getaddrinfo(host, None, type=socket.SOCK_STREAM), timeout)
        return True
    except (OSError, asyncio.TimeoutError):
        return False


async def always_online(url: str) -> bool:
    return True


class RateLimitedFetchClient:
    """Shared JSON client used by every dataset aggregator."""

    def __init__(
        self,
        *,
        cache: Optional[TTLCache] = None,
        inflight: Optional[InFlightTracker] = None,
        throttle: Optional[WarningThrottle] = None,
        connectivity: Optional[ConnectivityCheck] = None,
        default_ttl: float = DEFAULT_FEED_TTL_SECONDS,
        default_timeout: float = HTTP_TIMEOUT_FEED,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.cache = cache if cache is not None else TTLCache()
        self.inflight = inflight if inflight is not None else InFlightTracker()
        self.throttle = throttle if throttle is not None else WarningThrottle(WARN_THROTTLE_SECONDS)
        if connectivity is None:
            connectivity = dns_check if CONNECTIVITY_CHECK_ENABLED else always_online
        self._connectivity = connectivity
        self.default_ttl = default_ttl
        self.default_timeout = default_timeout
        self._sleep = sleep
        self._rng = rng
        self._session: Optional[aiohttp.ClientSession] = None
        self.network_calls = 0

    async def fetch_json(self, url: str, label: str, *, ttl: Optional[float] = None,
                         timeout: Optional[float] = None) -> Any:
        """Fetch and decode JSON from `url`, honouring cache and in-flight sharing."""
        cached = self.cache.get(url, _MISSING)
        if cached is not _MISSING:
            logger.debug(f"✅ CACHE HIT: {label}")
            return cached

        ttl = self.default_ttl if ttl is None else ttl
        timeout = self.default_timeout if timeout is None else timeout
        return await self.inflight.run(url, lambda: self._fetch_and_store(url, label, ttl, timeout))

    async def _fetch_and_store(self, url: str, label: str, ttl: float, timeout: float) -> Any:
        try:
            payload = await self._fetch_uncached(url, label, timeout)
        except FetchError as exc:
            self._warn_failure(label, exc)
            raise
        self.cache.set(url, payload, ttl)
        return payload

    async def _fetch_uncached(self, url: str, label: str, timeout: float) -> Any:
        if not await self._connectivity(url):
            raise OfflineError(label)

        response = await self._send(url, label, timeout)
        if response.status == 429:
            wait = compute_retry_wait(_header(response.headers, "Retry-After"), self._rng)
            logger.info(f"⏳ {label} rate-limited (429), retrying once in {wait:.2f}s")
            await self._sleep(wait)
            response = await self._send(url, label, timeout)
            if response.status == 429:
                raise RateLimitedError(label)

        if not 200 <= response.status < 300:
            raise HTTPStatusError(label, response.status)

        try:
            return json.loads(response.body)
        except ValueError as exc:
            raise MalformedPayloadError(label, f"invalid JSON ({exc})") from exc

    async def _send(self, url: str, label: str, timeout: float) -> FetchResponse:
        self.network_calls += 1
        logger.debug(f"🌐 GET {sanitize_url(url)} ({label}, timeout={timeout:g}s)")
        try:
            return await asyncio.wait_for(self._request(url, timeout), timeout)
        except asyncio.TimeoutError as exc:
            raise FetchTimeoutError(label, timeout) from exc
        except aiohttp.ClientError as exc:
            raise FetchError(label, str(exc) or type(exc).__name__) from exc

    async def _request(self, url: str, timeout: float) -> FetchResponse:
        session = await self._get_session()
        async with session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=timeout),
            headers={"Accept": "application/json", "Accept-Encoding": "gzip"},
        ) as resp:
            body = await resp.text(errors="replace")
            return FetchResponse(resp.status, resp.headers.copy(), body)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    def _warn_failure(self, label: str, exc: FetchError) -> None:
        if isinstance(exc, RateLimitedError):
            self.throttle.warn(label, f"{label} rate-limited (429) - using fallback if available")
        else:
            self.throttle.warn(label, f"{label} fetch error: {exc.message}")

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
