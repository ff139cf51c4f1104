"""JSON transport shared by the listing and detail clients.

Wraps an :class:`aiohttp.ClientSession` with host-level throttling and a
per-call deadline. Requests are attempted once; retry policy belongs to the
callers. Failures never raise here: they come back as a :class:`JsonResult`
so each client can classify them in its own terms.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import urlparse

import aiohttp


@dataclass
class JsonResult:
    """Outcome of a single JSON GET."""

    url: str
    status: int | None
    payload: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and self.status is not None
            and 200 <= self.status < 300
        )


class RateLimiter:
    """Host-level rate limiter for asyncio callers."""

    def __init__(self, requests_per_second: float | None) -> None:
        self.min_interval = 1.0 / requests_per_second if requests_per_second else 0.0
        self._last_seen: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def _next_delay(self, host: str) -> float:
        last = self._last_seen.get(host)
        now = time.monotonic()
        if last is None or now - last >= self.min_interval:
            self._last_seen[host] = now
            return 0.0
        delay = self.min_interval - (now - last)
        self._last_seen[host] = now + delay
        return delay

    async def wait(self, host: str) -> None:
        if self.min_interval <= 0:
            return
        async with self._lock:
            delay = self._next_delay(host)
        if delay > 0:
            await asyncio.sleep(delay)


class JsonFetcher:
    """Throttled JSON GET helper bound to one client session."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        headers: Mapping[str, str] | None = None,
        throttle_per_host: float | None = None,
    ) -> None:
        self.session = session
        self.headers = dict(headers or {})
        self.rate_limiter = RateLimiter(throttle_per_host)

    async def get_json(
        self,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout_seconds: float = 30.0,
    ) -> JsonResult:
        await self.rate_limiter.wait(urlparse(url).hostname or "")
        merged_headers = {**self.headers, **(headers or {})}
        timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        try:
            async with self.session.get(
                url, params=params, headers=merged_headers, timeout=timeout
            ) as resp:
                if resp.status >= 400:
                    return JsonResult(url=url, status=resp.status, error=f"HTTP {resp.status}")
                try:
                    payload = await resp.json(content_type=None)
                except ValueError as exc:
                    return JsonResult(url=url, status=resp.status, error=f"invalid JSON body: {exc}")
                return JsonResult(url=url, status=resp.status, payload=payload)
        except asyncio.TimeoutError:
            return JsonResult(url=url, status=None, error=f"timed out after {timeout_seconds}s")
        except aiohttp.ClientError as exc:
            return JsonResult(url=url, status=None, error=str(exc) or exc.__class__.__name__)


__all__ = ["JsonFetcher", "JsonResult", "RateLimiter"]
