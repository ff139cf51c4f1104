"""Fakes shared by the test-suite."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterable

from agilwatch.domain.models import (
    AccessCredential,
    DetailRecord,
    LineItem,
    ListingFilter,
    ListingPage,
    ListingRecord,
)
from agilwatch.errors import CaptureTimeout, SourceUnavailable

LISTING_FILTER = ListingFilter(date_from="2024-03-01", date_to="2024-03-31")


def listing(code: str, **fields: Any) -> ListingRecord:
    fields.setdefault("title", f"Listing {code}")
    return ListingRecord(code=code, **fields)


def detail(description: str = "Detail", items: int = 1) -> DetailRecord:
    return DetailRecord(
        description=description,
        delivery_term="5 días",
        delivery_address="Santiago",
        line_items=tuple(
            LineItem(name=f"Item {i}", description=None, quantity=float(i + 1))
            for i in range(items)
        ),
    )


class FakeResponse:
    def __init__(self, status: int = 200, payload: Any = None, *, bad_json: bool = False):
        self.status = status
        self._payload = payload
        self._bad_json = bad_json

    async def json(self, content_type=None):
        if self._bad_json:
            raise ValueError("Expecting value")
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class FakeSession:
    """Stands in for ``aiohttp.ClientSession.get``."""

    def __init__(self, responder: Callable[[str, dict, dict], Any]):
        self._responder = responder
        self.requests: list[dict[str, Any]] = []

    def get(self, url, *, params=None, headers=None, timeout=None):
        self.requests.append({"url": url, "params": dict(params or {}), "headers": dict(headers or {})})
        outcome = self._responder(url, dict(params or {}), dict(headers or {}))
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeListingSource:
    """Serves ``total_pages`` pages of ``per_page`` listings each."""

    def __init__(
        self,
        total_pages: int,
        *,
        per_page: int = 2,
        failing: Iterable[int] = (),
        empty: Iterable[int] = (),
        delay: float = 0.0,
    ):
        self.total_pages = total_pages
        self.per_page = per_page
        self.failing = set(failing)
        self.empty = set(empty)
        self.delay = delay
        self.calls: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def codes(self, page_number: int) -> list[str]:
        if page_number in self.empty:
            return []
        return [f"P{page_number:02d}-{i}" for i in range(self.per_page)]

    async def fetch_page(self, listing_filter: ListingFilter) -> ListingPage:
        page_number = listing_filter.page_number
        self.calls.append(page_number)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if page_number in self.failing:
                raise SourceUnavailable(page_number, "HTTP 502", status=502)
            items = tuple(listing(code) for code in self.codes(page_number))
            return ListingPage(page_number=page_number, items=items, total_pages=self.total_pages)
        finally:
            self.in_flight -= 1


class FakeDetailClient:
    """Detail client whose outcomes are decided per call by plain callables.

    ``public`` receives the item code; ``authenticated`` receives the code and
    token. Each returns a :class:`DetailRecord` or an exception to raise.
    """

    def __init__(
        self,
        *,
        public: Callable[[str], Any] | None = None,
        authenticated: Callable[[str, str], Any] | None = None,
    ):
        self._public = public or (lambda code: detail(f"public {code}"))
        self._authenticated = authenticated or (lambda code, token: detail(f"auth {code}"))
        self.public_calls: list[str] = []
        self.authenticated_calls: list[tuple[str, str]] = []

    async def fetch_public(self, code: str) -> DetailRecord:
        self.public_calls.append(code)
        outcome = self._public(code)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def fetch_authenticated(self, code: str, credential: AccessCredential) -> DetailRecord:
        self.authenticated_calls.append((code, credential.token))
        outcome = self._authenticated(code, credential.token)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeCredentialSource:
    """Hands out ``tok-1``, ``tok-2``, ... and counts captures."""

    def __init__(self, *, delay: float = 0.0, failures: int = 0):
        self.delay = delay
        self.failures = failures
        self.calls: list[str] = []
        self.closed = False

    async def acquire(self, code_hint: str) -> AccessCredential:
        self.calls.append(code_hint)
        await asyncio.sleep(self.delay)
        if len(self.calls) <= self.failures:
            raise CaptureTimeout(code_hint, "no authenticated detail request")
        return AccessCredential(token=f"tok-{len(self.calls) - self.failures}", api_key="key-1")

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True
