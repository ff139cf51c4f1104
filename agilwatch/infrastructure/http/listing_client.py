"""Client for the paginated listing search."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Mapping

from agilwatch.domain.models import ListingFilter, ListingPage, ListingRecord
from agilwatch.errors import SourceUnavailable
from agilwatch.infrastructure.observability import get_logger, record_listing_page

from .fetcher import JsonFetcher

logger = get_logger(__name__)

_ITEMS_FIELDS = ("resultados", "items", "results")
_PAGE_COUNT_FIELDS = ("pageCount", "totalPages", "total_paginas", "totalPagesCount")
DATE_FORMAT = "%Y-%m-%d"


def listing_window(lookback_days: int, *, today: date | None = None) -> tuple[str, str]:
    """Return ``(date_from, date_to)`` covering the last ``lookback_days`` days."""
    end = today or date.today()
    start = end - timedelta(days=lookback_days)
    return start.strftime(DATE_FORMAT), end.strftime(DATE_FORMAT)


def build_listing_filter(
    *,
    lookback_days: int = 30,
    status: str = "2",
    order_by: str = "recent",
    today: date | None = None,
) -> ListingFilter:
    date_from, date_to = listing_window(lookback_days, today=today)
    return ListingFilter(date_from=date_from, date_to=date_to, status=status, order_by=order_by)


def _page_count(payload: Mapping[str, Any]) -> int:
    raw = next((payload[f] for f in _PAGE_COUNT_FIELDS if payload.get(f) is not None), 1)
    try:
        count = int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return 1
    return max(count, 1)


def parse_listing_payload(page_number: int, body: Any) -> ListingPage:
    """Turn a listing response body into a :class:`ListingPage`.

    Raises:
        SourceUnavailable: When the body has no items array.
    """
    if not isinstance(body, Mapping):
        raise SourceUnavailable(page_number, "response body is not a JSON object")
    payload = body.get("payload")
    if not isinstance(payload, Mapping):
        payload = body
    raw_items = next(
        (payload[f] for f in _ITEMS_FIELDS if isinstance(payload.get(f), list)), None
    )
    if raw_items is None:
        raise SourceUnavailable(page_number, "payload has no items array")

    records: list[ListingRecord] = []
    for raw in raw_items:
        record = ListingRecord.from_payload(raw) if isinstance(raw, Mapping) else None
        if record is None:
            logger.warning("Skipping listing without code on page %d", page_number)
            continue
        records.append(record)
    return ListingPage(
        page_number=page_number, items=tuple(records), total_pages=_page_count(payload)
    )


class ListingSourceClient:
    """Fetch single listing pages; failures surface as :class:`SourceUnavailable`."""

    def __init__(
        self,
        fetcher: JsonFetcher,
        *,
        api_url: str,
        timeout_seconds: float = 30.0,
        api_key: str | None = None,
    ) -> None:
        self._fetcher = fetcher
        self.api_url = api_url
        self.timeout_seconds = timeout_seconds
        self.api_key = api_key

    async def fetch_page(self, listing_filter: ListingFilter) -> ListingPage:
        page_number = listing_filter.page_number
        headers = {"x-api-key": self.api_key} if self.api_key else None
        result = await self._fetcher.get_json(
            self.api_url,
            params=listing_filter.to_params(),
            headers=headers,
            timeout_seconds=self.timeout_seconds,
        )
        try:
            if not result.ok:
                raise SourceUnavailable(
                    page_number, result.error or f"HTTP {result.status}", status=result.status
                )
            page = parse_listing_payload(page_number, result.payload)
        except SourceUnavailable:
            record_listing_page("failed")
            raise
        record_listing_page("success")
        logger.debug(
            "Fetched listing page %d: %d items, %d total pages",
            page_number,
            len(page.items),
            page.total_pages,
        )
        return page


__all__ = [
    "ListingSourceClient",
    "build_listing_filter",
    "listing_window",
    "parse_listing_payload",
]
