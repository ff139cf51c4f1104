"""Incremental batch ingestion over the paginated listing source.

Each run processes one window of pages starting after the persisted cursor:

1. read the cursor and fetch the window's first page to learn the page count;
2. fetch the rest of the window concurrently, dropping pages that fail;
3. flatten the items in page order and enrich them one by one through the
   :class:`~agilwatch.services.sync.access.AccessModeController`;
4. upsert the enriched records and only then persist the advanced cursor.

A failure of the first page or of the upsert fails the run and leaves the
cursor untouched, so the same window is retried on the next invocation.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Protocol

from agilwatch.domain.models import (
    CircuitState,
    EnrichedRecord,
    ListingFilter,
    ListingPage,
    ListingRecord,
)
from agilwatch.errors import PersistenceError, SourceUnavailable
from agilwatch.infrastructure.db.repositories import (
    AppStateRepository,
    ListingRepository,
    SyncRunRepository,
)
from agilwatch.infrastructure.observability import (
    get_logger,
    log_context,
    log_exception,
    record_sync_run,
)

from .access import AccessModeController

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 20
DEFAULT_MAX_CONCURRENT_REQUESTS = 5


class ListingSource(Protocol):
    async def fetch_page(self, listing_filter: ListingFilter) -> ListingPage: ...


@dataclass
class SyncRunResult:
    run_id: Optional[int]
    status: str
    start_page: int = 0
    end_page: int = 0
    total_pages: int = 0
    next_cursor: Optional[int] = None
    pages_fetched: int = 0
    pages_failed: List[int] = field(default_factory=list)
    items_seen: int = 0
    items_enriched: int = 0
    items_upserted: int = 0
    circuit_state: str = CircuitState.CLOSED.value
    dry_run: bool = False
    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)
    access: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    @property
    def processed_pages(self) -> str:
        return f"{self.start_page}-{self.end_page}"

    @property
    def next_run_starts_at(self) -> Optional[int]:
        if self.next_cursor is None:
            return None
        return self.next_cursor + 1

    def to_dict(self) -> dict[str, object]:
        payload = asdict(self)
        payload["processed_pages"] = self.processed_pages
        payload["total_items_in_batch"] = self.items_seen
        payload["next_run_starts_at"] = self.next_run_starts_at
        return payload


def flatten_pages(pages: List[ListingPage]) -> List[ListingRecord]:
    """Items of ``pages`` in page order, keeping the first occurrence of each code."""
    seen: set[str] = set()
    items: List[ListingRecord] = []
    for page in sorted(pages, key=lambda p: p.page_number):
        for item in page.items:
            if item.code in seen:
                logger.debug("Duplicate listing %s on page %d skipped", item.code, page.page_number)
                continue
            seen.add(item.code)
            items.append(item)
    return items


class BatchOrchestrator:
    """Run one cursor-driven ingestion window."""

    def __init__(
        self,
        *,
        listing_client: ListingSource,
        controller: AccessModeController,
        listings: ListingRepository,
        state: AppStateRepository,
        listing_filter: ListingFilter,
        cursor_key: str,
        runs: SyncRunRepository | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrent_requests: int = DEFAULT_MAX_CONCURRENT_REQUESTS,
        page_retries: int = 1,
        retry_backoff_base: float = 0.5,
        dry_run: bool = False,
    ) -> None:
        self._listing = listing_client
        self._controller = controller
        self._listings = listings
        self._state = state
        self._runs = runs
        self.listing_filter = listing_filter
        self.cursor_key = cursor_key
        self.batch_size = batch_size
        self.max_concurrent_requests = max_concurrent_requests
        self.page_retries = page_retries
        self.retry_backoff_base = retry_backoff_base
        self.dry_run = dry_run

    async def run(self) -> SyncRunResult:
        run_id = self._runs.start(kind="sync", dry_run=self.dry_run) if self._runs else None
        result = SyncRunResult(run_id=run_id, status="running", dry_run=self.dry_run)
        started = time.perf_counter()
        with log_context(sync_run_id=run_id):
            try:
                await self._run(result)
                result.status = "success"
            except (SourceUnavailable, PersistenceError) as exc:
                result.status = "failed"
                result.errors.append(str(exc))
                log_exception(logger, "Sync run failed", exc)
            result.duration_seconds = time.perf_counter() - started
            result.circuit_state = self._controller.state.value
            result.access = self._controller.stats.to_dict()
            self._record(result)
            logger.info(
                "Sync run %s: pages %s of %d, %d items, %d enriched, next cursor %s",
                result.status,
                result.processed_pages,
                result.total_pages,
                result.items_seen,
                result.items_enriched,
                result.next_cursor,
            )
        return result

    async def _run(self, result: SyncRunResult) -> None:
        cursor = self._state.read_cursor(self.cursor_key)
        start_page = cursor.start_page
        result.start_page = start_page
        logger.info("Starting window at page %d", start_page)

        first = await self._fetch_page(start_page)
        total_pages = first.total_pages
        # A cursor past the current page count still yields a one-page window.
        end_page = max(cursor.window_end(self.batch_size, total_pages), start_page)
        result.end_page = end_page
        result.total_pages = total_pages

        pages = [first, *await self._fetch_remaining(start_page + 1, end_page, result)]
        result.pages_fetched = len(pages)

        items = flatten_pages(pages)
        result.items_seen = len(items)
        enriched = await self._enrich(items)
        result.items_enriched = sum(1 for record in enriched if record.is_enriched)

        next_cursor = cursor.advance(end_page, total_pages)
        if self.dry_run:
            logger.info("Dry run: skipping upsert and cursor write")
        else:
            result.items_upserted = self._listings.upsert(enriched)
            self._state.write_cursor(self.cursor_key, next_cursor)
        result.next_cursor = next_cursor.last_processed_page

    async def _fetch_page(self, page_number: int) -> ListingPage:
        attempts = self.page_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self._listing.fetch_page(self.listing_filter.for_page(page_number))
            except SourceUnavailable as exc:
                if attempt == attempts:
                    raise
                delay = self.retry_backoff_base * (2 ** (attempt - 1))
                logger.warning(
                    "Listing page %d failed (attempt %d/%d), retrying in %.1fs: %s",
                    page_number,
                    attempt,
                    attempts,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    async def _fetch_remaining(
        self, first_page: int, last_page: int, result: SyncRunResult
    ) -> List[ListingPage]:
        page_numbers = list(range(first_page, last_page + 1))
        if not page_numbers:
            return []
        semaphore = asyncio.Semaphore(self.max_concurrent_requests)

        async def fetch(page_number: int) -> ListingPage:
            async with semaphore:
                return await self._fetch_page(page_number)

        outcomes = await asyncio.gather(
            *(fetch(page_number) for page_number in page_numbers), return_exceptions=True
        )
        pages: List[ListingPage] = []
        for page_number, outcome in zip(page_numbers, outcomes):
            if isinstance(outcome, SourceUnavailable):
                logger.warning("Dropping listing page %d from batch: %s", page_number, outcome)
                result.pages_failed.append(page_number)
                result.errors.append(str(outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                pages.append(outcome)
        return pages

    async def _enrich(self, items: List[ListingRecord]) -> List[EnrichedRecord]:
        if not items:
            logger.info("No listings in window; skipping detail enrichment")
            return []
        await self._controller.probe(items[0].code)
        enriched: List[EnrichedRecord] = []
        for item in items:
            with log_context(code=item.code):
                enriched.append(await self._controller.enrich(item))
        return enriched

    def _record(self, result: SyncRunResult) -> None:
        record_sync_run(result.status, result.duration_seconds, result.items_seen)
        if self._runs is None or result.run_id is None:
            return
        # The listings and cursor are already committed; a ledger failure is only logged.
        try:
            self._runs.finish(
                result.run_id,
                status=result.status,
                start_page=result.start_page,
                end_page=result.end_page,
                total_pages=result.total_pages,
                next_cursor=result.next_cursor,
                pages_fetched=result.pages_fetched,
                items_seen=result.items_seen,
                items_enriched=result.items_enriched,
                items_upserted=result.items_upserted,
                circuit_state=result.circuit_state,
                error_count=len(result.errors),
                notes="; ".join(result.errors) or None,
            )
        except PersistenceError as exc:
            log_exception(logger, "Failed to record sync run", exc, run_id=result.run_id)


__all__ = [
    "BatchOrchestrator",
    "DEFAULT_BATCH_SIZE",
    "ListingSource",
    "SyncRunResult",
    "flatten_pages",
]
