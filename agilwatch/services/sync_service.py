from __future__ import annotations

from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Callable

import aiohttp

from agilwatch.app.config import SyncSettings
from agilwatch.domain.models import BatchCursor
from agilwatch.infrastructure.browser import CredentialSource, PlaywrightCredentialCapture
from agilwatch.infrastructure.db import get_connection, get_path_config
from agilwatch.infrastructure.db.repositories import (
    AppStateRepository,
    ListingRepository,
    SyncRunRepository,
)
from agilwatch.infrastructure.http import (
    DetailClient,
    JsonFetcher,
    ListingSourceClient,
    build_listing_filter,
)
from agilwatch.infrastructure.observability import get_logger, log_exception
from agilwatch.services.sync import (
    AccessModeController,
    BackfillResult,
    BatchOrchestrator,
    LineItemBackfill,
    SyncRunResult,
)

CredentialSourceFactory = Callable[[SyncSettings], AbstractAsyncContextManager[CredentialSource]]


def default_credential_source(settings: SyncSettings) -> PlaywrightCredentialCapture:
    return PlaywrightCredentialCapture(
        api_url=settings.api_url,
        detail_page_url=settings.detail_page_url,
        user_agent=settings.user_agent,
        headless=settings.headless,
        timeout_seconds=settings.capture_timeout_seconds,
    )


@dataclass
class Pipeline:
    """Per-run collaborators sharing one HTTP session and one browser."""

    listing_client: ListingSourceClient
    detail_client: DetailClient
    credential_source: CredentialSource


@dataclass(frozen=True)
class SyncRunSummary:
    """Structured result for a sync or backfill execution."""

    status: str
    kind: str = "sync"
    result: SyncRunResult | BackfillResult | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"type": f"{self.kind}_finished", "status": self.status}
        if self.result:
            payload["result"] = self.result.to_dict()
        if self.error:
            payload["error"] = self.error
        return payload


class SyncService:
    """Wire settings, storage and clients together for one run at a time."""

    def __init__(
        self,
        *,
        settings: SyncSettings | None = None,
        db_path: str | Path | None = None,
        config_path: str | Path | None = None,
        credential_source_factory: CredentialSourceFactory | None = None,
    ) -> None:
        self.settings = settings or SyncSettings()
        self._config_path = config_path
        self._db_path = str(db_path or get_path_config(config_path)["db_path"])
        self._credential_source_factory = credential_source_factory or default_credential_source
        self._logger = get_logger(__name__)

    @property
    def db_path(self) -> str:
        return self._db_path

    @asynccontextmanager
    async def open_pipeline(self, settings: SyncSettings) -> AsyncIterator[Pipeline]:
        async with AsyncExitStack() as stack:
            session = await stack.enter_async_context(aiohttp.ClientSession())
            fetcher = JsonFetcher(
                session,
                headers=settings.request_headers(),
                throttle_per_host=settings.throttle_per_host,
            )
            credential_source = await stack.enter_async_context(
                self._credential_source_factory(settings)
            )
            yield Pipeline(
                listing_client=ListingSourceClient(
                    fetcher,
                    api_url=settings.api_url,
                    timeout_seconds=settings.listing_timeout_seconds,
                    api_key=settings.api_key,
                ),
                detail_client=DetailClient(
                    fetcher,
                    api_url=settings.api_url,
                    timeout_seconds=settings.detail_timeout_seconds,
                    api_key=settings.api_key,
                ),
                credential_source=credential_source,
            )

    async def run_sync(self, *, dry_run: bool = False, **overrides: Any) -> SyncRunSummary:
        """Process the next page window and advance the cursor."""
        settings = self.settings.with_overrides(**overrides)
        self._logger.info(
            "Starting sync (batch_size=%d, dry_run=%s)", settings.batch_size, dry_run
        )
        try:
            async with self.open_pipeline(settings) as pipeline:
                with get_connection(self._db_path, config_path=self._config_path) as conn:
                    orchestrator = BatchOrchestrator(
                        listing_client=pipeline.listing_client,
                        controller=AccessModeController(
                            pipeline.detail_client,
                            pipeline.credential_source,
                            failure_threshold=settings.failure_threshold,
                        ),
                        listings=ListingRepository(conn),
                        state=AppStateRepository(conn),
                        runs=SyncRunRepository(conn),
                        listing_filter=build_listing_filter(
                            lookback_days=settings.lookback_days,
                            status=settings.listing_status,
                            order_by=settings.order_by,
                        ),
                        cursor_key=settings.cursor_key,
                        batch_size=settings.batch_size,
                        max_concurrent_requests=settings.max_concurrent_requests,
                        page_retries=settings.page_retries,
                        retry_backoff_base=settings.retry_backoff_base,
                        dry_run=dry_run,
                    )
                    result = await orchestrator.run()
        except Exception as exc:  # pragma: no cover - defensive guard
            log_exception(self._logger, "Sync failed", exc)
            return SyncRunSummary(status="error", error=str(exc))

        return SyncRunSummary(
            status=result.status,
            result=result,
            error="; ".join(result.errors) if not result.succeeded and result.errors else None,
        )

    async def run_backfill(
        self, *, limit: int | None = None, dry_run: bool = False
    ) -> SyncRunSummary:
        """Fill in line items for stored listings that lack them."""
        settings = self.settings
        self._logger.info("Starting line-item backfill (limit=%s, dry_run=%s)", limit, dry_run)
        try:
            async with self.open_pipeline(settings) as pipeline:
                with get_connection(self._db_path, config_path=self._config_path) as conn:
                    backfill = LineItemBackfill(
                        detail_client=pipeline.detail_client,
                        controller=AccessModeController(
                            pipeline.detail_client,
                            pipeline.credential_source,
                            failure_threshold=settings.failure_threshold,
                        ),
                        listings=ListingRepository(conn),
                        runs=SyncRunRepository(conn),
                        limit=limit,
                        dry_run=dry_run,
                    )
                    result = await backfill.run()
        except Exception as exc:  # pragma: no cover - defensive guard
            log_exception(self._logger, "Backfill failed", exc)
            return SyncRunSummary(status="error", kind="backfill", error=str(exc))
        return SyncRunSummary(status=result.status, kind="backfill", result=result)

    def status(self, *, recent: int = 5) -> dict[str, Any]:
        """Cursor position, stored listing counts and the most recent runs."""
        with get_connection(self._db_path, config_path=self._config_path) as conn:
            state = AppStateRepository(conn)
            listings = ListingRepository(conn)
            cursor = state.read_cursor(self.settings.cursor_key)
            return {
                "cursor": cursor.last_processed_page,
                "next_start_page": cursor.start_page,
                "cursor_updated_at": state.updated_at(self.settings.cursor_key),
                "listings": listings.count(),
                "missing_line_items": listings.count_missing_line_items(),
                "recent_runs": SyncRunRepository(conn).recent(recent),
            }

    def reset_cursor(self, page: int = 0) -> BatchCursor:
        cursor = BatchCursor(max(page, 0))
        with get_connection(self._db_path, config_path=self._config_path) as conn:
            AppStateRepository(conn).write_cursor(self.settings.cursor_key, cursor)
        self._logger.info("Cursor reset to %d", cursor.last_processed_page)
        return cursor


__all__ = ["Pipeline", "SyncRunSummary", "SyncService", "default_credential_source"]
