"""Backfill line items for stored listings that were saved without them."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import List, Optional

from agilwatch.domain.models import DetailRecord, DetailSource
from agilwatch.errors import AuthRequired, CredentialCaptureError, DetailError, PersistenceError
from agilwatch.infrastructure.db.repositories import ListingRepository, SyncRunRepository
from agilwatch.infrastructure.observability import get_logger, log_context, log_exception

from .access import AccessModeController, DetailFetcher

logger = get_logger(__name__)

DEFAULT_BACKFILL_LIMIT = 150
MAX_BACKFILL_LIMIT = 500


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_BACKFILL_LIMIT
    return max(1, min(int(limit), MAX_BACKFILL_LIMIT))


@dataclass
class BackfillResult:
    run_id: Optional[int]
    status: str
    pending: int = 0
    processed: int = 0
    updated: int = 0
    dry_run: bool = False
    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


class LineItemBackfill:
    """Re-fetch detail in authenticated mode for listings lacking line items.

    Only responses that actually carry line items are written back.
    """

    def __init__(
        self,
        *,
        detail_client: DetailFetcher,
        controller: AccessModeController,
        listings: ListingRepository,
        runs: SyncRunRepository | None = None,
        limit: int | None = None,
        dry_run: bool = False,
    ) -> None:
        self._detail = detail_client
        self._controller = controller
        self._listings = listings
        self._runs = runs
        self.limit = clamp_limit(limit)
        self.dry_run = dry_run

    async def run(self) -> BackfillResult:
        run_id = self._runs.start(kind="backfill", dry_run=self.dry_run) if self._runs else None
        result = BackfillResult(run_id=run_id, status="running", dry_run=self.dry_run)
        started = time.perf_counter()
        with log_context(backfill_run_id=run_id):
            codes = self._listings.list_missing_line_items(self.limit)
            result.pending = len(codes)
            if not codes:
                logger.info("No listings pending line items")
            for code in codes:
                result.processed += 1
                with log_context(code=code):
                    detail = await self._fetch(code, result)
                    if detail is None or not detail.line_items:
                        continue
                    if self.dry_run:
                        result.updated += 1
                        continue
                    try:
                        if self._listings.update_detail(code, detail, DetailSource.AUTHENTICATED):
                            result.updated += 1
                    except PersistenceError as exc:
                        result.errors.append(str(exc))
                        log_exception(logger, "Backfill update failed", exc, code=code)
            result.status = "success"
            result.duration_seconds = time.perf_counter() - started
            logger.info(
                "Backfill finished: %d processed, %d updated of %d pending",
                result.processed,
                result.updated,
                result.pending,
            )
        if self._runs is not None and run_id is not None:
            try:
                self._runs.finish(
                    run_id,
                    status=result.status,
                    items_seen=result.pending,
                    items_enriched=result.updated,
                    items_upserted=0 if self.dry_run else result.updated,
                    circuit_state=self._controller.state.value,
                    error_count=len(result.errors),
                    notes="; ".join(result.errors) or None,
                )
            except PersistenceError as exc:
                log_exception(logger, "Failed to record backfill run", exc, run_id=run_id)
        return result

    async def _fetch(self, code: str, result: BackfillResult) -> DetailRecord | None:
        for attempt in (1, 2):
            try:
                credential = await self._controller.credential(code)
            except CredentialCaptureError as exc:
                result.errors.append(str(exc))
                logger.warning("Skipping %s: %s", code, exc)
                return None
            try:
                return await self._detail.fetch_authenticated(code, credential)
            except AuthRequired as exc:
                self._controller.discard(credential)
                if attempt == 1:
                    logger.info("Credential rejected for %s, capturing a new one", code)
                    continue
                result.errors.append(str(exc))
                logger.warning("Skipping %s after credential renewal: %s", code, exc)
            except DetailError as exc:
                result.errors.append(str(exc))
                logger.warning("Skipping %s: %s", code, exc)
                return None
        return None


__all__ = [
    "BackfillResult",
    "DEFAULT_BACKFILL_LIMIT",
    "LineItemBackfill",
    "MAX_BACKFILL_LIMIT",
    "clamp_limit",
]
