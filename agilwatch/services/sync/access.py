"""Per-run access-mode controller for detail enrichment.

One instance lives for exactly one run. It owns the circuit state, the
consecutive public-failure counter and the captured credential; none of
these outlive the run.

Public mode is probed once on a representative item. While the circuit is
closed each item is tried publicly first and falls back to authenticated
mode on failure. Reaching ``failure_threshold`` consecutive public failures
opens the circuit, and an open circuit never closes again within the run.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Protocol

from agilwatch.domain.models import (
    AccessCredential,
    CircuitState,
    DetailRecord,
    DetailSource,
    EnrichedRecord,
    ListingRecord,
)
from agilwatch.errors import (
    AuthRequired,
    CredentialCaptureError,
    DetailError,
    DetailUnavailable,
    InvalidShape,
)
from agilwatch.infrastructure.browser import CredentialSource
from agilwatch.infrastructure.observability import get_logger, record_circuit_trip

logger = get_logger(__name__)

DEFAULT_FAILURE_THRESHOLD = 2


class DetailFetcher(Protocol):
    async def fetch_public(self, code: str) -> DetailRecord: ...

    async def fetch_authenticated(
        self, code: str, credential: AccessCredential
    ) -> DetailRecord: ...


@dataclass
class AccessStats:
    """Counters describing how items were enriched during a run."""

    public_enriched: int = 0
    authenticated_enriched: int = 0
    public_failures: int = 0
    authenticated_failures: int = 0
    stored_bare: int = 0
    credential_captures: int = 0
    reacquisitions: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class AccessModeController:
    """Circuit breaker plus single-flight credential holder for one run."""

    def __init__(
        self,
        detail_client: DetailFetcher,
        credential_source: CredentialSource,
        *,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self._detail = detail_client
        self._source = credential_source
        self.failure_threshold = failure_threshold
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._credential: AccessCredential | None = None
        self._pending: asyncio.Task[AccessCredential] | None = None
        self._probe_results: dict[str, DetailRecord] = {}
        self.stats = AccessStats()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failures(self) -> int:
        """Consecutive public-mode failures since the last public success."""
        return self._failures

    def _open(self, reason: str) -> None:
        if self._state is CircuitState.OPEN:
            return
        self._state = CircuitState.OPEN
        record_circuit_trip()
        logger.warning("Public detail mode disabled for this run: %s", reason)

    async def probe(self, code: str) -> CircuitState:
        """Try public mode once on ``code`` and set the initial circuit state.

        A successful probe result is kept and reused when ``code`` is enriched.
        """
        try:
            detail = await self._detail.fetch_public(code)
        except DetailError as exc:
            logger.info("Public probe failed for %s: %s", code, exc)
            self._open(f"probe on {code} failed")
            return self._state
        self._probe_results[code] = detail
        self._state = CircuitState.CLOSED
        logger.info("Public probe succeeded for %s", code)
        return self._state

    async def credential(self, code_hint: str) -> AccessCredential:
        """Return the held credential, capturing one if needed.

        Concurrent callers share a single in-flight capture. A failed capture
        is not remembered, so a later caller starts a fresh one.
        """
        if self._credential is not None:
            return self._credential
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._acquire(code_hint))
        return await asyncio.shield(self._pending)

    async def _acquire(self, code_hint: str) -> AccessCredential:
        try:
            credential = await self._source.acquire(code_hint)
            self._credential = credential
            self.stats.credential_captures += 1
            return credential
        finally:
            self._pending = None

    def discard(self, credential: AccessCredential) -> None:
        """Forget ``credential`` unless it has already been replaced."""
        if self._credential is credential:
            self._credential = None

    async def enrich(self, listing: ListingRecord) -> EnrichedRecord:
        """Enrich one listing. Never raises for per-item failures."""
        code = listing.code
        probed = self._probe_results.pop(code, None)
        if probed is not None:
            self._failures = 0
            self.stats.public_enriched += 1
            return EnrichedRecord(listing=listing, detail=probed, detail_source=DetailSource.PUBLIC)

        if self._state.trusts_public:
            try:
                detail = await self._detail.fetch_public(code)
            except (AuthRequired, InvalidShape) as exc:
                self.stats.public_failures += 1
                self._failures += 1
                logger.warning(
                    "Public detail failed for %s (%d/%d): %s",
                    code,
                    self._failures,
                    self.failure_threshold,
                    exc,
                )
                if self._failures >= self.failure_threshold:
                    self._open(f"{self._failures} consecutive public failures")
            except DetailUnavailable as exc:
                self.stats.public_failures += 1
                logger.warning("Public detail unavailable for %s: %s", code, exc)
            else:
                self._failures = 0
                self.stats.public_enriched += 1
                return EnrichedRecord(listing=listing, detail=detail, detail_source=DetailSource.PUBLIC)

        return await self._enrich_authenticated(listing)

    async def _enrich_authenticated(self, listing: ListingRecord) -> EnrichedRecord:
        code = listing.code
        for attempt in (1, 2):
            try:
                credential = await self.credential(code)
            except CredentialCaptureError as exc:
                logger.warning("Storing %s without detail: %s", code, exc)
                break
            try:
                detail = await self._detail.fetch_authenticated(code, credential)
            except AuthRequired as exc:
                self.discard(credential)
                if attempt == 1:
                    self.stats.reacquisitions += 1
                    logger.info("Credential rejected for %s, capturing a new one", code)
                    continue
                self.stats.authenticated_failures += 1
                logger.warning("Storing %s without detail: %s", code, exc)
                break
            except DetailError as exc:
                self.stats.authenticated_failures += 1
                logger.warning("Storing %s without detail: %s", code, exc)
                break
            self.stats.authenticated_enriched += 1
            return EnrichedRecord(
                listing=listing, detail=detail, detail_source=DetailSource.AUTHENTICATED
            )
        self.stats.stored_bare += 1
        return EnrichedRecord.bare(listing)


__all__ = [
    "AccessModeController",
    "AccessStats",
    "DEFAULT_FAILURE_THRESHOLD",
    "DetailFetcher",
]
