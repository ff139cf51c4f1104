"""SyncService wiring with the HTTP pipeline replaced by fakes."""

import asyncio
from contextlib import asynccontextmanager

from agilwatch.app.config import SyncSettings
from agilwatch.services.sync_service import Pipeline, SyncService
from tests.support import FakeCredentialSource, FakeDetailClient, FakeListingSource


def _service(tmp_path, monkeypatch, source, client=None, settings=None):
    credentials = FakeCredentialSource()
    service = SyncService(
        settings=settings or SyncSettings(batch_size=2, retry_backoff_base=0.0),
        db_path=tmp_path / "service.db",
    )

    @asynccontextmanager
    async def fake_pipeline(effective_settings):
        service.last_settings = effective_settings
        yield Pipeline(
            listing_client=source,
            detail_client=client or FakeDetailClient(),
            credential_source=credentials,
        )

    monkeypatch.setattr(service, "open_pipeline", fake_pipeline)
    return service


def test_run_sync_moves_cursor_and_reports_status(tmp_path, monkeypatch):
    service = _service(tmp_path, monkeypatch, FakeListingSource(5))

    summary = asyncio.run(service.run_sync())

    assert summary.succeeded
    assert summary.result.processed_pages == "1-2"
    status = service.status()
    assert status["cursor"] == 2
    assert status["next_start_page"] == 3
    assert status["listings"] == 4
    assert status["recent_runs"][0]["status"] == "success"


def test_run_sync_applies_overrides(tmp_path, monkeypatch):
    service = _service(tmp_path, monkeypatch, FakeListingSource(5))

    summary = asyncio.run(service.run_sync(batch_size=4, throttle_per_host=None))

    assert service.last_settings.batch_size == 4
    assert summary.result.end_page == 4


def test_failed_run_carries_error(tmp_path, monkeypatch):
    service = _service(tmp_path, monkeypatch, FakeListingSource(5, failing={1}))

    summary = asyncio.run(service.run_sync())

    assert summary.status == "failed"
    assert "Listing page 1 unavailable" in summary.error
    assert summary.to_dict()["type"] == "sync_finished"


def test_reset_cursor(tmp_path, monkeypatch):
    service = _service(tmp_path, monkeypatch, FakeListingSource(5))

    service.reset_cursor(3)

    assert service.status()["next_start_page"] == 4


def test_run_backfill_summary(tmp_path, monkeypatch):
    service = _service(tmp_path, monkeypatch, FakeListingSource(1))
    asyncio.run(service.run_sync())

    summary = asyncio.run(service.run_backfill(limit=10))

    assert summary.kind == "backfill"
    assert summary.succeeded
    assert summary.to_dict()["result"]["pending"] == 0
