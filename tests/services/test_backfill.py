import asyncio
import sqlite3

import pytest

from agilwatch.domain.models import DetailSource, EnrichedRecord
from agilwatch.errors import AuthRequired, DetailUnavailable
from agilwatch.infrastructure.db.repositories import ListingRepository, SyncRunRepository
from agilwatch.services.sync import AccessModeController, LineItemBackfill, clamp_limit
from tests.support import FakeCredentialSource, FakeDetailClient, detail, listing


@pytest.fixture
def repo(tmp_path):
    connection = sqlite3.connect(tmp_path / "backfill.db")
    repository = ListingRepository(connection)
    repository.upsert([EnrichedRecord.bare(listing(code)) for code in ("A", "B", "C")])
    repository.upsert(
        [
            EnrichedRecord(
                listing=listing("DONE"), detail=detail(), detail_source=DetailSource.PUBLIC
            )
        ]
    )
    yield repository
    connection.close()


def _backfill(repo, client, credentials=None, **kwargs):
    credentials = credentials or FakeCredentialSource()
    return LineItemBackfill(
        detail_client=client,
        controller=AccessModeController(client, credentials),
        listings=repo,
        runs=SyncRunRepository(repo.conn),
        **kwargs,
    )


def test_clamp_limit():
    assert clamp_limit(None) == 150
    assert clamp_limit(1000) == 500
    assert clamp_limit(0) == 1
    assert clamp_limit(42) == 42


def test_backfill_updates_only_listings_that_gain_line_items(repo):
    client = FakeDetailClient(
        authenticated=lambda code, token: detail(items=0) if code == "B" else detail(f"auth {code}")
    )
    credentials = FakeCredentialSource()

    result = asyncio.run(_backfill(repo, client, credentials).run())

    assert result.status == "success"
    assert (result.pending, result.processed, result.updated) == (3, 3, 2)
    assert repo.list_missing_line_items(10) == ["B"]
    assert repo.get("A")["detail_source"] == "authenticated"
    assert client.public_calls == []
    assert len(credentials.calls) == 1


def test_backfill_recaptures_on_rejected_credential(repo):
    client = FakeDetailClient(
        authenticated=lambda code, token: AuthRequired(code, "HTTP 401")
        if token == "tok-1"
        else detail(f"auth {code}")
    )
    credentials = FakeCredentialSource()

    result = asyncio.run(_backfill(repo, client, credentials).run())

    assert result.updated == 3
    assert len(credentials.calls) == 2


def test_backfill_skips_failed_items(repo):
    client = FakeDetailClient(
        authenticated=lambda code, token: DetailUnavailable(code, "HTTP 500")
        if code == "A"
        else detail()
    )

    result = asyncio.run(_backfill(repo, client).run())

    assert result.updated == 2
    assert len(result.errors) == 1
    assert repo.list_missing_line_items(10) == ["A"]


def test_backfill_respects_limit_and_dry_run(repo):
    client = FakeDetailClient()

    result = asyncio.run(_backfill(repo, client, limit=2, dry_run=True).run())

    assert result.pending == 2
    assert result.updated == 2
    assert repo.count_missing_line_items() == 3


def test_backfill_with_nothing_pending(repo):
    asyncio.run(_backfill(repo, FakeDetailClient()).run())
    credentials = FakeCredentialSource()

    result = asyncio.run(_backfill(repo, FakeDetailClient(), credentials).run())

    assert result.pending == 0
    assert credentials.calls == []
