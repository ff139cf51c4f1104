import sqlite3

import pytest

from agilwatch.domain.models import BatchCursor, DetailSource, EnrichedRecord
from agilwatch.errors import PersistenceError
from agilwatch.infrastructure.db import ensure_schema
from agilwatch.infrastructure.db.repositories import (
    AppStateRepository,
    ListingRepository,
    SyncRunRepository,
)
from agilwatch.infrastructure.db.schema import CURRENT_SCHEMA_VERSION, SchemaMigrator
from tests.support import detail, listing


@pytest.fixture
def conn(tmp_path):
    connection = sqlite3.connect(tmp_path / "store.db")
    yield connection
    connection.close()


def _enriched(code, description="Stored description", source=DetailSource.PUBLIC, **fields):
    return EnrichedRecord(
        listing=listing(code, **fields), detail=detail(description, items=2), detail_source=source
    )


def test_bare_record_does_not_erase_stored_detail(conn):
    repo = ListingRepository(conn)
    repo.upsert([_enriched("C1")])

    repo.upsert([EnrichedRecord.bare(listing("C1", title="Renamed"))])

    row = repo.get("C1")
    assert row["title"] == "Renamed"
    assert row["description"] == "Stored description"
    assert row["detail_source"] == "public"
    assert [item["name"] for item in row["line_items"]] == ["Item 0", "Item 1"]
    assert repo.count() == 1


def test_new_detail_replaces_old_detail(conn):
    repo = ListingRepository(conn)
    repo.upsert([_enriched("C1")])

    repo.upsert([_enriched("C1", "Fresh description", DetailSource.AUTHENTICATED)])

    row = repo.get("C1")
    assert row["description"] == "Fresh description"
    assert row["detail_source"] == "authenticated"


def test_upsert_keeps_first_seen_timestamp(conn):
    repo = ListingRepository(conn)
    repo.upsert([EnrichedRecord.bare(listing("C1"))])
    first_seen = repo.get("C1")["first_seen_at"]

    repo.upsert([EnrichedRecord.bare(listing("C1"))])

    assert repo.get("C1")["first_seen_at"] == first_seen


def test_upsert_failure_raises_persistence_error(conn):
    repo = ListingRepository(conn)
    conn.execute("DROP TABLE listings")

    with pytest.raises(PersistenceError):
        repo.upsert([EnrichedRecord.bare(listing("C1"))])


def test_missing_line_items_query(conn):
    repo = ListingRepository(conn)
    repo.upsert([_enriched("WITH")])
    repo.upsert([EnrichedRecord.bare(listing("BARE"))])
    repo.upsert(
        [
            EnrichedRecord(
                listing=listing("EMPTY"),
                detail=detail(items=0),
                detail_source=DetailSource.AUTHENTICATED,
            )
        ]
    )

    assert sorted(repo.list_missing_line_items(10)) == ["BARE", "EMPTY"]
    assert repo.count_missing_line_items() == 2
    assert len(repo.list_missing_line_items(1)) == 1


def test_update_detail_fills_line_items(conn):
    repo = ListingRepository(conn)
    repo.upsert([EnrichedRecord.bare(listing("C1"))])

    assert repo.update_detail("C1", detail("Backfilled", items=3), DetailSource.AUTHENTICATED)
    assert not repo.update_detail("UNKNOWN", detail(), DetailSource.AUTHENTICATED)

    row = repo.get("C1")
    assert row["description"] == "Backfilled"
    assert len(row["line_items"]) == 3
    assert repo.list_missing_line_items(10) == []


def test_cursor_store_round_trip(conn):
    state = AppStateRepository(conn)

    assert state.read_cursor("cursor") == BatchCursor(0)
    assert state.updated_at("cursor") is None

    state.write_cursor("cursor", BatchCursor(40))
    state.write_cursor("cursor", BatchCursor(0))

    assert state.get("cursor") == {"last_processed_page": 0}
    assert state.updated_at("cursor") is not None


def test_cursor_store_ignores_corrupt_values(conn):
    state = AppStateRepository(conn)
    conn.execute(
        "INSERT INTO app_state (key, value, updated_at) VALUES ('cursor', 'not json', 'x')"
    )

    assert state.read_cursor("cursor") == BatchCursor(0)


def test_schema_is_idempotent(conn):
    ensure_schema(conn)
    ensure_schema(conn)

    migrator = SchemaMigrator(conn)
    assert migrator.get_version() == CURRENT_SCHEMA_VERSION
    columns = {row[1] for row in conn.execute("PRAGMA table_info(listings)")}
    assert {"description", "line_items_json", "detail_source"} <= columns


def test_sync_run_ledger(conn):
    runs = SyncRunRepository(conn)
    run_id = runs.start(kind="backfill", dry_run=True)

    runs.finish(run_id, status="success", items_seen=3)

    row = runs.get(run_id)
    assert row["kind"] == "backfill"
    assert row["dry_run"] == 1
    assert row["items_seen"] == 3
    assert runs.recent(1)[0]["id"] == run_id
    with pytest.raises(ValueError):
        runs.finish(run_id, bogus=1)


def test_sync_run_ledger_errors_are_persistence_errors(conn):
    runs = SyncRunRepository(conn)
    run_id = runs.start()
    conn.execute("DROP TABLE sync_runs")

    with pytest.raises(PersistenceError):
        runs.finish(run_id, status="success")
    with pytest.raises(PersistenceError):
        runs.start()


def test_cursor_read_errors_are_persistence_errors(conn):
    state = AppStateRepository(conn)
    conn.execute("DROP TABLE app_state")

    with pytest.raises(PersistenceError):
        state.read_cursor("cursor")
    with pytest.raises(PersistenceError):
        state.updated_at("cursor")
