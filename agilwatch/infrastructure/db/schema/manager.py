from __future__ import annotations

from .migrations import SchemaMigrator
from .tables import SCHEMA_APP_STATE_SQL, SCHEMA_LISTINGS_SQL, SCHEMA_SYNC_RUNS_SQL

# Detail columns added after the first release of the listings table.
_LISTING_DETAIL_COLUMNS = {
    "delivery_term": "TEXT",
    "delivery_address": "TEXT",
    "line_items_json": "TEXT",
    "detail_json": "TEXT",
    "detail_source": "TEXT",
    "detail_fetched_at": "TEXT",
}


def ensure_schema(conn) -> None:
    """Create every Agilwatch table if missing and record the schema version."""

    migrator = SchemaMigrator(conn)
    migrator.ensure_table()
    conn.executescript(SCHEMA_LISTINGS_SQL)
    conn.executescript(SCHEMA_APP_STATE_SQL)
    conn.executescript(SCHEMA_SYNC_RUNS_SQL)
    _ensure_listing_columns(conn, migrator)
    migrator.ensure_current_version()
    conn.commit()


def _ensure_listing_columns(conn, migrator: SchemaMigrator) -> None:
    existing = {row[1] for row in conn.execute("PRAGMA table_info(listings)").fetchall()}
    added_cols: list[str] = []
    for col, col_type in _LISTING_DETAIL_COLUMNS.items():
        if col in existing:
            continue
        conn.execute(f"ALTER TABLE listings ADD COLUMN {col} {col_type}")
        added_cols.append(col)
    if added_cols:
        migration_name = "add_listing_detail_columns_v1"
        if not migrator.has_migration(migration_name):
            migrator.record(migration_name, ",".join(added_cols))
