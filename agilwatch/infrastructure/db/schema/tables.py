from __future__ import annotations

SCHEMA_VERSION_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);
"""

SCHEMA_MIGRATIONS_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    applied_at TEXT NOT NULL,
    notes TEXT
);
"""

SCHEMA_LISTINGS_SQL = """
CREATE TABLE IF NOT EXISTS listings (
    code TEXT PRIMARY KEY,
    title TEXT,
    organism TEXT NOT NULL DEFAULT 'No especificado',
    amount REAL NOT NULL DEFAULT 0,
    publish_date TEXT,
    close_date TEXT,
    status TEXT,
    url TEXT,
    raw_json TEXT,
    description TEXT,
    delivery_term TEXT,
    delivery_address TEXT,
    line_items_json TEXT,
    detail_json TEXT,
    detail_source TEXT,
    detail_fetched_at TEXT,
    first_seen_at TEXT NOT NULL,
    last_seen_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_listings_last_seen_at ON listings (last_seen_at);
"""

SCHEMA_APP_STATE_SQL = """
CREATE TABLE IF NOT EXISTS app_state (
    key TEXT PRIMARY KEY,
    value TEXT,
    updated_at TEXT
);
"""

SCHEMA_SYNC_RUNS_SQL = """
CREATE TABLE IF NOT EXISTS sync_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL DEFAULT 'sync',
    started_at TEXT NOT NULL,
    finished_at TEXT,
    status TEXT,
    start_page INTEGER,
    end_page INTEGER,
    total_pages INTEGER,
    next_cursor INTEGER,
    pages_fetched INTEGER DEFAULT 0,
    items_seen INTEGER DEFAULT 0,
    items_enriched INTEGER DEFAULT 0,
    items_upserted INTEGER DEFAULT 0,
    circuit_state TEXT,
    dry_run INTEGER,
    error_count INTEGER DEFAULT 0,
    notes TEXT
);
CREATE INDEX IF NOT EXISTS idx_sync_runs_started_at ON sync_runs (started_at);
"""
