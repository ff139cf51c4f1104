from __future__ import annotations

import sqlite3
from typing import Any

from agilwatch.errors import PersistenceError

from ..connection import iso_utcnow
from .base import BaseRepository

_FINISH_FIELDS = (
    "status",
    "start_page",
    "end_page",
    "total_pages",
    "next_cursor",
    "pages_fetched",
    "items_seen",
    "items_enriched",
    "items_upserted",
    "circuit_state",
    "error_count",
    "notes",
)


class SyncRunRepository(BaseRepository):
    """Ledger of sync and backfill runs."""

    def start(self, *, kind: str = "sync", dry_run: bool = False) -> int:
        try:
            cur = self._execute(
                "INSERT INTO sync_runs (kind, started_at, status, dry_run) VALUES (?, ?, ?, ?)",
                (kind, iso_utcnow(), "running", 1 if dry_run else 0),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            self.conn.rollback()
            raise PersistenceError(f"Failed to record {kind} run start: {exc}") from exc
        if cur.lastrowid is None:
            raise PersistenceError("Failed to insert sync_runs record; lastrowid is None")
        return int(cur.lastrowid)

    def finish(self, run_id: int, **fields: Any) -> None:
        unknown = set(fields) - set(_FINISH_FIELDS)
        if unknown:
            raise ValueError(f"Unknown sync_runs fields: {sorted(unknown)}")
        columns = ["finished_at = ?"] + [f"{name} = ?" for name in fields]
        params = [iso_utcnow(), *fields.values(), run_id]
        try:
            self._execute(
                f"UPDATE sync_runs SET {', '.join(columns)} WHERE id = ?", tuple(params)
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            self.conn.rollback()
            raise PersistenceError(f"Failed to finish run {run_id}: {exc}") from exc

    def get(self, run_id: int) -> dict[str, Any] | None:
        return self._fetch_one_as_dict("SELECT * FROM sync_runs WHERE id = ?", (run_id,))

    def recent(self, limit: int = 10) -> list[dict[str, Any]]:
        return self._fetch_all_as_dicts(
            "SELECT * FROM sync_runs ORDER BY id DESC LIMIT ?", (limit,)
        )
