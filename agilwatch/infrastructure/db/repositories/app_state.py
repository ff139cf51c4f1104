from __future__ import annotations

import json
import sqlite3
from typing import Any

from agilwatch.domain.models import BatchCursor
from agilwatch.errors import PersistenceError

from ..connection import iso_utcnow
from .base import BaseRepository


class AppStateRepository(BaseRepository):
    """Named JSON values that survive between runs (e.g. the page cursor)."""

    def _scalar(self, column: str, key: str) -> Any:
        try:
            return self._fetch_scalar(f"SELECT {column} FROM app_state WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read state '{key}': {exc}") from exc

    def get(self, key: str) -> dict[str, Any] | None:
        raw = self._scalar("value", key)
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            return None
        return value if isinstance(value, dict) else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        try:
            self._execute(
                "INSERT INTO app_state (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                "updated_at = excluded.updated_at",
                (key, json.dumps(value, sort_keys=True), iso_utcnow()),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            self.conn.rollback()
            raise PersistenceError(f"Failed to write state '{key}': {exc}") from exc

    def updated_at(self, key: str) -> str | None:
        return self._scalar("updated_at", key)

    def read_cursor(self, key: str) -> BatchCursor:
        return BatchCursor.from_state(self.get(key))

    def write_cursor(self, key: str, cursor: BatchCursor) -> None:
        self.set(key, cursor.to_state())
