from __future__ import annotations

import json
import sqlite3
from typing import Any, Sequence

from agilwatch.domain.models import DetailRecord, DetailSource, EnrichedRecord
from agilwatch.errors import PersistenceError

from ..connection import iso_utcnow
from .base import BaseRepository

# Listing columns are replaced on conflict; detail columns are merged so an
# un-enriched record never clears detail captured by an earlier run.
_UPSERT_SQL = """
INSERT INTO listings (
    code, title, organism, amount, publish_date, close_date, status, url,
    raw_json, description, delivery_term, delivery_address, line_items_json,
    detail_json, detail_source, detail_fetched_at, first_seen_at, last_seen_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(code) DO UPDATE SET
    title = excluded.title,
    organism = excluded.organism,
    amount = excluded.amount,
    publish_date = excluded.publish_date,
    close_date = excluded.close_date,
    status = excluded.status,
    url = excluded.url,
    raw_json = excluded.raw_json,
    description = COALESCE(excluded.description, listings.description),
    delivery_term = COALESCE(excluded.delivery_term, listings.delivery_term),
    delivery_address = COALESCE(excluded.delivery_address, listings.delivery_address),
    line_items_json = COALESCE(excluded.line_items_json, listings.line_items_json),
    detail_json = COALESCE(excluded.detail_json, listings.detail_json),
    detail_source = COALESCE(excluded.detail_source, listings.detail_source),
    detail_fetched_at = COALESCE(excluded.detail_fetched_at, listings.detail_fetched_at),
    last_seen_at = excluded.last_seen_at
"""

_SELECT_COLUMNS = """
    code, title, organism, amount, publish_date, close_date, status, url,
    description, delivery_term, delivery_address, line_items_json,
    detail_source, detail_fetched_at, first_seen_at, last_seen_at
"""


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def _line_items_json(detail: DetailRecord) -> str:
    return _dumps([item.to_dict() for item in detail.line_items])


def _decode_row(row: dict[str, Any] | None) -> dict[str, Any] | None:
    if row is None:
        return None
    raw_items = row.pop("line_items_json", None)
    row["line_items"] = json.loads(raw_items) if raw_items else None
    return row


class ListingRepository(BaseRepository):
    """Keyed upsert target for enriched listings."""

    def upsert(self, records: Sequence[EnrichedRecord]) -> int:
        """Merge ``records`` into ``listings`` in one transaction.

        Returns:
            Number of records written.

        Raises:
            PersistenceError: If the write fails; nothing is committed.
        """
        if not records:
            return 0
        now = iso_utcnow()
        rows = [self._row(record, now) for record in records]
        try:
            self.conn.executemany(_UPSERT_SQL, rows)
            self.conn.commit()
        except sqlite3.Error as exc:
            self.conn.rollback()
            raise PersistenceError(f"Failed to upsert {len(rows)} listings: {exc}") from exc
        return len(rows)

    def _row(self, record: EnrichedRecord, now: str) -> tuple[Any, ...]:
        listing = record.listing
        detail = record.detail
        source = record.detail_source.value if record.detail_source else None
        return (
            listing.code,
            listing.title,
            listing.organism,
            listing.amount,
            listing.publish_date,
            listing.close_date,
            listing.status,
            listing.url,
            _dumps(dict(listing.raw)),
            detail.description if detail else None,
            detail.delivery_term if detail else None,
            detail.delivery_address if detail else None,
            _line_items_json(detail) if detail else None,
            _dumps(dict(detail.raw)) if detail else None,
            source if detail else None,
            now if detail else None,
            now,
            now,
        )

    def update_detail(self, code: str, detail: DetailRecord, source: DetailSource) -> bool:
        """Overwrite the detail columns of an existing listing."""
        try:
            cur = self._execute(
                """
                UPDATE listings SET
                    description = COALESCE(?, description),
                    delivery_term = COALESCE(?, delivery_term),
                    delivery_address = COALESCE(?, delivery_address),
                    line_items_json = ?,
                    detail_json = ?,
                    detail_source = ?,
                    detail_fetched_at = ?
                WHERE code = ?
                """,
                (
                    detail.description,
                    detail.delivery_term,
                    detail.delivery_address,
                    _line_items_json(detail),
                    _dumps(dict(detail.raw)),
                    source.value,
                    iso_utcnow(),
                    code,
                ),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            self.conn.rollback()
            raise PersistenceError(f"Failed to update detail for {code}: {exc}") from exc
        return cur.rowcount > 0

    def get(self, code: str) -> dict[str, Any] | None:
        return _decode_row(
            self._fetch_one_as_dict(f"SELECT {_SELECT_COLUMNS} FROM listings WHERE code = ?", (code,))
        )

    def count(self) -> int:
        return int(self._fetch_scalar("SELECT COUNT(*) FROM listings") or 0)

    def list_listings(self, *, limit: int | None = None) -> list[dict[str, Any]]:
        query = f"SELECT {_SELECT_COLUMNS} FROM listings ORDER BY code"
        params: tuple[Any, ...] = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        return [_decode_row(row) for row in self._fetch_all_as_dicts(query, params)]

    def count_missing_line_items(self) -> int:
        return int(
            self._fetch_scalar(
                "SELECT COUNT(*) FROM listings "
                "WHERE line_items_json IS NULL OR line_items_json = '[]'"
            )
            or 0
        )

    def list_missing_line_items(self, limit: int) -> list[str]:
        """Codes of the most recently seen listings without stored line items."""
        rows = self._execute(
            """
            SELECT code FROM listings
            WHERE line_items_json IS NULL OR line_items_json = '[]'
            ORDER BY last_seen_at DESC, code
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [row[0] for row in rows]
