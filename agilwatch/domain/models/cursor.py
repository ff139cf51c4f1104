"""Persisted page cursor for incremental listing ingestion."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class BatchCursor:
    """Last listing page fully processed by a successful run.

    ``0`` means the next run starts again at page 1.
    """

    last_processed_page: int = 0

    @property
    def start_page(self) -> int:
        return self.last_processed_page + 1

    def window_end(self, batch_size: int, total_pages: int) -> int:
        """Last page of the window that starts at :attr:`start_page`."""
        return min(self.start_page + batch_size - 1, total_pages)

    def advance(self, end_page: int, total_pages: int) -> "BatchCursor":
        """Cursor to persist after processing ``start_page..end_page``.

        Reaching the final page wraps the cursor back to ``0``.
        """
        if end_page >= total_pages:
            return BatchCursor(0)
        return BatchCursor(end_page)

    @classmethod
    def from_state(cls, value: Mapping[str, Any] | None) -> "BatchCursor":
        if not value:
            return cls()
        try:
            page = int(value.get("last_processed_page", 0) or 0)
        except (TypeError, ValueError):
            page = 0
        return cls(max(page, 0))

    def to_state(self) -> dict[str, int]:
        return {"last_processed_page": self.last_processed_page}


__all__ = ["BatchCursor"]
