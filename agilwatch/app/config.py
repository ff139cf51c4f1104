"""Configuration utilities for Agilwatch.

Settings come from the ``"sync"`` section of ``config.json`` and are
validated into :class:`SyncSettings`. Command-line flags override single
fields through :meth:`SyncSettings.with_overrides`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

from agilwatch.infrastructure.db.config import load_config

DEFAULT_API_URL = "https://api.buscador.mercadopublico.cl/compra-agil"
DEFAULT_DETAIL_PAGE_URL = "https://buscador.mercadopublico.cl/ficha"
DEFAULT_REFERER = "https://buscador.mercadopublico.cl/"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36"
)
DEFAULT_CURSOR_KEY = "listing_sync_cursor"


class SyncSettings(BaseModel):
    """Tunables for one sync run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    batch_size: int = Field(default=20, ge=1)
    failure_threshold: int = Field(default=2, ge=1)
    max_concurrent_requests: int = Field(default=5, ge=1)
    page_retries: int = Field(default=1, ge=0)
    retry_backoff_base: float = Field(default=0.5, ge=0)
    throttle_per_host: float | None = Field(default=None, gt=0)
    listing_timeout_seconds: float = Field(default=30.0, gt=0)
    detail_timeout_seconds: float = Field(default=30.0, gt=0)
    capture_timeout_seconds: float = Field(default=45.0, gt=0)
    lookback_days: int = Field(default=30, ge=0)
    listing_status: str = "2"
    order_by: str = "recent"
    api_url: str = DEFAULT_API_URL
    detail_page_url: str = DEFAULT_DETAIL_PAGE_URL
    referer: str = DEFAULT_REFERER
    api_key: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
    headless: bool = True
    cursor_key: str = DEFAULT_CURSOR_KEY
    cron_secret: str | None = None

    def with_overrides(self, **overrides: Any) -> "SyncSettings":
        """Return a copy with every non-``None`` override applied."""
        updates = {key: value for key, value in overrides.items() if value is not None}
        if not updates:
            return self
        return SyncSettings.model_validate({**self.model_dump(), **updates})

    def request_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json, text/plain, */*",
            "User-Agent": self.user_agent,
            "Referer": self.referer,
        }


def load_settings(config_path: Path | str | None = None) -> SyncSettings:
    """Load :class:`SyncSettings` from the ``sync`` section of ``config.json``.

    Args:
        config_path: Optional explicit path; defaults to the project config.

    Returns:
        Validated settings (defaults when the file or section is missing).
    """
    cfg: Dict[str, Any] = load_config(config_path)
    section = cfg.get("sync", {}) if isinstance(cfg, dict) else {}
    return SyncSettings.model_validate(section or {})


__all__ = [
    "DEFAULT_API_URL",
    "DEFAULT_CURSOR_KEY",
    "DEFAULT_DETAIL_PAGE_URL",
    "SyncSettings",
    "load_config",
    "load_settings",
]
