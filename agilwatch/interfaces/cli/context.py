"""Shared helpers for composing CLI command contexts."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from agilwatch.app.config import SyncSettings, load_settings
from agilwatch.infrastructure.db import get_path_config
from agilwatch.services.sync_service import SyncService


@dataclass(frozen=True)
class CLIContext:
    """Resolved database path and settings for one command invocation."""

    db_path: Path
    settings: SyncSettings
    config_path: Path | None = None

    def service(self) -> SyncService:
        return SyncService(
            settings=self.settings, db_path=self.db_path, config_path=self.config_path
        )


def build_cli_context(
    db_path: str | Path | None = None,
    config_path: str | Path | None = None,
    **overrides: object,
) -> CLIContext:
    """Resolve the database path and load settings with CLI overrides applied.

    ``--db`` wins over ``paths.db_path`` from the chosen config file.
    """
    resolved_config = Path(config_path).expanduser() if config_path is not None else None
    resolved_db_path = (
        Path(db_path).expanduser()
        if db_path is not None
        else get_path_config(resolved_config)["db_path"]
    )
    settings = load_settings(resolved_config).with_overrides(**overrides)
    return CLIContext(db_path=resolved_db_path, settings=settings, config_path=resolved_config)
