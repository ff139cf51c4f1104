"""Service layer modules for Agilwatch."""

from .sync import *  # noqa: F401,F403
from .sync_service import SyncRunSummary, SyncService  # noqa: F401

__all__ = ["SyncRunSummary", "SyncService"] + [
    name
    for name in dir()
    if not name.startswith("_") and name not in {"SyncRunSummary", "SyncService"}
]
