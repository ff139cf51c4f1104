from .app_state import AppStateRepository
from .listings import ListingRepository
from .sync_runs import SyncRunRepository

__all__ = [
    "AppStateRepository",
    "ListingRepository",
    "SyncRunRepository",
]
