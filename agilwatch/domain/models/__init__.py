"""Domain models package.

This package contains the listing, detail and run-state types for Agilwatch.
"""

from .access import AccessCredential, CircuitState
from .cursor import BatchCursor
from .listing import (DetailRecord, DetailSource, EnrichedRecord, LineItem,
                      ListingFilter, ListingPage, ListingRecord)

__all__ = [
    "AccessCredential",
    "BatchCursor",
    "CircuitState",
    "DetailRecord",
    "DetailSource",
    "EnrichedRecord",
    "LineItem",
    "ListingFilter",
    "ListingPage",
    "ListingRecord",
]
