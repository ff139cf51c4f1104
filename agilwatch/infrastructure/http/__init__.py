"""HTTP clients for the listing search and detail endpoints."""

from .detail_client import DetailClient, classify_result, validate_detail_body
from .fetcher import JsonFetcher, JsonResult, RateLimiter
from .listing_client import (
    ListingSourceClient,
    build_listing_filter,
    listing_window,
    parse_listing_payload,
)

__all__ = [
    "DetailClient",
    "JsonFetcher",
    "JsonResult",
    "ListingSourceClient",
    "RateLimiter",
    "build_listing_filter",
    "classify_result",
    "listing_window",
    "parse_listing_payload",
    "validate_detail_body",
]
