"""Exception taxonomy shared by the sync pipeline.

Listing failures are page scoped, detail and capture failures are item
scoped, and persistence failures abort the run.
"""

from __future__ import annotations


class AgilwatchError(Exception):
    """Base class for all Agilwatch errors."""


class SourceUnavailable(AgilwatchError):
    """Raised when a listing page cannot be fetched or decoded."""

    def __init__(self, page_number: int, reason: str, *, status: int | None = None) -> None:
        super().__init__(f"Listing page {page_number} unavailable: {reason}")
        self.page_number = page_number
        self.reason = reason
        self.status = status


class DetailError(AgilwatchError):
    """Base class for per-item detail fetch failures."""

    def __init__(self, code: str, message: str, *, status: int | None = None) -> None:
        super().__init__(f"Detail {code}: {message}")
        self.code = code
        self.status = status


class AuthRequired(DetailError):
    """The detail endpoint rejected the request with 401/403."""


class InvalidShape(DetailError):
    """The detail response is malformed or semantically incomplete."""


class DetailUnavailable(DetailError):
    """Transient failure: transport error, timeout or non-auth HTTP error."""


class CredentialCaptureError(AgilwatchError):
    """Credential capture failed."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"Credential capture for {code} failed: {message}")
        self.code = code


class CaptureTimeout(CredentialCaptureError):
    """No qualifying detail request was observed within the capture timeout."""


class PersistenceError(AgilwatchError):
    """Raised when the upsert target or cursor store cannot be written."""


__all__ = [
    "AgilwatchError",
    "AuthRequired",
    "CaptureTimeout",
    "CredentialCaptureError",
    "DetailError",
    "DetailUnavailable",
    "InvalidShape",
    "PersistenceError",
    "SourceUnavailable",
]
