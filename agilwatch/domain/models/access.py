"""Access-mode domain models: credentials and circuit state."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class CircuitState(str, Enum):
    """Breaker state for the public detail mode within one run."""

    CLOSED = "closed"
    OPEN = "open"

    @property
    def trusts_public(self) -> bool:
        return self is CircuitState.CLOSED


@dataclass(frozen=True)
class AccessCredential:
    """Bearer token plus optional static key captured from a real client.

    The lifetime is decided by the server; a 401/403 response is the only
    signal that the credential has expired.
    """

    token: str
    api_key: str | None = None
    obtained_at: float = field(default_factory=time.time, compare=False)

    @property
    def authorization_header(self) -> str:
        return f"Bearer {self.token}"

    def __repr__(self) -> str:
        return f"AccessCredential(token='{self.token[:6]}…', api_key={'set' if self.api_key else None})"


__all__ = ["AccessCredential", "CircuitState"]
