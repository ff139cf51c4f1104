"""Listing and detail domain models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping
from urllib.parse import quote

DETAIL_PAGE_URL = "https://buscador.mercadopublico.cl/ficha"
DEFAULT_ORGANISM = "No especificado"


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _number(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class DetailSource(str, Enum):
    """Access mode that produced a detail record."""

    PUBLIC = "public"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class ListingFilter:
    """Query filter for one page of the listing search."""

    date_from: str
    date_to: str
    page_number: int = 1
    order_by: str = "recent"
    status: str = "2"

    def for_page(self, page_number: int) -> "ListingFilter":
        return replace(self, page_number=page_number)

    def to_params(self) -> dict[str, str]:
        return {
            "date_from": self.date_from,
            "date_to": self.date_to,
            "order_by": self.order_by,
            "status": self.status,
            "page_number": str(self.page_number),
        }


@dataclass(frozen=True)
class ListingRecord:
    """One summary record returned by the paginated listing search.

    ``code`` is the natural key assigned by the source. The record is
    immutable once fetched; ``raw`` keeps the untouched source payload.
    """

    code: str
    title: str | None = None
    organism: str = DEFAULT_ORGANISM
    amount: float = 0.0
    publish_date: str | None = None
    close_date: str | None = None
    status: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ListingRecord | None":
        """Build a record from a source item, or ``None`` when it has no code."""
        code = _text(payload.get("codigo"))
        if code is None:
            return None
        return cls(
            code=code,
            title=_text(payload.get("nombre")),
            organism=_text(payload.get("organismo")) or DEFAULT_ORGANISM,
            amount=_number(payload.get("monto_disponible_CLP")) or 0.0,
            publish_date=_text(payload.get("fecha_publicacion")),
            close_date=_text(payload.get("fecha_cierre")),
            status=_text(payload.get("estado")),
            raw=dict(payload),
        )

    @property
    def url(self) -> str:
        """Public detail page for this listing."""
        return f"{DETAIL_PAGE_URL}?code={quote(self.code)}"


@dataclass(frozen=True)
class ListingPage:
    """Items of one listing page plus the page count reported by the source."""

    page_number: int
    items: tuple[ListingRecord, ...]
    total_pages: int


@dataclass(frozen=True)
class LineItem:
    """A requested product line within a detail record."""

    name: str | None = None
    description: str | None = None
    quantity: float | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "LineItem":
        return cls(
            name=_text(payload.get("nombre")),
            description=_text(payload.get("descripcion")),
            quantity=_number(payload.get("cantidad")),
            raw=dict(payload),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "quantity": self.quantity,
        }


@dataclass(frozen=True)
class DetailRecord:
    """Per-item detail: description, delivery terms and ordered line items."""

    description: str | None = None
    delivery_term: str | None = None
    delivery_address: str | None = None
    line_items: tuple[LineItem, ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "DetailRecord":
        products = payload.get("productos_solicitados") or []
        if not isinstance(products, list):
            products = []
        return cls(
            description=_text(payload.get("descripcion")),
            delivery_term=_text(payload.get("plazo_entrega")),
            delivery_address=_text(payload.get("direccion_entrega")),
            line_items=tuple(
                LineItem.from_payload(item) for item in products if isinstance(item, Mapping)
            ),
            raw=dict(payload),
        )


@dataclass(frozen=True)
class EnrichedRecord:
    """A listing with its detail merged in, when the detail fetch succeeded."""

    listing: ListingRecord
    detail: DetailRecord | None = None
    detail_source: DetailSource | None = None

    @property
    def code(self) -> str:
        return self.listing.code

    @property
    def is_enriched(self) -> bool:
        return self.detail is not None

    @classmethod
    def bare(cls, listing: ListingRecord) -> "EnrichedRecord":
        return cls(listing=listing)


__all__ = [
    "DEFAULT_ORGANISM",
    "DETAIL_PAGE_URL",
    "DetailRecord",
    "DetailSource",
    "EnrichedRecord",
    "LineItem",
    "ListingFilter",
    "ListingPage",
    "ListingRecord",
]
