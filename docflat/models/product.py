from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Product / quotation models.

ExtractedProduct is transient: built per extraction request from a group of
FieldRecords and immediately projected into LineItem entries.

specs is an extensible mapping (category -> text). The fifteen technical
categories are the usual keys, but nothing restricts the key set.
"""

__all__ = [
    "ExtractedProduct",
    "LineItem",
    "QuotationTotals",
]


@dataclass
class ExtractedProduct:
    name: str | None = None
    model: str | None = None
    brand: str | None = None
    category: str | None = None
    price: float | None = None
    currency: str | None = None
    specs: dict[str, str] = field(default_factory=dict)
    description: str | None = None
    confidence: float | None = None  # 0-100, extraction quality estimate

    def is_empty(self) -> bool:
        return not (
            self.name
            or self.model
            or self.brand
            or self.category
            or self.price is not None
            or self.specs
            or self.description
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"specs": dict(self.specs)}
        for key in ("name", "model", "brand", "category", "price", "currency", "description", "confidence"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


@dataclass(frozen=True)
class LineItem:
    """Quotation-ready billable entry."""
    id: str
    no: int
    description: str
    quantity: float
    unit: str
    price: float
    total: float
    category: str | None = None
    brand: str | None = None
    model: str | None = None
    specs: dict[str, str] | None = None
    confidence: float | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "no": self.no,
            "description": self.description,
            "quantity": self.quantity,
            "unit": self.unit,
            "price": self.price,
            "total": self.total,
        }
        for key in ("category", "brand", "model", "specs", "confidence"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


@dataclass(frozen=True)
class QuotationTotals:
    subtotal: float
    markup_amount: float  # internal only, never shown to the customer
    total_amount: float
