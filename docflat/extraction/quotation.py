from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence

from docflat.models.field_record import FieldRecord
from docflat.models.product import LineItem, QuotationTotals

from .extractor import extract, parse_price
from .keywords import PRICE_KEYWORDS, contains_any
from .line_items import project

"""Quotation helpers: records -> line items, and the totals block."""

__all__ = [
    "build_line_items",
    "naive_line_items",
    "calculate_totals",
]

logger = logging.getLogger(__name__)


def naive_line_items(records: Iterable[FieldRecord]) -> list[LineItem]:
    """One line item per record; price only when the field is price-tagged."""
    stamp = int(time.time() * 1000)
    items: list[LineItem] = []
    for record in records:
        if record.is_sheet_marker:
            continue
        price = 0.0
        if contains_any(record.field_name.lower(), PRICE_KEYWORDS):
            parsed, _ = parse_price(record.field_value, record.field_name)
            price = parsed or 0.0
        i = len(items)
        items.append(
            LineItem(
                id=f"item-{stamp}-{i}",
                no=i + 1,
                description=f"{record.field_name}: {record.field_value}",
                quantity=1,
                unit="Each",
                price=price,
                total=price,
            )
        )
    return items


def build_line_items(records: Sequence[FieldRecord]) -> list[LineItem]:
    products = extract(records)
    if products:
        return project(products)
    logger.info("no products extracted from %d records, using one line item per record", len(records))
    return naive_line_items(records)


def calculate_totals(line_items: Iterable[LineItem], markup_rate: float = 0.0) -> QuotationTotals:
    """markup_rate is a percentage; the markup is folded into the total, never itemised."""
    subtotal = sum(item.total for item in line_items)
    markup_amount = subtotal * (markup_rate / 100)
    return QuotationTotals(subtotal=subtotal, markup_amount=markup_amount, total_amount=subtotal + markup_amount)
