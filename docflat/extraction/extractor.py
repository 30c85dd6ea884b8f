from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Iterable

from docflat.models.field_record import FieldRecord
from docflat.models.product import ExtractedProduct

from .keywords import (
    BRAND_PATTERNS,
    CURRENCY_RE,
    IDENTITY_KEYWORDS,
    MODEL_PATTERNS,
    NUMBER_RE,
    PRICE_KEYWORDS,
    SPEC_CATEGORIES,
    SPEC_PATTERNS,
    contains_any,
    normalize_currency,
)

"""Specification extractor.

Regroups flattened records into candidate products and classifies each field.

Grouping key: sheetOrNode -> parentContext -> "default" (insertion order kept).

Per record:
    identity field (name / model / brand / category / description) -> identity slot
    otherwise -> first matching spec category (name OR value), " | " accumulation
    value patterns -> fill still-empty spec slots
    price keyword in the name -> price / currency candidate

A field named only by a price keyword ("Price", "Unit Cost") skips the
classification steps and its price wins over fields that merely contain one
("Total Storage"). Brand and model fall back to the group's free text when
no identity field supplied them.

Pure and deterministic: the same records always give the same products.
"""

__all__ = [
    "DEFAULT_GROUP",
    "SPEC_SEPARATOR",
    "group_records",
    "extract",
    "parse_price",
    "score_confidence",
]

logger = logging.getLogger(__name__)

DEFAULT_GROUP = "default"
SPEC_SEPARATOR = " | "
DESCRIPTION_SPEC_LIMIT = 5
DESCRIPTION_VALUE_LIMIT = 100

IDENTITY_WEIGHTS = (("name", 35), ("brand", 30), ("model", 25), ("category", 10))


def group_records(records: Iterable[FieldRecord]) -> dict[str, list[FieldRecord]]:
    groups: dict[str, list[FieldRecord]] = {}
    for record in records:
        if record.is_sheet_marker:
            continue
        key = record.sheet_or_node or record.parent_context or DEFAULT_GROUP
        groups.setdefault(key, []).append(record)
    return groups


def parse_price(value: str, field_name: str = "") -> tuple[float | None, str | None]:
    """'$1,234.56' -> (1234.56, 'USD'). Currency is looked up in value, then field name."""
    number = NUMBER_RE.search(value)
    if number is None:
        return None, None
    price = float(number.group(0).replace(",", ""))
    currency = CURRENCY_RE.search(value) or CURRENCY_RE.search(field_name)
    return price, normalize_currency(currency.group(0)) if currency else None


def _classify_spec(name: str, value: str) -> str | None:
    for category, keywords in SPEC_CATEGORIES:
        if contains_any(name, keywords) or contains_any(value, keywords):
            return category
    return None


def _is_price_only_name(name: str) -> bool:
    if not contains_any(name, PRICE_KEYWORDS):
        return False
    if any(contains_any(name, keywords) for _, keywords in IDENTITY_KEYWORDS):
        return False
    return _classify_spec(name, "") is None


def _classify(product: ExtractedProduct, name: str, value: str) -> None:
    identity_hit = False
    for attr, keywords in IDENTITY_KEYWORDS:
        if contains_any(name, keywords):
            identity_hit = True
            if getattr(product, attr) is None:
                setattr(product, attr, value)
    if identity_hit:
        return

    category = _classify_spec(name, value.lower())
    if category is not None:
        current = product.specs.get(category)
        product.specs[category] = f"{current}{SPEC_SEPARATOR}{value}" if current else value

    for category, pattern in SPEC_PATTERNS:
        if not product.specs.get(category) and pattern.search(value):
            product.specs[category] = value


def _infer_identity(product: ExtractedProduct, records: list[FieldRecord]) -> None:
    if product.brand and product.model:
        return
    text = " ".join(r.field_value for r in records)
    if product.brand is None:
        for pattern in BRAND_PATTERNS:
            hits = [re.sub(r"\s+", " ", m.group(1).lower()) for m in pattern.finditer(text)]
            if hits:
                # 最頻出 (同数なら先出) を採用
                brand = Counter(hits).most_common(1)[0][0]
                product.brand = brand[:1].upper() + brand[1:]
                break
    if product.model is None:
        for pattern in MODEL_PATTERNS:
            match = pattern.search(text)
            if match:
                product.model = match.group(0).strip()
                break


def score_confidence(product: ExtractedProduct, currency_assumed: bool = False) -> float:
    """0-100: mean of identity, spec, price and completeness scores."""
    identity = min(100, sum(weight for attr, weight in IDENTITY_WEIGHTS if getattr(product, attr)))
    spec_count = len(product.specs)
    specs = min(100, 40 + 15 * spec_count) if spec_count else 0
    if product.price is None:
        price = 0
    else:
        price = 60 if currency_assumed else 70

    has_name = bool(product.name or product.brand or product.model)
    has_price = bool(product.price)
    completeness = 70 + (10 if has_name else 0) + (15 if spec_count else 0) + (5 if has_price else 0)
    if not (has_name or spec_count or has_price):
        completeness -= 50
    if spec_count > 3:
        completeness += 10
    elif spec_count < 2:
        completeness -= 10
    completeness = max(0, min(100, completeness))
    return round((identity + specs + price + completeness) / 4, 1)


def _synthesize_description(specs: dict[str, str]) -> str:
    lines = []
    for key, value in list(specs.items())[:DESCRIPTION_SPEC_LIMIT]:
        if len(value) >= DESCRIPTION_VALUE_LIMIT:
            value = value[: DESCRIPTION_VALUE_LIMIT - 4] + "..."
        lines.append(f"{key[:1].upper()}{key[1:]}: {value}")
    return "\n".join(lines)


def _build_product(records: list[FieldRecord]) -> ExtractedProduct:
    product = ExtractedProduct()
    prices: list[tuple[float, str | None]] = []
    fallback_prices: list[tuple[float, str | None]] = []
    for record in records:
        name = record.field_name.lower()
        value = record.field_value.strip()
        if not value:
            continue
        price_only = _is_price_only_name(name)
        if not price_only:
            _classify(product, name, value)
        if contains_any(name, PRICE_KEYWORDS):
            price, currency = parse_price(value, record.field_name)
            if price is not None:
                (prices if price_only else fallback_prices).append((price, currency))

    candidates = prices or fallback_prices
    if candidates:
        product.price, product.currency = candidates[0]
    _infer_identity(product, records)

    product.specs = {k: v.strip() for k, v in product.specs.items() if v and v.strip()}
    currency_assumed = product.price is not None and product.currency is None
    if currency_assumed:
        product.currency = "USD"
    if not product.description and product.specs:
        product.description = _synthesize_description(product.specs)
    product.confidence = score_confidence(product, currency_assumed)
    return product


def extract(records: Iterable[FieldRecord]) -> list[ExtractedProduct]:
    """Groups with nothing classifiable yield no product."""
    products: list[ExtractedProduct] = []
    for key, group in group_records(records).items():
        product = _build_product(group)
        if product.is_empty():
            logger.debug("group=%s produced no product (%d records)", key, len(group))
            continue
        products.append(product)
    return products
