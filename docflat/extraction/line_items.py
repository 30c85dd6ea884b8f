from __future__ import annotations

import re
import time
from collections.abc import Sequence

from docflat.models.product import ExtractedProduct, LineItem

from .keywords import SPEC_DISPLAY_NAMES

"""ExtractedProduct -> LineItem projection (quotation description rendering)."""

__all__ = [
    "KEY_SPEC_PRIORITY",
    "LOW_CONFIDENCE_THRESHOLD",
    "select_key_specs",
    "truncate_at_word",
    "render_description",
    "project",
]

KEY_SPEC_PRIORITY = ("display", "processor", "memory", "storage", "graphics", "battery", "operatingSystem")
MAX_KEY_SPECS = 5
FILLER_SPEC_MAX_LEN = 80
SPEC_VALUE_LIMIT = 50
DESCRIPTION_APPEND_LIMIT = 200
LOW_CONFIDENCE_THRESHOLD = 40


def truncate_at_word(text: str, limit: int = SPEC_VALUE_LIMIT) -> str:
    """Cut at the last space if it falls in the final 30% of the window, else hard-cut with '...'."""
    if len(text) <= limit:
        return text
    window = text[:limit]
    last_space = window.rfind(" ")
    if last_space >= int(limit * 0.7):
        return window[:last_space].rstrip() + "..."
    return text[: limit - 3] + "..."


def select_key_specs(specs: dict[str, str]) -> list[tuple[str, str]]:
    selected: list[tuple[str, str]] = []
    for key in KEY_SPEC_PRIORITY:
        value = (specs.get(key) or "").strip()
        if value:
            selected.append((key, value))
        if len(selected) == MAX_KEY_SPECS:
            return selected
    for key, value in specs.items():
        if len(selected) == MAX_KEY_SPECS:
            break
        value = (value or "").strip()
        if key in KEY_SPEC_PRIORITY or not value or len(value) >= FILLER_SPEC_MAX_LEN:
            continue
        selected.append((key, value))
    return selected


def display_name(key: str) -> str:
    if key in SPEC_DISPLAY_NAMES:
        return SPEC_DISPLAY_NAMES[key]
    spaced = re.sub(r"([A-Z])", r" \1", key).strip()
    return spaced[:1].upper() + spaced[1:]


def _is_duplicated(description: str, text: str) -> bool:
    haystack = text.lower()
    if description.lower() in haystack:
        return True
    lines = [line.strip().lower() for line in description.splitlines() if line.strip()]
    return bool(lines) and all(line in haystack for line in lines)


def render_description(product: ExtractedProduct) -> str:
    key_specs = select_key_specs(product.specs)
    title = " ".join(p for p in (product.brand, product.name or product.model) if p)
    if not title and key_specs:
        title = product.category or "Product"

    if title:
        lines = [title]
        if key_specs:
            lines.append("Key Features:")
            lines.extend(f"• {display_name(k)}: {truncate_at_word(v)}" for k, v in key_specs)
        text = "\n".join(lines)
    else:
        text = f"{product.brand or ''} {product.name or product.model or 'Product'}".strip()
        if product.category:
            text += f" - {product.category}"

    description = (product.description or "").strip()
    if description and len(description) < DESCRIPTION_APPEND_LIMIT and not _is_duplicated(description, text):
        text += f"\n\n{description}"
    if product.confidence is not None and product.confidence < LOW_CONFIDENCE_THRESHOLD:
        text += f"\n\nNote: low extraction confidence ({round(product.confidence)}%)"
    return text


def project(products: Sequence[ExtractedProduct]) -> list[LineItem]:
    stamp = int(time.time() * 1000)
    items: list[LineItem] = []
    for i, product in enumerate(products):
        price = product.price or 0.0
        quantity = 1
        items.append(
            LineItem(
                id=f"item-{stamp}-{i}",
                no=i + 1,
                description=render_description(product),
                quantity=quantity,
                unit="Each",
                price=price,
                total=price * quantity,
                category=product.category,
                brand=product.brand,
                model=product.model,
                specs=dict(product.specs) if product.specs else None,
                confidence=product.confidence,
            )
        )
    return items
