from __future__ import annotations

import math
from datetime import date, datetime, time
from typing import Any

import pandas as pd

"""Cell value coercion shared by the parsers, the context reconstructor and preview.

pandas hands back a mix of Python scalars, numpy scalars, NaN and Timestamps;
flattening needs one canonical string per cell, context/preview need JSON-safe
native values.
"""

__all__ = [
    "is_missing",
    "cell_to_text",
    "to_native",
    "column_label",
]


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):  # list-like values
        return False


def cell_to_text(value: Any) -> str | None:
    """Coerce a cell to its trimmed string form. Blank / missing -> None."""
    if is_missing(value):
        return None
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        value = value.item()  # numpy scalar -> python scalar
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, float):
        if math.isinf(value):
            text = str(value)
        elif value.is_integer():
            text = str(int(value))
        else:
            text = repr(value)
    elif isinstance(value, (datetime, date, time)):
        text = value.isoformat()
    else:
        text = str(value)
    text = text.strip()
    return text or None


def to_native(value: Any) -> Any:
    """JSON-safe native value for rowData / preview cells (missing -> None)."""
    if is_missing(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        value = value.item()
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def column_label(header: str | None, index: int) -> str:
    """Header text, or the synthesized Column<N> name (1-based) for blank headers."""
    return header if header else f"Column{index + 1}"
