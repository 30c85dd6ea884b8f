from __future__ import annotations

import math
from datetime import datetime

import numpy as np

from docflat.parsers.values import cell_to_text, column_label, is_missing, to_native


def test_cell_to_text_blank_and_missing():
    assert cell_to_text(None) is None
    assert cell_to_text(float("nan")) is None
    assert cell_to_text("   ") is None
    assert cell_to_text("") is None


def test_cell_to_text_numbers():
    assert cell_to_text(2) == "2"
    assert cell_to_text(2.0) == "2"
    assert cell_to_text(9.99) == "9.99"
    assert cell_to_text(np.int64(7)) == "7"
    assert cell_to_text(np.float64(1.5)) == "1.5"


def test_cell_to_text_bool_datetime_and_trim():
    assert cell_to_text(True) == "true"
    assert cell_to_text(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05"
    assert cell_to_text("  Widget ") == "Widget"


def test_to_native_is_json_safe():
    assert to_native(float("nan")) is None
    assert to_native(np.int64(3)) == 3
    assert to_native(4.0) == 4
    assert to_native(datetime(2024, 1, 1)) == "2024-01-01T00:00:00"
    assert to_native("x") == "x"


def test_is_missing_and_column_label():
    assert is_missing(None)
    assert is_missing(math.nan)
    assert not is_missing("")
    assert not is_missing([1, 2])
    assert column_label("Price", 0) == "Price"
    assert column_label(None, 1) == "Column2"
    assert column_label("", 4) == "Column5"
