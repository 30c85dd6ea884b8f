from __future__ import annotations

import re

"""Keyword tables for the specification extractor.

All matching is case-insensitive substring matching against lowercased text.
SPEC_CATEGORIES is evaluated in list order and the first hit wins, so the
order is part of the behaviour.
"""

__all__ = [
    "IDENTITY_KEYWORDS",
    "PRICE_KEYWORDS",
    "SPEC_CATEGORIES",
    "SPEC_PATTERNS",
    "BRAND_PATTERNS",
    "MODEL_PATTERNS",
    "SPEC_DISPLAY_NAMES",
    "CURRENCY_CODES",
    "CURRENCY_RE",
    "NUMBER_RE",
    "contains_any",
    "normalize_currency",
]

IDENTITY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("name", ("name", "title", "product name")),
    ("model", ("model", "sku", "part number", "part no", "mpn")),
    ("brand", ("brand", "manufacturer", "vendor", "make")),
    ("category", ("category", "product type", "product line")),
    ("description", ("description", "summary", "overview")),
)

PRICE_KEYWORDS: tuple[str, ...] = (
    "price", "cost", "amount", "total", "msrp", "retail", "fee",
    "$", "€", "£", "¥", "₹", "₽",
)

# storage に "gb" を含めない (RAM 容量と衝突するため)
SPEC_CATEGORIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("display", ("display", "screen", "monitor", "resolution", "lcd", "oled", "panel", "touchscreen",
                 "refresh rate", "nits")),
    ("processor", ("processor", "cpu", "chipset", "intel core", "ryzen", "snapdragon", "ghz")),
    ("storage", ("storage", "ssd", "hdd", "hard drive", "hard disk", "nvme", "emmc")),
    ("graphics", ("graphics", "gpu", "geforce", "radeon", "vram")),
    ("connectivity", ("connectivity", "ethernet", "rj45", "network", "bluetooth", "nfc", "cellular")),
    ("security", ("security", "fingerprint", "tpm", "face recognition", "encryption")),
    ("battery", ("battery", "mah", "charging", "adapter", "power supply")),
    ("memory", ("memory", "ram", "ddr", "lpddr", "dimm")),
    ("camera", ("camera", "webcam", "megapixel")),
    ("audio", ("audio", "speaker", "microphone", "sound", "headphone")),
    ("dimensions", ("dimension", "length", "width", "height", "depth", "thickness")),
    ("weight", ("weight", "weighs", "kg", "lbs")),
    ("operatingSystem", ("operating system", "windows", "macos", "linux", "android", "chrome os")),
    ("ports", ("ports", "usb", "hdmi", "thunderbolt", "displayport", "audio jack", "sd card", "card reader")),
    ("wireless", ("wireless", "wifi", "wi-fi", "wlan", "802.11")),
)

# value-only patterns; applied only while the slot is still empty
SPEC_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("display", re.compile(r"\d+(\.\d+)?\s*(inch|\"|in|cm)", re.IGNORECASE)),
    ("storage", re.compile(r"\d+\s*(gb|tb)\s*(ssd|hdd|storage)", re.IGNORECASE)),
    ("memory", re.compile(r"\d+\s*gb\s*(ram|memory|ddr)", re.IGNORECASE)),
    ("processor", re.compile(r"\d+(\.\d+)?\s*(ghz|mhz)", re.IGNORECASE)),
    ("battery", re.compile(r"\d+\s*(mah|wh|hours?)", re.IGNORECASE)),
)

# free-text identity fallbacks; the first table with any hit decides
BRAND_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(apple|samsung|google|huawei|xiaomi|oneplus|oppo|vivo|realme|nokia|motorola|lg)\b", re.IGNORECASE),
    re.compile(
        r"\b(dell|hp|hewlett[-\s]*packard|lenovo|asus|acer|msi|alienware|razer|surface|macbook|thinkpad)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(intel|amd|nvidia|qualcomm|mediatek|broadcom|arm|apple\s*silicon)\b", re.IGNORECASE),
)

MODEL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(iphone\s*\d+(?:\s*pro)?(?:\s*max)?|galaxy\s*[a-z]*\d+|pixel\s*\d+[a-z]*|mate\s*\d+)\b", re.IGNORECASE),
    re.compile(
        r"\b(?:ideapad|thinkpad|pavilion|inspiron|vivobook|zenbook|macbook|surface\s*(?:pro|laptop|book))\b(?:\s*\w+)?",
        re.IGNORECASE,
    ),
    re.compile(r"\b(geforce\s*(?:gtx|rtx)\s*\d+|radeon\s*rx\s*\d+)\b", re.IGNORECASE),
    re.compile(r"\b(core\s*i[3579][-\s]*\d+[a-z]*|ryzen\s*[3579]\s*\d+[a-z]*)\b", re.IGNORECASE),
)

SPEC_DISPLAY_NAMES: dict[str, str] = {
    "display": "Display",
    "processor": "Processor",
    "storage": "Storage",
    "graphics": "Graphics",
    "connectivity": "Connectivity",
    "security": "Security",
    "battery": "Battery",
    "memory": "Memory",
    "camera": "Camera",
    "audio": "Audio",
    "dimensions": "Dimensions",
    "weight": "Weight",
    "operatingSystem": "Operating System",
    "ports": "Ports",
    "wireless": "Wireless",
}

CURRENCY_CODES: dict[str, str] = {
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "₹": "INR",
    "₽": "RUB",
    "usd": "USD",
    "eur": "EUR",
    "gbp": "GBP",
    "jpy": "JPY",
    "inr": "INR",
    "rub": "RUB",
    "dollar": "USD",
    "dollars": "USD",
    "euro": "EUR",
    "euros": "EUR",
    "pound": "GBP",
    "pounds": "GBP",
    "yen": "JPY",
    "rupee": "INR",
    "rupees": "INR",
    "ruble": "RUB",
    "rubles": "RUB",
}

CURRENCY_RE = re.compile(
    r"[€$£¥₹₽]|\b(?:usd|eur|gbp|jpy|inr|rub|dollars?|euros?|pounds?|yen|rupees?|rubles?)\b",
    re.IGNORECASE,
)
NUMBER_RE = re.compile(r"\d[\d,]*(?:\.\d+)?")


def contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(k in text for k in keywords)


def normalize_currency(token: str) -> str:
    """'$' -> 'USD', 'euros' -> 'EUR'; unknown tokens are upper-cased."""
    return CURRENCY_CODES.get(token.lower(), token.upper())
