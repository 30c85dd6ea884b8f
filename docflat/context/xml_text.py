from __future__ import annotations

import copy
import re
import xml.etree.ElementTree as ET

from docflat.parsers.xml_parser import TEXT_KEY, local_name

"""Raw-XML helpers for context / preview: display formatting, exact node
lookup by flattened fullPath, and the textual fallback window."""

__all__ = [
    "format_xml",
    "find_by_path",
    "find_by_text",
    "WINDOW_CHARS",
    "HEAD_CHARS",
]

WINDOW_CHARS = 200
HEAD_CHARS = 1000

_SEGMENT_RE = re.compile(r"^(?P<name>[^\[]+)(?:\[(?P<index>\d+)\])?$")


def format_xml(text: str) -> str:
    """One tag per line; whitespace between tags collapsed."""
    return re.sub(r">\s*<", ">\n<", text.strip())


def _serialize(elem: ET.Element) -> str:
    node = copy.copy(elem)
    node.tail = None
    return ET.tostring(node, encoding="unicode")


def find_by_path(
    buffer: bytes, full_path: str, field_value: str, attribute_prefix: str | None = "@_"
) -> str | None:
    """Navigate a flattened fullPath ("item/spec[1]/ram") from the document element.

    Returns the serialized element holding the value (the parent of a leaf
    element, or the element carrying an attribute / #text), or None when the
    path no longer resolves or the value changed.
    """
    root = ET.fromstring(buffer)
    segments = [s for s in full_path.split("/") if s]
    if not segments:
        return None
    parent: ET.Element | None = None
    node = root
    for i, segment in enumerate(segments):
        last = i == len(segments) - 1
        match = _SEGMENT_RE.match(segment)
        if match is None:
            return None
        name = match.group("name")
        if last and match.group("index") is None:
            if name == TEXT_KEY:
                return _serialize(node) if (node.text or "").strip() == field_value else None
            if attribute_prefix and name.startswith(attribute_prefix):
                attr = name[len(attribute_prefix):]
                for key, value in node.attrib.items():
                    if local_name(key) == attr and value.strip() == field_value:
                        return _serialize(node)
                return None
        children = [c for c in node if local_name(c.tag) == name]
        index = int(match.group("index") or 0)
        if index >= len(children):
            return None
        parent, node = node, children[index]
    if (node.text or "").strip() != field_value:
        return None
    return _serialize(parent if parent is not None else node)


def find_by_text(text: str, field_name: str, field_value: str) -> str | None:
    """±WINDOW_CHARS of raw text around <field_name ...>...value...</field_name>."""
    name = re.escape(field_name)
    pattern = re.compile(rf"<[^>]*{name}[^>]*>[^<]*{re.escape(field_value)}[^<]*</{name}>")
    match = pattern.search(text)
    if match is None:
        return None
    start = max(0, match.start() - WINDOW_CHARS)
    end = min(len(text), match.end() + WINDOW_CHARS)
    return text[start:end]
