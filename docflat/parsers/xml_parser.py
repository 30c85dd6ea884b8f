from __future__ import annotations

import dataclasses
import logging
import xml.etree.ElementTree as ET
from typing import Any

from docflat.config.loader import DEFAULT_XML_ATTRIBUTE_PREFIX, DEFAULT_XML_DEFAULT_NODE
from docflat.errors import ParseError
from docflat.logging.error_log import ErrorLogBuffer
from docflat.models.field_record import FieldRecord, ParseResult

"""XML flattening.

The document is first converted to a nested mapping:
- attributes inlined as `<prefix><name>` keys (prefix None drops attributes)
- text of an element that also has attributes/children goes under "#text"
- repeated sibling tags become lists
- namespace URIs are stripped to local names

A depth-first walk over the document element's children then emits one
FieldRecord per scalar leaf:
- fullPath: "a/b/c", list elements carry an index suffix "b[0]"
- sheetOrNode: first path segment (groups siblings for product extraction)
- parentContext: key of the immediately containing element

XML is the most failure-tolerant input: any parse problem is reported to the
error log and yields an empty result instead of an exception. Only a missing
buffer raises.
"""

__all__ = [
    "local_name",
    "xml_to_tree",
    "flatten_tree",
    "assign_default_node",
    "parse_xml",
    "TEXT_KEY",
]

logger = logging.getLogger(__name__)

TEXT_KEY = "#text"


def local_name(tag: str) -> str:
    """'{uri}price' -> 'price'."""
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _element_to_value(elem: ET.Element, attribute_prefix: str | None) -> Any:
    attrs: dict[str, Any] = {}
    if attribute_prefix is not None:
        for k, v in elem.attrib.items():
            attrs[f"{attribute_prefix}{local_name(k)}"] = v.strip()
    children = list(elem)
    text = (elem.text or "").strip()
    if not children and not attrs:
        return text

    node: dict[str, Any] = dict(attrs)
    if text:
        node[TEXT_KEY] = text
    repeated: set[str] = set()
    for child in children:
        key = local_name(child.tag)
        value = _element_to_value(child, attribute_prefix)
        if key in node:
            if key in repeated:
                node[key].append(value)
            else:
                node[key] = [node[key], value]
                repeated.add(key)
        else:
            node[key] = value
    return node


def xml_to_tree(buffer: bytes, attribute_prefix: str | None = DEFAULT_XML_ATTRIBUTE_PREFIX) -> tuple[str, Any]:
    """Parse XML bytes; returns (document element name, converted content)."""
    root = ET.fromstring(buffer)
    return local_name(root.tag), _element_to_value(root, attribute_prefix)


def flatten_tree(content: Any, file_id: str, root_name: str) -> list[FieldRecord]:
    """Depth-first walk of converted content below the document element."""
    records: list[FieldRecord] = []

    def emit(key: str, value: Any, sheet: str, parent: str | None, path: str) -> None:
        text = str(value).strip()
        if not text:
            return
        records.append(
            FieldRecord(
                file_id=file_id,
                sheet_or_node=sheet,
                field_name=key,
                field_value=text,
                row_num=None,
                parent_context=parent,
                full_path=path,
            )
        )

    def walk(node: dict[str, Any], path: str, parent: str | None) -> None:
        for key, value in node.items():
            current = f"{path}/{key}" if path else key
            sheet = path.split("/")[0] if path else key
            if isinstance(value, list):
                for i, item in enumerate(value):
                    indexed = f"{current}[{i}]"
                    if isinstance(item, dict):
                        walk(item, indexed, key)
                    else:
                        emit(key, item, sheet, parent, indexed)
            elif isinstance(value, dict):
                walk(value, current, key)
            else:
                emit(key, value, sheet, parent, current)

    if isinstance(content, dict):
        walk(content, "", root_name)
    else:
        # text-only document element
        emit(root_name, content, root_name, None, root_name)
    return records


def assign_default_node(records: list[FieldRecord], default_node: str) -> list[FieldRecord]:
    """When no record carries a sheetOrNode, put all of them under default_node."""
    # 全レコードがグループ化可能であることを保証
    if records and not any(r.sheet_or_node for r in records):
        return [dataclasses.replace(r, sheet_or_node=default_node) for r in records]
    return records


def parse_xml(
    buffer: bytes,
    file_id: str,
    error_log: ErrorLogBuffer | None = None,
    file_name: str | None = None,
    attribute_prefix: str | None = DEFAULT_XML_ATTRIBUTE_PREFIX,
    default_node: str = DEFAULT_XML_DEFAULT_NODE,
) -> ParseResult:
    """Flatten XML bytes. Never raises for malformed content."""
    if not buffer:
        raise ParseError("xml", "no buffer")
    try:
        root_name, content = xml_to_tree(buffer, attribute_prefix)
        records = flatten_tree(content, file_id, root_name)
    except Exception as e:
        logger.error("xml parse failed file_id=%s: %s", file_id, e)
        if error_log is not None:
            error_log.report(file=file_name or file_id, error_type="PARSE_ERROR", message=f"xml: {e}")
        return ParseResult(records=[], row_count=0, has_images=False)

    records = assign_default_node(records, default_node)

    logger.debug("file_id=%s xml records=%d", file_id, len(records))
    return ParseResult(records=records, row_count=len(records), has_images=False)
