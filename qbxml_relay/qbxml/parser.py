"""XML to nested-dict parsing for QBXML and SOAP documents.

The tree shape mirrors what the transformer and validator expect:

* a leaf element without attributes becomes its stripped text
* an element with attributes or children becomes a dict; attributes are
  stored under ``@name`` and any own text under ``#text``
* repeated sibling elements become a list

Namespace prefixes are dropped from element and attribute names.
"""

from __future__ import annotations

from typing import Any
from xml.etree import ElementTree

TEXT_KEY = "#text"
ATTR_PREFIX = "@"


class QBXMLParseError(ValueError):
    """Raised when a document is not well-formed XML."""

    pass


def local_name(tag: str) -> str:
    """Strip a ``{namespace}`` or ``prefix:`` from a tag."""
    if "}" in tag:
        tag = tag.rsplit("}", 1)[1]
    if ":" in tag:
        tag = tag.rsplit(":", 1)[1]
    return tag


def element_to_value(elem: ElementTree.Element) -> Any:
    """Convert one element (recursively) into the tree shape described above."""
    text = (elem.text or "").strip()
    children = list(elem)

    if not elem.attrib and not children:
        return text

    node: dict[str, Any] = {}
    for name, value in elem.attrib.items():
        node[f"{ATTR_PREFIX}{local_name(name)}"] = value

    for child in children:
        tag = local_name(child.tag)
        value = element_to_value(child)
        if tag in node:
            existing = node[tag]
            if not isinstance(existing, list):
                node[tag] = [existing]
            node[tag].append(value)
        else:
            node[tag] = value

    if text:
        node[TEXT_KEY] = text

    return node


def parse_xml(document: str | bytes) -> ElementTree.Element:
    """Parse a document into an Element, raising QBXMLParseError on failure."""
    if isinstance(document, bytes):
        document = document.decode("utf-8", errors="replace")
    document = (document or "").strip()
    if not document:
        raise QBXMLParseError("XML parse error: empty document")

    try:
        return ElementTree.fromstring(document)
    except ElementTree.ParseError as e:
        raise QBXMLParseError(f"XML parse error: {e}") from e


def parse_qbxml(document: str | bytes) -> dict[str, Any]:
    """
    Parse a QBXML (or any XML) document into a nested dict.

    Returns:
        ``{root_tag: root_value}``

    Raises:
        QBXMLParseError: If the document is empty or malformed
    """
    root = parse_xml(document)
    return {local_name(root.tag): element_to_value(root)}


def ensure_list(value: Any) -> list[Any]:
    """Normalize a value that may be absent, single, or repeated to a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def attribute(node: Any, name: str) -> Any:
    """Read ``@name`` from a dict node; None for scalars and absent attributes."""
    if isinstance(node, dict):
        return node.get(f"{ATTR_PREFIX}{name}")
    return None


def message_elements(group: Any, suffix: str) -> list[tuple[str, Any]]:
    """
    List ``(tag, node)`` pairs for every message element in a messages group.

    Repeated messages of the same type are flattened in document order per tag.
    """
    if not isinstance(group, dict):
        return []
    messages: list[tuple[str, Any]] = []
    for key, value in group.items():
        if key.startswith(ATTR_PREFIX) or key == TEXT_KEY:
            continue
        if key.endswith(suffix):
            for node in ensure_list(value):
                messages.append((key, node))
    return messages
