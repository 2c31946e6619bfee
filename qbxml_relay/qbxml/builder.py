"""Builds outbound QBXML query requests."""

from __future__ import annotations

from typing import Any, Mapping, Optional
from xml.etree import ElementTree

from qbxml_relay.models.types import EntityType

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'
DEFAULT_QBXML_VERSION = "13.0"


def build_query_request(
    entity_type: EntityType | str,
    request_id: str = "1",
    max_returned: Optional[int] = 100,
    on_error: str = "stopOnError",
    filters: Optional[Mapping[str, Any]] = None,
    qbxml_version: str = DEFAULT_QBXML_VERSION,
) -> str:
    """
    Render a ``{Entity}QueryRq`` document.

    Args:
        entity_type: Entity to query
        request_id: requestID attribute echoed back in the response
        max_returned: MaxReturned element, omitted when None
        on_error: onError attribute of the messages group
        filters: Extra child elements, in order. A list value repeats the
            element; a mapping value nests elements (e.g. NameFilter).
        qbxml_version: Version in the ``qbxml`` processing instruction

    Returns:
        QBXML request text
    """
    parsed = EntityType.parse(entity_type)
    if parsed is None:
        raise ValueError(f"Unknown entity type: {entity_type}")

    root = ElementTree.Element("QBXML")
    group = ElementTree.SubElement(root, "QBXMLMsgsRq", {"onError": on_error})
    query = ElementTree.SubElement(group, f"{parsed.value}QueryRq", {"requestID": str(request_id)})

    for name, value in (filters or {}).items():
        _append(query, name, value)
    if max_returned is not None:
        ElementTree.SubElement(query, "MaxReturned").text = str(max_returned)

    ElementTree.indent(root, space="  ")
    body = ElementTree.tostring(root, encoding="unicode")
    return f'{XML_DECLARATION}\n<?qbxml version="{qbxml_version}"?>\n{body}'


def _append(parent: ElementTree.Element, name: str, value: Any) -> None:
    if isinstance(value, (list, tuple)):
        for item in value:
            _append(parent, name, item)
        return

    child = ElementTree.SubElement(parent, name)
    if isinstance(value, Mapping):
        for sub_name, sub_value in value.items():
            _append(child, sub_name, sub_value)
    elif isinstance(value, bool):
        child.text = "true" if value else "false"
    elif value is not None:
        child.text = str(value)
