"""QBXML parsing, validation, transformation and request building."""

from qbxml_relay.qbxml.builder import build_query_request
from qbxml_relay.qbxml.parser import (
    QBXMLParseError,
    ensure_list,
    parse_qbxml,
)
from qbxml_relay.qbxml.transformer import (
    QBXMLTransformer,
    extract_boolean,
    extract_number,
    extract_text,
)
from qbxml_relay.qbxml.validator import QBXMLValidator

__all__ = [
    "QBXMLParseError",
    "QBXMLTransformer",
    "QBXMLValidator",
    "build_query_request",
    "ensure_list",
    "extract_boolean",
    "extract_number",
    "extract_text",
    "parse_qbxml",
]
