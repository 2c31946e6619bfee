"""SOAP codec for the QuickBooks Web Connector service."""

from qbxml_relay.soap.envelope import (
    SoapDecodeError,
    build_fault,
    build_wsdl,
    decode_request,
    encode_response,
    handle_soap_request,
)

__all__ = [
    "SoapDecodeError",
    "build_fault",
    "build_wsdl",
    "decode_request",
    "encode_response",
    "handle_soap_request",
]
