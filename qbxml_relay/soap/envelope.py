"""SOAP envelope codec for the Web Connector service.

Inbound envelopes are decoded once into the connector call dataclasses;
results are encoded as ``{method}Response/{method}Result`` in the QBWC
namespace. SOAP 1.1 and 1.2 envelopes are accepted with any prefix.
"""

from __future__ import annotations

from typing import Union
from xml.etree import ElementTree

from qbxml_relay.qbxml.parser import QBXMLParseError, local_name, parse_xml
from qbxml_relay.session.machine import (
    AuthenticateCall,
    BeginExchangeCall,
    CloseConnectionCall,
    CompleteExchangeCall,
    ConnectionErrorCall,
    ConnectorCall,
    GetLastErrorCall,
    WebConnectorSession,
)
from qbxml_relay.utils.logging import get_logger

logger = get_logger("soap.envelope")

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"
QBWC_NS = "http://developer.intuit.com/"
XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'

ElementTree.register_namespace("soap", SOAP_NS)

# wire name -> (call class, {element name: field name})
CALLS: dict[str, tuple[type, dict[str, str]]] = {
    "authenticate": (AuthenticateCall, {"strUserName": "user", "strPassword": "password"}),
    "sendRequestXML": (BeginExchangeCall, {"ticket": "ticket"}),
    "receiveResponseXML": (
        CompleteExchangeCall,
        {"ticket": "ticket", "response": "response", "hresult": "hresult", "message": "message"},
    ),
    "connectionError": (
        ConnectionErrorCall,
        {"ticket": "ticket", "hresult": "hresult", "message": "message"},
    ),
    "getLastError": (GetLastErrorCall, {"ticket": "ticket"}),
    "closeConnection": (CloseConnectionCall, {"ticket": "ticket"}),
}


class SoapDecodeError(ValueError):
    """Raised when an envelope cannot be turned into a connector call."""

    pass


def decode_request(document: str | bytes) -> ConnectorCall:
    """
    Decode a SOAP request envelope.

    Missing parameters decode as empty strings.

    Raises:
        SoapDecodeError: Malformed XML, missing Envelope/Body, or an
            unknown method
    """
    try:
        root = parse_xml(document)
    except QBXMLParseError as e:
        raise SoapDecodeError(str(e)) from e

    if local_name(root.tag) != "Envelope":
        raise SoapDecodeError("Invalid SOAP envelope")

    body = next((child for child in root if local_name(child.tag) == "Body"), None)
    if body is None:
        raise SoapDecodeError("Missing SOAP body")

    method = next(iter(body), None)
    if method is None:
        raise SoapDecodeError("Empty SOAP body")

    name = local_name(method.tag)
    if name not in CALLS:
        raise SoapDecodeError(f"Unknown SOAP method: {name}")

    call_class, params = CALLS[name]
    values = {field_name: "" for field_name in params.values()}
    for child in method:
        field_name = params.get(local_name(child.tag))
        if field_name is not None:
            values[field_name] = child.text or ""

    return call_class(**values)


def encode_response(method: str, result: Union[str, int]) -> str:
    """Wrap a result as ``{method}Response/{method}Result``."""
    envelope = ElementTree.Element(f"{{{SOAP_NS}}}Envelope")
    body = ElementTree.SubElement(envelope, f"{{{SOAP_NS}}}Body")
    response = ElementTree.SubElement(body, f"{method}Response", {"xmlns": QBWC_NS})
    ElementTree.SubElement(response, f"{method}Result").text = str(result)
    return f"{XML_DECLARATION}\n{ElementTree.tostring(envelope, encoding='unicode')}"


def build_fault(message: str, code: str = "soap:Client") -> str:
    """SOAP 1.1 fault envelope."""
    envelope = ElementTree.Element(f"{{{SOAP_NS}}}Envelope")
    body = ElementTree.SubElement(envelope, f"{{{SOAP_NS}}}Body")
    fault = ElementTree.SubElement(body, f"{{{SOAP_NS}}}Fault")
    ElementTree.SubElement(fault, "faultcode").text = code
    ElementTree.SubElement(fault, "faultstring").text = message
    return f"{XML_DECLARATION}\n{ElementTree.tostring(envelope, encoding='unicode')}"


async def handle_soap_request(machine: WebConnectorSession, document: str | bytes) -> str:
    """
    Decode, dispatch and encode one SOAP call.

    Returns:
        The SOAP response, or a fault envelope when the request could not be
        decoded
    """
    try:
        call = decode_request(document)
    except SoapDecodeError as e:
        logger.warning("soap_decode_failed", error=str(e))
        return build_fault(str(e))

    logger.debug("soap_call_received", method=call.wire_name)
    result = await machine.dispatch(call)
    return encode_response(call.wire_name, result)


_WSDL_MESSAGES = {
    "authenticate": (("strUserName", "string"), ("strPassword", "string")),
    "sendRequestXML": (
        ("ticket", "string"),
        ("strHCPResponse", "string"),
        ("strCompanyFileName", "string"),
        ("qbXMLCountry", "string"),
        ("qbXMLMajorVers", "int"),
        ("qbXMLMinorVers", "int"),
    ),
    "receiveResponseXML": (
        ("ticket", "string"),
        ("response", "string"),
        ("hresult", "string"),
        ("message", "string"),
    ),
    "connectionError": (("ticket", "string"), ("hresult", "string"), ("message", "string")),
    "getLastError": (("ticket", "string"),),
    "closeConnection": (("ticket", "string"),),
}

_WSDL_RESULTS = {"receiveResponseXML": "int"}


def build_wsdl(service_url: str) -> str:
    """WSDL describing the six Web Connector operations at ``service_url``."""
    elements = []
    messages = []
    port_ops = []
    binding_ops = []

    for method, params in _WSDL_MESSAGES.items():
        fields = "".join(
            f'<s:element minOccurs="0" maxOccurs="1" name="{name}" type="s:{kind}"/>'
            for name, kind in params
        )
        result_type = _WSDL_RESULTS.get(method, "string")
        elements.append(
            f'<s:element name="{method}"><s:complexType><s:sequence>{fields}'
            f"</s:sequence></s:complexType></s:element>"
            f'<s:element name="{method}Response"><s:complexType><s:sequence>'
            f'<s:element minOccurs="0" maxOccurs="1" name="{method}Result" type="s:{result_type}"/>'
            f"</s:sequence></s:complexType></s:element>"
        )
        messages.append(
            f'<wsdl:message name="{method}SoapIn"><wsdl:part name="parameters" element="tns:{method}"/></wsdl:message>'
            f'<wsdl:message name="{method}SoapOut"><wsdl:part name="parameters" element="tns:{method}Response"/></wsdl:message>'
        )
        port_ops.append(
            f'<wsdl:operation name="{method}">'
            f'<wsdl:input message="tns:{method}SoapIn"/>'
            f'<wsdl:output message="tns:{method}SoapOut"/>'
            f"</wsdl:operation>"
        )
        binding_ops.append(
            f'<wsdl:operation name="{method}">'
            f'<soap:operation soapAction="{QBWC_NS}{method}" style="document"/>'
            f'<wsdl:input><soap:body use="literal"/></wsdl:input>'
            f'<wsdl:output><soap:body use="literal"/></wsdl:output>'
            f"</wsdl:operation>"
        )

    return (
        f"{XML_DECLARATION}\n"
        f'<wsdl:definitions xmlns:soap="http://schemas.xmlsoap.org/wsdl/soap/" '
        f'xmlns:s="http://www.w3.org/2001/XMLSchema" '
        f'xmlns:tns="{QBWC_NS}" '
        f'xmlns:wsdl="http://schemas.xmlsoap.org/wsdl/" '
        f'targetNamespace="{QBWC_NS}">'
        f'<wsdl:types><s:schema elementFormDefault="qualified" targetNamespace="{QBWC_NS}">'
        f'{"".join(elements)}</s:schema></wsdl:types>'
        f'{"".join(messages)}'
        f'<wsdl:portType name="QBWebConnectorSvcSoap">{"".join(port_ops)}</wsdl:portType>'
        f'<wsdl:binding name="QBWebConnectorSvcSoap" type="tns:QBWebConnectorSvcSoap">'
        f'<soap:binding transport="http://schemas.xmlsoap.org/soap/http"/>'
        f'{"".join(binding_ops)}</wsdl:binding>'
        f'<wsdl:service name="QBWebConnectorSvc">'
        f'<wsdl:port name="QBWebConnectorSvcSoap" binding="tns:QBWebConnectorSvcSoap">'
        f'<soap:address location="{_escape_attr(service_url)}"/>'
        f"</wsdl:port></wsdl:service></wsdl:definitions>"
    )


def _escape_attr(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace('"', "&quot;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
    )
