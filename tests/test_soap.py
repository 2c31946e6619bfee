"""Tests for the SOAP envelope codec and WSDL."""

import asyncio
from xml.etree import ElementTree
from xml.sax.saxutils import escape

import pytest

from qbxml_relay.processor import QBXMLProcessor
from qbxml_relay.session.machine import (
    AuthenticateCall,
    CloseConnectionCall,
    CompleteExchangeCall,
    WebConnectorSession,
)
from qbxml_relay.session.store import InMemorySessionStore
from qbxml_relay.soap.envelope import (
    QBWC_NS,
    SOAP_NS,
    SoapDecodeError,
    build_fault,
    build_wsdl,
    decode_request,
    encode_response,
    handle_soap_request,
)

from tests.conftest import CUSTOMER_RESPONSE

SOAP12_NS = "http://www.w3.org/2003/05/soap-envelope"


def envelope(method, namespace=SOAP_NS, **params):
    fields = "".join(f"<{name}>{escape(value)}</{name}>" for name, value in params.items())
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        f'<soap:Envelope xmlns:soap="{namespace}">'
        f'<soap:Body><{method} xmlns="{QBWC_NS}">{fields}</{method}></soap:Body>'
        "</soap:Envelope>"
    )


def result_of(response, method):
    root = ElementTree.fromstring(response)
    node = root.find(f".//{{{QBWC_NS}}}{method}Result")
    return node.text if node is not None else None


class TestDecodeRequest:
    """Tests for turning envelopes into connector calls."""

    def test_authenticate(self):
        call = decode_request(envelope("authenticate", strUserName="alice", strPassword="secret"))

        assert call == AuthenticateCall(user="alice", password="secret")

    def test_soap12_envelope(self):
        call = decode_request(envelope("closeConnection", namespace=SOAP12_NS, ticket="t-1"))

        assert call == CloseConnectionCall(ticket="t-1")

    def test_missing_parameters_are_empty(self):
        call = decode_request(envelope("receiveResponseXML", ticket="t-1"))

        assert call == CompleteExchangeCall(ticket="t-1", response="", hresult="", message="")

    def test_embedded_qbxml_is_unescaped(self):
        call = decode_request(
            envelope("receiveResponseXML", ticket="t-1", response=CUSTOMER_RESPONSE, hresult="", message="")
        )

        assert call.response == CUSTOMER_RESPONSE

    def test_unknown_child_elements_are_ignored(self):
        call = decode_request(envelope("sendRequestXML", ticket="t-1", qbXMLMajorVers="13"))

        assert call.ticket == "t-1"

    @pytest.mark.parametrize(
        "document,message",
        [
            ("<soap:Envelope", "XML parse error"),
            ("<Other/>", "Invalid SOAP envelope"),
            (f'<soap:Envelope xmlns:soap="{SOAP_NS}"/>', "Missing SOAP body"),
            (f'<soap:Envelope xmlns:soap="{SOAP_NS}"><soap:Body/></soap:Envelope>', "Empty SOAP body"),
        ],
    )
    def test_malformed_envelopes(self, document, message):
        with pytest.raises(SoapDecodeError, match=message):
            decode_request(document)

    def test_unknown_method(self):
        with pytest.raises(SoapDecodeError, match="Unknown SOAP method: serverVersion"):
            decode_request(envelope("serverVersion"))


class TestEncoding:
    """Tests for response and fault envelopes."""

    def test_encode_string_result(self):
        response = encode_response("authenticate", "abc-123")

        assert response.startswith('<?xml version="1.0" encoding="utf-8"?>')
        assert result_of(response, "authenticate") == "abc-123"

    def test_encode_int_result(self):
        assert result_of(encode_response("receiveResponseXML", -1), "receiveResponseXML") == "-1"

    def test_qbxml_result_is_escaped(self):
        response = encode_response("sendRequestXML", CUSTOMER_RESPONSE)

        assert result_of(response, "sendRequestXML") == CUSTOMER_RESPONSE

    def test_fault(self):
        root = ElementTree.fromstring(build_fault("Unknown SOAP method: x"))

        fault = root.find(f"{{{SOAP_NS}}}Body/{{{SOAP_NS}}}Fault")
        assert fault.findtext("faultcode") == "soap:Client"
        assert fault.findtext("faultstring") == "Unknown SOAP method: x"


class TestHandleSoapRequest:
    """End-to-end conversations through the codec."""

    @pytest.fixture
    def machine(self, fast_executor):
        return WebConnectorSession(
            store=InMemorySessionStore(),
            processor=QBXMLProcessor(executor=fast_executor),
        )

    def test_conversation(self, machine):
        async def scenario():
            auth = await handle_soap_request(
                machine, envelope("authenticate", strUserName="alice", strPassword="secret")
            )
            ticket = result_of(auth, "authenticate")
            request = await handle_soap_request(machine, envelope("sendRequestXML", ticket=ticket))
            progress = await handle_soap_request(
                machine,
                envelope("receiveResponseXML", ticket=ticket, response=CUSTOMER_RESPONSE, hresult="", message=""),
            )
            last_error = await handle_soap_request(machine, envelope("getLastError", ticket=ticket))
            closed = await handle_soap_request(machine, envelope("closeConnection", ticket=ticket))
            return ticket, request, progress, last_error, closed

        ticket, request, progress, last_error, closed = asyncio.run(scenario())

        assert ticket and ticket != "nvu"
        assert "<CustomerQueryRq" in result_of(request, "sendRequestXML")
        assert result_of(progress, "receiveResponseXML") == "100"
        assert result_of(last_error, "getLastError") is None
        assert result_of(closed, "closeConnection") == "OK"

    def test_rejected_credentials(self, machine):
        response = asyncio.run(
            handle_soap_request(machine, envelope("authenticate", strUserName="alice"))
        )

        assert result_of(response, "authenticate") == "nvu"

    def test_connection_error(self, machine):
        response = asyncio.run(
            handle_soap_request(machine, envelope("connectionError", ticket="t", hresult="1", message="x"))
        )

        assert result_of(response, "connectionError") == "done"

    def test_garbage_yields_fault(self, machine):
        response = asyncio.run(handle_soap_request(machine, "garbage"))

        assert "Fault>" in response
        assert "faultstring" in response


class TestWsdl:
    def test_describes_every_operation(self):
        root = ElementTree.fromstring(build_wsdl("https://example.test/qbwc?x=1&y=2"))
        wsdl_ns = "http://schemas.xmlsoap.org/wsdl/"

        operations = root.findall(f"{{{wsdl_ns}}}portType/{{{wsdl_ns}}}operation")
        address = root.find(f".//{{http://schemas.xmlsoap.org/wsdl/soap/}}address")

        assert [op.get("name") for op in operations] == [
            "authenticate",
            "sendRequestXML",
            "receiveResponseXML",
            "connectionError",
            "getLastError",
            "closeConnection",
        ]
        assert address.get("location") == "https://example.test/qbwc?x=1&y=2"
