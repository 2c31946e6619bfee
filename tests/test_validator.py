"""Tests for QBXMLValidator."""

import pytest

from qbxml_relay.models.entities import Address, Customer, Invoice, Item, LineItem, SalesOrPurchase
from qbxml_relay.models.types import EntityType
from qbxml_relay.qbxml.builder import build_query_request
from qbxml_relay.qbxml.validator import QBXMLValidator, is_valid_date, is_valid_datetime

from tests.conftest import CUSTOMER_RESPONSE, ERROR_RESPONSE, VALID_REQUEST


@pytest.fixture
def validator() -> QBXMLValidator:
    return QBXMLValidator()


def codes(issues):
    return [issue.code for issue in issues]


class TestValidateRequest:
    """Tests for request-direction validation."""

    @pytest.mark.parametrize(
        "document",
        [
            VALID_REQUEST,
            build_query_request(EntityType.CUSTOMER),
            build_query_request(EntityType.CUSTOMER, request_id="42", max_returned=None),
            build_query_request(
                EntityType.CUSTOMER,
                on_error="continueOnError",
                filters={"ActiveStatus": "ActiveOnly"},
            ),
        ],
    )
    def test_valid_request_has_no_errors(self, validator, document):
        result = validator.validate_request(document, EntityType.CUSTOMER)

        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_missing_request_id_is_a_warning(self, validator):
        document = VALID_REQUEST.replace(' requestID="1"', "")

        result = validator.validate_request(document)

        assert result.is_valid is True
        assert codes(result.warnings) == ["MISSING_REQUEST_ID"]

    def test_unknown_on_error_is_a_warning(self, validator):
        document = VALID_REQUEST.replace("stopOnError", "ignoreErrors")

        result = validator.validate_request(document)

        assert result.is_valid is True
        assert "INVALID_ON_ERROR" in codes(result.warnings)

    def test_wrong_root(self, validator):
        result = validator.validate_request("<NotQBXML><Child/></NotQBXML>")

        assert result.is_valid is False
        assert codes(result.errors) == ["MISSING_ROOT"]

    def test_empty_root_is_invalid_structure(self, validator):
        result = validator.validate_request("<QBXML></QBXML>")

        assert codes(result.errors) == ["INVALID_STRUCTURE"]

    def test_missing_message_group(self, validator):
        result = validator.validate_request("<QBXML><Something/></QBXML>")

        assert codes(result.errors) == ["MISSING_MSGS_RQ"]

    def test_duplicate_message_group(self, validator):
        document = (
            "<QBXML>"
            '<QBXMLMsgsRq onError="stopOnError"><CustomerQueryRq requestID="1"/></QBXMLMsgsRq>'
            '<QBXMLMsgsRq onError="stopOnError"><CustomerQueryRq requestID="2"/></QBXMLMsgsRq>'
            "</QBXML>"
        )

        result = validator.validate_request(document)

        assert codes(result.errors) == ["INVALID_STRUCTURE"]

    def test_group_without_requests(self, validator):
        result = validator.validate_request('<QBXML><QBXMLMsgsRq onError="stopOnError"/></QBXML>')

        assert codes(result.errors) == ["NO_REQUESTS"]

    def test_malformed_xml(self, validator):
        result = validator.validate_request("<QBXML><QBXMLMsgsRq>")

        assert result.is_valid is False
        assert codes(result.errors) == ["INVALID_XML"]

    def test_empty_document(self, validator):
        result = validator.validate_request("   ")

        assert codes(result.errors) == ["INVALID_XML"]

    def test_entity_type_mismatch(self, validator):
        document = build_query_request(EntityType.INVOICE)

        result = validator.validate_request(document, EntityType.CUSTOMER)

        assert codes(result.errors) == ["ENTITY_TYPE_MISMATCH"]

    @pytest.mark.parametrize("value", ["0", "5000", "lots"])
    def test_max_returned_out_of_range(self, validator, value):
        document = VALID_REQUEST.replace("<MaxReturned>100<", f"<MaxReturned>{value}<")

        result = validator.validate_request(document)

        assert result.is_valid is True
        assert codes(result.warnings) == ["INVALID_MAX_RETURNED"]

    def test_validation_is_idempotent(self, validator):
        document = VALID_REQUEST.replace(' requestID="1"', "").replace("stopOnError", "bogus")

        first = validator.validate_request(document)
        second = validator.validate_request(document)

        assert first.to_dict() == second.to_dict()


class TestValidateResponse:
    """Tests for response-direction validation."""

    def test_valid_response(self, validator):
        result = validator.validate_response(CUSTOMER_RESPONSE, EntityType.CUSTOMER)

        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_non_zero_status_is_only_a_warning(self, validator):
        result = validator.validate_response(ERROR_RESPONSE)

        assert result.is_valid is True
        assert codes(result.warnings) == ["RESPONSE_ERROR"]
        assert "3100" in result.warnings[0].message

    def test_missing_status_attributes(self, validator):
        document = '<QBXML><QBXMLMsgsRs><CustomerQueryRs requestID="1"/></QBXMLMsgsRs></QBXML>'

        result = validator.validate_response(document)

        assert result.is_valid is False
        assert codes(result.errors) == ["MISSING_STATUS_CODE", "MISSING_STATUS_SEVERITY"]
        assert codes(result.warnings) == ["MISSING_STATUS_MESSAGE"]

    def test_invalid_status_severity(self, validator):
        document = CUSTOMER_RESPONSE.replace('statusSeverity="Info"', 'statusSeverity="Fatal"')

        result = validator.validate_response(document)

        assert codes(result.errors) == ["INVALID_STATUS_SEVERITY"]

    def test_missing_response_group(self, validator):
        result = validator.validate_response(VALID_REQUEST)

        assert codes(result.errors) == ["MISSING_MSGS_RS"]

    def test_no_responses(self, validator):
        result = validator.validate_response("<QBXML><QBXMLMsgsRs></QBXMLMsgsRs></QBXML>")

        assert codes(result.errors) == ["NO_RESPONSES"]

    def test_type_mismatch_is_a_warning(self, validator):
        result = validator.validate_response(CUSTOMER_RESPONSE, EntityType.ITEM)

        assert result.is_valid is True
        assert codes(result.warnings) == ["ENTITY_TYPE_MISMATCH"]


class TestValidateEntity:
    """Tests for semantic entity checks."""

    def test_clean_customer(self, validator):
        customer = Customer(
            name="Acme",
            email="ap@acme.example",
            phone="(555) 123-4567",
            credit_limit=100.0,
            created_at="2024-01-15T10:30:00-08:00",
            bill_address=Address(state="IL", postal_code="62701"),
        )

        result = validator.validate_entity(customer)

        assert result.is_valid is True
        assert result.warnings == []

    def test_name_too_long_is_always_an_error(self, validator):
        result = validator.validate_entity(Customer(name="x" * 32))

        assert result.is_valid is False
        assert codes(result.errors) == ["FIELD_TOO_LONG"]
        assert result.errors[0].field == "name"

    def test_customer_specific_limits(self, validator):
        customer = Customer(company_name="c" * 42, first_name="f" * 26)

        result = validator.validate_entity(customer)

        assert sorted(e.field for e in result.errors) == ["company_name", "first_name"]

    def test_invalid_email_and_phone(self, validator):
        result = validator.validate_entity(Customer(email="not-an-email", phone="call me"))

        assert codes(result.errors) == ["INVALID_EMAIL"]
        assert codes(result.warnings) == ["INVALID_PHONE"]

    def test_negative_credit_limit(self, validator):
        result = validator.validate_entity(Customer(credit_limit=-1.0))

        assert codes(result.errors) == ["NEGATIVE_CREDIT_LIMIT"]

    def test_bad_timestamp_is_a_warning(self, validator):
        result = validator.validate_entity(Customer(modified_at="yesterday"))

        assert result.is_valid is True
        assert codes(result.warnings) == ["INVALID_DATETIME"]

    def test_item_checks(self, validator):
        item = Item(
            qty_on_hand=-3,
            sales_or_purchase=SalesOrPurchase(price=-10.0, description="d" * 4096),
        )

        result = validator.validate_entity(item)

        assert codes(result.warnings) == ["NEGATIVE_QTY"]
        assert sorted(codes(result.errors)) == ["FIELD_TOO_LONG", "NEGATIVE_PRICE"]

    def test_invoice_checks(self, validator):
        invoice = Invoice(
            txn_date="2024-13-01",
            ref_number="INV-000000001",
            total_amount=-5.0,
            line_items=[LineItem(amount=10.0), LineItem(amount=-2.5)],
        )

        result = validator.validate_entity(invoice)

        assert sorted(codes(result.errors)) == ["FIELD_TOO_LONG", "INVALID_DATE", "NEGATIVE_TOTAL"]
        assert codes(result.warnings) == ["NEGATIVE_AMOUNT"]
        assert result.warnings[0].field == "line_items[1].amount"

    def test_field_lengths_on_plain_dict(self, validator):
        data = {"company_name": "x" * 42, "name": "ok"}

        result = validator.validate_field_lengths(data, EntityType.CUSTOMER)

        assert codes(result.errors) == ["FIELD_TOO_LONG"]
        assert result.errors[0].field == "company_name"

    def test_baseline_limits_apply_without_type(self, validator):
        result = validator.validate_field_lengths({"notes": "n" * 4096})

        assert codes(result.errors) == ["FIELD_TOO_LONG"]


class TestDateHelpers:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2024-01-15T10:30:00", True),
            ("2024-01-15T10:30:00-08:00", True),
            ("2024-01-15", False),
            ("2024-02-30T00:00:00", False),
        ],
    )
    def test_is_valid_datetime(self, value, expected):
        assert is_valid_datetime(value) is expected

    @pytest.mark.parametrize(
        "value,expected",
        [("2024-01-15", True), ("2024-1-15", False), ("2023-02-29", False)],
    )
    def test_is_valid_date(self, value, expected):
        assert is_valid_date(value) is expected
