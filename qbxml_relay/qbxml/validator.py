"""Structural and semantic validation of QBXML documents and entities."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Optional

from qbxml_relay.models.entities import Address, Customer, Employee, Entity, Invoice, Item, Vendor
from qbxml_relay.models.results import ValidationResult
from qbxml_relay.models.types import EntityType, split_message_name
from qbxml_relay.qbxml.parser import (
    QBXMLParseError,
    attribute,
    message_elements,
    parse_qbxml,
)
from qbxml_relay.utils.logging import get_logger

logger = get_logger("qbxml.validator")

ON_ERROR_VALUES = ("stopOnError", "continueOnError")
STATUS_SEVERITIES = ("Info", "Warn", "Error")
MAX_RETURNED_RANGE = (1, 1000)

BASE_FIELD_LIMITS: dict[str, int] = {
    "name": 31,
    "display_name": 159,
    "notes": 4095,
}

FIELD_LIMITS: dict[EntityType, dict[str, int]] = {
    EntityType.CUSTOMER: {
        "company_name": 41,
        "first_name": 25,
        "last_name": 25,
        "phone": 21,
        "email": 1023,
        "account_number": 99,
    },
    EntityType.VENDOR: {
        "company_name": 41,
        "first_name": 25,
        "last_name": 25,
        "name_on_check": 41,
        "phone": 21,
        "email": 1023,
        "account_number": 99,
    },
    EntityType.EMPLOYEE: {
        "first_name": 25,
        "last_name": 25,
        "phone": 21,
        "email": 1023,
    },
    EntityType.ITEM: {
        "sales_description": 4095,
        "sales_or_purchase.description": 4095,
    },
    EntityType.INVOICE: {
        "ref_number": 11,
        "po_number": 25,
        "memo": 4095,
    },
}

_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")
_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE = re.compile(r"^[\d\s\-().+xX]{7,21}$")
_POSTAL_CODE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9\s\-]{1,9}$")
_STATE = re.compile(r"^[A-Za-z .]{2,21}$")


def is_valid_datetime(value: str) -> bool:
    """QuickBooks timestamps: ``YYYY-MM-DDTHH:MM:SS`` with optional offset."""
    if not _DATETIME.match(value):
        return False
    try:
        datetime.strptime(value[:19], "%Y-%m-%dT%H:%M:%S")
    except ValueError:
        return False
    return True


def is_valid_date(value: str) -> bool:
    if not _DATE.match(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def _lookup(obj: Any, path: str) -> Any:
    """Resolve a dotted attribute (or key) path, None when any step is missing."""
    current = obj
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, dict):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


class QBXMLValidator:
    """
    Validates QBXML request/response documents and transformed entities.

    Holds no per-call state; one instance can be shared across sessions.
    Every method returns a ValidationResult and never raises.
    """

    def validate_request(
        self,
        document: str,
        expected_type: Optional[EntityType] = None,
    ) -> ValidationResult:
        """
        Validate an outbound QBXML request document.

        Args:
            document: QBXML text
            expected_type: Entity type every request must target, if given

        Returns:
            ValidationResult with structural and request-specific issues
        """
        result, messages = self._validate_envelope(document, "Rq")

        for tag, node in messages:
            entity_type, _ = split_message_name(tag)
            if expected_type is not None and entity_type != expected_type:
                result.add_error(
                    tag,
                    f"Expected {expected_type.value} request, got {tag}",
                    "ENTITY_TYPE_MISMATCH",
                )
            if tag.endswith("QueryRq"):
                self._check_max_returned(tag, node, result)

        self._log(result, "request")
        return result

    def validate_response(
        self,
        document: str,
        expected_type: Optional[EntityType] = None,
    ) -> ValidationResult:
        """
        Validate an inbound QBXML response document.

        A non-zero status code is reported as a warning here; turning it into
        a failure is the transformer's job.
        """
        result, messages = self._validate_envelope(document, "Rs")

        for tag, node in messages:
            entity_type, _ = split_message_name(tag)
            if expected_type is not None and entity_type != expected_type:
                result.add_warning(
                    tag,
                    f"Expected {expected_type.value} response, got {tag}",
                    "ENTITY_TYPE_MISMATCH",
                )
            self._check_status(tag, node, result)

        self._log(result, "response")
        return result

    def validate_entity(
        self,
        entity: Entity,
        entity_type: Optional[EntityType] = None,
    ) -> ValidationResult:
        """
        Semantic checks on one transformed entity, including field lengths.

        Args:
            entity: Entity produced by the transformer
            entity_type: Overrides the entity's own type for the length table

        Returns:
            ValidationResult
        """
        result = ValidationResult()

        for field_name in ("created_at", "modified_at"):
            value = getattr(entity, field_name, None)
            if value and not is_valid_datetime(value):
                result.add_warning(
                    field_name,
                    f"Invalid timestamp: {value}",
                    "INVALID_DATETIME",
                )

        match entity:
            case Customer():
                self._check_contact(entity, result)
                self._check_credit_limit(entity.credit_limit, result)
                self._check_address("bill_address", entity.bill_address, result)
                self._check_address("ship_address", entity.ship_address, result)
            case Vendor():
                self._check_contact(entity, result)
                self._check_credit_limit(entity.credit_limit, result)
                self._check_address("vendor_address", entity.vendor_address, result)
            case Employee():
                self._check_contact(entity, result)
                self._check_address("employee_address", entity.employee_address, result)
                for field_name in ("birth_date", "hired_date", "released_date"):
                    self._check_date(field_name, getattr(entity, field_name), result)
            case Item():
                self._check_item(entity, result)
            case Invoice():
                self._check_invoice(entity, result)

        result.merge(self.validate_field_lengths(entity, entity_type))
        return result

    def validate_field_lengths(
        self,
        entity: Any,
        entity_type: Optional[EntityType] = None,
    ) -> ValidationResult:
        """
        Enforce QuickBooks field-length limits.

        Works on entities or plain dicts. Violations are always errors.
        """
        result = ValidationResult()
        entity_type = entity_type or getattr(entity, "entity_type", None)

        limits = dict(BASE_FIELD_LIMITS)
        if entity_type is not None:
            limits.update(FIELD_LIMITS.get(entity_type, {}))

        for path, limit in limits.items():
            value = _lookup(entity, path)
            if isinstance(value, str) and len(value) > limit:
                result.add_error(
                    path,
                    f"{path} exceeds maximum length of {limit} ({len(value)})",
                    "FIELD_TOO_LONG",
                )
        return result

    def _validate_envelope(
        self,
        document: str,
        suffix: str,
    ) -> tuple[ValidationResult, list[tuple[str, Any]]]:
        """Shared structural checks; returns the message elements found."""
        result = ValidationResult()
        group_name = "QBXMLMsgsRq" if suffix == "Rq" else "QBXMLMsgsRs"
        kind = "requests" if suffix == "Rq" else "responses"

        try:
            tree = parse_qbxml(document)
        except QBXMLParseError as e:
            result.add_error("xml", str(e), "INVALID_XML")
            return result, []

        if "QBXML" not in tree:
            result.add_error("QBXML", "Missing QBXML root element", "MISSING_ROOT")
            return result, []

        root = tree["QBXML"]
        if not isinstance(root, dict):
            result.add_error("QBXML", "QBXML root has no child elements", "INVALID_STRUCTURE")
            return result, []

        group = root.get(group_name)
        if group is None:
            result.add_error(
                group_name,
                f"Missing {group_name} element",
                f"MISSING_MSGS_{suffix.upper()}",
            )
            return result, []
        if isinstance(group, list):
            result.add_error(
                group_name,
                f"Expected exactly one {group_name} element, found {len(group)}",
                "INVALID_STRUCTURE",
            )
            return result, []

        on_error = attribute(group, "onError")
        if on_error is not None and on_error not in ON_ERROR_VALUES:
            result.add_warning(
                f"{group_name}.onError",
                f"Unknown onError value: {on_error}",
                "INVALID_ON_ERROR",
            )

        messages = message_elements(group, suffix)
        if not messages:
            result.add_error(
                group_name,
                f"No {kind} found in {group_name}",
                f"NO_{kind.upper()}",
            )
            return result, []

        for tag, node in messages:
            if not attribute(node, "requestID"):
                result.add_warning(tag, f"{tag} has no requestID", "MISSING_REQUEST_ID")

        return result, messages

    def _check_max_returned(self, tag: str, node: Any, result: ValidationResult) -> None:
        if not isinstance(node, dict) or "MaxReturned" not in node:
            return
        raw = node["MaxReturned"]
        low, high = MAX_RETURNED_RANGE
        try:
            value = int(str(raw).strip())
        except ValueError:
            value = None
        if value is None or not low <= value <= high:
            result.add_warning(
                f"{tag}.MaxReturned",
                f"MaxReturned must be between {low} and {high}, got {raw}",
                "INVALID_MAX_RETURNED",
            )

    def _check_status(self, tag: str, node: Any, result: ValidationResult) -> None:
        status_code = attribute(node, "statusCode")
        severity = attribute(node, "statusSeverity")

        if status_code is None:
            result.add_error(f"{tag}.statusCode", f"{tag} has no statusCode", "MISSING_STATUS_CODE")
        if severity is None:
            result.add_error(
                f"{tag}.statusSeverity",
                f"{tag} has no statusSeverity",
                "MISSING_STATUS_SEVERITY",
            )
        elif severity not in STATUS_SEVERITIES:
            result.add_error(
                f"{tag}.statusSeverity",
                f"Invalid statusSeverity: {severity}",
                "INVALID_STATUS_SEVERITY",
            )
        if attribute(node, "statusMessage") is None:
            result.add_warning(
                f"{tag}.statusMessage",
                f"{tag} has no statusMessage",
                "MISSING_STATUS_MESSAGE",
            )
        if status_code is not None and status_code != "0":
            result.add_warning(
                f"{tag}.statusCode",
                f"QuickBooks returned status {status_code}: "
                f"{attribute(node, 'statusMessage') or 'no message'}",
                "RESPONSE_ERROR",
            )

    def _check_contact(self, entity: Any, result: ValidationResult) -> None:
        email = getattr(entity, "email", None)
        if email and not _EMAIL.match(email):
            result.add_error("email", f"Invalid email address: {email}", "INVALID_EMAIL")
        for field_name in ("phone", "alt_phone", "mobile", "fax"):
            value = getattr(entity, field_name, None)
            if value and not _PHONE.match(value):
                result.add_warning(field_name, f"Invalid phone number: {value}", "INVALID_PHONE")

    def _check_credit_limit(self, credit_limit: Optional[float], result: ValidationResult) -> None:
        if credit_limit is not None and credit_limit < 0:
            result.add_error(
                "credit_limit",
                f"Credit limit cannot be negative: {credit_limit}",
                "NEGATIVE_CREDIT_LIMIT",
            )

    def _check_address(
        self,
        field_name: str,
        address: Optional[Address],
        result: ValidationResult,
    ) -> None:
        if address is None:
            return
        if address.postal_code and not _POSTAL_CODE.match(address.postal_code):
            result.add_warning(
                f"{field_name}.postal_code",
                f"Unusual postal code: {address.postal_code}",
                "INVALID_POSTAL_CODE",
            )
        if address.state and not _STATE.match(address.state):
            result.add_warning(
                f"{field_name}.state",
                f"Unusual state: {address.state}",
                "INVALID_STATE",
            )

    def _check_date(self, field_name: str, value: Optional[str], result: ValidationResult) -> None:
        if value and not is_valid_date(value):
            result.add_error(field_name, f"Invalid date (expected YYYY-MM-DD): {value}", "INVALID_DATE")

    def _check_item(self, item: Item, result: ValidationResult) -> None:
        if item.qty_on_hand is not None and item.qty_on_hand < 0:
            result.add_warning(
                "qty_on_hand",
                f"Quantity on hand is negative: {item.qty_on_hand}",
                "NEGATIVE_QTY",
            )
        prices = [("sales_price", item.sales_price)]
        if item.sales_or_purchase is not None:
            prices.append(("sales_or_purchase.price", item.sales_or_purchase.price))
        for field_name, price in prices:
            if price is not None and price < 0:
                result.add_error(field_name, f"Price cannot be negative: {price}", "NEGATIVE_PRICE")

    def _check_invoice(self, invoice: Invoice, result: ValidationResult) -> None:
        for field_name in ("txn_date", "due_date", "ship_date"):
            self._check_date(field_name, getattr(invoice, field_name), result)
        if invoice.total_amount is not None and invoice.total_amount < 0:
            result.add_error(
                "total_amount",
                f"Invoice total cannot be negative: {invoice.total_amount}",
                "NEGATIVE_TOTAL",
            )
        for index, line in enumerate(invoice.line_items):
            if line.amount is not None and line.amount < 0:
                result.add_warning(
                    f"line_items[{index}].amount",
                    f"Line amount is negative: {line.amount}",
                    "NEGATIVE_AMOUNT",
                )
        self._check_address("bill_address", invoice.bill_address, result)
        self._check_address("ship_address", invoice.ship_address, result)

    def _log(self, result: ValidationResult, kind: str) -> None:
        if result.is_valid:
            logger.debug("validation_passed", kind=kind, warnings=len(result.warnings))
        else:
            logger.warning(
                "validation_failed",
                kind=kind,
                errors=len(result.errors),
                warnings=len(result.warnings),
                codes=[e.code for e in result.errors],
            )
