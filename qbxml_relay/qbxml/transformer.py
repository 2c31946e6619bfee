"""Maps QBXML response trees onto typed entities."""

from __future__ import annotations

import time
from typing import Any, Optional

from qbxml_relay.models.entities import (
    Address,
    Barcode,
    CreditCardInfo,
    Customer,
    Employee,
    Entity,
    Invoice,
    Item,
    LineItem,
    Reference,
    SalesOrPurchase,
    Vendor,
)
from qbxml_relay.models.results import ProcessingResult, ValidationIssue
from qbxml_relay.models.types import EntityType, split_message_name
from qbxml_relay.qbxml.parser import (
    TEXT_KEY,
    QBXMLParseError,
    attribute,
    ensure_list,
    message_elements,
    parse_qbxml,
)
from qbxml_relay.utils.logging import get_logger

logger = get_logger("qbxml.transformer")

_TRUE = ("true", "1")
_FALSE = ("false", "0")


def _scalar(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get(TEXT_KEY)
    if isinstance(value, list):
        return _scalar(value[0]) if value else None
    return value


def extract_text(value: Any) -> Optional[str]:
    """Text of a leaf, ``{"#text": ...}`` container or scalar; None when blank."""
    value = _scalar(value)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def extract_number(value: Any) -> Optional[float]:
    value = _scalar(value)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def extract_boolean(value: Any, default: Optional[bool] = None) -> Optional[bool]:
    """
    Interpret QuickBooks booleans.

    Accepts ``true``/``false`` (any case), ``1``/``0`` as text or number, and
    real booleans. Anything else, including other numbers, yields ``default``.
    """
    value = _scalar(value)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    lowered = str(value).strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    return default


def _node(raw: Any, key: str) -> Any:
    return raw.get(key) if isinstance(raw, dict) else None


def transform_reference(raw: Any) -> Optional[Reference]:
    if not isinstance(raw, dict):
        return None
    return Reference(
        local_id=extract_text(raw.get("ListID")),
        display_name=extract_text(raw.get("FullName")),
    )


def transform_address(raw: Any) -> Optional[Address]:
    if not isinstance(raw, dict):
        return None
    return Address(
        addr1=extract_text(raw.get("Addr1")),
        addr2=extract_text(raw.get("Addr2")),
        addr3=extract_text(raw.get("Addr3")),
        addr4=extract_text(raw.get("Addr4")),
        addr5=extract_text(raw.get("Addr5")),
        city=extract_text(raw.get("City")),
        state=extract_text(raw.get("State")),
        postal_code=extract_text(raw.get("PostalCode")),
        country=extract_text(raw.get("Country")),
        note=extract_text(raw.get("Note")),
    )


def transform_credit_card(raw: Any) -> Optional[CreditCardInfo]:
    if not isinstance(raw, dict):
        return None
    return CreditCardInfo(
        card_number=extract_text(raw.get("CreditCardNumber")),
        expiration_month=extract_number(raw.get("ExpirationMonth")),
        expiration_year=extract_number(raw.get("ExpirationYear")),
        name_on_card=extract_text(raw.get("NameOnCard")),
        card_address=extract_text(raw.get("CreditCardAddress")),
        card_postal_code=extract_text(raw.get("CreditCardPostalCode")),
    )


def transform_sales_or_purchase(raw: Any) -> Optional[SalesOrPurchase]:
    if not isinstance(raw, dict):
        return None
    return SalesOrPurchase(
        description=extract_text(raw.get("Desc")),
        price=extract_number(raw.get("Price")),
        price_percent=extract_number(raw.get("PricePercent")),
        account_ref=transform_reference(raw.get("AccountRef")),
    )


def transform_barcode(raw: Any) -> Optional[Barcode]:
    if not isinstance(raw, dict):
        return None
    return Barcode(
        value=extract_text(raw.get("BarCodeValue")),
        assign_even_if_used=extract_boolean(raw.get("AssignEvenIfUsed")),
        allow_override=extract_boolean(raw.get("AllowOverride")),
    )


def transform_line_item(raw: Any) -> LineItem:
    raw = raw if isinstance(raw, dict) else {}
    return LineItem(
        line_id=extract_text(raw.get("TxnLineID")),
        item_ref=transform_reference(raw.get("ItemRef")),
        description=extract_text(raw.get("Desc")),
        quantity=extract_number(raw.get("Quantity")),
        unit_of_measure=extract_text(raw.get("UnitOfMeasure")),
        rate=extract_number(raw.get("Rate")),
        rate_percent=extract_number(raw.get("RatePercent")),
        amount=extract_number(raw.get("Amount")),
        customer_ref=transform_reference(raw.get("CustomerRef")),
        class_ref=transform_reference(raw.get("ClassRef")),
        sales_tax_code_ref=transform_reference(raw.get("SalesTaxCodeRef")),
        is_manually_closed=extract_boolean(raw.get("IsManuallyClosed")),
        other1=extract_text(raw.get("Other1")),
        other2=extract_text(raw.get("Other2")),
    )


def base_fields(raw: Any) -> dict[str, Any]:
    """Fields every record carries; TxnID stands in for ListID on transactions."""
    raw = raw if isinstance(raw, dict) else {}
    return {
        "local_id": extract_text(raw.get("ListID")) or extract_text(raw.get("TxnID")),
        "external_id": extract_text(raw.get("ExternalGUID")),
        "created_at": extract_text(raw.get("TimeCreated")),
        "modified_at": extract_text(raw.get("TimeModified")),
        "edit_sequence": extract_text(raw.get("EditSequence")),
        "name": extract_text(raw.get("Name")),
        "display_name": extract_text(raw.get("FullName")),
        "active": extract_boolean(raw.get("IsActive"), True),
    }


class QBXMLTransformer:
    """
    Turns QBXML response documents into ProcessingResults of entities.

    Stateless; entity types without a dedicated mapping fall back to the
    base ``Entity``.
    """

    def transform_response(
        self,
        document: str,
        expected_type: Optional[EntityType] = None,
    ) -> ProcessingResult[Entity]:
        """
        Transform a full response document.

        Metadata (request id, entity type, operation) comes from the first
        response element. A non-zero status code fails the whole result with
        the status code as the issue code.

        Args:
            document: QBXML response text
            expected_type: Entity type to assume when the response element
                name does not identify one

        Returns:
            ProcessingResult with one entity per returned record
        """
        start = time.perf_counter()
        result: ProcessingResult[Entity] = ProcessingResult()
        result.metadata.entity_type = expected_type

        try:
            self._transform_into(document, expected_type, result)
        except (QBXMLParseError, ValueError, TypeError, AttributeError) as e:
            logger.warning("transform_error", error=str(e))
            result.fail(ValidationIssue("transformation", str(e), "TRANSFORMATION_ERROR"))
        finally:
            result.metadata.elapsed_ms = (time.perf_counter() - start) * 1000

        logger.debug(
            "transform_completed",
            success=result.success,
            records=result.metadata.record_count,
            entity_type=result.metadata.entity_type.value if result.metadata.entity_type else None,
        )
        return result

    def _transform_into(
        self,
        document: str,
        expected_type: Optional[EntityType],
        result: ProcessingResult[Entity],
    ) -> None:
        tree = parse_qbxml(document)
        root = tree.get("QBXML")
        group = _node(root, "QBXMLMsgsRs")
        if group is None or isinstance(group, list):
            result.fail(
                ValidationIssue(
                    "response",
                    "Invalid QBXML response structure",
                    "INVALID_STRUCTURE",
                )
            )
            return

        messages = message_elements(group, "Rs")
        if not messages:
            result.fail(
                ValidationIssue("response", "No response elements found", "NO_RESPONSE_ELEMENTS")
            )
            return

        first_tag, first_node = messages[0]
        detected, operation = split_message_name(first_tag)
        result.metadata.request_id = attribute(first_node, "requestID") or ""
        result.metadata.entity_type = detected or expected_type
        result.metadata.operation = operation

        status_code = attribute(first_node, "statusCode") or "0"
        if status_code != "0":
            message = attribute(first_node, "statusMessage") or "Unknown error"
            result.fail(ValidationIssue("response", message, str(status_code)))
            return

        for tag, node in messages:
            entity_type = split_message_name(tag)[0] or expected_type
            for ret_tag, raw in self._returned_records(node, entity_type):
                entity = self.transform_entity(raw, entity_type)
                if isinstance(entity, Item) and entity.item_type is None:
                    entity.item_type = _item_type_from_tag(ret_tag)
                result.data.append(entity)

        result.metadata.record_count = len(result.data)
        result.success = True

    def _returned_records(
        self,
        node: Any,
        entity_type: Optional[EntityType],
    ) -> list[tuple[str, Any]]:
        if not isinstance(node, dict):
            return []
        if entity_type is None:
            keys = [k for k in node if k.endswith("Ret")]
        elif entity_type is EntityType.ITEM:
            keys = [k for k in node if k.startswith("Item") and k.endswith("Ret")]
        else:
            keys = [entity_type.ret_tag] if entity_type.ret_tag in node else []

        records: list[tuple[str, Any]] = []
        for key in keys:
            records.extend((key, raw) for raw in ensure_list(node[key]))
        return records

    def transform_entity(self, raw: Any, entity_type: Optional[EntityType]) -> Entity:
        """Map one ``*Ret`` record onto the entity class for its type."""
        raw = raw if isinstance(raw, dict) else {}
        match entity_type:
            case EntityType.CUSTOMER:
                return self._customer(raw)
            case EntityType.VENDOR:
                return self._vendor(raw)
            case EntityType.EMPLOYEE:
                return self._employee(raw)
            case EntityType.ITEM:
                return self._item(raw)
            case EntityType.INVOICE:
                return self._invoice(raw)
            case _:
                return Entity(**base_fields(raw))

    def _customer(self, raw: dict) -> Customer:
        return Customer(
            **base_fields(raw),
            company_name=extract_text(raw.get("CompanyName")),
            salutation=extract_text(raw.get("Salutation")),
            first_name=extract_text(raw.get("FirstName")),
            middle_name=extract_text(raw.get("MiddleName")),
            last_name=extract_text(raw.get("LastName")),
            bill_address=transform_address(raw.get("BillAddress")),
            ship_address=transform_address(raw.get("ShipAddress")),
            phone=extract_text(raw.get("Phone")),
            alt_phone=extract_text(raw.get("AltPhone")),
            fax=extract_text(raw.get("Fax")),
            email=extract_text(raw.get("Email")),
            contact=extract_text(raw.get("Contact")),
            alt_contact=extract_text(raw.get("AltContact")),
            customer_type_ref=transform_reference(raw.get("CustomerTypeRef")),
            terms_ref=transform_reference(raw.get("TermsRef")),
            sales_rep_ref=transform_reference(raw.get("SalesRepRef")),
            balance=extract_number(raw.get("Balance")),
            total_balance=extract_number(raw.get("TotalBalance")),
            sales_tax_code_ref=transform_reference(raw.get("SalesTaxCodeRef")),
            item_sales_tax_ref=transform_reference(raw.get("ItemSalesTaxRef")),
            credit_limit=extract_number(raw.get("CreditLimit")),
            account_number=extract_text(raw.get("AccountNumber")),
            credit_card_info=transform_credit_card(raw.get("CreditCardInfo")),
            job_status=extract_text(raw.get("JobStatus")),
            job_start_date=extract_text(raw.get("JobStartDate")),
            job_projected_end_date=extract_text(raw.get("JobProjectedEndDate")),
            job_end_date=extract_text(raw.get("JobEndDate")),
            job_description=extract_text(raw.get("JobDesc")),
            job_type_ref=transform_reference(raw.get("JobTypeRef")),
            notes=extract_text(raw.get("Notes")),
            is_statement_with_parent=extract_boolean(raw.get("IsStatementWithParent")),
            delivery_method=extract_text(raw.get("DeliveryMethod")),
            price_level_ref=transform_reference(raw.get("PriceLevelRef")),
        )

    def _vendor(self, raw: dict) -> Vendor:
        return Vendor(
            **base_fields(raw),
            company_name=extract_text(raw.get("CompanyName")),
            first_name=extract_text(raw.get("FirstName")),
            last_name=extract_text(raw.get("LastName")),
            vendor_address=transform_address(raw.get("VendorAddress")),
            phone=extract_text(raw.get("Phone")),
            alt_phone=extract_text(raw.get("AltPhone")),
            fax=extract_text(raw.get("Fax")),
            email=extract_text(raw.get("Email")),
            contact=extract_text(raw.get("Contact")),
            name_on_check=extract_text(raw.get("NameOnCheck")),
            account_number=extract_text(raw.get("AccountNumber")),
            notes=extract_text(raw.get("Notes")),
            vendor_type_ref=transform_reference(raw.get("VendorTypeRef")),
            terms_ref=transform_reference(raw.get("TermsRef")),
            credit_limit=extract_number(raw.get("CreditLimit")),
            tax_identifier=extract_text(raw.get("VendorTaxIdent")),
            is_eligible_for_1099=extract_boolean(raw.get("IsVendorEligibleFor1099")),
            balance=extract_number(raw.get("Balance")),
        )

    def _employee(self, raw: dict) -> Employee:
        return Employee(
            **base_fields(raw),
            first_name=extract_text(raw.get("FirstName")),
            middle_name=extract_text(raw.get("MiddleName")),
            last_name=extract_text(raw.get("LastName")),
            employee_address=transform_address(raw.get("EmployeeAddress")),
            phone=extract_text(raw.get("Phone")),
            mobile=extract_text(raw.get("Mobile")),
            email=extract_text(raw.get("Email")),
            gender=extract_text(raw.get("Gender")),
            birth_date=extract_text(raw.get("BirthDate")),
            hired_date=extract_text(raw.get("HiredDate")),
            released_date=extract_text(raw.get("ReleasedDate")),
            account_number=extract_text(raw.get("AccountNumber")),
            notes=extract_text(raw.get("Notes")),
        )

    def _item(self, raw: dict) -> Item:
        sales_or_purchase = transform_sales_or_purchase(raw.get("SalesOrPurchase"))
        return Item(
            **base_fields(raw),
            item_type=extract_text(raw.get("Type")),
            parent_ref=transform_reference(raw.get("ParentRef")),
            unit_of_measure_set_ref=transform_reference(raw.get("UnitOfMeasureSetRef")),
            sales_tax_code_ref=transform_reference(raw.get("SalesTaxCodeRef")),
            sales_or_purchase=sales_or_purchase,
            sales_description=extract_text(raw.get("SalesDesc")),
            sales_price=extract_number(raw.get("SalesPrice")),
            barcode=transform_barcode(raw.get("Barcode")),
            is_tax_included=extract_boolean(raw.get("IsTaxIncluded")),
            qty_on_hand=extract_number(raw.get("QuantityOnHand")),
            total_value=extract_number(raw.get("TotalValue")),
            inventory_date=extract_text(raw.get("InventoryDate")),
            average_cost=extract_number(raw.get("AverageCost")),
            quantity_on_order=extract_number(raw.get("QuantityOnOrder")),
            quantity_on_sales_order=extract_number(raw.get("QuantityOnSalesOrder")),
            reorder_point=extract_number(raw.get("ReorderPoint")),
            max_quantity=extract_number(raw.get("Max")),
            preferred_vendor_ref=transform_reference(raw.get("PrefVendorRef")),
        )

    def _invoice(self, raw: dict) -> Invoice:
        return Invoice(
            **base_fields(raw),
            customer_ref=transform_reference(raw.get("CustomerRef")),
            class_ref=transform_reference(raw.get("ClassRef")),
            template_ref=transform_reference(raw.get("TemplateRef")),
            txn_date=extract_text(raw.get("TxnDate")),
            ref_number=extract_text(raw.get("RefNumber")),
            bill_address=transform_address(raw.get("BillAddress")),
            ship_address=transform_address(raw.get("ShipAddress")),
            is_pending=extract_boolean(raw.get("IsPending")),
            is_finance_charge=extract_boolean(raw.get("IsFinanceCharge")),
            po_number=extract_text(raw.get("PONumber")),
            terms_ref=transform_reference(raw.get("TermsRef")),
            due_date=extract_text(raw.get("DueDate")),
            sales_rep_ref=transform_reference(raw.get("SalesRepRef")),
            fob=extract_text(raw.get("FOB")),
            ship_date=extract_text(raw.get("ShipDate")),
            ship_method_ref=transform_reference(raw.get("ShipMethodRef")),
            subtotal=extract_number(raw.get("Subtotal")),
            item_sales_tax_ref=transform_reference(raw.get("ItemSalesTaxRef")),
            sales_tax_percentage=extract_number(raw.get("SalesTaxPercentage")),
            sales_tax_total=extract_number(raw.get("SalesTaxTotal")),
            total_amount=extract_number(raw.get("TotalAmount")),
            balance_remaining=extract_number(raw.get("BalanceRemaining")),
            customer_msg_ref=transform_reference(raw.get("CustomerMsgRef")),
            is_to_be_printed=extract_boolean(raw.get("IsToBePrinted")),
            is_to_be_emailed=extract_boolean(raw.get("IsToBeEmailed")),
            customer_sales_tax_code_ref=transform_reference(raw.get("CustomerSalesTaxCodeRef")),
            other=extract_text(raw.get("Other")),
            memo=extract_text(raw.get("Memo")),
            line_items=[transform_line_item(line) for line in ensure_list(raw.get("InvoiceLineRet"))],
        )


def _item_type_from_tag(ret_tag: str) -> Optional[str]:
    """``ItemServiceRet`` -> ``Service``; plain ``ItemRet`` has no subtype."""
    subtype = ret_tag[len("Item"):-len("Ret")]
    return subtype or None
