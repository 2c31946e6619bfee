"""Typed business entities produced by the QBXML transformer.

Every entity carries the same base fields (``Entity``); each specialization
adds its own typed fields one level down and is tagged with the
``EntityType`` it represents. Nested structures (references, addresses,
line items) are plain dataclasses shared across entity types.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Optional

from qbxml_relay.models.types import EntityType


def _to_dict(obj: Any) -> Any:
    """Serialize dataclasses recursively, omitting unset (None) fields."""
    if isinstance(obj, list):
        return [_to_dict(item) for item in obj]
    if hasattr(obj, "__dataclass_fields__"):
        out: dict[str, Any] = {}
        for f in fields(obj):
            value = getattr(obj, f.name)
            if value is None or value == []:
                continue
            out[f.name] = _to_dict(value)
        return out
    return obj


@dataclass
class Reference:
    """A pointer to another QuickBooks record: ListID plus FullName."""

    local_id: Optional[str] = None
    display_name: Optional[str] = None

    def to_dict(self) -> dict:
        return _to_dict(self)

    def to_xml_fields(self) -> dict[str, str]:
        """Render back into the QBXML element names."""
        out: dict[str, str] = {}
        if self.local_id is not None:
            out["ListID"] = self.local_id
        if self.display_name is not None:
            out["FullName"] = self.display_name
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "Reference":
        return cls(
            local_id=data.get("local_id"),
            display_name=data.get("display_name"),
        )


@dataclass
class Address:
    addr1: Optional[str] = None
    addr2: Optional[str] = None
    addr3: Optional[str] = None
    addr4: Optional[str] = None
    addr5: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    note: Optional[str] = None

    def to_dict(self) -> dict:
        return _to_dict(self)


@dataclass
class CreditCardInfo:
    card_number: Optional[str] = None
    expiration_month: Optional[float] = None
    expiration_year: Optional[float] = None
    name_on_card: Optional[str] = None
    card_address: Optional[str] = None
    card_postal_code: Optional[str] = None


@dataclass
class SalesOrPurchase:
    description: Optional[str] = None
    price: Optional[float] = None
    price_percent: Optional[float] = None
    account_ref: Optional[Reference] = None


@dataclass
class Barcode:
    value: Optional[str] = None
    assign_even_if_used: Optional[bool] = None
    allow_override: Optional[bool] = None


@dataclass
class LineItem:
    """One line of a sales transaction."""

    line_id: Optional[str] = None
    item_ref: Optional[Reference] = None
    description: Optional[str] = None
    quantity: Optional[float] = None
    unit_of_measure: Optional[str] = None
    rate: Optional[float] = None
    rate_percent: Optional[float] = None
    amount: Optional[float] = None
    customer_ref: Optional[Reference] = None
    class_ref: Optional[Reference] = None
    sales_tax_code_ref: Optional[Reference] = None
    is_manually_closed: Optional[bool] = None
    other1: Optional[str] = None
    other2: Optional[str] = None

    def to_dict(self) -> dict:
        return _to_dict(self)


@dataclass
class Entity:
    """
    Base fields shared by every QuickBooks record.

    Attributes:
        local_id: ListID (lists) or TxnID (transactions)
        external_id: ExternalGUID, if the record was linked to another system
        created_at: TimeCreated as sent by QuickBooks
        modified_at: TimeModified as sent by QuickBooks
        edit_sequence: Optimistic-locking token required for Mod requests
        name: Short name
        display_name: FullName (hierarchical, colon separated)
        active: IsActive, defaults to True when absent
    """

    entity_type: ClassVar[Optional[EntityType]] = None

    local_id: Optional[str] = None
    external_id: Optional[str] = None
    created_at: Optional[str] = None
    modified_at: Optional[str] = None
    edit_sequence: Optional[str] = None
    name: Optional[str] = None
    display_name: Optional[str] = None
    active: bool = True

    def to_dict(self) -> dict:
        data = _to_dict(self)
        if self.entity_type is not None:
            data["entity_type"] = self.entity_type.value
        return data

    def base_fields(self) -> dict[str, Any]:
        """Only the fields every entity shares."""
        return {f.name: getattr(self, f.name) for f in fields(Entity)}


@dataclass
class Customer(Entity):
    entity_type: ClassVar[Optional[EntityType]] = EntityType.CUSTOMER

    company_name: Optional[str] = None
    salutation: Optional[str] = None
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    bill_address: Optional[Address] = None
    ship_address: Optional[Address] = None
    phone: Optional[str] = None
    alt_phone: Optional[str] = None
    fax: Optional[str] = None
    email: Optional[str] = None
    contact: Optional[str] = None
    alt_contact: Optional[str] = None
    customer_type_ref: Optional[Reference] = None
    terms_ref: Optional[Reference] = None
    sales_rep_ref: Optional[Reference] = None
    balance: Optional[float] = None
    total_balance: Optional[float] = None
    sales_tax_code_ref: Optional[Reference] = None
    item_sales_tax_ref: Optional[Reference] = None
    credit_limit: Optional[float] = None
    account_number: Optional[str] = None
    credit_card_info: Optional[CreditCardInfo] = None
    job_status: Optional[str] = None
    job_start_date: Optional[str] = None
    job_projected_end_date: Optional[str] = None
    job_end_date: Optional[str] = None
    job_description: Optional[str] = None
    job_type_ref: Optional[Reference] = None
    notes: Optional[str] = None
    is_statement_with_parent: Optional[bool] = None
    delivery_method: Optional[str] = None
    price_level_ref: Optional[Reference] = None


@dataclass
class Vendor(Entity):
    entity_type: ClassVar[Optional[EntityType]] = EntityType.VENDOR

    company_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    vendor_address: Optional[Address] = None
    phone: Optional[str] = None
    alt_phone: Optional[str] = None
    fax: Optional[str] = None
    email: Optional[str] = None
    contact: Optional[str] = None
    name_on_check: Optional[str] = None
    account_number: Optional[str] = None
    notes: Optional[str] = None
    vendor_type_ref: Optional[Reference] = None
    terms_ref: Optional[Reference] = None
    credit_limit: Optional[float] = None
    tax_identifier: Optional[str] = None
    is_eligible_for_1099: Optional[bool] = None
    balance: Optional[float] = None


@dataclass
class Employee(Entity):
    entity_type: ClassVar[Optional[EntityType]] = EntityType.EMPLOYEE

    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    employee_address: Optional[Address] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
    gender: Optional[str] = None
    birth_date: Optional[str] = None
    hired_date: Optional[str] = None
    released_date: Optional[str] = None
    account_number: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class Item(Entity):
    entity_type: ClassVar[Optional[EntityType]] = EntityType.ITEM

    item_type: Optional[str] = None  # Service, Inventory, NonInventory, ...
    parent_ref: Optional[Reference] = None
    unit_of_measure_set_ref: Optional[Reference] = None
    sales_tax_code_ref: Optional[Reference] = None
    sales_or_purchase: Optional[SalesOrPurchase] = None
    sales_description: Optional[str] = None
    sales_price: Optional[float] = None
    barcode: Optional[Barcode] = None
    is_tax_included: Optional[bool] = None
    qty_on_hand: Optional[float] = None
    total_value: Optional[float] = None
    inventory_date: Optional[str] = None
    average_cost: Optional[float] = None
    quantity_on_order: Optional[float] = None
    quantity_on_sales_order: Optional[float] = None
    reorder_point: Optional[float] = None
    max_quantity: Optional[float] = None
    preferred_vendor_ref: Optional[Reference] = None


@dataclass
class Invoice(Entity):
    entity_type: ClassVar[Optional[EntityType]] = EntityType.INVOICE

    customer_ref: Optional[Reference] = None
    class_ref: Optional[Reference] = None
    template_ref: Optional[Reference] = None
    txn_date: Optional[str] = None
    ref_number: Optional[str] = None
    bill_address: Optional[Address] = None
    ship_address: Optional[Address] = None
    is_pending: Optional[bool] = None
    is_finance_charge: Optional[bool] = None
    po_number: Optional[str] = None
    terms_ref: Optional[Reference] = None
    due_date: Optional[str] = None
    sales_rep_ref: Optional[Reference] = None
    fob: Optional[str] = None
    ship_date: Optional[str] = None
    ship_method_ref: Optional[Reference] = None
    subtotal: Optional[float] = None
    item_sales_tax_ref: Optional[Reference] = None
    sales_tax_percentage: Optional[float] = None
    sales_tax_total: Optional[float] = None
    total_amount: Optional[float] = None
    balance_remaining: Optional[float] = None
    customer_msg_ref: Optional[Reference] = None
    is_to_be_printed: Optional[bool] = None
    is_to_be_emailed: Optional[bool] = None
    customer_sales_tax_code_ref: Optional[Reference] = None
    other: Optional[str] = None
    memo: Optional[str] = None
    line_items: list[LineItem] = field(default_factory=list)
