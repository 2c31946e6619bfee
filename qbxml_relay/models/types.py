"""Enumerations shared by the QBXML pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class EntityType(Enum):
    """QuickBooks list and transaction types the relay understands."""

    CUSTOMER = "Customer"
    ITEM = "Item"
    INVOICE = "Invoice"
    SALES_ORDER = "SalesOrder"
    PURCHASE_ORDER = "PurchaseOrder"
    VENDOR = "Vendor"
    EMPLOYEE = "Employee"
    PAYMENT = "ReceivePayment"
    ACCOUNT = "Account"
    TERMS = "Terms"
    SALES_REP = "SalesRep"
    CUSTOMER_TYPE = "CustomerType"
    JOB_TYPE = "JobType"
    PRICE_LEVEL = "PriceLevel"

    @property
    def ret_tag(self) -> str:
        """Element name of one returned record, e.g. ``CustomerRet``."""
        return f"{self.value}Ret"

    @classmethod
    def parse(cls, value: "EntityType | str | None") -> Optional["EntityType"]:
        """Accept an enum member, its value or its name (case-insensitive)."""
        if value is None or isinstance(value, EntityType):
            return value
        text = str(value).strip()
        for member in cls:
            if text == member.value or text.upper() == member.name:
                return member
        return None


class Operation(Enum):
    """QBXML message operations."""

    QUERY = "Query"
    ADD = "Add"
    MOD = "Mod"
    DEL = "Del"


# Longest names first so that e.g. "CustomerType" wins over "Customer"
_ENTITY_NAMES = sorted(EntityType, key=lambda e: len(e.value), reverse=True)


def split_message_name(tag: str) -> tuple[Optional[EntityType], Operation]:
    """
    Split a message element name into entity type and operation.

    ``CustomerQueryRs`` -> (CUSTOMER, QUERY); ``InvoiceAddRq`` -> (INVOICE, ADD).
    Unknown entity prefixes yield ``None``; unknown operations default to QUERY.
    """
    stem = tag
    for suffix in ("Rq", "Rs"):
        if stem.endswith(suffix):
            stem = stem[: -len(suffix)]
            break

    operation = Operation.QUERY
    for op in Operation:
        if stem.endswith(op.value):
            operation = op
            stem = stem[: -len(op.value)]
            break

    for entity in _ENTITY_NAMES:
        if stem == entity.value:
            return entity, operation

    # ItemServiceQueryRs, ItemInventoryAddRq, ...
    if stem.startswith(EntityType.ITEM.value):
        return EntityType.ITEM, operation

    return None, operation
