"""Data models for qbxml-relay."""

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
from qbxml_relay.models.results import (
    IssueSeverity,
    ProcessingMetadata,
    ProcessingResult,
    ValidationIssue,
    ValidationResult,
)
from qbxml_relay.models.session import (
    INVALID_USER,
    Session,
    SessionStats,
    SessionStatus,
    generate_ticket,
)
from qbxml_relay.models.types import EntityType, Operation, split_message_name

__all__ = [
    # Enumerations
    "EntityType",
    "Operation",
    "split_message_name",
    # Entities
    "Entity",
    "Customer",
    "Vendor",
    "Employee",
    "Item",
    "Invoice",
    "Reference",
    "Address",
    "LineItem",
    "CreditCardInfo",
    "SalesOrPurchase",
    "Barcode",
    # Results
    "IssueSeverity",
    "ValidationIssue",
    "ValidationResult",
    "ProcessingMetadata",
    "ProcessingResult",
    # Sessions
    "Session",
    "SessionStats",
    "SessionStatus",
    "INVALID_USER",
    "generate_ticket",
]
