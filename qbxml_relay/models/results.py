"""Validation issues and processing result envelopes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from qbxml_relay.models.types import EntityType, Operation

T = TypeVar("T")


class IssueSeverity(Enum):
    """Severity of a validation issue."""

    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ValidationIssue:
    """
    One finding from validation or processing.

    Attributes:
        field: Document field or pipeline stage the issue refers to
        message: Human-readable description
        code: Stable machine-readable code (e.g. FIELD_TOO_LONG)
        severity: warning, error or critical
    """

    field: str
    message: str
    code: str
    severity: IssueSeverity = IssueSeverity.ERROR

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "field": self.field,
            "message": self.message,
            "code": self.code,
            "severity": self.severity.value,
        }


@dataclass
class ValidationResult:
    """Outcome of one validation pass. Warnings never affect ``is_valid``."""

    is_valid: bool = True
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    def add_error(
        self,
        field_name: str,
        message: str,
        code: str,
        severity: IssueSeverity = IssueSeverity.ERROR,
    ) -> None:
        self.errors.append(ValidationIssue(field_name, message, code, severity))
        self.is_valid = False

    def add_warning(self, field_name: str, message: str, code: str) -> None:
        self.warnings.append(
            ValidationIssue(field_name, message, code, IssueSeverity.WARNING)
        )

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        """Fold another result into this one."""
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.is_valid = self.is_valid and other.is_valid
        return self

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass
class ProcessingMetadata:
    """Timing and identification of one pipeline run."""

    request_id: str = ""
    entity_type: Optional[EntityType] = None
    operation: Operation = Operation.QUERY
    processed_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    elapsed_ms: float = 0.0
    record_count: int = 0

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "entity_type": self.entity_type.value if self.entity_type else None,
            "operation": self.operation.value,
            "processed_at": self.processed_at.isoformat(),
            "elapsed_ms": round(self.elapsed_ms, 3),
            "record_count": self.record_count,
        }


@dataclass
class ProcessingResult(Generic[T]):
    """
    Uniform envelope returned by the transformer and the pipeline.

    ``success=False`` always carries at least one error; on success
    ``metadata.record_count == len(data)``.
    """

    success: bool = False
    data: list[T] = field(default_factory=list)
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    metadata: ProcessingMetadata = field(default_factory=ProcessingMetadata)

    def fail(self, *issues: ValidationIssue) -> "ProcessingResult[T]":
        """Mark the result failed, dropping any partial data."""
        self.errors.extend(issues)
        self.success = False
        self.data = []
        self.metadata.record_count = 0
        return self

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "data": [_serialize(item) for item in self.data],
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "metadata": self.metadata.to_dict(),
        }


def _serialize(item: Any) -> Any:
    to_dict = getattr(item, "to_dict", None)
    return to_dict() if callable(to_dict) else item
