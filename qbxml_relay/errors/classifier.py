"""Error classification for QuickBooks / Web Connector failures.

A raw failure is mapped to a ``ClassifiedError`` carrying a stable code, a
severity and whether retrying can help. Classification is an ordered list of
``(predicate, Classification)`` rules evaluated against the lower-cased
message text: the QuickBooks-specific table first, then the generic
categories, then a conservative default.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from qbxml_relay.models.results import IssueSeverity, ValidationIssue
from qbxml_relay.utils.logging import get_logger

logger = get_logger("errors.classifier")


class ErrorCode:
    """Stable classification codes."""

    # QuickBooks / Web Connector specific
    QB_BUSY = "QB_BUSY"
    COMPANY_FILE_NOT_FOUND = "COMPANY_FILE_NOT_FOUND"
    COMPANY_FILE_CORRUPT = "COMPANY_FILE_CORRUPT"
    ACCESS_DENIED = "ACCESS_DENIED"
    DUPLICATE_NAME = "DUPLICATE_NAME"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    INVALID_DATA = "INVALID_DATA"
    CONNECTION_LOST = "CONNECTION_LOST"
    QBWC_NOT_RUNNING = "QBWC_NOT_RUNNING"
    VERSION_MISMATCH = "VERSION_MISMATCH"
    FEATURE_NOT_SUPPORTED = "FEATURE_NOT_SUPPORTED"
    RATE_LIMIT = "RATE_LIMIT"
    QB_ERROR = "QB_ERROR"

    # Generic categories
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    PARSING_ERROR = "PARSING_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    # Retryable codes that are never produced by message matching but may be
    # raised explicitly by collaborators
    TEMPORARY_UNAVAILABLE = "TEMPORARY_UNAVAILABLE"
    SERVER_ERROR = "SERVER_ERROR"


@dataclass(frozen=True)
class Classification:
    """The verdict for one failure."""

    code: str
    severity: IssueSeverity
    retryable: bool


class ClassifiedError(Exception):
    """
    A failure with its classification attached.

    Created once where the raw failure is caught. Only ``context`` may change
    afterwards (via ``with_context``).
    """

    def __init__(
        self,
        message: str,
        code: str = ErrorCode.UNKNOWN_ERROR,
        severity: IssueSeverity = IssueSeverity.ERROR,
        retryable: bool = False,
        qb_error_code: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.retryable = retryable
        self.qb_error_code = qb_error_code
        self.context: dict[str, Any] = {
            k: v for k, v in (context or {}).items() if v is not None
        }

    @classmethod
    def from_classification(
        cls,
        message: str,
        classification: Classification,
        qb_error_code: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> "ClassifiedError":
        return cls(
            message,
            code=classification.code,
            severity=classification.severity,
            retryable=classification.retryable,
            qb_error_code=qb_error_code,
            context=context,
        )

    @property
    def classification(self) -> Classification:
        return Classification(self.code, self.severity, self.retryable)

    def with_context(self, **context: Any) -> "ClassifiedError":
        """Enrich the origin context in place (unset values are ignored)."""
        self.context.update({k: v for k, v in context.items() if v is not None})
        return self

    def to_issue(self, field_name: str = "processing") -> ValidationIssue:
        """Fold into a result envelope; warnings are reported as errors."""
        severity = (
            IssueSeverity.CRITICAL
            if self.severity == IssueSeverity.CRITICAL
            else IssueSeverity.ERROR
        )
        return ValidationIssue(field_name, self.message, self.code, severity)

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "code": self.code,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "qb_error_code": self.qb_error_code,
            "context": {k: str(v) for k, v in self.context.items()},
        }

    def __repr__(self) -> str:
        return f"ClassifiedError({self.code}, {self.message!r})"


Rule = tuple[Callable[[str], bool], Classification]


def _pattern(regex: str) -> Callable[[str], bool]:
    compiled = re.compile(regex, re.IGNORECASE)
    return lambda text: compiled.search(text) is not None


def _contains_any(*needles: str) -> Callable[[str], bool]:
    return lambda text: any(needle in text for needle in needles)


def _rule(
    predicate: Callable[[str], bool],
    code: str,
    severity: IssueSeverity,
    retryable: bool,
) -> Rule:
    return predicate, Classification(code, severity, retryable)


W, E, C = IssueSeverity.WARNING, IssueSeverity.ERROR, IssueSeverity.CRITICAL

QUICKBOOKS_RULES: list[Rule] = [
    _rule(_pattern(r"application.*busy|company.*file.*in use"), ErrorCode.QB_BUSY, E, True),
    _rule(_pattern(r"company.*file.*not.*found|no.*company.*file"), ErrorCode.COMPANY_FILE_NOT_FOUND, C, False),
    _rule(_pattern(r"company.*file.*corrupt"), ErrorCode.COMPANY_FILE_CORRUPT, C, False),
    _rule(_pattern(r"access.*denied|permission.*denied|unauthorized"), ErrorCode.ACCESS_DENIED, C, False),
    _rule(_pattern(r"duplicate.*name|name.*already.*exists"), ErrorCode.DUPLICATE_NAME, E, False),
    _rule(_pattern(r"record.*not.*found|invalid.*reference"), ErrorCode.RECORD_NOT_FOUND, E, False),
    _rule(_pattern(r"invalid.*data|data.*format"), ErrorCode.INVALID_DATA, E, False),
    _rule(_pattern(r"connection.*lost|connection.*timeout"), ErrorCode.CONNECTION_LOST, E, True),
    _rule(_pattern(r"qbwc.*not.*running|web.*connector.*not"), ErrorCode.QBWC_NOT_RUNNING, C, False),
    _rule(_pattern(r"version.*mismatch|unsupported.*version"), ErrorCode.VERSION_MISMATCH, C, False),
    _rule(_pattern(r"feature.*not.*supported"), ErrorCode.FEATURE_NOT_SUPPORTED, E, False),
    _rule(_pattern(r"too.*many.*requests|rate.*limit"), ErrorCode.RATE_LIMIT, W, True),
]

QUICKBOOKS_FALLBACK = Classification(ErrorCode.QB_ERROR, E, False)

GENERIC_RULES: list[Rule] = [
    _rule(_contains_any("network", "connection", "dns", "host", "socket"), ErrorCode.NETWORK_ERROR, E, True),
    _rule(_contains_any("timeout", "timed out", "deadline exceeded"), ErrorCode.TIMEOUT, E, True),
    _rule(_contains_any("parse", "xml", "syntax", "malformed"), ErrorCode.PARSING_ERROR, E, False),
    _rule(_contains_any("validation", "invalid", "required", "format"), ErrorCode.VALIDATION_ERROR, E, False),
    _rule(
        _contains_any("authentication", "unauthorized", "invalid credentials", "access denied"),
        ErrorCode.AUTHENTICATION_ERROR,
        C,
        False,
    ),
]

DEFAULT_CLASSIFICATION = Classification(ErrorCode.UNKNOWN_ERROR, E, False)

_QB_ERROR_CODE = re.compile(r"error(?:\s+code)?:?\s*(0x[0-9a-f]+|-?\d+)", re.IGNORECASE)
_QB_CODE_PRESENT = re.compile(r"error\s*code?\s*[0-9a-fx]+", re.IGNORECASE)

# Phrases that only ever come from QuickBooks or the Web Connector
_QB_KEYWORDS = ("quickbooks", "qbxml", "qbwc", "company file", "web connector")


def is_quickbooks_error(text: str) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in _QB_KEYWORDS) or bool(_QB_CODE_PRESENT.search(text))


def extract_qb_error_code(text: str) -> Optional[str]:
    """Pull an embedded status/HRESULT code such as ``0x80040408`` or ``3100``."""
    match = _QB_ERROR_CODE.search(text)
    return match.group(1) if match else None


def _message_of(error: BaseException | str) -> str:
    if isinstance(error, str):
        return error
    return str(error) or type(error).__name__


def classify_message(text: str) -> tuple[Classification, Optional[str]]:
    """Run the ordered rule lists over a message; returns the verdict and QB code."""
    lowered = text.lower()

    if is_quickbooks_error(text):
        qb_code = extract_qb_error_code(text)
        for predicate, classification in QUICKBOOKS_RULES:
            if predicate(lowered):
                return classification, qb_code
        return QUICKBOOKS_FALLBACK, qb_code

    for predicate, classification in GENERIC_RULES:
        if predicate(lowered):
            return classification, None

    return DEFAULT_CLASSIFICATION, None


def classify(
    error: BaseException | str,
    context: Optional[dict[str, Any]] = None,
) -> ClassifiedError:
    """
    Classify a raw failure.

    An error that is already classified keeps its verdict and only gains
    context.

    Args:
        error: Exception (or bare message) caught at a boundary
        context: Origin details (request_id, entity_type, operation, ...)

    Returns:
        ClassifiedError ready to raise, retry or fold into a result
    """
    if isinstance(error, ClassifiedError):
        return error.with_context(**(context or {}))

    message = _message_of(error)
    classification, qb_code = classify_message(message)
    classified = ClassifiedError.from_classification(
        message,
        classification,
        qb_error_code=qb_code,
        context=context,
    )
    if isinstance(error, BaseException):
        classified.__cause__ = error
    return classified


def log_classified(error: ClassifiedError, event: str = "classified_error", **fields: Any) -> None:
    """Log a classified error at a level matching its severity."""
    payload = {
        "code": error.code,
        "severity": error.severity.value,
        "retryable": error.retryable,
        "qb_error_code": error.qb_error_code,
        "error": error.message,
        **{k: str(v) for k, v in error.context.items()},
        **fields,
    }
    if error.severity == IssueSeverity.CRITICAL:
        logger.error(event, critical=True, **payload)
    elif error.severity == IssueSeverity.ERROR:
        logger.error(event, **payload)
    else:
        logger.warning(event, **payload)
