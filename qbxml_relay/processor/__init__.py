"""QBXML processing pipeline."""

from qbxml_relay.processor.pipeline import (
    BatchItem,
    BatchReport,
    BatchSummary,
    HealthReport,
    ProcessOptions,
    QBXMLProcessor,
)

__all__ = [
    "BatchItem",
    "BatchReport",
    "BatchSummary",
    "HealthReport",
    "ProcessOptions",
    "QBXMLProcessor",
]
