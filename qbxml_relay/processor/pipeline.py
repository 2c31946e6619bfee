"""QBXML processing pipeline: validate, transform, optionally check entities."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Optional, Union

from qbxml_relay import __version__
from qbxml_relay.config.settings import ProcessorConfig
from qbxml_relay.errors.classifier import ClassifiedError, classify
from qbxml_relay.errors.retry import (
    BatchProcessor,
    RetryExecutor,
    RetryPolicy,
    apply_retry_defaults,
)
from qbxml_relay.models.entities import Entity
from qbxml_relay.models.results import ProcessingResult, ValidationIssue, ValidationResult
from qbxml_relay.models.types import EntityType, split_message_name
from qbxml_relay.qbxml.parser import QBXMLParseError, attribute, message_elements, parse_qbxml
from qbxml_relay.qbxml.transformer import QBXMLTransformer
from qbxml_relay.qbxml.validator import QBXMLValidator
from qbxml_relay.utils.logging import get_logger, get_request_id, log_processing_result, new_request_id

logger = get_logger("processor.pipeline")

SAMPLE_REQUEST = """<?xml version="1.0" encoding="utf-8"?>
<QBXML>
  <QBXMLMsgsRq onError="stopOnError">
    <CustomerQueryRq requestID="1">
      <MaxReturned>1</MaxReturned>
    </CustomerQueryRq>
  </QBXMLMsgsRq>
</QBXML>"""

SAMPLE_RESPONSE = """<?xml version="1.0" encoding="utf-8"?>
<QBXML>
  <QBXMLMsgsRs>
    <CustomerQueryRs requestID="1" statusCode="0" statusSeverity="Info" statusMessage="Status OK">
      <CustomerRet>
        <ListID>123</ListID>
        <Name>Test Customer</Name>
        <FullName>Test Customer</FullName>
        <IsActive>true</IsActive>
      </CustomerRet>
    </CustomerQueryRs>
  </QBXMLMsgsRs>
</QBXML>"""


@dataclass(frozen=True)
class ProcessOptions:
    """
    Per-call pipeline options.

    Attributes:
        validate_schema: Run structural validation before transforming
        transform_data: Map response records onto entities
        validate_entities: Run semantic checks on every transformed entity
        max_retries: Overrides the configured retry count when set
        continue_on_error: Batch only; keep going after a failed item
        max_concurrent: Batch only; window size
    """

    validate_schema: bool = True
    transform_data: bool = True
    validate_entities: bool = False
    max_retries: Optional[int] = None
    continue_on_error: bool = True
    max_concurrent: int = 3


@dataclass(frozen=True)
class BatchItem:
    """One document in a batch."""

    document: str
    expected_type: Optional[EntityType] = None


@dataclass
class BatchSummary:
    total: int = 0
    successful: int = 0
    failed: int = 0
    warnings: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BatchReport:
    """Per-item results in input order plus counts."""

    results: list[ProcessingResult[Entity]] = field(default_factory=list)
    summary: BatchSummary = field(default_factory=BatchSummary)

    def to_dict(self) -> dict:
        return {
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary.to_dict(),
        }


@dataclass
class HealthReport:
    status: str = "healthy"
    components: dict[str, str] = field(default_factory=dict)
    details: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"status": self.status, "components": dict(self.components)}
        if self.details:
            data["details"] = list(self.details)
        return data


class QBXMLProcessor:
    """
    Orchestrates validation, transformation and retry for QBXML documents.

    Validation and transformation failures come back as unsuccessful
    ProcessingResults; only unexpected exceptions go through the retry
    executor, and those are folded into a single ``processing`` issue once
    attempts run out.
    """

    def __init__(
        self,
        config: Optional[ProcessorConfig] = None,
        validator: Optional[QBXMLValidator] = None,
        transformer: Optional[QBXMLTransformer] = None,
        executor: Optional[RetryExecutor] = None,
    ) -> None:
        """
        Initialize the processor.

        Args:
            config: Stage toggles and retry settings
            validator: Document validator (shared, stateless)
            transformer: Document transformer (shared, stateless)
            executor: Retry executor; built from ``config.retry`` if omitted
        """
        self.config = config if config is not None else ProcessorConfig()
        self.validator = validator if validator is not None else QBXMLValidator()
        self.transformer = transformer if transformer is not None else QBXMLTransformer()
        self.executor = executor if executor is not None else RetryExecutor(self.config.retry.to_policy())

    def validate_request(
        self,
        document: str,
        expected_type: Optional[EntityType] = None,
    ) -> ValidationResult:
        return self.validator.validate_request(document, expected_type)

    async def process_request(
        self,
        document: str,
        expected_type: Optional[EntityType] = None,
        options: Optional[ProcessOptions] = None,
    ) -> ProcessingResult[Entity]:
        """
        Validate an outbound request before it is handed to QuickBooks.

        No data is produced; ``success`` reflects the validation verdict.
        """
        options = options or ProcessOptions()
        start = time.perf_counter()
        result: ProcessingResult[Entity] = ProcessingResult()
        result.metadata.request_id = self._request_id()
        result.metadata.entity_type = expected_type

        try:
            self._describe_request(document, result)
            if self.config.validation_enabled and options.validate_schema:
                validation = self.validator.validate_request(document, expected_type)
                result.warnings.extend(validation.warnings)
                if not validation.is_valid:
                    result.fail(*validation.errors)
                    return result
            result.success = True
        except Exception as e:
            error = classify(e, self._context(expected_type, "request", result.metadata.request_id))
            result.fail(error.to_issue("request_processing"))
        finally:
            result.metadata.elapsed_ms = (time.perf_counter() - start) * 1000
            self._log_result(result)

        return result

    async def process_response(
        self,
        document: str,
        expected_type: Optional[EntityType] = None,
        options: Optional[ProcessOptions] = None,
    ) -> ProcessingResult[Entity]:
        """
        Run the full response pipeline.

        Args:
            document: QBXML response text
            expected_type: Entity type the caller asked for
            options: Per-call options

        Returns:
            ProcessingResult; never raises
        """
        options = options or ProcessOptions()
        start = time.perf_counter()
        request_id = self._request_id()
        context = self._context(expected_type, "response", request_id)

        async def _attempt() -> ProcessingResult[Entity]:
            return self._run_pipeline(document, expected_type, options, request_id)

        try:
            if self.config.error_handling_enabled:
                result = await self.executor.execute(
                    _attempt,
                    context=context,
                    policy=self._policy(options),
                )
            else:
                result = await _attempt()
        except Exception as e:
            error = classify(e, context)
            result = ProcessingResult()
            result.metadata.request_id = request_id
            result.metadata.entity_type = expected_type
            result.fail(error.to_issue("processing"))

        result.metadata.elapsed_ms = (time.perf_counter() - start) * 1000
        self._log_result(result)
        return result

    async def process_batch(
        self,
        items: Iterable[Union[BatchItem, str]],
        options: Optional[ProcessOptions] = None,
    ) -> BatchReport:
        """
        Process several response documents in bounded windows.

        Each item keeps its own retry loop, so the batch layer does not
        retry again. Items whose pipeline raised are reported as failed
        results at their input position.

        Raises:
            ClassifiedError: When ``continue_on_error`` is False and an item
                raised
        """
        options = options or ProcessOptions()
        batch_items = [
            item if isinstance(item, BatchItem) else BatchItem(document=item)
            for item in items
        ]

        async def _worker(item: BatchItem, index: int) -> tuple[int, ProcessingResult[Entity]]:
            return index, await self.process_response(item.document, item.expected_type, options)

        batch = BatchProcessor(self.executor)
        outcome = await batch.process(
            batch_items,
            _worker,
            continue_on_error=options.continue_on_error,
            max_concurrent=options.max_concurrent,
            context={"operation": "batch"},
            policy=RetryPolicy(max_retries=0),
        )

        by_index: dict[int, ProcessingResult[Entity]] = dict(outcome.results)
        for failure in outcome.errors:
            failed: ProcessingResult[Entity] = ProcessingResult()
            failed.metadata.request_id = f"batch-{failure.index}"
            failed.metadata.entity_type = batch_items[failure.index].expected_type
            by_index[failure.index] = failed.fail(failure.error.to_issue("processing"))

        results = [by_index[i] for i in sorted(by_index)]
        summary = BatchSummary(
            total=len(batch_items),
            successful=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
            warnings=sum(len(r.warnings) for r in results),
        )

        logger.info("batch_processed", **summary.to_dict())
        return BatchReport(results=results, summary=summary)

    async def health_check(self) -> HealthReport:
        """
        Exercise each component against built-in samples.

        ``unhealthy`` when every component fails, ``degraded`` when some do.
        """
        report = HealthReport(
            components={"validator": "ok", "transformer": "ok", "error_handler": "ok"}
        )

        try:
            validation = self.validator.validate_request(SAMPLE_REQUEST, EntityType.CUSTOMER)
            if not validation.is_valid:
                raise ValueError(", ".join(e.message for e in validation.errors))
        except Exception as e:
            report.components["validator"] = "error"
            report.details.append(f"Validator error: {e}")

        try:
            transformed = self.transformer.transform_response(SAMPLE_RESPONSE, EntityType.CUSTOMER)
            if not transformed.success:
                raise ValueError(", ".join(e.message for e in transformed.errors))
        except Exception as e:
            report.components["transformer"] = "error"
            report.details.append(f"Transformer error: {e}")

        async def _noop() -> str:
            return "ok"

        try:
            await self.executor.execute(_noop, policy=RetryPolicy(max_retries=0))
        except ClassifiedError as e:
            report.components["error_handler"] = "error"
            report.details.append(f"Error handler error: {e.message}")

        failures = sum(1 for status in report.components.values() if status == "error")
        if failures == len(report.components):
            report.status = "unhealthy"
        elif failures:
            report.status = "degraded"

        logger.info("health_checked", status=report.status, failures=failures)
        return report

    def statistics(self) -> dict[str, Any]:
        """Configuration snapshot, version and enabled features."""
        features = [
            name
            for name, enabled in (
                ("validation", self.config.validation_enabled),
                ("transformation", self.config.transformation_enabled),
                ("error-handling", self.config.error_handling_enabled),
                ("entity-validation", self.config.entity_validation_enabled),
            )
            if enabled
        ]
        features.extend(["batch-processing", "health-checks"])

        config = asdict(self.config)
        config["default_entity_type"] = self.config.default_entity_type.value
        config["retry"]["retryable_codes"] = list(self.config.retry.retryable_codes)

        return {"config": config, "version": __version__, "features": features}

    def _run_pipeline(
        self,
        document: str,
        expected_type: Optional[EntityType],
        options: ProcessOptions,
        request_id: str,
    ) -> ProcessingResult[Entity]:
        result: ProcessingResult[Entity] = ProcessingResult()
        result.metadata.request_id = request_id
        result.metadata.entity_type = expected_type

        if self.config.validation_enabled and options.validate_schema:
            validation = self.validator.validate_response(document, expected_type)
            result.warnings.extend(validation.warnings)
            if not validation.is_valid:
                return result.fail(*validation.errors)

        if self.config.transformation_enabled and options.transform_data:
            transformed = self.transformer.transform_response(document, expected_type)
            result.warnings.extend(transformed.warnings)
            result.metadata.request_id = transformed.metadata.request_id or result.metadata.request_id
            result.metadata.entity_type = transformed.metadata.entity_type
            result.metadata.operation = transformed.metadata.operation
            if not transformed.success:
                return result.fail(*transformed.errors)
            result.data = list(transformed.data)

        if self.config.entity_validation_enabled or options.validate_entities:
            errors = self._validate_entities(result)
            if errors:
                return result.fail(*errors)

        result.metadata.record_count = len(result.data)
        result.success = True
        return result

    def _validate_entities(self, result: ProcessingResult[Entity]) -> list[ValidationIssue]:
        errors: list[ValidationIssue] = []
        for index, entity in enumerate(result.data):
            checked = self.validator.validate_entity(entity)
            errors.extend(_prefixed(index, checked.errors))
            result.warnings.extend(_prefixed(index, checked.warnings))
        return errors

    def _describe_request(self, document: str, result: ProcessingResult[Entity]) -> None:
        """Fill request metadata from the first message, if the document parses."""
        try:
            tree = parse_qbxml(document)
        except QBXMLParseError:
            return
        root = tree.get("QBXML")
        group = root.get("QBXMLMsgsRq") if isinstance(root, dict) else None
        messages = message_elements(group, "Rq")
        if not messages:
            return
        tag, node = messages[0]
        entity_type, operation = split_message_name(tag)
        result.metadata.request_id = attribute(node, "requestID") or result.metadata.request_id
        result.metadata.entity_type = entity_type or result.metadata.entity_type
        result.metadata.operation = operation

    def _policy(self, options: ProcessOptions) -> RetryPolicy:
        return apply_retry_defaults(
            {"max_retries": options.max_retries},
            self.executor.policy,
        )

    def _request_id(self) -> str:
        """The caller's bound request ID, or a fresh one for this call only."""
        return get_request_id() or new_request_id()

    def _context(
        self,
        expected_type: Optional[EntityType],
        kind: str,
        request_id: str,
    ) -> dict[str, Any]:
        context: dict[str, Any] = {"operation": kind, "request_id": request_id}
        if expected_type is not None:
            context["entity_type"] = expected_type.value
        return context

    def _log_result(self, result: ProcessingResult[Entity]) -> None:
        log_processing_result(
            request_id=result.metadata.request_id,
            entity_type=result.metadata.entity_type.value if result.metadata.entity_type else None,
            success=result.success,
            elapsed_ms=result.metadata.elapsed_ms,
            record_count=result.metadata.record_count,
            error_count=len(result.errors),
            warning_count=len(result.warnings),
        )


def _prefixed(index: int, issues: list[ValidationIssue]) -> list[ValidationIssue]:
    return [
        ValidationIssue(f"data[{index}].{issue.field}", issue.message, issue.code, issue.severity)
        for issue in issues
    ]
