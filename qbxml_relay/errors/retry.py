"""Bounded retry with classified errors, plus windowed batch processing."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field, fields, replace
from typing import Any, Awaitable, Callable, Generic, Iterable, Mapping, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from qbxml_relay.errors.classifier import ClassifiedError, ErrorCode, classify, log_classified
from qbxml_relay.utils.logging import get_logger

logger = get_logger("errors.retry")

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]

DEFAULT_RETRYABLE_CODES = frozenset({
    ErrorCode.NETWORK_ERROR,
    ErrorCode.TIMEOUT,
    ErrorCode.TEMPORARY_UNAVAILABLE,
    ErrorCode.RATE_LIMIT,
    ErrorCode.QB_BUSY,
    ErrorCode.CONNECTION_LOST,
    ErrorCode.SERVER_ERROR,
})


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry settings for one call.

    Attributes:
        max_retries: Retries after the first try (total tries = max_retries + 1)
        initial_delay: Delay in seconds before the first retry
        max_delay: Cap for the exponential delay, before jitter
        backoff_multiplier: Growth factor per attempt
        retryable_codes: Codes the caller is willing to retry; a failure is
            retried only if it is classified retryable AND its code is here
        jitter: Add uniform random jitter to each delay
        max_jitter: Upper bound of the jitter, in seconds
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    retryable_codes: frozenset[str] = DEFAULT_RETRYABLE_CODES
    jitter: bool = True
    max_jitter: float = 1.0

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    def should_retry(self, error: ClassifiedError) -> bool:
        return error.retryable and error.code in self.retryable_codes


def apply_retry_defaults(
    overrides: Optional[Mapping[str, Any]] = None,
    base: Optional[RetryPolicy] = None,
) -> RetryPolicy:
    """
    Build a policy from ``base`` (or the defaults) and explicit overrides.

    Keys whose value is None are ignored so that optional call options can be
    passed straight through.
    """
    policy = base or RetryPolicy()
    if not overrides:
        return policy

    known = {f.name for f in fields(RetryPolicy)}
    changes = {k: v for k, v in overrides.items() if k in known and v is not None}
    if "retryable_codes" in changes:
        changes["retryable_codes"] = frozenset(changes["retryable_codes"])
    return replace(policy, **changes)


def compute_delay(
    policy: RetryPolicy,
    attempt: int,
    rng: Callable[[], float] = random.random,
) -> float:
    """
    Delay before retry number ``attempt`` (0-based).

    ``initial_delay * backoff_multiplier ** attempt``, capped at ``max_delay``,
    plus up to ``max_jitter`` seconds of jitter when enabled.
    """
    delay = policy.initial_delay * (policy.backoff_multiplier ** attempt)
    delay = min(delay, policy.max_delay)
    if policy.jitter:
        delay += rng() * policy.max_jitter
    return delay


def interruptible_sleep(cancel: asyncio.Event) -> SleepFn:
    """
    Sleep function that ends early when ``cancel`` is set.

    Pass it as the executor's ``sleep`` to let a caller with a deadline abort
    a pending retry delay; the wait raises ``asyncio.CancelledError``.
    """

    async def _sleep(seconds: float) -> None:
        try:
            await asyncio.wait_for(cancel.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise asyncio.CancelledError("retry delay cancelled")

    return _sleep


class RetryExecutor:
    """
    Runs an async operation with bounded, classified retries.

    Every failure is classified, including the last one, so callers always
    receive a ``ClassifiedError``.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: SleepFn = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """
        Initialize the executor.

        Args:
            policy: Default policy for calls that do not pass one
            sleep: Awaitable delay function (injected in tests, or an
                interruptible sleep for cancellation)
            rng: Source of jitter in [0, 1)
        """
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        context: Optional[dict[str, Any]] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> T:
        """
        Execute ``operation`` with retries.

        Args:
            operation: Zero-argument coroutine function
            context: Origin context attached to classified errors
            policy: Per-call policy, defaults to the executor's

        Returns:
            The operation's result

        Raises:
            ClassifiedError: On a non-retryable failure or when attempts run out
        """
        policy = policy or self.policy
        base_context = dict(context or {})
        total = policy.total_attempts

        def _retry_predicate(exc: BaseException) -> bool:
            return isinstance(exc, ClassifiedError) and policy.should_retry(exc)

        def _wait(state: RetryCallState) -> float:
            return compute_delay(policy, state.attempt_number - 1, self._rng)

        def _before_sleep(state: RetryCallState) -> None:
            logger.info(
                "retrying_operation",
                attempt=state.attempt_number,
                total_attempts=total,
                delay_seconds=round(state.next_action.sleep, 3) if state.next_action else None,
                **{k: str(v) for k, v in base_context.items()},
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(total),
            retry=retry_if_exception(_retry_predicate),
            wait=_wait,
            sleep=self._sleep,
            before_sleep=_before_sleep,
            reraise=True,
        )

        result: Any = None
        async for attempt in retrying:
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                try:
                    result = await operation()
                except Exception as exc:
                    classified = classify(exc, base_context).with_context(
                        attempt=attempt_number,
                        total_attempts=total,
                    )
                    log_classified(classified, event="operation_failed")
                    if classified is exc:
                        raise
                    raise classified from exc
        return result


@dataclass
class BatchError:
    """A failed batch item, keyed by its position in the input."""

    index: int
    error: ClassifiedError
    item: Any = None

    def to_dict(self) -> dict:
        return {"index": self.index, "error": self.error.to_dict()}


@dataclass
class BatchOutcome(Generic[T]):
    """Successes in input order plus index-keyed failures."""

    results: list[T] = field(default_factory=list)
    errors: list[BatchError] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.results)

    @property
    def error_count(self) -> int:
        return len(self.errors)


class BatchProcessor:
    """
    Processes items in fixed-size windows through a RetryExecutor.

    At most ``max_concurrent`` items run at once; the next window starts only
    after the current one finishes.
    """

    def __init__(self, executor: Optional[RetryExecutor] = None) -> None:
        self.executor = executor or RetryExecutor()

    async def process(
        self,
        items: Iterable[Any],
        worker: Callable[[Any, int], Awaitable[T]],
        continue_on_error: bool = True,
        max_concurrent: int = 5,
        context: Optional[dict[str, Any]] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> BatchOutcome[T]:
        """
        Run ``worker(item, index)`` for every item.

        Args:
            items: Inputs
            worker: Async callable producing one result
            continue_on_error: Record failures and keep going; when False the
                first failure (by index) of a window is raised
            max_concurrent: Window size
            context: Context attached to every item's classified errors
            policy: Retry policy for each item

        Returns:
            BatchOutcome with results ordered by input index
        """
        items = list(items)
        window = max(1, max_concurrent)
        outcome: BatchOutcome[T] = BatchOutcome()
        successes: dict[int, T] = {}

        logger.info("batch_started", items=len(items), window=window)

        async def _run_one(index: int, item: Any) -> tuple[int, Any, Optional[ClassifiedError]]:
            item_context = {**(context or {}), "request_id": f"batch-{index}"}
            try:
                value = await self.executor.execute(
                    lambda: worker(item, index),
                    context=item_context,
                    policy=policy,
                )
                return index, value, None
            except Exception as exc:
                return index, None, classify(exc, item_context)

        for start in range(0, len(items), window):
            chunk = items[start:start + window]
            finished = await asyncio.gather(
                *(_run_one(start + offset, item) for offset, item in enumerate(chunk))
            )

            for index, value, error in sorted(finished, key=lambda entry: entry[0]):
                if error is None:
                    successes[index] = value
                    continue
                if not continue_on_error:
                    logger.warning("batch_aborted", index=index, code=error.code)
                    raise error
                outcome.errors.append(BatchError(index=index, error=error, item=items[index]))

        outcome.results = [successes[i] for i in sorted(successes)]

        logger.info(
            "batch_completed",
            items=len(items),
            succeeded=outcome.success_count,
            failed=outcome.error_count,
        )
        return outcome
