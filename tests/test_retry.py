"""Tests for the retry executor and the windowed batch processor."""

import asyncio

import pytest

from qbxml_relay.errors.classifier import ClassifiedError, ErrorCode
from qbxml_relay.errors.retry import (
    BatchProcessor,
    RetryPolicy,
    apply_retry_defaults,
    compute_delay,
    interruptible_sleep,
)


class FlakyOperation:
    """Fails with the given exceptions, then returns ``value``."""

    def __init__(self, failures, value="ok"):
        self.failures = list(failures)
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.value


class TestRetryExecutor:
    """Tests for bounded, classified retries."""

    def test_success_needs_no_retry(self, fast_executor, sleeper):
        operation = FlakyOperation([])

        assert asyncio.run(fast_executor.execute(operation)) == "ok"
        assert operation.calls == 1
        assert sleeper.delays == []

    def test_recovers_after_transient_failures(self, fast_executor, sleeper):
        operation = FlakyOperation([ConnectionError("network unreachable")] * 2)

        assert asyncio.run(fast_executor.execute(operation)) == "ok"
        assert operation.calls == 3
        assert sleeper.delays == [1.0, 2.0]

    def test_retryable_failure_exhausts_attempts(self, fast_executor, sleeper):
        operation = FlakyOperation([ConnectionError("network unreachable")] * 10)

        with pytest.raises(ClassifiedError) as excinfo:
            asyncio.run(fast_executor.execute(operation, context={"request_id": "r-1"}))

        assert operation.calls == 4
        assert sleeper.delays == [1.0, 2.0, 4.0]
        assert excinfo.value.code == ErrorCode.NETWORK_ERROR
        assert excinfo.value.context["request_id"] == "r-1"
        assert excinfo.value.context["attempt"] == 4
        assert excinfo.value.context["total_attempts"] == 4

    def test_non_retryable_failure_is_not_retried(self, fast_executor, sleeper):
        operation = FlakyOperation([ValueError("invalid data")])

        with pytest.raises(ClassifiedError) as excinfo:
            asyncio.run(fast_executor.execute(operation))

        assert operation.calls == 1
        assert sleeper.delays == []
        assert excinfo.value.code == ErrorCode.VALIDATION_ERROR

    def test_retryable_code_outside_policy_is_not_retried(self, fast_executor):
        operation = FlakyOperation([RuntimeError("qbXML rate limit exceeded")])

        with pytest.raises(ClassifiedError) as excinfo:
            asyncio.run(fast_executor.execute(operation))

        assert excinfo.value.code == ErrorCode.RATE_LIMIT
        assert excinfo.value.retryable is True
        assert operation.calls == 1

    def test_per_call_policy(self, fast_executor, sleeper):
        operation = FlakyOperation([ConnectionError("network unreachable")] * 10)
        policy = apply_retry_defaults({"max_retries": 1}, fast_executor.policy)

        with pytest.raises(ClassifiedError):
            asyncio.run(fast_executor.execute(operation, policy=policy))

        assert operation.calls == 2
        assert sleeper.delays == [1.0]

    def test_zero_retries(self, fast_executor):
        operation = FlakyOperation([ConnectionError("network unreachable")])
        policy = RetryPolicy(max_retries=0)

        with pytest.raises(ClassifiedError):
            asyncio.run(fast_executor.execute(operation, policy=policy))

        assert operation.calls == 1


class TestRetryPolicy:
    """Tests for delay computation and policy overrides."""

    def test_delay_grows_and_caps(self):
        policy = RetryPolicy(initial_delay=1.0, backoff_multiplier=2.0, max_delay=5.0, jitter=False)

        delays = [compute_delay(policy, attempt) for attempt in range(5)]

        assert delays == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_jitter_is_bounded(self):
        policy = RetryPolicy(initial_delay=1.0, max_jitter=0.5, jitter=True)

        assert compute_delay(policy, 0, rng=lambda: 0.0) == 1.0
        assert compute_delay(policy, 0, rng=lambda: 0.999) < 1.5

    def test_overrides_ignore_none_and_unknown_keys(self):
        base = RetryPolicy(max_retries=3)

        policy = apply_retry_defaults({"max_retries": None, "initial_delay": 0.5, "bogus": 1}, base)

        assert policy.max_retries == 3
        assert policy.initial_delay == 0.5

    def test_retryable_codes_become_frozenset(self):
        policy = apply_retry_defaults({"retryable_codes": ["TIMEOUT"]})

        assert policy.retryable_codes == frozenset({"TIMEOUT"})

    def test_should_retry_needs_both_flags(self):
        policy = RetryPolicy(retryable_codes=frozenset({ErrorCode.TIMEOUT}))

        assert policy.should_retry(ClassifiedError("t", code=ErrorCode.TIMEOUT, retryable=True))
        assert not policy.should_retry(ClassifiedError("t", code=ErrorCode.TIMEOUT, retryable=False))
        assert not policy.should_retry(ClassifiedError("n", code=ErrorCode.NETWORK_ERROR, retryable=True))


class TestInterruptibleSleep:
    def test_returns_after_timeout(self):
        async def scenario():
            sleep = interruptible_sleep(asyncio.Event())
            await sleep(0.01)
            return "slept"

        assert asyncio.run(scenario()) == "slept"

    def test_cancel_ends_the_wait(self):
        async def scenario():
            cancel = asyncio.Event()
            cancel.set()
            try:
                await interruptible_sleep(cancel)(30)
            except asyncio.CancelledError:
                return "cancelled"
            return "slept"

        assert asyncio.run(scenario()) == "cancelled"


class TestBatchProcessor:
    """Tests for windowed batch execution."""

    def test_failed_item_is_recorded_by_index(self, fast_executor):
        async def worker(item, index):
            if index == 2:
                raise ValueError("invalid data")
            return item * 10

        outcome = asyncio.run(
            BatchProcessor(fast_executor).process([1, 2, 3, 4, 5], worker, max_concurrent=2)
        )

        assert outcome.results == [10, 20, 40, 50]
        assert outcome.success_count == 4
        assert outcome.error_count == 1
        assert outcome.errors[0].index == 2
        assert outcome.errors[0].item == 3
        assert outcome.errors[0].error.code == ErrorCode.VALIDATION_ERROR
        assert outcome.errors[0].error.context["request_id"] == "batch-2"

    def test_stop_on_error_raises(self, fast_executor):
        async def worker(item, index):
            if index == 1:
                raise ValueError("invalid data")
            return item

        with pytest.raises(ClassifiedError):
            asyncio.run(
                BatchProcessor(fast_executor).process(
                    ["a", "b", "c"], worker, continue_on_error=False, max_concurrent=1
                )
            )

    def test_window_limits_concurrency(self, fast_executor):
        active = 0
        peak = 0

        async def worker(item, index):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            active -= 1
            return index

        outcome = asyncio.run(
            BatchProcessor(fast_executor).process(range(7), worker, max_concurrent=3)
        )

        assert outcome.results == list(range(7))
        assert peak == 3

    def test_empty_batch(self, fast_executor):
        async def worker(item, index):
            return item

        outcome = asyncio.run(BatchProcessor(fast_executor).process([], worker))

        assert outcome.results == []
        assert outcome.errors == []
