"""Tests for RetryPolicy."""
import pytest

from mfa.shared.cancellation import CancellationToken
from mfa.shared.errors import (
    ExhaustedRetriesError,
    ServiceError,
    TransientServiceError,
    ValidationError,
)
from mfa.shared.retry import RetryPolicy, SentinelFailure, is_failure


class Flaky:
    """Fails with ``error`` for the first ``failures`` calls, then returns ``value``."""

    def __init__(self, failures, error=None, value="ok"):
        self.failures = failures
        self.error = error or TransientServiceError("503")
        self.value = value
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


class TestRetryPolicy:
    def test_success_first_attempt(self):
        fn = Flaky(0)
        assert RetryPolicy(backoff_base=0).call(fn) == "ok"
        assert fn.calls == 1

    def test_transient_failure_recovers(self):
        sleeps = []
        fn = Flaky(2)
        policy = RetryPolicy(max_retries=3, backoff_base=1.0, sleep=sleeps.append)
        assert policy.call(fn) == "ok"
        assert fn.calls == 3
        # Linear backoff: base * attempt
        assert sleeps == [1.0, 2.0]

    def test_never_exceeds_max_retries(self):
        fn = Flaky(100)
        result = RetryPolicy(max_retries=3, sleep=lambda s: None).call(fn, operation="extract")
        assert fn.calls == 3
        assert isinstance(result, SentinelFailure)
        assert result.attempts == 3
        assert isinstance(result.error, ExhaustedRetriesError)
        assert result.error.operation == "extract"
        assert isinstance(result.error.last_error, TransientServiceError)

    def test_validation_error_not_retried(self):
        fn = Flaky(100, error=ValidationError("bad json"))
        result = RetryPolicy(max_retries=3, backoff_base=0).call(fn)
        assert fn.calls == 1
        assert is_failure(result)
        assert result.reason.startswith("validation error")

    def test_service_error_not_retried(self):
        fn = Flaky(100, error=ServiceError("401", status_code=401))
        result = RetryPolicy(max_retries=3, backoff_base=0).call(fn)
        assert fn.calls == 1
        assert is_failure(result)

    def test_unexpected_exception_becomes_sentinel(self):
        fn = Flaky(100, error=KeyError("boom"))
        result = RetryPolicy(backoff_base=0).call(fn)
        assert fn.calls == 1
        assert "KeyError" in result.reason

    def test_sentinel_is_falsy(self):
        assert not SentinelFailure(reason="x", attempts=1)

    def test_passes_arguments_through(self):
        policy = RetryPolicy(backoff_base=0)
        assert policy.call(lambda a, b=0: a + b, 2, b=3) == 5

    def test_cancel_during_backoff(self):
        token = CancellationToken()
        token.cancel()
        fn = Flaky(100)
        result = RetryPolicy(max_retries=5, backoff_base=10.0).call(fn, cancel=token)
        assert fn.calls == 1
        assert result.reason == "cancelled"

    def test_max_retries_must_be_positive(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=0)
