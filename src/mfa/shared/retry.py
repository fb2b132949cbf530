"""Bounded retry with linear backoff for collaborator calls.

Only ``TransientServiceError`` is retried. Schema problems, permanent service
errors and anything unexpected end the operation on the first attempt.
Callers never see an exception from ``RetryPolicy.call``: a failed operation
comes back as a ``SentinelFailure`` that must be checked explicitly.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from .cancellation import CancellationToken
from .errors import ExhaustedRetriesError, PipelineError, TransientServiceError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Retry configuration
# ---------------------------------------------------------------------------

DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 1.0


@dataclass(frozen=True)
class SentinelFailure:
    """Marker returned in place of a result when an operation gave up."""

    reason: str
    attempts: int
    error: BaseException | None = None

    def __bool__(self) -> bool:
        return False


def is_failure(value: Any) -> bool:
    return isinstance(value, SentinelFailure)


class RetryPolicy:
    """Wrap a single logical operation with up to ``max_retries`` attempts.

    Args:
        max_retries: Ceiling on calls for one operation (first call included).
        backoff_base: Seconds multiplied by the attempt number between calls.
        sleep: Sleep function, replaceable in tests.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._sleep = sleep

    def backoff(self, attempt: int) -> float:
        return self.backoff_base * attempt

    def _wait(self, delay: float, cancel: CancellationToken | None) -> bool:
        if delay <= 0:
            return bool(cancel and cancel.is_cancelled)
        if cancel is not None:
            return cancel.wait(delay)
        self._sleep(delay)
        return False

    def call(
        self,
        fn: Callable[..., T],
        *args: Any,
        operation: str | None = None,
        cancel: CancellationToken | None = None,
        **kwargs: Any,
    ) -> T | SentinelFailure:
        """Invoke ``fn`` until it succeeds, fails permanently, or runs out of attempts."""
        name = operation or getattr(fn, "__name__", "operation")
        last_error: BaseException | None = None

        for attempt in range(1, self.max_retries + 1):
            try:
                result = fn(*args, **kwargs)
                if attempt > 1:
                    logger.info("[retry] RECOVERED %s after %d attempts", name, attempt)
                return result

            except TransientServiceError as e:
                last_error = e
                if attempt >= self.max_retries:
                    break
                delay = self.backoff(attempt)
                logger.info(
                    "[retry] RETRY %s | attempt=%d/%d | error=%s | wait=%.1fs",
                    name,
                    attempt,
                    self.max_retries,
                    e,
                    delay,
                )
                if self._wait(delay, cancel):
                    logger.info("[retry] CANCELLED %s during backoff", name)
                    return SentinelFailure(reason="cancelled", attempts=attempt, error=e)

            except ValidationError as e:
                logger.warning("[retry] INVALID response from %s: %s", name, e)
                return SentinelFailure(reason=f"validation error: {e}", attempts=attempt, error=e)

            except PipelineError as e:
                logger.error("[retry] FAILED %s: %s: %s", name, type(e).__name__, e)
                return SentinelFailure(reason=str(e), attempts=attempt, error=e)

            except Exception as e:
                logger.error("[retry] FAILED unexpected %s: %s: %s", name, type(e).__name__, e)
                return SentinelFailure(
                    reason=f"unexpected {type(e).__name__}: {e}", attempts=attempt, error=e
                )

        exhausted = ExhaustedRetriesError(name, self.max_retries, last_error)
        logger.error("[retry] EXHAUSTED %s", exhausted)
        return SentinelFailure(reason=str(exhausted), attempts=self.max_retries, error=exhausted)
