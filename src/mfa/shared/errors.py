"""Error taxonomy shared by every pipeline stage.

Collaborator adapters translate transport and decoding problems into these
types so that ``RetryPolicy`` can decide what is worth another attempt:

- TransientServiceError : service unavailable, rate-limited, timed out (retried)
- ValidationError       : response did not match the expected schema (not retried)
- ServiceError          : any other collaborator failure (not retried)
- ExhaustedRetriesError : retries used up; carried inside a SentinelFailure
- NotFoundError         : the search backend returned no content
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all errors raised by the pipeline and its adapters."""


class TransientServiceError(PipelineError):
    """A collaborator call failed in a way that may succeed on retry."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ServiceError(PipelineError):
    """A collaborator call failed permanently (bad request, auth, ...)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ValidationError(PipelineError):
    """A collaborator response could not be decoded into the expected type."""

    def __init__(self, message: str, raw: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class ExhaustedRetriesError(PipelineError):
    """Every allowed attempt of a retryable operation failed."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException | None = None) -> None:
        detail = f": {type(last_error).__name__}: {last_error}" if last_error else ""
        super().__init__(f"{operation} failed after {attempts} attempts{detail}")
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class NotFoundError(PipelineError):
    """No content was found for a search query."""
