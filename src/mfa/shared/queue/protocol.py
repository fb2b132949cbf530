"""MessageQueue protocol for run-completion notifications."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class MessageQueue(Protocol):
    """Interface shared by the Redis-backed queue and the no-op NullQueue."""

    def publish(self, stream: str, message: dict) -> str | None:
        """Publish ``message`` to ``stream``.

        Returns:
            The message ID, or None when the queue is disabled.
        """
        ...

    def is_available(self) -> bool:
        """True when the queue can accept messages right now."""
        ...
