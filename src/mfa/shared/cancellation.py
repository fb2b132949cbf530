from __future__ import annotations

import threading


class CancellationToken:
    """Cooperative cancellation flag shared by the scheduler and retry policy.

    Setting the token stops the scheduler from admitting new tasks and cuts
    retry backoff short. Work already running is left to finish.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; return True if cancelled meanwhile."""
        return self._event.wait(timeout)
