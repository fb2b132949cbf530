"""Bounded-concurrency execution of independent work items.

One ``ThreadPoolExecutor`` per scheduler is reused by every stage of a run,
so extraction and merging draw on the same worker budget. Admission is
gated by a counting semaphore: the submitting thread acquires a slot before
handing an item to the pool, and the task releases it when it finishes,
which immediately lets the next pending item in.

Each task writes only its own slot of the result list; nothing else is
shared between workers.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Generic, Sequence, TypeVar

from mfa.shared.cancellation import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class TaskResult(Generic[R]):
    """Outcome of one item: a value, a captured error, or never admitted."""

    index: int
    value: R | None = None
    error: BaseException | None = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled


class TaskScheduler:
    """Run a worker over many items with at most ``limit`` in flight.

    Args:
        limit: Pool size; also the default and the maximum per-run limit.
    """

    def __init__(self, limit: int = 4) -> None:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        self.limit = limit
        self._executor = ThreadPoolExecutor(max_workers=limit, thread_name_prefix="mfa-worker")
        self._lock = threading.Lock()
        self.in_flight = 0
        self.peak_in_flight = 0

    def _enter(self) -> None:
        with self._lock:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)

    def _leave(self) -> None:
        with self._lock:
            self.in_flight -= 1

    def run(
        self,
        items: Sequence[T],
        worker: Callable[[T], R],
        limit: int | None = None,
        cancel: CancellationToken | None = None,
        on_done: Callable[[int, int], None] | None = None,
    ) -> list[TaskResult[R]]:
        """Apply ``worker`` to every item; ``result[i]`` belongs to ``items[i]``.

        Args:
            items: Work items, in the order results should come back.
            worker: Called once per item on a pool thread. Exceptions are
                captured into the item's TaskResult.
            limit: Max concurrent invocations for this run (capped at the
                pool size).
            cancel: Once set, no further items are admitted; their slots come
                back with ``cancelled=True``.
            on_done: Called with ``(completed, total)`` after each item.

        Returns:
            One TaskResult per item, in input order.
        """
        limit = self.limit if limit is None else limit
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        limit = min(limit, self.limit)

        total = len(items)
        results: list[TaskResult[R] | None] = [None] * total
        gate = threading.Semaphore(limit)
        completed = [0]
        futures: list[Future] = []

        def _task(index: int, item: T) -> None:
            try:
                results[index] = TaskResult(index=index, value=worker(item))
            except Exception as e:
                logger.error("Worker failed on item %d: %s: %s", index, type(e).__name__, e)
                results[index] = TaskResult(index=index, error=e)
            finally:
                self._leave()
                gate.release()
                with self._lock:
                    completed[0] += 1
                    done = completed[0]
                if on_done is not None:
                    on_done(done, total)

        for index, item in enumerate(items):
            gate.acquire()
            if cancel is not None and cancel.is_cancelled:
                gate.release()
                logger.info("Cancelled: admitted %d of %d items", index, total)
                break
            self._enter()
            try:
                futures.append(self._executor.submit(_task, index, item))
            except RuntimeError:
                self._leave()
                gate.release()
                raise

        wait(futures)

        return [
            r if r is not None else TaskResult(index=i, cancelled=True)
            for i, r in enumerate(results)
        ]

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "TaskScheduler":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
