"""Fixed-size partitioning of extraction records into merge batches."""

from __future__ import annotations

from typing import Sequence

from mfa.extraction.types import Batch, ExtractionRecord

SMALL_BATCH_SIZE = 5
LARGE_BATCH_SIZE = 10
LARGE_DATASET_THRESHOLD = 15


def choose_batch_size(
    n_items: int,
    small: int = SMALL_BATCH_SIZE,
    large: int = LARGE_BATCH_SIZE,
    threshold: int = LARGE_DATASET_THRESHOLD,
) -> int:
    """Large-dataset mode kicks in strictly above ``threshold`` items."""
    return large if n_items > threshold else small


def split_batches(items: Sequence[ExtractionRecord], size: int | None = None) -> list[Batch]:
    """Split ``items`` into consecutive batches, preserving order.

    Args:
        items: Records in pipeline order.
        size: Batch size; None picks it with ``choose_batch_size``.

    Returns:
        Batches indexed from 0. The last one may be shorter.
    """
    if size is None:
        size = choose_batch_size(len(items))
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    return [
        Batch(index=i, items=tuple(items[start:start + size]))
        for i, start in enumerate(range(0, len(items), size))
    ]
