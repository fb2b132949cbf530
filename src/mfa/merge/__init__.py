"""Batch merging and final aggregation."""
from .aggregate import ResultAggregator
from .batching import choose_batch_size, split_batches
from .reducer import MergeReducer, group_by_source

__all__ = [
    "MergeReducer",
    "ResultAggregator",
    "choose_batch_size",
    "group_by_source",
    "split_batches",
]
