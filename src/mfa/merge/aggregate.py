"""Final cross-batch deduplication and tag partitioning."""

from __future__ import annotations

import logging
from typing import Sequence

from mfa.extraction.types import GroupedOutput, MergedRecord

logger = logging.getLogger(__name__)


class ResultAggregator:
    """Deduplicate merged batches by source and bucket them by tag.

    Order is defined by batch index, then position inside the batch, so the
    same inputs always keep the same record regardless of which merge task
    finished first.
    """

    def deduplicate(self, merged_batches: Sequence[Sequence[MergedRecord]]) -> list[MergedRecord]:
        """Flatten and keep the first record seen for each ``source_key``."""
        seen: dict[str, MergedRecord] = {}
        total = 0
        for batch in merged_batches:
            for record in batch:
                total += 1
                if record.source_key not in seen:
                    seen[record.source_key] = record
        logger.info("Final deduplication: %d -> %d unique records", total, len(seen))
        return list(seen.values())

    def partition(self, records: Sequence[MergedRecord]) -> GroupedOutput:
        grouped = GroupedOutput()
        for record in records:
            grouped.add(record)
        return grouped

    def aggregate(self, merged_batches: Sequence[Sequence[MergedRecord]]) -> GroupedOutput:
        return self.partition(self.deduplicate(merged_batches))
