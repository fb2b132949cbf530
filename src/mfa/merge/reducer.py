"""Collapse records that share a source within each batch.

Groups of one pass through untouched. Larger groups go to the inference
``merge`` call in input order; if that call cannot produce a record the
group's original items are kept as they are, so nothing is dropped.
After merging, records without a spatial tag can be classified with the
inference ``tag`` call.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Sequence

from mfa.config import PipelineConfig
from mfa.extraction.inference import InferenceClient
from mfa.extraction.scheduler import TaskResult, TaskScheduler
from mfa.extraction.types import TAGS, Batch, ExtractionRecord, MergedRecord
from mfa.shared.cancellation import CancellationToken
from mfa.shared.retry import RetryPolicy, SentinelFailure

logger = logging.getLogger(__name__)


def group_by_source(records: Sequence[ExtractionRecord]) -> dict[str, list[ExtractionRecord]]:
    """Group records by ``source_key`` in order of first appearance."""
    groups: dict[str, list[ExtractionRecord]] = {}
    for record in records:
        if not record.source_key:
            raise ValueError("record with empty source_key cannot be merged")
        groups.setdefault(record.source_key, []).append(record)
    return groups


class MergeReducer:
    def __init__(
        self,
        client: InferenceClient,
        retry: RetryPolicy | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.client = client
        self.config = config or PipelineConfig()
        self.retry = retry or RetryPolicy(self.config.max_retries, self.config.backoff_base)
        self.tag_records = self.config.tag_records

    def _merge_group(self, key: str, group: list[ExtractionRecord]) -> list[MergedRecord]:
        if len(group) == 1:
            return group
        result = self.retry.call(self.client.merge, tuple(group), operation="merge")
        if isinstance(result, SentinelFailure):
            logger.warning(
                "Merge of %d records for %r failed (%s); keeping them unmerged",
                len(group),
                key[:60],
                result.reason,
            )
            return group
        merged = replace(result, source_key=key)
        if merged.tag is None:
            merged = merged.with_tag(next((r.tag for r in group if r.tag), None))
        return [merged]

    def _tag(self, record: MergedRecord) -> MergedRecord:
        if record.tag in TAGS:
            return record
        result = self.retry.call(self.client.tag, record, operation="tag")
        if isinstance(result, SentinelFailure):
            logger.info("Could not tag %r: %s", record.source_key[:60], result.reason)
            return record
        return record.with_tag(result)

    def merge_batch(self, batch: Batch) -> list[MergedRecord]:
        """Merge one batch; output follows first appearance of each source."""
        merged: list[MergedRecord] = []
        for key, group in group_by_source(batch.items).items():
            merged.extend(self._merge_group(key, group))
        if self.tag_records:
            merged = [self._tag(r) for r in merged]
        logger.info("Batch %d: %d records -> %d merged", batch.index, len(batch), len(merged))
        return merged

    def merge_all(
        self,
        batches: Sequence[Batch],
        scheduler: TaskScheduler,
        cancel: CancellationToken | None = None,
    ) -> list[list[MergedRecord]]:
        """Merge every batch on ``scheduler``; result[i] belongs to batches[i].

        A batch whose task failed or was never admitted comes back unmerged.
        """
        return self.collect(batches, scheduler.run(batches, self.merge_batch, cancel=cancel))

    def collect(
        self,
        batches: Sequence[Batch],
        results: Sequence[TaskResult[list[MergedRecord]]],
    ) -> list[list[MergedRecord]]:
        merged: list[list[MergedRecord]] = []
        for batch, result in zip(batches, results):
            if result.ok:
                merged.append(result.value)
            else:
                if result.error is not None:
                    logger.error("Batch %d merge failed: %s; keeping it unmerged", batch.index, result.error)
                merged.append(list(batch.items))
        return merged
