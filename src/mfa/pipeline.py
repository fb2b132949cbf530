"""Main pipeline orchestrator.

Stages run strictly one after another on a shared ``TaskScheduler``:

1. extraction : one ExtractionCycle per WorkItem, in parallel
2. merge      : records split into batches, each batch merged in parallel
3. aggregate  : first-seen deduplication and tag partitioning

Per-item and per-batch failures are absorbed and counted; they never abort
the run.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Sequence

import redis

from mfa.config import PipelineConfig
from mfa.extraction.cycle import CycleOutcome, ExtractionCycle
from mfa.extraction.inference import InferenceClient
from mfa.extraction.scheduler import TaskScheduler
from mfa.extraction.types import ExtractionRecord, GroupedOutput, MergedRecord, WorkItem
from mfa.merge.aggregate import ResultAggregator
from mfa.merge.batching import choose_batch_size, split_batches
from mfa.merge.reducer import MergeReducer
from mfa.search.ingest import dump_hits, hits_to_work_items
from mfa.search.service import DocumentSearchService
from mfa.shared.cancellation import CancellationToken
from mfa.shared.errors import PipelineError
from mfa.shared.logger import PipelineLogger, get_logger
from mfa.shared.queue import MessageQueue, NullQueue, build_envelope
from mfa.shared.retry import RetryPolicy, SentinelFailure
from mfa.storage import RunArtifacts, make_run_id

logger = logging.getLogger(__name__)


@dataclass
class StageSummary:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: int = 0


@dataclass
class RunSummary:
    run_id: str
    query: str = ""
    stages: dict[str, StageSummary] = field(default_factory=dict)
    bucket_sizes: dict[str, int] = field(default_factory=dict)
    cancelled: bool = False
    artifacts: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PipelineResult:
    run_id: str
    outcomes: list[CycleOutcome | None]
    merged_batches: list[list[MergedRecord]]
    final_records: list[MergedRecord]
    grouped: GroupedOutput
    summary: RunSummary

    @property
    def records(self) -> list[ExtractionRecord]:
        return [o.record for o in self.outcomes if o is not None and o.has_record]


def _outcome_dict(item: WorkItem, outcome: CycleOutcome | None) -> dict[str, Any]:
    if outcome is None:
        return {"item_id": item.id, "status": "cancelled"}
    return {
        "item_id": outcome.item_id,
        "status": outcome.status,
        "cycle_count": outcome.cycle_count,
        "extract_calls": outcome.extract_calls,
        "score": outcome.verdict.score if outcome.verdict else None,
        "reason": outcome.reason,
        "record": outcome.record.to_dict() if outcome.record else None,
    }


class ExtractionPipeline:
    """Wire the stages together for one or more runs.

    Args:
        client: Inference capability used by every stage.
        config: Pipeline configuration.
        scheduler: Shared worker pool; created from ``config.concurrency``
            (and owned by the pipeline) when omitted.
        search: Search collaborator, needed only by ``run_query``.
        queue: Destination for run-completion notifications.
        log: Run logger for sections, progress and metrics.
    """

    def __init__(
        self,
        client: InferenceClient,
        config: PipelineConfig | None = None,
        scheduler: TaskScheduler | None = None,
        search: DocumentSearchService | None = None,
        queue: MessageQueue | None = None,
        log: PipelineLogger | None = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or TaskScheduler(self.config.concurrency)
        self.search = search
        self.queue = queue or NullQueue()
        self.log = log or get_logger()

        retry = RetryPolicy(self.config.max_retries, self.config.backoff_base)
        self.cycle = ExtractionCycle(client, retry, self.config)
        self.reducer = MergeReducer(client, retry, self.config)
        self.aggregator = ResultAggregator()

    # -- stages -------------------------------------------------------------

    def extract_all(
        self,
        items: Sequence[WorkItem],
        cancel: CancellationToken | None = None,
    ) -> tuple[list[CycleOutcome | None], StageSummary]:
        stage = StageSummary()

        def _progress(done: int, total: int) -> None:
            self.log.progress(done, total, "extraction")

        results = self.scheduler.run(
            items,
            lambda item: self.cycle.run(item, cancel),
            cancel=cancel,
            on_done=_progress,
        )

        outcomes: list[CycleOutcome | None] = []
        for item, result in zip(items, results):
            if result.cancelled:
                stage.cancelled += 1
                outcomes.append(None)
                continue
            outcome = result.value if result.ok else None
            if outcome is None:
                # ExtractionCycle.run never raises; this is a scheduler-level failure.
                logger.error("[%s] extraction task failed: %s", item.id, result.error)
                outcome = CycleOutcome(
                    item_id=item.id,
                    status="error",
                    record=ExtractionRecord.sentinel(item.source_hint),
                    reason=str(result.error),
                )
            outcomes.append(outcome)
            if outcome.status == "not_relevant":
                stage.skipped += 1
            elif outcome.has_record:
                stage.succeeded += 1
            else:
                stage.failed += 1
        return outcomes, stage

    def merge_records(
        self,
        records: Sequence[ExtractionRecord],
        cancel: CancellationToken | None = None,
    ) -> tuple[list[list[MergedRecord]], StageSummary]:
        stage = StageSummary()
        if not records:
            return [], stage

        size = self.config.batch_size or choose_batch_size(
            len(records),
            small=self.config.small_batch_size,
            large=self.config.large_batch_size,
            threshold=self.config.large_threshold,
        )
        batches = split_batches(records, size)
        self.log.info(f"Split {len(records)} records into {len(batches)} batches (batch size: {size})")

        results = self.scheduler.run(batches, self.reducer.merge_batch, cancel=cancel)
        for result in results:
            if result.ok:
                stage.succeeded += 1
            elif result.cancelled:
                stage.cancelled += 1
            else:
                stage.failed += 1
        return self.reducer.collect(batches, results), stage

    # -- runs ---------------------------------------------------------------

    def run(
        self,
        items: Sequence[WorkItem],
        query: str = "",
        run_id: str | None = None,
        cancel: CancellationToken | None = None,
        artifacts: RunArtifacts | None = None,
    ) -> PipelineResult:
        """Run extraction, merge and aggregation over ``items``."""
        run_id = run_id or (artifacts.run_id if artifacts else make_run_id(query))
        artifacts = artifacts or RunArtifacts(self.config.output_dir, run_id)
        summary = RunSummary(run_id=run_id, query=query)

        self.log.section(f"Run {run_id}: {len(items)} work items")

        self.log.subsection("STEP 1: EXTRACTION")
        with self.log.timer("extraction"):
            outcomes, summary.stages["extraction"] = self.extract_all(items, cancel)

        records = [o.record for o in outcomes if o is not None and o.has_record]
        self.log.info(f"Extracted {len(records)} records from {len(items)} work items")
        artifacts.write(
            "extraction_results",
            [_outcome_dict(item, o) for item, o in zip(items, outcomes)],
        )

        self.log.subsection("STEP 2: BATCH MERGING")
        with self.log.timer("merge"):
            merged_batches, summary.stages["merge"] = self.merge_records(records, cancel)
        artifacts.write("merged_batches", [[r.to_dict() for r in batch] for batch in merged_batches])

        self.log.subsection("STEP 3: FINAL DEDUPLICATION")
        final_records = self.aggregator.deduplicate(merged_batches)
        grouped = self.aggregator.partition(final_records)
        n_merged = sum(len(b) for b in merged_batches)
        summary.stages["aggregate"] = StageSummary(
            succeeded=len(final_records), skipped=n_merged - len(final_records)
        )
        summary.bucket_sizes = grouped.sizes()
        summary.cancelled = bool(cancel and cancel.is_cancelled)

        artifacts.write("final_results", [r.to_dict() for r in final_records])
        artifacts.write("grouped_results", grouped.to_dict())
        summary.artifacts = {name: str(path) for name, path in artifacts.paths.items()}
        summary.artifacts["summary"] = str(artifacts.path_for("summary"))
        artifacts.write("summary", summary.to_dict())

        for name, stage in summary.stages.items():
            self.log.stage_counts(name, asdict(stage))
        for bucket, size in summary.bucket_sizes.items():
            self.log.metric(f"bucket:{bucket}", size)

        self._notify(summary)

        return PipelineResult(
            run_id=run_id,
            outcomes=outcomes,
            merged_batches=merged_batches,
            final_records=final_records,
            grouped=grouped,
            summary=summary,
        )

    def run_query(
        self,
        query: str,
        filters: dict[str, Any] | None = None,
        run_id: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> PipelineResult:
        """Search for ``query`` and run the pipeline over the hits.

        Raises:
            NotFoundError: The search returned no content.
            PipelineError: The search collaborator failed.
        """
        if self.search is None:
            raise ValueError("run_query needs a DocumentSearchService")
        run_id = run_id or make_run_id(query)
        artifacts = RunArtifacts(self.config.output_dir, run_id)

        self.log.section(f"Search: {query!r}")
        hits = self.cycle.retry.call(self.search.search, query, filters, operation="search", cancel=cancel)
        if isinstance(hits, SentinelFailure):
            if hits.error is not None:
                raise hits.error
            raise PipelineError(f"search failed: {hits.reason}")
        artifacts.write("search_results", dump_hits(hits))
        return self.run(hits_to_work_items(query, hits), query=query, run_id=run_id, cancel=cancel, artifacts=artifacts)

    def _notify(self, summary: RunSummary) -> None:
        if not self.queue.is_available():
            return
        envelope = build_envelope({
            "run_id": summary.run_id,
            "query": summary.query,
            "stages": {name: asdict(stage) for name, stage in summary.stages.items()},
            "bucket_sizes": summary.bucket_sizes,
            "artifacts": summary.artifacts,
            "cancelled": summary.cancelled,
        })
        try:
            msg_id = self.queue.publish(self.config.queue_stream, envelope)
        except redis.exceptions.RedisError as e:
            # Artifacts are already on disk; a lost notification does not fail the run.
            logger.exception("Could not publish run notification for %s: %s", summary.run_id, e)
            return
        self.log.info(f"Published run notification to {self.config.queue_stream}: {msg_id}")

    def close(self) -> None:
        if self._owns_scheduler:
            self.scheduler.close()

    def __enter__(self) -> "ExtractionPipeline":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
