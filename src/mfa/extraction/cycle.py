"""Per-item extraction state machine.

    Start -> CheckRelevance -> Extract            (relevant)
                            -> Stopped            (not relevant)
    Extract -> Evaluate -> Decide -> Extract      (incomplete, cycle_count < max_cycles)
                                  -> Stopped      (complete or ceiling reached)

Every collaborator call goes through ``RetryPolicy``. When a call still
fails, the state machine substitutes a default instead of raising:
classify falls back to ``relevance_failure_default`` (not relevant unless
configured otherwise), evaluate to ``complete=evaluation_failure_complete``
so the loop always terminates, and extract to a sentinel record that ends
the cycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Literal

from mfa.config import PipelineConfig
from mfa.shared.cancellation import CancellationToken
from mfa.shared.retry import RetryPolicy, SentinelFailure

from .inference import InferenceClient
from .types import (
    EXTRACTION_ERROR,
    CycleState,
    EvaluationVerdict,
    ExtractionRecord,
    RelevanceVerdict,
    WorkItem,
)

logger = logging.getLogger(__name__)

CycleStatus = Literal["completed", "exhausted", "not_relevant", "error"]

NO_RECOMMENDATIONS_SUGGESTION = "Extract policy recommendations from the text"


@dataclass(frozen=True)
class CycleOutcome:
    """Terminal result of one item's cycle."""

    item_id: str
    status: CycleStatus
    record: ExtractionRecord | None = None
    cycle_count: int = 0
    extract_calls: int = 0
    verdict: EvaluationVerdict | None = None
    relevance: RelevanceVerdict | None = None
    reason: str | None = None

    @property
    def has_record(self) -> bool:
        """True when the outcome carries a real (non-sentinel) record."""
        return self.record is not None and not self.record.is_sentinel


class ExtractionCycle:
    def __init__(
        self,
        client: InferenceClient,
        retry: RetryPolicy | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.client = client
        self.config = config or PipelineConfig()
        self.retry = retry or RetryPolicy(self.config.max_retries, self.config.backoff_base)
        self.max_cycles = self.config.max_cycles

    def _call(
        self,
        state: CycleState,
        fn: Callable[..., Any],
        *args: Any,
        operation: str,
        cancel: CancellationToken | None,
    ) -> Any:
        state.attempt = 0

        def _counted(*a: Any) -> Any:
            state.attempt += 1
            return fn(*a)

        return self.retry.call(_counted, *args, operation=operation, cancel=cancel)

    # -- states -------------------------------------------------------------

    def _check_relevance(self, state: CycleState, cancel: CancellationToken | None) -> RelevanceVerdict:
        item = state.item
        result = self._call(state, self.client.classify, item.text, item.context, operation="classify", cancel=cancel)
        if isinstance(result, SentinelFailure):
            logger.warning(
                "[%s] relevance check failed (%s); treating as %s",
                item.id,
                result.reason,
                "relevant" if self.config.relevance_failure_default else "not relevant",
            )
            return RelevanceVerdict(is_relevant=self.config.relevance_failure_default, confidence=0.0)
        return result

    def _extract(self, state: CycleState, cancel: CancellationToken | None) -> ExtractionRecord:
        item = state.item
        state.extract_calls += 1
        logger.debug("[%s] extracting (cycle %d)", item.id, state.cycle_count + 1)
        result = self._call(
            state,
            self.client.extract,
            item.text,
            item.context,
            tuple(state.feedback),
            operation="extract",
            cancel=cancel,
        )
        if isinstance(result, SentinelFailure):
            logger.error("[%s] extraction failed: %s", item.id, result.reason)
            return ExtractionRecord.sentinel(item.source_hint, EXTRACTION_ERROR)
        if result is None:
            logger.warning("[%s] extraction returned no record", item.id)
            return ExtractionRecord.sentinel(item.source_hint, EXTRACTION_ERROR)
        # The item's own provenance is authoritative for the grouping key.
        return replace(result, source_key=item.source_hint)

    def _evaluate(
        self, state: CycleState, record: ExtractionRecord, cancel: CancellationToken | None
    ) -> EvaluationVerdict:
        if not record.policy_recommendations:
            logger.debug("[%s] no policy recommendations to evaluate", state.item.id)
            return EvaluationVerdict(
                complete=False,
                score=0.0,
                missing_aspects=("No policy recommendations found",),
                suggestions=(NO_RECOMMENDATIONS_SUGGESTION,),
            )
        result = self._call(
            state, self.client.evaluate, record, state.item.text, operation="evaluate", cancel=cancel
        )
        if isinstance(result, SentinelFailure):
            logger.warning("[%s] evaluation failed (%s); using default verdict", state.item.id, result.reason)
            return EvaluationVerdict(
                complete=self.config.evaluation_failure_complete,
                score=self.config.evaluation_failure_score,
                missing_aspects=("Evaluation unavailable",),
            )
        return result

    def _should_regenerate(self, state: CycleState) -> bool:
        verdict = state.last_verdict
        return verdict is not None and not verdict.complete and state.cycle_count < self.max_cycles

    # -- driver -------------------------------------------------------------

    def run(self, item: WorkItem, cancel: CancellationToken | None = None) -> CycleOutcome:
        """Drive ``item`` to a terminal state. Never raises."""
        try:
            return self._run(item, cancel)
        except Exception as e:
            logger.error("[%s] cycle aborted: %s: %s", item.id, type(e).__name__, e)
            return CycleOutcome(
                item_id=item.id,
                status="error",
                record=ExtractionRecord.sentinel(item.source_hint, EXTRACTION_ERROR),
                reason=f"{type(e).__name__}: {e}",
            )

    def _run(self, item: WorkItem, cancel: CancellationToken | None) -> CycleOutcome:
        state = CycleState(item=item)

        relevance = self._check_relevance(state, cancel)
        relevant = relevance.is_relevant and relevance.confidence >= self.config.relevance_threshold
        if not relevant:
            logger.debug("[%s] not relevant (confidence %.2f), stopping", item.id, relevance.confidence)
            return CycleOutcome(item_id=item.id, status="not_relevant", relevance=relevance)

        while True:
            record = self._extract(state, cancel)
            state.record = record
            if record.is_sentinel:
                return CycleOutcome(
                    item_id=item.id,
                    status="error",
                    record=record,
                    cycle_count=state.cycle_count,
                    extract_calls=state.extract_calls,
                    relevance=relevance,
                    reason=record.error,
                )

            state.last_verdict = self._evaluate(state, record, cancel)

            if not self._should_regenerate(state):
                break

            state.cycle_count += 1
            state.feedback.extend(state.last_verdict.suggestions)
            logger.debug(
                "[%s] incomplete (score %.2f), regenerating %d/%d",
                item.id,
                state.last_verdict.score,
                state.cycle_count,
                self.max_cycles,
            )

        status: CycleStatus = "completed" if state.last_verdict.complete else "exhausted"
        logger.debug("[%s] stopped: %s after %d extract call(s)", item.id, status, state.extract_calls)
        return CycleOutcome(
            item_id=item.id,
            status=status,
            record=state.record,
            cycle_count=state.cycle_count,
            extract_calls=state.extract_calls,
            verdict=state.last_verdict,
            relevance=relevance,
        )
