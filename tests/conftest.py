"""Shared test fixtures."""
from __future__ import annotations

import threading
from typing import Callable, Sequence

import pytest

from mfa.config import PipelineConfig
from mfa.extraction.types import (
    EvaluationVerdict,
    ExtractionRecord,
    RelevanceVerdict,
    WorkItem,
)
from mfa.shared.logger import PipelineLogger
from mfa.shared.retry import RetryPolicy


class FakeInference:
    """In-memory InferenceClient.

    Every capability defaults to a happy path; pass a callable to override
    one. Calls are recorded per capability for assertions.
    """

    def __init__(
        self,
        classify: Callable[[str, str], RelevanceVerdict] | None = None,
        extract: Callable[[str, str, Sequence[str]], ExtractionRecord | None] | None = None,
        evaluate: Callable[[ExtractionRecord, str], EvaluationVerdict] | None = None,
        merge: Callable[[Sequence[ExtractionRecord]], ExtractionRecord] | None = None,
        tag: Callable[[ExtractionRecord], str | None] | None = None,
    ) -> None:
        self._classify = classify or (lambda text, context: RelevanceVerdict(True, 0.9))
        self._extract = extract or (
            lambda text, context, feedback: ExtractionRecord(
                source_key="ignored",
                spatial_scope="Shanghai",
                time_range="2020-2025",
                policy_recommendations=(f"recommendation for {text[:20]}",),
            )
        )
        self._evaluate = evaluate or (lambda record, text: EvaluationVerdict(complete=True, score=0.9))
        self._merge = merge or _concat_merge
        self._tag = tag or (lambda record: "city")
        self._lock = threading.Lock()
        self.calls: dict[str, list] = {"classify": [], "extract": [], "evaluate": [], "merge": [], "tag": []}

    def _record(self, name: str, args: tuple) -> None:
        with self._lock:
            self.calls[name].append(args)

    def classify(self, text, context):
        self._record("classify", (text, context))
        return self._classify(text, context)

    def extract(self, text, context, feedback=()):
        self._record("extract", (text, context, tuple(feedback)))
        return self._extract(text, context, tuple(feedback))

    def evaluate(self, record, source_text):
        self._record("evaluate", (record, source_text))
        return self._evaluate(record, source_text)

    def merge(self, records):
        self._record("merge", (tuple(records),))
        return self._merge(records)

    def tag(self, record):
        self._record("tag", (record,))
        return self._tag(record)


def _concat_merge(records: Sequence[ExtractionRecord]) -> ExtractionRecord:
    recs: list[str] = []
    for r in records:
        for p in r.policy_recommendations:
            if p not in recs:
                recs.append(p)
    return ExtractionRecord(
        source_key=records[0].source_key,
        spatial_scope=records[0].spatial_scope,
        time_range=records[0].time_range,
        policy_recommendations=tuple(recs),
    )


def make_item(n: int, source: str | None = None, text: str | None = None) -> WorkItem:
    metadata = {"source": source} if source else {}
    return WorkItem(
        id=f"item-{n}",
        payload=text or f"Policy document {n} about urban renewal.",
        context="urban renewal",
        metadata=metadata,
    )


def make_record(source: str, *recs: str, tag: str | None = None) -> ExtractionRecord:
    return ExtractionRecord(
        source_key=source,
        spatial_scope="Shanghai",
        time_range="2020-2025",
        policy_recommendations=tuple(recs) or (f"{source} recommendation",),
        tag=tag,
    )


@pytest.fixture
def fake_client():
    return FakeInference()


@pytest.fixture
def no_wait_retry():
    return RetryPolicy(max_retries=3, backoff_base=0.0)


@pytest.fixture
def fast_config(tmp_path):
    return PipelineConfig(backoff_base=0.0, output_dir=str(tmp_path / "outputs"))


@pytest.fixture
def quiet_log():
    log = PipelineLogger(console=False)
    yield log
    log.close()
