"""Integration tests for the extraction pipeline."""
import json
import threading
from pathlib import Path

import pytest
import redis
from conftest import FakeInference, make_item

from mfa.extraction.scheduler import TaskScheduler
from mfa.extraction.types import EXTRACTION_ERROR, UNTAGGED, RelevanceVerdict
from mfa.pipeline import ExtractionPipeline
from mfa.search import SearchHit
from mfa.shared.cancellation import CancellationToken
from mfa.shared.errors import ExhaustedRetriesError, NotFoundError, TransientServiceError


class RecordingQueue:
    def __init__(self):
        self.published = []

    def publish(self, stream, message):
        self.published.append((stream, message))
        return "1-0"

    def is_available(self):
        return True


class StaticSearch:
    def __init__(self, hits):
        self.hits = hits

    def search(self, query, filters=None):
        if not self.hits:
            raise NotFoundError(f"no content found for query {query!r}")
        return self.hits


def _pipeline(client, config, quiet_log, **kwargs):
    return ExtractionPipeline(client, config, log=quiet_log, **kwargs)


class TestEndToEnd:
    def test_three_relevant_items(self, fast_config, quiet_log):
        client = FakeInference(tag=lambda r: "city")
        items = [make_item(i, source=f"Doc {i}") for i in range(3)]

        with _pipeline(client, fast_config, quiet_log) as pipeline:
            result = pipeline.run(items, query="parks", run_id="parks_00000001")

        assert [o.cycle_count for o in result.outcomes] == [0, 0, 0]
        assert [r.source_key for r in result.final_records] == ["Doc 0", "Doc 1", "Doc 2"]
        assert len(result.grouped["city"]) == 3
        extraction = result.summary.stages["extraction"]
        assert (extraction.succeeded, extraction.failed, extraction.skipped) == (3, 0, 0)

    def test_records_sharing_a_source_are_merged(self, fast_config, quiet_log):
        client = FakeInference()
        sources = ["A", "A", "A", "B", "B"]
        items = [make_item(i, source=s) for i, s in enumerate(sources)]

        with _pipeline(client, fast_config, quiet_log) as pipeline:
            result = pipeline.run(items)

        assert [r.source_key for r in result.final_records] == ["A", "B"]
        assert len(result.final_records[0].policy_recommendations) == 3
        assert result.summary.stages["merge"].succeeded == 1

    def test_failed_extraction_does_not_stop_others(self, fast_config, quiet_log):
        def extract(text, context, feedback):
            if "document 1 " in text:
                raise TransientServiceError("timeout")
            return FakeInference()._extract(text, context, feedback)

        client = FakeInference(extract=extract)
        items = [make_item(i, source=f"Doc {i}") for i in range(3)]

        with _pipeline(client, fast_config, quiet_log) as pipeline:
            result = pipeline.run(items)

        assert result.outcomes[1].status == "error"
        assert result.outcomes[1].record.spatial_scope == EXTRACTION_ERROR
        assert [r.source_key for r in result.final_records] == ["Doc 0", "Doc 2"]
        assert result.summary.stages["extraction"].failed == 1
        assert result.summary.stages["extraction"].succeeded == 2

    def test_irrelevant_items_are_skipped(self, fast_config, quiet_log):
        client = FakeInference(classify=lambda text, ctx: RelevanceVerdict("document 0 " in text, 0.9))
        items = [make_item(i, source=f"Doc {i}") for i in range(3)]

        with _pipeline(client, fast_config, quiet_log) as pipeline:
            result = pipeline.run(items)

        assert result.summary.stages["extraction"].skipped == 2
        assert len(result.final_records) == 1

    def test_nothing_extracted_still_summarizes(self, fast_config, quiet_log):
        client = FakeInference(classify=lambda text, ctx: RelevanceVerdict(False))

        with _pipeline(client, fast_config, quiet_log) as pipeline:
            result = pipeline.run([make_item(1)])

        assert result.merged_batches == []
        assert result.grouped.total() == 0
        assert Path(result.summary.artifacts["summary"]).exists()

    def test_untagged_records_land_in_untagged_bucket(self, fast_config, quiet_log):
        client = FakeInference(tag=lambda r: None)
        with _pipeline(client, fast_config, quiet_log) as pipeline:
            result = pipeline.run([make_item(1, source="A")])
        assert result.summary.bucket_sizes[UNTAGGED] == 1


class TestArtifacts:
    def test_artifacts_written(self, fast_config, quiet_log):
        items = [make_item(i, source=f"Doc {i}") for i in range(2)]
        with _pipeline(FakeInference(), fast_config, quiet_log) as pipeline:
            result = pipeline.run(items, run_id="test_run")

        out = Path(fast_config.output_dir)
        for name in ("extraction_results", "merged_batches", "final_results", "grouped_results", "summary"):
            assert (out / f"{name}_test_run.json").exists()

        summary = json.loads((out / "summary_test_run.json").read_text(encoding="utf-8"))
        assert summary["run_id"] == "test_run"
        assert summary["stages"]["extraction"]["succeeded"] == 2
        grouped = json.loads((out / "grouped_results_test_run.json").read_text(encoding="utf-8"))
        assert sum(len(v) for v in grouped.values()) == 2
        assert result.summary.artifacts["final_results"].endswith("final_results_test_run.json")

    def test_run_query_saves_search_results(self, fast_config, quiet_log):
        search = StaticSearch([SearchHit("Plan text", {"title": "Plan"})])
        with _pipeline(FakeInference(), fast_config, quiet_log, search=search) as pipeline:
            result = pipeline.run_query("parks", run_id="q_run")

        assert (Path(fast_config.output_dir) / "search_results_q_run.json").exists()
        assert result.final_records[0].source_key == "Plan"

    def test_run_query_without_hits(self, fast_config, quiet_log):
        with _pipeline(FakeInference(), fast_config, quiet_log, search=StaticSearch([])) as pipeline:
            with pytest.raises(NotFoundError):
                pipeline.run_query("nothing")


class TestNotificationAndCancellation:
    def test_summary_published(self, fast_config, quiet_log):
        queue = RecordingQueue()
        with _pipeline(FakeInference(), fast_config, quiet_log, queue=queue) as pipeline:
            result = pipeline.run([make_item(1, source="A")], query="parks")

        stream, envelope = queue.published[0]
        assert stream == "mfa:runs"
        assert envelope["payload"]["run_id"] == result.run_id
        assert envelope["payload"]["stages"]["aggregate"]["succeeded"] == 1

    def test_cancel_returns_partial_results(self, fast_config, quiet_log):
        token = CancellationToken()
        lock = threading.Lock()
        seen = []

        def classify(text, context):
            with lock:
                seen.append(text)
                if len(seen) == 2:
                    token.cancel()
            return RelevanceVerdict(True, 0.9)

        items = [make_item(i, source=f"Doc {i}") for i in range(6)]
        scheduler = TaskScheduler(limit=1)
        with _pipeline(FakeInference(classify=classify), fast_config, quiet_log, scheduler=scheduler) as pipeline:
            result = pipeline.run(items, cancel=token)
        scheduler.close()

        assert result.summary.cancelled is True
        assert result.summary.stages["extraction"].cancelled == 4
        assert result.outcomes[2:] == [None] * 4
        assert len(result.records) == 2


class FlakySearch:
    def __init__(self, failures, hits):
        self.failures = failures
        self.hits = hits
        self.calls = 0

    def search(self, query, filters=None):
        self.calls += 1
        if self.calls <= self.failures:
            raise TransientServiceError("search service returned 503", status_code=503)
        return self.hits


class BrokenQueue(RecordingQueue):
    def publish(self, stream, message):
        raise redis.exceptions.ResponseError("READONLY You can't write against a read only replica")


class TestCollaboratorFailures:
    def test_search_retried_after_transient_error(self, fast_config, quiet_log):
        search = FlakySearch(1, [SearchHit("Plan text", {"title": "Plan"})])
        with _pipeline(FakeInference(), fast_config, quiet_log, search=search) as pipeline:
            result = pipeline.run_query("parks", run_id="retry_run")

        assert search.calls == 2
        assert [r.source_key for r in result.final_records] == ["Plan"]

    def test_search_gives_up_after_max_retries(self, fast_config, quiet_log):
        search = FlakySearch(100, [])
        with _pipeline(FakeInference(), fast_config, quiet_log, search=search) as pipeline:
            with pytest.raises(ExhaustedRetriesError):
                pipeline.run_query("parks")
        assert search.calls == fast_config.max_retries

    def test_publish_failure_does_not_fail_run(self, fast_config, quiet_log):
        with _pipeline(FakeInference(), fast_config, quiet_log, queue=BrokenQueue()) as pipeline:
            result = pipeline.run([make_item(1, source="A")], run_id="unpublished")

        assert [r.source_key for r in result.final_records] == ["A"]
        assert Path(result.summary.artifacts["summary"]).exists()
