"""Inference capability used by the extraction cycle and merge stage.

``InferenceClient`` is the collaborator boundary. ``LLMInferenceClient``
implements it on top of an ``LLMProvider``: build prompt, generate, decode.
Transport errors come from the provider; decode errors from ``parsing``.
"""

from __future__ import annotations

import json
import logging
from typing import Protocol, Sequence, runtime_checkable

from mfa.shared.llm import LLMConfig, LLMProvider

from .parsing import decode_evaluation, decode_record, decode_relevance, decode_tag
from .prompts import EVALUATE_PROMPT, MERGE_PROMPT, RELEVANCE_PROMPT, TAG_PROMPT, build_extract_prompt
from .types import EvaluationVerdict, ExtractionRecord, RelevanceVerdict

logger = logging.getLogger(__name__)


@runtime_checkable
class InferenceClient(Protocol):
    def classify(self, text: str, context: str) -> RelevanceVerdict:
        ...

    def extract(self, text: str, context: str, feedback: Sequence[str] = ()) -> ExtractionRecord | None:
        ...

    def evaluate(self, record: ExtractionRecord, source_text: str) -> EvaluationVerdict:
        ...

    def merge(self, records: Sequence[ExtractionRecord]) -> ExtractionRecord:
        ...

    def tag(self, record: ExtractionRecord) -> str | None:
        ...


class LLMInferenceClient:
    """InferenceClient backed by a text-generation provider."""

    def __init__(self, provider: LLMProvider, config: LLMConfig | None = None) -> None:
        self.provider = provider
        self.config = config or LLMConfig()

    def _generate(self, prompt: str, temperature: float) -> str:
        return self.provider.generate(
            prompt,
            model=self.config.model,
            timeout=self.config.timeout,
            max_tokens=self.config.max_tokens,
            temperature=temperature,
        )

    def classify(self, text: str, context: str) -> RelevanceVerdict:
        response = self._generate(
            RELEVANCE_PROMPT.format(query=context, content=text),
            self.config.classify_temperature,
        )
        verdict = decode_relevance(response)
        logger.debug(
            "Relevance: %s (confidence %.2f) %s",
            "YES" if verdict.is_relevant else "NO",
            verdict.confidence,
            verdict.explanation,
        )
        return verdict

    def extract(self, text: str, context: str, feedback: Sequence[str] = ()) -> ExtractionRecord | None:
        response = self._generate(
            build_extract_prompt(context, text, list(feedback)),
            self.config.extract_temperature,
        )
        if response.strip().lower() == "null":
            return None
        return decode_record(response)

    def evaluate(self, record: ExtractionRecord, source_text: str) -> EvaluationVerdict:
        response = self._generate(
            EVALUATE_PROMPT.format(
                content=source_text,
                recommendations="\n\n".join(record.policy_recommendations),
            ),
            self.config.evaluate_temperature,
        )
        return decode_evaluation(response)

    def merge(self, records: Sequence[ExtractionRecord]) -> ExtractionRecord:
        items = json.dumps(
            [
                {
                    "source": r.source_key,
                    "spatialScope": r.spatial_scope,
                    "timeRange": r.time_range,
                    "policyRecommendations": list(r.policy_recommendations),
                }
                for r in records
            ],
            indent=2,
            ensure_ascii=False,
        )
        response = self._generate(
            MERGE_PROMPT.format(source=records[0].source_key, items=items),
            self.config.merge_temperature,
        )
        return decode_record(response, source_key=records[0].source_key)

    def tag(self, record: ExtractionRecord) -> str | None:
        response = self._generate(
            TAG_PROMPT.format(spatial_scope=record.spatial_scope),
            self.config.tag_temperature,
        )
        return decode_tag(response)
