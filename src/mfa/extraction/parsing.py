"""Typed decoding of inference responses.

Every response goes through ``decode(text, Model)`` once: locate the JSON
object in the reply, validate it with pydantic, convert to a domain type.
Anything that does not fit raises ``mfa.shared.errors.ValidationError``.
"""

from __future__ import annotations

import json
import re
from typing import Literal, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from mfa.shared.errors import ValidationError

from .types import EvaluationVerdict, ExtractionRecord, RelevanceVerdict

M = TypeVar("M", bound=BaseModel)

_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class _Response(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RelevanceResponse(_Response):
    is_relevant: bool = Field(alias="isRelevant")
    confidence: float = Field(ge=0.0, le=1.0)
    explanation: str = ""

    def to_verdict(self) -> RelevanceVerdict:
        return RelevanceVerdict(self.is_relevant, self.confidence, self.explanation)


class BoundaryResponse(_Response):
    source: str = ""
    spatial_scope: str = Field(alias="spatialScope")
    time_range: str = Field(alias="timeRange")
    policy_recommendations: list[str] = Field(alias="policyRecommendations")
    # Free-form here; unknown tags end up in the untagged bucket.
    spatial_tag: str | None = Field(default=None, alias="spatialTag")

    @field_validator("spatial_tag", mode="before")
    @classmethod
    def _blank_tag(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value

    def to_record(self, source_key: str | None = None) -> ExtractionRecord:
        return ExtractionRecord(
            source_key=source_key if source_key is not None else self.source,
            spatial_scope=self.spatial_scope,
            time_range=self.time_range,
            policy_recommendations=tuple(r.strip() for r in self.policy_recommendations if r.strip()),
            tag=self.spatial_tag,
        )


class EvaluationResponse(_Response):
    is_complete: bool = Field(alias="isComplete")
    score: float = Field(ge=0.0, le=1.0)
    missing_aspects: list[str] = Field(default_factory=list, alias="missingAspects")
    improvement_suggestions: list[str] = Field(default_factory=list, alias="improvementSuggestions")

    def to_verdict(self) -> EvaluationVerdict:
        return EvaluationVerdict(
            complete=self.is_complete,
            score=self.score,
            missing_aspects=tuple(self.missing_aspects),
            suggestions=tuple(self.improvement_suggestions),
        )


class TagResponse(_Response):
    spatial_tag: Literal["city", "province", "national", "focus"] | None = Field(
        default=None, alias="spatialTag"
    )


def decode(text: str, model: type[M]) -> M:
    """Decode the JSON object embedded in ``text`` into ``model``."""
    m = _OBJECT.search(text or "")
    if not m:
        raise ValidationError(f"no JSON object in response for {model.__name__}", raw=text)
    try:
        data = json.loads(m.group())
    except json.JSONDecodeError as e:
        raise ValidationError(f"malformed JSON for {model.__name__}: {e}", raw=text) from e
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"{model.__name__} schema mismatch: {e.error_count()} error(s)", raw=text
        ) from e


def decode_relevance(text: str) -> RelevanceVerdict:
    return decode(text, RelevanceResponse).to_verdict()


def decode_record(text: str, source_key: str | None = None) -> ExtractionRecord:
    return decode(text, BoundaryResponse).to_record(source_key)


def decode_evaluation(text: str) -> EvaluationVerdict:
    return decode(text, EvaluationResponse).to_verdict()


def decode_tag(text: str) -> str | None:
    return decode(text, TagResponse).spatial_tag
