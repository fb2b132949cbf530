"""Data model for the extraction and merge stages."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, replace
from typing import Any

UNKNOWN_SOURCE = "Unknown Source"

TAGS: tuple[str, ...] = ("city", "province", "national", "focus")
UNTAGGED = "untagged"

EXTRACTION_ERROR = "error during extraction"

_SOURCE_HEADER = re.compile(r"SOURCE: (.*?)\n\n")
_CONTENT_HEADER = re.compile(r"CONTENT: ([\s\S]*)")


@dataclass(frozen=True)
class WorkItem:
    """One piece of text to extract from. Never mutated after scheduling."""

    id: str
    payload: str
    context: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def source_hint(self) -> str:
        source = self.metadata.get("source")
        if isinstance(source, str) and source.strip():
            return source.strip()
        m = _SOURCE_HEADER.search(self.payload)
        if m and m.group(1).strip():
            return m.group(1).strip()
        return UNKNOWN_SOURCE

    @property
    def text(self) -> str:
        """Payload without a ``SOURCE:``/``CONTENT:`` header."""
        m = _CONTENT_HEADER.search(self.payload)
        return m.group(1) if m else self.payload


@dataclass(frozen=True)
class RelevanceVerdict:
    is_relevant: bool
    confidence: float = 0.0
    explanation: str = ""


@dataclass(frozen=True)
class ExtractionRecord:
    source_key: str
    spatial_scope: str = ""
    time_range: str = ""
    policy_recommendations: tuple[str, ...] = ()
    tag: str | None = None
    error: str | None = None

    @property
    def is_sentinel(self) -> bool:
        return self.error is not None

    def with_tag(self, tag: str | None) -> "ExtractionRecord":
        return replace(self, tag=tag)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["policy_recommendations"] = list(self.policy_recommendations)
        return data

    @classmethod
    def sentinel(cls, source_key: str, error: str = EXTRACTION_ERROR) -> "ExtractionRecord":
        return cls(source_key=source_key, spatial_scope=error, time_range=error, error=error)


# A record produced by collapsing a batch's items that share a source_key.
MergedRecord = ExtractionRecord


@dataclass(frozen=True)
class EvaluationVerdict:
    complete: bool
    score: float = 0.0
    missing_aspects: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()


@dataclass
class CycleState:
    """Mutable per-item state; lives only while the item's cycle runs."""

    item: WorkItem
    attempt: int = 0
    cycle_count: int = 0
    extract_calls: int = 0
    last_verdict: EvaluationVerdict | None = None
    feedback: list[str] = field(default_factory=list)
    record: ExtractionRecord | None = None


@dataclass(frozen=True)
class Batch:
    index: int
    items: tuple[ExtractionRecord, ...]

    def __len__(self) -> int:
        return len(self.items)


class GroupedOutput(dict):
    """``tag -> list[MergedRecord]`` with every bucket always present."""

    BUCKETS: tuple[str, ...] = TAGS + (UNTAGGED,)

    def __init__(self) -> None:
        super().__init__((bucket, []) for bucket in self.BUCKETS)

    @staticmethod
    def bucket_for(tag: str | None) -> str:
        return tag if tag in TAGS else UNTAGGED

    def add(self, record: MergedRecord) -> None:
        self[self.bucket_for(record.tag)].append(record)

    def sizes(self) -> dict[str, int]:
        return {bucket: len(records) for bucket, records in self.items()}

    def total(self) -> int:
        return sum(len(records) for records in self.values())

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {bucket: [r.to_dict() for r in records] for bucket, records in self.items()}
