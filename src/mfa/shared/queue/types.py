"""Message schemas published when a pipeline run finishes.

- RunCompletedMessage: per-run summary plus the location of every artifact
- MessageEnvelope    : transport wrapper (message_id, timestamp, source)

Published by ``mfa.pipeline.ExtractionPipeline`` after the grouped output
has been written.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TypedDict


class StageCounts(TypedDict):
    """Per-stage outcome counts."""
    succeeded: int
    failed: int
    skipped: int
    cancelled: int


class RunCompletedMessage(TypedDict):
    """Summary of one finished run."""
    run_id: str
    query: str
    stages: dict[str, StageCounts]
    bucket_sizes: dict[str, int]
    artifacts: dict[str, str]
    cancelled: bool


class MessageEnvelope(TypedDict):
    message_id: str
    timestamp: str  # ISO 8601
    source_service: str  # e.g. "mfa-pipeline"
    payload: RunCompletedMessage


def build_envelope(payload: RunCompletedMessage, source_service: str = "mfa-pipeline") -> MessageEnvelope:
    return {
        "message_id": str(uuid.uuid4()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source_service": source_service,
        "payload": payload,
    }
