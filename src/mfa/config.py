"""Pipeline configuration and presets.

Environment Variables (read by ``PipelineConfig.from_env``):
    MFA_CONCURRENCY: Worker pool size shared by extraction and merge (default: 4)
    MFA_MAX_CYCLES: Regenerate ceiling per item (default: 2)
    MFA_MAX_RETRIES: Attempts per collaborator call (default: 3)
    MFA_BACKOFF_BASE: Linear backoff step in seconds (default: 1.0)
    MFA_BATCH_SIZE: Fixed merge batch size; unset picks 5 or 10 automatically
    MFA_TAG_RECORDS: Classify spatial tags after merging (default: true)
    MFA_OUTPUT_DIR: Directory for run artifacts (default: outputs)
    QUEUE_STREAM: Stream for run notifications (default: mfa:runs)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace


def parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes", "on")


@dataclass(frozen=True)
class PipelineConfig:
    concurrency: int = 4
    max_cycles: int = 2
    max_retries: int = 3
    backoff_base: float = 1.0

    # None = choose per run: small size, or large size above the threshold
    batch_size: int | None = None
    small_batch_size: int = 5
    large_batch_size: int = 10
    large_threshold: int = 15

    # Relevance below this confidence counts as not relevant
    relevance_threshold: float = 0.0
    # Verdicts substituted when classify/evaluate cannot answer
    relevance_failure_default: bool = False
    evaluation_failure_complete: bool = True
    evaluation_failure_score: float = 0.5

    tag_records: bool = True

    output_dir: str = "outputs"
    queue_stream: str = "mfa:runs"

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.max_cycles < 0:
            raise ValueError(f"max_cycles must be >= 0, got {self.max_cycles}")
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")

    @classmethod
    def from_env(cls, base: "PipelineConfig | None" = None) -> "PipelineConfig":
        cfg = base or cls()
        overrides: dict = {}
        if "MFA_CONCURRENCY" in os.environ:
            overrides["concurrency"] = int(os.environ["MFA_CONCURRENCY"])
        if "MFA_MAX_CYCLES" in os.environ:
            overrides["max_cycles"] = int(os.environ["MFA_MAX_CYCLES"])
        if "MFA_MAX_RETRIES" in os.environ:
            overrides["max_retries"] = int(os.environ["MFA_MAX_RETRIES"])
        if "MFA_BACKOFF_BASE" in os.environ:
            overrides["backoff_base"] = float(os.environ["MFA_BACKOFF_BASE"])
        if os.environ.get("MFA_BATCH_SIZE"):
            overrides["batch_size"] = int(os.environ["MFA_BATCH_SIZE"])
        if "MFA_TAG_RECORDS" in os.environ:
            overrides["tag_records"] = parse_bool(os.environ["MFA_TAG_RECORDS"])
        if "MFA_OUTPUT_DIR" in os.environ:
            overrides["output_dir"] = os.environ["MFA_OUTPUT_DIR"]
        if "QUEUE_STREAM" in os.environ:
            overrides["queue_stream"] = os.environ["QUEUE_STREAM"]
        return replace(cfg, **overrides)


PRESETS: dict[str, PipelineConfig] = {
    "default": PipelineConfig(),

    # More refinement passes, stricter relevance gate
    "thorough": PipelineConfig(
        max_cycles=3,
        relevance_threshold=0.5,
    ),

    # Single extraction pass, no tagging calls
    "fast": PipelineConfig(
        concurrency=8,
        max_cycles=0,
        tag_records=False,
    ),
}


def get_preset(name: str) -> PipelineConfig:
    if name not in PRESETS:
        raise ValueError(f"Unknown preset {name!r}; choose from {sorted(PRESETS)}")
    return PRESETS[name]
