"""MFA Extraction Module."""
from .cycle import CycleOutcome, ExtractionCycle
from .inference import InferenceClient, LLMInferenceClient
from .scheduler import TaskResult, TaskScheduler
from .types import (
    Batch,
    EvaluationVerdict,
    ExtractionRecord,
    GroupedOutput,
    MergedRecord,
    RelevanceVerdict,
    WorkItem,
)

__all__ = [
    "CycleOutcome",
    "ExtractionCycle",
    "InferenceClient",
    "LLMInferenceClient",
    "TaskResult",
    "TaskScheduler",
    "Batch",
    "EvaluationVerdict",
    "ExtractionRecord",
    "GroupedOutput",
    "MergedRecord",
    "RelevanceVerdict",
    "WorkItem",
]
