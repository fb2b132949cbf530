"""Turn search hits and input files into WorkItems."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Sequence

import pydantic
from pydantic import AliasChoices, BaseModel, Field

from mfa.extraction.types import WorkItem
from mfa.shared.errors import ValidationError

from .service import SearchHit

logger = logging.getLogger(__name__)

_PROVENANCE_SOURCE_KEYS = ("source", "citation", "title", "doi", "url")


def source_from_provenance(provenance: dict[str, Any]) -> str | None:
    for key in _PROVENANCE_SOURCE_KEYS:
        value = provenance.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class WorkItemIn(BaseModel):
    """One entry of an input file."""

    id: str | int | None = None
    payload: str = Field(validation_alias=AliasChoices("payload", "content"), min_length=1)
    context: str | None = None
    metadata: dict[str, Any] = {}
    provenance: dict[str, Any] = {}


class WorkItemFile(pydantic.RootModel[list[WorkItemIn]]):
    pass


def hits_to_work_items(query: str, hits: Sequence[SearchHit]) -> list[WorkItem]:
    """One WorkItem per hit; the query becomes every item's context."""
    items = []
    for i, hit in enumerate(hits, 1):
        metadata: dict[str, Any] = {"provenance": dict(hit.provenance)}
        source = source_from_provenance(hit.provenance)
        if source:
            metadata["source"] = source
        items.append(WorkItem(id=f"item-{i}", payload=hit.content, context=query, metadata=metadata))
    return items


def load_work_items(path: str | Path, default_context: str = "") -> list[WorkItem]:
    """Read a JSON list of work items.

    Entries look like ``{"id"?, "payload"|"content", "context"?, "metadata"?,
    "provenance"?}``. Items without an id are numbered by position.

    Raises:
        OSError: The file cannot be read.
        ValidationError: The file is not a JSON list of valid entries.
    """
    raw = Path(path).read_text(encoding="utf-8")
    try:
        entries = WorkItemFile.model_validate_json(raw).root
    except pydantic.ValidationError as e:
        raise ValidationError(f"{path}: invalid work item file ({e.error_count()} error(s))", raw=raw[:500]) from e

    items: list[WorkItem] = []
    seen_ids: set[str] = set()
    for i, entry in enumerate(entries, 1):
        metadata = dict(entry.metadata)
        if entry.provenance:
            metadata.setdefault("provenance", dict(entry.provenance))
            source = source_from_provenance(entry.provenance)
            if source:
                metadata.setdefault("source", source)
        item_id = str(entry.id) if entry.id is not None else f"item-{i}"
        if item_id in seen_ids:
            raise ValidationError(f"{path}: duplicate work item id {item_id!r}")
        seen_ids.add(item_id)
        items.append(
            WorkItem(
                id=item_id,
                payload=entry.payload,
                context=entry.context if entry.context is not None else default_context,
                metadata=metadata,
            )
        )

    logger.info("Loaded %d work items from %s", len(items), path)
    return items


def dump_hits(hits: Sequence[SearchHit]) -> list[dict[str, Any]]:
    return [{"content": h.content, "provenance": h.provenance} for h in hits]

