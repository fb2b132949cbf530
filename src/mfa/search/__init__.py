"""Document search collaborator and WorkItem ingestion."""

from mfa.search.ingest import hits_to_work_items, load_work_items, source_from_provenance
from mfa.search.service import DocumentSearchService, HttpSearchService, SearchHit

__all__ = [
    "DocumentSearchService",
    "HttpSearchService",
    "SearchHit",
    "hits_to_work_items",
    "load_work_items",
    "source_from_provenance",
]
