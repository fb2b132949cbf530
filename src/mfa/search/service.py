"""Document search collaborator (upstream of WorkItem ingestion)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import httpx
import pydantic
from pydantic import BaseModel

from mfa.shared.errors import NotFoundError, ServiceError, TransientServiceError, ValidationError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


@dataclass(frozen=True)
class SearchHit:
    content: str
    provenance: dict[str, Any] = field(default_factory=dict)


class _HitModel(BaseModel):
    content: str
    provenance: dict[str, Any] = {}


class SearchResponse(BaseModel):
    results: list[_HitModel]


@runtime_checkable
class DocumentSearchService(Protocol):
    def search(self, query: str, filters: dict[str, Any] | None = None) -> list[SearchHit]:
        ...


class HttpSearchService:
    """Client for a search service exposing ``POST /search``.

    Request:  {"query": "...", "filters": {...}}
    Response: {"results": [{"content": "...", "provenance": {...}}, ...]}
    """

    def __init__(self, base_url: str, timeout: float = 30.0, client: httpx.Client | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.Client()

    def search(self, query: str, filters: dict[str, Any] | None = None) -> list[SearchHit]:
        """Return the non-empty hits for ``query``.

        Raises:
            TransientServiceError: Timeout, connection failure or 429/5xx.
            ServiceError: Any other non-success status.
            ValidationError: Body is not a valid search response.
            NotFoundError: No hit carries any content.
        """
        try:
            response = self._client.post(
                f"{self.base_url}/search",
                json={"query": query, "filters": filters or {}},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransientServiceError(f"search request to {self.base_url} timed out") from e
        except httpx.ConnectError as e:
            raise TransientServiceError(f"could not connect to search service at {self.base_url}") from e

        if response.status_code in RETRYABLE_STATUS_CODES:
            raise TransientServiceError(
                f"search service returned {response.status_code}", status_code=response.status_code
            )
        if not response.is_success:
            raise ServiceError(
                f"search service returned {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )

        try:
            parsed = SearchResponse.model_validate_json(response.text)
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"invalid search response: {e.error_count()} error(s)", raw=response.text[:500]
            ) from e

        hits = [SearchHit(h.content, h.provenance) for h in parsed.results if h.content.strip()]
        if not hits:
            raise NotFoundError(f"no content found for query {query!r}")

        logger.info("Search returned %d hits for %r", len(hits), query)
        return hits

    def close(self) -> None:
        self._client.close()
