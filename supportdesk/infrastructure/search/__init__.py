"""
Search Index Infrastructure
============================

Meilisearch client for the support KB index, spoken over its HTTP API.

Only the three calls the service needs are implemented: search,
single-document fetch and index stats.
"""

from typing import Any, Dict, List, Optional
from abc import ABC, abstractmethod

import httpx

from supportdesk.config import Settings, settings as default_settings
from supportdesk.core import SearchIndexException
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Fields the retrieval pipeline reads from each hit
KB_ATTRIBUTES = [
    "id", "type", "title", "summary", "bodyText",
    "stepsText", "triggersText", "routes", "appSlug",
]


class ISearchIndex(ABC):
    """Interface for the full-text KB index."""

    @abstractmethod
    async def search(
        self,
        query: str,
        filter_expression: str,
        limit: int = 8,
        attributes: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        """Return raw hits, each carrying `_rankingScore` when available."""

    @abstractmethod
    async def get_document(
        self,
        document_id: str,
        fields: Optional[List[str]] = None
    ) -> Optional[Dict[str, Any]]:
        """Return one document or None when absent."""

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        """Return index statistics."""

    async def close(self) -> None:
        """Release network resources."""


def escape_filter_value(value: str) -> str:
    """Escape a value for a double-quoted Meilisearch filter string."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


class MeiliSearchIndex(ISearchIndex):
    """
    httpx-based Meilisearch index client.

    Every request is bounded by `search_timeout_seconds`. Transport and HTTP
    errors surface as SearchIndexException; callers decide how to degrade.
    """

    def __init__(self, config: Optional[Settings] = None):
        config = config or default_settings
        if not config.meili_host:
            raise SearchIndexException("Meilisearch host not configured")

        self._index = config.meili_index_name
        headers = {"Content-Type": "application/json"}
        if config.meili_api_key:
            headers["Authorization"] = f"Bearer {config.meili_api_key}"

        self._http_client = httpx.AsyncClient(
            base_url=config.meili_host.rstrip("/"),
            headers=headers,
            timeout=config.search_timeout_seconds,
        )

    async def search(
        self,
        query: str,
        filter_expression: str,
        limit: int = 8,
        attributes: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        payload = {
            "q": query,
            "filter": filter_expression,
            "limit": limit,
            "showRankingScore": True,
            "attributesToRetrieve": attributes or KB_ATTRIBUTES,
        }
        try:
            response = await self._http_client.post(f"/indexes/{self._index}/search", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SearchIndexException(f"search failed: {e}")

        return response.json().get("hits") or []

    async def get_document(
        self,
        document_id: str,
        fields: Optional[List[str]] = None
    ) -> Optional[Dict[str, Any]]:
        params = {"fields": ",".join(fields)} if fields else None
        try:
            response = await self._http_client.get(
                f"/indexes/{self._index}/documents/{document_id}",
                params=params,
            )
        except httpx.HTTPError as e:
            raise SearchIndexException(f"document fetch failed: {e}")

        if response.status_code == 404:
            return None
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SearchIndexException(f"document fetch failed: {e}")
        return response.json()

    async def get_stats(self) -> Dict[str, Any]:
        try:
            response = await self._http_client.get(f"/indexes/{self._index}/stats")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SearchIndexException(f"stats failed: {e}")
        return response.json()

    async def close(self) -> None:
        await self._http_client.aclose()


def build_search_index(config: Optional[Settings] = None) -> Optional[ISearchIndex]:
    """Build the index client, or None when no host is configured."""
    config = config or default_settings
    if not config.meili_host:
        logger.warning("Meilisearch host not configured - KB answers disabled")
        return None
    return MeiliSearchIndex(config)
