"""
Schema Search Client

Contract and HTTP client for the semantic schema search service that
returns the tables most relevant to a question.
"""

import logging
from typing import Protocol, runtime_checkable

import httpx
from pydantic import ValidationError as PydanticValidationError

from querypilot.models.schema import SchemaSearchResult

logger = logging.getLogger(__name__)


@runtime_checkable
class SchemaRetriever(Protocol):
    """Anything able to rank tables of a database against a question."""

    async def search_similar_tables(
        self, database_id: int | str, query: str, limit: int = 15
    ) -> SchemaSearchResult: ...


class SchemaSearchClient:
    """
    HTTP client for ``POST /api/database/{id}/schema/search-similar-tables``.

    Never raises for transport, HTTP or payload errors; they come back as
    ``success=False`` results, which the pipeline treats like "no schema".
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def search_similar_tables(
        self, database_id: int | str, query: str, limit: int = 15
    ) -> SchemaSearchResult:
        url = f"{self.base_url}/api/database/{database_id}/schema/search-similar-tables"
        try:
            response = await self.client.post(url, json={"query": query, "limit": limit})
            response.raise_for_status()
            result = SchemaSearchResult.model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            logger.error(
                f"Schema search returned HTTP {exc.response.status_code}",
                extra={"database_id": database_id, "url": url},
            )
            return SchemaSearchResult(success=False, error=f"HTTP {exc.response.status_code}")
        except httpx.HTTPError as exc:
            logger.error(f"Schema search request failed: {exc}", extra={"database_id": database_id})
            return SchemaSearchResult(success=False, error=str(exc) or type(exc).__name__)
        except (ValueError, PydanticValidationError) as exc:
            logger.error(f"Schema search returned an invalid payload: {exc}")
            return SchemaSearchResult(success=False, error="Invalid schema search response")

        logger.info(
            f"Schema search found {len(result.data or [])} tables",
            extra={"database_id": database_id, "limit": limit, "success": result.success},
        )
        return result

    async def close(self) -> None:
        await self.client.aclose()
