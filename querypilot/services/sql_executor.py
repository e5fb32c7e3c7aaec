"""HTTP client for the SQL execution proxy."""

import logging
from typing import Any

import httpx

from querypilot.models.schema import SQLResult

logger = logging.getLogger(__name__)


class SQLProxyError(Exception):
    """The proxy rejected the statement or could not be reached."""


class HTTPSQLExecutor:
    """
    Executor bound to one registered database, posting ``{databaseId, query}``
    to ``/api/execute-sql``.

    Instances are awaitable callables (``await executor(sql)``) so they can
    be handed straight to the pipeline.
    """

    def __init__(
        self,
        base_url: str,
        database_id: int | str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.database_id = database_id
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def __call__(self, sql: str) -> SQLResult:
        try:
            response = await self.client.post(
                f"{self.base_url}/api/execute-sql",
                json={"databaseId": self.database_id, "query": sql},
            )
        except httpx.HTTPError as exc:
            raise SQLProxyError(f"SQL proxy unreachable: {exc}") from exc

        body = self._json_or_none(response)
        if response.is_error or not isinstance(body, dict) or body.get("success") is False:
            raise SQLProxyError(self._error_detail(response, body))

        result = SQLResult.model_validate(body)
        logger.debug(
            "SQL proxy returned rows",
            extra={"database_id": self.database_id, "rows": len(result.data)},
        )
        return result

    @staticmethod
    def _json_or_none(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _error_detail(response: httpx.Response, body: Any) -> str:
        if isinstance(body, dict):
            # "details" carries the engine message, "error" the proxy summary
            detail = body.get("details") or body.get("error") or body.get("message")
            if detail:
                return str(detail)
        if response.is_error:
            return f"HTTP {response.status_code}"
        return "SQL proxy returned an unexpected response"

    async def close(self) -> None:
        await self.client.aclose()
