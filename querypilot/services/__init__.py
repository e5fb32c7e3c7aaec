"""Clients for the external schema search and SQL execution services."""

from querypilot.services.schema_search import SchemaRetriever, SchemaSearchClient
from querypilot.services.sql_executor import HTTPSQLExecutor, SQLProxyError

__all__ = ["HTTPSQLExecutor", "SchemaRetriever", "SchemaSearchClient", "SQLProxyError"]
