"""
Schema search and SQL result models.

These describe the contracts of the two external collaborators: the
semantic schema search service and the SQL executor.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PrivateAttr, model_validator


class ColumnSchema(BaseModel):
    """One column of a candidate table."""

    name: str = Field(validation_alias=AliasChoices("name", "columnName", "column_name"))
    type: str | None = Field(
        default=None, validation_alias=AliasChoices("type", "dataType", "data_type")
    )
    description: str | None = None

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class TableSchema(BaseModel):
    """
    Candidate table returned by schema search.

    Unknown keys (keys, indexes, sample values...) are kept so the schema
    can be embedded into the prompt exactly as the service returned it.
    """

    table_name: str = Field(validation_alias=AliasChoices("table_name", "tableName"))
    table_description: str | None = Field(
        default=None, validation_alias=AliasChoices("table_description", "tableDescription")
    )
    schema_name: str | None = Field(
        default=None, validation_alias=AliasChoices("schema_name", "schemaName")
    )
    columns: list[ColumnSchema] = Field(default_factory=list)

    _source: dict[str, Any] | None = PrivateAttr(default=None)

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @model_validator(mode="wrap")
    @classmethod
    def keep_source(cls, data: Any, handler: Any) -> "TableSchema":
        table = handler(data)
        if isinstance(data, dict):
            table._source = dict(data)
        return table

    def as_prompt_dict(self) -> dict[str, Any]:
        """The table exactly as schema search returned it."""
        if self._source is not None:
            return self._source
        return self.model_dump(exclude_none=True)


class SimilarTable(BaseModel):
    """A ranked schema search hit."""

    table: TableSchema = Field(validation_alias=AliasChoices("schema", "table"))
    similarity: float = 0.0

    model_config = ConfigDict(populate_by_name=True)


class SchemaSearchResult(BaseModel):
    """Result of ``search_similar_tables``."""

    success: bool
    data: list[SimilarTable] | None = None
    error: str | None = None

    @property
    def has_schema(self) -> bool:
        """``success=false`` and an empty hit list are treated the same."""
        return self.success and bool(self.data)

    def tables(self) -> list[TableSchema]:
        return [hit.table for hit in self.data or []]


class SQLResult(BaseModel):
    """Rows returned by the SQL executor for one statement."""

    data: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int | None = Field(
        default=None, validation_alias=AliasChoices("row_count", "rowCount")
    )
    execution_time: float | None = Field(
        default=None, validation_alias=AliasChoices("execution_time", "executionTime")
    )

    model_config = ConfigDict(populate_by_name=True)

    @property
    def columns(self) -> list[str]:
        return list(self.data[0].keys()) if self.data else []
