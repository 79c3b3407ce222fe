from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


class ColumnNode(BaseModel):
    """Represents a database column in a schema snapshot."""

    column_name : str = Field(..., description="Name of the column")
    data_type : str = Field(..., description="Data type of the column")
    is_nullable : bool = Field(default=True, description="Indicates if the column can contain null values")
    max_length : Optional[int] = Field(default=None, description="Declared maximum length, when the type has one")
    is_primary_key : bool = Field(default=False, description="Indicates if the column is a primary key")
    is_foreign_key : bool = Field(default=False, description="Indicates if the column is a foreign key")


class TableNode(BaseModel):
    """Represents a database table in a schema snapshot."""

    table_name : str = Field(..., description="Name of the table")
    schema_name : str = Field(..., description="Schema to which the table belongs")
    columns : List[ColumnNode] = Field(default_factory=list, description="Columns in ordinal order")

    @property
    def primary_keys(self) -> List[str]:
        return [c.column_name for c in self.columns if c.is_primary_key]


class RelationshipNode(BaseModel):
    """Represents a foreign-key relationship between two tables."""

    from_table : str = Field(..., description="Name of the referencing table")
    from_column : str = Field(..., description="Referencing column")
    to_table : str = Field(..., description="Name of the referenced table")
    to_column : str = Field(..., description="Referenced column")
    schema_name : Optional[str] = Field(default=None, description="Schema to which the tables belong")


class SchemaSnapshot(BaseModel):
    """Point-in-time view of a database schema produced by a dialect adapter."""

    database_name : str = Field(..., description="Name of the scanned database")
    tables : List[TableNode] = Field(default_factory=list)
    relationships : List[RelationshipNode] = Field(default_factory=list)
    scanned_at : datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def get_table(self, table_name: str) -> Optional[TableNode]:
        lowered = table_name.lower()
        for table in self.tables:
            if table.table_name.lower() == lowered:
                return table
        return None

    def neighbours_of(self, table_name: str) -> List[str]:
        """Tables linked to ``table_name`` by a foreign key in either direction."""
        lowered = table_name.lower()
        found: List[str] = []
        for rel in self.relationships:
            if rel.from_table.lower() == lowered and rel.to_table not in found:
                found.append(rel.to_table)
            elif rel.to_table.lower() == lowered and rel.from_table not in found:
                found.append(rel.from_table)
        return found
