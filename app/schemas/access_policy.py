"""Access policy request/response schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

TABLE_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"


class AccessLevel(str, Enum):
    NONE = "none"
    READ = "read"
    READ_WRITE = "read_write"
    FULL = "full"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def permits(self, required: AccessLevel) -> bool:
        return self.rank >= required.rank


_RANK = {
    AccessLevel.NONE: 0,
    AccessLevel.READ: 1,
    AccessLevel.READ_WRITE: 2,
    AccessLevel.FULL: 3,
}


class Operation(str, Enum):
    QUERY = "query"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def required_level(self) -> AccessLevel:
        return _REQUIRED_LEVEL[self]

    @property
    def mutates(self) -> bool:
        return self is not Operation.QUERY


_REQUIRED_LEVEL = {
    Operation.QUERY: AccessLevel.READ,
    Operation.INSERT: AccessLevel.READ_WRITE,
    Operation.UPDATE: AccessLevel.READ_WRITE,
    Operation.DELETE: AccessLevel.FULL,
}


class AccessPolicyCreate(BaseModel):
    table_schema: str = Field("public", max_length=64)
    table_name: str = Field(..., pattern=TABLE_NAME_PATTERN, max_length=128)
    display_name: str = ""
    description: str | None = None
    access_level: AccessLevel = AccessLevel.NONE
    is_enabled: bool = False
    allowed_columns: list[str] = []
    excluded_columns: list[str] = []
    max_rows_per_query: int | None = Field(None, ge=1)  # None = configured default


class AccessPolicyUpdate(BaseModel):
    display_name: str | None = None
    description: str | None = None
    access_level: AccessLevel | None = None
    is_enabled: bool | None = None
    allowed_columns: list[str] | None = None
    excluded_columns: list[str] | None = None
    max_rows_per_query: int | None = Field(None, ge=1)


class AccessPolicyResponse(BaseModel):
    id: str
    table_schema: str
    table_name: str
    display_name: str
    description: str | None
    access_level: AccessLevel
    is_enabled: bool
    allowed_columns: list[str]
    excluded_columns: list[str]
    max_rows_per_query: int
    created_by: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SyncResult(BaseModel):
    created: list[str]
    existing: list[str]
