"""Abstract contracts for the two external collaborators of the gateway.

``DataStoreAdapter`` is the query-builder over the governed database;
``ChatModelAdapter`` is the LLM runtime. Swap either by implementing the
interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


class DataStoreAdapter(ABC):
    """Single-statement operations on governed tables.

    Filters are column → value equality maps. ``exclude`` names columns that
    must never appear in returned rows.
    """

    @abstractmethod
    async def list_tables(self) -> list[tuple[str | None, str]]:
        """Return ``(schema, table_name)`` for every table in the store."""

    @abstractmethod
    async def select(
        self,
        schema: str | None,
        table: str,
        *,
        columns: list[str] | None,
        exclude: set[str],
        filters: dict[str, Any],
        limit: int,
        order_by: tuple[str, bool] | None = None,
    ) -> list[dict[str, Any]]:
        """Read rows. ``order_by`` is ``(column, descending)``."""

    @abstractmethod
    async def insert(
        self,
        schema: str | None,
        table: str,
        data: dict[str, Any],
        *,
        exclude: set[str],
        columns: list[str] | None = None,
    ) -> dict[str, Any]:
        """Insert one row and return it, projected like ``select``."""

    @abstractmethod
    async def update(
        self,
        schema: str | None,
        table: str,
        filters: dict[str, Any],
        data: dict[str, Any],
        *,
        exclude: set[str],
        columns: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Apply ``data`` to every matching row; return the updated rows.

        Rows are projected like ``select``.
        """

    @abstractmethod
    async def delete(self, schema: str | None, table: str, filters: dict[str, Any]) -> int:
        """Delete matching rows; return how many were removed."""


@dataclass
class ModelToolCall:
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class ModelReply:
    content: str = ""
    tool_calls: list[ModelToolCall] = field(default_factory=list)
    finish_reason: str | None = None


class ChatModelAdapter(ABC):
    """Contract that any chat-completion backend must satisfy."""

    @abstractmethod
    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
    ) -> ModelReply:
        """Run one model step over OpenAI-style ``messages``."""

    async def aclose(self) -> None:
        """Release transport resources."""
