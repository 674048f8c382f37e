"""SQLAlchemy Core implementation of the governed data store.

Tables are reflected on every call: the gateway holds no schema cache, so
columns added or dropped by migrations are visible immediately. All values
travel as bound parameters.
"""

from __future__ import annotations

import logging
from typing import Any

import sqlalchemy as sa
from sqlalchemy.exc import NoSuchTableError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from app.adapters.base import DataStoreAdapter
from app.config import settings
from app.errors import ExecutionError

logger = logging.getLogger(__name__)


class SqlAlchemyStore(DataStoreAdapter):
    def __init__(self, engine: AsyncEngine, default_schema: str | None = None) -> None:
        self._engine = engine
        self._default_schema = default_schema or settings.default_table_schema

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _schema_arg(self, schema: str | None) -> str | None:
        # The default schema is reflected unqualified (SQLite has no "public")
        if not schema or schema == self._default_schema:
            return None
        return schema

    async def _reflect(self, conn: AsyncConnection, schema: str | None, table: str) -> sa.Table:
        schema_arg = self._schema_arg(schema)
        try:
            return await conn.run_sync(
                lambda sync_conn: sa.Table(
                    table, sa.MetaData(), schema=schema_arg, autoload_with=sync_conn
                )
            )
        except NoSuchTableError as exc:
            raise ExecutionError(f"Table '{table}' does not exist") from exc

    @staticmethod
    def _column(table: sa.Table, name: str) -> sa.Column:  # type: ignore[type-arg]
        if name not in table.c:
            raise ExecutionError(f"Unknown column '{name}' in table '{table.name}'")
        return table.c[name]

    def _where(self, table: sa.Table, filters: dict[str, Any]) -> list[Any]:
        return [self._column(table, key) == value for key, value in filters.items()]

    @staticmethod
    def _visible(table: sa.Table, exclude: set[str]) -> list[sa.Column]:  # type: ignore[type-arg]
        return [c for c in table.c if c.name not in exclude]

    def _projection(
        self, table: sa.Table, columns: list[str] | None, exclude: set[str]
    ) -> list[sa.Column[Any]]:
        if columns is None:
            return self._visible(table, exclude)
        return [self._column(table, c) for c in columns if c not in exclude]

    def _check_payload(self, table: sa.Table, data: dict[str, Any]) -> None:
        for key in data:
            self._column(table, key)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def list_tables(self) -> list[tuple[str | None, str]]:
        async with self._engine.connect() as conn:
            names = await conn.run_sync(lambda sync_conn: sa.inspect(sync_conn).get_table_names())
        return [(None, name) for name in sorted(names)]

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
        async with self._engine.connect() as conn:
            tbl = await self._reflect(conn, schema, table)
            cols = self._projection(tbl, columns, exclude)
            if not cols:
                raise ExecutionError(f"No readable columns in table '{table}'")

            stmt = sa.select(*cols).limit(limit)
            if filters:
                stmt = stmt.where(*self._where(tbl, filters))
            if order_by:
                col = self._column(tbl, order_by[0])
                stmt = stmt.order_by(col.desc() if order_by[1] else col.asc())

            result = await conn.execute(stmt)
            return [dict(row) for row in result.mappings().all()]

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def insert(
        self,
        schema: str | None,
        table: str,
        data: dict[str, Any],
        *,
        exclude: set[str],
        columns: list[str] | None = None,
    ) -> dict[str, Any]:
        async with self._engine.begin() as conn:
            tbl = await self._reflect(conn, schema, table)
            self._check_payload(tbl, data)
            stmt = tbl.insert().values(**data).returning(*self._projection(tbl, columns, exclude))
            result = await conn.execute(stmt)
            return dict(result.mappings().one())

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
        if not filters:
            raise ExecutionError("Refusing to update without a filter")
        async with self._engine.begin() as conn:
            tbl = await self._reflect(conn, schema, table)
            self._check_payload(tbl, data)
            stmt = (
                tbl.update()
                .where(*self._where(tbl, filters))
                .values(**data)
                .returning(*self._projection(tbl, columns, exclude))
            )
            result = await conn.execute(stmt)
            return [dict(row) for row in result.mappings().all()]

    async def delete(self, schema: str | None, table: str, filters: dict[str, Any]) -> int:
        if not filters:
            raise ExecutionError("Refusing to delete without a filter")
        async with self._engine.begin() as conn:
            tbl = await self._reflect(conn, schema, table)
            result = await conn.execute(tbl.delete().where(*self._where(tbl, filters)))
            logger.debug("Deleted %s row(s) from %s", result.rowcount, table)
            return result.rowcount
