"""Tool executor — the one choke point for model-initiated data operations.

Per invocation: validate → dry-run preview or live execution → audit → return.
Nothing raises past ``ToolExecutor.execute``; every failure becomes a
``ToolExecutionResult`` with ``success=False`` and is audited like a success.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.adapters.base import DataStoreAdapter
from app.config import settings
from app.errors import ToolError
from app.schemas.access_policy import Operation
from app.schemas.tool import ToolExecutionContext, ToolExecutionResult
from app.services import audit_service, tool_registry
from app.services.tool_registry import PreparedCall
from app.utils.sql_preview import render_delete, render_insert, render_update

logger = logging.getLogger(__name__)


def render_preview(call: PreparedCall) -> str:
    if call.operation is Operation.INSERT:
        return render_insert(call.qualified_name, call.data)
    if call.operation is Operation.UPDATE:
        return render_update(call.qualified_name, call.filters, call.data)
    if call.operation is Operation.DELETE:
        return render_delete(call.qualified_name, call.filters)
    raise ValueError(f"No preview for {call.operation.value}")


class ToolExecutor:
    """Runs tool calls against ``store`` under the policies in the gateway DB.

    Policy reads and audit writes each use their own short-lived session from
    ``session_factory`` so neither depends on the caller's request session.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: DataStoreAdapter,
        *,
        query_timeout: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._store = store
        self._query_timeout = query_timeout

    async def execute(
        self, tool_name: str, args: dict[str, Any], ctx: ToolExecutionContext
    ) -> ToolExecutionResult:
        started = time.monotonic()

        try:
            call = await self._validate(tool_name, args)
        except ToolError as exc:
            logger.info("Tool %s rejected for user %s: %s", tool_name, ctx.user_id, exc)
            result = ToolExecutionResult(success=False, error=str(exc))
            await self._audit(tool_name, args, ctx, result, started)
            return result
        except Exception as exc:
            logger.exception("Validation of %s failed unexpectedly", tool_name)
            result = ToolExecutionResult(success=False, error=f"Validation failed: {exc}")
            await self._audit(tool_name, args, ctx, result, started)
            return result

        if call.operation.mutates and not ctx.dry_run:
            # Once a live mutation starts it runs to completion and is audited,
            # even if the surrounding chat request is cancelled.
            return await asyncio.shield(self._run_and_audit(call, tool_name, args, ctx, started))
        return await self._run_and_audit(call, tool_name, args, ctx, started)

    async def _validate(self, tool_name: str, args: dict[str, Any]) -> PreparedCall:
        async with self._session_factory() as db:
            policy, operation = await tool_registry.resolve_tool(db, tool_name)
        return tool_registry.prepare_call(policy, operation, args)

    async def _run_and_audit(
        self,
        call: PreparedCall,
        tool_name: str,
        args: dict[str, Any],
        ctx: ToolExecutionContext,
        started: float,
    ) -> ToolExecutionResult:
        try:
            result = await self._run(call, ctx)
        except ToolError as exc:
            result = ToolExecutionResult(success=False, error=str(exc))
        except SQLAlchemyError as exc:
            logger.warning("Store rejected %s: %s", tool_name, exc)
            result = ToolExecutionResult(success=False, error=_short(exc))
        except asyncio.TimeoutError:
            result = ToolExecutionResult(
                success=False, error=f"Query timed out after {self._query_timeout}s"
            )
        except Exception as exc:
            logger.exception("Tool %s failed", tool_name)
            result = ToolExecutionResult(success=False, error=str(exc) or "Unknown error")

        await self._audit(tool_name, args, ctx, result, started)
        return result

    async def _run(self, call: PreparedCall, ctx: ToolExecutionContext) -> ToolExecutionResult:
        if call.operation is Operation.QUERY:
            # Reads have no side effect, so dry-run does not apply to them.
            return await self._query(call)

        if ctx.dry_run:
            preview = render_preview(call)
            logger.info("Dry-run %s: %s", call.operation.value, preview)
            return ToolExecutionResult(success=True, dry_run_query=preview)

        if call.operation is Operation.INSERT:
            row = await self._store.insert(
                call.table_schema,
                call.table_name,
                call.data,
                exclude=call.excluded,
                columns=call.columns,
            )
            return ToolExecutionResult(success=True, data=jsonable_encoder(row), row_count=1)

        if call.operation is Operation.UPDATE:
            rows = await self._store.update(
                call.table_schema,
                call.table_name,
                call.filters,
                call.data,
                exclude=call.excluded,
                columns=call.columns,
            )
            return ToolExecutionResult(
                success=True, data=jsonable_encoder(rows), row_count=len(rows)
            )

        count = await self._store.delete(call.table_schema, call.table_name, call.filters)
        return ToolExecutionResult(success=True, row_count=count)

    async def _query(self, call: PreparedCall) -> ToolExecutionResult:
        pending = self._store.select(
            call.table_schema,
            call.table_name,
            columns=call.select,
            exclude=call.excluded,
            filters=call.filters,
            limit=call.limit or settings.default_query_limit,
            order_by=call.order_by,
        )
        if self._query_timeout:
            rows = await asyncio.wait_for(pending, timeout=self._query_timeout)
        else:
            rows = await pending
        return ToolExecutionResult(success=True, data=jsonable_encoder(rows), row_count=len(rows))

    async def _audit(
        self,
        tool_name: str,
        args: dict[str, Any],
        ctx: ToolExecutionContext,
        result: ToolExecutionResult,
        started: float,
    ) -> None:
        payload = None
        if result.success:
            payload = {
                "data": result.data,
                "rowCount": result.row_count,
                "dryRunQuery": result.dry_run_query,
            }
        await audit_service.append_audit_record(
            self._session_factory,
            user_id=ctx.user_id,
            session_id=ctx.session_id,
            tool_name=tool_name,
            tool_args=args,
            success=result.success,
            result=payload,
            error_message=result.error,
            is_dry_run=ctx.dry_run,
            duration_ms=int((time.monotonic() - started) * 1000),
        )


def _short(exc: SQLAlchemyError) -> str:
    """First line of the driver message, without SQLAlchemy's statement dump."""
    orig = getattr(exc, "orig", None)
    text = str(orig) if orig is not None else str(exc)
    return text.splitlines()[0] if text else exc.__class__.__name__
