"""Audit service — append-only trail of tool invocations."""

from __future__ import annotations

import logging
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.errors import AuditWriteError
from app.models.tool_call import ToolCall

logger = logging.getLogger(__name__)


async def append_audit_record(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    user_id: str,
    session_id: str | None,
    tool_name: str,
    tool_args: Any,
    success: bool,
    result: Any,
    error_message: str | None,
    is_dry_run: bool,
    duration_ms: int,
) -> bool:
    """Persist one record in its own session. Never raises.

    Returns False when the write failed; the failure is only logged.
    """
    try:
        async with session_factory() as db:
            db.add(
                ToolCall(
                    user_id=user_id,
                    session_id=session_id,
                    tool_name=tool_name,
                    tool_args=jsonable_encoder(tool_args),
                    success=success,
                    result=jsonable_encoder(result),
                    error_message=error_message,
                    is_dry_run=is_dry_run,
                    duration_ms=max(0, duration_ms),
                )
            )
            try:
                await db.commit()
            except Exception as exc:
                raise AuditWriteError(str(exc)) from exc
    except Exception:
        logger.exception("Failed to write audit record for %s (user %s)", tool_name, user_id)
        return False
    return True


async def list_tool_calls(
    db: AsyncSession,
    *,
    user_id: str | None = None,
    session_id: str | None = None,
    tool_name: str | None = None,
    success: bool | None = None,
    limit: int = 100,
) -> list[ToolCall]:
    stmt = select(ToolCall).order_by(ToolCall.created_at.desc(), ToolCall.id.desc()).limit(limit)
    if user_id is not None:
        stmt = stmt.where(ToolCall.user_id == user_id)
    if session_id is not None:
        stmt = stmt.where(ToolCall.session_id == session_id)
    if tool_name is not None:
        stmt = stmt.where(ToolCall.tool_name == tool_name)
    if success is not None:
        stmt = stmt.where(ToolCall.success.is_(success))
    result = await db.execute(stmt)
    return list(result.scalars().all())
