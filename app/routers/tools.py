"""Direct tool invocation and the audit trail."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import get_current_user_id, get_tool_executor
from app.schemas.tool import (
    ToolCallResponse,
    ToolExecutionContext,
    ToolExecutionResult,
    ToolInvokeRequest,
)
from app.services import audit_service
from app.services.tool_executor import ToolExecutor

# Every route here acts for an identified caller
router = APIRouter(dependencies=[Depends(get_current_user_id)])


@router.get("/calls", response_model=list[ToolCallResponse])
async def list_calls(
    user_id: str | None = None,
    session_id: str | None = None,
    tool_name: str | None = None,
    success: bool | None = None,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    return await audit_service.list_tool_calls(
        db,
        user_id=user_id,
        session_id=session_id,
        tool_name=tool_name,
        success=success,
        limit=max(1, min(limit, 500)),
    )


@router.post("/{tool_name}", response_model=ToolExecutionResult, response_model_exclude_none=True)
async def invoke_tool(
    tool_name: str,
    body: ToolInvokeRequest,
    user_id: str = Depends(get_current_user_id),
    executor: ToolExecutor = Depends(get_tool_executor),
):
    """Run one tool exactly as the model would; failures come back with success=false."""
    ctx = ToolExecutionContext(
        user_id=user_id,
        session_id=body.session_id,
        dry_run=settings.dry_run_default if body.dry_run is None else body.dry_run,
    )
    return await executor.execute(tool_name, body.args, ctx)
