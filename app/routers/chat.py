"""Chat endpoint — streams one routed turn as newline-delimited JSON events."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.base import ChatModelAdapter
from app.database import get_db
from app.dependencies import get_current_user_id, get_model_adapter, get_tool_executor
from app.schemas.chat import ChatEvent, ChatRequest, RouterDecision
from app.services import chat_service
from app.services.model_router import default_rules, detect_tool_need
from app.services.tool_executor import ToolExecutor

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("")
async def chat(
    body: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    adapter: ChatModelAdapter = Depends(get_model_adapter),
    executor: ToolExecutor = Depends(get_tool_executor),
    db: AsyncSession = Depends(get_db),
):
    """Run one chat turn.

    Client sends: {"messages": [...], "route": "...", "interactions": [...]}
    Server streams: one {"type": "text|tool_start|tool_end|status|error", ...} per line
    """
    if not body.messages:
        await adapter.aclose()
        raise HTTPException(status_code=400, detail="No messages provided")

    try:
        turn = await chat_service.start_turn(
            body, user_id=user_id, db=db, adapter=adapter, executor=executor
        )
    except Exception:
        await adapter.aclose()
        raise

    logger.info(
        "Chat turn for user %s (session %s): model=%s tools=%d",
        user_id, turn.context.session_id, turn.model, len(turn.tool_names),
    )

    async def stream():
        try:
            async for event in turn.events:
                yield event.model_dump_json(exclude_none=True) + "\n"
        except Exception as e:
            logger.exception("Chat stream failed for user %s", user_id)
            yield ChatEvent(type="error", content=str(e)).model_dump_json(exclude_none=True) + "\n"
        finally:
            await adapter.aclose()

    headers = {**turn.headers, "Cache-Control": "no-cache"}
    return StreamingResponse(stream(), media_type="application/x-ndjson", headers=headers)


@router.post(
    "/route", response_model=RouterDecision, dependencies=[Depends(get_current_user_id)]
)
async def preview_route(body: ChatRequest):
    """Which model tier would serve this conversation, without calling it."""
    return detect_tool_need(body.messages, default_rules())
