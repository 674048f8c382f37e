"""Chat service — routes a turn, loads tools, and drives the model's tool loop."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.base import ChatModelAdapter
from app.config import settings
from app.errors import ModelServiceError
from app.schemas.chat import ChatEvent, ChatMessage, ChatRequest, RouterDecision, UserInteraction
from app.schemas.tool import ToolDefinition, ToolExecutionContext
from app.services import tool_registry
from app.services.model_router import (
    RouterRules,
    default_rules,
    detect_tool_need,
    model_supports_tools,
)
from app.services.tool_executor import ToolExecutor

logger = logging.getLogger(__name__)

# Older interactions are dropped from the prompt
_MAX_INTERACTIONS = 20


# ── Prompt helpers ───────────────────────────────────────────────────


def format_interactions(interactions: list[UserInteraction]) -> str:
    if not interactions:
        return "No recent interactions."

    lines = []
    for item in interactions[-_MAX_INTERACTIONS:]:
        stamp = "--:--"
        if item.created_at:
            try:
                stamp = datetime.fromisoformat(item.created_at.replace("Z", "+00:00")).strftime(
                    "%H:%M"
                )
            except ValueError:
                stamp = item.created_at
        text = f' "{item.text}"' if item.text else ""
        lines.append(f"[{stamp}] {item.action_type}: {item.target or 'unknown'}{text}")
    return "\n".join(lines)


def build_system_prompt(
    *,
    route: str | None,
    interactions: str,
    tool_names: list[str],
    model_name: str,
) -> str:
    tool_section = ""
    if tool_names:
        listed = "\n".join(f"- {name}" for name in tool_names)
        tool_section = (
            "\n\n### Available tools — call them directly\n"
            f"{listed}\n\n"
            "**Tool rules:**\n"
            "- Call tools right away instead of announcing that you will.\n"
            "- query_* tools: run immediately, no confirmation needed.\n"
            "- insert_*: IDs and created_at/updated_at are generated, never ask for them.\n"
            "- When a foreign key such as role_id is needed, look it up with the matching "
            "query_* tool first, then insert.\n"
            "- delete_*: only after the user explicitly confirmed; pass confirm: true."
        )

    return (
        "You are a helpful assistant inside a B2B admin application.\n\n"
        "## Your role\n"
        "- Answer questions about the application.\n"
        "- Read and change data when the user asks for it.\n"
        "- Run read operations immediately; show briefly what an insert or update will do.\n"
        "- Always ask for confirmation before deleting anything.\n"
        "- Reply in the language the user writes in.\n\n"
        "## Context\n"
        f"### Current route\n{route or 'unknown'}\n\n"
        f"### Recent user actions (oldest first)\n{interactions}"
        f"{tool_section}\n\n"
        "## Answer guidelines\n"
        "1. Be precise and helpful.\n"
        "2. If data is needed, call the matching tool instead of guessing.\n"
        "3. After a tool call, explain the result; relay tool errors plainly.\n"
        "4. Use Markdown for longer answers.\n"
        f"5. End every answer with a new line: `<sub>— {model_name}</sub>`"
    )


def convert_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    """Flatten client messages to OpenAI-style text messages."""
    return [{"role": m.role, "content": m.text("\n")} for m in messages]


# ── Turn orchestration ───────────────────────────────────────────────


@dataclass
class ChatTurn:
    decision: RouterDecision
    model: str
    context: ToolExecutionContext
    tool_names: list[str] = field(default_factory=list)
    events: AsyncIterator[ChatEvent] | None = None

    @property
    def headers(self) -> dict[str, str]:
        return {
            "X-Model-Used": self.model,
            "X-Router-Reason": self.decision.reason,
            "X-Tools-Enabled": str(bool(self.tool_names)).lower(),
        }


async def start_turn(
    request: ChatRequest,
    *,
    user_id: str,
    db: AsyncSession,
    adapter: ChatModelAdapter,
    executor: ToolExecutor,
    rules: RouterRules | None = None,
) -> ChatTurn:
    """Route the turn and prepare its event stream.

    Tools are only generated when the router asks for them.
    """
    decision = detect_tool_need(request.messages, rules or default_rules())
    logger.info(
        "Router decision: needs_tools=%s reason=%s model=%s max_steps=%d",
        decision.needs_tools, decision.reason, decision.model, decision.max_steps,
    )

    tools: dict[str, ToolDefinition] = {}
    if decision.needs_tools:
        tools = await tool_registry.generate_all_tools(db)
        logger.info("Tools loaded: %s", ", ".join(tools) or "none")

    model = request.model or decision.model
    if tools and not model_supports_tools(model):
        logger.warning("Model %s cannot call tools, using %s", model, settings.fallback_tool_model)
        model = settings.fallback_tool_model

    context = ToolExecutionContext(
        user_id=user_id,
        session_id=request.session_id or uuid.uuid4().hex,
        dry_run=settings.dry_run_default if request.dry_run is None else request.dry_run,
    )

    system_prompt = build_system_prompt(
        route=request.route,
        interactions=format_interactions(request.interactions),
        tool_names=list(tools),
        model_name=model,
    )
    conversation = [{"role": "system", "content": system_prompt}]
    conversation += convert_messages(request.messages)

    turn = ChatTurn(decision=decision, model=model, context=context, tool_names=list(tools))
    turn.events = _run_loop(
        adapter=adapter,
        executor=executor,
        model=model,
        conversation=conversation,
        tools=tools,
        max_steps=decision.max_steps,
        context=context,
    )
    return turn


async def _run_loop(
    *,
    adapter: ChatModelAdapter,
    executor: ToolExecutor,
    model: str,
    conversation: list[dict[str, Any]],
    tools: dict[str, ToolDefinition],
    max_steps: int,
    context: ToolExecutionContext,
) -> AsyncIterator[ChatEvent]:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + settings.chat_timeout_seconds
    tool_specs = [t.to_openai() for t in tools.values()] or None

    yield ChatEvent(
        type="status",
        content="started",
        metadata={"model": model, "tools": list(tools), "dry_run": context.dry_run},
    )

    for step in range(max_steps):
        remaining = deadline - loop.time()
        if remaining <= 0:
            yield ChatEvent(type="error", content="Chat turn timed out")
            return
        try:
            reply = await asyncio.wait_for(
                adapter.complete(model, conversation, tools=tool_specs), timeout=remaining
            )
        except asyncio.TimeoutError:
            logger.warning("Model %s timed out at step %d", model, step)
            yield ChatEvent(type="error", content="Chat turn timed out")
            return
        except ModelServiceError as e:
            yield ChatEvent(type="error", content=str(e))
            return

        if reply.content:
            yield ChatEvent(type="text", content=reply.content)

        if not reply.tool_calls or not tool_specs:
            return

        conversation.append(
            {
                "role": "assistant",
                "content": reply.content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                    }
                    for call in reply.tool_calls
                ],
            }
        )

        # One call at a time, in the order the model emitted them
        for call in reply.tool_calls:
            yield ChatEvent(type="tool_start", tool_name=call.name, metadata={"args": call.arguments})
            result = await executor.execute(call.name, call.arguments, context)
            payload = result.to_payload()
            yield ChatEvent(
                type="tool_end",
                tool_name=call.name,
                content="ok" if result.success else (result.error or "failed"),
                metadata=payload,
            )
            conversation.append(
                {
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps(payload, default=str),
                }
            )

    yield ChatEvent(type="status", content="step-limit-reached", metadata={"max_steps": max_steps})
