"""OpenRouter adapter — OpenAI-compatible chat completions over HTTP."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from app.adapters.base import ChatModelAdapter, ModelReply, ModelToolCall
from app.config import settings
from app.errors import ModelServiceError

logger = logging.getLogger(__name__)


class OpenRouterAdapter(ChatModelAdapter):
    def __init__(
        self,
        api_key: str,
        *,
        url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url or settings.openrouter_chat_url
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": settings.site_url,
            "X-Title": settings.app_name,
        }
        self._client = client or httpx.AsyncClient(timeout=timeout or settings.chat_timeout_seconds)

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
    ) -> ModelReply:
        payload: dict[str, Any] = {"model": model, "messages": messages}
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        try:
            response = await self._client.post(self._url, json=payload, headers=self._headers)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("OpenRouter error: %s - %s", e.response.status_code, e.response.text[:500])
            raise ModelServiceError(f"Model provider error: {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            logger.error("OpenRouter request timed out")
            raise ModelServiceError("Model provider timed out") from e
        except httpx.RequestError as e:
            logger.error("OpenRouter request error: %s", e)
            raise ModelServiceError(f"Request error: {e}") from e

        return parse_completion(body)

    async def aclose(self) -> None:
        await self._client.aclose()


def parse_completion(body: dict[str, Any]) -> ModelReply:
    """Turn a chat-completions response body into a ``ModelReply``."""
    choices = body.get("choices") or []
    if not choices:
        error = (body.get("error") or {}).get("message", "empty response")
        raise ModelServiceError(f"Model returned no choices: {error}")

    choice = choices[0]
    message = choice.get("message") or {}
    calls: list[ModelToolCall] = []
    for raw in message.get("tool_calls") or []:
        fn = raw.get("function") or {}
        arguments = fn.get("arguments") or "{}"
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                logger.warning("Unparseable arguments for tool %s: %r", fn.get("name"), arguments)
                arguments = {}
        calls.append(
            ModelToolCall(id=raw.get("id", ""), name=fn.get("name", ""), arguments=arguments)
        )

    return ModelReply(
        content=message.get("content") or "",
        tool_calls=calls,
        finish_reason=choice.get("finish_reason"),
    )
