"""Chat schemas — inbound conversation, router decision, outbound stream events."""

from typing import Any, Literal

from pydantic import BaseModel


class ContentPart(BaseModel):
    type: str  # text | image | ...
    text: str | None = None

    model_config = {"extra": "allow"}


class ChatMessage(BaseModel):
    """One message of the conversation as sent by the client.

    Older clients send ``content`` (string or parts), newer ones ``parts``.
    """
    role: Literal["user", "assistant", "system"]
    content: str | list[ContentPart] | None = None
    parts: list[ContentPart] | None = None
    id: str | None = None

    def text(self, sep: str = " ") -> str:
        if self.parts is not None:
            return sep.join(p.text for p in self.parts if p.type == "text" and p.text)
        if isinstance(self.content, str):
            return self.content
        if self.content:
            return sep.join(p.text for p in self.content if p.type == "text" and p.text)
        return ""


class UserInteraction(BaseModel):
    action_type: str
    target: str | None = None
    text: str | None = None
    created_at: str | None = None


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = []
    route: str | None = None
    interactions: list[UserInteraction] = []
    model: str | None = None  # explicit override of the routed model
    dry_run: bool | None = None
    session_id: str | None = None


class RouterDecision(BaseModel):
    needs_tools: bool
    reason: str
    model: str
    max_steps: int


class ChatEvent(BaseModel):
    """Outbound event to the client."""
    type: str  # text | tool_start | tool_end | status | error
    content: str = ""
    tool_name: str | None = None
    metadata: dict[str, Any] | None = None
