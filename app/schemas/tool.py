"""Tool definition, execution and audit schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.schemas.access_policy import Operation


class ToolDefinition(BaseModel):
    """One callable the model may invoke; generated per request, never stored."""
    name: str
    description: str
    operation: Operation
    table_name: str
    parameters: dict[str, Any]

    def to_openai(self) -> dict[str, Any]:
        """Function-tool wire format used by OpenRouter / OpenAI-compatible APIs."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolExecutionContext(BaseModel):
    user_id: str
    session_id: str | None = None
    dry_run: bool = False


class ToolExecutionResult(BaseModel):
    success: bool
    data: Any = None
    error: str | None = None
    row_count: int | None = Field(None, alias="rowCount")
    dry_run_query: str | None = Field(None, alias="dryRunQuery")

    model_config = {"populate_by_name": True}

    def to_payload(self) -> dict[str, Any]:
        """Compact dict handed back to the model as the tool result."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ToolInvokeRequest(BaseModel):
    args: dict[str, Any] = {}
    session_id: str | None = None
    dry_run: bool | None = None  # None = configured default


class ToolCallResponse(BaseModel):
    id: int
    user_id: str
    session_id: str | None
    tool_name: str
    tool_args: Any
    success: bool
    result: Any
    error_message: str | None
    is_dry_run: bool
    duration_ms: int
    created_at: datetime

    model_config = {"from_attributes": True}
