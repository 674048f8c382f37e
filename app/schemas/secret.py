"""Vault secret request/response schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class SecretCreate(BaseModel):
    id: str = Field(..., pattern=r"^[A-Z0-9_]+$", max_length=128)
    description: str = ""
    value: str  # plaintext, sealed before storage


class SecretUpdate(BaseModel):
    description: str | None = None
    value: str | None = None


class SecretResponse(BaseModel):
    id: str
    description: str
    hint: str
    rotated_at: datetime | None
    created_at: datetime
    updated_at: datetime
    # value is never returned

    model_config = {"from_attributes": True}
