"""Secret service — encrypted vault for provider credentials."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.secret import Secret
from app.schemas.secret import SecretCreate, SecretUpdate
from app.utils.crypto import seal, unseal

logger = logging.getLogger(__name__)

OPENROUTER_KEY_ID = "OPENROUTER_API_KEY"


def value_hint(value: str) -> str:
    """Masked tail of a secret, e.g. ``…c9f2``; empty for short values."""
    if len(value) < 12:
        return ""
    return f"…{value[-4:]}"


async def list_secrets(db: AsyncSession) -> list[Secret]:
    result = await db.execute(select(Secret).order_by(Secret.id))
    return list(result.scalars().all())


async def get_secret(db: AsyncSession, secret_id: str) -> Secret | None:
    return await db.get(Secret, secret_id)


async def create_secret(db: AsyncSession, data: SecretCreate) -> Secret:
    secret = Secret(
        id=data.id,
        description=data.description,
        encrypted_value=seal(data.value),
        hint=value_hint(data.value),
    )
    db.add(secret)
    await db.commit()
    await db.refresh(secret)
    return secret


async def update_secret(db: AsyncSession, secret_id: str, data: SecretUpdate) -> Secret | None:
    secret = await db.get(Secret, secret_id)
    if not secret:
        return None

    if data.description is not None:
        secret.description = data.description
    if data.value is not None:
        secret.encrypted_value = seal(data.value)
        secret.hint = value_hint(data.value)
        secret.rotated_at = datetime.now(timezone.utc).replace(tzinfo=None)

    await db.commit()
    await db.refresh(secret)
    return secret


async def delete_secret(db: AsyncSession, secret_id: str) -> bool:
    secret = await db.get(Secret, secret_id)
    if not secret:
        return False
    await db.delete(secret)
    await db.commit()
    return True


async def reveal(db: AsyncSession, secret_id: str) -> str | None:
    """Plaintext value for internal use only — never expose via API."""
    secret = await db.get(Secret, secret_id)
    if not secret:
        return None
    value = unseal(secret.encrypted_value)
    if value is None:
        logger.warning("Secret %s cannot be decrypted with the current secret_key", secret_id)
    return value


async def resolve_openrouter_key(db: AsyncSession) -> str | None:
    """Environment wins; the vault is the fallback."""
    if settings.openrouter_api_key:
        return settings.openrouter_api_key
    return await reveal(db, OPENROUTER_KEY_ID)
