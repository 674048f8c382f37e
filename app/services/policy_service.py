"""Policy service — the access policy store behind every generated tool.

Policies are read fresh on every call; nothing here caches, so an admin edit
takes effect on the very next tool generation or execution.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.base import DataStoreAdapter
from app.config import settings
from app.models.access_policy import AccessPolicy
from app.schemas.access_policy import (
    TABLE_NAME_PATTERN,
    AccessPolicyCreate,
    AccessPolicyUpdate,
    SyncResult,
)

logger = logging.getLogger(__name__)

# The gateway's own bookkeeping tables are never offered to the model
INTERNAL_TABLES = frozenset({"ai_datasources", "ai_tool_calls", "secrets"})


async def list_policies(db: AsyncSession) -> list[AccessPolicy]:
    result = await db.execute(select(AccessPolicy).order_by(AccessPolicy.table_name))
    return list(result.scalars().all())


async def list_enabled_policies(db: AsyncSession) -> list[AccessPolicy]:
    stmt = (
        select(AccessPolicy)
        .where(AccessPolicy.is_enabled.is_(True))
        .where(AccessPolicy.access_level != "none")
        .order_by(AccessPolicy.table_name)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_policy(db: AsyncSession, policy_id: str) -> AccessPolicy | None:
    return await db.get(AccessPolicy, policy_id)


async def get_policy_by_table(db: AsyncSession, table_name: str) -> AccessPolicy | None:
    result = await db.execute(select(AccessPolicy).where(AccessPolicy.table_name == table_name))
    return result.scalar_one_or_none()


async def create_policy(
    db: AsyncSession, data: AccessPolicyCreate, created_by: str | None = None
) -> AccessPolicy | None:
    """Return None when a policy for the table already exists."""
    if await get_policy_by_table(db, data.table_name):
        return None

    values = data.model_dump()
    values["access_level"] = data.access_level.value
    values["display_name"] = data.display_name or data.table_name.replace("_", " ").title()
    values["max_rows_per_query"] = data.max_rows_per_query or settings.default_max_rows
    policy = AccessPolicy(**values, created_by=created_by)
    db.add(policy)
    await db.commit()
    await db.refresh(policy)
    logger.info("Policy created for %s (%s)", policy.qualified_name, policy.access_level)
    return policy


async def update_policy(
    db: AsyncSession, policy_id: str, data: AccessPolicyUpdate
) -> AccessPolicy | None:
    policy = await db.get(AccessPolicy, policy_id)
    if not policy:
        return None

    for field, value in data.model_dump(exclude_unset=True).items():
        if field == "access_level" and value is not None:
            value = value.value
        setattr(policy, field, value)

    await db.commit()
    await db.refresh(policy)
    logger.info(
        "Policy %s updated: level=%s enabled=%s",
        policy.table_name, policy.access_level, policy.is_enabled,
    )
    return policy


async def delete_policy(db: AsyncSession, policy_id: str) -> bool:
    policy = await db.get(AccessPolicy, policy_id)
    if not policy:
        return False
    await db.delete(policy)
    await db.commit()
    return True


async def sync_policies_from_store(db: AsyncSession, store: DataStoreAdapter) -> SyncResult:
    """Register every store table that has no policy yet.

    New rows start locked down (``none``, disabled) so discovery never widens
    what the model can reach; an administrator opts each table in.
    """
    known = {p.table_name for p in await list_policies(db)}
    created: list[str] = []
    existing: list[str] = []

    for schema, table_name in await store.list_tables():
        if table_name in INTERNAL_TABLES:
            continue
        if not re.match(TABLE_NAME_PATTERN, table_name):
            logger.warning("Policy sync: skipping table with unsupported name %r", table_name)
            continue
        if table_name in known:
            existing.append(table_name)
            continue
        db.add(
            AccessPolicy(
                table_schema=schema or settings.default_table_schema,
                table_name=table_name,
                display_name=table_name.replace("_", " ").title(),
                access_level="none",
                is_enabled=False,
                allowed_columns=[],
                excluded_columns=[],
                max_rows_per_query=settings.default_max_rows,
            )
        )
        known.add(table_name)
        created.append(table_name)

    if created:
        await db.commit()
        logger.info("Policy sync: registered %d new table(s): %s", len(created), created)
    return SyncResult(created=created, existing=existing)
