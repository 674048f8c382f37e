"""Access policy endpoints — which tables the assistant may reach, and how."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.base import DataStoreAdapter
from app.database import get_db
from app.dependencies import get_current_user_id, get_store
from app.schemas.access_policy import (
    AccessPolicyCreate,
    AccessPolicyResponse,
    AccessPolicyUpdate,
    SyncResult,
)
from app.schemas.tool import ToolDefinition
from app.services import policy_service, tool_registry

# Every route here acts for an identified caller
router = APIRouter(dependencies=[Depends(get_current_user_id)])


@router.post("/sync", response_model=SyncResult)
async def sync_datasources(
    db: AsyncSession = Depends(get_db), store: DataStoreAdapter = Depends(get_store)
):
    """Register store tables that have no policy yet (locked down by default)."""
    return await policy_service.sync_policies_from_store(db, store)


@router.get("/tools", response_model=list[ToolDefinition])
async def list_tools(db: AsyncSession = Depends(get_db)):
    """The tool set a tool-tier chat turn would receive right now."""
    tools = await tool_registry.generate_all_tools(db)
    return list(tools.values())


@router.get("/", response_model=list[AccessPolicyResponse])
async def list_datasources(enabled_only: bool = False, db: AsyncSession = Depends(get_db)):
    if enabled_only:
        return await policy_service.list_enabled_policies(db)
    return await policy_service.list_policies(db)


@router.get("/{policy_id}", response_model=AccessPolicyResponse)
async def get_datasource(policy_id: str, db: AsyncSession = Depends(get_db)):
    policy = await policy_service.get_policy(db, policy_id)
    if not policy:
        raise HTTPException(status_code=404, detail="Data source not found")
    return policy


@router.post("/", response_model=AccessPolicyResponse, status_code=201)
async def create_datasource(
    data: AccessPolicyCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    policy = await policy_service.create_policy(db, data, created_by=user_id)
    if not policy:
        raise HTTPException(status_code=409, detail="Data source already exists")
    return policy


@router.patch("/{policy_id}", response_model=AccessPolicyResponse)
async def update_datasource(
    policy_id: str, data: AccessPolicyUpdate, db: AsyncSession = Depends(get_db)
):
    policy = await policy_service.update_policy(db, policy_id, data)
    if not policy:
        raise HTTPException(status_code=404, detail="Data source not found")
    return policy


@router.delete("/{policy_id}", status_code=204)
async def delete_datasource(policy_id: str, db: AsyncSession = Depends(get_db)):
    deleted = await policy_service.delete_policy(db, policy_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Data source not found")
