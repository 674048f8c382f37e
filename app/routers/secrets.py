"""Vault endpoints — values go in, never come back out."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user_id
from app.schemas.secret import SecretCreate, SecretResponse, SecretUpdate
from app.services import secret_service

# Every route here acts for an identified caller
router = APIRouter(dependencies=[Depends(get_current_user_id)])


@router.get("/", response_model=list[SecretResponse])
async def list_secrets(db: AsyncSession = Depends(get_db)):
    return await secret_service.list_secrets(db)


@router.post("/", response_model=SecretResponse, status_code=201)
async def create_secret(data: SecretCreate, db: AsyncSession = Depends(get_db)):
    if await secret_service.get_secret(db, data.id):
        raise HTTPException(status_code=409, detail="Secret already exists")
    return await secret_service.create_secret(db, data)


@router.patch("/{secret_id}", response_model=SecretResponse)
async def update_secret(
    secret_id: str, data: SecretUpdate, db: AsyncSession = Depends(get_db)
):
    secret = await secret_service.update_secret(db, secret_id, data)
    if not secret:
        raise HTTPException(status_code=404, detail="Secret not found")
    return secret


@router.delete("/{secret_id}", status_code=204)
async def delete_secret(secret_id: str, db: AsyncSession = Depends(get_db)):
    deleted = await secret_service.delete_secret(db, secret_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Secret not found")
