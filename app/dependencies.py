"""Request-scoped dependencies shared by the routers."""

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.adapters.base import ChatModelAdapter, DataStoreAdapter
from app.adapters.openrouter import OpenRouterAdapter
from app.adapters.sql_store import SqlAlchemyStore
from app.config import settings
from app.database import engine, get_db, get_session_factory
from app.services.secret_service import resolve_openrouter_key
from app.services.tool_executor import ToolExecutor

# Governed tables live in the same database by default
_store = SqlAlchemyStore(engine)


def get_current_user_id(request: Request) -> str:
    """User id forwarded by the upstream auth provider."""
    user_id = request.headers.get(settings.auth_header, "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def get_store() -> DataStoreAdapter:
    return _store


def get_tool_executor(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    store: DataStoreAdapter = Depends(get_store),
) -> ToolExecutor:
    return ToolExecutor(
        session_factory, store, query_timeout=settings.tool_call_timeout_seconds
    )


async def get_model_adapter(db: AsyncSession = Depends(get_db)) -> ChatModelAdapter:
    """OpenRouter client with the env key, or the vault key as fallback.

    The caller owns the adapter and must ``aclose()`` it.
    """
    api_key = await resolve_openrouter_key(db)
    if not api_key:
        raise HTTPException(
            status_code=503,
            detail={
                "code": "AI_SERVICE_NOT_CONFIGURED",
                "message": "No OpenRouter API key configured",
            },
        )
    return OpenRouterAdapter(api_key)
