"""FastAPI application entrypoint."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import async_session, init_db
from app.routers import chat, datasources, secrets, tools
from app.services import secret_service

# ── Logging setup ────────────────────────────────────────────────────
_log_level = os.environ.get("DATAGATE_LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=_log_level,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
# httpx logs every request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await init_db()

    async with async_session() as session:
        if not await secret_service.resolve_openrouter_key(session):
            logger.warning(
                "No OpenRouter API key configured — /api/chat will answer 503 until "
                "DATAGATE_OPENROUTER_API_KEY or the %s secret is set",
                secret_service.OPENROUTER_KEY_ID,
            )

    logger.info(
        "Datagate ready (env=%s, chat=%s, tools=%s, dry_run_default=%s)",
        settings.env, settings.chat_model, settings.tool_model, settings.dry_run_default,
    )
    yield


app = FastAPI(
    title="Datagate",
    description="Policy-governed data tools for an AI chat assistant",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Model-Used", "X-Router-Reason", "X-Tools-Enabled"],
)

# Mount routers
app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(datasources.router, prefix="/api/datasources", tags=["datasources"])
app.include_router(tools.router, prefix="/api/tools", tags=["tools"])
app.include_router(secrets.router, prefix="/api/secrets", tags=["secrets"])


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "service": "datagate",
        "models": {
            "chat": settings.chat_model,
            "tools": settings.tool_model,
        },
    }
