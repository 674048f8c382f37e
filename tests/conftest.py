"""Shared fixtures: a file-backed SQLite database per test, a governed ``themes``
table, and the app wired to both through dependency overrides."""

from typing import Any

import pytest
import sqlalchemy as sa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.adapters.base import ChatModelAdapter, ModelReply
from app.adapters.sql_store import SqlAlchemyStore
from app.database import Base, get_db, get_session_factory
from app.dependencies import get_model_adapter, get_store
from app.main import app
from app.models import AccessPolicy, ToolCall
from app.services.tool_executor import ToolExecutor

USER_ID = "user-1"

# Business tables the gateway governs, kept out of Base.metadata
store_metadata = sa.MetaData()
themes_table = sa.Table(
    "themes",
    store_metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("name", sa.String(100), nullable=False),
    sa.Column("description", sa.String(255), nullable=True),
    sa.Column("internal_notes", sa.String(255), nullable=True),
)


class FakeChatModel(ChatModelAdapter):
    """Replays scripted replies and records every request it receives."""

    def __init__(self, replies: list[ModelReply] | None = None) -> None:
        self.replies = list(replies or [])
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def complete(self, model, messages, *, tools=None):
        self.calls.append({"model": model, "messages": list(messages), "tools": tools})
        if self.replies:
            return self.replies.pop(0)
        return ModelReply(content="Done.")

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'datagate.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(store_metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(engine):
    return SqlAlchemyStore(engine, default_schema="public")


@pytest.fixture
def executor(session_factory, store):
    return ToolExecutor(session_factory, store)


@pytest.fixture
def fake_model():
    return FakeChatModel()


@pytest.fixture
def add_policy(session_factory):
    """Insert an AccessPolicy row; defaults to an enabled, read-only ``themes`` policy."""

    async def _add(table_name: str = "themes", **overrides: Any) -> AccessPolicy:
        values: dict[str, Any] = {
            "table_schema": "public",
            "table_name": table_name,
            "display_name": table_name.title(),
            "access_level": "read",
            "is_enabled": True,
            "allowed_columns": [],
            "excluded_columns": [],
            "max_rows_per_query": 100,
        }
        values.update(overrides)
        async with session_factory() as session:
            policy = AccessPolicy(**values)
            session.add(policy)
            await session.commit()
            await session.refresh(policy)
        return policy

    return _add


@pytest.fixture
def seed_themes(engine):
    async def _seed(count: int) -> None:
        rows = [
            {"name": f"Theme {i}", "description": f"#{i}", "internal_notes": "hidden"}
            for i in range(1, count + 1)
        ]
        async with engine.begin() as conn:
            await conn.execute(themes_table.insert(), rows)

    return _seed


@pytest.fixture
def theme_rows(engine):
    async def _rows() -> list[dict[str, Any]]:
        async with engine.connect() as conn:
            result = await conn.execute(sa.select(themes_table).order_by(themes_table.c.id))
            return [dict(row) for row in result.mappings().all()]

    return _rows


@pytest.fixture
def audit_rows(session_factory):
    async def _rows() -> list[ToolCall]:
        async with session_factory() as session:
            result = await session.execute(sa.select(ToolCall).order_by(ToolCall.id))
            return list(result.scalars().all())

    return _rows


@pytest.fixture
async def client(session_factory, store, fake_model):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_model_adapter] = lambda: fake_model

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers={"X-User-Id": USER_ID}
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
