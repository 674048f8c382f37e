"""Tool executor tests against a real SQLite store."""

from typing import Any

import pytest

from app.adapters.base import DataStoreAdapter
from app.schemas.tool import ToolExecutionContext
from app.services import audit_service
from app.services.tool_executor import ToolExecutor

CTX = ToolExecutionContext(user_id="user-1", session_id="s-1")
DRY = ToolExecutionContext(user_id="user-1", session_id="s-1", dry_run=True)


class RecordingStore(DataStoreAdapter):
    """Wraps a store and remembers the arguments of every call."""

    def __init__(self, inner: DataStoreAdapter) -> None:
        self.inner = inner
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def list_tables(self):
        return await self.inner.list_tables()

    async def select(self, schema, table, **kwargs):
        self.calls.append(("select", kwargs))
        return await self.inner.select(schema, table, **kwargs)

    async def insert(self, schema, table, data, *, exclude, columns=None):
        self.calls.append(("insert", {"data": data, "columns": columns}))
        return await self.inner.insert(schema, table, data, exclude=exclude, columns=columns)

    async def update(self, schema, table, filters, data, *, exclude, columns=None):
        self.calls.append(("update", {"filters": filters, "data": data, "columns": columns}))
        return await self.inner.update(
            schema, table, filters, data, exclude=exclude, columns=columns
        )

    async def delete(self, schema, table, filters):
        self.calls.append(("delete", {"filters": filters}))
        return await self.inner.delete(schema, table, filters)


@pytest.mark.asyncio
async def test_query_is_capped_by_policy(executor, add_policy, seed_themes):
    await add_policy(max_rows_per_query=50)
    await seed_themes(60)

    result = await executor.execute("query_themes", {"limit": 100}, CTX)
    assert result.success is True
    assert result.row_count == 50
    assert len(result.data) == 50


@pytest.mark.asyncio
async def test_query_filters_and_order(executor, add_policy, seed_themes):
    await add_policy()
    await seed_themes(3)

    result = await executor.execute(
        "query_themes", {"filters": {"name": "Theme 2"}}, CTX
    )
    assert [row["id"] for row in result.data] == [2]

    result = await executor.execute("query_themes", {"order_by": "id desc", "limit": 2}, CTX)
    assert [row["id"] for row in result.data] == [3, 2]


@pytest.mark.asyncio
async def test_excluded_columns_never_reach_store(session_factory, store, add_policy, seed_themes):
    await add_policy(access_level="full", excluded_columns=["internal_notes"])
    await seed_themes(2)
    recording = RecordingStore(store)
    executor = ToolExecutor(session_factory, recording)

    rows = await executor.execute(
        "query_themes", {"filters": {"internal_notes": "hidden", "id": 1}}, CTX
    )
    assert rows.success is True
    assert all("internal_notes" not in row for row in rows.data)

    await executor.execute(
        "insert_themes", {"data": {"name": "New", "internal_notes": "leak"}}, CTX
    )
    await executor.execute(
        "update_themes",
        {"filters": {"id": 1}, "data": {"description": "x", "internal_notes": "leak"}},
        CTX,
    )

    for _, kwargs in recording.calls:
        for key in ("filters", "data"):
            assert "internal_notes" not in (kwargs.get(key) or {})
        assert "internal_notes" not in (kwargs.get("columns") or [])


@pytest.mark.asyncio
async def test_insert_returns_row(executor, add_policy, theme_rows):
    await add_policy(access_level="read_write")

    result = await executor.execute("insert_themes", {"data": {"name": "Test"}}, CTX)
    assert result.success is True
    assert result.row_count == 1
    assert result.data["name"] == "Test"
    assert [row["name"] for row in await theme_rows()] == ["Test"]


@pytest.mark.asyncio
async def test_write_results_respect_allowed_columns(executor, add_policy, audit_rows):
    await add_policy(access_level="full", allowed_columns=["name"])

    inserted = await executor.execute("insert_themes", {"data": {"name": "A"}}, CTX)
    assert inserted.success is True
    assert set(inserted.data) == {"name"}

    updated = await executor.execute(
        "update_themes", {"filters": {"name": "A"}, "data": {"name": "B"}}, CTX
    )
    assert updated.row_count == 1
    assert [set(row) for row in updated.data] == [{"name"}]

    queried = await executor.execute("query_themes", {}, CTX)
    assert queried.data == [{"name": "B"}]

    insert_record, update_record, _ = await audit_rows()
    assert set(insert_record.result["data"]) == {"name"}
    assert [set(row) for row in update_record.result["data"]] == [{"name"}]


@pytest.mark.asyncio
async def test_dry_run_insert_is_inert(executor, add_policy, theme_rows):
    await add_policy(access_level="read_write")

    result = await executor.execute("insert_themes", {"data": {"name": "Test"}}, DRY)
    assert result.success is True
    assert "INSERT INTO" in result.dry_run_query
    assert "themes" in result.dry_run_query
    assert "'Test'" in result.dry_run_query
    assert await theme_rows() == []


@pytest.mark.asyncio
async def test_dry_run_update_and_delete_are_inert(executor, add_policy, seed_themes, theme_rows):
    await add_policy(access_level="full")
    await seed_themes(2)
    before = await theme_rows()

    updated = await executor.execute(
        "update_themes", {"filters": {"id": 1}, "data": {"name": "O'Brien"}}, DRY
    )
    deleted = await executor.execute(
        "delete_themes", {"filters": {"id": 2}, "confirm": True}, DRY
    )

    assert updated.dry_run_query == "UPDATE public.themes SET name = 'O''Brien' WHERE id = 1"
    assert deleted.dry_run_query == "DELETE FROM public.themes WHERE id = 2"
    assert await theme_rows() == before


@pytest.mark.asyncio
async def test_update_and_delete_live(executor, add_policy, seed_themes, theme_rows):
    await add_policy(access_level="full")
    await seed_themes(3)

    updated = await executor.execute(
        "update_themes", {"filters": {"id": 1}, "data": {"name": "Renamed"}}, CTX
    )
    assert updated.row_count == 1
    assert updated.data[0]["name"] == "Renamed"

    deleted = await executor.execute("delete_themes", {"filters": {"id": 2}, "confirm": True}, CTX)
    assert deleted.success is True
    assert deleted.row_count == 1
    assert [row["id"] for row in await theme_rows()] == [1, 3]


@pytest.mark.asyncio
async def test_delete_without_confirm_fails(executor, add_policy, seed_themes, theme_rows, audit_rows):
    await add_policy(access_level="full")
    await seed_themes(1)

    result = await executor.execute("delete_themes", {"filters": {"id": "x"}, "confirm": False}, CTX)
    assert result.success is False
    assert "confirm" in result.error
    assert len(await theme_rows()) == 1

    (record,) = await audit_rows()
    assert record.success is False
    assert record.result is None
    assert "confirm" in record.error_message


@pytest.mark.asyncio
async def test_mutations_without_filters_never_touch_store(
    session_factory, store, add_policy
):
    await add_policy(access_level="full")
    recording = RecordingStore(store)
    executor = ToolExecutor(session_factory, recording)

    update = await executor.execute("update_themes", {"filters": {}, "data": {"name": "x"}}, CTX)
    delete = await executor.execute("delete_themes", {"confirm": True}, CTX)

    assert update.success is False
    assert delete.success is False
    assert recording.calls == []


@pytest.mark.asyncio
async def test_operation_above_level_is_rejected(executor, add_policy):
    await add_policy(access_level="read")
    result = await executor.execute("insert_themes", {"data": {"name": "x"}}, CTX)
    assert result.success is False
    assert "not permitted" in result.error


@pytest.mark.asyncio
async def test_unknown_and_disabled_sources(executor, add_policy):
    await add_policy("roles", is_enabled=False)

    missing = await executor.execute("query_themes", {}, CTX)
    disabled = await executor.execute("query_roles", {}, CTX)
    bogus = await executor.execute("explode_themes", {}, CTX)

    assert "not available" in missing.error
    assert "not enabled" in disabled.error
    assert "Unknown tool action" in bogus.error


@pytest.mark.asyncio
async def test_policy_is_rechecked_on_every_call(executor, add_policy, session_factory):
    policy = await add_policy()
    assert (await executor.execute("query_themes", {}, CTX)).success is True

    async with session_factory() as session:
        row = await session.get(type(policy), policy.id)
        row.is_enabled = False
        await session.commit()

    result = await executor.execute("query_themes", {}, CTX)
    assert result.success is False
    assert "not enabled" in result.error


@pytest.mark.asyncio
async def test_store_errors_become_results(executor, add_policy):
    await add_policy("ghosts")
    result = await executor.execute("query_ghosts", {}, CTX)
    assert result.success is False
    assert "does not exist" in result.error


@pytest.mark.asyncio
async def test_every_call_is_audited_once(executor, add_policy, seed_themes, audit_rows):
    await add_policy(access_level="full")
    await seed_themes(1)

    await executor.execute("query_themes", {}, CTX)
    await executor.execute("insert_themes", {"data": {"name": "x"}}, DRY)
    await executor.execute("delete_themes", {"filters": {"id": 1}}, CTX)
    await executor.execute("query_nothing", {}, CTX)

    records = await audit_rows()
    assert [r.tool_name for r in records] == [
        "query_themes", "insert_themes", "delete_themes", "query_nothing",
    ]
    assert [r.success for r in records] == [True, True, False, False]
    assert [r.is_dry_run for r in records] == [False, True, False, False]
    assert all(r.duration_ms >= 0 for r in records)
    assert all(r.user_id == "user-1" and r.session_id == "s-1" for r in records)
    assert records[0].result["rowCount"] == 1
    assert "INSERT INTO" in records[1].result["dryRunQuery"]


@pytest.mark.asyncio
async def test_audit_failure_does_not_mask_result(executor, add_policy, seed_themes, monkeypatch):
    await add_policy()
    await seed_themes(1)

    async def broken_commit(self):
        raise RuntimeError("disk full")

    monkeypatch.setattr("sqlalchemy.ext.asyncio.AsyncSession.commit", broken_commit)

    result = await executor.execute("query_themes", {}, CTX)
    assert result.success is True
    assert result.row_count == 1


@pytest.mark.asyncio
async def test_append_audit_record_reports_failure(session_factory, monkeypatch):
    async def broken_commit(self):
        raise RuntimeError("disk full")

    monkeypatch.setattr("sqlalchemy.ext.asyncio.AsyncSession.commit", broken_commit)

    ok = await audit_service.append_audit_record(
        session_factory,
        user_id="u",
        session_id=None,
        tool_name="query_themes",
        tool_args={},
        success=True,
        result=None,
        error_message=None,
        is_dry_run=False,
        duration_ms=-5,
    )
    assert ok is False
