"""Human-readable pseudo-SQL for dry-run previews.

The output is shown to users and the model, never executed.
"""

from typing import Any


def literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value).replace("'", "''")
    return f"'{text}'"


def _where(filters: dict[str, Any]) -> str:
    return " AND ".join(f"{k} = {literal(v)}" for k, v in filters.items())


def render_insert(table: str, data: dict[str, Any]) -> str:
    columns = ", ".join(data)
    values = ", ".join(literal(v) for v in data.values())
    return f"INSERT INTO {table} ({columns}) VALUES ({values})"


def render_update(table: str, filters: dict[str, Any], data: dict[str, Any]) -> str:
    assignments = ", ".join(f"{k} = {literal(v)}" for k, v in data.items())
    return f"UPDATE {table} SET {assignments} WHERE {_where(filters)}"


def render_delete(table: str, filters: dict[str, Any]) -> str:
    return f"DELETE FROM {table} WHERE {_where(filters)}"
