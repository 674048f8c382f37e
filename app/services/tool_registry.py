"""Tool registry — derives the model's callable surface from access policies.

Two decoupled stages live here:

- *advertisement*: ``generate_tools`` maps policy rows to ``ToolDefinition``s
  (pure, no I/O) and ``generate_all_tools`` feeds it the enabled rows;
- *authorization*: ``resolve_tool`` re-reads the policy for one tool name and
  ``prepare_call`` validates and sanitizes the model's arguments against it.

The executor only trusts the second stage; a schema advertised earlier in the
same turn may already be stale.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import PolicyViolation, ToolValidationError
from app.models.access_policy import AccessPolicy
from app.schemas.access_policy import TABLE_NAME_PATTERN, AccessLevel, Operation
from app.schemas.tool import ToolDefinition
from app.services import policy_service

logger = logging.getLogger(__name__)

_SCALAR = (str, int, float, bool, type(None))
_SCALAR_SCHEMA = {"type": ["string", "number", "integer", "boolean", "null"]}


# ── Policy helpers ───────────────────────────────────────────────────


def check_policy(policy: AccessPolicy) -> AccessLevel:
    """Return the policy's access level, raising ValueError if the row is malformed."""
    level = AccessLevel(policy.access_level)
    if not isinstance(policy.table_name, str) or not re.match(TABLE_NAME_PATTERN, policy.table_name):
        raise ValueError(f"invalid table name {policy.table_name!r}")
    if not isinstance(policy.max_rows_per_query, int) or policy.max_rows_per_query < 1:
        raise ValueError(f"invalid max_rows_per_query {policy.max_rows_per_query!r}")
    for attr in ("allowed_columns", "excluded_columns"):
        value = getattr(policy, attr)
        if value is not None and not isinstance(value, list):
            raise ValueError(f"{attr} must be a list")
    return level


def _excluded(policy: AccessPolicy) -> set[str]:
    return set(policy.excluded_columns or [])


def effective_columns(policy: AccessPolicy) -> list[str] | None:
    """Allowed minus excluded, in allow-list order; None when unrestricted."""
    if not policy.allowed_columns:
        return None
    excluded = _excluded(policy)
    return [c for c in policy.allowed_columns if c not in excluded]


def is_visible(policy: AccessPolicy, column: str) -> bool:
    if column in _excluded(policy):
        return False
    return not policy.allowed_columns or column in policy.allowed_columns


def tool_name(operation: Operation, table_name: str) -> str:
    return f"{operation.value}_{table_name}"


def parse_tool_name(name: str) -> tuple[Operation, str]:
    action, sep, table = name.partition("_")
    try:
        operation = Operation(action)
    except ValueError:
        raise PolicyViolation(f"Unknown tool action: {name}") from None
    if not sep or not table:
        raise PolicyViolation(f"Unknown tool action: {name}")
    return operation, table


# ── Schema generation ────────────────────────────────────────────────


def _filters_schema(policy: AccessPolicy, description: str) -> dict[str, Any]:
    schema: dict[str, Any] = {
        "type": "object",
        "description": description,
        "additionalProperties": _SCALAR_SCHEMA,
    }
    columns = effective_columns(policy)
    if columns:
        schema["propertyNames"] = {"enum": columns}
    return schema


def _data_schema(policy: AccessPolicy, description: str) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "description": description}
    columns = effective_columns(policy)
    if columns:
        schema["properties"] = {c: {} for c in columns}
    return schema


def _parameters(policy: AccessPolicy, operation: Operation) -> dict[str, Any]:
    if operation is Operation.QUERY:
        select_items: dict[str, Any] = {"type": "string"}
        columns = effective_columns(policy)
        if columns:
            select_items["enum"] = columns
        return {
            "type": "object",
            "properties": {
                "filters": _filters_schema(policy, "Equality filters, column → value."),
                "select": {
                    "type": "array",
                    "items": select_items,
                    "description": "Columns to return. Omit for all readable columns.",
                },
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": policy.max_rows_per_query,
                    "description": f"Maximum rows (default {settings.default_query_limit}).",
                },
                "order_by": {
                    "type": "string",
                    "description": 'Sort order as "column asc" or "column desc".',
                },
            },
            "additionalProperties": False,
        }

    if operation is Operation.INSERT:
        return {
            "type": "object",
            "properties": {
                "data": _data_schema(
                    policy, "Column values of the new row. IDs and timestamps are generated."
                ),
            },
            "required": ["data"],
            "additionalProperties": False,
        }

    if operation is Operation.UPDATE:
        return {
            "type": "object",
            "properties": {
                "filters": _filters_schema(
                    policy, "Rows to change, column → value. At least one filter is required."
                ),
                "data": _data_schema(policy, "Column values to set."),
            },
            "required": ["filters", "data"],
            "additionalProperties": False,
        }

    return {
        "type": "object",
        "properties": {
            "filters": _filters_schema(
                policy, "Rows to delete, column → value. At least one filter is required."
            ),
            "confirm": {
                "type": "boolean",
                "description": "Must be true; ask the user before deleting.",
            },
        },
        "required": ["filters", "confirm"],
        "additionalProperties": False,
    }


_VERBS = {
    Operation.QUERY: "Read rows from",
    Operation.INSERT: "Insert one row into",
    Operation.UPDATE: "Update rows in",
    Operation.DELETE: "Delete rows from",
}


def _description(policy: AccessPolicy, operation: Operation) -> str:
    label = policy.display_name or policy.table_name
    parts = [f"{_VERBS[operation]} {label} ({policy.qualified_name})."]
    if policy.description:
        parts.append(policy.description.strip())
    if operation is Operation.QUERY:
        parts.append(f"Returns at most {policy.max_rows_per_query} rows.")
    elif operation is Operation.DELETE:
        parts.append("Irreversible. Only call after the user confirmed.")
    return " ".join(parts)


def build_tool(policy: AccessPolicy, operation: Operation) -> ToolDefinition:
    return ToolDefinition(
        name=tool_name(operation, policy.table_name),
        description=_description(policy, operation),
        operation=operation,
        table_name=policy.table_name,
        parameters=_parameters(policy, operation),
    )


def generate_tools(policies: Iterable[AccessPolicy]) -> dict[str, ToolDefinition]:
    """Map policy rows to the tools they permit, keyed by tool name.

    Malformed rows are skipped with a warning instead of failing the batch.
    """
    tools: dict[str, ToolDefinition] = {}
    for policy in policies:
        try:
            level = check_policy(policy)
        except ValueError as exc:
            logger.warning(
                "Skipping malformed policy %r: %s", getattr(policy, "table_name", None), exc
            )
            continue
        if not policy.is_enabled or level is AccessLevel.NONE:
            continue
        for operation in Operation:
            if level.permits(operation.required_level):
                tool = build_tool(policy, operation)
                tools[tool.name] = tool
    return tools


async def generate_all_tools(db: AsyncSession) -> dict[str, ToolDefinition]:
    policies = await policy_service.list_enabled_policies(db)
    tools = generate_tools(policies)
    logger.debug("Generated %d tool(s) from %d policy row(s)", len(tools), len(policies))
    return tools


# ── Execution-time authorization ─────────────────────────────────────


async def resolve_tool(db: AsyncSession, name: str) -> tuple[AccessPolicy, Operation]:
    """Re-read the policy behind ``name`` and check it still permits the call."""
    operation, table = parse_tool_name(name)
    policy = await policy_service.get_policy_by_table(db, table)
    if policy is None:
        raise PolicyViolation(f"Data source '{table}' is not available")
    try:
        level = check_policy(policy)
    except ValueError as exc:
        logger.warning("Policy for %s is malformed: %s", table, exc)
        raise PolicyViolation(f"Data source '{table}' is not available") from None
    if not policy.is_enabled or level is AccessLevel.NONE:
        raise PolicyViolation(f"Data source '{table}' is not enabled for AI access")
    if not level.permits(operation.required_level):
        raise PolicyViolation(
            f"Operation '{operation.value}' is not permitted on '{table}' "
            f"(access level: {level.value})"
        )
    return policy, operation


@dataclass
class PreparedCall:
    """Validated, sanitized arguments; the single input of preview and live execution."""
    operation: Operation
    table_schema: str
    table_name: str
    qualified_name: str
    excluded: set[str]
    # Allowed minus excluded; None when the policy has no allow-list
    columns: list[str] | None = None
    filters: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)
    select: list[str] | None = None
    limit: int | None = None
    order_by: tuple[str, bool] | None = None


def _mapping(args: dict[str, Any], key: str) -> dict[str, Any]:
    value = args.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ToolValidationError(f"'{key}' must be an object")
    return value


def _clean_filters(policy: AccessPolicy, raw: dict[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in raw.items():
        if not isinstance(value, _SCALAR):
            raise ToolValidationError(f"Filter '{key}' must be a scalar value")
        if not is_visible(policy, key):
            logger.warning(
                "Filter column %r is not permitted on %s, skipping", key, policy.table_name
            )
            continue
        cleaned[key] = value
    return cleaned


def _clean_data(policy: AccessPolicy, raw: dict[str, Any]) -> dict[str, Any]:
    stripped = [k for k in raw if not is_visible(policy, k)]
    if stripped:
        logger.debug("Stripped columns %s from %s payload", stripped, policy.table_name)
    return {k: v for k, v in raw.items() if is_visible(policy, k)}


def _clean_limit(policy: AccessPolicy, raw: Any) -> int:
    if raw is None:
        requested = settings.default_query_limit
    elif isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
        raise ToolValidationError("'limit' must be a positive integer")
    else:
        requested = raw
    return min(requested, policy.max_rows_per_query)


def _clean_order(policy: AccessPolicy, raw: Any) -> tuple[str, bool] | None:
    if raw is None or raw == "":
        return None
    if not isinstance(raw, str):
        raise ToolValidationError("'order_by' must be a string")
    parts = raw.split()
    if len(parts) > 2 or (len(parts) == 2 and parts[1].lower() not in ("asc", "desc")):
        raise ToolValidationError('\'order_by\' must look like "column asc" or "column desc"')
    column = parts[0]
    if not is_visible(policy, column):
        logger.warning("Order column %r is not permitted on %s, skipping", column, policy.table_name)
        return None
    return column, len(parts) == 2 and parts[1].lower() == "desc"


def _clean_select(policy: AccessPolicy, raw: Any) -> list[str] | None:
    if raw is None:
        return effective_columns(policy)
    if not isinstance(raw, list) or not all(isinstance(c, str) for c in raw):
        raise ToolValidationError("'select' must be a list of column names")
    for column in raw:
        if not is_visible(policy, column):
            raise ToolValidationError(
                f"Column '{column}' is not readable on '{policy.table_name}'"
            )
    return list(raw) or effective_columns(policy)


def prepare_call(policy: AccessPolicy, operation: Operation, args: dict[str, Any]) -> PreparedCall:
    """Validate ``args`` for ``operation`` and strip every non-permitted column.

    Raises ToolValidationError before anything touches the store.
    """
    if not isinstance(args, dict):
        raise ToolValidationError("Tool arguments must be an object")

    call = PreparedCall(
        operation=operation,
        table_schema=policy.table_schema,
        table_name=policy.table_name,
        qualified_name=policy.qualified_name,
        excluded=_excluded(policy),
        columns=effective_columns(policy),
    )

    if operation is Operation.QUERY:
        call.filters = _clean_filters(policy, _mapping(args, "filters"))
        call.select = _clean_select(policy, args.get("select"))
        call.limit = _clean_limit(policy, args.get("limit"))
        call.order_by = _clean_order(policy, args.get("order_by"))
        return call

    if operation is Operation.DELETE and args.get("confirm") is not True:
        raise ToolValidationError("Delete requires confirm: true")

    if operation in (Operation.UPDATE, Operation.DELETE):
        raw_filters = _mapping(args, "filters")
        if not raw_filters:
            raise ToolValidationError(
                f"{operation.value.capitalize()} requires at least one filter"
            )
        call.filters = _clean_filters(policy, raw_filters)
        if not call.filters:
            raise ToolValidationError(
                f"{operation.value.capitalize()} requires at least one filter on a permitted column"
            )

    if operation in (Operation.INSERT, Operation.UPDATE):
        call.data = _clean_data(policy, _mapping(args, "data"))
        if not call.data:
            raise ToolValidationError(
                f"{operation.value.capitalize()} requires data for at least one writable column"
            )

    return call
