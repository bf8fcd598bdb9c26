"""
STATEMENT BUILDER - Turn validated action payloads into parameterized SQL

Purpose:
    Build the SQL text and the ordered bind values for every action,
    without touching the store.

Rules:
    - Values always travel as ``?`` bind parameters.
    - Only identifiers that already passed the registry are interpolated
      (table names, whitelisted columns, derived index names).
    - Any key outside the whitelist rejects the whole payload.

Data Flow:
    payload → split_query_options() / whitelist checks → Statement(s)
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from rowgate.core import registry
from rowgate.core.errors import PayloadValidationError


@dataclass(frozen=True)
class Statement:
    """SQL text with positional placeholders and the values to bind."""

    text: str
    bound_values: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class DeletePlan:
    statement: Statement
    # True when no filter was given and every row goes
    wildcard: bool = False


@dataclass(frozen=True)
class SelectPlan:
    statement: Statement
    order_by: str = registry.IDENTITY_COLUMN
    descending: bool = False
    limit: int = registry.DEFAULT_LIMIT


SCALAR_TYPES = (str, int, float, bool, type(None))

# Identifiers exec may never reference, checked on the lowercased text
INTERNAL_MARKERS = ("sqlite_", "_cf_", "d1_migrations")


# ============================================================================
# HELPERS
# ============================================================================


def _record_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Everything in the payload except the table name."""
    return {k: v for k, v in payload.items() if k != registry.TABLE_NAME_KEY}


def _require_columns(keys, writable: bool = False) -> None:
    bad = registry.invalid_columns(keys, writable=writable)
    if bad:
        raise PayloadValidationError(f"Invalid columns: {', '.join(map(str, bad))}")


def _require_scalars(values: Dict[str, Any]) -> None:
    for key, value in values.items():
        if not isinstance(value, SCALAR_TYPES):
            raise PayloadValidationError(f"Column '{key}' must be a scalar value")


def _where(filters: Dict[str, Any]) -> Tuple[List[str], List[Any]]:
    conditions = [f"{column} = ?" for column in filters]
    return conditions, list(filters.values())


def _as_int(value: Any) -> Optional[int]:
    """Accept ints and digit strings; bools and floats are not identities."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r"-?[0-9]+", value.strip()):
        return int(value.strip())
    return None


# ============================================================================
# TABLES
# ============================================================================


def build_create_table(table: str, c1_unique: bool = False) -> List[Statement]:
    """
    Build the statements that create a table with the shared column layout.

    All of them are meant to run as one batch.

    Example:
        build_create_table("notes", c1_unique=True)
        -> [CREATE TABLE IF NOT EXISTS notes (...c1 TEXT UNIQUE...),
            CREATE INDEX IF NOT EXISTS idx_notes_v2 ON notes(v2)]
    """
    column_defs = [f"{registry.IDENTITY_COLUMN} INTEGER PRIMARY KEY AUTOINCREMENT"]
    for column, sql_type in registry.COLUMN_TYPES.items():
        definition = f"{column} {sql_type}"
        if column == "c1" and c1_unique:
            definition += " UNIQUE"
        if column == registry.LAST_MODIFIED_COLUMN:
            definition += " DEFAULT CURRENT_TIMESTAMP"
        column_defs.append(definition)

    statements = [
        Statement(f"CREATE TABLE IF NOT EXISTS {table} ({', '.join(column_defs)})")
    ]
    if not c1_unique:
        statements.append(build_create_index(table, "c1"))
    statements.append(build_create_index(table, registry.LAST_MODIFIED_COLUMN))
    return statements


def build_drop_table(table: str) -> Statement:
    return Statement(f"DROP TABLE IF EXISTS {table}")


def build_list_tables() -> Statement:
    return Statement(
        "SELECT name FROM sqlite_master WHERE type = 'table' "
        "AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\' "
        "AND name NOT LIKE '\\_cf\\_%' ESCAPE '\\' "
        "ORDER BY name"
    )


# ============================================================================
# INDICES
# ============================================================================


def build_create_index(table: str, column: Any, unique: bool = False) -> Statement:
    if not registry.is_allowed_column(column):
        raise PayloadValidationError(f"Invalid index column: {column}")

    keyword = "UNIQUE INDEX" if unique else "INDEX"
    name = registry.index_name(table, column)
    return Statement(f"CREATE {keyword} IF NOT EXISTS {name} ON {table}({column})")


def build_drop_index(table: str, column: Any) -> Statement:
    if not registry.is_allowed_column(column):
        raise PayloadValidationError(f"Invalid index column: {column}")
    return Statement(f"DROP INDEX IF EXISTS {registry.index_name(table, column)}")


def build_list_indices(table: str) -> Statement:
    return Statement(f'PRAGMA index_list("{table}")')


# ============================================================================
# WRITES
# ============================================================================


def build_insert(table: str, record: Dict[str, Any]) -> Statement:
    """
    Build an INSERT for one record.

    Every key must be a writable column. An empty record inserts a row
    of defaults.
    """
    fields = _record_fields(record)
    _require_columns(fields, writable=True)
    _require_scalars(fields)

    if not fields:
        return Statement(f"INSERT INTO {table} DEFAULT VALUES")

    columns = ", ".join(fields)
    placeholders = ", ".join("?" for _ in fields)
    return Statement(
        f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
        tuple(fields.values()),
    )


def build_batch_insert(table: str, records: Any) -> List[Statement]:
    """
    Build one INSERT per record.

    All records are validated before anything is returned, so one bad
    record rejects the whole batch.
    """
    if not isinstance(records, list) or not records:
        raise PayloadValidationError("'records' must be a non-empty list")

    statements = []
    for position, record in enumerate(records):
        if not isinstance(record, dict):
            raise PayloadValidationError(f"Record {position} is not an object")
        try:
            statements.append(build_insert(table, record))
        except PayloadValidationError as error:
            raise PayloadValidationError(f"Record {position}: {error.message}")
    return statements


def build_update(table: str, payload: Dict[str, Any]) -> Statement:
    """
    Build an UPDATE keyed by ``id``.

    The last-modified column is always refreshed. With no other field the
    statement is a plain touch.
    """
    if "id" not in payload or payload["id"] in (None, ""):
        raise PayloadValidationError("Missing 'id' for update")

    row_id = _as_int(payload["id"])
    if row_id is None:
        raise PayloadValidationError("'id' must be an integer")

    fields = {
        k: v for k, v in _record_fields(payload).items() if k != registry.IDENTITY_COLUMN
    }
    _require_columns(fields, writable=True)
    _require_scalars(fields)

    # The refresh below wins over a caller-supplied last-modified value
    fields.pop(registry.LAST_MODIFIED_COLUMN, None)

    assignments = [f"{column} = ?" for column in fields]
    assignments.append(f"{registry.LAST_MODIFIED_COLUMN} = CURRENT_TIMESTAMP")
    return Statement(
        f"UPDATE {table} SET {', '.join(assignments)} WHERE {registry.IDENTITY_COLUMN} = ?",
        (*fields.values(), row_id),
    )


def build_delete(table: str, payload: Dict[str, Any]) -> DeletePlan:
    filters = _record_fields(payload)
    _require_columns(filters)
    _require_scalars(filters)

    if not filters:
        return DeletePlan(Statement(f"DELETE FROM {table}"), wildcard=True)

    conditions, values = _where(filters)
    return DeletePlan(
        Statement(f"DELETE FROM {table} WHERE {' AND '.join(conditions)}", tuple(values))
    )


# ============================================================================
# READS
# ============================================================================


def split_query_options(payload: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Partition a get payload into column filters and query options.

    Any key that is not a query option is a column filter.
    """
    filters: Dict[str, Any] = {}
    options: Dict[str, Any] = {}
    for key, value in _record_fields(payload).items():
        if registry.is_allowed_query_option(key):
            options[key] = value
        else:
            filters[key] = value
    return filters, options


def normalize_limit(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return registry.DEFAULT_LIMIT
    return min(value, registry.MAX_LIMIT)


def _non_negative_int(name: str, value: Any) -> int:
    number = _as_int(value)
    if number is None or number < 0:
        raise PayloadValidationError(f"'{name}' must be a non-negative integer")
    return number


def build_select(table: str, payload: Dict[str, Any]) -> SelectPlan:
    """
    Build a paginated SELECT.

    Args:
        table: Resolved table name.
        payload: Column filters mixed with query options
            (order, orderby, limit, offset, minId).

    Returns:
        SelectPlan with the statement and the effective ordering/limit.

    Example:
        build_select("notes", {"c1": "x", "orderby": "i1", "order": "desc", "minId": 40})
        -> SELECT * FROM notes WHERE c1 = ? AND i1 < ? ORDER BY i1 DESC LIMIT ?
           bound: ("x", 40, 100)
    """
    filters, options = split_query_options(payload)

    if "minId" in options and "offset" in options:
        raise PayloadValidationError("'minId' and 'offset' cannot be combined")

    _require_columns(filters)
    _require_scalars(filters)

    order_by = options.get("orderby") or registry.IDENTITY_COLUMN
    if not registry.is_allowed_column(order_by):
        raise PayloadValidationError(f"Invalid orderby column: {order_by}")

    direction = options.get("order")
    descending = isinstance(direction, str) and direction.strip().lower() == "desc"
    limit = normalize_limit(options.get("limit"))

    conditions, values = _where(filters)
    # Both cursors are exclusive bounds on the sort column
    cursor = "minId" if "minId" in options else "offset" if "offset" in options else None
    if cursor:
        bound = _non_negative_int(cursor, options[cursor])
        conditions.append(f"{order_by} {'<' if descending else '>'} ?")
        values.append(bound)

    sql = f"SELECT * FROM {table}"
    if conditions:
        sql += f" WHERE {' AND '.join(conditions)}"
    sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'} LIMIT ?"
    values.append(limit)

    return SelectPlan(
        Statement(sql, tuple(values)),
        order_by=order_by,
        descending=descending,
        limit=limit,
    )


# ============================================================================
# RAW SQL
# ============================================================================


def references_internal_table(sql: str) -> bool:
    flattened = re.sub(r"\s+", "", sql.lower())
    return any(marker in flattened for marker in INTERNAL_MARKERS)


def build_exec(payload: Dict[str, Any]) -> Statement:
    """
    Accept caller-written SQL with its bind parameters.

    The column whitelist does not apply here; the statement is refused
    outright when it mentions the storage engine's own tables.
    """
    sql = payload.get("sql")
    if not isinstance(sql, str) or not sql.strip():
        raise PayloadValidationError("Missing 'sql' for exec")

    if references_internal_table(sql):
        raise PayloadValidationError("Access to internal tables is not allowed")

    params = payload.get("params", [])
    if params is None:
        params = []
    if not isinstance(params, list):
        raise PayloadValidationError("'params' must be a list")
    if not all(isinstance(p, SCALAR_TYPES) for p in params):
        raise PayloadValidationError("'params' may only contain scalar values")

    return Statement(sql.strip(), tuple(params))
