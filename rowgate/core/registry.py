import re
from typing import Any, Dict, Iterable, List, Optional


# =========================
# Columns
# =========================
# Every table shares this layout:
#   c* short text, i* integer, d* real, t* long text, v* timestamp
IDENTITY_COLUMN = "id"
LAST_MODIFIED_COLUMN = "v2"

COLUMN_TYPES: Dict[str, str] = {
    "c1": "TEXT",
    "c2": "TEXT",
    "c3": "TEXT",
    "i1": "INTEGER",
    "i2": "INTEGER",
    "i3": "INTEGER",
    "d1": "REAL",
    "d2": "REAL",
    "d3": "REAL",
    "t1": "TEXT",
    "t2": "TEXT",
    "t3": "TEXT",
    "v1": "TIMESTAMP",
    "v2": "TIMESTAMP",
    "v3": "TIMESTAMP",
}

DATA_COLUMNS = frozenset(COLUMN_TYPES)
ALLOWED_COLUMNS = DATA_COLUMNS | {IDENTITY_COLUMN}


# =========================
# Query options
# =========================
QUERY_OPTIONS = frozenset({"order", "orderby", "limit", "offset", "minId"})

DEFAULT_LIMIT = 100
MAX_LIMIT = 500


# =========================
# Table names
# =========================
TABLE_NAME_KEY = "table_name"
LIST_SENTINEL = "*"

FORBIDDEN_TABLE_NAMES = frozenset(
    {
        "sqlite_master",
        "sqlite_schema",
        "sqlite_temp_master",
        "sqlite_temp_schema",
        "sqlite_sequence",
        "sqlite_stat1",
        "sqlite_stat4",
        "_cf_kv",
        "_cf_metadata",
        "d1_migrations",
    }
)
RESERVED_PREFIXES = ("sqlite_", "_cf_")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_allowed_column(name: Any, writable: bool = False) -> bool:
    """
    Check a payload key against the column whitelist.

    The identity column can be filtered and sorted on but never written,
    so ``writable=True`` narrows the check to the data columns.
    """
    if not isinstance(name, str):
        return False
    if writable:
        return name in DATA_COLUMNS
    return name in ALLOWED_COLUMNS


def invalid_columns(keys: Iterable[str], writable: bool = False) -> List[str]:
    """Return the keys that fail the whitelist, in the order given."""
    return [key for key in keys if not is_allowed_column(key, writable=writable)]


def is_allowed_query_option(name: Any) -> bool:
    return name in QUERY_OPTIONS


def is_forbidden_table_name(name: str) -> bool:
    lowered = name.strip().lower()
    return lowered in FORBIDDEN_TABLE_NAMES or lowered.startswith(RESERVED_PREFIXES)


def resolve_table_name(payload: Dict[str, Any]) -> Optional[str]:
    """
    Resolve and validate ``payload["table_name"]``.

    Returns the trimmed name, or None when it is missing, blank, not a plain
    identifier or one of the storage engine's own tables. Nothing that
    interpolates a table name into SQL may run before this passes.
    """
    raw = payload.get(TABLE_NAME_KEY)
    if not isinstance(raw, str):
        return None

    name = raw.strip()
    if not name or not _IDENTIFIER.match(name):
        return None
    if is_forbidden_table_name(name):
        return None
    return name


def index_name(table: str, column: str) -> str:
    # Canonical naming: single underscore between table and column
    return f"idx_{table}_{column}"
