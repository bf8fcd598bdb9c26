import pytest

from rowgate.core import statements
from rowgate.core.errors import PayloadValidationError


# =========================
# Tables and indices
# =========================
def test_create_table_with_unique_c1():
    """Unique c1 goes into the table definition, v2 still gets an index"""
    batch = statements.build_create_table("notes", c1_unique=True)

    assert len(batch) == 2
    assert batch[0].text.startswith("CREATE TABLE IF NOT EXISTS notes (")
    assert "id INTEGER PRIMARY KEY AUTOINCREMENT" in batch[0].text
    assert "c1 TEXT UNIQUE" in batch[0].text
    assert "v2 TIMESTAMP DEFAULT CURRENT_TIMESTAMP" in batch[0].text
    assert batch[1].text == "CREATE INDEX IF NOT EXISTS idx_notes_v2 ON notes(v2)"


def test_create_table_indexes_c1_when_not_unique():
    """Non-unique c1 gets its own plain index"""
    batch = statements.build_create_table("notes")

    assert len(batch) == 3
    assert "UNIQUE" not in batch[0].text
    assert batch[1].text == "CREATE INDEX IF NOT EXISTS idx_notes_c1 ON notes(c1)"
    assert batch[2].text == "CREATE INDEX IF NOT EXISTS idx_notes_v2 ON notes(v2)"


def test_drop_table_is_idempotent_sql():
    """Dropping uses IF EXISTS"""
    assert statements.build_drop_table("notes").text == "DROP TABLE IF EXISTS notes"


def test_list_tables_hides_internal_tables():
    """Catalog query filters out engine-internal names"""
    text = statements.build_list_tables().text
    assert "type = 'table'" in text
    assert "NOT LIKE 'sqlite\\_%'" in text
    assert "NOT LIKE '\\_cf\\_%'" in text


def test_create_unique_index():
    """Unique index uses the idx_<table>_<column> name"""
    statement = statements.build_create_index("notes", "i1", unique=True)
    assert statement.text == "CREATE UNIQUE INDEX IF NOT EXISTS idx_notes_i1 ON notes(i1)"


def test_index_column_must_be_whitelisted():
    """Index actions reject columns outside the whitelist"""
    with pytest.raises(PayloadValidationError):
        statements.build_create_index("notes", "name")
    with pytest.raises(PayloadValidationError):
        statements.build_drop_index("notes", None)


def test_drop_index():
    """Dropping an index uses the derived name and IF EXISTS"""
    assert statements.build_drop_index("notes", "d2").text == "DROP INDEX IF EXISTS idx_notes_d2"


# =========================
# Inserts
# =========================
def test_insert_binds_values_in_order():
    """Insert binds values in payload order"""
    statement = statements.build_insert(
        "notes", {"table_name": "notes", "c1": "a", "i1": 3, "d1": 1.5}
    )
    assert statement.text == "INSERT INTO notes (c1, i1, d1) VALUES (?, ?, ?)"
    assert statement.bound_values == ("a", 3, 1.5)


def test_insert_without_fields_uses_defaults():
    """Empty record inserts a row of defaults"""
    statement = statements.build_insert("notes", {"table_name": "notes"})
    assert statement.text == "INSERT INTO notes DEFAULT VALUES"
    assert statement.bound_values == ()


@pytest.mark.parametrize(
    "record",
    [{"c1": "a", "name": "x"}, {"id": 5}, {"c1": {"nested": True}}, {"i1": [1, 2]}],
)
def test_insert_rejects_bad_records(record):
    """Unknown keys, the identity column and non-scalars are rejected"""
    with pytest.raises(PayloadValidationError):
        statements.build_insert("notes", record)


def test_batch_insert_is_all_or_nothing():
    """One bad record rejects the whole batch"""
    records = [{"c1": "a"}, {"c1": "b"}, {"c1": "c", "oops": 1}]
    with pytest.raises(PayloadValidationError) as exc:
        statements.build_batch_insert("notes", records)
    assert "Record 2" in exc.value.message


def test_batch_insert_builds_one_statement_per_record():
    """Each record becomes its own INSERT"""
    batch = statements.build_batch_insert("notes", [{"c1": "a"}, {"i2": 2}])
    assert [s.text for s in batch] == [
        "INSERT INTO notes (c1) VALUES (?)",
        "INSERT INTO notes (i2) VALUES (?)",
    ]


@pytest.mark.parametrize("records", [None, [], {"c1": "a"}, ["x"]])
def test_batch_insert_rejects_bad_shapes(records):
    """Records must be a non-empty list of objects"""
    with pytest.raises(PayloadValidationError):
        statements.build_batch_insert("notes", records)


# =========================
# Updates
# =========================
def test_update_without_fields_is_a_touch():
    """Update with only id refreshes v2"""
    statement = statements.build_update("notes", {"table_name": "notes", "id": 7})
    assert statement.text == "UPDATE notes SET v2 = CURRENT_TIMESTAMP WHERE id = ?"
    assert statement.bound_values == (7,)


def test_update_sets_fields_and_refreshes_last_modified():
    """Supplied fields are set and v2 is refreshed"""
    statement = statements.build_update("notes", {"id": "7", "c1": "a", "i1": 3})
    assert statement.text == (
        "UPDATE notes SET c1 = ?, i1 = ?, v2 = CURRENT_TIMESTAMP WHERE id = ?"
    )
    assert statement.bound_values == ("a", 3, 7)


def test_update_ignores_caller_last_modified():
    """Caller-supplied v2 is replaced by the refresh"""
    statement = statements.build_update("notes", {"id": 1, "v2": "2000-01-01"})
    assert statement.text == "UPDATE notes SET v2 = CURRENT_TIMESTAMP WHERE id = ?"


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"id": None},
        {"id": ""},
        {"id": True},
        {"id": 1.5},
        {"id": "abc"},
        {"id": "--5"},
        {"id": "²"},
        {"id": "1_000"},
    ],
)
def test_update_requires_integer_id(payload):
    """Missing or non-integer id is a validation error"""
    with pytest.raises(PayloadValidationError):
        statements.build_update("notes", payload)


def test_update_rejects_unknown_columns():
    """Update rejects keys outside the whitelist"""
    with pytest.raises(PayloadValidationError):
        statements.build_update("notes", {"id": 1, "c1": "a", "colour": "red"})


# =========================
# Deletes
# =========================
def test_delete_with_filters():
    """Delete builds equality conditions from every key"""
    plan = statements.build_delete("notes", {"table_name": "notes", "c1": "a", "id": 3})
    assert not plan.wildcard
    assert plan.statement.text == "DELETE FROM notes WHERE c1 = ? AND id = ?"
    assert plan.statement.bound_values == ("a", 3)


def test_delete_without_filters_is_flagged():
    """Delete with no filters is marked as a wildcard"""
    plan = statements.build_delete("notes", {"table_name": "notes"})
    assert plan.wildcard
    assert plan.statement.text == "DELETE FROM notes"


def test_delete_rejects_unknown_columns():
    """Query options are not valid delete filters"""
    with pytest.raises(PayloadValidationError):
        statements.build_delete("notes", {"c1": "a", "limit": 5})


# =========================
# Selects
# =========================
def test_split_query_options():
    """Non-option keys are treated as column filters"""
    filters, options = statements.split_query_options(
        {"table_name": "notes", "c1": "a", "limit": 5, "minId": 2, "bogus": 1}
    )
    assert filters == {"c1": "a", "bogus": 1}
    assert options == {"limit": 5, "minId": 2}


def test_select_defaults():
    """Default ordering is id ascending with limit 100"""
    plan = statements.build_select("notes", {"table_name": "notes"})
    assert plan.statement.text == "SELECT * FROM notes ORDER BY id ASC LIMIT ?"
    assert plan.statement.bound_values == (100,)


def test_select_filters_keyset_and_descending_order():
    """minId becomes an exclusive upper bound when descending"""
    plan = statements.build_select(
        "notes", {"c1": "x", "orderby": "i1", "order": "DESC", "minId": 40}
    )
    assert plan.statement.text == (
        "SELECT * FROM notes WHERE c1 = ? AND i1 < ? ORDER BY i1 DESC LIMIT ?"
    )
    assert plan.statement.bound_values == ("x", 40, 100)
    assert plan.descending


def test_select_ascending_keyset():
    """Unknown order values fall back to ascending"""
    plan = statements.build_select("notes", {"minId": 10, "order": "sideways"})
    assert plan.statement.text == "SELECT * FROM notes WHERE id > ? ORDER BY id ASC LIMIT ?"
    assert plan.statement.bound_values == (10, 100)


def test_select_offset_is_an_exclusive_bound():
    """offset bounds the sort column the same way minId does"""
    plan = statements.build_select("notes", {"offset": 20, "limit": 10})
    assert plan.statement.text == "SELECT * FROM notes WHERE id > ? ORDER BY id ASC LIMIT ?"
    assert plan.statement.bound_values == (20, 10)
    assert "OFFSET" not in plan.statement.text


def test_select_offset_descending():
    """offset on a descending sort bounds from above"""
    plan = statements.build_select("notes", {"offset": "5", "orderby": "i2", "order": "desc"})
    assert plan.statement.text == "SELECT * FROM notes WHERE i2 < ? ORDER BY i2 DESC LIMIT ?"
    assert plan.statement.bound_values == (5, 100)


def test_select_rejects_min_id_with_offset():
    """minId and offset together are a validation error"""
    with pytest.raises(PayloadValidationError):
        statements.build_select("notes", {"minId": 1, "offset": 1})


@pytest.mark.parametrize(
    "payload",
    [
        {"name": "x"},
        {"orderby": "name"},
        {"orderby": "c1; DROP TABLE notes"},
        {"offset": -1},
        {"offset": "--1"},
        {"minId": "abc"},
        {"minId": "--1"},
        {"minId": "²"},
        {"c1": ["a", "b"]},
    ],
)
def test_select_rejects_bad_payloads(payload):
    """Bad filters, sort columns and cursors are validation errors"""
    with pytest.raises(PayloadValidationError):
        statements.build_select("notes", payload)


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, 100),
        (10, 10),
        (500, 500),
        (10000, 500),
        (0, 100),
        (-5, 100),
        (2.5, 100),
        ("10", 100),
        (True, 100),
    ],
)
def test_normalize_limit(value, expected):
    """Limit is clamped to 500 and defaults to 100"""
    assert statements.normalize_limit(value) == expected


# =========================
# Raw SQL
# =========================
def test_exec_passes_sql_and_params_through():
    """exec keeps the caller's SQL and binds its params"""
    statement = statements.build_exec({"sql": " SELECT * FROM notes WHERE i1 = ? ", "params": [3]})
    assert statement.text == "SELECT * FROM notes WHERE i1 = ?"
    assert statement.bound_values == (3,)


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * FROM sqlite_master",
        "select name from SQLITE_MASTER",
        "SELECT * FROM   Sqlite_Schema  ",
        "SELECT * FROM sqlite_ master",
        "DELETE FROM _cf_KV",
        "select * from\n\tsqlite_sequence",
        "SELECT * FROM D1_MIGRATIONS",
    ],
)
def test_exec_blocks_internal_tables(sql):
    """exec refuses statements that reference internal tables"""
    with pytest.raises(PayloadValidationError):
        statements.build_exec({"sql": sql})


@pytest.mark.parametrize(
    "payload",
    [{}, {"sql": ""}, {"sql": "   "}, {"sql": "SELECT 1", "params": "x"}, {"sql": "SELECT ?", "params": [{"a": 1}]}],
)
def test_exec_rejects_bad_payloads(payload):
    """exec needs SQL text and a list of scalar params"""
    with pytest.raises(PayloadValidationError):
        statements.build_exec(payload)
