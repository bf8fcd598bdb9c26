from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import event
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from rowgate.core.config import settings
from rowgate.core.statements import Statement, build_list_indices


@dataclass
class RunResult:
    changes: int = 0
    last_row_id: Optional[int] = None


@dataclass
class QueryResult:
    results: List[Dict[str, Any]] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)


def create_store_engine(url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    """
    Create the async engine behind the store.

    On SQLite the driver's implicit transaction handling is switched off and
    every transaction starts with an explicit BEGIN, so DDL inside a batch is
    rolled back together with the rest.
    """
    engine = create_async_engine(url, echo=echo, **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def do_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def do_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


engine = create_store_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)


def _run_result(result: CursorResult) -> RunResult:
    # DDL reports -1
    changes = result.rowcount if result.rowcount and result.rowcount > 0 else 0
    return RunResult(changes=changes, last_row_id=result.lastrowid)


async def _execute(conn: AsyncConnection, sql: str, values: Sequence[Any]) -> CursorResult:
    return await conn.exec_driver_sql(sql, tuple(values))


class PreparedStatement:
    """A statement text plus bound values, executed on demand."""

    def __init__(self, store: "Store", sql: str, values: Sequence[Any] = ()):
        self.store = store
        self.sql = sql
        self.values = tuple(values)

    def bind(self, *values) -> "PreparedStatement":
        return PreparedStatement(self.store, self.sql, values)

    async def run(self) -> RunResult:
        """Execute a mutation and report the change count."""
        async with self.store.engine.begin() as conn:
            result = await _execute(conn, self.sql, self.values)
            return _run_result(result)

    async def all(self) -> QueryResult:
        """Execute a query and return every row as a dict."""
        async with self.store.engine.begin() as conn:
            result = await _execute(conn, self.sql, self.values)
            rows = [dict(row) for row in result.mappings()] if result.returns_rows else []
            run = _run_result(result)
            return QueryResult(
                results=rows,
                meta={
                    "changes": 0 if result.returns_rows else run.changes,
                    "last_row_id": run.last_row_id,
                    "rows_read": len(rows),
                },
            )


class Store:
    """
    Prepared-statement interface over the engine.

    Each call runs in its own transaction; ``batch`` runs every statement
    on one connection so they commit or roll back together.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    def prepare(self, sql: str) -> PreparedStatement:
        return PreparedStatement(self, sql)

    def prepare_bound(self, statement: Statement) -> PreparedStatement:
        return self.prepare(statement.text).bind(*statement.bound_values)

    async def batch(self, statements: Sequence[PreparedStatement]) -> List[RunResult]:
        results = []
        async with self.engine.begin() as conn:
            for statement in statements:
                result = await _execute(conn, statement.sql, statement.values)
                results.append(_run_result(result))
        return results

    async def index_list(self, table: str) -> List[Dict[str, Any]]:
        """PRAGMA-style index listing; ``table`` must already be validated."""
        statement = build_list_indices(table)
        query = await self.prepare(statement.text).all()
        return query.results


# The "Bridge" that gives the routes access to the store
async def get_store():
    yield Store(engine)
