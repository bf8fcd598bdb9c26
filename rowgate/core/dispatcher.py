"""
DISPATCHER MODULE - Route actions to handlers

Purpose:
    1. Resolve the target table
    2. Validate the payload (through the statement builder)
    3. Execute against the store
    4. Normalize the outcome into a DispatchResult

Any failure short-circuits into a DispatchResult carrying a GatewayError;
nothing raised by the store escapes this module.

Data Flow:
    action + payload → ACTIONS[action] → statements → Store → DispatchResult
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from rowgate.core import registry, statements
from rowgate.core.config import Settings
from rowgate.core.database import Store
from rowgate.core.errors import (
    GatewayError,
    MalformedRequestError,
    NotFoundError,
    PayloadValidationError,
    StoreError,
    UnknownActionError,
)
from rowgate.core.log_delegate import ErrorDelegate

logger = logging.getLogger(__name__)


class DispatchStage(Enum):
    """How far a request got before it finished."""

    RECEIVED = "received"
    TABLE_RESOLVED = "table_resolved"
    VALIDATED = "validated"
    EXECUTED = "executed"
    NORMALIZED = "normalized"


@dataclass
class RequestContext:
    """Everything a handler needs for one request. Never shared."""

    store: Store
    delegate: ErrorDelegate
    settings: Settings
    request_id: str = "unknown"
    stage: DispatchStage = DispatchStage.RECEIVED

    def advance(self, stage: DispatchStage):
        self.stage = stage


@dataclass
class DispatchResult:
    stage: DispatchStage
    payload: Dict[str, Any] = field(default_factory=dict)
    error: Optional[GatewayError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


Handler = Callable[[RequestContext, Optional[str], Dict[str, Any]], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class ActionSpec:
    handler: Handler
    requires_table: bool = True


ACTIONS: Dict[str, ActionSpec] = {}


def action(name: str, requires_table: bool = True):
    """Register a handler under an action name."""

    def register(handler: Handler) -> Handler:
        ACTIONS[name] = ActionSpec(handler=handler, requires_table=requires_table)
        return handler

    return register


# ============================================================================
# TABLE ACTIONS
# ============================================================================


@action("create_table")
async def create_table(ctx: RequestContext, table: str, payload: Dict[str, Any]):
    batch = statements.build_create_table(table, c1_unique=payload.get("c1_unique") is True)
    ctx.advance(DispatchStage.VALIDATED)

    await ctx.store.batch([ctx.store.prepare_bound(s) for s in batch])
    return {"table": table}


@action("drop_table")
async def drop_table(ctx: RequestContext, table: str, payload: Dict[str, Any]):
    statement = statements.build_drop_table(table)
    ctx.advance(DispatchStage.VALIDATED)

    await ctx.store.prepare_bound(statement).run()
    return {"table": table}


@action("list_tables", requires_table=False)
async def list_tables(ctx: RequestContext, table: Optional[str], payload: Dict[str, Any]):
    statement = statements.build_list_tables()
    ctx.advance(DispatchStage.VALIDATED)

    query = await ctx.store.prepare_bound(statement).all()
    return {"tables": [row["name"] for row in query.results]}


# ============================================================================
# INDEX ACTIONS
# ============================================================================


@action("create_index")
async def create_index(ctx: RequestContext, table: str, payload: Dict[str, Any]):
    column = payload.get("column")
    statement = statements.build_create_index(table, column, unique=payload.get("unique") is True)
    ctx.advance(DispatchStage.VALIDATED)

    await ctx.store.prepare_bound(statement).run()
    return {"table": table, "index": registry.index_name(table, column)}


@action("drop_index")
async def drop_index(ctx: RequestContext, table: str, payload: Dict[str, Any]):
    column = payload.get("column")
    statement = statements.build_drop_index(table, column)
    ctx.advance(DispatchStage.VALIDATED)

    await ctx.store.prepare_bound(statement).run()
    return {"table": table, "index": registry.index_name(table, column)}


@action("list_indices")
async def list_indices(ctx: RequestContext, table: str, payload: Dict[str, Any]):
    ctx.advance(DispatchStage.VALIDATED)

    indices = await ctx.store.index_list(table)
    return {"table": table, "indices": indices}


# ============================================================================
# ROW ACTIONS
# ============================================================================


@action("post")
async def post(ctx: RequestContext, table: str, payload: Dict[str, Any]):
    statement = statements.build_insert(table, payload)
    ctx.advance(DispatchStage.VALIDATED)

    result = await ctx.store.prepare_bound(statement).run()
    return {"changes": result.changes, "last_row_id": result.last_row_id}


@action("batch_post")
async def batch_post(ctx: RequestContext, table: str, payload: Dict[str, Any]):
    batch = statements.build_batch_insert(table, payload.get("records"))
    ctx.advance(DispatchStage.VALIDATED)

    results = await ctx.store.batch([ctx.store.prepare_bound(s) for s in batch])
    return {"inserted": sum(r.changes for r in results)}


@action("put")
async def put(ctx: RequestContext, table: str, payload: Dict[str, Any]):
    statement = statements.build_update(table, payload)
    row_id = statement.bound_values[-1]
    ctx.advance(DispatchStage.VALIDATED)

    result = await ctx.store.prepare_bound(statement).run()
    if result.changes == 0:
        raise NotFoundError(f"Record not found: id {row_id} in {table}")
    return {"id": row_id, "changes": result.changes}


@action("get")
async def get(ctx: RequestContext, table: str, payload: Dict[str, Any]):
    plan = statements.build_select(table, payload)
    ctx.advance(DispatchStage.VALIDATED)

    query = await ctx.store.prepare_bound(plan.statement).all()
    return {"results": query.results, "count": len(query.results)}


@action("delete")
async def delete(ctx: RequestContext, table: str, payload: Dict[str, Any]):
    plan = statements.build_delete(table, payload)

    if plan.wildcard:
        if not ctx.settings.ALLOW_WILDCARD_DELETE:
            raise PayloadValidationError(
                "Need at least one condition to delete (wildcard delete is disabled)"
            )
        ctx.delegate.warn(f"Wildcard delete: removing every row from {table}")
    ctx.advance(DispatchStage.VALIDATED)

    result = await ctx.store.prepare_bound(plan.statement).run()
    return {"changes": result.changes}


@action("exec", requires_table=False)
async def exec_sql(ctx: RequestContext, table: Optional[str], payload: Dict[str, Any]):
    statement = statements.build_exec(payload)
    ctx.advance(DispatchStage.VALIDATED)

    query = await ctx.store.prepare_bound(statement).all()
    return {"results": query.results, "changes": query.meta.get("changes", 0)}


# ============================================================================
# DISPATCH
# ============================================================================


def _resolve_table(spec: ActionSpec, payload: Dict[str, Any]) -> Optional[str]:
    if not spec.requires_table:
        raw = payload.get(registry.TABLE_NAME_KEY)
        if raw is None or (isinstance(raw, str) and raw.strip() in ("", registry.LIST_SENTINEL)):
            return None
        return registry.resolve_table_name(payload)

    table = registry.resolve_table_name(payload)
    if table is None:
        raise MalformedRequestError(
            f"Invalid or missing table_name: {payload.get(registry.TABLE_NAME_KEY)!r}"
        )
    return table


async def dispatch(action_name: str, payload: Dict[str, Any], ctx: RequestContext) -> DispatchResult:
    """
    Run one action end to end.

    Args:
        action_name: Name from the request envelope.
        payload: The envelope's payload object.
        ctx: Per-request context (store, delegate, settings).

    Returns:
        DispatchResult; ``error`` is set when anything failed, in which case
        ``stage`` tells how far the request got.
    """
    ctx.advance(DispatchStage.RECEIVED)
    spec = ACTIONS.get(action_name)

    try:
        if spec is None:
            raise UnknownActionError(f"Unknown action: {action_name}")

        table = _resolve_table(spec, payload)
        ctx.advance(DispatchStage.TABLE_RESOLVED)

        try:
            result = await spec.handler(ctx, table, payload)
        except GatewayError:
            raise
        except Exception as error:
            # Anything else came from the store
            raise StoreError(f"DB operation failed: {error}") from error

        ctx.advance(DispatchStage.EXECUTED)

    except GatewayError as error:
        error.request_id = ctx.request_id
        ctx.delegate.report(f"{action_name or '<none>'} failed at {ctx.stage.value}: {error.message}")
        return DispatchResult(stage=ctx.stage, error=error)

    ctx.advance(DispatchStage.NORMALIZED)
    logger.info(f"[{ctx.request_id}] {action_name} on {table or '-'} completed")
    return DispatchResult(stage=ctx.stage, payload=result)
