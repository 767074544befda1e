import logging
from typing import Annotated
from fastapi import APIRouter, Depends
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from diocese_backend.api.exceptions import BadRequestException, ForbiddenException
from diocese_backend.api.queries import get_query_engine
from diocese_backend.interface.chats import QueryRequest, QueryValidation
from diocese_backend.permissions.auth import require_identity
from diocese_backend.permissions.principal import Identity
from diocese_backend.services.sql_runner import (
    explain_query,
    foreign_keys,
    index_usage,
    list_indexes,
    list_tables,
    prepare_query,
    table_stats,
    validate_query,
)

logger = logging.getLogger(__name__)

schema_router = APIRouter()


def _require_super_admin(identity: Identity, operation: str):
    if not identity.is_super_admin:
        raise ForbiddenException(detail={"entity": "schema", "operation": operation})


@schema_router.get("/tables")
def get_tables(identity: Annotated[Identity, Depends(require_identity)], engine: Engine = Depends(get_query_engine)):
    return list_tables(engine)


@schema_router.get("/indexes")
def get_indexes(identity: Annotated[Identity, Depends(require_identity)], engine: Engine = Depends(get_query_engine)):
    return list_indexes(engine)


@schema_router.get("/foreign-keys")
def get_foreign_keys(identity: Annotated[Identity, Depends(require_identity)], engine: Engine = Depends(get_query_engine)):
    return foreign_keys(engine)


@schema_router.get("/table-stats")
def get_table_stats(identity: Annotated[Identity, Depends(require_identity)], engine: Engine = Depends(get_query_engine)):
    """Row counts across every diocese, so only super admins may see them"""
    _require_super_admin(identity, "table-stats")
    return table_stats(engine)


@schema_router.get("/index-usage")
def get_index_usage(identity: Annotated[Identity, Depends(require_identity)], engine: Engine = Depends(get_query_engine)):
    _require_super_admin(identity, "index-usage")
    return index_usage(engine)


@schema_router.post("/explain")
def explain(
    payload: QueryRequest,
    identity: Annotated[Identity, Depends(require_identity)],
    engine: Engine = Depends(get_query_engine)
):
    """Execution plan of the caller's statement after their access filters are applied"""

    prepared = prepare_query(payload.sql, identity)
    if prepared.error is not None:
        raise BadRequestException(prepared.error)

    try:
        plan = explain_query(prepared.sql, engine)
    except SQLAlchemyError as e:
        logger.info(f"EXPLAIN failed for user {identity.id}: {e}")
        raise BadRequestException(f"Error running EXPLAIN: {getattr(e, 'orig', None) or e}")

    return {"sql": prepared.sql, "plan": plan}


@schema_router.post("/validate", response_model=QueryValidation)
def validate(
    payload: QueryRequest,
    identity: Annotated[Identity, Depends(require_identity)],
    engine: Engine = Depends(get_query_engine)
):
    return validate_query(payload.sql, identity, engine)
