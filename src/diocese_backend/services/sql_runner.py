"""
Execution of generated SQL against the reporting database.

Every statement passes three gates before it reaches the database: the
forbidden operation check, constraint injection for the caller's identity,
and a verification that the required filters are present afterwards.
"""

import logging
import re
import threading
from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from diocese_backend.interface.chats import QueryResult, QueryValidation
from diocese_backend.permissions.principal import Identity, derive_constraints
from diocese_backend.permissions.query_constraints import PROTECTED_TABLES, forbidden_operation, inject_constraints, missing_filters
from diocese_backend.references import STUDENT_ROLE, TEACHER_ROLE

logger = logging.getLogger(__name__)

MAX_CACHED_ENGINES = 8

_engines: "OrderedDict[str, Engine]" = OrderedDict()
_engines_lock = threading.Lock()


def engine_for(connection_string: str) -> Engine:
    """Cached engine for a caller supplied connection string, least recently used engines are disposed"""
    with _engines_lock:
        engine = _engines.get(connection_string)
        if engine is not None:
            _engines.move_to_end(connection_string)
            return engine

        engine = create_engine(connection_string, pool_pre_ping=True)
        _engines[connection_string] = engine

        while len(_engines) > MAX_CACHED_ENGINES:
            _, evicted = _engines.popitem(last=False)
            logger.info(f"Disposing cached engine for {evicted.url.render_as_string(hide_password=True)}")
            evicted.dispose()

        return engine


def _plain(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, bytes):
        return value.hex()
    return value


def prepare_query(sql: str, identity: Optional[Identity]) -> QueryResult:
    """Apply the guards and constraints without executing anything."""

    operation = forbidden_operation(sql)
    if operation is not None:
        return QueryResult(sql=sql, error=f"This action is not allowed {operation}")

    constraint = derive_constraints(identity)
    constrained = inject_constraints(sql, constraint)

    missing = missing_filters(constrained, constraint)
    if missing:
        logger.warning(f"Refusing query without required filters: {constrained}")
        return QueryResult(sql=constrained, error=missing[0])

    return QueryResult(sql=constrained)


def run_query(sql: str, identity: Optional[Identity], engine: Engine, max_rows: int = 1000) -> QueryResult:

    prepared = prepare_query(sql, identity)
    if prepared.error is not None:
        return prepared

    try:
        with engine.connect() as connection:
            result = connection.exec_driver_sql(prepared.sql)

            if not result.returns_rows:
                return prepared

            columns = list(result.keys())
            rows = [[_plain(value) for value in row] for row in result.fetchmany(max_rows)]

    except SQLAlchemyError as e:
        logger.error(f"Query failed: {e}")
        return QueryResult(sql=prepared.sql, error=str(getattr(e, "orig", None) or e))

    return QueryResult(sql=prepared.sql, columns=columns, rows=rows)


def validate_connection(connection_string: str) -> Optional[str]:
    """None when the database answers, otherwise the error message."""

    try:
        engine = create_engine(connection_string, pool_pre_ping=True)
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        engine.dispose()
    except (SQLAlchemyError, ValueError) as e:
        logger.info(f"Connection validation failed: {e}")
        return str(e)

    return None


def list_tables(engine: Engine) -> List[Dict[str, Any]]:
    """Tables with their columns and whether access constraints apply to them."""

    inspector = inspect(engine)
    tables = []

    for table in sorted(inspector.get_table_names()):
        columns = [
            {"name": c["name"], "type": str(c["type"]), "nullable": bool(c.get("nullable", True))}
            for c in inspector.get_columns(table)
        ]
        tables.append({
            "table_name": table,
            "columns": columns,
            "requires_diocese_filter": table in PROTECTED_TABLES,
            "has_diocese_column": any(c["name"] == "diocese_id" for c in columns),
        })

    return tables


def describe_schema(engine: Engine) -> List[str]:
    """One line per table, listing its columns, for the model's system prompt."""
    return [
        f"{t['table_name']}({', '.join(c['name'] + ' ' + c['type'] for c in t['columns'])})"
        for t in list_tables(engine)
    ]


def foreign_keys(engine: Engine) -> List[Dict[str, Any]]:

    inspector = inspect(engine)
    keys = []

    for table in sorted(inspector.get_table_names()):
        for fk in inspector.get_foreign_keys(table):
            for column, referred in zip(fk["constrained_columns"], fk["referred_columns"]):
                keys.append({
                    "table_name": table,
                    "column_name": column,
                    "foreign_table_name": fk["referred_table"],
                    "foreign_column_name": referred,
                })

    return keys


def list_indexes(engine: Engine) -> List[Dict[str, Any]]:

    inspector = inspect(engine)
    indexes = []

    for table in sorted(inspector.get_table_names()):
        for index in inspector.get_indexes(table):
            indexes.append({
                "table_name": table,
                "index_name": index["name"],
                "columns": [c for c in index["column_names"] if c is not None],
                "unique": bool(index.get("unique")),
            })

    return indexes


_PG_TABLE_STATS = """
SELECT schemaname, relname AS table_name, n_live_tup AS row_count,
       pg_total_relation_size(relid) AS total_size,
       pg_relation_size(relid) AS table_size,
       pg_indexes_size(relid) AS indexes_size,
       last_vacuum, last_analyze
FROM pg_stat_user_tables
ORDER BY total_size DESC
"""

_PG_INDEX_USAGE = """
SELECT schemaname, relname AS table_name, indexrelname AS index_name,
       idx_scan, idx_tup_read, idx_tup_fetch
FROM pg_stat_user_indexes
ORDER BY schemaname, relname, indexrelname
"""


def _mapped_rows(engine: Engine, sql: str) -> List[Dict[str, Any]]:
    with engine.connect() as connection:
        return [{k: _plain(v) for k, v in row.items()} for row in connection.execute(text(sql)).mappings()]


def table_stats(engine: Engine) -> List[Dict[str, Any]]:
    """Row counts per table, plus sizes and maintenance times on PostgreSQL."""

    if engine.dialect.name == "postgresql":
        return _mapped_rows(engine, _PG_TABLE_STATS)

    preparer = engine.dialect.identifier_preparer
    stats = []

    with engine.connect() as connection:
        for table in sorted(inspect(engine).get_table_names()):
            count = connection.execute(text(f"SELECT COUNT(*) FROM {preparer.quote(table)}")).scalar()
            stats.append({"table_name": table, "row_count": count})

    return stats


def index_usage(engine: Engine) -> List[Dict[str, Any]]:
    """Index scan statistics. Only PostgreSQL keeps them."""

    if engine.dialect.name != "postgresql":
        return []

    return _mapped_rows(engine, _PG_INDEX_USAGE)


_EXPLAIN_PREFIX = re.compile(r"^\s*explain(\s+analyze)?\s+", re.IGNORECASE)


def explain_query(sql: str, engine: Engine) -> Any:
    """Execution plan of a statement. The statement itself is never run."""

    statement = _EXPLAIN_PREFIX.sub("", sql.strip()).rstrip(";").strip()

    if engine.dialect.name == "postgresql":
        explain = f"EXPLAIN (FORMAT JSON) {statement}"
    elif engine.dialect.name == "sqlite":
        explain = f"EXPLAIN QUERY PLAN {statement}"
    else:
        explain = f"EXPLAIN {statement}"

    with engine.connect() as connection:
        rows = connection.exec_driver_sql(explain).fetchall()

    if engine.dialect.name == "postgresql":
        return rows[0][0]

    return [[_plain(value) for value in row] for row in rows]


_SCORE_DIVISION = re.compile(r"knowledge_score(::\w+)?\s*\)?\s*/", re.IGNORECASE)
_GROUP_BY = re.compile(r"\bgroup\s+by\s+(.+?)(?=\bhaving\b|\border\s+by\b|\blimit\b|;|$)", re.IGNORECASE | re.DOTALL)
_ROLE_FILTER = re.compile(rf"\brole\s*=\s*({TEACHER_ROLE}|{STUDENT_ROLE})(?!\d)", re.IGNORECASE)

ROLE_FILTERED_TABLES = ("testing_section_students", "user_answers")
JOIN_PATHS = (
    ("testing_sections", "testing_center"),
    ("testing_section_students", "testing_sections"),
)


def validate_query(sql: str, identity: Optional[Identity], engine: Engine) -> QueryValidation:
    """
    Check a generated statement before it is run.

    Errors cover unsafe or incorrect queries: forbidden operations, score
    divisions without ``NULLIF``, grouping by names instead of ids, result
    tables queried without a role filter, missing access filters and anything
    the database rejects while planning the statement. Missing join paths are
    only warnings.
    """

    operation = forbidden_operation(sql)
    if operation is not None:
        return QueryValidation(valid=False, errors=[f"This action is not allowed {operation}"])

    errors: List[str] = []
    warnings: List[str] = []
    lowered = sql.lower()

    if _SCORE_DIVISION.search(sql) and "nullif" not in lowered:
        errors.append("Missing proper NULL handling in score calculation. Must include: NULLIF(knowledge_total, 0)")

    for match in _GROUP_BY.finditer(sql):
        for column in match.group(1).split(","):
            column = column.strip()
            if "name" in column.lower() and "id" not in column.lower():
                errors.append(f"Using name instead of ID in GROUP BY operation: {column}")

    if any(table in lowered for table in ROLE_FILTERED_TABLES) and not _ROLE_FILTER.search(sql):
        errors.append(
            f"Missing valid role filter. Must use role = {TEACHER_ROLE} for teachers "
            f"or role = {STUDENT_ROLE} for students"
        )

    for table, required in JOIN_PATHS:
        if table in lowered and required not in lowered:
            warnings.append(f"Missing join with {required} table when using {table}")

    constraint = derive_constraints(identity)
    constrained = inject_constraints(sql, constraint)
    errors.extend(missing_filters(constrained, constraint))

    try:
        explain_query(constrained, engine)
    except SQLAlchemyError as e:
        errors.append(f"Error running EXPLAIN: {getattr(e, 'orig', None) or e}")

    return QueryValidation(valid=not errors, errors=errors, warnings=warnings)
