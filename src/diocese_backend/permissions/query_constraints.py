"""
Textual enforcement of access constraints on generated SQL.

This is string surgery, not SQL parsing. It can misfire on subqueries, CTEs,
multiple statements and quoted literals. Queries issued by the backend itself
go through ``query_builders.scope_query`` instead, which binds parameters.
"""

import logging
import re
from typing import List, Optional

from diocese_backend.permissions.principal import AccessConstraint

logger = logging.getLogger(__name__)

PROTECTED_TABLES = (
    "testing_centers",
    "testing_sections",
    "testing_section_students",
    "users",
    "students",
    "test_results",
    "scores",
)

FORBIDDEN_OPERATIONS = ("DROP", "DELETE", "ALTER", "TRUNCATE", "GRANT", "REVOKE")

_WHERE = re.compile(r"\bwhere\b\s*", re.IGNORECASE)
_FROM_OR_JOIN = re.compile(r"\b(from|join)\b", re.IGNORECASE)
_TRAILING_CLAUSE = re.compile(r"\b(group\s+by|order\s+by|limit)\b", re.IGNORECASE)
_CODE_FENCE = re.compile(r"```(?:sql)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)
_STATEMENT_START = re.compile(r"\b(select|with)\b", re.IGNORECASE)


def _literal(value: Optional[int]) -> str:
    return "NULL" if value is None else str(value)


def _mentions(sql_lower: str, spellings: List[str]) -> bool:
    # a trailing digit would make the match a different id (5 vs 51)
    return any(re.search(re.escape(s) + r"(?!\d)", sql_lower) for s in spellings)


def has_diocese_filter(sql: str, diocese_id: Optional[int]) -> bool:
    value = _literal(diocese_id).lower()
    return _mentions(sql.lower(), [
        f"diocese_id = {value}",
        f"diocese_id={value}",
        f"tc.diocese_id = {value}",
        f"tc.diocese_id={value}",
    ])


def has_testing_center_filter(sql: str, testing_center_id: Optional[int]) -> bool:
    value = _literal(testing_center_id).lower()
    return _mentions(sql.lower(), [
        f"testing_center_id = {value}",
        f"testing_center_id={value}",
        f"tc.id = {value}",
        f"tc.id={value}",
    ])


def touches_protected_table(sql: str) -> bool:
    sql_lower = sql.lower()
    return any(table in sql_lower for table in PROTECTED_TABLES)


def _split_terminator(sql: str):
    body = sql.rstrip()
    if body.endswith(";"):
        return body[:-1].rstrip(), ";"
    return body, ""


def _add_predicate(sql: str, predicate: str) -> str:

    where = _WHERE.search(sql)
    if where is not None:
        body, terminator = _split_terminator(sql)

        # the original condition stays grouped as a single operand
        trailing = _TRAILING_CLAUSE.search(body, where.end())
        end = trailing.start() if trailing is not None else len(body)
        condition = body[where.end():end].strip()

        head = f"{body[:where.start()]}WHERE {predicate}"
        if condition:
            head = f"{head} AND ({condition})"

        tail = body[end:]
        return f"{head} {tail}{terminator}" if tail else f"{head}{terminator}"

    anchors = list(_FROM_OR_JOIN.finditer(sql))
    if not anchors:
        logger.warning(f"Could not place predicate '{predicate}', no FROM clause found")
        return sql

    body, terminator = _split_terminator(sql)

    trailing = _TRAILING_CLAUSE.search(body, anchors[-1].end())
    if trailing is not None:
        head, tail = body[:trailing.start()].rstrip(), body[trailing.start():]
        return f"{head} WHERE {predicate} {tail}{terminator}"

    if terminator:
        return f"{body} WHERE {predicate} {terminator}"

    return f"{sql} WHERE {predicate} "


def inject_constraints(sql: str, constraint: AccessConstraint) -> str:
    """
    Add the filters required by ``constraint`` to ``sql`` unless they are
    already present. Always returns a string and is idempotent.
    """

    if not constraint.has_constraints:
        return sql

    if not touches_protected_table(sql):
        return sql

    predicates = []

    if constraint.must_include_diocese_filter and not has_diocese_filter(sql, constraint.diocese_id):
        predicates.append(f"diocese_id = {_literal(constraint.diocese_id)}")

    if constraint.must_include_testing_center_filter and not has_testing_center_filter(sql, constraint.testing_center_id):
        predicates.append(f"testing_center_id = {_literal(constraint.testing_center_id)}")

    if not predicates:
        return sql

    modified = _add_predicate(sql, " AND ".join(predicates))

    if modified != sql:
        logger.info(f"Injected access constraints: {modified}")

    return modified


def missing_filters(sql: str, constraint: AccessConstraint) -> List[str]:
    """Messages for every required filter the statement still lacks."""

    if not constraint.has_constraints or not touches_protected_table(sql):
        return []

    messages = []

    if constraint.must_include_diocese_filter and not has_diocese_filter(sql, constraint.diocese_id):
        messages.append(f"Query must include diocese_id = {_literal(constraint.diocese_id)} filter for security reasons")

    if constraint.must_include_testing_center_filter and not has_testing_center_filter(sql, constraint.testing_center_id):
        messages.append(f"Query must include testing_center_id = {_literal(constraint.testing_center_id)} filter for security reasons")

    return messages


def forbidden_operation(sql: str) -> Optional[str]:
    for operation in FORBIDDEN_OPERATIONS:
        if re.search(rf"\b{operation}\b", sql, re.IGNORECASE):
            return operation
    return None


def clean_sql_code(text: str) -> str:
    """Strip markdown fences and leading prose from model output."""

    fenced = _CODE_FENCE.search(text)
    if fenced is not None:
        text = fenced.group(1)

    start = _STATEMENT_START.search(text)
    if start is not None:
        text = text[start.start():]

    return text.strip()


def extract_sql(text: str) -> Optional[str]:
    """Return the first SQL statement in a model answer, or None when there is none."""

    fenced = _CODE_FENCE.search(text)
    if fenced is None:
        return None

    sql = clean_sql_code(fenced.group(0))
    return sql or None
