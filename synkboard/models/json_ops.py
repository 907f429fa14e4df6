"""
SQL constructs for reading top-level keys out of a record's JSON fields.

Every construct takes the key as a bound parameter, so field names never
reach the SQL text. Only SQLite and PostgreSQL are supported.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Float, literal
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.functions import FunctionElement


class json_number(FunctionElement):
    """Numeric value under `key`; SQL NULL when it is missing or not a JSON number."""

    type = Float()
    name = "json_number"
    inherit_cache = True

    def __init__(self, column, key: str):
        super().__init__(column, literal(key), literal(key))


class json_value(FunctionElement):
    """Scalar value under `key`.

    SQLite yields the native value, PostgreSQL text. JSON booleans come back as
    `'true'`/`'false'` on both.
    """

    name = "json_value"
    inherit_cache = True

    def __init__(self, column, key: str):
        super().__init__(column, literal(key), literal(key))


class json_matches(FunctionElement):
    """True when the value under `key` equals the JSON document `json_text`."""

    type = Boolean()
    name = "json_matches"
    inherit_cache = True

    def __init__(self, column, key: str, json_text: str):
        super().__init__(column, literal(key), literal(json_text))


def _args(element, compiler, count=None, **kw) -> list[str]:
    clauses = list(element.clauses)[:count]
    return [compiler.process(clause, **kw) for clause in clauses]


def _sqlite_path(key_sql: str) -> str:
    return f"'$.\"' || {key_sql} || '\"'"


@compiles(json_number, "sqlite")
def _json_number_sqlite(element, compiler, **kw):
    column, key_a, key_b = _args(element, compiler, **kw)
    return (
        f"CASE WHEN json_type({column}, {_sqlite_path(key_a)}) IN ('integer', 'real') "
        f"THEN json_extract({column}, {_sqlite_path(key_b)}) END"
    )


@compiles(json_number, "postgresql")
def _json_number_postgresql(element, compiler, **kw):
    column, key_a, key_b = _args(element, compiler, **kw)
    return (
        f"CASE WHEN jsonb_typeof({column} -> CAST({key_a} AS TEXT)) = 'number' "
        f"THEN CAST({column} ->> CAST({key_b} AS TEXT) AS NUMERIC) END"
    )


@compiles(json_value, "sqlite")
def _json_value_sqlite(element, compiler, **kw):
    column, key_a, key_b = _args(element, compiler, **kw)
    return (
        f"CASE json_type({column}, {_sqlite_path(key_a)}) "
        "WHEN 'true' THEN 'true' WHEN 'false' THEN 'false' "
        f"ELSE json_extract({column}, {_sqlite_path(key_b)}) END"
    )


@compiles(json_value, "postgresql")
def _json_value_postgresql(element, compiler, **kw):
    column, key = _args(element, compiler, count=2, **kw)
    return f"({column} ->> CAST({key} AS TEXT))"


@compiles(json_matches, "sqlite")
def _json_matches_sqlite(element, compiler, **kw):
    column, key, value = _args(element, compiler, **kw)
    return f"(json_extract({column}, {_sqlite_path(key)}) = json_extract({value}, '$'))"


@compiles(json_matches, "postgresql")
def _json_matches_postgresql(element, compiler, **kw):
    column, key, value = _args(element, compiler, **kw)
    return f"(({column} -> CAST({key} AS TEXT)) = CAST({value} AS JSONB))"
