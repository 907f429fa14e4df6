"""
SQLAlchemy model base class for the SynkBoard backend.

This package defines ORM models for tenants, users, runtime-defined
entities and their records, automation rules and rule execution logs.
All models should inherit from the declarative `Base` defined here.
"""

from __future__ import annotations

from sqlalchemy import JSON
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB


@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return compiler.process(JSON(), **kw)


from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


from .tenant import Tenant, User  # noqa: E402,F401
from .entity import Entity, EntityField, EntityRecord  # noqa: E402,F401
from .rule import Rule, RuleLog  # noqa: E402,F401

__all__ = [
    "Base",

    # Tenancy
    "Tenant",
    "User",

    # Schema-less entities
    "Entity",
    "EntityField",
    "EntityRecord",

    # Automation
    "Rule",
    "RuleLog",
]
