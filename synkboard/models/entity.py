"""
ORM models for tenant-defined entities, their field metadata and records.

An Entity is a record type whose schema is configured at runtime. Its
EntityField rows are the allow-list every dynamic query is checked against;
EntityRecord keeps the field values in a single JSON column.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, JSON, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Entity(Base):
    __tablename__ = "entities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    slug: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    fields: Mapped[list[EntityField]] = relationship(
        "EntityField",
        back_populates="entity",
        cascade="all, delete-orphan",
        order_by="EntityField.position",
    )

    __table_args__ = (UniqueConstraint("tenant_id", "slug", name="uq_entities_tenant_slug"),)


class EntityField(Base):
    __tablename__ = "entity_fields"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_id: Mapped[str] = mapped_column(String(36), ForeignKey("entities.id", ondelete="CASCADE"), index=True)
    key: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    # text | number | boolean | date | select | multiselect | rating | user | json
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="text")
    options: Mapped[list | None] = mapped_column(JSON, nullable=True)
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    is_filterable: Mapped[bool] = mapped_column(Boolean, default=True)
    is_sortable: Mapped[bool] = mapped_column(Boolean, default=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    entity: Mapped[Entity] = relationship("Entity", back_populates="fields")

    __table_args__ = (UniqueConstraint("entity_id", "key", name="uq_entity_fields_entity_key"),)


class EntityRecord(Base):
    __tablename__ = "entity_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    entity_id: Mapped[str] = mapped_column(String(36), ForeignKey("entities.id", ondelete="CASCADE"), index=True)
    fields: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    created_by: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_entity_records_tenant_entity_created", "tenant_id", "entity_id", "created_at"),
    )
