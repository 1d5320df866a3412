"""SQLAlchemy table metadata for the identity registry."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Column, DateTime, Integer, MetaData, String, Table

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


identity_table = Table(
    "identity",
    metadata,
    # surrogate key, keeps the registry's natural (insertion) order
    Column("position", Integer, primary_key=True, autoincrement=True),
    Column("id", String(36), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("name_key", String(255), nullable=False, index=True),
    Column("phone", String(20), nullable=True, unique=True),
    Column("location", String(255), nullable=True),
    Column("external_ref", String(100), nullable=True),
    Column("attributes", JSON, nullable=False, default=dict),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
)


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the registry metadata."""

    log.info("Creating registry tables")
    metadata.create_all(engine)
