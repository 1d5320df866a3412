"""SQLAlchemy adapter package for the identity registry."""

from __future__ import annotations

from .mappings import create_all_tables, identity_table, metadata
from .registry import SqlAlchemyIdentityRegistry
from .repositories import SqlAlchemyIdentityRepository
from .unit_of_work import SqlAlchemyUnitOfWork, shutdown, startup

__all__ = [
    "SqlAlchemyIdentityRegistry",
    "SqlAlchemyIdentityRepository",
    "SqlAlchemyUnitOfWork",
    "create_all_tables",
    "identity_table",
    "metadata",
    "shutdown",
    "startup",
]
