"""SQLAlchemy repository for registry identities."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import insert, select

from contactrecon.domain.model import Identity

from .mappings import identity_table

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy import Row
    from sqlalchemy.orm import Session


class SqlAlchemyIdentityRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Identity]:
        stmt = select(identity_table).order_by(identity_table.c.position)
        return [_to_identity(row) for row in self.session.execute(stmt)]

    def first_by_name_key(self, name_key: str) -> Identity | None:
        stmt = (
            select(identity_table)
            .where(identity_table.c.name_key == name_key)
            .order_by(identity_table.c.position)
            .limit(1)
        )
        row = self.session.execute(stmt).first()
        return _to_identity(row) if row is not None else None

    def get_by_phone(self, phone: str) -> Identity | None:
        if not phone:
            return None
        stmt = select(identity_table).where(identity_table.c.phone == phone)
        row = self.session.execute(stmt).first()
        return _to_identity(row) if row is not None else None

    def add(
        self,
        identity: Identity,
        *,
        name_key: str,
        attributes: Mapping[str, str] | None = None,
    ) -> None:
        self.session.execute(
            insert(identity_table).values(
                id=identity.id,
                name=identity.name,
                name_key=name_key,
                phone=identity.phone or None,
                location=identity.location,
                external_ref=identity.external_ref,
                attributes=dict(attributes or {}),
            )
        )


def _to_identity(row: Row[Any]) -> Identity:
    mapping = row._mapping  # noqa: SLF001
    return Identity(
        id=mapping["id"],
        name=mapping["name"],
        phone=mapping["phone"] or "",
        location=mapping["location"],
        external_ref=mapping["external_ref"],
    )
