"""Identity registry backed by a SQL database."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from contactrecon.domain.errors import DuplicateConflictError, RegistryUnavailableError
from contactrecon.domain.model import DuplicateKind, Identity
from contactrecon.domain.reconciliation.names import normalize_name
from contactrecon.domain.reconciliation.phones import normalize_phone

from .unit_of_work import SqlAlchemyUnitOfWork

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .repositories import SqlAlchemyIdentityRepository

log = logging.getLogger(__name__)

UnitOfWorkFactory = Callable[[], SqlAlchemyUnitOfWork]


def _new_identity_id() -> str:
    return str(uuid4())


class SqlAlchemyIdentityRegistry:
    """Registry port over the ``identity`` table.

    Names are unique by normalized key and phones by digits; both are checked
    before insert so the caller gets the colliding identity back.
    """

    def __init__(
        self,
        *,
        unit_of_work_factory: UnitOfWorkFactory = SqlAlchemyUnitOfWork,
        id_factory: Callable[[], str] = _new_identity_id,
    ) -> None:
        self._unit_of_work_factory = unit_of_work_factory
        self._id_factory = id_factory

    def list_all_identities(self) -> list[Identity]:
        try:
            with self._unit_of_work_factory() as uow:
                return uow.repositories.identities.list_all()
        except SQLAlchemyError as exc:
            raise RegistryUnavailableError(f"Registry database unavailable: {exc}") from exc

    def create_identity(
        self,
        *,
        name: str,
        phone: str,
        attributes: Mapping[str, str] | None = None,
    ) -> Identity:
        name = name.strip()
        name_key = normalize_name(name)
        digits = normalize_phone(phone)
        identity = Identity(
            id=self._id_factory(),
            name=name,
            phone=digits,
            location=_location(attributes),
        )
        try:
            with self._unit_of_work_factory() as uow:
                repository = uow.repositories.identities
                _raise_on_duplicate(repository, name_key=name_key, phone=digits)
                repository.add(identity, name_key=name_key, attributes=attributes)
                uow.commit()
        except IntegrityError as exc:
            with self._unit_of_work_factory() as uow:
                _raise_on_duplicate(uow.repositories.identities, name_key=name_key, phone=digits)
            raise RegistryUnavailableError(f"Registry rejected identity: {exc}") from exc
        except SQLAlchemyError as exc:
            raise RegistryUnavailableError(f"Registry database unavailable: {exc}") from exc

        log.info("Stored identity %s (%s)", identity.id, identity.name)
        return identity


def _raise_on_duplicate(
    repository: SqlAlchemyIdentityRepository, *, name_key: str, phone: str
) -> None:
    by_name = repository.first_by_name_key(name_key) if name_key else None
    by_phone = repository.get_by_phone(phone)
    if by_name is not None:
        raise DuplicateConflictError(
            "Customer with this name already exists",
            existing=by_name,
            kind=DuplicateKind.BOTH if by_phone is not None else DuplicateKind.NAME,
        )
    if by_phone is not None:
        raise DuplicateConflictError(
            f"Phone number already belongs to customer: {by_phone.name}",
            existing=by_phone,
            kind=DuplicateKind.PHONE,
        )


def _location(attributes: Mapping[str, str] | None) -> str | None:
    for key, value in (attributes or {}).items():
        if key.strip().lower() == "location" and value:
            return value
    return None
