"""Port for the external customer registry."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from contactrecon.domain.model import Identity


@runtime_checkable
class IdentityRegistry(Protocol):
    """Read/create contract over the registry that owns identities.

    ``list_all_identities`` returns entries in the registry's natural order and
    raises :class:`~contactrecon.domain.errors.RegistryUnavailableError` when
    the registry cannot be reached. ``create_identity`` raises
    :class:`~contactrecon.domain.errors.DuplicateConflictError` when the
    registry itself detects a colliding name or phone.
    """

    def list_all_identities(self) -> Sequence[Identity]: ...

    def create_identity(
        self,
        *,
        name: str,
        phone: str,
        attributes: Mapping[str, str] | None = None,
    ) -> Identity: ...
