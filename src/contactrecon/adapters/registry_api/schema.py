"""Registry API payload schemas."""

from __future__ import annotations

import logging
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from contactrecon.domain.model import DuplicateKind, Identity

log = logging.getLogger(__name__)


class RegistryBaseModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    _logged_extra_keys: ClassVar[set[str]] = set()

    def model_post_init(self, _context: object, /) -> None:
        extras = self.__pydantic_extra__
        if not extras:
            return
        new_keys = set(extras).difference(self._logged_extra_keys)
        if not new_keys:
            return
        self._logged_extra_keys.update(new_keys)
        log.debug(
            "Registry %s: unmodeled keys: %s",
            type(self).__name__,
            ", ".join(sorted(new_keys)),
        )


class IdentityPayload(RegistryBaseModel):
    id: str | int
    name: str
    phone: str | None = None
    location: str | None = None
    external_ref: str | None = Field(default=None, alias="externalRef")

    def to_domain(self) -> Identity:
        return Identity(
            id=str(self.id),
            name=self.name,
            phone=self.phone or "",
            location=self.location,
            external_ref=self.external_ref,
        )


class IdentityPage(RegistryBaseModel):
    identities: list[IdentityPayload] = Field(default_factory=list)
    next_page: int | None = Field(default=None, alias="nextPage")


class CreateIdentityRequest(RegistryBaseModel):
    name: str
    phone: str
    attributes: dict[str, str] = Field(default_factory=dict)


class DuplicateConflictPayload(RegistryBaseModel):
    detail: str = "Identity already exists"
    conflict: DuplicateKind = DuplicateKind.NAME
    existing: IdentityPayload
