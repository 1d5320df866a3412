"""Records flowing into and out of a reconciliation run."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from contactrecon.domain.model.enums import Provenance
    from contactrecon.domain.model.values import AttributeValue


def _freeze(attributes: Mapping[str, AttributeValue]) -> Mapping[str, AttributeValue]:
    if isinstance(attributes, MappingProxyType):
        return attributes
    return MappingProxyType(dict(attributes))


@dataclass(slots=True, frozen=True, kw_only=True)
class ImportRecord:
    """One parsed spreadsheet row. Never mutated after parsing."""

    name: str
    phone: str | None = None
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)
    source_row_index: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", _freeze(self.attributes))

    def with_phone(self, phone: str) -> ImportRecord:
        return replace(self, phone=phone)


@dataclass(slots=True, frozen=True, kw_only=True)
class Identity:
    """A registry entry. Owned by the external registry, read-only here."""

    id: str
    name: str
    phone: str = ""
    location: str | None = None
    external_ref: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class ReconciledRecord:
    source_row_index: int
    final_name: str
    final_phone: str
    source_attributes: Mapping[str, AttributeValue] = field(default_factory=dict)
    provenance: Provenance
    cluster_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "source_attributes", _freeze(self.source_attributes))
