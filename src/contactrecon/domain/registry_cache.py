"""Read-through cache of the registry snapshot with a bounded freshness window."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Final

from contactrecon.domain.clock import Clock, utcnow
from contactrecon.domain.errors import RegistryUnavailableError

if TYPE_CHECKING:
    from datetime import datetime

    from contactrecon.domain.model import Identity
    from contactrecon.domain.ports.registry import IdentityRegistry

log = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_TTL: Final = timedelta(minutes=5)


@dataclass(slots=True)
class RegistrySnapshotCache:
    """Hold the last registry snapshot for ``ttl``.

    A failed refresh may fall back to the previous snapshot only while that
    snapshot is younger than ``ttl + stale_grace``. After that the failure
    propagates as :class:`RegistryUnavailableError`.
    """

    registry: IdentityRegistry
    ttl: timedelta = DEFAULT_SNAPSHOT_TTL
    stale_grace: timedelta = timedelta(0)
    clock: Clock = utcnow
    _snapshot: tuple[Identity, ...] | None = field(default=None, init=False, repr=False)
    _fetched_at: datetime | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.ttl < timedelta(0) or self.stale_grace < timedelta(0):
            raise ValueError("Cache windows must be non-negative")

    @property
    def fetched_at(self) -> datetime | None:
        return self._fetched_at

    def age(self) -> timedelta | None:
        if self._fetched_at is None:
            return None
        return self.clock() - self._fetched_at

    def is_fresh(self) -> bool:
        age = self.age()
        return age is not None and age < self.ttl

    def snapshot(self) -> tuple[Identity, ...]:
        if self._snapshot is not None and self.is_fresh():
            return self._snapshot
        return self._refresh()

    def invalidate(self) -> None:
        """Drop the cached snapshot so the next call fetches."""

        self._snapshot = None
        self._fetched_at = None

    def _refresh(self) -> tuple[Identity, ...]:
        try:
            identities = tuple(self.registry.list_all_identities())
        except RegistryUnavailableError as exc:
            return self._fallback(exc)
        except Exception as exc:
            wrapped = RegistryUnavailableError(f"Registry fetch failed: {exc}")
            wrapped.__cause__ = exc
            return self._fallback(wrapped)

        self._snapshot = identities
        self._fetched_at = self.clock()
        log.info("Fetched registry snapshot: %d identities", len(identities))
        return identities

    def _fallback(self, error: RegistryUnavailableError) -> tuple[Identity, ...]:
        age = self.age()
        if self._snapshot is not None and age is not None and age <= self.ttl + self.stale_grace:
            log.warning("Registry refresh failed (%s); serving snapshot aged %s", error, age)
            return self._snapshot
        log.error("Registry unavailable and no usable snapshot: %s", error)
        raise error
