"""Public interface for the HTTP registry adapter."""

from __future__ import annotations

from .client import HttpIdentityRegistry, RegistryAPIError
from .schema import IdentityPage, IdentityPayload

__all__ = [
    "HttpIdentityRegistry",
    "IdentityPage",
    "IdentityPayload",
    "RegistryAPIError",
]
