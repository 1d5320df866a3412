"""Domain ports (interfaces) for external collaborators."""

from __future__ import annotations

from .registry import IdentityRegistry

__all__ = ["IdentityRegistry"]
