"""Application configuration helpers."""

from __future__ import annotations

from contactrecon.common.logging import configure_logging

from .env import env_float, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .registry import (
    ReconciliationConfig,
    RegistryApiConfig,
    get_reconciliation_config,
    get_registry_api_config,
)
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ReconciliationConfig",
    "RegistryApiConfig",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "configure_logging",
    "env_float",
    "get_database_config",
    "get_reconciliation_config",
    "get_registry_api_config",
    "get_storage_config",
    "require_env_vars",
]
