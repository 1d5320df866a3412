"""Registry access and reconciliation tuning values."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta

from contactrecon.domain.reconciliation.names import DEFAULT_MATCH_THRESHOLD
from contactrecon.domain.reconciliation.phones import DEFAULT_COUNTRY_CODE

from .env import env_float, require_env_vars
from .errors import ConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

DEFAULT_CACHE_TTL_SECONDS = 300.0


@dataclass(frozen=True, slots=True)
class ReconciliationConfig:
    cache_ttl: timedelta = field(
        default_factory=lambda: timedelta(seconds=DEFAULT_CACHE_TTL_SECONDS)
    )
    stale_grace: timedelta = field(default_factory=timedelta)
    country_code: str = DEFAULT_COUNTRY_CODE
    suggestion_threshold: float = DEFAULT_MATCH_THRESHOLD


@dataclass(frozen=True, slots=True)
class RegistryApiConfig:
    resilience: ResilienceConfig
    identities_path: str = "identities"


def get_reconciliation_config() -> ReconciliationConfig:
    ttl = env_float("CONTACTRECON_CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS, minimum=0)
    grace = env_float("CONTACTRECON_CACHE_STALE_GRACE_SECONDS", 0.0, minimum=0)
    threshold = env_float(
        "CONTACTRECON_SUGGESTION_THRESHOLD", DEFAULT_MATCH_THRESHOLD, minimum=0
    )
    if threshold > 1:
        raise ConfigurationError(
            f"CONTACTRECON_SUGGESTION_THRESHOLD must be <= 1, got {threshold}"
        )

    country_code = (os.getenv("CONTACTRECON_COUNTRY_CODE") or DEFAULT_COUNTRY_CODE).strip()
    country_code = country_code.removeprefix("+")
    if not country_code.isdigit():
        raise ConfigurationError(
            f"CONTACTRECON_COUNTRY_CODE must be digits, got {country_code!r}"
        )

    return ReconciliationConfig(
        cache_ttl=timedelta(seconds=ttl),
        stale_grace=timedelta(seconds=grace),
        country_code=country_code,
        suggestion_threshold=threshold,
    )


def get_registry_api_config() -> RegistryApiConfig:
    values = require_env_vars(("CONTACTRECON_REGISTRY_URL",))
    headers = {"Accept": "application/json"}
    token = os.getenv("CONTACTRECON_REGISTRY_TOKEN")
    if token:
        headers["Authorization"] = f"Bearer {token.strip()}"

    resilience = ResilienceConfig(
        name="registry",
        base_url=values["CONTACTRECON_REGISTRY_URL"].rstrip("/") + "/",
        ratelimit=RateLimit(max_calls=5, per_seconds=1.0),
        retry=RetryPolicy(total=3),
        default_headers=headers,
    )
    return RegistryApiConfig(resilience=resilience)
