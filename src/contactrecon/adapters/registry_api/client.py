"""HTTP implementation of the identity registry port."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx
import pydantic

from contactrecon.adapters.http_resilience import ResilientClient
from contactrecon.domain.errors import DuplicateConflictError, RegistryUnavailableError

from .schema import CreateIdentityRequest, DuplicateConflictPayload, IdentityPage, IdentityPayload

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from contactrecon.config.http_resilience import ResilienceConfig
    from contactrecon.config.registry import RegistryApiConfig
    from contactrecon.domain.model import Identity

log = getLogger(__name__)

MAX_PAGES: Final = 1000


class RegistryAPIError(RuntimeError):
    """Raised when the registry answers with something the client cannot use."""


class HttpIdentityRegistry:
    """Identity registry reached over HTTP.

    Listing walks every page in one event loop run so a reconciliation batch
    costs a single blocking call.
    """

    def __init__(
        self,
        *,
        config: RegistryApiConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._config = config
        self._resilience = config.resilience
        self._client_factory = client_factory or ResilientClient

    def list_all_identities(self) -> list[Identity]:
        try:
            return asyncio.run(self._list_all_async())
        except (httpx.HTTPError, pydantic.ValidationError, RegistryAPIError) as exc:
            raise RegistryUnavailableError(f"Registry listing failed: {exc}") from exc

    def create_identity(
        self,
        *,
        name: str,
        phone: str,
        attributes: Mapping[str, str] | None = None,
    ) -> Identity:
        request = CreateIdentityRequest(name=name, phone=phone, attributes=dict(attributes or {}))
        try:
            return asyncio.run(self._create_async(request))
        except (httpx.HTTPError, pydantic.ValidationError, RegistryAPIError) as exc:
            raise RegistryUnavailableError(f"Registry create failed: {exc}") from exc

    async def _list_all_async(self) -> list[Identity]:
        identities: list[Identity] = []
        page: int | None = 1
        fetched_pages = 0
        async with self._client_factory(self._resilience) as client:
            while page is not None:
                if fetched_pages >= MAX_PAGES:
                    raise RegistryAPIError(f"Registry listing exceeded {MAX_PAGES} pages")
                response = await client.get(
                    self._config.identities_path, params={"page": str(page)}
                )
                response.raise_for_status()
                payload = IdentityPage.model_validate(_json_object(response))
                identities.extend(item.to_domain() for item in payload.identities)
                fetched_pages += 1
                page = payload.next_page
        log.debug("Fetched %d identities over %d pages", len(identities), fetched_pages)
        return identities

    async def _create_async(self, request: CreateIdentityRequest) -> Identity:
        async with self._client_factory(self._resilience) as client:
            response = await client.post(
                self._config.identities_path,
                json=request.model_dump(),
            )
        if response.status_code == httpx.codes.CONFLICT:
            conflict = DuplicateConflictPayload.model_validate(_json_object(response))
            raise DuplicateConflictError(
                conflict.detail,
                existing=conflict.existing.to_domain(),
                kind=conflict.conflict,
            )
        response.raise_for_status()
        return IdentityPayload.model_validate(_json_object(response)).to_domain()


def _json_object(response: httpx.Response) -> dict[str, object]:
    payload = response.json()
    if not isinstance(payload, dict):
        raise RegistryAPIError("Unexpected registry response payload")
    return payload
