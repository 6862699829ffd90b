"""IPFS HTTP API blob store."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Self

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from carechain.adapters.http_resilience import ResilientClient
from carechain.domain.errors import StorageFailure

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from carechain.config.http_resilience import ResilienceConfig
    from carechain.config.ipfs import IpfsConfig
    from carechain.domain.model import ContentId

log = getLogger(__name__)


class AddResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(default="", alias="Name")
    hash: str = Field(alias="Hash", min_length=1)
    size: str | None = Field(default=None, alias="Size")


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


@dataclass(slots=True)
class IpfsBlobStore:
    """Stores payloads through ``/api/v0/add``.

    Content-addressed adds are idempotent, so the client may retry them.
    """

    config: IpfsConfig
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )
    filename: str = "document"
    _client: ResilientClient | None = field(default=None, init=False, repr=False)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def store(self, data: bytes) -> ContentId:
        if self._client is None:
            self._client = self.client_factory(self.config.resilience)
        params = {"pin": "true" if self.config.pin else "false"}
        try:
            response = await self._client.post(
                "/add", params=params, files={"file": (self.filename, data)}
            )
            response.raise_for_status()
            added = AddResponse.model_validate(response.json())
        except httpx.HTTPError as exc:
            log.warning("IPFS add failed: %s", exc)
            raise StorageFailure(f"IPFS add failed: {exc}") from exc
        except (ValueError, SchemaError) as exc:
            raise StorageFailure("IPFS returned an unexpected add response") from exc
        log.debug("Stored %s bytes in IPFS as %s", len(data), added.hash)
        return added.hash
