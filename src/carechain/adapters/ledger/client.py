"""HTTP gateway for the Ledger JSON API."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Self, Unpack

import httpx
from pydantic import ValidationError as SchemaError

from carechain.adapters.http_resilience import ResilientClient
from carechain.domain.errors import LedgerRejected, LedgerUnreachable, UnsupportedOperation
from carechain.domain.model import ACCESS_CHECK_OPERATION
from carechain.domain.ports import PendingWrite, Receipt

from .schema import (
    AccessResponse,
    CapabilitiesResponse,
    CollectionResponse,
    ErrorResponse,
    WriteAccepted,
    WriteStatus,
    WriteSubmission,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from types import TracebackType

    from pydantic import BaseModel

    from carechain.adapters.http_resilience import RequestOptions
    from carechain.config.http_resilience import ResilienceConfig
    from carechain.config.ledger import LedgerConfig
    from carechain.domain.model import Address, CollectionKind, LedgerAction
    from carechain.domain.ports import Signer

log = getLogger(__name__)

_UNSUPPORTED_STATUSES = frozenset({404, 501})


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def signing_payload(
    *, contract: str, action: str, args: Mapping[str, object], sender: Address
) -> bytes:
    """Canonical bytes the signer authorises for one write."""

    document = {"contract": contract, "action": action, "args": dict(args), "from": sender}
    return json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _error_reason(response: httpx.Response) -> str:
    try:
        return ErrorResponse.model_validate(response.json()).message
    except (ValueError, SchemaError):
        return response.text.strip() or f"Ledger returned HTTP {response.status_code}"


@dataclass(slots=True)
class HttpLedgerGateway:
    """``LedgerGateway`` backed by the Ledger HTTP API.

    Calls are never retried here. Confirmation is polled every
    ``confirmation_poll_seconds`` until ``confirmation_timeout_seconds`` elapse.
    """

    config: LedgerConfig
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )
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

    async def capabilities(self) -> frozenset[str]:
        payload = await self._request("GET", "/capabilities")
        response = self._parse(CapabilitiesResponse, payload)
        return frozenset(response.operations)

    async def read_collection(self, kind: CollectionKind, owner: Address) -> Sequence[object]:
        payload = await self._request(
            "GET", f"/collections/{kind.operation}/{owner}", operation=kind.operation
        )
        return tuple(self._parse(CollectionResponse, payload).items)

    async def submit_write(
        self,
        action: LedgerAction,
        args: Mapping[str, object],
        *,
        signer: Signer,
    ) -> PendingWrite:
        sender = signer.address
        # UserCancelled from the signer propagates before anything is sent
        signature = await signer.sign(
            signing_payload(
                contract=self.config.contract_address, action=action, args=args, sender=sender
            )
        )
        submission = WriteSubmission(
            contract=self.config.contract_address,
            action=str(action),
            args=dict(args),
            sender=sender,
            signature=signature,
        )
        payload = await self._request(
            "POST", "/writes", operation=action, json=submission.model_dump(by_alias=True)
        )
        accepted = self._parse(WriteAccepted, payload)
        log.debug("Ledger accepted %s from %s as %s", action, sender, accepted.handle)
        return PendingWrite(handle=accepted.handle, action=action, sender=sender)

    async def await_confirmation(self, pending: PendingWrite) -> Receipt:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.confirmation_timeout_seconds
        while True:
            payload = await self._request("GET", f"/writes/{pending.handle}")
            status = self._parse(WriteStatus, payload)
            if status.status == "confirmed":
                return Receipt(handle=pending.handle, block=status.block, events=status.events)
            if status.status == "reverted":
                raise LedgerRejected(status.reason or "Transaction reverted")
            if loop.time() >= deadline:
                msg = (
                    f"{pending.action} ({pending.handle}) not confirmed within "
                    f"{self.config.confirmation_timeout_seconds:g}s"
                )
                raise LedgerUnreachable(msg)
            await asyncio.sleep(self.config.confirmation_poll_seconds)

    async def check_access(self, caller: Address, target: Address) -> bool:
        payload = await self._request(
            "GET", f"/access/{caller}/{target}", operation=ACCESS_CHECK_OPERATION
        )
        return self._parse(AccessResponse, payload).has_access

    def _client_or_create(self) -> ResilientClient:
        if self._client is None:
            self._client = self.client_factory(self.config.resilience)
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str | None = None,
        **kwargs: Unpack[RequestOptions],
    ) -> object:
        client = self._client_or_create()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            log.warning("Ledger %s %s failed: %s", method, path, exc)
            raise LedgerUnreachable(f"Ledger request failed: {exc}") from exc

        status = response.status_code
        if operation is not None and status in _UNSUPPORTED_STATUSES:
            raise UnsupportedOperation(operation)
        if status >= 500:
            raise LedgerUnreachable(f"Ledger returned HTTP {status}")
        if status >= 400:
            reason = _error_reason(response)
            log.info("Ledger rejected %s %s: %s", method, path, reason)
            raise LedgerRejected(reason)

        try:
            return response.json()
        except ValueError as exc:
            raise LedgerUnreachable("Ledger returned a malformed response") from exc

    @staticmethod
    def _parse[M: BaseModel](model: type[M], payload: object) -> M:
        try:
            return model.model_validate(payload)
        except SchemaError as exc:
            raise LedgerUnreachable(f"Unexpected Ledger payload for {model.__name__}") from exc

