"""Signers backed by a local eth-account key."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from eth_account import Account
from eth_account.messages import encode_defunct

from carechain.domain.errors import UserCancelled

if TYPE_CHECKING:
    from carechain.config.signer import SignerConfig
    from carechain.domain.model import Address
    from carechain.domain.ports import Signer

log = getLogger(__name__)

type Confirm = Callable[[bytes], bool]


def recover_signer(payload: bytes, signature: str) -> Address:
    """Address that produced ``signature`` over ``payload`` (EIP-191)."""

    return Account.recover_message(encode_defunct(primitive=payload), signature=signature)


class LocalAccountSigner:
    """Signs write payloads as EIP-191 personal messages."""

    def __init__(self, private_key: str | bytes) -> None:
        self._account = Account.from_key(private_key)

    @classmethod
    def from_config(cls, config: SignerConfig) -> LocalAccountSigner:
        return cls(config.private_key)

    @classmethod
    def generate(cls) -> LocalAccountSigner:
        account = Account.create()
        return cls(bytes(account.key))

    @property
    def address(self) -> Address:
        return self._account.address

    async def sign(self, payload: bytes) -> str:
        signed = self._account.sign_message(encode_defunct(primitive=payload))
        return "0x" + bytes(signed.signature).hex()

    def __repr__(self) -> str:
        return f"LocalAccountSigner(address={self.address!r})"


class ConfirmingSigner:
    """Asks ``confirm`` before every signature; a refusal raises ``UserCancelled``.

    ``confirm`` may block (e.g. on ``input``); it runs in a worker thread.
    """

    def __init__(self, inner: Signer, confirm: Confirm) -> None:
        self._inner = inner
        self._confirm = confirm

    @property
    def address(self) -> Address:
        return self._inner.address

    async def sign(self, payload: bytes) -> str:
        if not await asyncio.to_thread(self._confirm, payload):
            log.info("Signature declined for %s", self.address)
            raise UserCancelled("Transaction was rejected by user")
        return await self._inner.sign(payload)
