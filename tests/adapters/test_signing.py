from __future__ import annotations

import asyncio
import threading

import pytest
from eth_account import Account

from carechain.adapters.signing import ConfirmingSigner, LocalAccountSigner, recover_signer
from carechain.config import SignerConfig
from carechain.domain.errors import UserCancelled

PRIVATE_KEY = "0x" + "4c" * 32


def test_signature_recovers_to_signer_address() -> None:
    signer = LocalAccountSigner(PRIVATE_KEY)
    payload = b'{"action":"emergencyAccess"}'

    signature = asyncio.run(signer.sign(payload))

    assert signer.address == Account.from_key(PRIVATE_KEY).address
    assert signature.startswith("0x")
    assert len(signature) == 2 + 65 * 2
    assert recover_signer(payload, signature) == signer.address
    assert recover_signer(b"tampered", signature) != signer.address


def test_from_config_and_generate() -> None:
    configured = LocalAccountSigner.from_config(SignerConfig(private_key=PRIVATE_KEY))
    generated = LocalAccountSigner.generate()

    assert configured.address == LocalAccountSigner(PRIVATE_KEY).address
    assert generated.address != configured.address
    assert PRIVATE_KEY not in repr(configured)
    assert configured.address in repr(configured)


def test_confirming_signer_asks_before_signing() -> None:
    prompts: list[bytes] = []

    def confirm(payload: bytes) -> bool:
        prompts.append(payload)
        return True

    inner = LocalAccountSigner(PRIVATE_KEY)
    signer = ConfirmingSigner(inner, confirm)

    signature = asyncio.run(signer.sign(b"payload"))

    assert prompts == [b"payload"]
    assert signer.address == inner.address
    assert recover_signer(b"payload", signature) == inner.address


def test_confirming_signer_declines() -> None:
    signer = ConfirmingSigner(LocalAccountSigner(PRIVATE_KEY), lambda _payload: False)

    with pytest.raises(UserCancelled, match="rejected by user"):
        asyncio.run(signer.sign(b"payload"))


def test_confirmation_runs_off_the_event_loop() -> None:
    threads: list[int] = []

    def confirm(_payload: bytes) -> bool:
        threads.append(threading.get_ident())
        return True

    signer = ConfirmingSigner(LocalAccountSigner(PRIVATE_KEY), confirm)

    asyncio.run(signer.sign(b"payload"))

    assert threads
    assert threads[0] != threading.get_ident()
