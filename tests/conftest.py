from __future__ import annotations

import pytest

from carechain.domain.capabilities import LedgerCapabilities
from carechain.domain.notifications import NotificationEmitter, NotificationFeed
from carechain.domain.orchestration import TransactionOrchestrator
from carechain.domain.reconciliation import StateReconciler
from tests.helpers.ledger import PATIENT, FakeBlobStore, FakeSigner, ScriptedGateway, fixed_clock


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner(PATIENT)


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def feed() -> NotificationFeed:
    return NotificationFeed()


@pytest.fixture
def emitter() -> NotificationEmitter:
    return NotificationEmitter(clock=fixed_clock)


@pytest.fixture
def capabilities(gateway: ScriptedGateway) -> LedgerCapabilities:
    return LedgerCapabilities(gateway)


@pytest.fixture
def orchestrator(
    gateway: ScriptedGateway,
    feed: NotificationFeed,
    emitter: NotificationEmitter,
    capabilities: LedgerCapabilities,
) -> TransactionOrchestrator:
    return TransactionOrchestrator(gateway, feed=feed, capabilities=capabilities, emitter=emitter)


@pytest.fixture
def reconciler(
    gateway: ScriptedGateway,
    feed: NotificationFeed,
    emitter: NotificationEmitter,
    capabilities: LedgerCapabilities,
) -> StateReconciler:
    return StateReconciler(
        gateway,
        owner=PATIENT,
        feed=feed,
        emitter=emitter,
        capabilities=capabilities,
        clock=fixed_clock,
    )
