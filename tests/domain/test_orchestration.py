from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from carechain.domain.errors import ErrorKind, LedgerRejected, OperationInProgress
from carechain.domain.model import CollectionKind, LedgerAction, Severity
from carechain.domain.orchestration import (
    InFlightGuard,
    TransactionOrchestrator,
    TransactionOutcome,
    TransactionPhase,
    TransactionRequest,
)
from tests.helpers.ledger import PATIENT, FakeSigner, ScriptedGateway

if TYPE_CHECKING:
    from carechain.domain.notifications import NotificationFeed
    from carechain.domain.orchestration import ApplyStep, Postcondition
    from carechain.domain.ports import Receipt


def _request(
    signer: FakeSigner,
    *,
    postcondition: Postcondition | None = None,
    apply: ApplyStep | None = None,
    phases: list[TransactionPhase] | None = None,
    action: LedgerAction = LedgerAction.GRANT_EMERGENCY_ACCESS,
) -> TransactionRequest:
    return TransactionRequest(
        action=action,
        args={"patient": PATIENT},
        signer=signer,
        target=PATIENT,
        description="get emergency access",
        success_message="Emergency access granted successfully",
        postcondition=postcondition,
        apply=apply,
        on_phase=phases.append if phases is not None else None,
        dedupe_key=f"granted:{PATIENT}",
        kind=CollectionKind.RECORDS,
    )


def test_successful_write_runs_every_phase_in_order(
    orchestrator: TransactionOrchestrator,
    gateway: ScriptedGateway,
    signer: FakeSigner,
    feed: NotificationFeed,
) -> None:
    phases: list[TransactionPhase] = []

    async def verify(_receipt: Receipt) -> bool:
        return True

    async def apply(receipt: Receipt) -> str:
        return f"applied {receipt.handle}"

    outcome = asyncio.run(
        orchestrator.execute(_request(signer, postcondition=verify, apply=apply, phases=phases))
    )

    assert outcome.succeeded
    assert phases == [
        TransactionPhase.SUBMITTING,
        TransactionPhase.CONFIRMING,
        TransactionPhase.VERIFYING,
        TransactionPhase.APPLYING,
    ]
    assert outcome.value == "applied 0x1"
    assert gateway.writes == [(LedgerAction.GRANT_EMERGENCY_ACCESS, {"patient": PATIENT})]
    (event,) = feed.history
    assert event.severity is Severity.SUCCESS
    assert event.message == "Emergency access granted successfully"
    assert event.dedupe_key == f"granted:{PATIENT}"


def test_failed_postcondition_never_applies(
    orchestrator: TransactionOrchestrator, signer: FakeSigner, feed: NotificationFeed
) -> None:
    applied: list[Receipt] = []

    async def verify(_receipt: Receipt) -> bool:
        return False

    async def apply(receipt: Receipt) -> None:
        applied.append(receipt)

    outcome = asyncio.run(
        orchestrator.execute(_request(signer, postcondition=verify, apply=apply))
    )

    assert not outcome.succeeded
    assert outcome.error_kind is ErrorKind.VERIFICATION_MISMATCH
    assert applied == []
    (event,) = feed.history
    assert event.severity is Severity.ERROR
    assert event.dedupe_key == f"failed:emergencyAccess:{PATIENT}"


def test_declined_signature_is_a_soft_failure(
    orchestrator: TransactionOrchestrator, gateway: ScriptedGateway, feed: NotificationFeed
) -> None:
    signer = FakeSigner(decline=True)

    outcome = asyncio.run(orchestrator.execute(_request(signer)))

    assert outcome.error_kind is ErrorKind.USER_CANCELLED
    assert gateway.writes == []
    (event,) = feed.history
    assert event.severity is Severity.WARNING
    assert event.message == "Transaction was rejected by user"


def test_unsupported_action_is_refused_before_signing(
    feed: NotificationFeed, signer: FakeSigner
) -> None:
    gateway = ScriptedGateway(operations={"checkEmergencyAccess"})
    orchestrator = TransactionOrchestrator(gateway, feed=feed)

    outcome = asyncio.run(orchestrator.execute(_request(signer)))

    assert outcome.error_kind is ErrorKind.UNSUPPORTED_OPERATION
    assert signer.payloads == []
    assert feed.history[-1].message == "Feature not available: emergencyAccess"


def test_reverted_write_uses_friendly_reason(
    orchestrator: TransactionOrchestrator,
    gateway: ScriptedGateway,
    signer: FakeSigner,
    feed: NotificationFeed,
) -> None:
    gateway.confirm_error = LedgerRejected("Invalid patient address")

    outcome = asyncio.run(orchestrator.execute(_request(signer)))

    assert outcome.error_kind is ErrorKind.LEDGER_REJECTED
    assert outcome.receipt is None
    assert feed.history[-1].message == "Invalid patient address provided"


def test_unexpected_exception_is_captured(
    orchestrator: TransactionOrchestrator, signer: FakeSigner, feed: NotificationFeed
) -> None:
    async def apply(_receipt: Receipt) -> None:
        raise RuntimeError("boom")

    outcome = asyncio.run(orchestrator.execute(_request(signer, apply=apply)))

    assert outcome.error_kind is ErrorKind.UNEXPECTED
    assert isinstance(outcome.error, RuntimeError)
    assert feed.history[-1].message == "Failed to get emergency access: boom"


def test_same_action_and_target_cannot_run_twice(
    orchestrator: TransactionOrchestrator, gateway: ScriptedGateway, signer: FakeSigner
) -> None:
    async def scenario() -> tuple[TransactionOutcome, TransactionOutcome]:
        release = asyncio.Event()

        async def apply(_receipt: Receipt) -> None:
            await release.wait()

        first = asyncio.create_task(orchestrator.execute(_request(signer, apply=apply)))
        while not orchestrator.guard.is_active(("emergencyAccess", PATIENT)):
            await asyncio.sleep(0)
        second = await orchestrator.execute(_request(signer))
        release.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert first.succeeded
    assert second.error_kind is ErrorKind.IN_PROGRESS
    assert len(gateway.writes) == 1
    assert not orchestrator.guard.is_active(("emergencyAccess", PATIENT))


def test_guard_releases_key_after_failure() -> None:
    guard = InFlightGuard()
    key = ("submitInsuranceClaim", PATIENT)

    with pytest.raises(ValueError, match="inner"), guard.hold(key):
        with pytest.raises(OperationInProgress), guard.hold(key):
            pass
        raise ValueError("inner")

    assert not guard.is_active(key)


def test_report_failure_publishes_classified_event(
    orchestrator: TransactionOrchestrator, feed: NotificationFeed
) -> None:
    kind, event = orchestrator.report_failure(
        LedgerRejected("Request not found"),
        description="approve request",
        dedupe_key="failed:approve",
        kind=CollectionKind.PERMISSION_REQUESTS,
    )

    assert kind is ErrorKind.LEDGER_REJECTED
    assert event.message == "Failed to approve request: Request not found"
    assert event.kind is CollectionKind.PERMISSION_REQUESTS
    assert feed.history == (event,)
