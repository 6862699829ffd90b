from __future__ import annotations

import asyncio

import pytest

from carechain.domain.errors import ErrorKind, UserCancelled, ValidationError
from carechain.domain.model import CollectionKind, LedgerAction, Severity
from carechain.domain.notifications import NotificationFeed
from carechain.domain.orchestration import TransactionOrchestrator
from carechain.domain.reconciliation import StateReconciler
from carechain.domain.workflows import (
    ClaimDraft,
    ClaimSubmissionResult,
    ClaimSubmissionWorkflow,
    validate_draft,
)
from tests.helpers.ledger import (
    INSURER,
    FakeBlobStore,
    FakeSigner,
    ScriptedGateway,
    raw_claim,
)


def _draft(**overrides: object) -> ClaimDraft:
    values: dict[str, object] = {
        "claim_amount": "1.5",
        "diagnosis": "Fractured wrist",
        "hospital_name": "City General",
        "insurance_provider": INSURER,
        "document": b"%PDF-1.7 report",
        "document_name": "report.pdf",
    }
    values.update(overrides)
    return ClaimDraft(**values)  # type: ignore[arg-type]


@pytest.fixture
def workflow(
    orchestrator: TransactionOrchestrator,
    signer: FakeSigner,
    blob_store: FakeBlobStore,
    reconciler: StateReconciler,
) -> ClaimSubmissionWorkflow:
    return ClaimSubmissionWorkflow(orchestrator, signer, blob_store, reconciler)


@pytest.mark.parametrize(
    ("overrides", "field", "message"),
    [
        ({"claim_amount": " "}, "claim_amount", "Please enter the claim amount"),
        ({"claim_amount": "lots"}, "claim_amount", "Claim amount must be a number"),
        ({"claim_amount": "0"}, "claim_amount", "Claim amount must be greater than zero"),
        ({"claim_amount": "-2"}, "claim_amount", "Claim amount must be greater than zero"),
        ({"diagnosis": ""}, "diagnosis", "Please enter the diagnosis"),
        ({"hospital_name": "  "}, "hospital_name", "Please enter the hospital name"),
        (
            {"insurance_provider": ""},
            "insurance_provider",
            "Please enter the insurance provider address",
        ),
        (
            {"insurance_provider": "Acme Insurance"},
            "insurance_provider",
            "Insurance provider must be a valid address",
        ),
        ({"document": None}, "document", "Please upload a medical report"),
    ],
)
def test_validate_draft_names_first_bad_field(
    overrides: dict[str, object], field: str, message: str
) -> None:
    with pytest.raises(ValidationError) as exc:
        validate_draft(_draft(**overrides))

    assert exc.value.field == field
    assert str(exc.value) == message


def test_validate_draft_checks_fields_in_form_order() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_draft(_draft(claim_amount="", diagnosis="", document=None))

    assert exc.value.field == "claim_amount"


def test_validate_draft_returns_base_units() -> None:
    assert validate_draft(_draft()) == 1_500_000_000_000_000_000


def test_invalid_draft_never_reaches_storage_or_ledger(
    workflow: ClaimSubmissionWorkflow,
    blob_store: FakeBlobStore,
    gateway: ScriptedGateway,
    feed: NotificationFeed,
) -> None:
    draft = _draft(diagnosis="")

    with pytest.raises(ValidationError):
        asyncio.run(workflow.submit(draft))

    assert blob_store.stored == []
    assert gateway.writes == []
    (event,) = feed.history
    assert event.severity is Severity.WARNING
    assert event.dedupe_key == "validation:claim:diagnosis"
    assert draft.hospital_name == "City General"


def test_successful_submission_resets_draft_and_reconciles_claims(
    workflow: ClaimSubmissionWorkflow,
    blob_store: FakeBlobStore,
    gateway: ScriptedGateway,
    feed: NotificationFeed,
) -> None:
    gateway.set_collection(CollectionKind.CLAIMS, [raw_claim(1)])
    draft = _draft(diagnosis="  Fractured wrist ")

    result = asyncio.run(workflow.submit(draft))

    assert result.succeeded
    assert result.document_cid == "bafy-1"
    assert result.amount == 1_500_000_000_000_000_000
    assert blob_store.stored == [b"%PDF-1.7 report"]
    assert gateway.writes == [
        (
            LedgerAction.SUBMIT_INSURANCE_CLAIM,
            {
                "insurer": INSURER,
                "ipfsHash": "bafy-1",
                "claimAmount": 1_500_000_000_000_000_000,
                "diagnosis": "Fractured wrist",
                "hospitalName": "City General",
            },
        )
    ]
    assert draft == ClaimDraft()
    assert result.refresh is not None
    assert gateway.read_calls == [CollectionKind.CLAIMS]
    claims = result.refresh.snapshot.items
    assert [claim.claim_id for claim in claims] == [1]  # type: ignore[union-attr]
    assert feed.history[-1].message.startswith("Insurance claim submitted successfully!")


def test_workflow_draft_is_used_by_default(
    orchestrator: TransactionOrchestrator,
    signer: FakeSigner,
    blob_store: FakeBlobStore,
    reconciler: StateReconciler,
) -> None:
    draft = _draft()
    workflow = ClaimSubmissionWorkflow(orchestrator, signer, blob_store, reconciler, draft=draft)

    result = asyncio.run(workflow.submit())

    assert result.succeeded
    assert workflow.draft.claim_amount == ""


def test_storage_failure_keeps_draft(
    workflow: ClaimSubmissionWorkflow,
    blob_store: FakeBlobStore,
    gateway: ScriptedGateway,
    feed: NotificationFeed,
) -> None:
    blob_store.fail = True
    draft = _draft()

    result = asyncio.run(workflow.submit(draft))

    assert not result.succeeded
    assert result.error_kind is ErrorKind.STORAGE_FAILURE
    assert result.document_cid is None
    assert gateway.writes == []
    assert draft.claim_amount == "1.5"
    assert feed.history[-1].message == (
        "Failed to submit insurance claim: the document could not be stored"
    )


def test_declined_signature_keeps_draft_and_skips_refresh(
    orchestrator: TransactionOrchestrator,
    blob_store: FakeBlobStore,
    reconciler: StateReconciler,
    gateway: ScriptedGateway,
) -> None:
    workflow = ClaimSubmissionWorkflow(
        orchestrator, FakeSigner(decline=True), blob_store, reconciler
    )
    draft = _draft()

    result = asyncio.run(workflow.submit(draft))

    assert result.error_kind is ErrorKind.USER_CANCELLED
    assert isinstance(result.error, UserCancelled)
    assert result.document_cid == "bafy-1"
    assert draft.document == b"%PDF-1.7 report"
    assert gateway.read_calls == []


def test_claim_is_picked_up_when_timer_cycle_spans_the_write(
    workflow: ClaimSubmissionWorkflow, reconciler: StateReconciler, gateway: ScriptedGateway
) -> None:
    async def scenario() -> tuple[ClaimSubmissionResult, int]:
        await reconciler.refresh(CollectionKind.CLAIMS)
        gateway.gate = asyncio.Event()
        assert reconciler.request_refresh(CollectionKind.CLAIMS)
        while len(gateway.read_calls) < 2:
            await asyncio.sleep(0)
        submit = asyncio.create_task(workflow.submit(_draft()))
        while not gateway.confirmed:
            await asyncio.sleep(0)
        gateway.set_collection(CollectionKind.CLAIMS, [raw_claim(1)])
        gateway.gate.set()
        result = await submit
        return result, len(gateway.read_calls)

    result, reads = asyncio.run(scenario())

    assert result.succeeded
    assert reads == 3
    assert [claim.claim_id for claim in reconciler.claims] == [1]
    assert result.refresh is not None
    assert len(result.refresh.snapshot.items) == 1
