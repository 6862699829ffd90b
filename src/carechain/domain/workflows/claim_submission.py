"""Insurance claim submission: validate, store the document, submit, reconcile.

The workflow never builds the new claim locally. After confirmation it resets
the draft and lets the claims reconciler pick the claim up from the Ledger,
since the Ledger assigns the id and may canonicalize the submitted fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from carechain.domain.errors import ValidationError
from carechain.domain.model import (
    CollectionKind,
    LedgerAction,
    is_address,
    to_base_units,
)
from carechain.domain.orchestration import TransactionRequest

if TYPE_CHECKING:
    from carechain.domain.errors import ErrorKind
    from carechain.domain.model import BaseUnits, ContentId
    from carechain.domain.orchestration import TransactionOrchestrator, TransactionOutcome
    from carechain.domain.ports import BlobStore, Signer
    from carechain.domain.reconciliation import RefreshResult, StateReconciler

log = getLogger(__name__)

_DESCRIPTION = "submit insurance claim"


@dataclass(slots=True, kw_only=True)
class ClaimDraft:
    """Mutable claim form as entered by the patient."""

    claim_amount: str = ""
    diagnosis: str = ""
    hospital_name: str = ""
    insurance_provider: str = ""
    document: bytes | None = None
    document_name: str = ""

    def reset(self) -> None:
        self.claim_amount = ""
        self.diagnosis = ""
        self.hospital_name = ""
        self.insurance_provider = ""
        self.document = None
        self.document_name = ""


@dataclass(frozen=True, slots=True, kw_only=True)
class ClaimSubmissionResult:
    document_cid: ContentId | None = None
    amount: BaseUnits | None = None
    outcome: TransactionOutcome | None = None
    refresh: RefreshResult | None = None
    error: Exception | None = None
    error_kind: ErrorKind | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.outcome is not None


def validate_draft(draft: ClaimDraft) -> BaseUnits:
    """Check every required field in form order; return the amount in base units.

    Raises ``ValidationError`` naming the first offending field.
    """

    amount_text = draft.claim_amount.strip()
    if not amount_text:
        raise ValidationError("claim_amount", "Please enter the claim amount")
    try:
        amount = to_base_units(amount_text)
    except ValueError:
        raise ValidationError("claim_amount", "Claim amount must be a number") from None
    if amount <= 0:
        raise ValidationError("claim_amount", "Claim amount must be greater than zero")
    if not draft.diagnosis.strip():
        raise ValidationError("diagnosis", "Please enter the diagnosis")
    if not draft.hospital_name.strip():
        raise ValidationError("hospital_name", "Please enter the hospital name")
    provider = draft.insurance_provider.strip()
    if not provider:
        raise ValidationError("insurance_provider", "Please enter the insurance provider address")
    if not is_address(provider):
        raise ValidationError("insurance_provider", "Insurance provider must be a valid address")
    if not draft.document:
        raise ValidationError("document", "Please upload a medical report")
    return amount


class ClaimSubmissionWorkflow:
    def __init__(
        self,
        orchestrator: TransactionOrchestrator,
        signer: Signer,
        blob_store: BlobStore,
        reconciler: StateReconciler,
        *,
        draft: ClaimDraft | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._signer = signer
        self._blob_store = blob_store
        self._reconciler = reconciler
        self.draft = draft or ClaimDraft()

    async def submit(self, draft: ClaimDraft | None = None) -> ClaimSubmissionResult:
        """Submit ``draft`` (the workflow's own draft by default).

        Invalid drafts publish a warning and raise ``ValidationError`` before any
        storage or Ledger call. Every later failure is returned, not raised, and
        leaves the draft untouched.
        """

        draft = draft or self.draft
        try:
            amount = validate_draft(draft)
        except ValidationError as exc:
            self._orchestrator.report_failure(
                exc,
                description=_DESCRIPTION,
                dedupe_key=f"validation:claim:{exc.field}",
                kind=CollectionKind.CLAIMS,
            )
            raise

        key = ("claimSubmission", self._signer.address)
        try:
            with self._orchestrator.guard.hold(key):
                await self._orchestrator.ensure_supported(LedgerAction.SUBMIT_INSURANCE_CLAIM)
                cid = await self._blob_store.store(draft.document or b"")
                log.debug("Claim document stored as %s", cid)
                outcome = await self._orchestrator.execute(self._request(draft, cid, amount))
        except Exception as exc:  # noqa: BLE001
            kind, _ = self._orchestrator.report_failure(
                exc,
                description=_DESCRIPTION,
                dedupe_key=f"failed:claim:{self._signer.address}",
                kind=CollectionKind.CLAIMS,
            )
            return ClaimSubmissionResult(amount=amount, error=exc, error_kind=kind)

        if not outcome.succeeded:
            return ClaimSubmissionResult(
                document_cid=cid,
                amount=amount,
                outcome=outcome,
                error=outcome.error,
                error_kind=outcome.error_kind,
            )

        draft.reset()
        refresh = await self._reconciler.refresh_after_write(CollectionKind.CLAIMS)
        log.info("Insurance claim submitted for %s, document %s", self._signer.address, cid)
        return ClaimSubmissionResult(
            document_cid=cid, amount=amount, outcome=outcome, refresh=refresh
        )

    def _request(self, draft: ClaimDraft, cid: ContentId, amount: BaseUnits) -> TransactionRequest:
        return TransactionRequest(
            action=LedgerAction.SUBMIT_INSURANCE_CLAIM,
            args={
                "insurer": draft.insurance_provider.strip(),
                "ipfsHash": cid,
                "claimAmount": amount,
                "diagnosis": draft.diagnosis.strip(),
                "hospitalName": draft.hospital_name.strip(),
            },
            signer=self._signer,
            target=self._signer.address,
            description=_DESCRIPTION,
            success_message=(
                "Insurance claim submitted successfully! "
                "Your claim is now pending review by the insurance provider."
            ),
            kind=CollectionKind.CLAIMS,
        )
