"""Owner decisions on incoming permission requests."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from carechain.domain.model import CollectionKind, LedgerAction
from carechain.domain.orchestration import TransactionRequest

if TYPE_CHECKING:
    from carechain.domain.orchestration import TransactionOrchestrator, TransactionOutcome
    from carechain.domain.ports import Signer
    from carechain.domain.reconciliation import StateReconciler

log = getLogger(__name__)

_VERBS: dict[LedgerAction, tuple[str, str]] = {
    LedgerAction.APPROVE_PERMISSION: ("approve request", "Permission request {id} approved"),
    LedgerAction.DECLINE_PERMISSION: ("decline request", "Permission request {id} declined"),
    LedgerAction.APPROVE_BATCH_ACCESS: (
        "approve batch access request",
        "Batch access request approved successfully!",
    ),
}


class PermissionReviewWorkflow:
    """Approve or decline requests, then re-read permission requests from the Ledger.

    Request status is never changed locally; the follow-up reconciliation
    observes the transition like any other.
    """

    def __init__(
        self,
        orchestrator: TransactionOrchestrator,
        signer: Signer,
        reconciler: StateReconciler,
    ) -> None:
        self._orchestrator = orchestrator
        self._signer = signer
        self._reconciler = reconciler

    async def approve(self, request_id: int) -> TransactionOutcome:
        return await self._decide(LedgerAction.APPROVE_PERMISSION, request_id)

    async def decline(self, request_id: int) -> TransactionOutcome:
        return await self._decide(LedgerAction.DECLINE_PERMISSION, request_id)

    async def approve_batch(self, request_id: int) -> TransactionOutcome:
        return await self._decide(LedgerAction.APPROVE_BATCH_ACCESS, request_id)

    async def _decide(self, action: LedgerAction, request_id: int) -> TransactionOutcome:
        description, success = _VERBS[action]
        outcome = await self._orchestrator.execute(
            TransactionRequest(
                action=action,
                args={"requestId": request_id},
                signer=self._signer,
                # one decision per request at a time
                target=f"request:{request_id}",
                description=description,
                success_message=success.format(id=request_id),
                dedupe_key=f"decided:{action}:{request_id}",
                kind=CollectionKind.PERMISSION_REQUESTS,
            )
        )
        if outcome.succeeded:
            log.info("%s confirmed for request %s", action, request_id)
            await self._reconciler.refresh_after_write(CollectionKind.PERMISSION_REQUESTS)
        return outcome
