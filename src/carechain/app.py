"""Application wiring and entry points."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Self

from carechain.adapters.ipfs import IpfsBlobStore
from carechain.adapters.ledger import HttpLedgerGateway
from carechain.adapters.signing import ConfirmingSigner, LocalAccountSigner
from carechain.adapters.simulated import SimulatedBlobStore, SimulatedLedger
from carechain.config import (
    SyncConfig,
    get_ipfs_config,
    get_ledger_config,
    get_signer_config,
    get_sync_config,
)
from carechain.domain.capabilities import LedgerCapabilities
from carechain.domain.model import DataType, PermissionType
from carechain.domain.notifications import NotificationEmitter, NotificationFeed, utcnow
from carechain.domain.orchestration import TransactionOrchestrator
from carechain.domain.reconciliation import (
    RefreshScheduler,
    StateReconciler,
    VisibilitySignal,
    intervals_from_config,
)
from carechain.domain.workflows import (
    AccessElevationWorkflow,
    ClaimSubmissionWorkflow,
    ElevationMode,
    EmergencyCaseLoad,
    EmergencyServiceWorkflow,
    PermissionReviewWorkflow,
)

if TYPE_CHECKING:
    from types import TracebackType

    from carechain.adapters.signing import Confirm
    from carechain.domain.model import Address, ContentId
    from carechain.domain.notifications import Clock, Listener
    from carechain.domain.orchestration import TransactionOutcome
    from carechain.domain.ports import BlobStore, LedgerGateway, Signer
    from carechain.domain.workflows import (
        ClaimDraft,
        ClaimSubmissionResult,
        ElevationResult,
        ServiceCompletion,
    )

log = getLogger(__name__)

type Closer = Callable[[], Awaitable[None]]


@dataclass(slots=True)
class CareChainSession:
    """Everything one signed-in identity needs, sharing a single feed and capability cache."""

    signer: Signer
    gateway: LedgerGateway
    blob_store: BlobStore
    feed: NotificationFeed
    reconciler: StateReconciler
    orchestrator: TransactionOrchestrator
    elevation: AccessElevationWorkflow
    emergency_service: EmergencyServiceWorkflow
    claims: ClaimSubmissionWorkflow
    review: PermissionReviewWorkflow
    sync: SyncConfig = field(default_factory=SyncConfig)
    closers: tuple[Closer, ...] = ()

    @property
    def owner(self) -> Address:
        return self.signer.address

    def scheduler(self, visibility: VisibilitySignal | None = None) -> RefreshScheduler:
        return RefreshScheduler(
            self.reconciler,
            intervals=intervals_from_config(self.sync),
            visibility=visibility,
        )

    async def aclose(self) -> None:
        await self.reconciler.aclose()
        for close in self.closers:
            await close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def build_session(
    *,
    gateway: LedgerGateway,
    blob_store: BlobStore,
    signer: Signer,
    sync: SyncConfig | None = None,
    clock: Clock = utcnow,
    closers: tuple[Closer, ...] = (),
) -> CareChainSession:
    effective_sync = sync or SyncConfig()
    feed = NotificationFeed(history=effective_sync.notification_history)
    emitter = NotificationEmitter(clock=clock)
    capabilities = LedgerCapabilities(gateway)
    reconciler = StateReconciler(
        gateway,
        owner=signer.address,
        feed=feed,
        emitter=emitter,
        capabilities=capabilities,
        clock=clock,
    )
    orchestrator = TransactionOrchestrator(
        gateway, feed=feed, capabilities=capabilities, emitter=emitter
    )
    case_load = EmergencyCaseLoad()
    return CareChainSession(
        signer=signer,
        gateway=gateway,
        blob_store=blob_store,
        feed=feed,
        reconciler=reconciler,
        orchestrator=orchestrator,
        elevation=AccessElevationWorkflow(orchestrator, signer, case_load=case_load),
        emergency_service=EmergencyServiceWorkflow(
            orchestrator, signer, blob_store, case_load=case_load, clock=clock
        ),
        claims=ClaimSubmissionWorkflow(orchestrator, signer, blob_store, reconciler),
        review=PermissionReviewWorkflow(orchestrator, signer, reconciler),
        sync=effective_sync,
        closers=closers,
    )


def build_http_session(*, confirm: Confirm | None = None) -> CareChainSession:
    """Session against the configured Ledger API and IPFS node."""

    signer: Signer = LocalAccountSigner.from_config(get_signer_config())
    if confirm is not None:
        signer = ConfirmingSigner(signer, confirm)
    gateway = HttpLedgerGateway(get_ledger_config())
    blob_store = IpfsBlobStore(get_ipfs_config())
    log.info("Connecting to ledger at %s as %s", gateway.config.base_url, signer.address)
    return build_session(
        gateway=gateway,
        blob_store=blob_store,
        signer=signer,
        sync=get_sync_config(),
        closers=(gateway.aclose, blob_store.aclose),
    )


def build_simulated_session(
    *, signer: Signer | None = None, confirm: Confirm | None = None
) -> tuple[CareChainSession, SimulatedLedger]:
    """Session against a fresh in-memory Ledger seeded with a little demo data."""

    effective_signer: Signer = signer or LocalAccountSigner.generate()
    if confirm is not None:
        effective_signer = ConfirmingSigner(effective_signer, confirm)
    verify = signer is None or isinstance(signer, LocalAccountSigner)
    ledger = SimulatedLedger(verify_signatures=verify)
    seed_demo_data(ledger, effective_signer.address)
    session = build_session(
        gateway=ledger, blob_store=SimulatedBlobStore(), signer=effective_signer
    )
    log.info("Using simulated ledger as %s", effective_signer.address)
    return session, ledger


def seed_demo_data(ledger: SimulatedLedger, owner: Address) -> None:
    ledger.add_record(owner, "sha256-demo-ehr", data_type=DataType.EHR, provider=owner)
    ledger.add_record(
        owner, "sha256-demo-lab", data_type=DataType.LAB_RESULT, provider=owner
    )
    ledger.add_permission_request(
        owner, "0x" + "a" * 40, permission_type=PermissionType.INSURANCE_PROCESSING
    )
    ledger.add_booking(owner, "City General Hospital", "General Ward")


async def watch(
    session: CareChainSession,
    *,
    on_event: Listener,
    duration: float | None = None,
) -> None:
    """Run the reconciliation loop, delivering every notification to ``on_event``."""

    subscription = session.feed.subscribe(on_event)
    log.info("Watching ledger state for %s", session.owner)
    try:
        async with session.scheduler():
            if duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration)
    finally:
        subscription.close()
    log.info("Stopped watching ledger state for %s", session.owner)


async def elevate_access(
    session: CareChainSession, patient: Address, *, batch: bool = False
) -> ElevationResult:
    mode = ElevationMode.BATCH if batch else ElevationMode.EMERGENCY
    log.info("Requesting %s access to %s", mode, patient)
    result = await session.elevation.elevate(patient, mode=mode)
    log.info("Finished %s access request for %s: %s", mode, patient, result.state)
    return result


async def complete_emergency_service(
    session: CareChainSession, patient: Address, cid: ContentId
) -> ServiceCompletion | ElevationResult:
    """Load ``patient``'s records under emergency access, then close out record ``cid``."""

    case_load = session.emergency_service.case_load
    record = next((r for r in case_load.records_for(patient) if r.ipfs_cid == cid), None)
    if record is None:
        elevation = await elevate_access(session, patient)
        if not elevation.granted:
            return elevation
        record = next((r for r in elevation.records if r.ipfs_cid == cid), None)
    if record is None:
        raise ValueError(f"No record {cid} found for patient {patient}")
    return await session.emergency_service.complete(record)


async def submit_claim(session: CareChainSession, draft: ClaimDraft) -> ClaimSubmissionResult:
    log.info("Submitting insurance claim for %s", session.owner)
    result = await session.claims.submit(draft)
    log.info(
        "Finished insurance claim submission: succeeded=%s, document=%s",
        result.succeeded,
        result.document_cid,
    )
    return result


async def review_request(
    session: CareChainSession, decision: str, request_id: int
) -> TransactionOutcome:
    actions = {
        "approve": session.review.approve,
        "decline": session.review.decline,
        "approve-batch": session.review.approve_batch,
    }
    try:
        action = actions[decision]
    except KeyError:
        raise ValueError(f"Unsupported review decision: {decision}") from None
    return await action(request_id)
