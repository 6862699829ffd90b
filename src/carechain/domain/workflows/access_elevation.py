"""Grant-then-verify access elevation for emergency responders.

A confirmed ``emergencyAccess`` write is not proof that access took effect, so
the workflow re-reads ``checkEmergencyAccess`` before it trusts the grant. Only
a verified grant populates the case load.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from carechain.domain.errors import ErrorKind, ValidationError
from carechain.domain.model import (
    ACCESS_CHECK_OPERATION,
    CollectionKind,
    LedgerAction,
)
from carechain.domain.normalization import normalize_records
from carechain.domain.orchestration import TransactionPhase, TransactionRequest

if TYPE_CHECKING:
    from collections.abc import Iterable

    from carechain.domain.model import Address, CompletedService, HealthRecord
    from carechain.domain.orchestration import TransactionOrchestrator
    from carechain.domain.ports import Receipt, Signer

log = getLogger(__name__)


class ElevationState(StrEnum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    VERIFYING = "verifying"
    GRANTED = "granted"
    FAILED = "failed"


class ElevationMode(StrEnum):
    EMERGENCY = "emergency"
    # grant only, the target's records are not loaded
    BATCH = "batch"


_PHASE_STATES: dict[TransactionPhase, ElevationState] = {
    TransactionPhase.SUBMITTING: ElevationState.SUBMITTING,
    TransactionPhase.CONFIRMING: ElevationState.CONFIRMING,
    TransactionPhase.VERIFYING: ElevationState.VERIFYING,
    TransactionPhase.APPLYING: ElevationState.GRANTED,
}


@dataclass(frozen=True, slots=True, kw_only=True)
class ElevationResult:
    target: Address
    mode: ElevationMode
    state: ElevationState
    records: tuple[HealthRecord, ...] = ()
    error: Exception | None = None
    error_kind: ErrorKind | None = None

    @property
    def granted(self) -> bool:
        return self.state is ElevationState.GRANTED


class EmergencyCaseLoad:
    """Records a responder is currently handling and the services already closed out."""

    def __init__(self) -> None:
        self._active: tuple[HealthRecord, ...] = ()
        self._completed: tuple[CompletedService, ...] = ()

    @property
    def active(self) -> tuple[HealthRecord, ...]:
        return self._active

    @property
    def completed(self) -> tuple[CompletedService, ...]:
        return self._completed

    def records_for(self, patient: Address) -> tuple[HealthRecord, ...]:
        return tuple(record for record in self._active if record.owner == patient)

    def is_active(self, record: HealthRecord) -> bool:
        return any(active.identity == record.identity for active in self._active)

    def activate(self, patient: Address, records: Iterable[HealthRecord]) -> None:
        """Replace the active records of ``patient``; other patients are kept."""

        kept = tuple(record for record in self._active if record.owner != patient)
        self._active = kept + tuple(records)

    def complete(self, service: CompletedService) -> None:
        source = service.source_record.identity
        self._active = tuple(record for record in self._active if record.identity != source)
        self._completed = (*self._completed, service)


class AccessElevationWorkflow:
    def __init__(
        self,
        orchestrator: TransactionOrchestrator,
        signer: Signer,
        *,
        case_load: EmergencyCaseLoad | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._signer = signer
        self.case_load = case_load or EmergencyCaseLoad()
        self._states: dict[Address, ElevationState] = {}

    def state(self, target: Address) -> ElevationState:
        return self._states.get(target, ElevationState.IDLE)

    async def elevate(
        self, target: Address, *, mode: ElevationMode = ElevationMode.EMERGENCY
    ) -> ElevationResult:
        """Request access to ``target`` and verify it before trusting the grant."""

        target = target.strip()
        description = f"get {mode} access"
        if not target:
            exc = ValidationError("target", f"Please enter patient's address for {mode} access")
            kind, _ = self._orchestrator.report_failure(
                exc, description=description, dedupe_key=f"validation:elevate:{mode}"
            )
            return ElevationResult(
                target=target, mode=mode, state=ElevationState.FAILED, error=exc, error_kind=kind
            )

        caller = self._signer.address
        gateway = self._orchestrator.gateway

        async def verify(_receipt: Receipt) -> bool:
            await self._orchestrator.ensure_supported(ACCESS_CHECK_OPERATION)
            return await gateway.check_access(caller, target)

        async def load_records(_receipt: Receipt) -> tuple[HealthRecord, ...]:
            await self._orchestrator.ensure_supported(CollectionKind.RECORDS.operation)
            raw = await gateway.read_collection(CollectionKind.RECORDS, target)
            records = normalize_records(raw, owner=target)
            self.case_load.activate(target, records)
            return records

        def track(phase: TransactionPhase) -> None:
            self._states[target] = _PHASE_STATES[phase]

        request = TransactionRequest(
            action=LedgerAction.GRANT_EMERGENCY_ACCESS,
            args={"patient": target},
            signer=self._signer,
            target=target,
            description=description,
            success_message=f"{mode.capitalize()} access granted successfully",
            postcondition=verify,
            apply=load_records if mode is ElevationMode.EMERGENCY else None,
            on_phase=track,
            dedupe_key=f"granted:{mode}:{target}",
        )
        outcome = await self._orchestrator.execute(request)

        if not outcome.succeeded:
            # a concurrent elevation for the same target keeps its own state
            if outcome.error_kind is not ErrorKind.IN_PROGRESS:
                self._states[target] = ElevationState.FAILED
            return ElevationResult(
                target=target,
                mode=mode,
                state=ElevationState.FAILED,
                error=outcome.error,
                error_kind=outcome.error_kind,
            )

        self._states[target] = ElevationState.GRANTED
        records: tuple[HealthRecord, ...] = outcome.value or ()  # type: ignore[assignment]
        log.info("%s access granted for %s, %s records loaded", mode, target, len(records))
        return ElevationResult(
            target=target, mode=mode, state=ElevationState.GRANTED, records=records
        )
