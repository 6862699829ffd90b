"""Close out an emergency service by writing a service record for the patient."""

from __future__ import annotations

import json
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from carechain.domain.errors import ValidationError
from carechain.domain.model import (
    CompletedService,
    DataType,
    LedgerAction,
    short_address,
)
from carechain.domain.notifications import utcnow
from carechain.domain.orchestration import TransactionRequest

if TYPE_CHECKING:
    from datetime import datetime

    from carechain.domain.errors import ErrorKind
    from carechain.domain.model import HealthRecord
    from carechain.domain.notifications import Clock
    from carechain.domain.orchestration import TransactionOrchestrator
    from carechain.domain.ports import BlobStore, Receipt, Signer

    from .access_elevation import EmergencyCaseLoad

log = getLogger(__name__)

SERVICE_TYPE = "Ambulance Emergency Service"
SERVICE_DESCRIPTION = "Emergency medical transport and first aid services provided"
_DESCRIPTION = "complete emergency service"


@dataclass(frozen=True, slots=True, kw_only=True)
class ServiceCompletion:
    record: HealthRecord
    service: CompletedService | None = None
    error: Exception | None = None
    error_kind: ErrorKind | None = None

    @property
    def succeeded(self) -> bool:
        return self.service is not None


def service_summary(record: HealthRecord, provider: str, at: datetime) -> bytes:
    """JSON document stored alongside the service record."""

    payload = {
        "serviceType": SERVICE_TYPE,
        "patientAddress": record.owner,
        "ambulanceProvider": provider,
        "originalRecordId": record.ipfs_cid,
        "serviceDate": at.isoformat(),
        "timestamp": int(at.timestamp()),
        "serviceDescription": SERVICE_DESCRIPTION,
        "status": "completed",
    }
    return json.dumps(payload, sort_keys=True).encode("utf-8")


class EmergencyServiceWorkflow:
    def __init__(
        self,
        orchestrator: TransactionOrchestrator,
        signer: Signer,
        blob_store: BlobStore,
        *,
        case_load: EmergencyCaseLoad,
        clock: Clock = utcnow,
    ) -> None:
        self._orchestrator = orchestrator
        self._signer = signer
        self._blob_store = blob_store
        self.case_load = case_load
        self._clock = clock

    async def complete(self, record: HealthRecord) -> ServiceCompletion:
        """Store the service summary, record it on the Ledger, then retire ``record``.

        The record only moves from the active case load to the completed list
        after the Ledger confirmed the ``addEHRData`` write.
        """

        key = ("completeEmergencyService", f"{record.owner}:{record.ipfs_cid}")
        try:
            with self._orchestrator.guard.hold(key):
                if not self.case_load.is_active(record):
                    raise ValidationError(
                        "record", "Record is not part of the active emergency case load"
                    )
                await self._orchestrator.ensure_supported(LedgerAction.ADD_HEALTH_RECORD)
                started = self._clock()
                cid = await self._blob_store.store(
                    service_summary(record, self._signer.address, started)
                )
                return await self._record(record, cid, started)
        except Exception as exc:  # noqa: BLE001
            kind, _ = self._orchestrator.report_failure(
                exc,
                description=_DESCRIPTION,
                dedupe_key=f"failed:service:{record.owner}:{record.ipfs_cid}",
            )
            return ServiceCompletion(record=record, error=exc, error_kind=kind)

    async def _record(
        self, record: HealthRecord, cid: str, started: datetime
    ) -> ServiceCompletion:
        provider = self._signer.address

        async def retire(_receipt: Receipt) -> CompletedService:
            service = CompletedService(
                patient=record.owner,
                source_record=record,
                service_cid=cid,
                service_provider=provider,
                completed_at=int(started.timestamp()),
                service_type=SERVICE_TYPE,
            )
            self.case_load.complete(service)
            return service

        outcome = await self._orchestrator.execute(
            TransactionRequest(
                action=LedgerAction.ADD_HEALTH_RECORD,
                args={
                    "patient": record.owner,
                    "ipfsCid": cid,
                    "dataType": DataType.EMERGENCY_RECORD.ordinal,
                    "encryptedSymmetricKey": record.encrypted_symmetric_key,
                },
                signer=self._signer,
                target=record.owner,
                description=_DESCRIPTION,
                success_message=(
                    "Emergency service completed successfully! Record added to patient "
                    f"{short_address(record.owner)} history."
                ),
                apply=retire,
                dedupe_key=f"service:{record.owner}:{cid}",
            )
        )
        if not outcome.succeeded:
            return ServiceCompletion(
                record=record, error=outcome.error, error_kind=outcome.error_kind
            )
        log.info("Emergency service for %s recorded as %s", record.owner, cid)
        return ServiceCompletion(record=record, service=outcome.value)  # type: ignore[arg-type]
