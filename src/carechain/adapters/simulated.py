"""In-memory Ledger and blob store for development, demos and tests.

``SimulatedLedger`` keeps the Ledger's raw tuple shapes (camelCase mappings with
ordinal enums) so reads still go through the normalizer. Writes are queued on
submit and only take effect, or revert, when their confirmation is awaited.
"""

from __future__ import annotations

import asyncio
import hashlib
import itertools
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from carechain.adapters.ledger.client import signing_payload
from carechain.adapters.signing import recover_signer
from carechain.domain.errors import (
    LedgerRejected,
    LedgerUnreachable,
    StorageFailure,
    UnsupportedOperation,
)
from carechain.domain.model import (
    ACCESS_CHECK_OPERATION,
    ClaimStatus,
    CollectionKind,
    DataType,
    LedgerAction,
    PermissionType,
    RequestStatus,
    is_address,
)
from carechain.domain.notifications import utcnow
from carechain.domain.ports import PendingWrite, Receipt

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from carechain.domain.model import Address, BaseUnits, ContentId
    from carechain.domain.notifications import Clock
    from carechain.domain.ports import Signer

log = getLogger(__name__)

ALL_OPERATIONS = frozenset(
    {kind.operation for kind in CollectionKind}
    | {str(action) for action in LedgerAction}
    | {ACCESS_CHECK_OPERATION}
)


@dataclass(frozen=True, slots=True)
class _QueuedWrite:
    action: LedgerAction
    args: Mapping[str, object]
    sender: Address


class SimulatedLedger:
    """Single-process stand-in for the Ledger API.

    ``ambulance_services`` restricts who may request emergency access (``None``
    allows everyone). ``grant_effective=False`` confirms grants without making
    them visible to ``check_access``.
    """

    def __init__(
        self,
        *,
        operations: Iterable[str] = ALL_OPERATIONS,
        ambulance_services: Iterable[Address] | None = None,
        grant_effective: bool = True,
        verify_signatures: bool = False,
        latency: float = 0.0,
        clock: Clock = utcnow,
    ) -> None:
        self.operations = frozenset(operations)
        self.ambulance_services = (
            frozenset(ambulance_services) if ambulance_services is not None else None
        )
        self.grant_effective = grant_effective
        self.verify_signatures = verify_signatures
        self.latency = latency
        self.reachable = True
        self.contract_address = "0x" + "0" * 40
        self._clock = clock
        self._records: dict[Address, list[dict[str, object]]] = {}
        self._requests: dict[Address, list[dict[str, object]]] = {}
        self._claims: dict[Address, list[dict[str, object]]] = {}
        self._bookings: dict[Address, list[dict[str, object]]] = {}
        self._grants: set[tuple[Address, Address]] = set()
        self._queued: dict[str, _QueuedWrite] = {}
        self._handles = itertools.count(1)
        self._request_ids = itertools.count(1)
        self._claim_ids = itertools.count(1)
        self.block = 0
        self.calls: list[str] = []

    # ------------------------------------------------------------------ gateway

    async def capabilities(self) -> frozenset[str]:
        await self._call("capabilities")
        return self.operations

    async def read_collection(self, kind: CollectionKind, owner: Address) -> Sequence[object]:
        await self._call(kind.operation)
        self._require(kind.operation)
        store = {
            CollectionKind.RECORDS: self._records,
            CollectionKind.PERMISSION_REQUESTS: self._requests,
            CollectionKind.CLAIMS: self._claims,
            CollectionKind.BOOKINGS: self._bookings,
        }[kind]
        return tuple(dict(item) for item in store.get(owner, ()))

    async def submit_write(
        self,
        action: LedgerAction,
        args: Mapping[str, object],
        *,
        signer: Signer,
    ) -> PendingWrite:
        await self._call(str(action))
        self._require(action)
        sender = signer.address
        payload = signing_payload(
            contract=self.contract_address, action=action, args=args, sender=sender
        )
        signature = await signer.sign(payload)
        if self.verify_signatures and recover_signer(payload, signature) != sender:
            raise LedgerRejected("Invalid signature")
        handle = f"0x{next(self._handles):064x}"
        self._queued[handle] = _QueuedWrite(action=action, args=dict(args), sender=sender)
        return PendingWrite(handle=handle, action=action, sender=sender)

    async def await_confirmation(self, pending: PendingWrite) -> Receipt:
        await self._call("confirm")
        queued = self._queued.pop(pending.handle, None)
        if queued is None:
            raise LedgerRejected(f"Unknown transaction {pending.handle}")
        self._apply(queued)
        self.block += 1
        log.debug("Simulated block %s: %s from %s", self.block, queued.action, queued.sender)
        return Receipt(handle=pending.handle, block=self.block)

    async def check_access(self, caller: Address, target: Address) -> bool:
        await self._call(ACCESS_CHECK_OPERATION)
        self._require(ACCESS_CHECK_OPERATION)
        return (caller, target) in self._grants

    # ------------------------------------------------------------------ seeding

    def add_record(
        self,
        owner: Address,
        ipfs_cid: ContentId,
        *,
        data_type: DataType = DataType.EHR,
        provider: Address = "",
        encrypted_symmetric_key: str = "",
    ) -> None:
        self._records.setdefault(owner, []).append(
            {
                "owner": owner,
                "ipfsCid": ipfs_cid,
                "dataType": data_type.ordinal,
                "provider": provider,
                "timestamp": self._now(),
                "isValid": True,
                "encryptedSymmetricKey": encrypted_symmetric_key,
            }
        )

    def add_permission_request(
        self,
        patient: Address,
        requester: Address,
        *,
        permission_type: PermissionType = PermissionType.VIEW,
        ipfs_cid: ContentId = "",
        incentive_amount: BaseUnits = 0,
    ) -> int:
        request_id = next(self._request_ids)
        now = self._now()
        self._requests.setdefault(patient, []).append(
            {
                "requestId": request_id,
                "requester": requester,
                "ipfsCid": ipfs_cid,
                "permissionType": permission_type.ordinal,
                "status": RequestStatus.PENDING.ordinal,
                "requestDate": now,
                "expiryDate": now + 7 * 24 * 3600,
                "incentiveAmount": incentive_amount,
                "isIncentiveBased": incentive_amount > 0,
            }
        )
        return request_id

    def add_booking(self, patient: Address, hospital_name: str, room_type: str) -> None:
        self._bookings.setdefault(patient, []).append(
            {"hospitalName": hospital_name, "roomType": room_type, "bookingDate": self._now()}
        )

    def decide_claim(
        self, claim_id: int, status: ClaimStatus, *, reason: str = ""
    ) -> None:
        claim = self._find(self._claims, "claimId", claim_id)
        if claim is None:
            raise KeyError(claim_id)
        claim["status"] = status.ordinal
        claim["rejectionReason"] = reason

    def request_status(self, request_id: int) -> RequestStatus:
        request = self._find(self._requests, "requestId", request_id)
        if request is None:
            raise KeyError(request_id)
        return RequestStatus.from_ordinal(int(request["status"]))  # type: ignore[arg-type]

    def has_grant(self, caller: Address, target: Address) -> bool:
        return (caller, target) in self._grants

    # ------------------------------------------------------------------ internals

    async def _call(self, name: str) -> None:
        self.calls.append(name)
        await asyncio.sleep(self.latency)
        if not self.reachable:
            raise LedgerUnreachable("Simulated ledger is offline")

    def _require(self, operation: str) -> None:
        if operation not in self.operations:
            raise UnsupportedOperation(operation)

    def _now(self) -> int:
        return int(self._clock().timestamp())

    @staticmethod
    def _find(
        store: dict[Address, list[dict[str, object]]], key: str, value: object
    ) -> dict[str, object] | None:
        for items in store.values():
            for item in items:
                if item[key] == value:
                    return item
        return None

    def _apply(self, write: _QueuedWrite) -> None:
        args = write.args
        match write.action:
            case LedgerAction.GRANT_EMERGENCY_ACCESS:
                patient = str(args.get("patient", ""))
                self._check_patient(patient)
                if (
                    self.ambulance_services is not None
                    and write.sender not in self.ambulance_services
                ):
                    raise LedgerRejected("Only ambulance services can request emergency access")
                if self.grant_effective:
                    self._grants.add((write.sender, patient))
            case LedgerAction.ADD_HEALTH_RECORD:
                patient = str(args.get("patient", ""))
                self._check_patient(patient)
                cid = str(args.get("ipfsCid", ""))
                if any(record["ipfsCid"] == cid for record in self._records.get(patient, ())):
                    raise LedgerRejected("Record already exists")
                self.add_record(
                    patient,
                    cid,
                    data_type=DataType.from_ordinal(
                        int(args.get("dataType", 0))  # type: ignore[arg-type]
                    ),
                    provider=write.sender,
                    encrypted_symmetric_key=str(args.get("encryptedSymmetricKey", "")),
                )
            case LedgerAction.APPROVE_PERMISSION:
                self._decide(write, RequestStatus.APPROVED)
            case LedgerAction.DECLINE_PERMISSION:
                self._decide(write, RequestStatus.REJECTED)
            case LedgerAction.APPROVE_BATCH_ACCESS:
                self._decide(write, RequestStatus.APPROVED, batch_only=True)
            case LedgerAction.SUBMIT_INSURANCE_CLAIM:
                self._submit_claim(write)

    def _check_patient(self, patient: Address) -> None:
        if not is_address(patient):
            raise LedgerRejected("Invalid patient address")

    def _decide(
        self, write: _QueuedWrite, status: RequestStatus, *, batch_only: bool = False
    ) -> None:
        request_id = write.args.get("requestId")
        pending = self._requests.get(write.sender, ())
        request = next((item for item in pending if item["requestId"] == request_id), None)
        if request is None:
            raise LedgerRejected("Request not found")
        if request["status"] != RequestStatus.PENDING.ordinal:
            raise LedgerRejected("Request is not pending")
        if batch_only and request["ipfsCid"]:
            raise LedgerRejected("Not a batch access request")
        request["status"] = status.ordinal

    def _submit_claim(self, write: _QueuedWrite) -> None:
        args = write.args
        insurer = str(args.get("insurer", ""))
        if not is_address(insurer):
            raise LedgerRejected("Invalid insurance provider address")
        amount = int(args.get("claimAmount", 0))  # type: ignore[arg-type]
        if amount <= 0:
            raise LedgerRejected("Claim amount must be greater than zero")
        self._claims.setdefault(write.sender, []).append(
            {
                "claimId": next(self._claim_ids),
                "patient": write.sender,
                "ipfsHash": str(args.get("ipfsHash", "")),
                "claimAmount": amount,
                "diagnosis": str(args.get("diagnosis", "")),
                "hospitalName": str(args.get("hospitalName", "")),
                "timestamp": self._now(),
                "status": ClaimStatus.PENDING.ordinal,
                "rejectionReason": "",
                "insuranceProvider": insurer,
            }
        )


class SimulatedBlobStore:
    """Content-addressed in-memory store keyed by the sha256 of each payload."""

    def __init__(self) -> None:
        self._blobs: dict[ContentId, bytes] = {}
        self.available = True

    def __len__(self) -> int:
        return len(self._blobs)

    def get(self, cid: ContentId) -> bytes:
        return self._blobs[cid]

    async def store(self, data: bytes) -> ContentId:
        await asyncio.sleep(0)
        if not self.available:
            raise StorageFailure("Simulated blob store is unavailable")
        cid = "sha256-" + hashlib.sha256(data).hexdigest()
        self._blobs[cid] = bytes(data)
        return cid
