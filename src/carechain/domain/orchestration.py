"""Submit, confirm, verify and apply one Ledger write.

``TransactionOrchestrator.execute`` never raises for a failed write: every
failure is classified, logged, published as a notification and handed back in
the ``TransactionOutcome``. Local state is only touched by ``apply``, which runs
after the Ledger confirmed the write and the postcondition held.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from carechain.domain.capabilities import LedgerCapabilities
from carechain.domain.errors import (
    ErrorKind,
    OperationInProgress,
    VerificationMismatch,
    classify_error,
    describe_failure,
)
from carechain.domain.model import Severity
from carechain.domain.notifications import NotificationEmitter

if TYPE_CHECKING:
    from carechain.domain.model import Address, CollectionKind, LedgerAction
    from carechain.domain.notifications import Notification, NotificationFeed
    from carechain.domain.ports import LedgerGateway, Receipt, Signer

log = getLogger(__name__)


class TransactionPhase(StrEnum):
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    VERIFYING = "verifying"
    APPLYING = "applying"


type PhaseCallback = Callable[[TransactionPhase], None]
type Postcondition = Callable[[Receipt], Awaitable[bool]]
type ApplyStep = Callable[[Receipt], Awaitable[object]]
type GuardKey = tuple[str, str]


@dataclass(frozen=True, slots=True, kw_only=True)
class TransactionRequest:
    """Everything needed to run one orchestrated write.

    ``description`` completes the sentence "Failed to ..." in failure messages.
    """

    action: LedgerAction
    args: Mapping[str, object]
    signer: Signer
    target: Address
    description: str
    success_message: str
    postcondition: Postcondition | None = None
    apply: ApplyStep | None = None
    on_phase: PhaseCallback | None = None
    dedupe_key: str | None = None
    kind: CollectionKind | None = None

    @property
    def guard_key(self) -> GuardKey:
        return (str(self.action), self.target)


@dataclass(frozen=True, slots=True, kw_only=True)
class TransactionOutcome:
    request: TransactionRequest
    receipt: Receipt | None = None
    value: object = None
    error: Exception | None = None
    error_kind: ErrorKind | None = None
    notification: Notification | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class InFlightGuard:
    """At most one active operation per ``(action kind, target)`` pair."""

    _active: set[GuardKey] = field(default_factory=set)

    def is_active(self, key: GuardKey) -> bool:
        return key in self._active

    @contextmanager
    def hold(self, key: GuardKey) -> Iterator[None]:
        if key in self._active:
            raise OperationInProgress(key)
        self._active.add(key)
        try:
            yield
        finally:
            self._active.discard(key)


class TransactionOrchestrator:
    def __init__(
        self,
        gateway: LedgerGateway,
        *,
        feed: NotificationFeed,
        capabilities: LedgerCapabilities | None = None,
        emitter: NotificationEmitter | None = None,
        guard: InFlightGuard | None = None,
    ) -> None:
        self._gateway = gateway
        self._feed = feed
        self.capabilities = capabilities or LedgerCapabilities(gateway)
        self._emitter = emitter or NotificationEmitter()
        self.guard = guard or InFlightGuard()

    @property
    def gateway(self) -> LedgerGateway:
        return self._gateway

    @property
    def feed(self) -> NotificationFeed:
        return self._feed

    async def ensure_supported(self, operation: str) -> None:
        await self.capabilities.ensure(operation)

    async def execute(self, request: TransactionRequest) -> TransactionOutcome:
        try:
            with self.guard.hold(request.guard_key):
                receipt, value = await self._run(request)
        except Exception as exc:  # noqa: BLE001
            kind, event = self.report_failure(
                exc,
                description=request.description,
                dedupe_key=f"failed:{request.action}:{request.target}",
                kind=request.kind,
            )
            return TransactionOutcome(
                request=request, error=exc, error_kind=kind, notification=event
            )

        event = self._emitter.event(
            Severity.SUCCESS,
            request.success_message,
            dedupe_key=request.dedupe_key or f"confirmed:{receipt.handle}",
            kind=request.kind,
        )
        self._feed.publish((event,))
        log.info("%s confirmed for %s (handle %s)", request.action, request.target, receipt.handle)
        return TransactionOutcome(
            request=request, receipt=receipt, value=value, notification=event
        )

    def report_failure(
        self,
        exc: Exception,
        *,
        description: str,
        dedupe_key: str,
        kind: CollectionKind | None = None,
    ) -> tuple[ErrorKind, Notification]:
        """Classify ``exc``, log it and publish the matching event."""

        error_kind = classify_error(exc)
        self.capabilities.observe_failure(exc)
        if error_kind is ErrorKind.UNEXPECTED:
            log.exception("Unexpected failure while trying to %s", description)
        elif error_kind.severity is Severity.ERROR:
            log.error("Failed to %s: %s (%s)", description, exc, error_kind)
        else:
            log.warning("Could not %s: %s (%s)", description, exc, error_kind)
        event = self._emitter.event(
            error_kind.severity,
            describe_failure(error_kind, exc, action=description),
            dedupe_key=dedupe_key,
            kind=kind,
        )
        self._feed.publish((event,))
        return error_kind, event

    async def _run(self, request: TransactionRequest) -> tuple[Receipt, object]:
        await self.ensure_supported(request.action)

        self._enter(request, TransactionPhase.SUBMITTING)
        pending = await self._gateway.submit_write(
            request.action, request.args, signer=request.signer
        )
        log.debug("Submitted %s as %s", request.action, pending.handle)

        self._enter(request, TransactionPhase.CONFIRMING)
        receipt = await self._gateway.await_confirmation(pending)

        if request.postcondition is not None:
            self._enter(request, TransactionPhase.VERIFYING)
            if not await request.postcondition(receipt):
                raise VerificationMismatch(
                    f"{request.action} confirmed for {request.target} but its effect is not visible"
                )

        value: object = None
        if request.apply is not None:
            self._enter(request, TransactionPhase.APPLYING)
            value = await request.apply(receipt)
        return receipt, value

    @staticmethod
    def _enter(request: TransactionRequest, phase: TransactionPhase) -> None:
        log.debug("%s for %s: %s", request.action, request.target, phase)
        if request.on_phase is not None:
            request.on_phase(phase)


__all__ = [
    "InFlightGuard",
    "TransactionOrchestrator",
    "TransactionOutcome",
    "TransactionPhase",
    "TransactionRequest",
]
