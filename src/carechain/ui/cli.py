# ruff: noqa: T201

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from carechain.app import (
    build_http_session,
    build_simulated_session,
    complete_emergency_service,
    elevate_access,
    review_request,
    submit_claim,
    watch,
)
from carechain.config import ConfigurationError, configure_logging
from carechain.domain.errors import ValidationError
from carechain.domain.workflows import ClaimDraft

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from carechain.app import CareChainSession
    from carechain.domain.notifications import Notification

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ledger-backed health record sync")
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Use an in-memory ledger and blob store instead of the configured services",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--confirm",
        action="store_true",
        help="Ask before signing each ledger write",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    watch_cmd = subparsers.add_parser(
        "watch", help="Reconcile ledger state and print notifications"
    )
    watch_cmd.add_argument(
        "--duration",
        type=float,
        help="Stop after this many seconds (default: run until interrupted)",
    )

    elevate = subparsers.add_parser("elevate", help="Request and verify emergency access")
    elevate.add_argument("patient", help="Patient address")
    elevate.add_argument(
        "--batch",
        action="store_true",
        help="Grant batch access without loading the patient's records",
    )

    service = subparsers.add_parser(
        "complete-service", help="Record a completed emergency service for a patient record"
    )
    service.add_argument("patient", help="Patient address")
    service.add_argument("cid", help="Content identifier of the patient's record")

    claim = subparsers.add_parser("submit-claim", help="Submit an insurance claim")
    claim.add_argument("--amount", default="", help="Claim amount in whole units, e.g. 1.5")
    claim.add_argument("--diagnosis", default="", help="Diagnosis")
    claim.add_argument("--hospital", default="", help="Hospital name")
    claim.add_argument("--insurer", default="", help="Insurance provider address")
    claim.add_argument("--document", type=Path, help="Medical report to attach")

    review = subparsers.add_parser("review", help="Decide on a pending permission request")
    review.add_argument("decision", choices=("approve", "decline", "approve-batch"))
    review.add_argument("request_id", type=int, help="Permission request id")

    return parser.parse_args(list(argv))


def _print_event(event: Notification) -> None:
    print(f"[{event.severity}] {event.message}")


def _confirm_signature(payload: bytes) -> bool:
    answer = input(f"Sign ledger write {payload.decode('utf-8', 'replace')}? [y/N] ")
    return answer.strip().lower() in {"y", "yes"}


def _build_draft(args: argparse.Namespace) -> ClaimDraft:
    document: bytes | None = None
    if args.document is not None:
        try:
            document = args.document.read_bytes()
        except OSError as exc:
            raise ValueError(f"Cannot read document {args.document}: {exc}") from exc
    return ClaimDraft(
        claim_amount=args.amount,
        diagnosis=args.diagnosis,
        hospital_name=args.hospital,
        insurance_provider=args.insurer,
        document=document,
        document_name=args.document.name if args.document is not None else "",
    )


async def _dispatch(session: CareChainSession, args: argparse.Namespace) -> bool:
    match args.command:
        case "watch":
            await watch(session, on_event=_print_event, duration=args.duration)
            return True
        case "elevate":
            result = await elevate_access(session, args.patient, batch=args.batch)
            for record in result.records:
                print(f"{record.data_type}\t{record.ipfs_cid}\t{record.provider}")
            return result.granted
        case "complete-service":
            completion = await complete_emergency_service(session, args.patient, args.cid)
            return completion.error is None
        case "submit-claim":
            claim = await submit_claim(session, _build_draft(args))
            return claim.succeeded
        case "review":
            outcome = await review_request(session, args.decision, args.request_id)
            return outcome.succeeded
        case _:
            raise ValueError(f"Unsupported command: {args.command}")


async def _run(args: argparse.Namespace) -> bool:
    confirm = _confirm_signature if args.confirm else None
    if args.simulate:
        session, _ledger = build_simulated_session(confirm=confirm)
    else:
        session = build_http_session(confirm=confirm)
    subscription = session.feed.subscribe(_print_event) if args.command != "watch" else None
    async with session:
        try:
            return await _dispatch(session, args)
        finally:
            if subscription is not None:
                subscription.close()


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
    signal(SIGINT, sigint_handler)

    try:
        succeeded = asyncio.run(_run(parsed_args))
    except (ValueError, ValidationError, ConfigurationError) as exc:
        log.error("%s", exc)  # noqa: TRY400
        sys.exit(2)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)

    if not succeeded:
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


if __name__ == "__main__":
    main()
