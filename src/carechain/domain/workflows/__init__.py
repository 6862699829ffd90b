"""Multi-step Ledger workflows built on the transaction orchestrator."""

from __future__ import annotations

from .access_elevation import (
    AccessElevationWorkflow,
    ElevationMode,
    ElevationResult,
    ElevationState,
    EmergencyCaseLoad,
)
from .claim_submission import (
    ClaimDraft,
    ClaimSubmissionResult,
    ClaimSubmissionWorkflow,
    validate_draft,
)
from .emergency_service import EmergencyServiceWorkflow, ServiceCompletion, service_summary
from .permission_review import PermissionReviewWorkflow

__all__ = [
    "AccessElevationWorkflow",
    "ClaimDraft",
    "ClaimSubmissionResult",
    "ClaimSubmissionWorkflow",
    "ElevationMode",
    "ElevationResult",
    "ElevationState",
    "EmergencyCaseLoad",
    "EmergencyServiceWorkflow",
    "PermissionReviewWorkflow",
    "ServiceCompletion",
    "service_summary",
    "validate_draft",
]
