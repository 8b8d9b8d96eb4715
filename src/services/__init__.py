"""
Services Layer for the Benefit Coverage Engine.

Exports coverage resolution, limit accounting, the claim state machine
and the claims service.
"""

from src.services.usage_ledger import UsageLedger
from src.services.coverage_resolver import (
    CoverageResolver,
    effective_waiting_days,
    first_rejection,
    waiting_period_end,
)
from src.services.financial_calculator import (
    FinancialSnapshotCalculator,
    SnapshotImbalanceError,
    apply_approval,
    build_snapshot,
    quantize_amount,
)
from src.services.claim_state_machine import (
    VALID_TRANSITIONS,
    ClaimStateMachine,
    Transition,
    TransitionContext,
    TransitionEvent,
    TransitionResult,
    capabilities_for,
    get_claim_state_machine,
)
from src.services.claim_audit import ClaimAuditService
from src.services.claims_service import ClaimsService

__all__ = [
    # Usage ledger
    "UsageLedger",
    # Coverage resolution
    "CoverageResolver",
    "effective_waiting_days",
    "first_rejection",
    "waiting_period_end",
    # Financial snapshot
    "FinancialSnapshotCalculator",
    "SnapshotImbalanceError",
    "apply_approval",
    "build_snapshot",
    "quantize_amount",
    # State machine
    "VALID_TRANSITIONS",
    "ClaimStateMachine",
    "Transition",
    "TransitionContext",
    "TransitionEvent",
    "TransitionResult",
    "capabilities_for",
    "get_claim_state_machine",
    # Audit and claims
    "ClaimAuditService",
    "ClaimsService",
]
