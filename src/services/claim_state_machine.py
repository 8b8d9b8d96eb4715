"""
Claim Status State Machine.

Provides:
- The transition table with the capability each edge requires
- Transition validation (edge, capability, payload preconditions)
- Available transitions for an actor
- Audit path verification

The machine itself is storage-free; the claims service runs the coverage
and limit preconditions and persists the result.

State Diagram:
    DRAFT -> SUBMITTED
    SUBMITTED -> UNDER_REVIEW
    UNDER_REVIEW -> APPROVED | REJECTED | RETURNED_FOR_INFO
    RETURNED_FOR_INFO -> SUBMITTED
    APPROVED -> SETTLED
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID

from src.core.config import get_engine_settings
from src.core.enums import ROLE_CAPABILITIES, ActorRole, Capability, ClaimStatus
from src.schemas.claim import Actor, TransitionPayload
from src.utils.errors import (
    BenefitEngineError,
    IllegalStateTransitionError,
    MissingCommentError,
    TransitionNotPermittedError,
    TransitionPreconditionError,
)

logger = logging.getLogger(__name__)


class TransitionEvent(str, Enum):
    """Events that trigger state transitions."""

    SUBMIT = "submit"
    START_REVIEW = "start_review"
    APPROVE = "approve"
    REJECT = "reject"
    RETURN_FOR_INFO = "return_for_info"
    RESUBMIT = "resubmit"
    SETTLE = "settle"


@dataclass(frozen=True)
class Transition:
    """Represents a valid state transition."""

    from_status: ClaimStatus
    to_status: ClaimStatus
    event: TransitionEvent
    capability: Capability
    timestamp_field: str
    requires_comment: bool = False
    requires_approved_amount: bool = False
    requires_payment_reference: bool = False
    requires_coverage: bool = False


@dataclass
class TransitionContext:
    """Context for a transition attempt."""

    claim_id: UUID
    current_status: ClaimStatus
    target_status: ClaimStatus
    actor: Actor
    payload: TransitionPayload = field(default_factory=TransitionPayload)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class TransitionResult:
    """Result of a transition attempt."""

    success: bool
    from_status: ClaimStatus
    to_status: Optional[ClaimStatus] = None
    transition: Optional[Transition] = None
    granted_by: Optional[ActorRole] = None
    error: Optional[BenefitEngineError] = None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


# =============================================================================
# Valid Transitions Definition
# =============================================================================


VALID_TRANSITIONS: list[Transition] = [
    Transition(
        from_status=ClaimStatus.DRAFT,
        to_status=ClaimStatus.SUBMITTED,
        event=TransitionEvent.SUBMIT,
        capability=Capability.SUBMIT,
        timestamp_field="submitted_at",
        requires_coverage=True,
    ),
    Transition(
        from_status=ClaimStatus.SUBMITTED,
        to_status=ClaimStatus.UNDER_REVIEW,
        event=TransitionEvent.START_REVIEW,
        capability=Capability.REVIEW,
        timestamp_field="review_started_at",
    ),
    Transition(
        from_status=ClaimStatus.UNDER_REVIEW,
        to_status=ClaimStatus.APPROVED,
        event=TransitionEvent.APPROVE,
        capability=Capability.APPROVE,
        timestamp_field="approved_at",
        requires_approved_amount=True,
        requires_coverage=True,
    ),
    Transition(
        from_status=ClaimStatus.UNDER_REVIEW,
        to_status=ClaimStatus.REJECTED,
        event=TransitionEvent.REJECT,
        capability=Capability.REJECT,
        timestamp_field="rejected_at",
        requires_comment=True,
    ),
    Transition(
        from_status=ClaimStatus.UNDER_REVIEW,
        to_status=ClaimStatus.RETURNED_FOR_INFO,
        event=TransitionEvent.RETURN_FOR_INFO,
        capability=Capability.RETURN,
        timestamp_field="returned_at",
        requires_comment=True,
    ),
    Transition(
        from_status=ClaimStatus.RETURNED_FOR_INFO,
        to_status=ClaimStatus.SUBMITTED,
        event=TransitionEvent.RESUBMIT,
        capability=Capability.SUBMIT,
        timestamp_field="submitted_at",
    ),
    Transition(
        from_status=ClaimStatus.APPROVED,
        to_status=ClaimStatus.SETTLED,
        event=TransitionEvent.SETTLE,
        capability=Capability.SETTLE,
        timestamp_field="settled_at",
        requires_payment_reference=True,
    ),
]


def capabilities_for(
    roles: Iterable[ActorRole],
    super_admin_bypass: bool = True,
) -> frozenset[Capability]:
    """Union of the capabilities granted by a set of roles."""
    granted: set[Capability] = set()
    for role in roles:
        if role == ActorRole.SUPER_ADMIN and not super_admin_bypass:
            continue
        granted |= ROLE_CAPABILITIES.get(role, frozenset())
    return frozenset(granted)


# =============================================================================
# State Machine
# =============================================================================


class ClaimStateMachine:
    """
    State machine for claim status transitions.

    Role gating is checked here against ROLE_CAPABILITIES, independent of
    any transport layer.
    """

    def __init__(
        self,
        transitions: Optional[list[Transition]] = None,
        super_admin_bypass: Optional[bool] = None,
    ):
        if super_admin_bypass is None:
            super_admin_bypass = get_engine_settings().SUPER_ADMIN_BYPASS
        self.super_admin_bypass = super_admin_bypass
        self._transitions: dict[tuple[ClaimStatus, ClaimStatus], Transition] = {}
        self._from_status_map: dict[ClaimStatus, list[Transition]] = {}

        for transition in transitions or VALID_TRANSITIONS:
            self._transitions[(transition.from_status, transition.to_status)] = transition
            self._from_status_map.setdefault(transition.from_status, []).append(transition)

    def get_valid_transitions(self, status: ClaimStatus) -> list[Transition]:
        """Get all valid transitions from a given status."""
        return self._from_status_map.get(status, [])

    def get_next_statuses(self, status: ClaimStatus) -> list[ClaimStatus]:
        return [t.to_status for t in self.get_valid_transitions(status)]

    def can_transition(self, from_status: ClaimStatus, to_status: ClaimStatus) -> bool:
        return (from_status, to_status) in self._transitions

    def get_transition(
        self,
        from_status: ClaimStatus,
        to_status: ClaimStatus,
    ) -> Optional[Transition]:
        return self._transitions.get((from_status, to_status))

    def granting_role(self, actor: Actor, capability: Capability) -> Optional[ActorRole]:
        """First of the actor's roles that grants ``capability``."""
        for role in actor.roles:
            if capability in capabilities_for([role], self.super_admin_bypass):
                return role
        return None

    def get_available_transitions(
        self,
        status: ClaimStatus,
        actor: Actor,
    ) -> list[Transition]:
        """Transitions from ``status`` the actor holds the capability for."""
        granted = capabilities_for(actor.roles, self.super_admin_bypass)
        return [t for t in self.get_valid_transitions(status) if t.capability in granted]

    def validate_transition(self, context: TransitionContext) -> TransitionResult:
        """
        Validate a transition attempt.

        Checks, in order: the edge exists, the actor holds its capability,
        and the payload carries what the edge needs. Coverage and limit
        preconditions need the store and are run by the claims service.
        """
        transition = self.get_transition(context.current_status, context.target_status)

        if transition is None:
            return self._failure(
                context,
                IllegalStateTransitionError(context.current_status, context.target_status),
            )

        role = self.granting_role(context.actor, transition.capability)
        if role is None:
            return self._failure(
                context,
                TransitionNotPermittedError(
                    f"Missing required capability: {transition.capability.value}",
                    {
                        "capability": transition.capability,
                        "roles": list(context.actor.roles),
                        "attempted_status": context.target_status,
                    },
                ),
            )

        payload = context.payload
        if transition.requires_comment and not (payload.comment and payload.comment.strip()):
            return self._failure(context, MissingCommentError(context.target_status))

        if transition.requires_approved_amount and (
            payload.approved_amount is None or payload.approved_amount <= 0
        ):
            return self._failure(
                context,
                TransitionPreconditionError(
                    "approved_amount_required",
                    "An approved amount greater than zero is required",
                    {"approved_amount": payload.approved_amount},
                ),
            )

        if transition.requires_payment_reference and not (
            payload.payment_reference and payload.payment_reference.strip()
        ):
            return self._failure(
                context,
                TransitionPreconditionError(
                    "payment_reference_required",
                    "A payment reference is required to settle a claim",
                ),
            )

        return TransitionResult(
            success=True,
            from_status=context.current_status,
            to_status=transition.to_status,
            transition=transition,
            granted_by=role,
        )

    def _failure(self, context: TransitionContext, error: BenefitEngineError) -> TransitionResult:
        logger.warning(
            f"Transition rejected for claim {context.claim_id}: "
            f"{context.current_status.value} -> {context.target_status.value} "
            f"({error.code}: {error.message})"
        )
        return TransitionResult(
            success=False,
            from_status=context.current_status,
            error=error,
        )

    def is_legal_path(self, pairs: Iterable[tuple[ClaimStatus, ClaimStatus]]) -> bool:
        """
        True if the (from, to) pairs form a walk through the table starting
        at DRAFT, each step leaving the state the previous one entered.
        """
        expected_from = ClaimStatus.DRAFT
        for from_status, to_status in pairs:
            if from_status != expected_from or not self.can_transition(from_status, to_status):
                return False
            expected_from = to_status
        return True


# =============================================================================
# Singleton Instance
# =============================================================================


_state_machine: Optional[ClaimStateMachine] = None


def get_claim_state_machine() -> ClaimStateMachine:
    """Get singleton state machine instance."""
    global _state_machine
    if _state_machine is None:
        _state_machine = ClaimStateMachine()
    return _state_machine
