"""
Custom Exceptions
Error taxonomy for the benefit coverage engine and claim workflow.

Every error carries a stable ``code``, a human message and JSON-safe
``details`` so callers can render the reason (and, where relevant, the
remaining-limit figures or the date a condition clears).
Source: https://fastapi.tiangolo.com/tutorial/handling-errors/
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from fastapi import HTTPException, status


def _json_safe(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if hasattr(value, "value"):
        return value.value
    return value


class BenefitEngineError(Exception):
    """Base exception for every failure surfaced by the engine."""

    code = "benefit_engine_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = _json_safe(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def to_http_exception(self) -> HTTPException:
        """Convert to the FastAPI exception raised by route handlers."""
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


# =============================================================================
# Not Found
# =============================================================================


class NotFoundError(BenefitEngineError):
    """Raised when a referenced entity does not exist."""

    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ClaimNotFoundError(NotFoundError):
    code = "claim_not_found"

    def __init__(self, claim_id: Any):
        super().__init__(f"Claim not found: {claim_id}", {"claim_id": str(claim_id)})


class MemberNotFoundError(NotFoundError):
    code = "member_not_found"

    def __init__(self, member_id: Any):
        super().__init__(f"Member not found: {member_id}", {"member_id": str(member_id)})


class ServiceNotFoundError(NotFoundError):
    code = "service_not_found"

    def __init__(self, service_id: Any):
        super().__init__(
            f"Medical service not found: {service_id}", {"service_id": str(service_id)}
        )


# =============================================================================
# Coverage (configuration / data) errors
# =============================================================================


class CoverageError(BenefitEngineError):
    """A claim line cannot be covered because of policy or member data."""

    code = "coverage_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NoPolicyAssignedError(CoverageError):
    code = "no_policy_assigned"


class PolicyNotEffectiveError(CoverageError):
    code = "policy_not_effective"


class WaitingPeriodNotElapsedError(CoverageError):
    """Carries ``eligible_from``: the first service date that is covered."""

    code = "waiting_period_not_elapsed"

    def __init__(self, message: str, eligible_from: date, details: Optional[dict] = None):
        super().__init__(message, {**(details or {}), "eligible_from": eligible_from})
        self.eligible_from = eligible_from


class PreApprovalRequiredError(CoverageError):
    code = "pre_approval_required"


class UsageCountExceededError(CoverageError):
    code = "usage_count_exceeded"


# =============================================================================
# Limit errors
# =============================================================================


class LimitError(BenefitEngineError):
    """Amount-based rejections; details carry the remaining-limit figures."""

    code = "limit_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class LimitExceededError(LimitError):
    code = "limit_exceeded"


class ApprovedAmountExceedsCoverageError(LimitError):
    code = "approved_amount_exceeds_coverage"


# =============================================================================
# Workflow errors
# =============================================================================


class WorkflowError(BenefitEngineError):
    code = "workflow_error"
    status_code = status.HTTP_409_CONFLICT


class IllegalStateTransitionError(WorkflowError):
    """Raised for any (from, to) pair absent from the transition table."""

    code = "illegal_state_transition"

    def __init__(self, current: Any, attempted: Any, message: Optional[str] = None):
        current_value = getattr(current, "value", current)
        attempted_value = getattr(attempted, "value", attempted)
        super().__init__(
            message or f"Invalid state transition: {current_value} -> {attempted_value}",
            {"current_status": current_value, "attempted_status": attempted_value},
        )
        self.current = current
        self.attempted = attempted


class TransitionNotPermittedError(WorkflowError):
    """The actor lacks the capability required by the transition."""

    code = "transition_not_permitted"
    status_code = status.HTTP_403_FORBIDDEN


class TransitionPreconditionError(WorkflowError):
    """A data precondition of the transition is not met; ``rule`` names it."""

    code = "transition_precondition_failed"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, rule: str, message: str, details: Optional[dict] = None):
        super().__init__(message, {**(details or {}), "rule": rule})
        self.rule = rule


class MissingCommentError(TransitionPreconditionError):
    code = "missing_required_comment"

    def __init__(self, target: Any):
        target_value = getattr(target, "value", target)
        super().__init__(
            "comment_required",
            f"A non-blank reviewer comment is required to move a claim to {target_value}",
            {"attempted_status": target_value},
        )


class ClaimLockedError(WorkflowError):
    code = "claim_locked"


class AuditTrailImmutableError(WorkflowError):
    code = "audit_trail_immutable"


# =============================================================================
# Concurrency
# =============================================================================


class ConcurrentModificationError(BenefitEngineError):
    """The claim (or the member's limit set) changed since it was read."""

    code = "concurrent_modification"
    status_code = status.HTTP_409_CONFLICT
