"""
Core Enumerations for the Benefit Coverage Engine.

Claim lifecycle, policy status, actor roles and capabilities, and the
reason codes used by coverage and limit decisions.
"""

from enum import Enum


# =============================================================================
# Benefit Policy Enums
# =============================================================================


class BenefitPolicyStatus(str, Enum):
    """Lifecycle status of a benefit policy.

    Only ACTIVE policies can back a coverage decision.
    """

    DRAFT = "draft"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class PreApprovalStatus(str, Enum):
    """Status of a pre-authorization record."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    USED = "used"


class RuleScope(str, Enum):
    """What a benefit policy rule targets."""

    SERVICE = "service"
    CATEGORY = "category"
    POLICY_DEFAULT = "policy_default"


# =============================================================================
# Claim Lifecycle Enums
# =============================================================================


class ClaimStatus(str, Enum):
    """Claim lifecycle status.

    State Machine Transitions:
    DRAFT -> SUBMITTED
    SUBMITTED -> UNDER_REVIEW
    UNDER_REVIEW -> APPROVED | REJECTED | RETURNED_FOR_INFO
    RETURNED_FOR_INFO -> SUBMITTED
    APPROVED -> SETTLED

    REJECTED and SETTLED are terminal.
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    RETURNED_FOR_INFO = "returned_for_info"
    APPROVED = "approved"
    REJECTED = "rejected"
    SETTLED = "settled"

    @property
    def is_terminal(self) -> bool:
        return self in (ClaimStatus.REJECTED, ClaimStatus.SETTLED)

    @property
    def allows_edit(self) -> bool:
        """Claim lines may only change while the claim is a draft."""
        return self == ClaimStatus.DRAFT

    @property
    def consumes_limit(self) -> bool:
        """Statuses whose approved amount counts against benefit limits."""
        return self in (ClaimStatus.APPROVED, ClaimStatus.SETTLED)


PENDING_STATUSES = (
    ClaimStatus.SUBMITTED,
    ClaimStatus.UNDER_REVIEW,
    ClaimStatus.RETURNED_FOR_INFO,
)

LIMIT_CONSUMING_STATUSES = (ClaimStatus.APPROVED, ClaimStatus.SETTLED)


# =============================================================================
# Actor Enums
# =============================================================================


class ActorRole(str, Enum):
    """Roles supplied by the identity source."""

    SUPER_ADMIN = "super_admin"
    REQUESTER = "requester"
    EMPLOYER_ADMIN = "employer_admin"
    REVIEWER = "reviewer"
    INSURANCE_ADMIN = "insurance_admin"
    FINANCE = "finance"


class Capability(str, Enum):
    """Capabilities checked by the claim state machine."""

    SUBMIT = "claims:submit"
    REVIEW = "claims:review"
    APPROVE = "claims:approve"
    REJECT = "claims:reject"
    RETURN = "claims:return"
    SETTLE = "claims:settle"


ROLE_CAPABILITIES: dict[ActorRole, frozenset[Capability]] = {
    ActorRole.SUPER_ADMIN: frozenset(Capability),
    ActorRole.REQUESTER: frozenset({Capability.SUBMIT}),
    ActorRole.EMPLOYER_ADMIN: frozenset({Capability.SUBMIT}),
    ActorRole.REVIEWER: frozenset(
        {Capability.REVIEW, Capability.APPROVE, Capability.REJECT, Capability.RETURN}
    ),
    ActorRole.INSURANCE_ADMIN: frozenset(
        {
            Capability.REVIEW,
            Capability.APPROVE,
            Capability.REJECT,
            Capability.RETURN,
            Capability.SETTLE,
        }
    ),
    ActorRole.FINANCE: frozenset({Capability.SETTLE}),
}


# =============================================================================
# Decision Reason Enums
# =============================================================================


class CoverageRejectionReason(str, Enum):
    """Why the coverage resolver refused to produce a decision."""

    NO_POLICY_ASSIGNED = "no_policy_assigned"
    POLICY_NOT_EFFECTIVE = "policy_not_effective"
    WAITING_PERIOD_NOT_ELAPSED = "waiting_period_not_elapsed"
    PRE_APPROVAL_REQUIRED = "pre_approval_required"
    USAGE_COUNT_EXCEEDED = "usage_count_exceeded"


class LimitScope(str, Enum):
    """Scopes over which the usage ledger aggregates consumption."""

    ANNUAL = "annual"
    LIFETIME = "lifetime"
    PER_MEMBER = "per_member"
    FAMILY = "family"


class ClampReason(str, Enum):
    """Why a net provider amount ended below the raw covered amount."""

    RULE_AMOUNT_LIMIT = "rule_amount_limit"
    ANNUAL_LIMIT = "annual_limit"
    LIFETIME_LIMIT = "lifetime_limit"
    PER_MEMBER_LIMIT = "per_member_limit"
    FAMILY_LIMIT = "family_limit"
    REVIEWER_ADJUSTED = "reviewer_adjusted"


LIMIT_CLAMP_REASONS: dict[LimitScope, ClampReason] = {
    LimitScope.ANNUAL: ClampReason.ANNUAL_LIMIT,
    LimitScope.LIFETIME: ClampReason.LIFETIME_LIMIT,
    LimitScope.PER_MEMBER: ClampReason.PER_MEMBER_LIMIT,
    LimitScope.FAMILY: ClampReason.FAMILY_LIMIT,
}
