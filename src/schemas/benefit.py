"""
Pydantic Schemas for Coverage Decisions and Financial Snapshots.

Coverage outcomes are values: the resolver returns either a
CoverageDecision or a CoverageRejection, and the claims service turns a
rejection into an exception only when an operation has to fail.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.core.enums import (
    ClampReason,
    CoverageRejectionReason,
    LimitScope,
    RuleScope,
)
from src.utils.errors import (
    CoverageError,
    NoPolicyAssignedError,
    PolicyNotEffectiveError,
    PreApprovalRequiredError,
    UsageCountExceededError,
    WaitingPeriodNotElapsedError,
)

ZERO = Decimal("0")


# =============================================================================
# Coverage Resolution
# =============================================================================


class CoverageDecision(BaseModel):
    """Resolved coverage for one claim line."""

    model_config = ConfigDict(frozen=True)

    service_id: UUID
    covered: bool
    coverage_percent: Decimal = Field(..., ge=0, le=1)
    applicable_limit: Optional[Decimal] = Field(
        None, ge=0, description="Per-line cap from the matched rule"
    )
    rule_id: Optional[UUID] = None
    rule_scope: Optional[RuleScope] = None
    waiting_period_days: int = 0
    eligible_from: Optional[date] = None
    pre_approval_id: Optional[UUID] = None

    @property
    def is_rejection(self) -> bool:
        return False

    @classmethod
    def not_covered(cls, service_id: UUID) -> "CoverageDecision":
        return cls(service_id=service_id, covered=False, coverage_percent=ZERO)


_REJECTION_ERRORS: dict[CoverageRejectionReason, type[CoverageError]] = {
    CoverageRejectionReason.NO_POLICY_ASSIGNED: NoPolicyAssignedError,
    CoverageRejectionReason.POLICY_NOT_EFFECTIVE: PolicyNotEffectiveError,
    CoverageRejectionReason.PRE_APPROVAL_REQUIRED: PreApprovalRequiredError,
    CoverageRejectionReason.USAGE_COUNT_EXCEEDED: UsageCountExceededError,
}


class CoverageRejection(BaseModel):
    """Structured refusal to produce a coverage decision."""

    model_config = ConfigDict(frozen=True)

    reason: CoverageRejectionReason
    message: str
    service_id: Optional[UUID] = None
    eligible_from: Optional[date] = Field(
        None, description="Date the condition clears, where one exists"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_rejection(self) -> bool:
        return True

    def to_error(self) -> CoverageError:
        details = dict(self.details)
        if self.service_id is not None:
            details["service_id"] = self.service_id
        if self.reason == CoverageRejectionReason.WAITING_PERIOD_NOT_ELAPSED:
            return WaitingPeriodNotElapsedError(self.message, self.eligible_from, details)
        return _REJECTION_ERRORS[self.reason](self.message, details)


CoverageResult = Union[CoverageDecision, CoverageRejection]


# =============================================================================
# Financial Snapshot
# =============================================================================


class LimitUsage(BaseModel):
    """Consumption of one limit scope as read from the usage ledger."""

    scope: LimitScope
    limit: Decimal
    consumed: Decimal
    remaining: Decimal = Field(..., ge=0, description="limit - consumed, floored at zero")


class LineCoverage(BaseModel):
    """Covered amount computed for one claim line."""

    line_number: int
    service_id: UUID
    service_code: str
    line_total: Decimal
    covered: bool
    coverage_percent: Decimal
    raw_covered_amount: Decimal = Field(..., description="line_total * coverage_percent")
    covered_amount: Decimal = Field(..., description="After the rule amount limit")
    applicable_limit: Optional[Decimal] = None
    rule_id: Optional[UUID] = None


class FinancialSnapshot(BaseModel):
    """
    Split of a claim's requested amount into patient and payer portions.

    ``requested_amount == patient_copay + net_provider_amount`` holds for
    every snapshot the calculator hands out.
    """

    claim_id: UUID
    requested_amount: Decimal
    raw_covered_amount: Decimal
    net_provider_amount: Decimal
    patient_copay: Decimal
    approved_amount: Optional[Decimal] = None
    lines: list[LineCoverage] = Field(default_factory=list)
    limits: list[LimitUsage] = Field(default_factory=list)
    clamp_reasons: list[ClampReason] = Field(default_factory=list)

    @property
    def is_clamped(self) -> bool:
        return bool(self.clamp_reasons)

    @property
    def max_approvable_amount(self) -> Decimal:
        return self.net_provider_amount

    def is_balanced(self) -> bool:
        return self.requested_amount == self.patient_copay + self.net_provider_amount

    def limit_figures(self) -> dict[str, Any]:
        """Remaining-limit figures attached to limit errors."""
        return {
            "requested_amount": self.requested_amount,
            "raw_covered_amount": self.raw_covered_amount,
            "net_provider_amount": self.net_provider_amount,
            "patient_copay": self.patient_copay,
            "limits": [usage.model_dump() for usage in self.limits],
        }

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_storage(cls, data: dict[str, Any]) -> "FinancialSnapshot":
        return cls.model_validate(data)
