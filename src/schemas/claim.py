"""
Pydantic Schemas for Claims.

Request and response shapes for the claim operations: creation, line
entry, transitions, queues and the audit trail.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.enums import ActorRole, ClaimStatus


# =============================================================================
# Actor
# =============================================================================


class Actor(BaseModel):
    """Acting user as supplied by the identity source."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="User identifier")
    roles: tuple[ActorRole, ...] = Field(default_factory=tuple)

    @field_validator("roles", mode="before")
    @classmethod
    def parse_roles(cls, v):
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return tuple(r.strip().lower() for r in v.split(",") if r.strip())
        return v


# =============================================================================
# Claim Line Schemas
# =============================================================================


class ClaimLineInput(BaseModel):
    """One billed service as entered by the requester."""

    service_id: UUID = Field(..., description="Medical service catalog id")
    quantity: int = Field(default=1, ge=1, description="Units billed")
    unit_price: Decimal = Field(..., ge=0, description="Price per unit")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class ClaimLineResponse(BaseModel):
    """Schema for claim line response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    line_number: int
    service_id: UUID
    category_id: Optional[UUID] = None
    service_code: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


# =============================================================================
# Claim Schemas
# =============================================================================


class ClaimCreate(BaseModel):
    """Schema for creating a claim in DRAFT."""

    member_id: UUID
    service_date: date
    lines: list[ClaimLineInput] = Field(default_factory=list)


class ClaimCreateResponse(BaseModel):
    claim_id: UUID
    claim_number: str
    status: ClaimStatus


class TransitionPayload(BaseModel):
    """Data a transition may need, depending on its target state."""

    comment: Optional[str] = Field(None, max_length=4000, description="Reviewer comment")
    approved_amount: Optional[Decimal] = Field(None, description="Amount approved by reviewer")
    payment_reference: Optional[str] = Field(None, max_length=100)
    settlement_notes: Optional[str] = Field(None, max_length=4000)
    expected_version: Optional[int] = Field(
        None, ge=1, description="Fail unless the claim is still at this version"
    )


class TransitionRequest(TransitionPayload):
    """Transition request body."""

    target_status: ClaimStatus


class ClaimSnapshot(BaseModel):
    """State of a claim after an operation."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    claim_number: str
    member_id: UUID
    employer_id: UUID
    benefit_policy_id: Optional[UUID] = None
    service_date: date
    status: ClaimStatus
    version: int

    requested_amount: Decimal
    covered_amount: Optional[Decimal] = None
    approved_amount: Optional[Decimal] = None
    patient_copay: Optional[Decimal] = None
    net_provider_amount: Optional[Decimal] = None

    reviewer_comment: Optional[str] = None
    payment_reference: Optional[str] = None
    settlement_notes: Optional[str] = None

    submitted_at: Optional[datetime] = None
    review_started_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None

    lines: list[ClaimLineResponse] = Field(default_factory=list)
    available_transitions: list[ClaimStatus] = Field(
        default_factory=list, description="Targets the acting user may attempt next"
    )


# =============================================================================
# Queue Schemas
# =============================================================================


class QueueScope(BaseModel):
    """Filter for the operational queues."""

    employer_id: Optional[UUID] = None
    member_id: Optional[UUID] = None
    policy_id: Optional[UUID] = None
    limit: Optional[int] = Field(None, ge=1)
    offset: int = Field(default=0, ge=0)


class ClaimQueueItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    claim_number: str
    member_id: UUID
    employer_id: UUID
    status: ClaimStatus
    service_date: date
    requested_amount: Decimal
    approved_amount: Optional[Decimal] = None
    version: int


class ClaimQueueResponse(BaseModel):
    items: list[ClaimQueueItem]
    total: int
    limit: int
    offset: int


# =============================================================================
# Audit Schemas
# =============================================================================


class AuditEntry(BaseModel):
    """One audit record: who moved the claim from where to where."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    claim_id: UUID
    actor_id: str
    actor_role: Optional[str] = None
    from_status: ClaimStatus
    to_status: ClaimStatus
    comment: Optional[str] = None
    timestamp: datetime


class AuditTrailResponse(BaseModel):
    claim_id: UUID
    entries: list[AuditEntry]
    is_legal_path: bool
