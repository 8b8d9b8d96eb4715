"""
Claim Model for Benefit Adjudication.

A claim is created in DRAFT by a requester and afterwards only changes
through the claim state machine. Member, policy and service references
are plain identifiers resolved by the services at the point of use.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.enums import PENDING_STATUSES, ClaimStatus
from src.models.base import Base, ExactDecimal, TimeStampedModel, UUIDModel


class Claim(Base, UUIDModel, TimeStampedModel):
    """
    Unit of adjudication.

    Once financial figures are computed,
    ``requested_amount == patient_copay + net_provider_amount``.
    ``approved_amount`` is only set in APPROVED and SETTLED.
    """

    __tablename__ = "claims"

    claim_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Human-readable number (e.g., CLM-2025-000001)",
    )

    member_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("members.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    employer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="Member's employer when the claim was created",
    )
    benefit_policy_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("benefit_policies.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
        comment="Policy assigned to the member when the claim was created",
    )
    service_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[ClaimStatus] = mapped_column(
        Enum(ClaimStatus, native_enum=False, length=30),
        default=ClaimStatus.DRAFT,
        nullable=False,
        index=True,
    )

    # Financials
    requested_amount: Mapped[Decimal] = mapped_column(
        ExactDecimal(), nullable=False, default=Decimal("0")
    )
    covered_amount: Mapped[Optional[Decimal]] = mapped_column(
        ExactDecimal(), nullable=True, comment="Raw covered amount before limits"
    )
    approved_amount: Mapped[Optional[Decimal]] = mapped_column(ExactDecimal(), nullable=True)
    patient_copay: Mapped[Optional[Decimal]] = mapped_column(ExactDecimal(), nullable=True)
    net_provider_amount: Mapped[Optional[Decimal]] = mapped_column(
        ExactDecimal(), nullable=True
    )
    cost_breakdown: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON, nullable=True, comment="Financial snapshot persisted at approval"
    )

    # Review and settlement
    reviewer_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    settlement_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Transition timestamps
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    review_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    returned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    settled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    lines: Mapped[list["ClaimLine"]] = relationship(
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="ClaimLine.line_number",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    __table_args__ = (
        Index("ix_claims_member_status", "member_id", "status"),
        Index("ix_claims_employer_status", "employer_id", "status"),
        Index("ix_claims_policy_status", "benefit_policy_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Claim(id={self.id}, number='{self.claim_number}', status='{self.status}')>"

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES

    @property
    def line_count(self) -> int:
        return len(self.lines) if self.lines else 0

    def recalculate_requested_amount(self) -> None:
        self.requested_amount = sum(
            (line.line_total for line in self.lines), Decimal("0")
        )


class ClaimLine(Base, UUIDModel, TimeStampedModel):
    """One billed service within a claim. Immutable once the claim leaves DRAFT."""

    __tablename__ = "claim_lines"

    claim_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    service_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("medical_services.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    category_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True, comment="Copied from the service catalog"
    )
    service_code: Mapped[str] = mapped_column(String(50), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    claim: Mapped["Claim"] = relationship(back_populates="lines")

    __table_args__ = (
        Index("ix_claim_lines_claim_line", "claim_id", "line_number", unique=True),
    )

    def __repr__(self) -> str:
        return f"<ClaimLine(claim_id={self.claim_id}, line={self.line_number}, code='{self.service_code}')>"
