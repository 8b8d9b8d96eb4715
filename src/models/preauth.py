"""
Pre-Approval Model.

Authorizations issued ahead of a claim for services whose rule requires
pre-approval. Maintained by the pre-approval registry; the engine only
looks them up.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Date, Enum, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.core.enums import PreApprovalStatus
from src.models.base import Base, ExactDecimal, TimeStampedModel, UUIDModel


class PreApproval(Base, UUIDModel, TimeStampedModel):
    """Pre-authorization for one member and service over a date range."""

    __tablename__ = "pre_approvals"

    member_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("members.id", ondelete="RESTRICT"),
        nullable=False,
    )
    service_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("medical_services.id", ondelete="RESTRICT"),
        nullable=False,
    )
    reference_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    status: Mapped[PreApprovalStatus] = mapped_column(
        Enum(PreApprovalStatus, native_enum=False, length=30),
        default=PreApprovalStatus.PENDING,
        nullable=False,
    )
    valid_from: Mapped[date] = mapped_column(Date, nullable=False)
    valid_to: Mapped[date] = mapped_column(Date, nullable=False)
    approved_amount: Mapped[Optional[Decimal]] = mapped_column(ExactDecimal(), nullable=True)

    __table_args__ = (
        Index("ix_pre_approvals_member_service", "member_id", "service_id", "status"),
    )

    def covers(self, service_date: date) -> bool:
        return (
            self.status == PreApprovalStatus.APPROVED
            and self.valid_from <= service_date <= self.valid_to
        )

    def __repr__(self) -> str:
        return f"<PreApproval(ref='{self.reference_number}', status={self.status})>"
