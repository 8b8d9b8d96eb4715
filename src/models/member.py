"""
Member Model.

The engine only needs the enrollment facts of a member: employer, family,
enrollment date and the currently assigned benefit policy.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimeStampedModel, UUIDModel


class Member(Base, UUIDModel, TimeStampedModel):
    """
    Enrolled member.

    ``version`` is an optimistic lock. Every approval bumps it, and an
    approval for a relative bumps it too when a family limit applies, so
    two approvals drawing on the same limits cannot both commit against
    the same ledger reading.
    """

    __tablename__ = "members"

    employer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True
    )
    family_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        index=True,
        comment="Members sharing this id share the family limit",
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    enrollment_date: Mapped[date] = mapped_column(Date, nullable=False)
    benefit_policy_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("benefit_policies.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
        comment="NULL only before enrollment completes",
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_limit_consumption_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Member(id={self.id}, policy_id={self.benefit_policy_id})>"
