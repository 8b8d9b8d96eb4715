"""
Benefit Policy Models.

A BenefitPolicy is the coverage contract for one employer enrollment
period; its BenefitPolicyRule rows override coverage for a single medical
service or for a whole service category.

Members, claims and rules reference a policy by identifier only; there is
no ORM object graph between them.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.enums import BenefitPolicyStatus, RuleScope
from src.models.base import Base, ExactDecimal, TimeStampedModel, UUIDModel


class BenefitPolicy(Base, UUIDModel, TimeStampedModel):
    """
    Benefit policy for an employer enrollment period.

    Limits left NULL are unlimited. Percentages are decimals in [0, 1].
    """

    __tablename__ = "benefit_policies"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    policy_code: Mapped[Optional[str]] = mapped_column(
        String(50), unique=True, nullable=True, comment="Business policy code"
    )
    employer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="Owning employer (external organization directory)",
    )

    # Effective window
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[BenefitPolicyStatus] = mapped_column(
        Enum(BenefitPolicyStatus, native_enum=False, length=30),
        default=BenefitPolicyStatus.DRAFT,
        nullable=False,
        index=True,
    )

    # Limits
    annual_limit: Mapped[Optional[Decimal]] = mapped_column(
        ExactDecimal(), nullable=True, comment="Per member, per calendar year"
    )
    per_member_limit: Mapped[Optional[Decimal]] = mapped_column(
        ExactDecimal(), nullable=True, comment="Per member, over the policy"
    )
    family_limit: Mapped[Optional[Decimal]] = mapped_column(
        ExactDecimal(), nullable=True, comment="All members sharing a family id, over the policy"
    )
    lifetime_limit: Mapped[Optional[Decimal]] = mapped_column(
        ExactDecimal(), nullable=True, comment="Per member, across every policy"
    )

    # Defaults
    default_coverage_percent: Mapped[Optional[Decimal]] = mapped_column(
        ExactDecimal(5, 4),
        nullable=True,
        comment="Coverage when no rule matches (NULL: uncovered)",
    )
    default_waiting_period_days: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True
    )

    active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False, comment="Soft-delete flag"
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_benefit_policies_window"),
        Index("ix_benefit_policies_employer_status", "employer_id", "status"),
    )

    def is_effective_on(self, service_date: date) -> bool:
        """Active, not soft-deleted, and service_date inside the window (inclusive)."""
        return (
            self.active
            and self.status == BenefitPolicyStatus.ACTIVE
            and self.start_date <= service_date <= self.end_date
        )

    def __repr__(self) -> str:
        return f"<BenefitPolicy(id={self.id}, name='{self.name}', status={self.status})>"


class BenefitPolicyRule(Base, UUIDModel, TimeStampedModel):
    """
    Coverage override for one service or one category.

    Exactly one of service_id / category_id is set.
    """

    __tablename__ = "benefit_policy_rules"

    policy_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("benefit_policies.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    service_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("medical_services.id", ondelete="RESTRICT"),
        nullable=True,
    )
    category_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True
    )

    coverage_percent: Mapped[Optional[Decimal]] = mapped_column(
        ExactDecimal(5, 4),
        nullable=True,
        comment="NULL inherits the policy default",
    )
    amount_limit: Mapped[Optional[Decimal]] = mapped_column(
        ExactDecimal(), nullable=True, comment="Maximum covered amount per claim line"
    )
    times_limit: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, comment="Maximum uses per calendar year"
    )
    waiting_period_days: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, comment="NULL inherits the policy default"
    )
    requires_pre_approval: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(service_id IS NULL) <> (category_id IS NULL)",
            name="ck_benefit_policy_rules_single_scope",
        ),
        # At most one active rule per service and per category within a policy
        Index(
            "uq_benefit_policy_rules_active_service",
            "policy_id",
            "service_id",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active"),
        ),
        Index(
            "uq_benefit_policy_rules_active_category",
            "policy_id",
            "category_id",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active"),
        ),
    )

    @property
    def scope(self) -> RuleScope:
        return RuleScope.SERVICE if self.service_id is not None else RuleScope.CATEGORY

    def validate_scope(self) -> None:
        """Raise ValueError unless exactly one scope field is set."""
        if (self.service_id is None) == (self.category_id is None):
            raise ValueError("Rule must target either a service or a category, not both or neither")

    def __repr__(self) -> str:
        target = self.service_id if self.service_id is not None else self.category_id
        return f"<BenefitPolicyRule(policy_id={self.policy_id}, {self.scope.value}={target})>"
