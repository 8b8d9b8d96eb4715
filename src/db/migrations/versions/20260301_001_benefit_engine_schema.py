"""Benefit policies, reference data, claims and the claim audit trail.

Revision ID: 20260301_001
Revises:
Create Date: 2026-03-01
"""

from alembic import op
import sqlalchemy as sa

from src.models.base import ExactDecimal

# Revision identifiers
revision = "20260301_001"
down_revision = None
branch_labels = None
depends_on = None


def _money(name: str, nullable: bool = True, **kwargs) -> sa.Column:
    return sa.Column(name, ExactDecimal(), nullable=nullable, **kwargs)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    """Create the engine tables."""

    # NOTE: enum columns are plain strings; the models declare them with
    # native_enum=False so both sides agree.

    op.create_table(
        "benefit_policies",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("policy_code", sa.String(50), nullable=True, unique=True),
        sa.Column("employer_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, index=True),
        _money("annual_limit"),
        _money("per_member_limit"),
        _money("family_limit"),
        _money("lifetime_limit"),
        sa.Column("default_coverage_percent", ExactDecimal(5, 4), nullable=True),
        sa.Column("default_waiting_period_days", sa.Integer(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("start_date <= end_date", name="ck_benefit_policies_window"),
    )
    op.create_index(
        "ix_benefit_policies_employer_status", "benefit_policies", ["employer_id", "status"]
    )

    op.create_table(
        "medical_services",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category_id", sa.Uuid(), nullable=True, index=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "benefit_policy_rules",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "policy_id",
            sa.Uuid(),
            sa.ForeignKey("benefit_policies.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "service_id",
            sa.Uuid(),
            sa.ForeignKey("medical_services.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("category_id", sa.Uuid(), nullable=True),
        sa.Column("coverage_percent", ExactDecimal(5, 4), nullable=True),
        _money("amount_limit"),
        sa.Column("times_limit", sa.Integer(), nullable=True),
        sa.Column("waiting_period_days", sa.Integer(), nullable=True),
        sa.Column(
            "requires_pre_approval", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.String(500), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "(service_id IS NULL) <> (category_id IS NULL)",
            name="ck_benefit_policy_rules_single_scope",
        ),
    )
    op.create_index(
        "uq_benefit_policy_rules_active_service",
        "benefit_policy_rules",
        ["policy_id", "service_id"],
        unique=True,
        postgresql_where=sa.text("active"),
        sqlite_where=sa.text("active"),
    )
    op.create_index(
        "uq_benefit_policy_rules_active_category",
        "benefit_policy_rules",
        ["policy_id", "category_id"],
        unique=True,
        postgresql_where=sa.text("active"),
        sqlite_where=sa.text("active"),
    )

    op.create_table(
        "members",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("employer_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("family_id", sa.Uuid(), nullable=True, index=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("enrollment_date", sa.Date(), nullable=False),
        sa.Column(
            "benefit_policy_id",
            sa.Uuid(),
            sa.ForeignKey("benefit_policies.id", ondelete="RESTRICT"),
            nullable=True,
            index=True,
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_limit_consumption_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "pre_approvals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "member_id",
            sa.Uuid(),
            sa.ForeignKey("members.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "service_id",
            sa.Uuid(),
            sa.ForeignKey("medical_services.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("reference_number", sa.String(50), nullable=False, unique=True),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("valid_from", sa.Date(), nullable=False),
        sa.Column("valid_to", sa.Date(), nullable=False),
        _money("approved_amount"),
        *_timestamps(),
    )
    op.create_index(
        "ix_pre_approvals_member_service",
        "pre_approvals",
        ["member_id", "service_id", "status"],
    )

    op.create_table(
        "claims",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("claim_number", sa.String(50), nullable=False, unique=True, index=True),
        sa.Column(
            "member_id",
            sa.Uuid(),
            sa.ForeignKey("members.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column("employer_id", sa.Uuid(), nullable=False, index=True),
        sa.Column(
            "benefit_policy_id",
            sa.Uuid(),
            sa.ForeignKey("benefit_policies.id", ondelete="RESTRICT"),
            nullable=True,
            index=True,
        ),
        sa.Column("service_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, index=True),
        _money("requested_amount", nullable=False),
        _money("covered_amount"),
        _money("approved_amount"),
        _money("patient_copay"),
        _money("net_provider_amount"),
        sa.Column("cost_breakdown", sa.JSON(), nullable=True),
        sa.Column("reviewer_comment", sa.Text(), nullable=True),
        sa.Column("payment_reference", sa.String(100), nullable=True),
        sa.Column("settlement_notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("returned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("ix_claims_member_status", "claims", ["member_id", "status"])
    op.create_index("ix_claims_employer_status", "claims", ["employer_id", "status"])
    op.create_index("ix_claims_policy_status", "claims", ["benefit_policy_id", "status"])

    op.create_table(
        "claim_lines",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "claim_id",
            sa.Uuid(),
            sa.ForeignKey("claims.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column(
            "service_id",
            sa.Uuid(),
            sa.ForeignKey("medical_services.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column("category_id", sa.Uuid(), nullable=True),
        sa.Column("service_code", sa.String(50), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _money("unit_price", nullable=False),
        _money("line_total", nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_claim_lines_claim_line", "claim_lines", ["claim_id", "line_number"], unique=True
    )

    op.create_table(
        "claim_audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "claim_id",
            sa.Uuid(),
            sa.ForeignKey("claims.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column("actor_id", sa.String(100), nullable=False),
        sa.Column("actor_role", sa.String(50), nullable=True),
        sa.Column("from_status", sa.String(30), nullable=False),
        sa.Column("to_status", sa.String(30), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, index=True),
    )
    op.create_index(
        "ix_claim_audit_logs_claim_id_id", "claim_audit_logs", ["claim_id", "id"]
    )


def downgrade() -> None:
    """Drop the engine tables."""
    op.drop_table("claim_audit_logs")
    op.drop_table("claim_lines")
    op.drop_table("claims")
    op.drop_table("pre_approvals")
    op.drop_table("members")
    op.drop_table("benefit_policy_rules")
    op.drop_table("medical_services")
    op.drop_table("benefit_policies")
