"""
Claim Audit Trail Model.

One row per successful claim transition, written in the same unit of work
as the status change. Rows are append-only: the ORM refuses to update or
delete them.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column

from src.core.enums import ClaimStatus
from src.models.base import Base
from src.utils.errors import AuditTrailImmutableError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClaimAuditLog(Base):
    """
    Audit record for a claim transition.

    Shape read by external reporting:
    claim_id, actor_id, from_status, to_status, comment, timestamp.
    """

    __tablename__ = "claim_audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    claim_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("claims.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_role: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True, comment="Role that granted the capability"
    )

    from_status: Mapped[ClaimStatus] = mapped_column(
        Enum(ClaimStatus, native_enum=False, length=30), nullable=False
    )
    to_status: Mapped[ClaimStatus] = mapped_column(
        Enum(ClaimStatus, native_enum=False, length=30), nullable=False
    )
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True
    )

    __table_args__ = (Index("ix_claim_audit_logs_claim_id_id", "claim_id", "id"),)

    def __repr__(self) -> str:
        return (
            f"<ClaimAuditLog(claim_id={self.claim_id}, "
            f"{self.from_status.value}->{self.to_status.value})>"
        )


@event.listens_for(ClaimAuditLog, "before_update")
def _refuse_audit_update(mapper, connection, target: ClaimAuditLog) -> None:
    raise AuditTrailImmutableError(
        "Audit records cannot be modified",
        details={"audit_id": target.id, "claim_id": str(target.claim_id)},
    )


@event.listens_for(ClaimAuditLog, "before_delete")
def _refuse_audit_delete(mapper, connection, target: ClaimAuditLog) -> None:
    raise AuditTrailImmutableError(
        "Audit records cannot be deleted",
        details={"audit_id": target.id, "claim_id": str(target.claim_id)},
    )
