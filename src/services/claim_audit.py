"""
Claim Audit Service.

Writes one ClaimAuditLog row per successful transition and reads the trail
back for reporting. Writes join the caller's unit of work; nothing here
commits.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.enums import ClaimStatus
from src.models.audit import ClaimAuditLog

logger = logging.getLogger(__name__)


class ClaimAuditService:
    """Append-only access to the claim audit trail."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record_transition(
        self,
        claim_id: UUID,
        actor_id: str,
        from_status: ClaimStatus,
        to_status: ClaimStatus,
        timestamp: datetime,
        actor_role: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> ClaimAuditLog:
        """Stage an audit record in the current transaction."""
        entry = ClaimAuditLog(
            claim_id=claim_id,
            actor_id=actor_id,
            actor_role=actor_role,
            from_status=from_status,
            to_status=to_status,
            comment=comment,
            timestamp=timestamp,
        )
        self.session.add(entry)
        logger.debug(
            f"Audit staged for claim {claim_id}: {from_status.value} -> {to_status.value} by {actor_id}"
        )
        return entry

    async def get_trail(self, claim_id: UUID) -> list[ClaimAuditLog]:
        """Audit records of a claim, oldest first."""
        result = await self.session.execute(
            select(ClaimAuditLog)
            .where(ClaimAuditLog.claim_id == claim_id)
            .order_by(ClaimAuditLog.id)
        )
        return list(result.scalars().all())
