"""
Usage Ledger.

Limit consumption is derived, never stored: every read sums the approved
amount of the member's APPROVED and SETTLED claims within the limit's
scope. Sums are taken over Decimal values in Python so no amount passes
through a float.

Scopes:
    annual      member, same policy, calendar year of the service date
    per_member  member, same policy
    lifetime    member, every policy
    family      members sharing the family id, same policy
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.enums import LIMIT_CONSUMING_STATUSES, LimitScope
from src.models.claim import Claim, ClaimLine
from src.models.member import Member
from src.models.policy import BenefitPolicy
from src.schemas.benefit import LimitUsage

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _year_bounds(service_date: date) -> tuple[date, date]:
    return date(service_date.year, 1, 1), date(service_date.year, 12, 31)


class UsageLedger:
    """Read-only aggregate over persisted claims."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # Amount Consumption
    # =========================================================================

    def _scope_filter(
        self,
        query: Select,
        scope: LimitScope,
        member: Member,
        policy_id: Optional[UUID],
        service_date: date,
    ) -> Select:
        if scope == LimitScope.LIFETIME:
            return query.where(Claim.member_id == member.id)

        query = query.where(Claim.benefit_policy_id == policy_id)

        if scope == LimitScope.FAMILY:
            if member.family_id is None:
                return query.where(Claim.member_id == member.id)
            family_members = select(Member.id).where(Member.family_id == member.family_id)
            return query.where(Claim.member_id.in_(family_members))

        query = query.where(Claim.member_id == member.id)
        if scope == LimitScope.ANNUAL:
            start, end = _year_bounds(service_date)
            query = query.where(Claim.service_date >= start, Claim.service_date <= end)
        return query

    async def consumed(
        self,
        scope: LimitScope,
        member: Member,
        policy_id: Optional[UUID],
        service_date: date,
        exclude_claim_id: Optional[UUID] = None,
    ) -> Decimal:
        """Sum of approved amounts counted against ``scope``."""
        query = select(Claim.approved_amount).where(
            Claim.status.in_(LIMIT_CONSUMING_STATUSES),
            Claim.approved_amount.is_not(None),
        )
        query = self._scope_filter(query, scope, member, policy_id, service_date)
        if exclude_claim_id is not None:
            query = query.where(Claim.id != exclude_claim_id)

        result = await self.session.execute(query)
        return sum(result.scalars().all(), ZERO)

    async def limit_usage(
        self,
        member: Member,
        policy: BenefitPolicy,
        service_date: date,
        exclude_claim_id: Optional[UUID] = None,
    ) -> list[LimitUsage]:
        """
        Usage for every limit the policy defines.

        Scopes whose limit is NULL are unlimited and left out.
        """
        limits = {
            LimitScope.ANNUAL: policy.annual_limit,
            LimitScope.PER_MEMBER: policy.per_member_limit,
            LimitScope.LIFETIME: policy.lifetime_limit,
            LimitScope.FAMILY: policy.family_limit,
        }

        usages: list[LimitUsage] = []
        for scope, limit in limits.items():
            if limit is None:
                continue
            consumed = await self.consumed(
                scope, member, policy.id, service_date, exclude_claim_id
            )
            usages.append(
                LimitUsage(
                    scope=scope,
                    limit=limit,
                    consumed=consumed,
                    remaining=max(limit - consumed, ZERO),
                )
            )

        logger.debug(
            f"Limit usage for member {member.id} on {service_date}: "
            + ", ".join(f"{u.scope.value}={u.consumed}/{u.limit}" for u in usages)
        )
        return usages

    # =========================================================================
    # Usage Counts
    # =========================================================================

    async def count_usage(
        self,
        member_id: UUID,
        year: int,
        service_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        exclude_claim_id: Optional[UUID] = None,
    ) -> int:
        """Units of a service (or of a category) used by the member in ``year``."""
        start, end = date(year, 1, 1), date(year, 12, 31)
        query = (
            select(func.coalesce(func.sum(ClaimLine.quantity), 0))
            .join(Claim, Claim.id == ClaimLine.claim_id)
            .where(
                Claim.member_id == member_id,
                Claim.status.in_(LIMIT_CONSUMING_STATUSES),
                Claim.service_date >= start,
                Claim.service_date <= end,
            )
        )
        if service_id is not None:
            query = query.where(ClaimLine.service_id == service_id)
        if category_id is not None:
            query = query.where(ClaimLine.category_id == category_id)
        if exclude_claim_id is not None:
            query = query.where(Claim.id != exclude_claim_id)

        result = await self.session.execute(query)
        return int(result.scalar_one())
