"""
Coverage Resolver.

Decides, for one member, claim line and service date, whether the service
is covered and under which terms. Each step is a hard precondition:

    1. member has a policy
    2. policy is active and the service date is inside its window
    3. rule lookup: service rule, else category rule, else policy default,
       else not covered
    4. waiting period: rule override, else policy default, else 0 days;
       the date enrollment + days is itself covered
    5. pre-approval, when the rule requires one
    6. yearly usage count, when the rule sets one

Failures are returned as CoverageRejection values; "not covered" is a
normal CoverageDecision.
"""

import logging
from datetime import date, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import EngineSettings, get_engine_settings
from src.core.enums import CoverageRejectionReason, PreApprovalStatus, RuleScope
from src.models.claim import Claim, ClaimLine
from src.models.member import Member
from src.models.policy import BenefitPolicy, BenefitPolicyRule
from src.models.preauth import PreApproval
from src.schemas.benefit import CoverageDecision, CoverageRejection, CoverageResult
from src.services.usage_ledger import UsageLedger

logger = logging.getLogger(__name__)


def waiting_period_end(enrollment_date: date, waiting_days: int) -> date:
    """First covered service date."""
    return enrollment_date + timedelta(days=waiting_days)


def effective_waiting_days(
    policy: BenefitPolicy,
    rule: Optional[BenefitPolicyRule],
) -> int:
    """Rule override, else policy default, else zero."""
    if rule is not None and rule.waiting_period_days is not None:
        return rule.waiting_period_days
    if policy.default_waiting_period_days is not None:
        return policy.default_waiting_period_days
    return 0


class CoverageResolver:
    """Walks the policy model to a coverage decision for each claim line."""

    def __init__(
        self,
        session: AsyncSession,
        ledger: Optional[UsageLedger] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.session = session
        self.ledger = ledger or UsageLedger(session)
        self.settings = settings or get_engine_settings()

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get_policy(self, policy_id: UUID) -> Optional[BenefitPolicy]:
        return await self.session.get(BenefitPolicy, policy_id)

    async def find_rule(
        self,
        policy_id: UUID,
        service_id: UUID,
        category_id: Optional[UUID],
    ) -> Optional[BenefitPolicyRule]:
        """
        Active rule for the service, else for its category.

        The service rule always wins over the category rule.
        """
        result = await self.session.execute(
            select(BenefitPolicyRule)
            .where(
                BenefitPolicyRule.policy_id == policy_id,
                BenefitPolicyRule.service_id == service_id,
                BenefitPolicyRule.active.is_(True),
            )
        )
        rule = result.scalar_one_or_none()
        if rule is not None or category_id is None:
            return rule

        result = await self.session.execute(
            select(BenefitPolicyRule)
            .where(
                BenefitPolicyRule.policy_id == policy_id,
                BenefitPolicyRule.category_id == category_id,
                BenefitPolicyRule.active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def find_pre_approval(
        self,
        member_id: UUID,
        service_id: UUID,
        service_date: date,
    ) -> Optional[PreApproval]:
        result = await self.session.execute(
            select(PreApproval).where(
                PreApproval.member_id == member_id,
                PreApproval.service_id == service_id,
                PreApproval.status == PreApprovalStatus.APPROVED,
                PreApproval.valid_from <= service_date,
                PreApproval.valid_to >= service_date,
            )
        )
        return result.scalars().first()

    # =========================================================================
    # Resolution
    # =========================================================================

    async def resolve(
        self,
        member: Member,
        line: ClaimLine,
        service_date: date,
        exclude_claim_id: Optional[UUID] = None,
        pending_units: Optional[dict[UUID, int]] = None,
    ) -> CoverageResult:
        """
        Resolve coverage for a single claim line.

        Args:
            member: Member the claim belongs to
            line: Claim line to resolve
            service_date: Date the service was rendered
            exclude_claim_id: Claim whose own usage must not be counted
            pending_units: Units already counted per rule id on earlier lines
                of the same claim

        Returns:
            CoverageDecision, or CoverageRejection naming the failed step
        """
        if member.benefit_policy_id is None:
            return CoverageRejection(
                reason=CoverageRejectionReason.NO_POLICY_ASSIGNED,
                message=f"Member {member.id} has no benefit policy assigned",
                service_id=line.service_id,
                details={"member_id": member.id},
            )

        policy = await self.get_policy(member.benefit_policy_id)
        if policy is None or not policy.is_effective_on(service_date):
            return CoverageRejection(
                reason=CoverageRejectionReason.POLICY_NOT_EFFECTIVE,
                message=f"Benefit policy is not effective on {service_date.isoformat()}",
                service_id=line.service_id,
                details={
                    "policy_id": member.benefit_policy_id,
                    "service_date": service_date,
                    "policy_status": policy.status if policy else None,
                    "start_date": policy.start_date if policy else None,
                    "end_date": policy.end_date if policy else None,
                },
            )

        rule = await self.find_rule(policy.id, line.service_id, line.category_id)

        coverage_percent = policy.default_coverage_percent
        rule_scope: Optional[RuleScope] = RuleScope.POLICY_DEFAULT
        if rule is not None:
            rule_scope = rule.scope
            if rule.coverage_percent is not None:
                coverage_percent = rule.coverage_percent

        if coverage_percent is None or coverage_percent <= 0:
            logger.debug(
                f"Service {line.service_code} not covered under policy {policy.id}"
            )
            return CoverageDecision.not_covered(line.service_id)

        waiting_days = effective_waiting_days(policy, rule)
        eligible_from = waiting_period_end(member.enrollment_date, waiting_days)
        if service_date < eligible_from:
            return CoverageRejection(
                reason=CoverageRejectionReason.WAITING_PERIOD_NOT_ELAPSED,
                message=(
                    f"Waiting period of {waiting_days} days has not elapsed; "
                    f"covered from {eligible_from.isoformat()}"
                ),
                service_id=line.service_id,
                eligible_from=eligible_from,
                details={
                    "waiting_period_days": waiting_days,
                    "enrollment_date": member.enrollment_date,
                },
            )

        pre_approval: Optional[PreApproval] = None
        if rule is not None and rule.requires_pre_approval:
            pre_approval = await self.find_pre_approval(member.id, line.service_id, service_date)
            if pre_approval is None:
                return CoverageRejection(
                    reason=CoverageRejectionReason.PRE_APPROVAL_REQUIRED,
                    message=f"Service {line.service_code} requires an approved pre-authorization",
                    service_id=line.service_id,
                    details={"rule_id": rule.id, "service_date": service_date},
                )

        if (
            rule is not None
            and rule.times_limit is not None
            and self.settings.ENFORCE_TIMES_LIMIT
        ):
            used = await self.ledger.count_usage(
                member.id,
                service_date.year,
                service_id=rule.service_id,
                category_id=rule.category_id,
                exclude_claim_id=exclude_claim_id,
            )
            used += (pending_units or {}).get(rule.id, 0)
            if used + line.quantity > rule.times_limit:
                return CoverageRejection(
                    reason=CoverageRejectionReason.USAGE_COUNT_EXCEEDED,
                    message=(
                        f"Service {line.service_code} is limited to {rule.times_limit} "
                        f"uses in {service_date.year}"
                    ),
                    service_id=line.service_id,
                    eligible_from=date(service_date.year + 1, 1, 1),
                    details={
                        "rule_id": rule.id,
                        "times_limit": rule.times_limit,
                        "used": used,
                        "requested": line.quantity,
                    },
                )

        return CoverageDecision(
            service_id=line.service_id,
            covered=True,
            coverage_percent=coverage_percent,
            applicable_limit=rule.amount_limit if rule is not None else None,
            rule_id=rule.id if rule is not None else None,
            rule_scope=rule_scope,
            waiting_period_days=waiting_days,
            eligible_from=eligible_from,
            pre_approval_id=pre_approval.id if pre_approval else None,
        )

    async def resolve_claim(
        self,
        member: Member,
        claim: Claim,
    ) -> list[CoverageResult]:
        """Resolve every line of a claim, in line order."""
        results: list[CoverageResult] = []
        pending: dict[UUID, int] = {}

        for line in claim.lines:
            result = await self.resolve(
                member,
                line,
                claim.service_date,
                exclude_claim_id=claim.id,
                pending_units=pending,
            )
            if isinstance(result, CoverageDecision) and result.rule_id is not None:
                pending[result.rule_id] = pending.get(result.rule_id, 0) + line.quantity
            results.append(result)

        return results


def first_rejection(results: list[CoverageResult]) -> Optional[CoverageRejection]:
    for result in results:
        if isinstance(result, CoverageRejection):
            return result
    return None
