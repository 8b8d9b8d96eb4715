"""
Financial Snapshot Calculator.

Splits a claim's requested amount into the payer's net amount and the
patient's copay:

    line covered     = line_total * coverage_percent (0 if not covered),
                       capped by the rule amount limit
    raw covered      = sum of line covered
    net provider     = min(raw covered, remaining of every policy limit), >= 0
    patient copay    = requested - net provider

A clamp below the raw covered amount is reported, not raised. The reviewer's
approved amount may not exceed the net provider amount.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from src.core.config import EngineSettings, get_engine_settings
from src.core.enums import LIMIT_CLAMP_REASONS, ClampReason
from src.models.claim import Claim
from src.models.member import Member
from src.models.policy import BenefitPolicy
from src.schemas.benefit import (
    CoverageDecision,
    FinancialSnapshot,
    LimitUsage,
    LineCoverage,
)
from src.services.usage_ledger import UsageLedger
from src.utils.errors import ApprovedAmountExceedsCoverageError, LimitExceededError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class SnapshotImbalanceError(AssertionError):
    """requested != copay + net; indicates a calculation bug."""


def quantize_amount(amount: Decimal, quantum: Decimal) -> Decimal:
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def build_snapshot(
    claim: Claim,
    decisions: Sequence[CoverageDecision],
    limits: Sequence[LimitUsage],
    quantum: Decimal = Decimal("0.01"),
) -> FinancialSnapshot:
    """
    Compute the financial snapshot from already-resolved inputs.

    Args:
        claim: Claim with its lines loaded
        decisions: One coverage decision per line, in line order
        limits: Ledger usage for every limited scope of the policy
        quantum: Money quantum for line amounts

    Returns:
        Balanced FinancialSnapshot
    """
    if len(decisions) != len(claim.lines):
        raise ValueError(
            f"Expected {len(claim.lines)} coverage decisions, got {len(decisions)}"
        )

    clamp_reasons: list[ClampReason] = []
    line_results: list[LineCoverage] = []
    raw_covered = ZERO

    for line, decision in zip(claim.lines, decisions):
        if decision.covered:
            line_raw = quantize_amount(line.line_total * decision.coverage_percent, quantum)
        else:
            line_raw = ZERO

        line_covered = line_raw
        if decision.applicable_limit is not None and line_covered > decision.applicable_limit:
            line_covered = decision.applicable_limit
            if ClampReason.RULE_AMOUNT_LIMIT not in clamp_reasons:
                clamp_reasons.append(ClampReason.RULE_AMOUNT_LIMIT)

        raw_covered += line_covered
        line_results.append(
            LineCoverage(
                line_number=line.line_number,
                service_id=line.service_id,
                service_code=line.service_code,
                line_total=line.line_total,
                covered=decision.covered,
                coverage_percent=decision.coverage_percent,
                raw_covered_amount=line_raw,
                covered_amount=line_covered,
                applicable_limit=decision.applicable_limit,
                rule_id=decision.rule_id,
            )
        )

    requested = claim.requested_amount
    net = min(raw_covered, requested)
    for usage in limits:
        if usage.remaining < net:
            net = usage.remaining
        if usage.remaining < raw_covered:
            clamp_reasons.append(LIMIT_CLAMP_REASONS[usage.scope])
    net = max(net, ZERO)

    snapshot = FinancialSnapshot(
        claim_id=claim.id,
        requested_amount=requested,
        raw_covered_amount=raw_covered,
        net_provider_amount=net,
        patient_copay=requested - net,
        lines=line_results,
        limits=list(limits),
        clamp_reasons=clamp_reasons,
    )

    if not snapshot.is_balanced():
        raise SnapshotImbalanceError(
            f"Claim {claim.id}: {requested} != {snapshot.patient_copay} + {net}"
        )

    if snapshot.is_clamped:
        logger.info(
            f"Claim {claim.id} net amount clamped from {raw_covered} to {net}: "
            + ", ".join(r.value for r in clamp_reasons)
        )
    return snapshot


def apply_approval(snapshot: FinancialSnapshot, approved_amount: Decimal) -> FinancialSnapshot:
    """
    Final snapshot for an approval of ``approved_amount``.

    Raises:
        LimitExceededError: covered amount exists but every limit is used up
        ApprovedAmountExceedsCoverageError: approved amount above the net amount
    """
    if snapshot.raw_covered_amount > 0 and snapshot.net_provider_amount <= 0:
        raise LimitExceededError(
            "Benefit limits are exhausted for this claim",
            snapshot.limit_figures(),
        )

    if approved_amount > snapshot.net_provider_amount:
        raise ApprovedAmountExceedsCoverageError(
            f"Approved amount {approved_amount} exceeds the maximum approvable "
            f"amount {snapshot.net_provider_amount}",
            {**snapshot.limit_figures(), "approved_amount": approved_amount},
        )

    clamp_reasons = list(snapshot.clamp_reasons)
    if approved_amount < snapshot.net_provider_amount:
        clamp_reasons.append(ClampReason.REVIEWER_ADJUSTED)

    approved = snapshot.model_copy(
        update={
            "approved_amount": approved_amount,
            "net_provider_amount": approved_amount,
            "patient_copay": snapshot.requested_amount - approved_amount,
            "clamp_reasons": clamp_reasons,
        }
    )
    if not approved.is_balanced():
        raise SnapshotImbalanceError(f"Claim {snapshot.claim_id}: approval does not balance")
    return approved


class FinancialSnapshotCalculator:
    """Reads the usage ledger and builds the snapshot for a claim."""

    def __init__(
        self,
        ledger: UsageLedger,
        settings: Optional[EngineSettings] = None,
    ):
        self.ledger = ledger
        self.settings = settings or get_engine_settings()

    async def compute_snapshot(
        self,
        claim: Claim,
        member: Member,
        policy: BenefitPolicy,
        decisions: Sequence[CoverageDecision],
    ) -> FinancialSnapshot:
        limits = await self.ledger.limit_usage(
            member, policy, claim.service_date, exclude_claim_id=claim.id
        )
        return build_snapshot(claim, decisions, limits, self.settings.MONEY_QUANTUM)
