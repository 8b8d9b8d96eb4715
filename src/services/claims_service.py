"""
Claims Service for Benefit Adjudication.

Provides:
- Claim creation in DRAFT and line entry while in DRAFT
- Transitions through the claim state machine, with coverage and limit
  preconditions, in one unit of work with the audit record
- Cost breakdown (financial snapshot) for a claim
- Operational queues (pending / approved)
- Audit trail reads

Every write commits or rolls back as a whole. A failed optimistic version
check surfaces as ConcurrentModificationError; nothing here retries.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from src.core.config import EngineSettings, get_engine_settings
from src.core.enums import (
    LIMIT_CONSUMING_STATUSES,
    PENDING_STATUSES,
    ClaimStatus,
)
from src.models.claim import Claim, ClaimLine
from src.models.medical_service import MedicalService
from src.models.member import Member
from src.models.policy import BenefitPolicy
from src.schemas.benefit import CoverageDecision, FinancialSnapshot
from src.schemas.claim import (
    Actor,
    AuditEntry,
    AuditTrailResponse,
    ClaimLineInput,
    ClaimQueueItem,
    ClaimQueueResponse,
    ClaimSnapshot,
    QueueScope,
    TransitionPayload,
)
from src.services.claim_audit import ClaimAuditService
from src.services.claim_state_machine import (
    ClaimStateMachine,
    TransitionContext,
    TransitionEvent,
    get_claim_state_machine,
)
from src.services.coverage_resolver import CoverageResolver, first_rejection
from src.services.financial_calculator import (
    FinancialSnapshotCalculator,
    apply_approval,
    quantize_amount,
)
from src.services.usage_ledger import UsageLedger
from src.utils.errors import (
    BenefitEngineError,
    ClaimLockedError,
    ClaimNotFoundError,
    ConcurrentModificationError,
    MemberNotFoundError,
    ServiceNotFoundError,
    TransitionPreconditionError,
)

logger = logging.getLogger(__name__)


class ClaimsService:
    """
    Service for claim adjudication operations.

    Handles:
    - Claim creation and DRAFT line entry
    - State machine transitions with audit
    - Cost breakdown
    - Operational queues
    """

    def __init__(
        self,
        session: AsyncSession,
        state_machine: Optional[ClaimStateMachine] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.session = session
        self.settings = settings or get_engine_settings()
        self.state_machine = state_machine or get_claim_state_machine()
        self.ledger = UsageLedger(session)
        self.resolver = CoverageResolver(session, self.ledger, self.settings)
        self.calculator = FinancialSnapshotCalculator(self.ledger, self.settings)
        self.audit = ClaimAuditService(session)

    # =========================================================================
    # Claim Number Generation
    # =========================================================================

    async def _generate_claim_number(self) -> str:
        """
        Generate unique claim number.

        Format: CLM-{YEAR}-{SEQUENCE:06d}
        Example: CLM-2025-000001
        """
        year = datetime.now(timezone.utc).year

        result = await self.session.execute(
            select(func.max(Claim.claim_number)).where(
                Claim.claim_number.like(f"CLM-{year}-%")
            )
        )
        max_number = result.scalar_one_or_none()

        next_seq = 1
        if max_number:
            try:
                next_seq = int(max_number.split("-")[-1]) + 1
            except (ValueError, IndexError):
                next_seq = 1

        return f"CLM-{year}-{next_seq:06d}"

    # =========================================================================
    # Loading
    # =========================================================================

    async def get_claim(self, claim_id: UUID) -> Claim:
        """
        Load a claim with its lines.

        An instance already in the session is returned as held, so a write
        based on it is checked against the version that was read.
        """
        result = await self.session.execute(
            select(Claim).where(Claim.id == claim_id).options(selectinload(Claim.lines))
        )
        claim = result.scalar_one_or_none()
        if claim is None:
            raise ClaimNotFoundError(claim_id)
        return claim

    async def _get_member(self, member_id: UUID) -> Member:
        member = await self.session.get(Member, member_id)
        if member is None:
            raise MemberNotFoundError(member_id)
        return member

    async def _build_line(self, line_number: int, data: ClaimLineInput) -> ClaimLine:
        service = await self.session.get(MedicalService, data.service_id)
        if service is None:
            raise ServiceNotFoundError(data.service_id)

        quantum = self.settings.MONEY_QUANTUM
        unit_price = quantize_amount(data.unit_price, quantum)
        return ClaimLine(
            id=uuid4(),
            line_number=line_number,
            service_id=service.id,
            category_id=service.category_id,
            service_code=service.code,
            quantity=data.quantity,
            unit_price=unit_price,
            line_total=quantize_amount(unit_price * data.quantity, quantum),
        )

    # =========================================================================
    # Create Operations
    # =========================================================================

    async def create_claim(
        self,
        member_id: UUID,
        lines: Sequence[ClaimLineInput],
        service_date: date,
        created_by: Optional[str] = None,
    ) -> UUID:
        """
        Create a claim in DRAFT.

        Args:
            member_id: Member the claim is for
            lines: Billed services; more can be added while in DRAFT
            service_date: Date the services were rendered
            created_by: Id of the requesting user

        Returns:
            Id of the new claim
        """
        try:
            member = await self._get_member(member_id)

            claim = Claim(
                id=uuid4(),
                claim_number=await self._generate_claim_number(),
                member_id=member.id,
                employer_id=member.employer_id,
                benefit_policy_id=member.benefit_policy_id,
                service_date=service_date,
                status=ClaimStatus.DRAFT,
                created_by=created_by,
                lines=[],
            )
            for number, data in enumerate(lines, start=1):
                claim.lines.append(await self._build_line(number, data))
            claim.recalculate_requested_amount()

            self.session.add(claim)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            f"Created claim {claim.claim_number} (ID: {claim.id}) for member {member_id} "
            f"with {claim.line_count} lines"
        )
        return claim.id

    async def add_claim_line(self, claim_id: UUID, data: ClaimLineInput) -> ClaimLine:
        """Add a line to a DRAFT claim; any later status rejects the edit."""
        try:
            claim = await self.get_claim(claim_id)
            if not claim.status.allows_edit:
                raise ClaimLockedError(
                    f"Claim lines cannot change once the claim is {claim.status.value}",
                    {"claim_id": claim.id, "status": claim.status},
                )

            line = await self._build_line(claim.line_count + 1, data)
            claim.lines.append(line)
            claim.recalculate_requested_amount()
            await self.session.commit()
        except StaleDataError as e:
            await self.session.rollback()
            raise self._conflict(claim_id) from e
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Added line {line.line_number} ({line.service_code}) to claim {claim_id}")
        return line

    # =========================================================================
    # Transitions
    # =========================================================================

    async def transition(
        self,
        claim_id: UUID,
        target_status: ClaimStatus,
        actor: Actor,
        payload: Optional[TransitionPayload] = None,
    ) -> ClaimSnapshot:
        """
        Move a claim to ``target_status``.

        The status change, any financial figures and the audit record are
        committed together or not at all.

        Raises:
            ClaimNotFoundError: unknown claim
            ConcurrentModificationError: stale expected_version or a
                concurrent writer committed first
            IllegalStateTransitionError: edge not in the table
            TransitionNotPermittedError: actor lacks the capability
            TransitionPreconditionError: missing comment, amount or reference
            CoverageError: a line failed coverage resolution
            LimitError: approval outside the remaining limits
        """
        payload = payload or TransitionPayload()

        try:
            claim = await self.get_claim(claim_id)

            if payload.expected_version is not None and payload.expected_version != claim.version:
                raise ConcurrentModificationError(
                    f"Claim {claim_id} is at version {claim.version}, "
                    f"expected {payload.expected_version}",
                    {
                        "claim_id": claim_id,
                        "current_version": claim.version,
                        "expected_version": payload.expected_version,
                    },
                )

            context = TransitionContext(
                claim_id=claim.id,
                current_status=claim.status,
                target_status=target_status,
                actor=actor,
                payload=payload,
            )
            result = self.state_machine.validate_transition(context)
            result.raise_for_error()
            transition = result.transition

            try:
                if transition.event == TransitionEvent.SUBMIT:
                    await self._check_submission(claim)
                elif transition.event == TransitionEvent.APPROVE:
                    await self._approve(claim, payload.approved_amount, context.timestamp)
            except BenefitEngineError as e:
                logger.warning(f"Claim {claim_id} failed {transition.event.value}: {e.code} ({e.message})")
                raise

            if transition.event in (TransitionEvent.REJECT, TransitionEvent.RETURN_FOR_INFO):
                claim.reviewer_comment = payload.comment.strip()
            elif transition.event == TransitionEvent.SETTLE:
                claim.payment_reference = payload.payment_reference.strip()
                claim.settlement_notes = payload.settlement_notes

            from_status = claim.status
            claim.status = transition.to_status
            setattr(claim, transition.timestamp_field, context.timestamp)

            await self.audit.record_transition(
                claim_id=claim.id,
                actor_id=actor.id,
                actor_role=result.granted_by.value if result.granted_by else None,
                from_status=from_status,
                to_status=transition.to_status,
                timestamp=context.timestamp,
                comment=claim.reviewer_comment if transition.requires_comment else None,
            )

            await self.session.commit()
        except StaleDataError as e:
            await self.session.rollback()
            logger.warning(f"Concurrent modification of claim {claim_id} during {target_status.value}")
            raise self._conflict(claim_id) from e
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            f"Claim {claim.claim_number} transitioned: "
            f"{from_status.value} -> {claim.status.value} (actor: {actor.id})"
        )
        return self._to_snapshot(claim, actor)

    async def _check_submission(self, claim: Claim) -> None:
        """At least one line, and every line resolves without rejection."""
        if not claim.lines:
            raise TransitionPreconditionError(
                "claim_lines_required",
                "A claim needs at least one line before it can be submitted",
                {"claim_id": claim.id},
            )

        member = await self._get_member(claim.member_id)
        results = await self.resolver.resolve_claim(member, claim)
        rejection = first_rejection(results)
        if rejection is not None:
            raise rejection.to_error()

        claim.benefit_policy_id = member.benefit_policy_id

    async def _resolve_decisions(
        self,
        claim: Claim,
    ) -> tuple[Member, BenefitPolicy, list[CoverageDecision]]:
        member = await self._get_member(claim.member_id)
        results = await self.resolver.resolve_claim(member, claim)
        rejection = first_rejection(results)
        if rejection is not None:
            raise rejection.to_error()

        # resolve_claim has already checked the policy exists
        policy = await self.resolver.get_policy(member.benefit_policy_id)
        return member, policy, [r for r in results if isinstance(r, CoverageDecision)]

    async def _approve(
        self,
        claim: Claim,
        approved_amount: Decimal,
        timestamp: datetime,
    ) -> None:
        approved = quantize_amount(approved_amount, self.settings.MONEY_QUANTUM)
        if approved <= 0:
            raise TransitionPreconditionError(
                "approved_amount_required",
                "An approved amount greater than zero is required",
                {"approved_amount": approved_amount},
            )

        member, policy, decisions = await self._resolve_decisions(claim)
        # Loaded before the ledger read so their versions predate it
        relatives = await self._family_members(member, policy)
        snapshot = await self.calculator.compute_snapshot(claim, member, policy, decisions)
        final = apply_approval(snapshot, approved)

        claim.benefit_policy_id = policy.id
        claim.covered_amount = final.raw_covered_amount
        claim.approved_amount = final.approved_amount
        claim.net_provider_amount = final.net_provider_amount
        claim.patient_copay = final.patient_copay
        claim.cost_breakdown = final.to_storage()

        # Bumps the member version, and every relative's when a family
        # limit applies: a concurrent approval that read the same ledger
        # fails its version check.
        member.last_limit_consumption_at = timestamp
        for relative in relatives:
            relative.last_limit_consumption_at = timestamp

    async def _family_members(self, member: Member, policy: BenefitPolicy) -> list[Member]:
        """Other members drawing on the same family limit."""
        if policy.family_limit is None or member.family_id is None:
            return []
        result = await self.session.execute(
            select(Member).where(
                Member.family_id == member.family_id,
                Member.id != member.id,
            )
        )
        return list(result.scalars().all())

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def get_cost_breakdown(self, claim_id: UUID) -> FinancialSnapshot:
        """
        Financial snapshot of a claim.

        APPROVED and SETTLED claims return the snapshot persisted at
        approval; other claims are computed from the current ledger.
        """
        claim = await self.get_claim(claim_id)
        if claim.status in LIMIT_CONSUMING_STATUSES and claim.cost_breakdown:
            return FinancialSnapshot.from_storage(claim.cost_breakdown)

        member, policy, decisions = await self._resolve_decisions(claim)
        return await self.calculator.compute_snapshot(claim, member, policy, decisions)

    def get_available_transitions(self, claim: Claim, actor: Actor) -> list[ClaimStatus]:
        """Targets the actor may attempt from the claim's current status."""
        return [
            t.to_status
            for t in self.state_machine.get_available_transitions(claim.status, actor)
        ]

    async def get_audit_trail(self, claim_id: UUID) -> AuditTrailResponse:
        claim = await self.get_claim(claim_id)
        entries = await self.audit.get_trail(claim.id)
        return AuditTrailResponse(
            claim_id=claim.id,
            entries=[AuditEntry.model_validate(e) for e in entries],
            is_legal_path=self.state_machine.is_legal_path(
                (e.from_status, e.to_status) for e in entries
            ),
        )

    async def list_pending(self, scope: Optional[QueueScope] = None) -> ClaimQueueResponse:
        """Claims waiting on a reviewer or requester."""
        return await self._list_queue(PENDING_STATUSES, scope or QueueScope())

    async def list_approved(self, scope: Optional[QueueScope] = None) -> ClaimQueueResponse:
        """Claims approved and waiting on settlement."""
        return await self._list_queue((ClaimStatus.APPROVED,), scope or QueueScope())

    async def _list_queue(
        self,
        statuses: Sequence[ClaimStatus],
        scope: QueueScope,
    ) -> ClaimQueueResponse:
        limit = self.settings.clamp_queue_limit(scope.limit)

        conditions = [Claim.status.in_(statuses)]
        if scope.employer_id is not None:
            conditions.append(Claim.employer_id == scope.employer_id)
        if scope.member_id is not None:
            conditions.append(Claim.member_id == scope.member_id)
        if scope.policy_id is not None:
            conditions.append(Claim.benefit_policy_id == scope.policy_id)

        count_result = await self.session.execute(
            select(func.count()).select_from(Claim).where(*conditions)
        )
        total = count_result.scalar_one()

        result = await self.session.execute(
            select(Claim)
            .where(*conditions)
            .order_by(Claim.service_date, Claim.claim_number)
            .offset(scope.offset)
            .limit(limit)
        )
        claims = result.scalars().all()

        return ClaimQueueResponse(
            items=[ClaimQueueItem.model_validate(c) for c in claims],
            total=total,
            limit=limit,
            offset=scope.offset,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _to_snapshot(self, claim: Claim, actor: Optional[Actor] = None) -> ClaimSnapshot:
        snapshot = ClaimSnapshot.model_validate(claim)
        if actor is None:
            return snapshot
        return snapshot.model_copy(
            update={"available_transitions": self.get_available_transitions(claim, actor)}
        )

    def _conflict(self, claim_id: UUID) -> ConcurrentModificationError:
        return ConcurrentModificationError(
            f"Claim {claim_id} was modified concurrently; reload and retry",
            {"claim_id": claim_id},
        )

    async def get_claim_snapshot(
        self,
        claim_id: UUID,
        actor: Optional[Actor] = None,
    ) -> ClaimSnapshot:
        claim = await self.get_claim(claim_id)
        return self._to_snapshot(claim, actor)
