"""
Integration tests for the claims service.

Covers the claim lifecycle end to end against SQLite: coverage and limit
preconditions, the audit trail, optimistic concurrency and the queues.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from src.core.enums import ClampReason, ClaimStatus
from src.models.audit import ClaimAuditLog
from src.models.claim import Claim
from src.schemas.claim import ClaimLineInput, QueueScope, TransitionPayload
from src.services.claim_audit import ClaimAuditService
from src.services.claims_service import ClaimsService
from src.utils.errors import (
    ApprovedAmountExceedsCoverageError,
    AuditTrailImmutableError,
    ClaimLockedError,
    ClaimNotFoundError,
    ConcurrentModificationError,
    IllegalStateTransitionError,
    MemberNotFoundError,
    MissingCommentError,
    NoPolicyAssignedError,
    PreApprovalRequiredError,
    ServiceNotFoundError,
    TransitionNotPermittedError,
    TransitionPreconditionError,
    WaitingPeriodNotElapsedError,
)

SERVICE_DATE = date(2026, 3, 15)


@pytest.fixture
async def covered_setup(seed):
    """Policy with a 10,000 annual limit and a fully covered service."""
    policy = await seed.policy(annual_limit=Decimal("10000"))
    service = await seed.service(code="CONSULT")
    member = await seed.member(policy)
    await seed.rule(policy, service_id=service.id, coverage_percent=Decimal("1"))
    return policy, service, member


async def _create(claims_service, member, service, unit_price="1000.00", quantity=1):
    return await claims_service.create_claim(
        member_id=member.id,
        lines=[ClaimLineInput(service_id=service.id, quantity=quantity, unit_price=Decimal(unit_price))],
        service_date=SERVICE_DATE,
        created_by="requester-1",
    )


async def _to_review(claims_service, claim_id, requester, reviewer):
    await claims_service.transition(claim_id, ClaimStatus.SUBMITTED, requester)
    return await claims_service.transition(claim_id, ClaimStatus.UNDER_REVIEW, reviewer)


# =============================================================================
# Creation and Line Entry
# =============================================================================


@pytest.mark.integration
class TestClaimCreation:

    async def test_create_claim(self, claims_service, covered_setup):
        policy, service, member = covered_setup

        claim_id = await _create(claims_service, member, service, unit_price="120.50", quantity=2)
        claim = await claims_service.get_claim(claim_id)

        assert claim.status == ClaimStatus.DRAFT
        assert claim.claim_number.startswith("CLM-")
        assert claim.employer_id == member.employer_id
        assert claim.benefit_policy_id == policy.id
        assert claim.requested_amount == Decimal("241.00")
        assert claim.lines[0].service_code == "CONSULT"

    async def test_claim_numbers_are_sequential(self, claims_service, covered_setup):
        _, service, member = covered_setup

        first = await claims_service.get_claim(await _create(claims_service, member, service))
        second = await claims_service.get_claim(await _create(claims_service, member, service))

        assert int(second.claim_number.split("-")[-1]) == int(first.claim_number.split("-")[-1]) + 1

    async def test_unknown_member(self, claims_service):
        with pytest.raises(MemberNotFoundError):
            await claims_service.create_claim(uuid4(), [], SERVICE_DATE)

    async def test_unknown_service(self, claims_service, covered_setup):
        _, _, member = covered_setup
        with pytest.raises(ServiceNotFoundError):
            await claims_service.create_claim(
                member.id,
                [ClaimLineInput(service_id=uuid4(), unit_price=Decimal("10"))],
                SERVICE_DATE,
            )

    async def test_add_line_to_draft(self, claims_service, covered_setup):
        _, service, member = covered_setup
        claim_id = await claims_service.create_claim(member.id, [], SERVICE_DATE)

        line = await claims_service.add_claim_line(
            claim_id, ClaimLineInput(service_id=service.id, unit_price=Decimal("75.00"))
        )
        claim = await claims_service.get_claim(claim_id)

        assert line.line_number == 1
        assert claim.requested_amount == Decimal("75.00")

    async def test_lines_locked_after_submit(self, claims_service, covered_setup, requester):
        _, service, member = covered_setup
        claim_id = await _create(claims_service, member, service)
        await claims_service.transition(claim_id, ClaimStatus.SUBMITTED, requester)

        with pytest.raises(ClaimLockedError):
            await claims_service.add_claim_line(
                claim_id, ClaimLineInput(service_id=service.id, unit_price=Decimal("1"))
            )

    async def test_unknown_claim(self, claims_service, requester):
        with pytest.raises(ClaimNotFoundError):
            await claims_service.transition(uuid4(), ClaimStatus.SUBMITTED, requester)


# =============================================================================
# Submission
# =============================================================================


@pytest.mark.integration
class TestSubmission:

    async def test_submit(self, claims_service, covered_setup, requester):
        _, service, member = covered_setup
        claim_id = await _create(claims_service, member, service)

        snapshot = await claims_service.transition(claim_id, ClaimStatus.SUBMITTED, requester)

        assert snapshot.status == ClaimStatus.SUBMITTED
        assert snapshot.submitted_at is not None
        assert snapshot.available_transitions == []

    async def test_submit_without_lines(self, claims_service, covered_setup, requester):
        _, _, member = covered_setup
        claim_id = await claims_service.create_claim(member.id, [], SERVICE_DATE)

        with pytest.raises(TransitionPreconditionError) as exc_info:
            await claims_service.transition(claim_id, ClaimStatus.SUBMITTED, requester)
        assert exc_info.value.rule == "claim_lines_required"

    async def test_submit_without_policy(self, claims_service, seed, requester):
        service = await seed.service()
        member = await seed.member(None)
        claim_id = await _create(claims_service, member, service)

        with pytest.raises(NoPolicyAssignedError):
            await claims_service.transition(claim_id, ClaimStatus.SUBMITTED, requester)

        claim = await claims_service.get_claim(claim_id)
        assert claim.status == ClaimStatus.DRAFT

    async def test_submit_inside_waiting_period(self, claims_service, seed, requester):
        policy = await seed.policy(default_waiting_period_days=180)
        service = await seed.service()
        member = await seed.member(policy, enrollment_date=date(2026, 1, 1))
        claim_id = await _create(claims_service, member, service)

        with pytest.raises(WaitingPeriodNotElapsedError) as exc_info:
            await claims_service.transition(claim_id, ClaimStatus.SUBMITTED, requester)
        assert exc_info.value.eligible_from == date(2026, 6, 30)

    async def test_submit_requires_pre_approval(self, claims_service, seed, requester):
        policy = await seed.policy()
        service = await seed.service()
        member = await seed.member(policy)
        await seed.rule(
            policy, service_id=service.id, coverage_percent=Decimal("1"), requires_pre_approval=True
        )
        claim_id = await _create(claims_service, member, service)

        with pytest.raises(PreApprovalRequiredError):
            await claims_service.transition(claim_id, ClaimStatus.SUBMITTED, requester)

    async def test_requester_cannot_review(self, claims_service, covered_setup, requester):
        _, service, member = covered_setup
        claim_id = await _create(claims_service, member, service)
        await claims_service.transition(claim_id, ClaimStatus.SUBMITTED, requester)

        with pytest.raises(TransitionNotPermittedError):
            await claims_service.transition(claim_id, ClaimStatus.UNDER_REVIEW, requester)


# =============================================================================
# Approval and Limits
# =============================================================================


@pytest.mark.integration
class TestApproval:

    async def test_annual_limit_caps_approval(
        self, claims_service, seed, covered_setup, requester, reviewer
    ):
        """9,500 of 10,000 consumed: 1,000 is refused, 500 is approved."""
        _, service, member = covered_setup
        await seed.approved_claim(member, service, Decimal("9500.00"))
        claim_id = await _create(claims_service, member, service)
        await _to_review(claims_service, claim_id, requester, reviewer)

        breakdown = await claims_service.get_cost_breakdown(claim_id)
        assert breakdown.net_provider_amount == Decimal("500.00")
        assert breakdown.patient_copay == Decimal("500.00")
        assert breakdown.clamp_reasons == [ClampReason.ANNUAL_LIMIT]

        with pytest.raises(ApprovedAmountExceedsCoverageError):
            await claims_service.transition(
                claim_id,
                ClaimStatus.APPROVED,
                reviewer,
                TransitionPayload(approved_amount=Decimal("1000")),
            )

        snapshot = await claims_service.transition(
            claim_id,
            ClaimStatus.APPROVED,
            reviewer,
            TransitionPayload(approved_amount=Decimal("500")),
        )

        assert snapshot.status == ClaimStatus.APPROVED
        assert snapshot.approved_amount == Decimal("500.00")
        assert snapshot.net_provider_amount == Decimal("500.00")
        assert snapshot.patient_copay == Decimal("500.00")
        assert snapshot.requested_amount == snapshot.patient_copay + snapshot.net_provider_amount

    async def test_approval_consumes_limit(
        self, claims_service, covered_setup, requester, reviewer
    ):
        _, service, member = covered_setup
        first = await _create(claims_service, member, service, unit_price="6000.00")
        second = await _create(claims_service, member, service, unit_price="6000.00")
        await _to_review(claims_service, first, requester, reviewer)
        await _to_review(claims_service, second, requester, reviewer)

        await claims_service.transition(
            first, ClaimStatus.APPROVED, reviewer, TransitionPayload(approved_amount=Decimal("6000"))
        )
        breakdown = await claims_service.get_cost_breakdown(second)

        assert breakdown.net_provider_amount == Decimal("4000.00")

    async def test_cost_breakdown_is_stable_after_approval(
        self, claims_service, seed, covered_setup, requester, reviewer
    ):
        _, service, member = covered_setup
        claim_id = await _create(claims_service, member, service)
        await _to_review(claims_service, claim_id, requester, reviewer)
        await claims_service.transition(
            claim_id,
            ClaimStatus.APPROVED,
            reviewer,
            TransitionPayload(approved_amount=Decimal("800")),
        )

        before = await claims_service.get_cost_breakdown(claim_id)
        await seed.approved_claim(member, service, Decimal("9000.00"))
        after = await claims_service.get_cost_breakdown(claim_id)

        assert before == after
        assert after.approved_amount == Decimal("800.00")
        assert ClampReason.REVIEWER_ADJUSTED in after.clamp_reasons

    async def test_settle(self, claims_service, covered_setup, requester, reviewer, finance):
        _, service, member = covered_setup
        claim_id = await _create(claims_service, member, service)
        await _to_review(claims_service, claim_id, requester, reviewer)
        await claims_service.transition(
            claim_id, ClaimStatus.APPROVED, reviewer, TransitionPayload(approved_amount=Decimal("1000"))
        )

        with pytest.raises(TransitionPreconditionError):
            await claims_service.transition(claim_id, ClaimStatus.SETTLED, finance)

        snapshot = await claims_service.transition(
            claim_id,
            ClaimStatus.SETTLED,
            finance,
            TransitionPayload(payment_reference="PAY-2026-0042", settlement_notes="Wire"),
        )

        assert snapshot.status == ClaimStatus.SETTLED
        assert snapshot.payment_reference == "PAY-2026-0042"
        assert snapshot.approved_amount == Decimal("1000.00")


# =============================================================================
# Rejection and Return
# =============================================================================


@pytest.mark.integration
class TestRejection:

    async def test_reject_requires_comment_and_is_terminal(
        self, claims_service, covered_setup, requester, reviewer, super_admin
    ):
        _, service, member = covered_setup
        claim_id = await _create(claims_service, member, service)
        await _to_review(claims_service, claim_id, requester, reviewer)

        with pytest.raises(MissingCommentError):
            await claims_service.transition(
                claim_id, ClaimStatus.REJECTED, reviewer, TransitionPayload(comment="")
            )

        snapshot = await claims_service.transition(
            claim_id,
            ClaimStatus.REJECTED,
            reviewer,
            TransitionPayload(comment="Duplicate of an earlier claim"),
        )
        assert snapshot.status == ClaimStatus.REJECTED
        assert snapshot.reviewer_comment == "Duplicate of an earlier claim"

        for target in ClaimStatus:
            with pytest.raises(IllegalStateTransitionError):
                await claims_service.transition(
                    claim_id,
                    target,
                    super_admin,
                    TransitionPayload(
                        comment="x", approved_amount=Decimal("1"), payment_reference="P"
                    ),
                )

    async def test_return_and_resubmit(self, claims_service, covered_setup, requester, reviewer):
        _, service, member = covered_setup
        claim_id = await _create(claims_service, member, service)
        await _to_review(claims_service, claim_id, requester, reviewer)

        returned = await claims_service.transition(
            claim_id,
            ClaimStatus.RETURNED_FOR_INFO,
            reviewer,
            TransitionPayload(comment="Attach the invoice"),
        )
        assert returned.returned_at is not None
        assert returned.available_transitions == []

        resubmitted = await claims_service.transition(claim_id, ClaimStatus.SUBMITTED, requester)
        assert resubmitted.status == ClaimStatus.SUBMITTED


# =============================================================================
# Audit Trail
# =============================================================================


@pytest.mark.integration
class TestAuditTrail:

    async def test_full_lifecycle_is_a_legal_path(
        self, claims_service, covered_setup, requester, reviewer, finance
    ):
        _, service, member = covered_setup
        claim_id = await _create(claims_service, member, service)
        await _to_review(claims_service, claim_id, requester, reviewer)
        await claims_service.transition(
            claim_id,
            ClaimStatus.RETURNED_FOR_INFO,
            reviewer,
            TransitionPayload(comment="Missing referral"),
        )
        await _to_review(claims_service, claim_id, requester, reviewer)
        await claims_service.transition(
            claim_id, ClaimStatus.APPROVED, reviewer, TransitionPayload(approved_amount=Decimal("1000"))
        )
        await claims_service.transition(
            claim_id, ClaimStatus.SETTLED, finance, TransitionPayload(payment_reference="PAY-1")
        )

        trail = await claims_service.get_audit_trail(claim_id)

        assert trail.is_legal_path
        assert [(e.from_status, e.to_status) for e in trail.entries] == [
            (ClaimStatus.DRAFT, ClaimStatus.SUBMITTED),
            (ClaimStatus.SUBMITTED, ClaimStatus.UNDER_REVIEW),
            (ClaimStatus.UNDER_REVIEW, ClaimStatus.RETURNED_FOR_INFO),
            (ClaimStatus.RETURNED_FOR_INFO, ClaimStatus.SUBMITTED),
            (ClaimStatus.SUBMITTED, ClaimStatus.UNDER_REVIEW),
            (ClaimStatus.UNDER_REVIEW, ClaimStatus.APPROVED),
            (ClaimStatus.APPROVED, ClaimStatus.SETTLED),
        ]
        assert trail.entries[2].comment == "Missing referral"
        assert trail.entries[-1].actor_id == "finance-1"
        assert trail.entries[-1].actor_role == "finance"

    async def test_failed_transition_writes_no_audit(
        self, claims_service, covered_setup, requester, reviewer
    ):
        _, service, member = covered_setup
        claim_id = await _create(claims_service, member, service)
        await _to_review(claims_service, claim_id, requester, reviewer)

        with pytest.raises(MissingCommentError):
            await claims_service.transition(claim_id, ClaimStatus.REJECTED, reviewer)

        trail = await claims_service.get_audit_trail(claim_id)
        assert len(trail.entries) == 2

    async def test_audit_failure_rolls_back_status(
        self, claims_service, session_maker, covered_setup, requester, monkeypatch
    ):
        _, service, member = covered_setup
        claim_id = await _create(claims_service, member, service)

        async def _broken(*args, **kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(ClaimAuditService, "record_transition", _broken)

        with pytest.raises(RuntimeError):
            await claims_service.transition(claim_id, ClaimStatus.SUBMITTED, requester)

        async with session_maker() as fresh:
            claim = await fresh.get(Claim, claim_id)
            assert claim.status == ClaimStatus.DRAFT
            assert claim.submitted_at is None

    async def test_audit_rows_are_immutable(
        self, claims_service, session_maker, covered_setup, requester
    ):
        _, service, member = covered_setup
        claim_id = await _create(claims_service, member, service)
        await claims_service.transition(claim_id, ClaimStatus.SUBMITTED, requester)

        async with session_maker() as fresh:
            result = await fresh.execute(
                select(ClaimAuditLog).where(ClaimAuditLog.claim_id == claim_id)
            )
            entry = result.scalar_one()
            entry.comment = "rewritten"
            with pytest.raises(AuditTrailImmutableError):
                await fresh.commit()
            await fresh.rollback()

            result = await fresh.execute(
                select(ClaimAuditLog).where(ClaimAuditLog.claim_id == claim_id)
            )
            entry = result.scalar_one()
            await fresh.delete(entry)
            with pytest.raises(AuditTrailImmutableError):
                await fresh.commit()


# =============================================================================
# Concurrency
# =============================================================================


@pytest.mark.integration
class TestConcurrency:

    async def test_concurrent_approvals(
        self, session_maker, engine_settings, covered_setup, requester, reviewer
    ):
        """Both reviewers read the claim under review; only the first approval commits."""
        _, service, member = covered_setup

        async with session_maker() as setup_session:
            setup = ClaimsService(setup_session, settings=engine_settings)
            claim_id = await _create(setup, member, service)
            await _to_review(setup, claim_id, requester, reviewer)

        async with session_maker() as session_a, session_maker() as session_b:
            service_a = ClaimsService(session_a, settings=engine_settings)
            service_b = ClaimsService(session_b, settings=engine_settings)

            seen_by_a = await service_a.get_claim(claim_id)
            seen_by_b = await service_b.get_claim(claim_id)
            assert seen_by_a.version == seen_by_b.version

            approved = await service_a.transition(
                claim_id,
                ClaimStatus.APPROVED,
                reviewer,
                TransitionPayload(approved_amount=Decimal("1000")),
            )
            assert approved.status == ClaimStatus.APPROVED

            with pytest.raises(ConcurrentModificationError):
                await service_b.transition(
                    claim_id,
                    ClaimStatus.APPROVED,
                    reviewer,
                    TransitionPayload(approved_amount=Decimal("900")),
                )

        async with session_maker() as fresh:
            trail = await ClaimAuditService(fresh).get_trail(claim_id)
            assert [e.to_status for e in trail].count(ClaimStatus.APPROVED) == 1

    async def test_concurrent_family_approvals(
        self, session_maker, engine_settings, seed, monkeypatch, requester, reviewer
    ):
        """Two relatives approved against one family ledger reading: the later commit fails."""
        policy = await seed.policy(
            family_limit=Decimal("1000"), default_coverage_percent=Decimal("1")
        )
        service = await seed.service(code="PHYSIO")
        family_id = uuid4()
        parent = await seed.member(policy, family_id=family_id)
        child = await seed.member(policy, family_id=family_id, full_name="Omar Hassan")

        async with session_maker() as setup_session:
            setup = ClaimsService(setup_session, settings=engine_settings)
            parent_claim = await _create(setup, parent, service, unit_price="800.00")
            child_claim = await _create(setup, child, service, unit_price="800.00")
            await _to_review(setup, parent_claim, requester, reviewer)
            await _to_review(setup, child_claim, requester, reviewer)

        async with session_maker() as session_a, session_maker() as session_b:
            service_a = ClaimsService(session_a, settings=engine_settings)
            service_b = ClaimsService(session_b, settings=engine_settings)

            ledger_read = asyncio.Event()
            resume = asyncio.Event()
            compute_snapshot = service_b.calculator.compute_snapshot

            async def paused_compute_snapshot(*args, **kwargs):
                snapshot = await compute_snapshot(*args, **kwargs)
                ledger_read.set()
                await resume.wait()
                return snapshot

            monkeypatch.setattr(service_b.calculator, "compute_snapshot", paused_compute_snapshot)

            approve_child = asyncio.create_task(
                service_b.transition(
                    child_claim,
                    ClaimStatus.APPROVED,
                    reviewer,
                    TransitionPayload(approved_amount=Decimal("800")),
                )
            )
            await ledger_read.wait()

            approved = await service_a.transition(
                parent_claim,
                ClaimStatus.APPROVED,
                reviewer,
                TransitionPayload(approved_amount=Decimal("800")),
            )
            assert approved.status == ClaimStatus.APPROVED
            resume.set()

            with pytest.raises(ConcurrentModificationError):
                await approve_child

        async with session_maker() as fresh:
            statuses = (
                await fresh.execute(
                    select(Claim.status).where(Claim.id.in_([parent_claim, child_claim]))
                )
            ).scalars().all()
            assert sorted(s.value for s in statuses) == ["approved", "under_review"]

    async def test_stale_expected_version(self, claims_service, covered_setup, requester, reviewer):
        _, service, member = covered_setup
        claim_id = await _create(claims_service, member, service)
        submitted = await claims_service.transition(claim_id, ClaimStatus.SUBMITTED, requester)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await claims_service.transition(
                claim_id,
                ClaimStatus.UNDER_REVIEW,
                reviewer,
                TransitionPayload(expected_version=submitted.version - 1),
            )
        assert exc_info.value.details["current_version"] == submitted.version

        reviewed = await claims_service.transition(
            claim_id,
            ClaimStatus.UNDER_REVIEW,
            reviewer,
            TransitionPayload(expected_version=submitted.version),
        )
        assert reviewed.version == submitted.version + 1


# =============================================================================
# Queues
# =============================================================================


@pytest.mark.integration
class TestQueues:

    async def test_pending_and_approved_queues(
        self, claims_service, seed, covered_setup, requester, reviewer
    ):
        policy, service, member = covered_setup
        draft = await _create(claims_service, member, service)
        submitted = await _create(claims_service, member, service)
        reviewing = await _create(claims_service, member, service)
        approved = await _create(claims_service, member, service)

        await claims_service.transition(submitted, ClaimStatus.SUBMITTED, requester)
        await _to_review(claims_service, reviewing, requester, reviewer)
        await _to_review(claims_service, approved, requester, reviewer)
        await claims_service.transition(
            approved, ClaimStatus.APPROVED, reviewer, TransitionPayload(approved_amount=Decimal("100"))
        )

        pending = await claims_service.list_pending(QueueScope(member_id=member.id))
        assert {item.id for item in pending.items} == {submitted, reviewing}
        assert draft not in {item.id for item in pending.items}
        assert pending.total == 2

        ready = await claims_service.list_approved(QueueScope(policy_id=policy.id))
        assert [item.id for item in ready.items] == [approved]

        other_employer = await claims_service.list_pending(QueueScope(employer_id=uuid4()))
        assert other_employer.total == 0

    async def test_queue_paging(self, claims_service, covered_setup, requester):
        _, service, member = covered_setup
        for _ in range(3):
            claim_id = await _create(claims_service, member, service)
            await claims_service.transition(claim_id, ClaimStatus.SUBMITTED, requester)

        page = await claims_service.list_pending(QueueScope(limit=2, offset=0))
        rest = await claims_service.list_pending(QueueScope(limit=2, offset=2))

        assert page.total == 3
        assert len(page.items) == 2
        assert len(rest.items) == 1
        assert page.limit == 2
