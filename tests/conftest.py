"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.

Every database test runs against its own SQLite file. Reference data is
seeded through separate sessions, so the objects handed to tests are
detached snapshots and the session under test starts empty.
"""

import os
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import pytest

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./benefits_test.db")

from src.core.config import EngineSettings  # noqa: E402
from src.core.enums import (  # noqa: E402
    ActorRole,
    BenefitPolicyStatus,
    ClaimStatus,
    PreApprovalStatus,
)
from src.db.connection import build_engine, build_session_maker, init_models  # noqa: E402
from src.models import (  # noqa: E402
    BenefitPolicy,
    BenefitPolicyRule,
    Claim,
    ClaimLine,
    MedicalService,
    Member,
    PreApproval,
)
from src.schemas.claim import Actor  # noqa: E402
from src.services.claim_state_machine import ClaimStateMachine  # noqa: E402
from src.services.claims_service import ClaimsService  # noqa: E402

SERVICE_DATE = date(2026, 3, 15)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database with the full schema."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'benefits.db'}", pooled=False)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def engine_settings():
    return EngineSettings(
        MONEY_QUANTUM=Decimal("0.01"),
        SUPER_ADMIN_BYPASS=True,
        ENFORCE_TIMES_LIMIT=True,
        DEFAULT_QUEUE_LIMIT=50,
        MAX_QUEUE_LIMIT=200,
    )


@pytest.fixture
def claims_service(session, engine_settings):
    return ClaimsService(
        session,
        state_machine=ClaimStateMachine(super_admin_bypass=True),
        settings=engine_settings,
    )


# =============================================================================
# Seed Data
# =============================================================================


class Seeder:
    """Writes reference data the engine only reads."""

    def __init__(self, session_maker):
        self.session_maker = session_maker

    async def _save(self, *objects):
        async with self.session_maker() as session:
            session.add_all(objects)
            await session.commit()
        return objects[0] if len(objects) == 1 else objects

    async def policy(self, **overrides) -> BenefitPolicy:
        values = {
            "id": uuid4(),
            "name": "Corporate Gold",
            "employer_id": uuid4(),
            "start_date": date(2026, 1, 1),
            "end_date": date(2026, 12, 31),
            "status": BenefitPolicyStatus.ACTIVE,
            "default_coverage_percent": Decimal("0.80"),
            "default_waiting_period_days": 0,
            "active": True,
        }
        values.update(overrides)
        return await self._save(BenefitPolicy(**values))

    async def service(self, code: Optional[str] = None, category_id: Optional[UUID] = None) -> MedicalService:
        code = code or f"SVC-{uuid4().hex[:6].upper()}"
        return await self._save(
            MedicalService(id=uuid4(), code=code, name=f"Service {code}", category_id=category_id)
        )

    async def member(self, policy: Optional[BenefitPolicy], **overrides) -> Member:
        values = {
            "id": uuid4(),
            "employer_id": policy.employer_id if policy else uuid4(),
            "full_name": "Layla Hassan",
            "enrollment_date": date(2025, 6, 1),
            "benefit_policy_id": policy.id if policy else None,
        }
        values.update(overrides)
        return await self._save(Member(**values))

    async def rule(self, policy: BenefitPolicy, **overrides) -> BenefitPolicyRule:
        values = {"id": uuid4(), "policy_id": policy.id, "active": True}
        values.update(overrides)
        return await self._save(BenefitPolicyRule(**values))

    async def pre_approval(self, member: Member, service: MedicalService, **overrides) -> PreApproval:
        values = {
            "id": uuid4(),
            "member_id": member.id,
            "service_id": service.id,
            "reference_number": f"PA-{uuid4().hex[:8].upper()}",
            "status": PreApprovalStatus.APPROVED,
            "valid_from": date(2026, 1, 1),
            "valid_to": date(2026, 6, 30),
        }
        values.update(overrides)
        return await self._save(PreApproval(**values))

    async def approved_claim(
        self,
        member: Member,
        service: MedicalService,
        approved_amount: Decimal,
        service_date: date = SERVICE_DATE,
        quantity: int = 1,
        status: ClaimStatus = ClaimStatus.APPROVED,
        policy_id: Optional[UUID] = None,
    ) -> Claim:
        """A claim that already consumes limits."""
        claim = Claim(
            id=uuid4(),
            claim_number=f"CLM-SEED-{uuid4().hex[:8].upper()}",
            member_id=member.id,
            employer_id=member.employer_id,
            benefit_policy_id=policy_id or member.benefit_policy_id,
            service_date=service_date,
            status=status,
            requested_amount=approved_amount,
            approved_amount=approved_amount,
            net_provider_amount=approved_amount,
            patient_copay=Decimal("0"),
            lines=[
                ClaimLine(
                    id=uuid4(),
                    line_number=1,
                    service_id=service.id,
                    category_id=service.category_id,
                    service_code=service.code,
                    quantity=quantity,
                    unit_price=approved_amount,
                    line_total=approved_amount,
                )
            ],
        )
        return await self._save(claim)


@pytest.fixture
def seed(session_maker):
    return Seeder(session_maker)


# =============================================================================
# Actors
# =============================================================================


@pytest.fixture
def requester():
    return Actor(id="requester-1", roles=(ActorRole.REQUESTER,))


@pytest.fixture
def reviewer():
    return Actor(id="reviewer-1", roles=(ActorRole.REVIEWER,))


@pytest.fixture
def finance():
    return Actor(id="finance-1", roles=(ActorRole.FINANCE,))


@pytest.fixture
def super_admin():
    return Actor(id="admin-1", roles=(ActorRole.SUPER_ADMIN,))


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as an API test"
    )
