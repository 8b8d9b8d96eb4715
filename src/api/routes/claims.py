"""
Claims API Endpoints.

Provides:
- Claim creation (DRAFT) and DRAFT line entry
- State transitions
- Cost breakdown
- Audit trail
- Operational queues

Thin layer: every rule lives in ClaimsService and the claim state machine.
Engine errors are mapped to HTTP errors through their status code.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from src.api.config import settings
from src.api.deps import get_claims_service, get_current_actor
from src.schemas.benefit import FinancialSnapshot
from src.schemas.claim import (
    Actor,
    AuditTrailResponse,
    ClaimCreate,
    ClaimCreateResponse,
    ClaimLineInput,
    ClaimLineResponse,
    ClaimQueueResponse,
    ClaimSnapshot,
    QueueScope,
    TransitionPayload,
    TransitionRequest,
)
from src.services.claims_service import ClaimsService
from src.utils.errors import BenefitEngineError

router = APIRouter(
    prefix=f"{settings.API_PREFIX}/claims",
    tags=["claims"],
)


def _queue_scope(
    employer_id: Optional[UUID] = Query(None),
    member_id: Optional[UUID] = Query(None),
    policy_id: Optional[UUID] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
) -> QueueScope:
    return QueueScope(
        employer_id=employer_id,
        member_id=member_id,
        policy_id=policy_id,
        limit=limit,
        offset=offset,
    )


# =============================================================================
# Queues
# =============================================================================


@router.get("/queues/pending", response_model=ClaimQueueResponse)
async def list_pending_claims(
    scope: QueueScope = Depends(_queue_scope),
    actor: Actor = Depends(get_current_actor),  # noqa: ARG001
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimQueueResponse:
    """Claims in SUBMITTED, UNDER_REVIEW or RETURNED_FOR_INFO."""
    return await service.list_pending(scope)


@router.get("/queues/approved", response_model=ClaimQueueResponse)
async def list_approved_claims(
    scope: QueueScope = Depends(_queue_scope),
    actor: Actor = Depends(get_current_actor),  # noqa: ARG001
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimQueueResponse:
    """Claims approved and awaiting settlement."""
    return await service.list_approved(scope)


# =============================================================================
# Claim Endpoints
# =============================================================================


@router.post(
    "",
    response_model=ClaimCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_claim(
    claim_data: ClaimCreate,
    actor: Actor = Depends(get_current_actor),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimCreateResponse:
    """Create a new claim in DRAFT status."""
    try:
        claim_id = await service.create_claim(
            member_id=claim_data.member_id,
            lines=claim_data.lines,
            service_date=claim_data.service_date,
            created_by=actor.id,
        )
        claim = await service.get_claim(claim_id)
    except BenefitEngineError as e:
        raise e.to_http_exception()

    return ClaimCreateResponse(
        claim_id=claim.id,
        claim_number=claim.claim_number,
        status=claim.status,
    )


@router.get("/{claim_id}", response_model=ClaimSnapshot)
async def get_claim(
    claim_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimSnapshot:
    try:
        return await service.get_claim_snapshot(claim_id, actor)
    except BenefitEngineError as e:
        raise e.to_http_exception()


@router.post(
    "/{claim_id}/lines",
    response_model=ClaimLineResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_claim_line(
    claim_id: UUID,
    line: ClaimLineInput,
    actor: Actor = Depends(get_current_actor),  # noqa: ARG001
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimLineResponse:
    """Add a line to a DRAFT claim."""
    try:
        created = await service.add_claim_line(claim_id, line)
    except BenefitEngineError as e:
        raise e.to_http_exception()
    return ClaimLineResponse.model_validate(created)


@router.post("/{claim_id}/transitions", response_model=ClaimSnapshot)
async def transition_claim(
    claim_id: UUID,
    request: TransitionRequest,
    actor: Actor = Depends(get_current_actor),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimSnapshot:
    """
    Move a claim to ``target_status``.

    409 for illegal transitions and concurrent modification, 403 when the
    actor lacks the capability, 422 for failed preconditions, coverage and
    limit rejections.
    """
    payload = TransitionPayload.model_validate(
        request.model_dump(exclude={"target_status"})
    )
    try:
        return await service.transition(claim_id, request.target_status, actor, payload)
    except BenefitEngineError as e:
        raise e.to_http_exception()


@router.get("/{claim_id}/cost-breakdown", response_model=FinancialSnapshot)
async def get_cost_breakdown(
    claim_id: UUID,
    actor: Actor = Depends(get_current_actor),  # noqa: ARG001
    service: ClaimsService = Depends(get_claims_service),
) -> FinancialSnapshot:
    try:
        return await service.get_cost_breakdown(claim_id)
    except BenefitEngineError as e:
        raise e.to_http_exception()


@router.get("/{claim_id}/audit-trail", response_model=AuditTrailResponse)
async def get_audit_trail(
    claim_id: UUID,
    actor: Actor = Depends(get_current_actor),  # noqa: ARG001
    service: ClaimsService = Depends(get_claims_service),
) -> AuditTrailResponse:
    try:
        return await service.get_audit_trail(claim_id)
    except BenefitEngineError as e:
        raise e.to_http_exception()
