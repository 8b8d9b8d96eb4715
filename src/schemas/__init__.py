"""
Pydantic Schemas for the Benefit Coverage Engine.
"""

from src.schemas.benefit import (
    CoverageDecision,
    CoverageRejection,
    CoverageResult,
    FinancialSnapshot,
    LimitUsage,
    LineCoverage,
)
from src.schemas.claim import (
    Actor,
    AuditEntry,
    AuditTrailResponse,
    ClaimCreate,
    ClaimCreateResponse,
    ClaimLineInput,
    ClaimLineResponse,
    ClaimQueueItem,
    ClaimQueueResponse,
    ClaimSnapshot,
    QueueScope,
    TransitionPayload,
    TransitionRequest,
)

__all__ = [
    # Coverage and financials
    "CoverageDecision",
    "CoverageRejection",
    "CoverageResult",
    "FinancialSnapshot",
    "LimitUsage",
    "LineCoverage",
    # Claims
    "Actor",
    "AuditEntry",
    "AuditTrailResponse",
    "ClaimCreate",
    "ClaimCreateResponse",
    "ClaimLineInput",
    "ClaimLineResponse",
    "ClaimQueueItem",
    "ClaimQueueResponse",
    "ClaimSnapshot",
    "QueueScope",
    "TransitionPayload",
    "TransitionRequest",
]
