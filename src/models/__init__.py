"""
SQLAlchemy Models for the Benefit Coverage Engine.

This module exports all database models for the application.
"""

from src.models.base import Base, ExactDecimal, TimeStampedModel, UUIDModel

# Reference data owned by external registries
from src.models.policy import BenefitPolicy, BenefitPolicyRule
from src.models.medical_service import MedicalService
from src.models.member import Member
from src.models.preauth import PreApproval

# Claims
from src.models.claim import Claim, ClaimLine
from src.models.audit import ClaimAuditLog

__all__ = [
    # Base classes
    "Base",
    "ExactDecimal",
    "TimeStampedModel",
    "UUIDModel",
    # Policy models
    "BenefitPolicy",
    "BenefitPolicyRule",
    # Reference models
    "MedicalService",
    "Member",
    "PreApproval",
    # Claim models
    "Claim",
    "ClaimLine",
    "ClaimAuditLog",
]
