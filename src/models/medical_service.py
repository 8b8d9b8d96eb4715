"""
Medical Service Catalog Model.

Read-only reference data maintained by the service registry; gives each
claim line its category for rule lookup.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimeStampedModel, UUIDModel


class MedicalService(Base, UUIDModel, TimeStampedModel):
    """A billable medical service and the category it belongs to."""

    __tablename__ = "medical_services"

    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True, index=True
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<MedicalService(code='{self.code}', category_id={self.category_id})>"
