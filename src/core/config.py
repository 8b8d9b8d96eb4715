"""
Benefit Engine Configuration
Settings that shape coverage and limit decisions, separate from the
application/transport settings in src.api.config.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Decimal places of every stored money column
MONEY_SCALE = 2


class EngineSettings(BaseSettings):
    """
    Benefit engine configuration settings.

    All values are read from the environment with the BENEFITS_ prefix.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="BENEFITS_",
    )

    # =========================================================================
    # Money Handling
    # =========================================================================
    MONEY_QUANTUM: Decimal = Field(
        default=Decimal("0.01"),
        description="Quantum applied to every computed amount (ROUND_HALF_UP)",
    )

    # =========================================================================
    # Workflow
    # =========================================================================
    SUPER_ADMIN_BYPASS: bool = Field(
        default=True,
        description="SUPER_ADMIN holds every claim capability",
    )
    ENFORCE_TIMES_LIMIT: bool = Field(
        default=True,
        description="Enforce per-rule yearly usage counts",
    )

    # =========================================================================
    # Operational Queues
    # =========================================================================
    DEFAULT_QUEUE_LIMIT: int = Field(default=50, gt=0, description="Default queue page size")
    MAX_QUEUE_LIMIT: int = Field(default=200, gt=0, description="Maximum queue page size")

    @field_validator("MONEY_QUANTUM")
    @classmethod
    def validate_quantum(cls, v: Decimal) -> Decimal:
        """The quantum must be a positive power of ten no finer than the stored scale."""
        if v <= 0 or v.as_tuple().digits != (1,):
            raise ValueError("MONEY_QUANTUM must be a positive power of ten (e.g. 0.01)")
        if -v.as_tuple().exponent > MONEY_SCALE:
            raise ValueError(f"MONEY_QUANTUM must not be finer than {MONEY_SCALE} decimal places")
        return v

    def clamp_queue_limit(self, limit: int | None) -> int:
        if not limit or limit <= 0:
            return self.DEFAULT_QUEUE_LIMIT
        return min(limit, self.MAX_QUEUE_LIMIT)


@lru_cache
def get_engine_settings() -> EngineSettings:
    """Get cached engine settings instance."""
    return EngineSettings()
