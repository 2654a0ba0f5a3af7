"""
Intake Configuration Management

Centralizes all configuration for the referral intake service.
Supports multiple environments (local, dev, prod) with proper secret management.
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""

    LOCAL = "local"
    DEV = "dev"
    PROD = "prod"


class IntakeConfig(BaseSettings):
    """
    Service-wide configuration settings.

    Loads from environment variables (prefixed ``INTAKE_``) with .env file support.
    Agency acceptance criteria are NOT configured here; they are loaded by a
    criteria provider so they can be tuned and invalidated per deployment.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="INTAKE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Environment = Field(default=Environment.LOCAL)

    # Referral database; in-memory store is used when unset
    mongo_db_url: Optional[str] = Field(default=None)
    mongo_db_name: str = Field(default="referral_intake")
    referral_collection: str = Field(default="referrals")

    # Redis (idempotency ledger); in-memory ledger is used when unset
    redis_url: Optional[str] = Field(default=None)
    ledger_key_prefix: str = Field(default="referral:message:")
    ledger_result_ttl_seconds: int = Field(default=7 * 24 * 3600)
    ledger_pending_ttl_seconds: int = Field(default=120)
    ledger_wait_seconds: float = Field(default=30.0)
    ledger_poll_interval_seconds: float = Field(default=0.25)

    # Agency criteria
    criteria_file: Optional[str] = Field(
        default=None, description="JSON file with AgencyCriteria; built-in defaults when unset"
    )

    # Geocoding
    zip_distance_file: Optional[str] = Field(
        default=None, description="JSON table of zip code -> miles from the office"
    )

    # Confirmation notifications
    confirmation_webhook_url: Optional[str] = Field(default=None)
    confirmation_from_email: str = Field(default="referrals@homehealth.example.com")
    confirmation_max_retries: int = Field(default=2)

    # Collaborator timeouts
    notifier_timeout_seconds: float = Field(default=10.0)
    store_timeout_seconds: float = Field(default=10.0)
    geocoder_timeout_seconds: float = Field(default=5.0)

    # Agent Configuration
    agent_max_retries: int = Field(default=0)
    agent_timeout_seconds: int = Field(default=60)
    agent_confidence_threshold: float = Field(default=0.80)

    # Audit & Logging
    log_level: str = Field(default="INFO")
    enable_audit_logging: bool = Field(default=False)

    # CORS Configuration
    allowed_origins: str = Field(default="http://localhost:3000")

    @field_validator("agent_confidence_threshold")
    @classmethod
    def validate_confidence_threshold(cls, v: float) -> float:
        """Ensure confidence threshold is within valid range."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("agent_confidence_threshold must be between 0.0 and 1.0")
        return v

    @field_validator("ledger_wait_seconds", "ledger_poll_interval_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("ledger timings must be positive")
        return v

    def get_allowed_origins_list(self) -> list[str]:
        """Parse CORS allowed origins into a list."""
        if self.environment == Environment.LOCAL:
            return ["*"]  # Allow all in local development
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PROD

    @property
    def is_local(self) -> bool:
        """Check if running in local development environment."""
        return self.environment == Environment.LOCAL


@lru_cache()
def get_config() -> IntakeConfig:
    """
    Get cached intake configuration.

    Uses lru_cache to ensure config is loaded only once.
    """
    return IntakeConfig()
