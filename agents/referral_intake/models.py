"""
Referral Intake Models

Envelope, referral, decision and result models shared by the extractor,
the decision engine and the automation orchestrator.

JSON uses camelCase keys (``messageId``, ``extractedData``...); Python code
uses snake_case attributes. Models accept either form on input.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing to camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        """Dump with camelCase keys and JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# Enums
# ============================================================================


class Urgency(str, Enum):
    """Referral urgency tier (derived from the message, not asserted by sender)."""

    ROUTINE = "routine"
    URGENT = "urgent"
    STAT = "stat"  # Discharge within hours


class DecisionAction(str, Enum):
    """Automated acceptance outcome."""

    ACCEPT = "accept"
    REVIEW = "review"
    REJECT = "reject"


class FactorName(str, Enum):
    """Evaluation dimensions of the decision engine."""

    GEOGRAPHIC = "geographic"
    INSURANCE = "insurance"
    CLINICAL = "clinical"
    CAPACITY = "capacity"
    QUALITY = "quality"


class ReferralStatus(str, Enum):
    """Persisted referral status."""

    ACCEPTED = "accepted"
    PENDING_REVIEW = "pending_review"
    REJECTED = "rejected"


# ============================================================================
# Inbound envelope
# ============================================================================


class InboundEmail(CamelModel):
    """Provider-agnostic inbound email envelope."""

    from_address: str = Field(..., alias="from", description="Sender address")
    to_address: str = Field(default="", alias="to")
    subject: str = Field(default="")
    text: Optional[str] = Field(default=None, description="Plain-text body")
    html: Optional[str] = Field(default=None, description="HTML body")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    message_id: str = Field(..., min_length=1, description="Idempotency key")
    provider: str = Field(default="generic")

    @field_validator("subject", "to_address", mode="before")
    @classmethod
    def none_to_empty(cls, v: Optional[str]) -> str:
        return v or ""

    def content(self) -> str:
        """Plain body, falling back to the HTML-stripped body."""
        from .email_normalizer import strip_html

        if self.text and self.text.strip():
            return self.text
        return strip_html(self.html or "")


# ============================================================================
# Referral data
# ============================================================================


class GeographicLocation(CamelModel):
    """Where care will be delivered."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    address: str = Field(default="Not provided")
    zip_code: str = Field(default="00000")
    distance: Optional[float] = Field(
        default=None, ge=0.0, description="Miles from the agency office; None when unknown"
    )


class ReferralData(CamelModel):
    """Structured referral produced by the extractor. Immutable once produced."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    patient_name: str = Field(..., min_length=1)
    diagnosis: str = Field(default="Not specified")
    insurance_provider: str = Field(default="Unknown")
    insurance_id: str
    referral_source: str
    service_requested: tuple[str, ...] = Field(default=("skilled_nursing",), min_length=1)
    urgency: Urgency = Field(default=Urgency.ROUTINE)
    estimated_episode_length: int = Field(default=60, ge=1, description="Days")
    geographic_location: GeographicLocation = Field(default_factory=GeographicLocation)
    hospital_rating: int = Field(default=3, ge=1, le=5)
    physician_orders: bool = Field(default=False)


# ============================================================================
# Decision
# ============================================================================


class FactorScore(CamelModel):
    """Score of one evaluation dimension."""

    score: float = Field(..., ge=0.0, le=1.0)
    weight: float = Field(..., ge=0.0, le=1.0)
    detail: str = Field(default="", description="Finding behind the score")
    hard_exclusion: bool = Field(
        default=False, description="Dimension forbids acceptance regardless of score"
    )

    @property
    def weighted(self) -> float:
        return self.score * self.weight


class DecisionFactors(CamelModel):
    """Per-dimension scores."""

    geographic: FactorScore
    insurance: FactorScore
    clinical: FactorScore
    capacity: FactorScore
    quality: FactorScore

    def items(self) -> list[tuple[FactorName, FactorScore]]:
        """Factors in evaluation order."""
        return [(name, getattr(self, name.value)) for name in FactorName]

    def overall(self) -> float:
        """Weighted sum of all factor scores."""
        return sum(factor.weighted for _, factor in self.items())

    def hard_exclusions(self) -> list[tuple[FactorName, FactorScore]]:
        return [(name, factor) for name, factor in self.items() if factor.hard_exclusion]


class Decision(CamelModel):
    """Accept / review / reject recommendation with rationale."""

    action: DecisionAction
    confidence: float = Field(..., ge=0.0, le=1.0)
    overall_score: float = Field(..., ge=0.0, le=1.0)
    reason: str
    decision_factors: DecisionFactors
    recommended_next_steps: list[str] = Field(default_factory=list)
    estimated_response_time: str
    assigned_team: Optional[str] = Field(default=None)


# ============================================================================
# Orchestrator output
# ============================================================================


class ProcessingResult(CamelModel):
    """Uniform result envelope returned to webhook handlers and the test harness."""

    success: bool
    referral_id: Optional[str] = Field(default=None)
    message_id: Optional[str] = Field(default=None)
    processing_time: float = Field(default=0.0, description="Milliseconds spent extracting and deciding")
    extracted_data: Optional[ReferralData] = Field(default=None)
    decision: Optional[Decision] = Field(default=None)
    confirmation_sent: bool = Field(default=False)
    duplicate: bool = Field(default=False, description="Served from the idempotency ledger")
    errors: list[str] = Field(default_factory=list)


class ReferralRecord(CamelModel):
    """Persisted referral plus its decision."""

    referral_id: str
    message_id: str
    provider: str
    received_at: datetime
    referral: ReferralData
    decision: Decision
    status: ReferralStatus
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_decision(
        cls,
        referral_id: str,
        envelope: InboundEmail,
        referral: ReferralData,
        decision: Decision,
    ) -> "ReferralRecord":
        status = {
            DecisionAction.ACCEPT: ReferralStatus.ACCEPTED,
            DecisionAction.REVIEW: ReferralStatus.PENDING_REVIEW,
            DecisionAction.REJECT: ReferralStatus.REJECTED,
        }[decision.action]
        return cls(
            referral_id=referral_id,
            message_id=envelope.message_id,
            provider=envelope.provider,
            received_at=envelope.timestamp,
            referral=referral,
            decision=decision,
            status=status,
        )
