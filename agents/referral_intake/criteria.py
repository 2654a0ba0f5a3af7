"""
Agency Acceptance Criteria

Per-deployment ruleset consumed by the decision engine: factor weights,
action thresholds and the inputs of each factor evaluator. Supplied by the
caller (criteria provider), never hard-coded inside the engine.
"""

import math
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from intake_core.exceptions import ConfigurationError

from .models import FactorName

WEIGHT_TOLERANCE = 1e-6


class FactorWeights(BaseModel):
    """Relative weight of each evaluation dimension. Must sum to 1.0."""

    geographic: float = Field(default=0.20, ge=0.0, le=1.0)
    insurance: float = Field(default=0.25, ge=0.0, le=1.0)
    clinical: float = Field(default=0.25, ge=0.0, le=1.0)
    capacity: float = Field(default=0.15, ge=0.0, le=1.0)
    quality: float = Field(default=0.15, ge=0.0, le=1.0)

    def for_factor(self, name: FactorName) -> float:
        return getattr(self, name.value)

    def total(self) -> float:
        return sum(self.for_factor(name) for name in FactorName)


class InsurancePlan(BaseModel):
    """Payer recognized by the agency."""

    keyword: str = Field(..., description="Case-insensitive substring matched against the payer name")
    category: str = Field(..., description="e.g. medicare, medicaid, commercial")
    reimbursement_rate: float = Field(..., ge=0.0, le=1.0, description="Relative to Medicare rates")


def _default_plans() -> list[InsurancePlan]:
    return [
        InsurancePlan(keyword="medicare", category="medicare", reimbursement_rate=1.0),
        InsurancePlan(keyword="blue cross", category="commercial", reimbursement_rate=0.95),
        InsurancePlan(keyword="aetna", category="commercial", reimbursement_rate=0.9),
        InsurancePlan(keyword="humana", category="commercial", reimbursement_rate=0.9),
        InsurancePlan(keyword="cigna", category="commercial", reimbursement_rate=0.85),
        InsurancePlan(keyword="united", category="commercial", reimbursement_rate=0.85),
        InsurancePlan(keyword="medicaid", category="medicaid", reimbursement_rate=0.7),
    ]


class CapacityCriteria(BaseModel):
    """Current staffing load."""

    current_caseload: int = Field(default=10, ge=0)
    max_caseload: int = Field(default=25, ge=1)
    near_capacity_ratio: float = Field(default=0.85, gt=0.0, le=1.0)
    staff_by_service: dict[str, int] = Field(
        default_factory=lambda: {
            "skilled_nursing": 8,
            "physical_therapy": 3,
            "occupational_therapy": 2,
            "speech_therapy": 1,
            "wound_care": 2,
            "medication_management": 4,
            "iv_therapy": 0,
        },
        description="Clinicians available per service code",
    )
    long_episode_days: int = Field(default=90, ge=1)


class AgencyCriteria(BaseModel):
    """
    Complete acceptance ruleset for one deployment.

    Defaults reproduce the agency's standard home-health intake policy.
    """

    weights: FactorWeights = Field(default_factory=FactorWeights)
    accept_threshold: float = Field(default=0.80, ge=0.0, le=1.0)
    review_threshold: float = Field(default=0.55, ge=0.0, le=1.0)

    # Geographic
    max_travel_distance: float = Field(default=25.0, gt=0.0, description="Miles")
    preferred_zip_codes: list[str] = Field(default_factory=list)
    excluded_zip_codes: list[str] = Field(default_factory=list)
    unknown_distance_score: float = Field(default=0.4, ge=0.0, le=1.0)

    # Insurance
    insurance_plans: list[InsurancePlan] = Field(default_factory=_default_plans)
    accepted_insurance_categories: list[str] = Field(
        default_factory=lambda: ["medicare", "medicaid", "commercial"]
    )
    min_reimbursement_rate: float = Field(default=0.75, ge=0.0, le=1.0)
    denied_insurance_keywords: list[str] = Field(default_factory=lambda: ["denied"])
    pending_insurance_keywords: list[str] = Field(
        default_factory=lambda: ["pending", "under review"]
    )
    partial_insurance_credit: float = Field(default=0.5, ge=0.0, le=1.0)

    # Clinical
    excluded_diagnoses: list[str] = Field(
        default_factory=lambda: ["hospice", "palliative", "terminal cancer"]
    )
    clinical_risk_keywords: list[str] = Field(
        default_factory=lambda: ["non-compliance", "noncompliance", "readmission"]
    )
    service_offerings: list[str] = Field(
        default_factory=lambda: [
            "skilled_nursing",
            "physical_therapy",
            "occupational_therapy",
            "speech_therapy",
            "wound_care",
            "medication_management",
        ]
    )
    max_episode_length: int = Field(default=120, ge=1, description="Days")

    # Capacity
    capacity: CapacityCriteria = Field(default_factory=CapacityCriteria)

    # Quality
    min_hospital_rating: int = Field(default=3, ge=1, le=5)
    preferred_referral_sources: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_thresholds(self) -> "AgencyCriteria":
        if self.review_threshold > self.accept_threshold:
            raise ValueError("review_threshold must not exceed accept_threshold")
        return self

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "AgencyCriteria":
        """
        Build criteria from configuration data.

        Raises:
            ConfigurationError: If the data is malformed or the weights are invalid
        """
        weights = data.get("weights")
        if weights is not None:
            if not isinstance(weights, dict):
                raise ConfigurationError("weights must be a mapping of dimension -> weight")
            missing = [name.value for name in FactorName if name.value not in weights]
            if missing:
                raise ConfigurationError(f"Missing weight for dimension(s): {', '.join(missing)}")

        try:
            criteria = cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid agency criteria: {e}") from e
        validate_criteria(criteria)
        return criteria


def validate_criteria(criteria: AgencyCriteria) -> None:
    """
    Enforce the weight invariant: every dimension weighted, weights sum to 1.0.

    Raises:
        ConfigurationError: If weights are missing, not finite, or do not sum to 1.0
    """
    for name in FactorName:
        weight = criteria.weights.for_factor(name)
        if not math.isfinite(weight):
            raise ConfigurationError(f"Weight for {name.value} dimension is not a finite number")

    total = criteria.weights.total()
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ConfigurationError(f"Factor weights must sum to 1.0 (got {total:.6f})")
