"""
Referral Intake Agents

Email-to-decision pipeline: extraction and the weighted decision engine.
The orchestrating agent lives in ``automation_agent`` and is imported from
there directly, since it depends on the intake_core collaborators.
"""

from .criteria import AgencyCriteria, CapacityCriteria, FactorWeights, InsurancePlan
from .decision_engine import DecisionEngine
from .models import (
    Decision,
    DecisionAction,
    InboundEmail,
    ProcessingResult,
    ReferralData,
    ReferralRecord,
    Urgency,
)
from .referral_extractor import ExtractionSettings, ReferralExtractor

__all__ = [
    "AgencyCriteria",
    "CapacityCriteria",
    "FactorWeights",
    "InsurancePlan",
    "DecisionEngine",
    "Decision",
    "DecisionAction",
    "InboundEmail",
    "ProcessingResult",
    "ReferralData",
    "ReferralRecord",
    "Urgency",
    "ExtractionSettings",
    "ReferralExtractor",
]
