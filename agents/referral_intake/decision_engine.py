"""
Referral Decision Engine

Scores a referral across five weighted dimensions and maps the result to an
accept / review / reject decision with a rationale and next steps.

Action selection is an ordered decision table (first matching rule wins):
1. Hard exclusion on any dimension -> reject
2. Overall score >= accept threshold -> accept
3. Overall score >= review threshold -> review
4. Otherwise -> reject

STAT referrals never bypass human judgment: a review-band STAT referral stays
in review and is flagged for expedited sign-off.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from structlog import get_logger

from .criteria import AgencyCriteria, validate_criteria
from .evaluators import EVALUATORS, FactorEvaluator
from .models import (
    Decision,
    DecisionAction,
    DecisionFactors,
    FactorName,
    FactorScore,
    ReferralData,
    Urgency,
)

logger = get_logger()

# Absorbs floating point noise so threshold boundaries stay inclusive
THRESHOLD_EPSILON = 1e-9

# Factors scoring below this are treated as weak when deriving next steps
WEAK_FACTOR_SCORE = 0.5


@dataclass(frozen=True)
class DecisionContext:
    """Inputs available to decision rules."""

    factors: DecisionFactors
    overall: float
    criteria: AgencyCriteria


@dataclass(frozen=True)
class DecisionRule:
    """One row of the decision table."""

    name: str
    applies: Callable[[DecisionContext], bool]
    action: DecisionAction
    confidence: Callable[[float], float]


def _meets(value: float, threshold: float) -> bool:
    return value >= threshold - THRESHOLD_EPSILON


def _direct(overall: float) -> float:
    return overall


def _inverse(overall: float) -> float:
    return 1.0 - overall


def default_decision_table() -> list[DecisionRule]:
    """Standard rule order: exclusions before score thresholds."""
    return [
        DecisionRule(
            name="hard_exclusion",
            applies=lambda ctx: bool(ctx.factors.hard_exclusions()),
            action=DecisionAction.REJECT,
            confidence=_inverse,
        ),
        DecisionRule(
            name="accept_threshold",
            applies=lambda ctx: _meets(ctx.overall, ctx.criteria.accept_threshold),
            action=DecisionAction.ACCEPT,
            confidence=_direct,
        ),
        DecisionRule(
            name="review_threshold",
            applies=lambda ctx: _meets(ctx.overall, ctx.criteria.review_threshold),
            action=DecisionAction.REVIEW,
            confidence=_direct,
        ),
        DecisionRule(
            name="below_review_threshold",
            applies=lambda ctx: True,
            action=DecisionAction.REJECT,
            confidence=_inverse,
        ),
    ]


def select_rule(rules: list[DecisionRule], context: DecisionContext) -> DecisionRule:
    """Return the first rule that applies."""
    for rule in rules:
        if rule.applies(context):
            return rule
    raise ValueError("Decision table has no applicable rule; add a catch-all row")


# ============================================================================
# Next steps and response times
# ============================================================================

BASE_NEXT_STEPS: dict[DecisionAction, list[str]] = {
    DecisionAction.ACCEPT: [
        "Schedule start of care within 48 hours",
        "Assign primary nurse based on location and services",
        "Verify insurance benefits and authorization",
        "Contact patient/family to coordinate first visit",
    ],
    DecisionAction.REVIEW: [
        "MSW team to review within 4 hours",
        "Request any missing documentation from referral source",
        "Contact referring facility with final decision",
    ],
    DecisionAction.REJECT: [
        "Send rejection notice to referring facility",
        "Document reason for rejection",
    ],
}

FACTOR_NEXT_STEPS: dict[tuple[DecisionAction, FactorName], str] = {
    (DecisionAction.ACCEPT, FactorName.INSURANCE): "Obtain insurance authorization before start of care",
    (DecisionAction.ACCEPT, FactorName.CAPACITY): "Confirm staff assignment with scheduling",
    (DecisionAction.REVIEW, FactorName.GEOGRAPHIC): "Confirm patient address and travel distance",
    (DecisionAction.REVIEW, FactorName.INSURANCE): "Verify insurance coverage and benefits",
    (DecisionAction.REVIEW, FactorName.CLINICAL): "Clinical manager to review diagnosis and physician orders",
    (DecisionAction.REVIEW, FactorName.CAPACITY): "Escalate to scheduling for capacity check",
    (DecisionAction.REVIEW, FactorName.QUALITY): "Verify referral source details",
    (DecisionAction.REJECT, FactorName.GEOGRAPHIC): "Suggest alternative agencies in patient area",
    (DecisionAction.REJECT, FactorName.INSURANCE): "Notify referral source of non-covered insurance",
    (DecisionAction.REJECT, FactorName.CLINICAL): "Recommend an appropriate level of care to the referral source",
    (DecisionAction.REJECT, FactorName.CAPACITY): "Offer waitlist placement when capacity opens",
    (DecisionAction.REJECT, FactorName.QUALITY): "Request complete referral documentation for reconsideration",
}

RESPONSE_TIMES: dict[Urgency, tuple[str, str]] = {
    # (accepted, otherwise)
    Urgency.STAT: ("Within 2 hours", "Within 1 hour"),
    Urgency.URGENT: ("Within 4 hours", "Within 2 hours"),
    Urgency.ROUTINE: ("Within 24 hours", "Within 8 hours"),
}


def recommend_next_steps(
    action: DecisionAction,
    data: ReferralData,
    factors: DecisionFactors,
) -> list[str]:
    """Rule-derived next steps for an action and its weak factors."""
    steps = list(BASE_NEXT_STEPS[action])

    for name, factor in factors.items():
        if factor.hard_exclusion or factor.score < WEAK_FACTOR_SCORE:
            step = FACTOR_NEXT_STEPS.get((action, name))
            if step and step not in steps:
                steps.append(step)

    if action != DecisionAction.REJECT and not data.physician_orders:
        steps.append("Obtain signed physician orders")

    if data.urgency == Urgency.STAT:
        if action == DecisionAction.REVIEW:
            steps.insert(0, "STAT referral: expedite human review within 1 hour")
        elif action == DecisionAction.ACCEPT:
            steps.insert(0, "Expedite start of care - schedule within 24 hours")

    return steps


def estimate_response_time(action: DecisionAction, urgency: Urgency) -> str:
    accepted, otherwise = RESPONSE_TIMES[urgency]
    return accepted if action == DecisionAction.ACCEPT else otherwise


def _lowest_factors(factors: DecisionFactors) -> list[tuple[FactorName, FactorScore]]:
    lowest = min(factor.score for _, factor in factors.items())
    return [(name, factor) for name, factor in factors.items() if factor.score == lowest]


def _describe(pairs: list[tuple[FactorName, FactorScore]]) -> str:
    return "; ".join(f"{name.value} ({factor.detail})" for name, factor in pairs)


def build_reason(rule: DecisionRule, context: DecisionContext) -> str:
    """One-line rationale naming the binding constraint."""
    overall = context.overall
    criteria = context.criteria

    if rule.name == "hard_exclusion":
        exclusions = context.factors.hard_exclusions()
        names = "; ".join(f"{name.value} exclusion - {factor.detail}" for name, factor in exclusions)
        return f"Rejected: {names}"

    binding = _describe(_lowest_factors(context.factors))

    if rule.action == DecisionAction.ACCEPT:
        return f"Accepted: overall score {overall:.2f} meets acceptance criteria; weakest factor {binding}"
    if rule.action == DecisionAction.REVIEW:
        return (
            f"Manual review required: overall score {overall:.2f} below acceptance threshold "
            f"{criteria.accept_threshold:.2f}; binding constraint {binding}"
        )
    return (
        f"Rejected: overall score {overall:.2f} below review threshold "
        f"{criteria.review_threshold:.2f}; binding constraint {binding}"
    )


# ============================================================================
# Engine
# ============================================================================


class DecisionEngine:
    """
    Weighted multi-factor referral decision engine.

    Features:
    - Five independent factor evaluators (geographic, insurance, clinical,
      capacity, quality)
    - Criteria injected per call; weights validated before use
    - Auditable ordered decision table
    - Explainable reason and rule-derived next steps
    """

    def __init__(
        self,
        criteria: Optional[AgencyCriteria] = None,
        evaluators: Optional[dict[FactorName, FactorEvaluator]] = None,
        rules: Optional[list[DecisionRule]] = None,
    ):
        """
        Initialize decision engine.

        Args:
            criteria: Default criteria when decide() is called without any
            evaluators: Factor evaluators (all five dimensions required)
            rules: Decision table (ordered, must end with a catch-all rule)

        Raises:
            ConfigurationError: If the criteria weights are invalid
        """
        self.criteria = criteria or AgencyCriteria()
        validate_criteria(self.criteria)

        self.evaluators = {**EVALUATORS, **(evaluators or {})}
        self.rules = rules or default_decision_table()

    def evaluate_factors(self, data: ReferralData, criteria: AgencyCriteria) -> DecisionFactors:
        """Run every evaluator; independent of each other."""
        scores = {name.value: self.evaluators[name](data, criteria) for name in FactorName}
        return DecisionFactors(**scores)

    def decide(self, data: ReferralData, criteria: Optional[AgencyCriteria] = None) -> Decision:
        """
        Decide what to do with a referral.

        Args:
            data: Extracted referral (read only)
            criteria: Agency criteria for this call (engine default if omitted)

        Returns:
            Decision with action, confidence, rationale and next steps

        Raises:
            ConfigurationError: If the criteria weights are invalid
        """
        if criteria is None:
            criteria = self.criteria
        elif criteria is not self.criteria:
            validate_criteria(criteria)

        factors = self.evaluate_factors(data, criteria)
        overall = max(0.0, min(1.0, factors.overall()))

        context = DecisionContext(factors=factors, overall=overall, criteria=criteria)
        rule = select_rule(self.rules, context)
        confidence = max(0.0, min(1.0, rule.confidence(overall)))

        decision = Decision(
            action=rule.action,
            confidence=confidence,
            overall_score=overall,
            reason=build_reason(rule, context),
            decision_factors=factors,
            recommended_next_steps=recommend_next_steps(rule.action, data, factors),
            estimated_response_time=estimate_response_time(rule.action, data.urgency),
            assigned_team="MSW Team" if rule.action == DecisionAction.REVIEW else None,
        )

        logger.info(
            "referral_decided",
            patient=data.patient_name,
            action=decision.action.value,
            rule=rule.name,
            overall_score=round(overall, 4),
            confidence=round(confidence, 4),
            urgency=data.urgency.value,
        )

        return decision
