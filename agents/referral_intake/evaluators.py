"""
Decision Factor Evaluators

Five independent scorers, one per evaluation dimension. Each reads the
referral and the agency criteria and returns a FactorScore in [0, 1].
Evaluators never raise on missing or default-valued fields; such fields
score low on their dimension instead.

Hard exclusions (denied or non-accepted insurance, excluded diagnosis,
distance over the travel limit, excluded zip code) are flagged on the
FactorScore so the decision table can reject regardless of the total.
"""

from typing import Callable

from .criteria import AgencyCriteria
from .models import FactorName, FactorScore, ReferralData

FactorEvaluator = Callable[[ReferralData, AgencyCriteria], FactorScore]


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def evaluate_geographic(data: ReferralData, criteria: AgencyCriteria) -> FactorScore:
    """Score decays linearly from 1.0 at the office to 0.0 at the travel limit."""
    weight = criteria.weights.geographic
    location = data.geographic_location
    max_distance = criteria.max_travel_distance

    if location.zip_code in criteria.excluded_zip_codes:
        return FactorScore(
            score=0.0,
            weight=weight,
            detail=f"Zip code {location.zip_code} is outside the service area",
            hard_exclusion=True,
        )

    if location.distance is None:
        return FactorScore(
            score=criteria.unknown_distance_score,
            weight=weight,
            detail="Travel distance unknown",
        )

    if location.distance >= max_distance:
        return FactorScore(
            score=0.0,
            weight=weight,
            detail=f"{location.distance:g} miles exceeds the {max_distance:g}-mile travel limit",
            hard_exclusion=True,
        )

    score = 1.0 - location.distance / max_distance
    detail = f"{location.distance:g} miles from office (limit {max_distance:g})"

    if location.zip_code in criteria.preferred_zip_codes:
        score += 0.1
        detail += ", preferred zip code"

    return FactorScore(score=_clamp(score), weight=weight, detail=detail)


def evaluate_insurance(data: ReferralData, criteria: AgencyCriteria) -> FactorScore:
    """Full credit for accepted payers at/above the minimum reimbursement rate."""
    weight = criteria.weights.insurance
    provider = data.insurance_provider.strip()
    provider_lower = provider.lower()

    if any(keyword.lower() in provider_lower for keyword in criteria.denied_insurance_keywords):
        return FactorScore(
            score=0.0,
            weight=weight,
            detail=f"Insurance '{provider}' is denied",
            hard_exclusion=True,
        )

    if any(keyword.lower() in provider_lower for keyword in criteria.pending_insurance_keywords):
        return FactorScore(
            score=criteria.partial_insurance_credit,
            weight=weight,
            detail=f"Coverage for '{provider}' is pending review",
        )

    plan = next(
        (p for p in criteria.insurance_plans if p.keyword.lower() in provider_lower),
        None,
    )

    if plan is None:
        return FactorScore(
            score=0.0,
            weight=weight,
            detail=f"Insurance '{provider}' not recognized",
        )

    accepted = [category.lower() for category in criteria.accepted_insurance_categories]
    if plan.category.lower() not in accepted:
        return FactorScore(
            score=0.0,
            weight=weight,
            detail=f"{plan.category} plans are not accepted",
            hard_exclusion=True,
        )

    if plan.reimbursement_rate >= criteria.min_reimbursement_rate:
        return FactorScore(
            score=1.0,
            weight=weight,
            detail=f"{plan.category} plan accepted (rate {plan.reimbursement_rate:.2f})",
        )

    return FactorScore(
        score=criteria.partial_insurance_credit,
        weight=weight,
        detail=(
            f"{plan.category} reimbursement {plan.reimbursement_rate:.2f} below "
            f"minimum {criteria.min_reimbursement_rate:.2f}"
        ),
    )


def evaluate_clinical(data: ReferralData, criteria: AgencyCriteria) -> FactorScore:
    """Diagnosis exclusions, risk indicators, orders and service alignment."""
    weight = criteria.weights.clinical
    diagnosis_lower = data.diagnosis.lower()

    excluded = [k for k in criteria.excluded_diagnoses if k.lower() in diagnosis_lower]
    if excluded:
        return FactorScore(
            score=0.0,
            weight=weight,
            detail=f"Excluded diagnosis: {', '.join(excluded)}",
            hard_exclusion=True,
        )

    score = 0.6
    findings = []

    if data.physician_orders:
        score += 0.2
        findings.append("physician orders present")
    else:
        findings.append("no physician orders")

    offered = [s for s in data.service_requested if s in criteria.service_offerings]
    score += 0.2 * len(offered) / len(data.service_requested)
    not_offered = [s for s in data.service_requested if s not in criteria.service_offerings]
    if not_offered:
        findings.append(f"services not offered: {', '.join(not_offered)}")

    risks = [k for k in criteria.clinical_risk_keywords if k.lower() in diagnosis_lower]
    if risks:
        score -= 0.15 * len(risks)
        findings.append(f"risk indicators: {', '.join(risks)}")

    if data.estimated_episode_length > criteria.max_episode_length:
        score -= 0.2
        findings.append(
            f"episode {data.estimated_episode_length} days exceeds {criteria.max_episode_length}"
        )

    return FactorScore(score=_clamp(score), weight=weight, detail="; ".join(findings))


def evaluate_capacity(data: ReferralData, criteria: AgencyCriteria) -> FactorScore:
    """Staffing headroom for this referral's service mix and episode length."""
    weight = criteria.weights.capacity
    capacity = criteria.capacity

    utilization = (capacity.current_caseload + 1) / capacity.max_caseload
    if utilization >= 1.0:
        return FactorScore(
            score=0.0,
            weight=weight,
            detail=f"Caseload full ({capacity.current_caseload}/{capacity.max_caseload})",
        )

    if utilization >= capacity.near_capacity_ratio:
        score = 0.4
        findings = [f"caseload near capacity ({capacity.current_caseload}/{capacity.max_caseload})"]
    else:
        score = 1.0 - 0.5 * utilization / capacity.near_capacity_ratio
        findings = [f"caseload {capacity.current_caseload}/{capacity.max_caseload}"]

    unstaffed = [s for s in data.service_requested if capacity.staff_by_service.get(s, 0) <= 0]
    if unstaffed:
        score *= 0.7 ** len(unstaffed)
        findings.append(f"no available staff for {', '.join(unstaffed)}")

    if data.estimated_episode_length > capacity.long_episode_days:
        score *= 0.85
        findings.append(f"long episode ({data.estimated_episode_length} days)")

    return FactorScore(score=_clamp(score), weight=weight, detail="; ".join(findings))


def evaluate_quality(data: ReferralData, criteria: AgencyCriteria) -> FactorScore:
    """Hospital rating (1-5 normalized to 0-1) as a proxy for source reliability."""
    weight = criteria.weights.quality
    rating = data.hospital_rating

    score = (rating - 1) / 4
    detail = f"Hospital rating {rating}/5"

    if rating < criteria.min_hospital_rating:
        score *= 0.5
        detail += f" below minimum {criteria.min_hospital_rating}"

    source_lower = data.referral_source.lower()
    if any(p.lower() in source_lower for p in criteria.preferred_referral_sources):
        score += 0.1
        detail += ", preferred referral source"

    return FactorScore(score=_clamp(score), weight=weight, detail=detail)


EVALUATORS: dict[FactorName, FactorEvaluator] = {
    FactorName.GEOGRAPHIC: evaluate_geographic,
    FactorName.INSURANCE: evaluate_insurance,
    FactorName.CLINICAL: evaluate_clinical,
    FactorName.CAPACITY: evaluate_capacity,
    FactorName.QUALITY: evaluate_quality,
}
