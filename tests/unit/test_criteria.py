"""Tests for agency criteria validation."""

import math

import pytest

from agents.referral_intake.criteria import AgencyCriteria, FactorWeights, validate_criteria
from agents.referral_intake.decision_engine import DecisionEngine
from agents.referral_intake.referral_extractor import ReferralExtractor
from intake_core.exceptions import ConfigurationError
from tests.samples import MARY_JOHNSON_BODY, make_email


def test_default_weights_sum_to_one():
    assert math.isclose(FactorWeights().total(), 1.0)
    validate_criteria(AgencyCriteria())


def test_engine_rejects_weights_not_summing_to_one():
    criteria = AgencyCriteria(
        weights=FactorWeights(geographic=0.5, insurance=0.25, clinical=0.25, capacity=0.15, quality=0.15)
    )
    with pytest.raises(ConfigurationError, match="sum to 1.0"):
        DecisionEngine(criteria)


def test_decide_rejects_invalid_per_call_criteria(engine):
    referral = ReferralExtractor().extract(make_email(MARY_JOHNSON_BODY))
    bad = AgencyCriteria(weights=FactorWeights(geographic=0.0))

    with pytest.raises(ConfigurationError):
        engine.decide(referral, bad)


def test_from_mapping_requires_every_dimension():
    data = {"weights": {"geographic": 0.5, "insurance": 0.5}}
    with pytest.raises(ConfigurationError, match="clinical"):
        AgencyCriteria.from_mapping(data)


def test_from_mapping_rejects_invalid_values():
    with pytest.raises(ConfigurationError):
        AgencyCriteria.from_mapping({"accept_threshold": 1.5})


def test_from_mapping_rejects_review_above_accept():
    with pytest.raises(ConfigurationError):
        AgencyCriteria.from_mapping({"accept_threshold": 0.5, "review_threshold": 0.7})


def test_from_mapping_accepts_tuned_ruleset():
    criteria = AgencyCriteria.from_mapping(
        {
            "weights": {
                "geographic": 0.3,
                "insurance": 0.3,
                "clinical": 0.2,
                "capacity": 0.1,
                "quality": 0.1,
            },
            "max_travel_distance": 40,
            "accept_threshold": 0.75,
        }
    )

    assert criteria.weights.geographic == 0.3
    assert criteria.max_travel_distance == 40
    assert criteria.review_threshold == 0.55


def test_weights_within_tolerance_are_accepted():
    criteria = AgencyCriteria(
        weights=FactorWeights(
            geographic=0.2 + 1e-8, insurance=0.25, clinical=0.25, capacity=0.15, quality=0.15
        )
    )
    validate_criteria(criteria)
