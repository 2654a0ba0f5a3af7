"""Shared fixtures for referral intake tests."""

import pytest

from agents.referral_intake.automation_agent import ReferralAutomationAgent
from agents.referral_intake.criteria import AgencyCriteria
from agents.referral_intake.decision_engine import DecisionEngine
from agents.referral_intake.referral_extractor import ReferralExtractor
from intake_core.shared_services.criteria_provider import StaticCriteriaProvider
from intake_core.shared_services.idempotency import InMemoryIdempotencyLedger
from intake_core.shared_services.referral_store import InMemoryReferralStore
from tests.fakes import RecordingNotifier


@pytest.fixture
def criteria() -> AgencyCriteria:
    """Default agency criteria (25-mile radius, 0.80 / 0.55 thresholds)."""
    return AgencyCriteria()


@pytest.fixture
def extractor() -> ReferralExtractor:
    return ReferralExtractor()


@pytest.fixture
def engine(criteria: AgencyCriteria) -> DecisionEngine:
    return DecisionEngine(criteria)


@pytest.fixture
def ledger() -> InMemoryIdempotencyLedger:
    return InMemoryIdempotencyLedger()


@pytest.fixture
def store() -> InMemoryReferralStore:
    return InMemoryReferralStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def agent(ledger, store, notifier, criteria) -> ReferralAutomationAgent:
    """Automation agent wired to in-memory collaborators."""
    return ReferralAutomationAgent(
        ledger=ledger,
        store=store,
        notifier=notifier,
        criteria_provider=StaticCriteriaProvider(criteria),
        notifier_timeout_seconds=0.5,
        store_timeout_seconds=0.5,
        geocoder_timeout_seconds=0.5,
    )
