"""Tests for referral stores."""

from agents.referral_intake.decision_engine import DecisionEngine
from agents.referral_intake.models import ReferralRecord, ReferralStatus
from agents.referral_intake.referral_extractor import ReferralExtractor
from intake_core.shared_services.referral_store import (
    InMemoryReferralStore,
    MongoReferralStore,
    ReferralStore,
    record_to_document,
)
from tests.fakes import FakeDatabase
from tests.samples import MARY_JOHNSON_BODY, make_email


def sample_record(referral_id="REF-1", message_id="msg-001") -> ReferralRecord:
    email = make_email(MARY_JOHNSON_BODY, message_id=message_id)
    referral = ReferralExtractor().extract(email)
    decision = DecisionEngine().decide(referral)
    return ReferralRecord.from_decision(referral_id, email, referral, decision)


def test_record_status_follows_action():
    assert sample_record().status == ReferralStatus.ACCEPTED


def test_document_keeps_native_timestamps():
    record = sample_record()
    document = record_to_document(record)

    assert document["received_at"] == record.received_at
    assert document["referral"]["patient_name"] == "Mary Johnson"
    assert document["status"] == "accepted"


class TestInMemoryStore:
    async def test_second_save_of_same_message_is_noop(self):
        store = InMemoryReferralStore()
        assert isinstance(store, ReferralStore)

        assert await store.save(sample_record())
        assert not await store.save(sample_record())
        assert len(store) == 1


class TestMongoStore:
    async def test_ensure_indexes_declares_unique_keys(self):
        db = FakeDatabase()
        store = MongoReferralStore(db, "referrals")

        await store.ensure_indexes()

        assert set(db["referrals"].unique_fields) == {"referral_id", "message_id"}

    async def test_duplicate_message_is_not_stored_twice(self):
        db = FakeDatabase()
        store = MongoReferralStore(db)
        await store.ensure_indexes()

        assert await store.save(sample_record())
        assert not await store.save(sample_record(referral_id="REF-2"))
        assert await store.count_referrals() == 1

    async def test_round_trip(self):
        db = FakeDatabase()
        store = MongoReferralStore(db)
        record = sample_record()

        await store.save(record)
        loaded = await store.get_by_message_id("msg-001")

        assert loaded.referral_id == record.referral_id
        assert loaded.referral == record.referral
        assert loaded.decision == record.decision
        assert await store.count_referrals(ReferralStatus.ACCEPTED) == 1
        assert await store.get_by_message_id("missing") is None
