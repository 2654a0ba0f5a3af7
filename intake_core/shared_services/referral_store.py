"""
Referral Store

Persists one ReferralRecord per inbound message. Unique indexes on
``referral_id`` and ``message_id`` make a second insert of the same message a
no-op instead of a duplicate referral.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel
from pymongo.errors import DuplicateKeyError
from structlog import get_logger

from agents.referral_intake.models import ReferralRecord, ReferralStatus

logger = get_logger()


@runtime_checkable
class ReferralStore(Protocol):
    """Referral persistence collaborator."""

    async def save(self, record: ReferralRecord) -> bool:
        """
        Insert a record.

        Returns:
            True if inserted, False if the message was already stored
        """
        ...

    async def get_by_message_id(self, message_id: str) -> Optional[ReferralRecord]:
        ...


def record_to_document(record: ReferralRecord) -> dict[str, Any]:
    """Snake_case Mongo document; timestamps stay native datetimes."""
    document = record.model_dump(mode="json")
    document["received_at"] = record.received_at
    document["created_at"] = record.created_at
    return document


def document_to_record(document: dict[str, Any]) -> ReferralRecord:
    document = dict(document)
    document.pop("_id", None)
    return ReferralRecord.model_validate(document)


class InMemoryReferralStore:
    """Dictionary-backed store for local runs and tests."""

    def __init__(self) -> None:
        self._by_message_id: dict[str, ReferralRecord] = {}
        self._referral_ids: set[str] = set()

    async def save(self, record: ReferralRecord) -> bool:
        if record.message_id in self._by_message_id or record.referral_id in self._referral_ids:
            return False
        self._by_message_id[record.message_id] = record
        self._referral_ids.add(record.referral_id)
        return True

    async def get_by_message_id(self, message_id: str) -> Optional[ReferralRecord]:
        return self._by_message_id.get(message_id)

    def __len__(self) -> int:
        return len(self._by_message_id)


class MongoReferralStore:
    """Service for managing referral records in MongoDB."""

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "referrals"):
        """
        Initialize referral store.

        Args:
            db: Motor database instance
            collection_name: Referral collection
        """
        self.db = db
        self.collection = db[collection_name]

    async def ensure_indexes(self) -> None:
        """Create indexes for the referral collection."""
        indexes = [
            IndexModel([("referral_id", ASCENDING)], unique=True),
            IndexModel([("message_id", ASCENDING)], unique=True),
            IndexModel([("status", ASCENDING)]),
            IndexModel([("created_at", DESCENDING)]),
            IndexModel([("status", ASCENDING), ("created_at", DESCENDING)]),
        ]
        await self.collection.create_indexes(indexes)

    async def save(self, record: ReferralRecord) -> bool:
        try:
            await self.collection.insert_one(record_to_document(record))
        except DuplicateKeyError:
            logger.info(
                "referral_already_stored",
                referral_id=record.referral_id,
                message_id=record.message_id,
            )
            return False

        logger.info("referral_stored", referral_id=record.referral_id, status=record.status.value)
        return True

    async def get_by_message_id(self, message_id: str) -> Optional[ReferralRecord]:
        document = await self.collection.find_one({"message_id": message_id})
        return document_to_record(document) if document else None

    async def count_referrals(self, status: Optional[ReferralStatus] = None) -> int:
        """
        Count stored referrals.

        Args:
            status: Optional status filter

        Returns:
            Number of referrals
        """
        query: dict[str, Any] = {}
        if status:
            query["status"] = status.value
        return await self.collection.count_documents(query)
