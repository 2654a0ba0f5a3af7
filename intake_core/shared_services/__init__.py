"""
Shared Services Module

Collaborators used by the referral automation agent: idempotency ledger,
referral store, confirmation notifier, criteria provider and geocoder.
"""

from .criteria_provider import CriteriaProvider, FileCriteriaProvider, StaticCriteriaProvider
from .geocoding import Geocoder, ZipDistanceGeocoder
from .idempotency import IdempotencyLedger, InMemoryIdempotencyLedger, RedisIdempotencyLedger
from .notifier import (
    ConfirmationMessage,
    ConfirmationNotifier,
    HttpConfirmationNotifier,
    LoggingNotifier,
    compose_confirmation,
)
from .referral_store import InMemoryReferralStore, MongoReferralStore, ReferralStore

__all__ = [
    "CriteriaProvider",
    "FileCriteriaProvider",
    "StaticCriteriaProvider",
    "Geocoder",
    "ZipDistanceGeocoder",
    "IdempotencyLedger",
    "InMemoryIdempotencyLedger",
    "RedisIdempotencyLedger",
    "ConfirmationMessage",
    "ConfirmationNotifier",
    "HttpConfirmationNotifier",
    "LoggingNotifier",
    "compose_confirmation",
    "InMemoryReferralStore",
    "MongoReferralStore",
    "ReferralStore",
]
