"""
Referral Automation Agent

End-to-end pipeline for one inbound referral email:
1. Claim the message on the idempotency ledger (duplicates get the first result)
2. Extract structured referral data
3. Resolve unknown travel distance through the geocoder
4. Load agency criteria and decide accept / review / reject
5. Generate a stable referral ID
6. Send a best-effort confirmation to the referral source
7. Persist the referral record
8. Complete the ledger entry

Collaborator failures (geocoder, notifier, store) never discard a computed
decision; they are reported in ``ProcessingResult.errors``. Invalid agency
criteria are fatal and propagate as ConfigurationError.
"""

import asyncio
import hashlib
import time
from datetime import timezone
from typing import Any, Awaitable, Optional, TypeVar

from intake_core.agent_orchestration.base_agent import BaseAgent
from intake_core.exceptions import DownstreamFailure, DuplicateMessage, NotAReferral
from intake_core.shared_services.criteria_provider import CriteriaProvider
from intake_core.shared_services.geocoding import Geocoder
from intake_core.shared_services.idempotency import IdempotencyLedger
from intake_core.shared_services.notifier import ConfirmationNotifier, compose_confirmation
from intake_core.shared_services.referral_store import ReferralStore

from .decision_engine import DecisionEngine
from .models import (
    DecisionAction,
    InboundEmail,
    ProcessingResult,
    ReferralData,
    ReferralRecord,
)
from .referral_extractor import ReferralExtractor

T = TypeVar("T")


def generate_referral_id(envelope: InboundEmail) -> str:
    """
    Stable referral ID for an envelope.

    Format: ``REF-<YYYYmmddHHMMSS>-<8 hex>`` where the timestamp is the
    envelope's (UTC) and the suffix hashes ``messageId|from``. Redelivery of
    the same message always yields the same ID.
    """
    timestamp = envelope.timestamp
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)

    source = f"{envelope.message_id}|{envelope.from_address}"
    digest = hashlib.sha256(source.encode("utf-8")).hexdigest()[:8].upper()
    return f"REF-{timestamp:%Y%m%d%H%M%S}-{digest}"


class ReferralAutomationAgent(BaseAgent[InboundEmail, ProcessingResult]):
    """
    Agent that turns referral emails into decided, persisted referrals.

    Use ``process()`` directly from webhook handlers, or ``execute()`` to get
    the standard AgentResult envelope with audit logging.
    """

    def __init__(
        self,
        ledger: IdempotencyLedger,
        store: ReferralStore,
        notifier: ConfirmationNotifier,
        criteria_provider: CriteriaProvider,
        geocoder: Optional[Geocoder] = None,
        extractor: Optional[ReferralExtractor] = None,
        engine: Optional[DecisionEngine] = None,
        from_email: str = "referrals@homehealth.example.com",
        notifier_timeout_seconds: float = 10.0,
        store_timeout_seconds: float = 10.0,
        geocoder_timeout_seconds: float = 5.0,
        audit_db: Any = None,
    ):
        """
        Initialize referral automation agent.

        Args:
            ledger: Idempotency ledger keyed by message id
            store: Referral persistence
            notifier: Confirmation delivery
            criteria_provider: Source of agency criteria
            geocoder: Distance lookup for referrals without a stated distance
            extractor: Referral extractor (regex strategy by default)
            engine: Decision engine (default evaluators and table)
            from_email: Sender address of confirmations
            notifier_timeout_seconds: Bound on one confirmation send
            store_timeout_seconds: Bound on one store write
            geocoder_timeout_seconds: Bound on one distance lookup
            audit_db: Motor database for agent audit logs
        """
        super().__init__(
            agent_type="referral_automation",
            agent_version="1.0.0",
            max_retries=0,  # The ledger already makes redelivery safe
            audit_db=audit_db,
        )
        self.ledger = ledger
        self.store = store
        self.notifier = notifier
        self.criteria_provider = criteria_provider
        self.geocoder = geocoder
        self.extractor = extractor or ReferralExtractor()
        self.engine = engine or DecisionEngine()
        self.from_email = from_email
        self.notifier_timeout_seconds = notifier_timeout_seconds
        self.store_timeout_seconds = store_timeout_seconds
        self.geocoder_timeout_seconds = geocoder_timeout_seconds

    async def process(self, envelope: InboundEmail) -> ProcessingResult:
        """
        Process one inbound email.

        Args:
            envelope: Normalized inbound email

        Returns:
            ProcessingResult (served from the ledger for duplicates)

        Raises:
            ConfigurationError: If the agency criteria are invalid
            DownstreamFailure: If the ledger cannot be reached
        """
        log = self.logger.bind(message_id=envelope.message_id, provider=envelope.provider)

        # Step 1: Idempotency claim
        try:
            await self.ledger.claim(envelope.message_id)
        except DuplicateMessage as e:
            log.info("duplicate_message", referral_id=e.result.referral_id)
            return e.result.model_copy(update={"duplicate": True})
        except DownstreamFailure:
            raise
        except Exception as e:
            raise DownstreamFailure("idempotency_ledger", str(e)) from e

        try:
            result = await self._process_claimed(envelope, log)
        except BaseException:
            # Includes cancellation; a redelivery must be able to retry
            await self._release(envelope.message_id, log)
            raise

        # Step 8: Complete the ledger entry
        try:
            await self.ledger.complete(envelope.message_id, result)
        except Exception as e:
            log.error("ledger_complete_failed", error=str(e))
            result.errors.append(f"idempotency ledger: {e}")

        return result

    async def _process_claimed(self, envelope: InboundEmail, log) -> ProcessingResult:
        errors: list[str] = []

        # Step 2: Extraction
        started = time.perf_counter()
        try:
            referral = self._extract(envelope)
        except NotAReferral as e:
            return ProcessingResult(
                success=False,
                message_id=envelope.message_id,
                processing_time=(time.perf_counter() - started) * 1000,
                errors=[str(e)],
            )
        elapsed = time.perf_counter() - started

        # Step 3: Geocoding
        referral = await self._resolve_distance(referral, errors, log)

        # Step 4: Criteria and decision
        criteria = await self.criteria_provider.get_criteria()

        started = time.perf_counter()
        decision = self.engine.decide(referral, criteria)

        # Step 5: Referral ID
        referral_id = generate_referral_id(envelope)
        elapsed += time.perf_counter() - started

        log = log.bind(referral_id=referral_id, action=decision.action.value)

        # Step 6: Confirmation
        confirmation_sent = await self._send_confirmation(envelope, referral_id, referral, decision, errors, log)

        # Step 7: Persistence
        record = ReferralRecord.from_decision(referral_id, envelope, referral, decision)
        await self._persist(record, errors, log)

        result = ProcessingResult(
            success=True,
            referral_id=referral_id,
            message_id=envelope.message_id,
            processing_time=elapsed * 1000,
            extracted_data=referral,
            decision=decision,
            confirmation_sent=confirmation_sent,
            errors=errors,
        )

        log.info(
            "referral_processed",
            processing_time_ms=round(result.processing_time, 3),
            confirmation_sent=confirmation_sent,
            error_count=len(errors),
        )

        return result

    def _extract(self, envelope: InboundEmail) -> ReferralData:
        referral = self.extractor.extract(envelope)
        if referral is None:
            raise NotAReferral(envelope.message_id)
        return referral

    async def _resolve_distance(self, referral: ReferralData, errors: list[str], log) -> ReferralData:
        location = referral.geographic_location
        if location.distance is not None or self.geocoder is None:
            return referral

        try:
            distance = await self._bounded(
                self.geocoder.distance_miles(location), self.geocoder_timeout_seconds
            )
        except Exception as e:
            log.warning("geocoding_failed", zip_code=location.zip_code, error=_describe(e))
            errors.append(f"geocoding: {_describe(e)}")
            return referral

        if distance is None:
            return referral

        log.info("distance_resolved", zip_code=location.zip_code, distance=distance)
        return referral.model_copy(
            update={"geographic_location": location.model_copy(update={"distance": distance})}
        )

    async def _send_confirmation(self, envelope, referral_id, referral, decision, errors, log) -> bool:
        message = compose_confirmation(
            to=envelope.from_address,
            referral_id=referral_id,
            referral=referral,
            decision=decision,
            from_email=self.from_email,
        )

        try:
            await self._bounded(self.notifier.send(message), self.notifier_timeout_seconds)
        except Exception as e:
            log.warning("confirmation_failed", error=_describe(e))
            errors.append(f"confirmation: {_describe(e)}")
            return False

        return True

    async def _persist(self, record: ReferralRecord, errors: list[str], log) -> None:
        try:
            inserted = await self._bounded(self.store.save(record), self.store_timeout_seconds)
        except Exception as e:
            log.error("referral_persist_failed", error=_describe(e))
            errors.append(f"persistence: {_describe(e)}")
            return

        if not inserted:
            log.info("referral_already_persisted")

    async def _release(self, message_id: str, log) -> None:
        try:
            await self.ledger.release(message_id)
        except Exception as e:
            log.error("ledger_release_failed", error=str(e))

    @staticmethod
    async def _bounded(awaitable: Awaitable[T], timeout: float) -> T:
        return await asyncio.wait_for(awaitable, timeout=timeout)

    # ========================================================================
    # BaseAgent integration
    # ========================================================================

    async def _execute_internal(
        self,
        input_data: InboundEmail,
        context: dict[str, Any],
    ) -> tuple[ProcessingResult, float, dict[str, Any]]:
        """
        Execute the pipeline as a platform agent.

        Returns:
            Tuple of (result, decision confidence, metrics)
        """
        result = await self.process(input_data)
        confidence = result.decision.confidence if result.decision else 0.0

        metrics = {
            "processing_time_ms": result.processing_time,
            "duplicate": result.duplicate,
            "confirmation_sent": result.confirmation_sent,
            "downstream_errors": len(result.errors) if result.success else 0,
        }

        return result, confidence, metrics

    def _review_flag(self, output: ProcessingResult, confidence: float) -> tuple[bool, Optional[str]]:
        if not output.success or output.decision is None:
            return False, None
        if output.decision.action == DecisionAction.REVIEW:
            return True, output.decision.reason
        if output.errors:
            return True, f"Downstream errors: {'; '.join(output.errors)}"
        return False, None


def _describe(error: Exception) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return "timed out"
    return str(error) or error.__class__.__name__
