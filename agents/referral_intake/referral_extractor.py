"""
Referral Extractor

Turns a normalized inbound email into a structured ReferralData record.

This component:
1. Filters out messages that are not referrals (keyword relevance check)
2. Pulls labeled fields through a swappable FieldExtractor strategy
3. Classifies urgency from subject and body
4. Maps the requested services onto canonical service codes
5. Derives auxiliary fields (physician orders, episode length, rating)

Extraction is pure: no I/O, no clock, no randomness. Malformed input never
raises; a message without referral keywords or a patient name yields None.
"""

import hashlib
import math
import re
from typing import Optional

from pydantic import BaseModel, Field
from structlog import get_logger

from .field_extractors import FieldExtractor, ReferralField, RegexFieldExtractor
from .models import GeographicLocation, InboundEmail, ReferralData, Urgency

logger = get_logger()


class ExtractionSettings(BaseModel):
    """Tunable vocabulary and defaults for referral extraction."""

    referral_keywords: list[str] = Field(
        default_factory=lambda: ["patient", "referral", "admission", "discharge", "home health"]
    )
    urgent_keywords: list[str] = Field(default_factory=lambda: ["urgent"])
    stat_subject_keywords: list[str] = Field(default_factory=lambda: ["stat", "emergency"])

    # Phrase -> canonical service code, scanned in order
    service_vocabulary: dict[str, str] = Field(
        default_factory=lambda: {
            "skilled nursing": "skilled_nursing",
            "physical therapy": "physical_therapy",
            "occupational therapy": "occupational_therapy",
            "speech therapy": "speech_therapy",
            "wound care": "wound_care",
            "medication management": "medication_management",
            "iv therapy": "iv_therapy",
        }
    )
    default_service: str = Field(default="skilled_nursing")

    physician_order_phrases: list[str] = Field(
        default_factory=lambda: ["physician order", "doctor order"]
    )

    # Episode length heuristics when no explicit "Estimated Episode Length" is given
    default_episode_length: int = Field(default=60, ge=1)
    short_episode_keywords: list[str] = Field(default_factory=lambda: ["short term", "acute"])
    short_episode_length: int = Field(default=30, ge=1)
    long_episode_keywords: list[str] = Field(default_factory=lambda: ["long term", "chronic"])
    long_episode_length: int = Field(default=90, ge=1)
    # Stated lengths above this are treated as unparseable
    max_episode_length: int = Field(default=730, ge=1)

    # Neutral rating when the referral source does not state one
    default_hospital_rating: int = Field(default=3, ge=1, le=5)


_ZIP_RE = re.compile(r"\b(\d{5})\b")


def _contains_word(text: str, word: str) -> bool:
    return re.search(rf"\b{re.escape(word)}\b", text) is not None


class ReferralExtractor:
    """
    Extracts ReferralData from inbound referral emails.

    Usage:
        extractor = ReferralExtractor()
        referral = extractor.extract(envelope)
        if referral is None:
            ...  # not a referral; do not create a record
    """

    def __init__(
        self,
        field_extractor: Optional[FieldExtractor] = None,
        settings: Optional[ExtractionSettings] = None,
    ):
        """
        Initialize extractor.

        Args:
            field_extractor: Field extraction strategy (regex by default)
            settings: Vocabulary and defaults
        """
        self.field_extractor = field_extractor or RegexFieldExtractor()
        self.settings = settings or ExtractionSettings()

    def extract(self, envelope: InboundEmail) -> Optional[ReferralData]:
        """
        Parse an envelope into a referral.

        Args:
            envelope: Normalized inbound email

        Returns:
            ReferralData, or None if the message is not a referral
        """
        subject = envelope.subject or ""
        content = envelope.content()
        subject_lower = subject.lower()
        content_lower = content.lower()

        # Step 1: Relevance filter
        if not self._is_referral(subject_lower, content_lower):
            logger.info("email_not_referral", message_id=envelope.message_id, reason="no_keywords")
            return None

        # Step 2: Labeled fields
        patient_name = self._field(ReferralField.PATIENT_NAME, content)
        if not patient_name:
            logger.info("email_not_referral", message_id=envelope.message_id, reason="no_patient_name")
            return None

        diagnosis = self._field(ReferralField.DIAGNOSIS, content) or "Not specified"
        insurance_provider = self._field(ReferralField.INSURANCE_PROVIDER, content) or "Unknown"
        insurance_id = self._field(ReferralField.INSURANCE_ID, content) or self._placeholder_insurance_id(
            envelope
        )
        address = self._field(ReferralField.ADDRESS, content) or "Not provided"
        zip_code = self._extract_zip(content, address)
        distance = self._extract_float(ReferralField.DISTANCE, content)

        # Step 3: Urgency
        urgency = self._classify_urgency(subject_lower, content_lower)

        # Step 4: Services
        services = self._extract_services(content_lower)

        # Step 5: Auxiliary fields
        physician_orders = any(phrase in content_lower for phrase in self.settings.physician_order_phrases)
        episode_length = self._extract_episode_length(content, content_lower)
        hospital_rating = self._extract_int(ReferralField.HOSPITAL_RATING, content)

        referral = ReferralData(
            patient_name=patient_name,
            diagnosis=diagnosis,
            insurance_provider=insurance_provider,
            insurance_id=insurance_id,
            referral_source=f"Email from {envelope.from_address}",
            service_requested=tuple(services),
            urgency=urgency,
            estimated_episode_length=episode_length,
            geographic_location=GeographicLocation(
                address=address,
                zip_code=zip_code,
                distance=distance,
            ),
            hospital_rating=hospital_rating or self.settings.default_hospital_rating,
            physician_orders=physician_orders,
        )

        logger.info(
            "referral_extracted",
            message_id=envelope.message_id,
            patient=referral.patient_name,
            insurance=referral.insurance_provider,
            services=list(referral.service_requested),
            urgency=referral.urgency.value,
            distance_known=distance is not None,
        )

        return referral

    def _is_referral(self, subject_lower: str, content_lower: str) -> bool:
        return any(
            keyword in subject_lower or keyword in content_lower
            for keyword in self.settings.referral_keywords
        )

    def _field(self, field: ReferralField, content: str) -> Optional[str]:
        return self.field_extractor.extract(field, content)

    def _extract_float(self, field: ReferralField, content: str) -> Optional[float]:
        value = self._field(field, content)
        if value is None:
            return None
        try:
            number = float(value)
        except ValueError:
            return None
        return number if math.isfinite(number) else None

    def _extract_int(self, field: ReferralField, content: str) -> Optional[int]:
        value = self._field(field, content)
        if value is None or not value.isdigit():
            return None
        # Longer digit runs are not a day count
        if len(value) > 6:
            return None
        return int(value)

    def _extract_zip(self, content: str, address: str) -> str:
        """Labeled zip, else last zip-like token of the address, else of the body."""
        zip_code = self._field(ReferralField.ZIP_CODE, content)
        if zip_code:
            return zip_code

        for source in (address, content):
            matches = _ZIP_RE.findall(source)
            if matches:
                return matches[-1]

        return "00000"

    def _classify_urgency(self, subject_lower: str, content_lower: str) -> Urgency:
        urgency = Urgency.ROUTINE

        if any(k in subject_lower or k in content_lower for k in self.settings.urgent_keywords):
            urgency = Urgency.URGENT

        # STAT overrides urgent; only the subject is trusted for it
        if any(_contains_word(subject_lower, k) for k in self.settings.stat_subject_keywords):
            urgency = Urgency.STAT

        return urgency

    def _extract_services(self, content_lower: str) -> list[str]:
        services: list[str] = []
        for phrase, code in self.settings.service_vocabulary.items():
            if phrase in content_lower and code not in services:
                services.append(code)

        return services or [self.settings.default_service]

    def _extract_episode_length(self, content: str, content_lower: str) -> int:
        explicit = self._extract_int(ReferralField.EPISODE_LENGTH, content)
        if explicit and 0 < explicit <= self.settings.max_episode_length:
            return explicit

        if any(k in content_lower for k in self.settings.short_episode_keywords):
            return self.settings.short_episode_length
        if any(k in content_lower for k in self.settings.long_episode_keywords):
            return self.settings.long_episode_length
        return self.settings.default_episode_length

    @staticmethod
    def _placeholder_insurance_id(envelope: InboundEmail) -> str:
        """Deterministic placeholder so repeated extraction yields the same record."""
        digest = hashlib.sha256(envelope.message_id.encode("utf-8")).hexdigest()[:10].upper()
        return f"{envelope.provider.upper()}-{digest}"
