"""
Field Extraction Strategies

Referral fields are pulled out of free-text email bodies through the
FieldExtractor interface. The regex strategy below matches labeled lines
("Patient: ...", "Diagnosis: ...") with bounded capture classes; a
structured-NLP strategy can replace it without touching the extractor or
the decision engine.
"""

import re
from enum import Enum
from typing import Optional, Pattern, Protocol, runtime_checkable


class ReferralField(str, Enum):
    """Fields a FieldExtractor can be asked for."""

    PATIENT_NAME = "patient_name"
    DIAGNOSIS = "diagnosis"
    INSURANCE_PROVIDER = "insurance_provider"
    INSURANCE_ID = "insurance_id"
    ADDRESS = "address"
    ZIP_CODE = "zip_code"
    DISTANCE = "distance"
    EPISODE_LENGTH = "episode_length"
    HOSPITAL_RATING = "hospital_rating"


@runtime_checkable
class FieldExtractor(Protocol):
    """Strategy interface for pulling one field out of a message body."""

    def extract(self, field: ReferralField, text: str) -> Optional[str]:
        """Return the trimmed field value, or None when the field is absent."""
        ...


_I = re.IGNORECASE | re.MULTILINE

# Ordered per field; the first pattern that yields a non-empty capture wins.
DEFAULT_PATTERNS: dict[ReferralField, list[Pattern[str]]] = {
    ReferralField.PATIENT_NAME: [
        re.compile(r"\bpatient(?:\s+name)?[ \t]*:[ \t]*([A-Za-z][A-Za-z .'-]*)", _I),
        re.compile(r"\b(?:full\s+)?name[ \t]*:[ \t]*([A-Za-z][A-Za-z .'-]*)", _I),
        re.compile(r"\bpt[ \t]*:[ \t]*([A-Za-z][A-Za-z .'-]*)", _I),
        # "Mary Johnson is a 79 year old ..."
        re.compile(r"\b([A-Z][a-z]+[ \t]+[A-Z][a-z]+)[ \t]+is[ \t]+(?:an?[ \t]+)?(?:\d+|patient)"),
    ],
    ReferralField.DIAGNOSIS: [
        re.compile(
            r"\b(?:primary[ \t]+)?(?:diagnosis|dx|condition)[ \t]*:[ \t]*([A-Za-z0-9][A-Za-z0-9 ,.'()/&+-]*)",
            _I,
        ),
        re.compile(r"\bdiagnosed[ \t]+with[ \t]+([A-Za-z0-9][A-Za-z0-9 ,.'/-]*)", _I),
    ],
    ReferralField.INSURANCE_PROVIDER: [
        re.compile(
            r"\b(?:insurance(?:[ \t]+provider)?|payer|coverage)[ \t]*:[ \t]*([A-Za-z][A-Za-z0-9 &.'-]*)",
            _I,
        ),
        re.compile(r"\b(?:insured|covered)[ \t]+by[ \t]+([A-Za-z][A-Za-z &.'-]*)", _I),
        re.compile(
            r"\b(medicare|medicaid|blue[ \t]+cross(?:[ \t]+blue[ \t]+shield)?|aetna|humana"
            r"|united[ \t]*healthcare|cigna)\b",
            _I,
        ),
    ],
    ReferralField.INSURANCE_ID: [
        re.compile(
            r"\b(?:medicare|medicaid|member|policy|insurance|subscriber)[ \t]+(?:id|number|#)"
            r"[ \t]*:?[ \t]*([A-Za-z0-9-]{4,})",
            _I,
        ),
    ],
    ReferralField.ADDRESS: [
        re.compile(r"\b(?:home[ \t]+)?(?:address|location)[ \t]*:[ \t]*([A-Za-z0-9#][A-Za-z0-9 ,.#'-]*)", _I),
        re.compile(r"\b(?:lives|residing)[ \t]+at[ \t]+([A-Za-z0-9#][A-Za-z0-9 ,.#'-]*)", _I),
    ],
    ReferralField.ZIP_CODE: [
        re.compile(r"\b(?:zip|postal)(?:[ \t]+code)?[ \t]*:?[ \t]*(\d{5})\b", _I),
    ],
    ReferralField.DISTANCE: [
        re.compile(
            r"\bdistance\b[^:\n]*:[ \t]*(?:approximately|approx\.?|about|~)?[ \t]*(\d+(?:\.\d+)?)", _I
        ),
        re.compile(r"\b(\d+(?:\.\d+)?)[ \t]*(?:miles|mi)\b[ \t]+(?:away|from)", _I),
    ],
    ReferralField.EPISODE_LENGTH: [
        re.compile(r"\b(?:estimated[ \t]+)?episode[ \t]+length[ \t]*:[ \t]*(\d+)", _I),
    ],
    ReferralField.HOSPITAL_RATING: [
        re.compile(r"\b(?:hospital|facility)[ \t]+rating[ \t]*:[ \t]*([1-5])\b", _I),
    ],
}

# Two or more spaces or a tab separate labeled values written on one line.
_COLUMN_BREAK = re.compile(r"[ ]{2,}|\t")


def clean_capture(value: str) -> str:
    """Trim a raw capture: first column only, no trailing punctuation."""
    value = _COLUMN_BREAK.split(value.strip(), maxsplit=1)[0]
    return value.strip().rstrip(",.;").strip()


class RegexFieldExtractor:
    """
    Labeled-pattern field extraction.

    For each field, patterns are tried in order and the first non-empty
    capture wins.
    """

    def __init__(self, patterns: Optional[dict[ReferralField, list[Pattern[str]]]] = None):
        """
        Initialize extractor.

        Args:
            patterns: Field patterns; each must define one capture group.
                Fields missing from the mapping use the defaults.
        """
        self.patterns = {**DEFAULT_PATTERNS, **(patterns or {})}

    def extract(self, field: ReferralField, text: str) -> Optional[str]:
        if not text:
            return None

        for pattern in self.patterns.get(field, []):
            match = pattern.search(text)
            if not match:
                continue
            value = clean_capture(match.group(1))
            if value:
                return value

        return None
