"""Tests for the regex field extraction strategy."""

import re

from agents.referral_intake.field_extractors import (
    FieldExtractor,
    ReferralField,
    RegexFieldExtractor,
    clean_capture,
)


def test_regex_extractor_satisfies_protocol():
    assert isinstance(RegexFieldExtractor(), FieldExtractor)


def test_labeled_patient_name():
    extractor = RegexFieldExtractor()
    assert extractor.extract(ReferralField.PATIENT_NAME, "Patient: Mary Johnson\nDOB: 1/2/1945") == "Mary Johnson"
    assert extractor.extract(ReferralField.PATIENT_NAME, "Patient Name: John Smith") == "John Smith"
    assert extractor.extract(ReferralField.PATIENT_NAME, "Pt: Ann Lee") == "Ann Lee"


def test_name_followed_by_comma_and_label():
    extractor = RegexFieldExtractor()
    text = "Patient: Mary Johnson, DOB: 03/04/1941"
    assert extractor.extract(ReferralField.PATIENT_NAME, text) == "Mary Johnson"


def test_narrative_patient_name():
    extractor = RegexFieldExtractor()
    text = "Mary Johnson is a 79 year old female recovering from surgery."
    assert extractor.extract(ReferralField.PATIENT_NAME, text) == "Mary Johnson"


def test_same_line_columns_are_split():
    extractor = RegexFieldExtractor()
    text = "Patient: Mary Johnson    DOB: 03/15/1945"
    assert extractor.extract(ReferralField.PATIENT_NAME, text) == "Mary Johnson"


def test_insurance_provider_variants():
    extractor = RegexFieldExtractor()
    assert extractor.extract(ReferralField.INSURANCE_PROVIDER, "Insurance: Blue Cross") == "Blue Cross"
    assert extractor.extract(ReferralField.INSURANCE_PROVIDER, "Patient is covered by Aetna.") == "Aetna"
    assert extractor.extract(ReferralField.INSURANCE_PROVIDER, "Primary payer is medicare part A") == "medicare"


def test_distance_with_qualifier():
    extractor = RegexFieldExtractor()
    text = "Distance from office: approximately 12.5 miles"
    assert extractor.extract(ReferralField.DISTANCE, text) == "12.5"


def test_missing_field_returns_none():
    extractor = RegexFieldExtractor()
    assert extractor.extract(ReferralField.DIAGNOSIS, "Patient: Mary Johnson") is None
    assert extractor.extract(ReferralField.DIAGNOSIS, "") is None


def test_custom_patterns_override_defaults_for_their_field_only():
    custom = {ReferralField.PATIENT_NAME: [re.compile(r"Client=(\w+)")]}
    extractor = RegexFieldExtractor(custom)

    assert extractor.extract(ReferralField.PATIENT_NAME, "Client=Bob") == "Bob"
    assert extractor.extract(ReferralField.PATIENT_NAME, "Patient: Mary Johnson") is None
    assert extractor.extract(ReferralField.DIAGNOSIS, "Diagnosis: COPD") == "COPD"


def test_clean_capture_strips_trailing_punctuation():
    assert clean_capture("  Mary Johnson,  ") == "Mary Johnson"
    assert clean_capture("COPD.") == "COPD"
