"""Tests for provider payload normalization."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from agents.referral_intake.email_normalizer import (
    normalize_generic,
    normalize_microsoft,
    normalize_postmark,
    strip_html,
)


def test_strip_html_keeps_lines_and_unescapes():
    markup = "<div>Patient: Mary&nbsp;Johnson</div><div>Insurance: Blue Cross &amp; Blue Shield</div>"
    assert strip_html(markup) == "Patient: Mary Johnson\nInsurance: Blue Cross & Blue Shield"


def test_strip_html_handles_br_and_empty():
    assert strip_html("Line one<br/>Line two") == "Line one\nLine two"
    assert strip_html("") == ""


def test_strip_html_drops_style_and_script():
    markup = (
        "<html><head><style>p.MsoNormal {margin:0in; font-family:Calibri}</style></head>"
        "<body><script>trackOpen()</script><p>Home health referral</p>"
        "<p>Patient: <b>Mary</b> Johnson</p></body></html>"
    )
    assert strip_html(markup) == "Home health referral\nPatient: Mary Johnson"


def test_generic_payload_uses_camel_case_keys():
    envelope = normalize_generic(
        {
            "from": "nurse@hospital.org",
            "to": "intake@agency.com",
            "subject": "Referral",
            "text": "Patient: Ann Lee",
            "timestamp": "2025-01-15T10:30:00Z",
            "messageId": "abc-123",
        }
    )

    assert envelope.from_address == "nurse@hospital.org"
    assert envelope.message_id == "abc-123"
    assert envelope.provider == "generic"
    assert envelope.timestamp == datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)


def test_generic_provider_override():
    envelope = normalize_generic({"from": "a@b.c", "messageId": "m1"}, provider="sendgrid")
    assert envelope.provider == "sendgrid"


def test_generic_payload_requires_message_id():
    with pytest.raises(ValidationError):
        normalize_generic({"from": "a@b.c", "subject": "Referral"})


def test_postmark_payload():
    envelope = normalize_postmark(
        {
            "From": "Nurse <nurse@hospital.org>",
            "FromFull": {"Email": "nurse@hospital.org", "Name": "Nurse"},
            "ToFull": [{"Email": "intake@agency.com"}],
            "Subject": "Referral - Ann Lee",
            "TextBody": "Patient: Ann Lee",
            "HtmlBody": "<p>Patient: Ann Lee</p>",
            "Date": "Wed, 15 Jan 2025 10:30:00 +0000",
            "MessageID": "pm-789",
        }
    )

    assert envelope.from_address == "nurse@hospital.org"
    assert envelope.to_address == "intake@agency.com"
    assert envelope.subject == "Referral - Ann Lee"
    assert envelope.message_id == "pm-789"
    assert envelope.provider == "postmark"
    assert envelope.timestamp == datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)
    assert envelope.content() == "Patient: Ann Lee"


def test_microsoft_payload_with_html_body():
    envelope = normalize_microsoft(
        {
            "id": "AAMkAD-1",
            "subject": "Referral",
            "from": {"emailAddress": {"address": "nurse@hospital.org", "name": "Nurse"}},
            "toRecipients": [{"emailAddress": {"address": "intake@agency.com"}}],
            "body": {"contentType": "HTML", "content": "<p>Patient: Ann Lee</p><p>Dx: COPD</p>"},
            "receivedDateTime": "2025-01-15T10:30:00Z",
        }
    )

    assert envelope.from_address == "nurse@hospital.org"
    assert envelope.to_address == "intake@agency.com"
    assert envelope.message_id == "AAMkAD-1"
    assert envelope.provider == "microsoft"
    assert envelope.text is None
    assert envelope.content() == "Patient: Ann Lee\nDx: COPD"


def test_microsoft_payload_with_text_body():
    envelope = normalize_microsoft(
        {
            "id": "AAMkAD-2",
            "from": {"emailAddress": {"address": "nurse@hospital.org"}},
            "body": {"contentType": "text", "content": "Patient: Ann Lee"},
        }
    )

    assert envelope.text == "Patient: Ann Lee"
    assert envelope.html is None
