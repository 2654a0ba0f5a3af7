"""API tests for the email webhooks and referral endpoints."""

import pytest
from fastapi.testclient import TestClient

from intake_core.api_gateway.main import app
from intake_core.exceptions import ConfigurationError
from tests.samples import HOSPICE_BODY, MARY_JOHNSON_BODY, NO_PATIENT_BODY


def generic_payload(body: str = MARY_JOHNSON_BODY, message_id: str = "api-msg-001") -> dict:
    return {
        "from": "discharge@springfieldgeneral.org",
        "to": "intake@agency.com",
        "subject": "New Home Health Referral",
        "text": body,
        "timestamp": "2025-01-15T10:30:00Z",
        "messageId": message_id,
    }


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


class TestPlatform:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ping(self, client):
        assert client.get("/ping").json() == {"message": "pong"}


class TestWebhooks:
    def test_generic_webhook_accepts_referral(self, client):
        response = client.post("/webhooks/email", json=generic_payload())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["referralId"].startswith("REF-20250115103000-")
        assert data["messageId"] == "api-msg-001"
        assert data["decision"]["action"] == "accept"
        assert data["extractedData"]["patientName"] == "Mary Johnson"
        assert data["confirmationSent"] is True
        assert data["duplicate"] is False

    def test_provider_query_parameter(self, client):
        response = client.post(
            "/webhooks/email", params={"provider": "sendgrid"}, json=generic_payload(message_id="api-sg")
        )

        assert response.status_code == 200
        stored = client.app.state.intake_agent.store
        assert len(stored) == 1

    def test_redelivery_serves_first_result(self, client):
        first = client.post("/webhooks/email", json=generic_payload()).json()
        second = client.post("/webhooks/email", json=generic_payload()).json()

        assert second["duplicate"] is True
        assert second["referralId"] == first["referralId"]

    def test_missing_message_id_is_rejected(self, client):
        payload = generic_payload()
        del payload["messageId"]

        response = client.post("/webhooks/email", json=payload)

        assert response.status_code == 422

    def test_not_a_referral(self, client):
        response = client.post("/webhooks/email", json=generic_payload(NO_PATIENT_BODY))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["errors"] == ["not a referral"]

    def test_postmark_webhook(self, client):
        payload = {
            "FromFull": {"Email": "nurse@hospital.org", "Name": "Nurse"},
            "ToFull": [{"Email": "intake@agency.com"}],
            "Subject": "Referral",
            "TextBody": HOSPICE_BODY,
            "Date": "2025-01-15T10:30:00Z",
            "MessageID": "pm-001",
        }

        data = client.post("/webhooks/email/postmark", json=payload).json()

        assert data["messageId"] == "pm-001"
        assert data["decision"]["action"] == "reject"

    def test_microsoft_webhook_with_html_body(self, client):
        html = "<p>" + MARY_JOHNSON_BODY.replace("\n", "<br>") + "</p>"
        payload = {
            "id": "ms-001",
            "subject": "Home health referral",
            "from": {"emailAddress": {"address": "nurse@hospital.org"}},
            "toRecipients": [{"emailAddress": {"address": "intake@agency.com"}}],
            "body": {"contentType": "html", "content": html},
            "receivedDateTime": "2025-01-15T10:30:00Z",
        }

        data = client.post("/webhooks/email/microsoft", json=payload).json()

        assert data["success"] is True
        assert data["extractedData"]["patientName"] == "Mary Johnson"


class TestReferralEndpoints:
    def test_test_harness(self, client):
        response = client.post("/referrals/test", json=generic_payload(message_id="harness-1"))

        assert response.status_code == 200
        record = client.app.state.intake_agent.store._by_message_id["harness-1"]
        assert record.provider == "test"

    def test_get_criteria(self, client):
        data = client.get("/referrals/criteria").json()

        assert data["accept_threshold"] == 0.8
        assert data["review_threshold"] == 0.55
        assert data["weights"]["insurance"] == 0.25

    def test_invalidate_criteria(self, client):
        assert client.post("/referrals/criteria/invalidate").json() == {"invalidated": True}

    def test_configuration_error_returns_500(self, client):
        class BrokenProvider:
            async def get_criteria(self):
                raise ConfigurationError("Factor weights must sum to 1.0 (got 0.900000)")

            def invalidate(self):
                pass

        client.app.state.intake_agent.criteria_provider = BrokenProvider()

        assert client.post("/webhooks/email", json=generic_payload()).status_code == 500
        assert client.get("/referrals/criteria").status_code == 500
