"""Tests for confirmation composition and delivery."""

import httpx
import pytest

from agents.referral_intake.decision_engine import DecisionEngine
from agents.referral_intake.models import DecisionAction
from agents.referral_intake.referral_extractor import ReferralExtractor
from intake_core.exceptions import DownstreamFailure
from intake_core.shared_services.notifier import (
    ConfirmationNotifier,
    HttpConfirmationNotifier,
    LoggingNotifier,
    compose_confirmation,
)
from tests.samples import HOSPICE_BODY, MARY_JOHNSON_BODY, make_email


def confirmation_for(body: str):
    email = make_email(body)
    referral = ReferralExtractor().extract(email)
    decision = DecisionEngine().decide(referral)
    return compose_confirmation(
        to=email.from_address,
        referral_id="REF-20250115103000-ABCDEF12",
        referral=referral,
        decision=decision,
        from_email="referrals@agency.com",
    )


def test_accept_confirmation_body():
    message = confirmation_for(MARY_JOHNSON_BODY)

    assert message.subject == "Referral Confirmation - Mary Johnson"
    assert message.action == DecisionAction.ACCEPT
    assert "Referral ID: REF-20250115103000-ABCDEF12" in message.body
    assert "Decision: ACCEPT" in message.body
    assert "will contact you within 24 hours" in message.body
    assert "1. " in message.body


def test_reject_confirmation_includes_reason():
    message = confirmation_for(HOSPICE_BODY)

    assert "Decision: REJECT" in message.body
    assert "Excluded diagnosis" in message.body


async def test_logging_notifier_sends_nothing():
    notifier = LoggingNotifier()
    assert isinstance(notifier, ConfirmationNotifier)
    await notifier.send(confirmation_for(MARY_JOHNSON_BODY))


class TestHttpNotifier:
    async def test_posts_confirmation_json(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(202)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            notifier = HttpConfirmationNotifier("https://mail.example.com/send", client=client)
            await notifier.send(confirmation_for(MARY_JOHNSON_BODY))

        assert len(received) == 1
        assert received[0].url == "https://mail.example.com/send"
        assert b'"referral_id":"REF-20250115103000-ABCDEF12"' in received[0].content.replace(b" ", b"")

    async def test_retries_server_errors(self):
        statuses = iter([503, 200])

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(next(statuses))

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            notifier = HttpConfirmationNotifier("https://mail.example.com/send", max_retries=1, client=client)
            await notifier.send(confirmation_for(MARY_JOHNSON_BODY))

    async def test_client_error_fails_without_retry(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            notifier = HttpConfirmationNotifier("https://mail.example.com/send", max_retries=2, client=client)
            with pytest.raises(DownstreamFailure):
                await notifier.send(confirmation_for(MARY_JOHNSON_BODY))

        assert len(calls) == 1

    async def test_exhausted_retries_raise_downstream_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            notifier = HttpConfirmationNotifier("https://mail.example.com/send", max_retries=0, client=client)
            with pytest.raises(DownstreamFailure) as exc_info:
                await notifier.send(confirmation_for(MARY_JOHNSON_BODY))

        assert exc_info.value.collaborator == "notifier"
