"""
Confirmation Notifier

Sends the referral source a confirmation of the decision. Delivery is
best-effort: the orchestrator bounds each send with a timeout and records a
failure in the result instead of failing the referral.
"""

from typing import Optional, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel
from structlog import get_logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from agents.referral_intake.models import Decision, DecisionAction, ReferralData

from ..exceptions import DownstreamFailure

logger = get_logger()


class _RetryableDeliveryError(Exception):
    """Transient delivery failure."""


class ConfirmationMessage(BaseModel):
    """Outbound confirmation email."""

    to: str
    from_email: str
    subject: str
    body: str
    referral_id: str
    action: DecisionAction


OUTCOME_TEXT = {
    DecisionAction.ACCEPT: "We have accepted this referral and will contact you {eta} to coordinate care.",
    DecisionAction.REVIEW: "This referral requires manual review. Our team will respond {eta}.",
    DecisionAction.REJECT: "We are unable to accept this referral at this time. Reason: {reason}",
}


def compose_confirmation(
    to: str,
    referral_id: str,
    referral: ReferralData,
    decision: Decision,
    from_email: str,
) -> ConfirmationMessage:
    """
    Build the confirmation email for a decided referral.

    Args:
        to: Referral source address
        referral_id: Generated referral ID
        referral: Extracted referral
        decision: Engine decision
        from_email: Agency sender address

    Returns:
        Confirmation message ready to send
    """
    outcome = OUTCOME_TEXT[decision.action].format(
        eta=decision.estimated_response_time.lower(),
        reason=decision.reason,
    )

    if decision.recommended_next_steps:
        steps = "\n".join(
            f"{index}. {step}" for index, step in enumerate(decision.recommended_next_steps, start=1)
        )
    else:
        steps = "Our team will contact you with next steps."

    body = "\n".join(
        [
            "Dear Healthcare Partner,",
            "",
            "Thank you for your referral. Here are the details:",
            "",
            f"Referral ID: {referral_id}",
            f"Patient: {referral.patient_name}",
            f"Diagnosis: {referral.diagnosis}",
            f"Services: {', '.join(referral.service_requested)}",
            f"Decision: {decision.action.value.upper()}",
            f"Confidence: {round(decision.confidence * 100)}%",
            "",
            outcome,
            "",
            "Next Steps:",
            steps,
            "",
            "Best regards,",
            "Referral Intake Team",
        ]
    )

    return ConfirmationMessage(
        to=to,
        from_email=from_email,
        subject=f"Referral Confirmation - {referral.patient_name}",
        body=body,
        referral_id=referral_id,
        action=decision.action,
    )


@runtime_checkable
class ConfirmationNotifier(Protocol):
    """Delivers confirmation messages."""

    async def send(self, message: ConfirmationMessage) -> None:
        """
        Send a confirmation.

        Raises:
            DownstreamFailure: If delivery failed
        """
        ...


class LoggingNotifier:
    """Logs confirmations instead of sending them (local development)."""

    async def send(self, message: ConfirmationMessage) -> None:
        logger.info(
            "confirmation_logged",
            referral_id=message.referral_id,
            to=message.to,
            action=message.action.value,
        )


class HttpConfirmationNotifier:
    """
    Posts confirmations to an email-sending webhook.

    Transport errors and 5xx responses are retried with exponential backoff;
    4xx responses fail immediately.
    """

    def __init__(
        self,
        url: str,
        max_retries: int = 2,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize notifier.

        Args:
            url: Webhook endpoint accepting the confirmation JSON
            max_retries: Retries after the first attempt
            timeout_seconds: Per-request timeout
            client: Shared HTTP client (one is created per send if not provided)
        """
        self.url = url
        self.max_retries = max_retries
        self.timeout_seconds = timeout_seconds
        self.client = client

    async def send(self, message: ConfirmationMessage) -> None:
        @retry(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            retry=retry_if_exception_type(_RetryableDeliveryError),
            reraise=True,
        )
        async def _post() -> None:
            await self._post_once(message)

        try:
            await _post()
        except (_RetryableDeliveryError, httpx.HTTPStatusError) as e:
            raise DownstreamFailure("notifier", f"confirmation delivery failed: {e}") from e

        logger.info("confirmation_sent", referral_id=message.referral_id, to=message.to)

    async def _post_once(self, message: ConfirmationMessage) -> None:
        payload = message.model_dump(mode="json")

        try:
            if self.client is not None:
                response = await self.client.post(self.url, json=payload, timeout=self.timeout_seconds)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(self.url, json=payload, timeout=self.timeout_seconds)
        except httpx.TransportError as e:
            logger.warning("confirmation_transport_error", referral_id=message.referral_id, error=str(e))
            raise _RetryableDeliveryError(str(e)) from e

        if response.status_code >= 500:
            logger.warning(
                "confirmation_server_error",
                referral_id=message.referral_id,
                status_code=response.status_code,
            )
            raise _RetryableDeliveryError(f"HTTP {response.status_code}")

        response.raise_for_status()

