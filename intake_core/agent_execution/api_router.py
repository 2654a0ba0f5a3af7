"""
Referral Intake API Router

Inbound email webhooks, the referral test harness and criteria management.
Every webhook normalizes its provider payload into an InboundEmail and hands
it to the ReferralAutomationAgent stored on ``app.state``.
"""

from typing import Any, Callable, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError
from structlog import get_logger

from agents.referral_intake.automation_agent import ReferralAutomationAgent
from agents.referral_intake.email_normalizer import (
    normalize_generic,
    normalize_microsoft,
    normalize_postmark,
)
from agents.referral_intake.models import InboundEmail
from ..exceptions import ConfigurationError, DownstreamFailure
from ..shared_services.criteria_provider import CriteriaProvider

logger = get_logger()

webhook_router = APIRouter(prefix="/webhooks/email", tags=["Email Webhooks"])
referral_router = APIRouter(prefix="/referrals", tags=["Referrals"])


def get_intake_agent(request: Request) -> ReferralAutomationAgent:
    """Referral automation agent built at startup."""
    agent = getattr(request.app.state, "intake_agent", None)
    if agent is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Referral intake is not initialized",
        )
    return agent


def get_criteria_provider(request: Request) -> CriteriaProvider:
    return get_intake_agent(request).criteria_provider


def _normalize(normalizer: Callable[..., InboundEmail], payload: dict[str, Any], *args) -> InboundEmail:
    try:
        return normalizer(payload, *args)
    except ValidationError as e:
        logger.warning("invalid_email_payload", errors=e.error_count())
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        ) from e


async def _process(agent: ReferralAutomationAgent, envelope: InboundEmail) -> dict[str, Any]:
    logger.info(
        "processing_inbound_email",
        message_id=envelope.message_id,
        provider=envelope.provider,
    )

    try:
        result = await agent.process(envelope)
    except ConfigurationError as e:
        logger.error("intake_configuration_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Configuration error: {e}",
        ) from e
    except DownstreamFailure as e:
        logger.error("intake_downstream_failure", collaborator=e.collaborator, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from e

    return result.to_json_dict()


# ============================================================================
# Webhooks
# ============================================================================


@webhook_router.post(
    "",
    summary="Generic inbound email",
    description="Process an email already in envelope shape (from, to, subject, text, html, timestamp, messageId)",
)
async def receive_email(
    payload: dict[str, Any] = Body(...),
    provider: Optional[str] = Query(default=None, description="Email provider name"),
    agent: ReferralAutomationAgent = Depends(get_intake_agent),
) -> dict[str, Any]:
    envelope = _normalize(normalize_generic, payload, provider)
    return await _process(agent, envelope)


@webhook_router.post("/postmark", summary="Postmark inbound email")
async def receive_postmark_email(
    payload: dict[str, Any] = Body(...),
    agent: ReferralAutomationAgent = Depends(get_intake_agent),
) -> dict[str, Any]:
    envelope = _normalize(normalize_postmark, payload)
    return await _process(agent, envelope)


@webhook_router.post("/microsoft", summary="Microsoft Graph inbound email")
async def receive_microsoft_email(
    payload: dict[str, Any] = Body(...),
    agent: ReferralAutomationAgent = Depends(get_intake_agent),
) -> dict[str, Any]:
    envelope = _normalize(normalize_microsoft, payload)
    return await _process(agent, envelope)


# ============================================================================
# Referral harness and criteria
# ============================================================================


@referral_router.post(
    "/test",
    summary="Test referral processing",
    description="Run a sample email through the full pipeline",
)
async def test_referral(
    payload: dict[str, Any] = Body(...),
    agent: ReferralAutomationAgent = Depends(get_intake_agent),
) -> dict[str, Any]:
    envelope = _normalize(normalize_generic, payload, "test")
    return await _process(agent, envelope)


@referral_router.get("/criteria", summary="Active agency criteria")
async def get_criteria(
    provider: CriteriaProvider = Depends(get_criteria_provider),
) -> dict[str, Any]:
    try:
        criteria = await provider.get_criteria()
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Configuration error: {e}",
        ) from e
    return criteria.model_dump(mode="json")


@referral_router.post("/criteria/invalidate", summary="Reload agency criteria on next use")
async def invalidate_criteria(
    provider: CriteriaProvider = Depends(get_criteria_provider),
) -> dict[str, Any]:
    provider.invalidate()
    logger.info("criteria_invalidation_requested")
    return {"invalidated": True}
