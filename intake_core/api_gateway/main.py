"""
Main FastAPI Application

Referral Intake API Gateway with:
- Inbound email webhooks (generic, Postmark, Microsoft Graph)
- Referral test harness and criteria management
- CORS configuration
- Health checks
"""

from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient
from structlog import get_logger

from agents.referral_intake.automation_agent import ReferralAutomationAgent
from ..agent_execution.api_router import referral_router, webhook_router
from ..agent_orchestration.audit import AgentAuditService
from ..config import IntakeConfig, get_config
from ..logging_config import configure_logging
from ..shared_services.criteria_provider import FileCriteriaProvider, StaticCriteriaProvider
from ..shared_services.geocoding import ZipDistanceGeocoder
from ..shared_services.idempotency import InMemoryIdempotencyLedger, RedisIdempotencyLedger
from ..shared_services.notifier import HttpConfirmationNotifier, LoggingNotifier
from ..shared_services.referral_store import InMemoryReferralStore, MongoReferralStore

config = get_config()
logger = get_logger()


async def build_intake_agent(config: IntakeConfig, db: Optional[Any] = None) -> ReferralAutomationAgent:
    """
    Wire the automation agent from configuration.

    Args:
        config: Intake configuration
        db: Motor database (in-memory store when not provided)

    Returns:
        Ready-to-use referral automation agent
    """
    if config.redis_url:
        ledger = RedisIdempotencyLedger.from_url(
            config.redis_url,
            key_prefix=config.ledger_key_prefix,
            result_ttl_seconds=config.ledger_result_ttl_seconds,
            pending_ttl_seconds=config.ledger_pending_ttl_seconds,
            wait_seconds=config.ledger_wait_seconds,
            poll_interval_seconds=config.ledger_poll_interval_seconds,
        )
    else:
        ledger = InMemoryIdempotencyLedger()

    if db is not None:
        store = MongoReferralStore(db, config.referral_collection)
        await store.ensure_indexes()
    else:
        store = InMemoryReferralStore()

    if config.confirmation_webhook_url:
        notifier = HttpConfirmationNotifier(
            config.confirmation_webhook_url,
            max_retries=config.confirmation_max_retries,
            timeout_seconds=config.notifier_timeout_seconds,
        )
    else:
        notifier = LoggingNotifier()

    if config.criteria_file:
        criteria_provider = FileCriteriaProvider(config.criteria_file)
        # Fail at startup rather than on the first referral
        await criteria_provider.get_criteria()
    else:
        criteria_provider = StaticCriteriaProvider()

    geocoder = ZipDistanceGeocoder.from_file(config.zip_distance_file) if config.zip_distance_file else None

    audit_db = None
    if db is not None and config.enable_audit_logging:
        await AgentAuditService().ensure_indexes(db)
        audit_db = db

    return ReferralAutomationAgent(
        ledger=ledger,
        store=store,
        notifier=notifier,
        criteria_provider=criteria_provider,
        geocoder=geocoder,
        from_email=config.confirmation_from_email,
        notifier_timeout_seconds=config.notifier_timeout_seconds,
        store_timeout_seconds=config.store_timeout_seconds,
        geocoder_timeout_seconds=config.geocoder_timeout_seconds,
        audit_db=audit_db,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    configure_logging(config)
    logger.info("starting_referral_intake", environment=config.environment.value)

    app.state.mongo_client = None
    db = None
    if config.mongo_db_url:
        app.state.mongo_client = AsyncIOMotorClient(config.mongo_db_url)
        db = app.state.mongo_client[config.mongo_db_name]

    app.state.intake_agent = await build_intake_agent(config, db)

    logger.info(
        "referral_intake_initialized",
        store=type(app.state.intake_agent.store).__name__,
        ledger=type(app.state.intake_agent.ledger).__name__,
    )

    yield

    # Shutdown
    logger.info("shutting_down_referral_intake")
    if app.state.mongo_client is not None:
        app.state.mongo_client.close()
    logger.info("referral_intake_shutdown_complete")


# Create FastAPI application
app = FastAPI(
    title="Referral Intake",
    description="Home-health referral intake with automated accept / review / reject decisions",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if not config.is_production else None,
    redoc_url="/redoc" if not config.is_production else None,
    openapi_url="/openapi.json" if not config.is_production else None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoints
@app.get("/health", tags=["Platform"], summary="Health check")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "environment": config.environment.value,
        "version": "0.1.0",
    }


@app.get("/ping", tags=["Platform"], summary="Ping endpoint")
async def ping():
    """Simple ping endpoint."""
    return {"message": "pong"}


@app.exception_handler(500)
async def server_error_handler(request: Request, exc):
    """Custom 500 handler."""
    logger.error("internal_server_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# Include routers
app.include_router(webhook_router)
app.include_router(referral_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "intake_core.api_gateway.main:app",
        host="0.0.0.0",
        port=8000,
        reload=config.is_local,
        log_level=config.log_level.lower(),
    )
