"""
Base Agent Class

Foundation for the intake automation agents with:
- Standardized execution interface
- Optional audit logging
- Error handling and retries
- Confidence scoring and human-review flagging
"""

import asyncio
import time
import traceback
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Optional, TypeVar
from uuid import uuid4

from pydantic import BaseModel, Field
from structlog import get_logger
from tenacity import retry, stop_after_attempt, wait_exponential

from ..config import get_config
from ..exceptions import ConfigurationError
from .audit import AgentAuditLog, AgentAuditService

logger = get_logger()

# Type variable for agent input
InputType = TypeVar("InputType", bound=BaseModel)
# Type variable for agent output
OutputType = TypeVar("OutputType", bound=BaseModel)


class AgentStatus(str, Enum):
    """Agent execution status."""

    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


class AgentResult(BaseModel, Generic[OutputType]):
    """
    Standardized agent execution result.

    Contains output, confidence score, and execution metadata.
    """

    # Execution metadata
    execution_id: str = Field(default_factory=lambda: str(uuid4()))
    agent_type: str
    agent_version: str = Field(default="1.0.0")
    status: AgentStatus

    # Output
    output: Optional[OutputType] = Field(default=None)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Confidence score (0-1)")

    # Error information
    error: Optional[str] = Field(default=None)
    error_details: Optional[dict[str, Any]] = Field(default=None)

    # Execution metrics
    execution_time_ms: float
    retry_count: int = Field(default=0)
    metrics: dict[str, Any] = Field(default_factory=dict)

    # Audit trail
    started_at: datetime
    completed_at: datetime
    user_id: Optional[str] = Field(default=None)

    # Additional context
    context: dict[str, Any] = Field(default_factory=dict)
    needs_human_review: bool = Field(
        default=False, description="Flag for human review if confidence is low"
    )
    review_reason: Optional[str] = Field(default=None)


class BaseAgent(ABC, Generic[InputType, OutputType]):
    """
    Base class for intake agents.

    Provides:
    - Standardized execution interface
    - Audit logging when an audit database is supplied
    - Retry logic
    - Error handling
    """

    def __init__(
        self,
        agent_type: str,
        agent_version: str = "1.0.0",
        max_retries: Optional[int] = None,
        timeout_seconds: Optional[int] = None,
        audit_db: Any = None,
    ):
        """
        Initialize base agent.

        Args:
            agent_type: Agent type identifier
            agent_version: Agent version
            max_retries: Maximum retry attempts (uses config default if not provided)
            timeout_seconds: Execution timeout (uses config default if not provided)
            audit_db: Motor database for audit logs (audit disabled if not provided)
        """
        config = get_config()

        self.agent_type = agent_type
        self.agent_version = agent_version
        self.max_retries = config.agent_max_retries if max_retries is None else max_retries
        self.timeout_seconds = config.agent_timeout_seconds if timeout_seconds is None else timeout_seconds
        self.confidence_threshold = config.agent_confidence_threshold

        self.logger = logger.bind(agent_type=agent_type, agent_version=agent_version)
        self.audit_db = audit_db
        self.audit_service = AgentAuditService()
        self.enable_audit_logging = config.enable_audit_logging

    async def execute(
        self,
        input_data: InputType,
        user_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> AgentResult[OutputType]:
        """
        Execute the agent with audit logging and error handling.

        Configuration errors are not converted into a failed result; they
        propagate to the caller.

        Args:
            input_data: Agent input data
            user_id: User initiating the action
            context: Additional context for execution

        Returns:
            Agent execution result
        """
        execution_id = str(uuid4())
        started_at = datetime.now(timezone.utc)
        start_time = time.perf_counter()

        log = self.logger.bind(execution_id=execution_id, user_id=user_id)
        log.info("agent_execution_started")

        result: AgentResult[OutputType]

        try:
            output, confidence, metrics = await asyncio.wait_for(
                self._execute_with_retry(input_data, context or {}),
                timeout=self.timeout_seconds,
            )

            execution_time_ms = (time.perf_counter() - start_time) * 1000

            # Determine if human review is needed
            needs_review, review_reason = self._review_flag(output, confidence)

            result = AgentResult[OutputType](
                execution_id=execution_id,
                agent_type=self.agent_type,
                agent_version=self.agent_version,
                status=AgentStatus.SUCCESS,
                output=output,
                confidence=confidence,
                execution_time_ms=execution_time_ms,
                metrics=metrics,
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
                user_id=user_id,
                context=context or {},
                needs_human_review=needs_review,
                review_reason=review_reason,
            )

            log.info(
                "agent_execution_success",
                execution_time_ms=execution_time_ms,
                confidence=confidence,
                needs_review=needs_review,
            )

        except ConfigurationError:
            log.error("agent_configuration_error")
            raise

        except asyncio.TimeoutError:
            execution_time_ms = (time.perf_counter() - start_time) * 1000

            result = AgentResult[OutputType](
                execution_id=execution_id,
                agent_type=self.agent_type,
                agent_version=self.agent_version,
                status=AgentStatus.TIMEOUT,
                error=f"Agent execution exceeded timeout of {self.timeout_seconds}s",
                execution_time_ms=execution_time_ms,
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
                user_id=user_id,
                context=context or {},
                needs_human_review=True,
                review_reason="Agent execution timeout",
            )

            log.error("agent_execution_timeout", timeout_seconds=self.timeout_seconds)

        except Exception as e:
            execution_time_ms = (time.perf_counter() - start_time) * 1000
            error_trace = traceback.format_exc()

            result = AgentResult[OutputType](
                execution_id=execution_id,
                agent_type=self.agent_type,
                agent_version=self.agent_version,
                status=AgentStatus.FAILED,
                error=str(e),
                error_details={"traceback": error_trace},
                execution_time_ms=execution_time_ms,
                retry_count=self.max_retries,
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
                user_id=user_id,
                context=context or {},
                needs_human_review=True,
                review_reason=f"Agent execution error: {str(e)}",
            )

            log.error("agent_execution_error", error=str(e), traceback=error_trace)

        # Log to audit trail
        if self.enable_audit_logging and self.audit_db is not None:
            try:
                await self._log_to_audit(result, input_data)
            except Exception as e:
                log.error("audit_logging_failed", error=str(e))

        return result

    def _review_flag(self, output: OutputType, confidence: float) -> tuple[bool, Optional[str]]:
        """
        Decide whether a successful execution still needs human review.

        Subclasses may override to use domain signals instead of confidence.
        """
        if confidence < self.confidence_threshold:
            return True, f"Low confidence score: {confidence:.2f} < {self.confidence_threshold}"
        return False, None

    async def _execute_with_retry(
        self, input_data: InputType, context: dict[str, Any]
    ) -> tuple[OutputType, float, dict[str, Any]]:
        """
        Execute agent with retry logic.

        Args:
            input_data: Agent input
            context: Execution context

        Returns:
            Tuple of (output, confidence, metrics)
        """

        @retry(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        )
        async def _execute():
            return await self._execute_internal(input_data, context)

        return await _execute()

    @abstractmethod
    async def _execute_internal(
        self, input_data: InputType, context: dict[str, Any]
    ) -> tuple[OutputType, float, dict[str, Any]]:
        """
        Internal execution logic implemented by each agent.

        Args:
            input_data: Agent input
            context: Execution context

        Returns:
            Tuple of (output, confidence_score, metrics_dict)
        """
        pass

    async def _log_to_audit(
        self,
        result: AgentResult[OutputType],
        input_data: InputType,
    ) -> None:
        """
        Log execution to audit trail.

        Args:
            result: Agent execution result
            input_data: Agent input
        """
        audit_log = AgentAuditLog(
            log_id=result.execution_id,
            agent_type=self.agent_type,
            agent_version=self.agent_version,
            status=result.status.value,
            input_data=input_data.model_dump(mode="json"),
            output_data=result.output.model_dump(mode="json") if result.output else {},
            confidence=result.confidence,
            execution_time_ms=result.execution_time_ms,
            error=result.error,
            error_details=result.error_details or {},
            retry_count=result.retry_count,
            needs_human_review=result.needs_human_review,
            review_reason=result.review_reason,
            user_id=result.user_id,
            executed_at=result.started_at,
            context=result.context,
        )

        await self.audit_service.create_log(audit_log, self.audit_db)
