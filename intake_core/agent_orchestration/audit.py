"""
Agent Audit Logging

Audit trail of intake agent executions, one document per run.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field
from pymongo import ASCENDING, DESCENDING, IndexModel


class AgentAuditLog(BaseModel):
    """Agent execution audit log entry."""

    log_id: str = Field(..., description="Unique log identifier (same as execution_id)")

    # Agent information
    agent_type: str
    agent_version: str
    status: str  # success, failed, timeout

    # Execution data
    input_data: dict[str, Any] = Field(default_factory=dict)
    output_data: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.0)

    # Metrics
    execution_time_ms: float
    error: Optional[str] = Field(default=None)
    error_details: dict[str, Any] = Field(default_factory=dict)
    retry_count: int = Field(default=0)

    # Review flags
    needs_human_review: bool = Field(default=False)
    review_reason: Optional[str] = Field(default=None)

    user_id: Optional[str] = Field(default=None, description="Caller that triggered the agent")
    executed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    context: dict[str, Any] = Field(default_factory=dict)


class AgentAuditService:
    """Service for writing and reading agent audit logs."""

    def __init__(self, collection_name: str = "agent_audit_logs"):
        self.collection_name = collection_name

    async def ensure_indexes(self, db: AsyncIOMotorDatabase) -> None:
        """
        Create indexes for audit log collection.

        Args:
            db: Intake database
        """
        collection = db[self.collection_name]

        indexes = [
            IndexModel([("log_id", ASCENDING)], unique=True),
            IndexModel([("executed_at", DESCENDING)]),
            IndexModel([("needs_human_review", ASCENDING)]),
            IndexModel([("agent_type", ASCENDING), ("executed_at", DESCENDING)]),
        ]

        await collection.create_indexes(indexes)

    async def create_log(self, audit_log: AgentAuditLog, db: AsyncIOMotorDatabase) -> str:
        """
        Create audit log entry.

        Args:
            audit_log: Audit log data
            db: Intake database

        Returns:
            Log ID
        """
        collection = db[self.collection_name]
        await collection.insert_one(audit_log.model_dump())
        return audit_log.log_id

    async def get_log(self, log_id: str, db: AsyncIOMotorDatabase) -> Optional[AgentAuditLog]:
        collection = db[self.collection_name]
        log_dict = await collection.find_one({"log_id": log_id})

        if log_dict:
            log_dict.pop("_id", None)
            return AgentAuditLog(**log_dict)
        return None
