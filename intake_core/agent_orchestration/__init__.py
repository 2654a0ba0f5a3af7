"""
Agent Orchestration Module

Execution framework for the intake agents: retries, timeouts, audit logging.
"""

from .audit import AgentAuditLog, AgentAuditService
from .base_agent import AgentResult, AgentStatus, BaseAgent

__all__ = [
    "BaseAgent",
    "AgentResult",
    "AgentStatus",
    "AgentAuditLog",
    "AgentAuditService",
]
