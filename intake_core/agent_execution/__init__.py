"""
Agent Execution Module

HTTP routes that run the referral automation agent.
"""

from .api_router import referral_router, webhook_router

__all__ = ["referral_router", "webhook_router"]
