"""
API Gateway Module

Main FastAPI application with the referral intake endpoints.
"""

from .main import app

__all__ = ["app"]
