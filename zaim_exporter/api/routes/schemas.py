"""Pydantic schemas for API responses"""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health"""

    status: str = "healthy"
    service: str


class ReadyResponse(BaseModel):
    """Response for GET /ready"""

    status: str
    reason: str | None = None


class AuthStatusResponse(BaseModel):
    """Response for GET /zaim/auth/status"""

    authenticated: bool
    collector_registered: bool = Field(..., description="Whether /metrics currently serves Zaim data")


class ResetResponse(BaseModel):
    """Response for POST /zaim/auth/reset"""

    status: str
    message: str
