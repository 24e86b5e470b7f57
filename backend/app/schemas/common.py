"""
PeakSelf Backend — Shared Response Schemas
============================================

What:  Error envelope, success envelope, CSRF token, health and client error
       report shapes shared across routers.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    What:  Error body produced by the global exception handlers.

    Outside production the handlers add `type`, `details` and `stack`
    for debugging; in production only `error` and `request_id` are sent.
    """
    error: str = Field(description="Human-readable error message")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")
    type: Optional[str] = Field(default=None, description="Exception class (non-production only)")
    details: Optional[Any] = Field(default=None, description="Extra context (non-production only)")
    stack: Optional[str] = Field(default=None, description="Traceback (non-production only)")


class SuccessResponse(BaseModel):
    """Envelope used by endpoints that report an outcome plus optional data."""
    success: bool = True
    message: str = "Success"
    data: Optional[Any] = None


class CsrfTokenResponse(BaseModel):
    csrfToken: str = Field(description="Value to send back in the X-CSRF-Token header")


class ClientErrorReport(BaseModel):
    """Frontend error boundary payload for POST /api/errors/log."""
    message: Optional[str] = None
    stack: Optional[str] = None
    componentStack: Optional[str] = None
    userAgent: Optional[str] = None
    url: Optional[str] = None
    timestamp: Optional[str] = None


class DatabaseCheck(BaseModel):
    status: str = Field(description="up or down")
    latency: Optional[str] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """
    What:  Full health report returned by GET /api/health.
    Who:   Load balancers and uptime monitors; 503 when the database is down.
    """
    status: str = Field(description="healthy or unhealthy")
    timestamp: str
    uptime: float = Field(description="Seconds since the process started")
    responseTime: str
    checks: Dict[str, DatabaseCheck]
    version: str
    environment: str
