"""
Libris Backend — Shared Response Schemas
=========================================

What:  Error envelope and health-check models used by every router.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "Validation failed",
            "errors": {"book_id": ["Field required"]},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    errors: Optional[Dict[str, List[str]]] = Field(
        default=None, description="Field-level validation messages (422 only)"
    )
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for monitoring and load balancer health checks.
    """
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    services: List[str] = Field(description="Microservices mounted in this process")
    database: str = Field(description="Database connectivity: connected, disconnected")
    inventory: str = Field(description="Book service: available, unavailable, not_used")
    uptime_seconds: float = Field(description="Seconds since service started")
