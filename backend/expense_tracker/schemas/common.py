"""
Expense Tracker Backend — Shared API Schemas
=============================================

ErrorEnvelope is the only failure shape clients ever receive:

    {
        "success": false,
        "message": "Too many requests",
        "status": 429,
        "retryAfter": 900
    }

`details` and `stack` appear outside production only.
"""

from typing import Any, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field


class ErrorEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: Literal[False] = False
    message: str = Field(description="Human-readable error description")
    status: int = Field(description="HTTP status code, repeated in the body")
    details: Optional[Any] = Field(default=None, description="Extra context (non-production)")
    retry_after: Optional[int] = Field(
        default=None,
        alias="retryAfter",
        description="Seconds before the client should retry",
    )
    stack: Optional[str] = Field(default=None, description="Diagnostic trace (non-production)")

    def to_content(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    ai: str = Field(description="AI service status: available, disabled, unavailable, circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")


T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Success envelope: {"success": true, "message"?: str, "data": {...}}."""

    success: bool = True
    message: Optional[str] = None
    data: T
