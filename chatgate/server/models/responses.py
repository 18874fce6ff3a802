"""Response models for API endpoints."""
from typing import Annotated, Any, Literal, Optional
from pydantic import BaseModel, Field


class ApiResponse(BaseModel):
    """Envelope shared by every endpoint: ``{success, data?, message?, error?}``."""

    success: bool
    data: Optional[Any] = None
    message: Optional[str] = None
    error: Optional[str] = None
    details: Optional[dict[str, Any]] = None


class HealthResponse(BaseModel):
    status: Annotated[Literal["healthy", "degraded"], Field()]
    version: Annotated[str, Field()]
    timestamp: Annotated[str, Field()]
    sessions: Annotated[dict[str, int], Field()]
    message: Optional[str] = None
