"""API request and response models."""
from chatgate.server.models.requests import (
    CreateConnectionRequest, SendMessageRequest, ValidateNumberRequest,
)
from chatgate.server.models.responses import ApiResponse, HealthResponse

__all__ = ["CreateConnectionRequest", "SendMessageRequest", "ValidateNumberRequest",
           "ApiResponse", "HealthResponse"]
