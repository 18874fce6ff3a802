"""Outbound message endpoints."""
import logging
from typing import Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from chatgate.errors import InvalidArgumentError
from chatgate.messaging.gateway import OutboundGateway
from chatgate.server.config import BillingConfig
from chatgate.server.models.requests import SendMessageRequest, ValidateNumberRequest
from chatgate.server.models.responses import ApiResponse
from chatgate.state.ledger import SqliteLedger

logger = logging.getLogger(__name__)


def create_messages_router(
    gateway: OutboundGateway,
    require_owner: Callable[..., Awaitable[str]],
    ledger: Optional[SqliteLedger] = None,
    billing: Optional[BillingConfig] = None,
    max_upload_bytes: int = 16 * 1024 * 1024,
) -> APIRouter:
    """Create messaging router with injected dependencies."""
    router = APIRouter(prefix="/api")
    validation_cost = billing.validation_cost if billing else 0

    @router.post("/send-message", response_model=ApiResponse, response_model_exclude_none=True, tags=["messages"])
    async def send_message(body: SendMessageRequest, owner_id: str = Depends(require_owner)) -> ApiResponse:
        result = await gateway.send_message(owner_id, body.connection_id, body.to, body.message)
        data = {**result.to_dict(), "originalNumber": body.to}
        return ApiResponse(success=True, data=data, message="Message sent successfully")

    @router.post("/send-file", response_model=ApiResponse, response_model_exclude_none=True, tags=["messages"])
    async def send_file(
        connection_id: str = Form(..., alias="connectionId"),
        to: str = Form(...),
        caption: Optional[str] = Form(default=None),
        file: UploadFile = File(...),
        owner_id: str = Depends(require_owner),
    ) -> ApiResponse:
        data = await file.read(max_upload_bytes + 1)
        if len(data) > max_upload_bytes:
            raise InvalidArgumentError(
                "File too large", {"max_bytes": max_upload_bytes},
            )
        mime_type = file.content_type or "application/octet-stream"
        filename = file.filename or "file"
        result = await gateway.send_file(owner_id, connection_id, to, data, filename, mime_type, caption)
        payload = {
            **result.to_dict(),
            "originalNumber": to,
            "fileName": filename,
            "fileType": mime_type,
        }
        return ApiResponse(success=True, data=payload, message="File sent successfully")

    @router.post("/validate-number", response_model=ApiResponse, response_model_exclude_none=True, tags=["messages"])
    async def validate_number(body: ValidateNumberRequest, owner_id: str = Depends(require_owner)) -> ApiResponse:
        """Check a number on the network. Charged when a validation cost is configured."""
        charged = False
        if ledger is not None and validation_cost > 0:
            await ledger.debit(owner_id, validation_cost, "validation", f"Validation of {body.number}", body.connection_id)
            charged = True
        try:
            result = await gateway.validate_number(owner_id, body.connection_id, body.number)
        except Exception:
            if charged:
                try:
                    await ledger.refund(owner_id, validation_cost, "Refund for failed validation", body.connection_id)
                except Exception as exc:
                    logger.error("Refund for validation on %s failed: %s", body.connection_id, exc)
            raise
        return ApiResponse(success=True, data=result.to_dict(), message="Number validated successfully")

    return router
