"""Session lifecycle endpoints under /api/connection."""
import logging
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, status

from chatgate.errors import NotFoundError
from chatgate.server.models.requests import CreateConnectionRequest
from chatgate.server.models.responses import ApiResponse
from chatgate.sessions.models import PairingResult, SessionStatus
from chatgate.sessions.supervisor import SessionSupervisor

logger = logging.getLogger(__name__)


def _pairing_message(result: PairingResult) -> str:
    if result.status is SessionStatus.CONNECTED:
        return "Connection established"
    if result.pairing_code:
        return "Enter the pairing code on your phone"
    if result.qr_payload:
        return "Scan the QR code with your phone"
    return "Connection is starting; poll its status for the QR code or pairing code"


def create_connection_router(
    supervisor: SessionSupervisor, require_owner: Callable[..., Awaitable[str]],
) -> APIRouter:
    """Create connection router with injected dependencies."""
    router = APIRouter(prefix="/api/connection")

    @router.post(
        "",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        status_code=status.HTTP_201_CREATED,
        tags=["connection"],
    )
    async def create_connection(
        body: CreateConnectionRequest, owner_id: str = Depends(require_owner),
    ) -> ApiResponse:
        """Create a session and return its QR or pairing code if ready in time."""
        result = await supervisor.create(owner_id, body.pairing_method, body.phone_number)
        return ApiResponse(success=True, data=result.to_dict(), message=_pairing_message(result))

    @router.get("", response_model=ApiResponse, response_model_exclude_none=True, tags=["connection"])
    async def list_connections(owner_id: str = Depends(require_owner)) -> ApiResponse:
        await supervisor.sweep()
        sessions = [s.to_dict() for s in supervisor.list(owner_id)]
        return ApiResponse(success=True, data=sessions)

    @router.get("/{session_id}", response_model=ApiResponse, response_model_exclude_none=True, tags=["connection"])
    async def get_connection(session_id: str, owner_id: str = Depends(require_owner)) -> ApiResponse:
        return ApiResponse(success=True, data=supervisor.get(owner_id, session_id).to_dict())

    @router.post(
        "/{session_id}/restart", response_model=ApiResponse, response_model_exclude_none=True, tags=["connection"],
    )
    async def restart_connection(session_id: str, owner_id: str = Depends(require_owner)) -> ApiResponse:
        result = await supervisor.restart(owner_id, session_id)
        return ApiResponse(success=True, data=result.to_dict(), message=_pairing_message(result))

    @router.delete("/{session_id}", response_model=ApiResponse, response_model_exclude_none=True, tags=["connection"])
    async def delete_connection(session_id: str, owner_id: str = Depends(require_owner)) -> ApiResponse:
        if not await supervisor.remove(owner_id, session_id):
            raise NotFoundError(session_id=session_id)
        return ApiResponse(success=True, message="Connection removed")

    return router
