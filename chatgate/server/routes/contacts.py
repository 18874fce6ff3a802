"""Read endpoints over a connected session's address book and history."""
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, Query

from chatgate.messaging.gateway import MAX_MESSAGE_LIMIT, OutboundGateway
from chatgate.server.models.responses import ApiResponse


def create_contacts_router(
    gateway: OutboundGateway, require_owner: Callable[..., Awaitable[str]],
) -> APIRouter:
    """Create contacts router with injected dependencies."""
    router = APIRouter(prefix="/api")

    @router.get("/contacts/{session_id}", response_model=ApiResponse, response_model_exclude_none=True, tags=["contacts"])
    async def get_contacts(session_id: str, owner_id: str = Depends(require_owner)) -> ApiResponse:
        return ApiResponse(success=True, data=gateway.get_contacts(owner_id, session_id))

    @router.get("/groups/{session_id}", response_model=ApiResponse, response_model_exclude_none=True, tags=["contacts"])
    async def get_groups(session_id: str, owner_id: str = Depends(require_owner)) -> ApiResponse:
        return ApiResponse(success=True, data=await gateway.get_groups(owner_id, session_id))

    @router.get("/chats/{session_id}", response_model=ApiResponse, response_model_exclude_none=True, tags=["contacts"])
    async def get_chats(session_id: str, owner_id: str = Depends(require_owner)) -> ApiResponse:
        return ApiResponse(success=True, data=gateway.get_chats(owner_id, session_id))

    @router.get("/messages/{session_id}", response_model=ApiResponse, response_model_exclude_none=True, tags=["contacts"])
    async def get_messages(
        session_id: str,
        limit: int = Query(default=50, ge=1, le=MAX_MESSAGE_LIMIT),
        owner_id: str = Depends(require_owner),
    ) -> ApiResponse:
        return ApiResponse(success=True, data=gateway.get_messages(owner_id, session_id, limit))

    return router
