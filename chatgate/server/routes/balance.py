"""Credit balance endpoints."""
from typing import Awaitable, Callable, Literal, Optional

from fastapi import APIRouter, Depends, Query

from chatgate.server.models.responses import ApiResponse
from chatgate.state.ledger import SqliteLedger
from chatgate.state.models.ledger import TransactionType


def create_balance_router(ledger: SqliteLedger, require_owner: Callable[..., Awaitable[str]]) -> APIRouter:
    """Create balance router with injected dependencies."""
    router = APIRouter(prefix="/api/balance")

    @router.get("", response_model=ApiResponse, response_model_exclude_none=True, tags=["balance"])
    async def get_balance(owner_id: str = Depends(require_owner)) -> ApiResponse:
        return ApiResponse(success=True, data={"balance": await ledger.balance(owner_id)})

    @router.get("/stats", response_model=ApiResponse, response_model_exclude_none=True, tags=["balance"])
    async def get_stats(owner_id: str = Depends(require_owner)) -> ApiResponse:
        stats = await ledger.stats(owner_id)
        return ApiResponse(success=True, data=stats.to_dict())

    @router.get("/transactions", response_model=ApiResponse, response_model_exclude_none=True, tags=["balance"])
    async def list_transactions(
        limit: int = Query(default=20, ge=1, le=100),
        offset: int = Query(default=0, ge=0),
        type: Optional[Literal["credit", "debit"]] = Query(default=None),
        owner_id: str = Depends(require_owner),
    ) -> ApiResponse:
        txn_type = TransactionType(type) if type else None
        txns = await ledger.transactions(owner_id, limit, offset, txn_type)
        return ApiResponse(success=True, data=[t.to_dict() for t in txns])

    return router
