"""GET /api/health endpoint handler."""
from collections import Counter
from datetime import datetime, timezone

from fastapi import APIRouter, status

from chatgate.server.models.responses import HealthResponse
from chatgate.sessions.models import SessionStatus
from chatgate.sessions.registry import SessionRegistry


def create_health_router(registry: SessionRegistry, version: str) -> APIRouter:
    """Create health router with injected dependencies."""
    router = APIRouter()

    @router.get("/api/health", response_model=HealthResponse, status_code=status.HTTP_200_OK, tags=["status"])
    async def health_check() -> HealthResponse:
        """Report liveness and a count of sessions per status."""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        counts = Counter(state.status.value for state in registry)
        sessions = {s.value: counts.get(s.value, 0) for s in SessionStatus}
        sessions["total"] = len(registry)
        if sessions["total"] and not sessions[SessionStatus.CONNECTED.value]:
            return HealthResponse(
                status="degraded", version=version, timestamp=timestamp, sessions=sessions,
                message="No session is connected",
            )
        return HealthResponse(status="healthy", version=version, timestamp=timestamp, sessions=sessions)

    return router
