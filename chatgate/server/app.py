"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from chatgate.errors import GatewayError
from chatgate.messaging.gateway import HumanizeSettings, OutboundGateway
from chatgate.network.base import ChatNetworkClient
from chatgate.network.bridge import BridgeNetworkClient
from chatgate.server.auth import create_owner_dependency
from chatgate.server.config import ServerConfig, load_config_from_env
from chatgate.server.middleware.logging import RequestLoggingMiddleware
from chatgate.server.middleware.rate_limit import RateLimitMiddleware
from chatgate.server.models.responses import ApiResponse
from chatgate.server.routes.balance import create_balance_router
from chatgate.server.routes.connection import create_connection_router
from chatgate.server.routes.contacts import create_contacts_router
from chatgate.server.routes.health import create_health_router
from chatgate.server.routes.messages import create_messages_router
from chatgate.sessions.credentials import FileCredentialStore
from chatgate.sessions.reconnect import BackoffSettings
from chatgate.sessions.registry import SessionRegistry
from chatgate.sessions.supervisor import SessionSupervisor, SupervisorSettings
from chatgate.state.database import DatabaseManager
from chatgate.state.ledger import SqliteLedger
from chatgate.state.sink import SqliteEventSink

logger = logging.getLogger(__name__)


def _supervisor_settings(config: ServerConfig) -> SupervisorSettings:
    s = config.sessions
    return SupervisorSettings(
        bootstrap_poll_interval=s.bootstrap_poll_interval,
        bootstrap_max_attempts=s.bootstrap_max_attempts,
        sweep_interval=s.sweep_interval,
        session_cost=config.billing.session_cost,
        contacts_limit=s.contacts_limit,
        chats_limit=s.chats_limit,
        messages_limit=s.messages_limit,
    )


def _backoff_settings(config: ServerConfig) -> BackoffSettings:
    r = config.reconnect
    return BackoffSettings(
        base_delay=r.base_delay,
        exponent_cap=r.exponent_cap,
        max_delay=r.max_delay,
        max_attempts=r.max_attempts,
        restart_delay=r.restart_delay,
    )


def _humanize_settings(config: ServerConfig) -> HumanizeSettings:
    h = config.humanize
    return HumanizeSettings(
        enabled=h.enabled,
        presence_pause=h.presence_pause,
        typing_delay_per_char=h.typing_delay_per_char,
        typing_delay_max=h.typing_delay_max,
    )


def create_app(
    config: Optional[ServerConfig] = None,
    network_client: Optional[ChatNetworkClient] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    When called without arguments (e.g. via uvicorn --factory), loads
    configuration from environment variables and talks to the bridge
    configured there. Pass ``network_client`` to supply another client.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    if config is None:
        config = load_config_from_env()

    owns_client = network_client is None
    if network_client is None:
        network_client = BridgeNetworkClient(
            config.bridge.url,
            api_key=config.bridge.api_key,
            timeout=config.bridge.timeout,
            max_retries=config.bridge.max_retries,
        )

    db_manager = DatabaseManager(config.db_path)
    ledger = SqliteLedger(db_manager)
    registry = SessionRegistry()
    supervisor = SessionSupervisor(
        registry,
        network_client,
        FileCredentialStore(config.sessions.auth_dir),
        settings=_supervisor_settings(config),
        backoff=_backoff_settings(config),
        event_sink=SqliteEventSink(db_manager),
        ledger=ledger,
    )
    gateway = OutboundGateway(registry, _humanize_settings(config))
    require_owner = create_owner_dependency(config.auth.public_key, config.auth.leeway_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await db_manager.initialize()
        logger.info("Database initialized at %s", config.db_path)
        restored = await supervisor.restore_all()
        logger.info("Restored %d sessions from %s", restored, config.sessions.auth_dir)
        supervisor.start()
        yield
        await supervisor.shutdown()
        if owns_client:
            await network_client.aclose()
        await db_manager.close()

    app = FastAPI(
        title="chatgate",
        description="Multi-tenant chat gateway",
        version=config.version,
        lifespan=lifespan,
    )
    app.state.supervisor = supervisor
    app.state.gateway = gateway
    app.state.ledger = ledger

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=config.rate_limit.requests_per_minute,
        exempt_paths=("/api/health",),
    )
    app.add_exception_handler(GatewayError, _gateway_error_handler)
    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
    app.include_router(create_connection_router(supervisor, require_owner))
    app.include_router(
        create_messages_router(gateway, require_owner, ledger, config.billing, config.max_upload_bytes)
    )
    app.include_router(create_contacts_router(gateway, require_owner))
    app.include_router(create_balance_router(ledger, require_owner))
    app.include_router(create_health_router(registry, config.version))
    return app


async def _gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    response = ApiResponse(success=False, error=exc.error_code, message=exc.message, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=response.model_dump(exclude_none=True))


async def _validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if hasattr(exc, "errors") else []
    response = ApiResponse(
        success=False,
        error="INVALID_ARGUMENT",
        message="Request validation failed",
        details={"validation_errors": [_describe_error(e) for e in errors]},
    )
    return JSONResponse(status_code=400, content=response.model_dump(exclude_none=True))


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    response = ApiResponse(success=False, error="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(status_code=500, content=response.model_dump(exclude_none=True))


def _describe_error(error: dict) -> dict:
    return {
        "loc": [str(part) for part in error.get("loc", ())],
        "msg": error.get("msg", ""),
        "type": error.get("type", ""),
    }
