"""API route factories."""
from chatgate.server.routes.balance import create_balance_router
from chatgate.server.routes.connection import create_connection_router
from chatgate.server.routes.contacts import create_contacts_router
from chatgate.server.routes.health import create_health_router
from chatgate.server.routes.messages import create_messages_router

__all__ = ["create_balance_router", "create_connection_router", "create_contacts_router",
           "create_health_router", "create_messages_router"]
