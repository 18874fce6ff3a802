"""HTTP surface of the gateway."""
from chatgate.server.app import create_app
from chatgate.server.config import ServerConfig, load_config_from_env

__all__ = ["create_app", "ServerConfig", "load_config_from_env"]
