"""CLI utilities."""

from .config import ConfigError, ConfigManager, GatewayConfig

__all__ = ["ConfigError", "ConfigManager", "GatewayConfig"]
