"""Run the HTTP gateway."""

import os

import typer
import uvicorn
from rich.console import Console

from chatgate.cli.output import format_error, format_key_value
from chatgate.cli.utils import ConfigManager
from chatgate.cli.utils.config import ConfigError
from chatgate.server.app import create_app
from chatgate.server.config import load_config_from_env

console = Console()


def serve_command(host: str, port: int, log_level: str) -> None:
    """Serve the API with settings from the config file.

    Environment variables take precedence over the config file, so every
    tunable of ``load_config_from_env`` can still be overridden.
    """
    try:
        cfg = ConfigManager().load()
    except ConfigError as e:
        format_error(console, str(e), hint="Run 'chatgate init' first")
        raise typer.Exit(code=1)

    os.environ.setdefault("AUTH_PUBLIC_KEY", cfg.public_key_base64)
    os.environ.setdefault("BRIDGE_URL", cfg.bridge_url)
    os.environ.setdefault("SESSIONS_DIR", str(cfg.sessions_dir))
    os.environ.setdefault("DB_PATH", str(cfg.db_path))
    try:
        server_config = load_config_from_env()
    except ValueError as e:
        format_error(console, f"Invalid configuration: {e}")
        raise typer.Exit(code=1)

    host = host or cfg.host
    port = port or cfg.port
    format_key_value(console, {
        "Listen": f"http://{host}:{port}",
        "Bridge": server_config.bridge.url,
        "Sessions": server_config.sessions.auth_dir,
        "Database": server_config.db_path,
    })
    uvicorn.run(
        create_app(server_config),
        host=host,
        port=port,
        log_level=log_level,
    )
