"""Issue a bearer token for an owner."""

from typing import Optional

import typer
from rich.console import Console

from chatgate.cli.output import format_error, json_output
from chatgate.cli.utils import ConfigManager
from chatgate.cli.utils.config import ConfigError
from chatgate.server.auth import issue_bearer_token

console = Console()


def token_command(owner: str, expires_hours: Optional[int], json_flag: bool) -> None:
    """Sign a token with the configured key. Without --expires it never expires."""
    if expires_hours is not None and expires_hours <= 0:
        format_error(console, "--expires must be a positive number of hours")
        raise typer.Exit(code=2)
    try:
        cfg = ConfigManager().load()
    except ConfigError as e:
        format_error(console, str(e), hint="Run 'chatgate init' first")
        raise typer.Exit(code=1)

    ttl = expires_hours * 3600 if expires_hours else None
    token = issue_bearer_token(cfg.signing_key, owner, ttl)
    if json_flag:
        json_output(console, {"owner_id": owner, "token": token, "expires_in": ttl})
        return
    # Plain print so the token can be piped.
    print(token)
