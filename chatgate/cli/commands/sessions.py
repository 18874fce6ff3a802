"""List stored sessions."""

from typing import Optional

import typer
from rich.console import Console

from chatgate.cli.output import format_error, format_paired, format_table, json_output
from chatgate.cli.utils import ConfigManager
from chatgate.cli.utils.config import ConfigError
from chatgate.sessions.credentials import FileCredentialStore

console = Console()


def sessions_command(owner: Optional[str], json_flag: bool) -> None:
    """Show every session with a credential directory on disk.

    Reads the credential store directly, so it works while the server
    is stopped. ``paired`` means the credentials can reconnect without
    a new QR or pairing code.
    """
    try:
        cfg = ConfigManager().load()
    except ConfigError as e:
        format_error(console, str(e), hint="Run 'chatgate init' first")
        raise typer.Exit(code=1)

    store = FileCredentialStore(cfg.sessions_dir)
    rows = [
        {"owner_id": key.owner_id, "session_id": key.session_id, "paired": store.has_valid_credentials(key)}
        for key in store.enumerate()
        if owner is None or key.owner_id == owner
    ]

    if json_flag:
        json_output(console, {"sessions": rows, "count": len(rows)})
        return
    if not rows:
        console.print("[yellow]No stored sessions[/yellow]")
        return
    format_table(
        console,
        "Stored Sessions",
        ["Owner", "Session", "Paired"],
        [[r["owner_id"], r["session_id"], format_paired(r["paired"])] for r in rows],
        caption=f"{len(rows)} sessions in {cfg.sessions_dir}",
    )
