"""Delete unpaired credential directories and orphaned message logs."""

import asyncio

import typer
from rich.console import Console

from chatgate.cli.output import format_error, format_success, format_warning, json_output
from chatgate.cli.utils import ConfigManager
from chatgate.cli.utils.config import ConfigError
from chatgate.sessions.credentials import FileCredentialStore
from chatgate.state import DatabaseManager, InboundMessageRepository

console = Console()


def _purge_credentials(store: FileCredentialStore) -> int:
    removed = 0
    for key in store.enumerate():
        if not store.has_valid_credentials(key) and store.delete(key):
            removed += 1
    return removed


async def _purge_messages(store: FileCredentialStore, db: DatabaseManager) -> int:
    live = {(k.owner_id, k.session_id) for k in store.enumerate()}
    await db.initialize()
    removed = 0
    async with db.connection() as conn:
        repo = InboundMessageRepository(conn)
        for owner_id, session_id in await repo.sessions():
            if (owner_id, session_id) not in live:
                removed += await repo.delete_for_session(owner_id, session_id)
    return removed


def purge_command(credentials: bool, messages: bool, yes: bool, json_flag: bool) -> None:
    """Run with the server stopped; a running server owns the credential directories."""
    if not credentials and not messages:
        format_error(
            console,
            "Specify --credentials, --messages, or both",
            hint="chatgate purge --credentials --messages",
        )
        raise typer.Exit(code=2)

    try:
        cfg = ConfigManager().load()
    except ConfigError as e:
        format_error(console, str(e), hint="Run 'chatgate init' first")
        raise typer.Exit(code=1)

    if not yes:
        targets = []
        if credentials:
            targets.append("credential directories that never finished pairing")
        if messages:
            targets.append("logged messages of sessions that no longer exist")
        format_warning(console, f"Will purge: {', '.join(targets)}")
        if not typer.confirm("Continue?"):
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(code=0)

    store = FileCredentialStore(cfg.sessions_dir)
    result: dict = {}
    try:
        if credentials:
            result["credentials_purged"] = _purge_credentials(store)
        if messages:
            result["messages_purged"] = asyncio.run(_purge_messages(store, DatabaseManager(cfg.db_path)))
    except Exception as e:
        format_error(console, f"Purge failed: {e}")
        raise typer.Exit(code=1)

    if json_flag:
        json_output(console, {"status": "purged", **result})
        return
    if "credentials_purged" in result:
        format_success(console, f"Purged {result['credentials_purged']} unpaired sessions")
    if "messages_purged" in result:
        format_success(console, f"Purged {result['messages_purged']} orphaned messages")
