"""Main CLI entry point for chatgate."""

import typer
from rich.console import Console

from chatgate.cli.commands.balance import balance_command
from chatgate.cli.commands.deposit import deposit_command
from chatgate.cli.commands.init import init_command
from chatgate.cli.commands.purge import purge_command
from chatgate.cli.commands.serve import serve_command
from chatgate.cli.commands.sessions import sessions_command
from chatgate.cli.commands.token import token_command
from chatgate.cli.utils.config import DEFAULT_BRIDGE_URL, DEFAULT_HOST, DEFAULT_PORT

app = typer.Typer(
    name="chatgate",
    help="chatgate - multi-tenant chat gateway",
    no_args_is_help=True,
    add_completion=False,
)
console = Console()


@app.command("init")
def init(
    bridge_url: str = typer.Option(DEFAULT_BRIDGE_URL, "-b", "--bridge-url", help="Network bridge URL"),
    host: str = typer.Option(DEFAULT_HOST, "--host", help="Address to listen on"),
    port: int = typer.Option(DEFAULT_PORT, "-p", "--port", help="Port to listen on"),
    force: bool = typer.Option(False, "-f", "--force", help="Overwrite config"),
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Initialize gateway configuration and generate a signing key."""
    init_command(bridge_url, host, port, force, json_flag)


@app.command("serve")
def serve(
    host: str = typer.Option(None, "--host", help="Override configured host"),
    port: int = typer.Option(None, "-p", "--port", help="Override configured port"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Run the HTTP gateway."""
    serve_command(host, port, log_level)


@app.command("sessions")
def sessions(
    owner: str = typer.Option(None, "-o", "--owner", help="Filter by owner"),
    json_flag: bool = typer.Option(False, "--json"),
) -> None:
    """List sessions stored on disk."""
    sessions_command(owner, json_flag)


@app.command("purge")
def purge(
    credentials: bool = typer.Option(False, "--credentials", help="Delete unpaired sessions"),
    messages: bool = typer.Option(False, "--messages", help="Delete logs of removed sessions"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Skip confirmation"),
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Purge unpaired sessions and orphaned message logs."""
    purge_command(credentials, messages, yes, json_flag)


@app.command("balance")
def balance(
    owner: str = typer.Option(..., "-o", "--owner", help="Owner ID"),
    limit: int = typer.Option(10, "-l", "--limit", help="Transactions to show"),
    json_flag: bool = typer.Option(False, "--json"),
) -> None:
    """Show an owner's credit balance and recent transactions."""
    balance_command(owner, limit, json_flag)


@app.command("deposit")
def deposit(
    owner: str = typer.Option(..., "-o", "--owner", help="Owner ID"),
    amount: int = typer.Option(..., "-a", "--amount", help="Credits to add"),
    description: str = typer.Option("", "-d", "--description"),
    json_flag: bool = typer.Option(False, "--json"),
) -> None:
    """Add credits to an owner's balance."""
    deposit_command(owner, amount, description, json_flag)


@app.command("token")
def token(
    owner: str = typer.Option(..., "-o", "--owner", help="Owner ID"),
    expires: int = typer.Option(None, "-e", "--expires", help="Hours until expiry"),
    json_flag: bool = typer.Option(False, "--json"),
) -> None:
    """Issue a bearer token for an owner."""
    token_command(owner, expires, json_flag)


def main() -> None:
    """Entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise typer.Exit(130)
