"""Credit an owner's balance."""

import asyncio

import typer
from rich.console import Console

from chatgate.cli.output import format_error, format_success, json_output
from chatgate.cli.utils import ConfigManager
from chatgate.cli.utils.config import ConfigError
from chatgate.state import DatabaseManager, LedgerTransaction, SqliteLedger

console = Console()


async def _deposit(db_path, owner: str, amount: int, description: str) -> LedgerTransaction:
    db = DatabaseManager(db_path)
    await db.initialize()
    return await SqliteLedger(db).deposit(owner, amount, description)


def deposit_command(owner: str, amount: int, description: str, json_flag: bool) -> None:
    if amount <= 0:
        format_error(console, "Amount must be a positive number of credits")
        raise typer.Exit(code=2)
    try:
        cfg = ConfigManager().load()
        txn = asyncio.run(_deposit(cfg.db_path, owner, amount, description))
    except ConfigError as e:
        format_error(console, str(e), hint="Run 'chatgate init' first")
        raise typer.Exit(code=1)

    if json_flag:
        json_output(console, {"status": "deposited", "owner_id": owner, **txn.to_dict()})
        return
    format_success(console, f"Deposited {amount} credits for {owner}: {txn.balance_before} -> {txn.balance_after}")
