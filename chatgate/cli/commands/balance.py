"""Show an owner's credit balance and usage."""

import asyncio

import typer
from rich.console import Console

from chatgate.cli.output import format_credits, format_error, format_key_value, format_table, json_output
from chatgate.cli.utils import ConfigManager
from chatgate.cli.utils.config import ConfigError
from chatgate.state import DatabaseManager, LedgerStats, SqliteLedger

console = Console()


async def _load(db_path, owner: str, limit: int) -> tuple[LedgerStats, list]:
    db = DatabaseManager(db_path)
    await db.initialize()
    ledger = SqliteLedger(db)
    stats = await ledger.stats(owner)
    txns = await ledger.transactions(owner, limit) if limit else []
    return stats, txns


def balance_command(owner: str, limit: int, json_flag: bool) -> None:
    try:
        cfg = ConfigManager().load()
        stats, txns = asyncio.run(_load(cfg.db_path, owner, limit))
    except ConfigError as e:
        format_error(console, str(e), hint="Run 'chatgate init' first")
        raise typer.Exit(code=1)
    except ValueError as e:
        format_error(console, str(e))
        raise typer.Exit(code=2)

    if json_flag:
        json_output(console, {
            "owner_id": owner,
            "balance": stats.current_balance,
            "stats": stats.to_dict(),
            "transactions": [t.to_dict() for t in txns],
        })
        return
    console.print(f"[cyan]Balance for {owner}:[/cyan] {format_credits(stats.current_balance)}")
    format_key_value(console, {
        "Deposited": stats.total_deposited,
        "Spent": stats.total_spent,
        "Refunded": stats.total_refunded,
        "Connections": stats.connections_created,
        "Validations": stats.numbers_validated,
    })
    if txns:
        format_table(
            console,
            "Recent Transactions",
            ["When", "Category", "Amount", "Balance", "Description"],
            [
                [t.created_at.strftime("%Y-%m-%d %H:%M"), t.category.value, format_credits(t.amount, signed=True),
                 t.balance_after, t.description]
                for t in txns
            ],
            numeric=("Amount", "Balance"),
        )
