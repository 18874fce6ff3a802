"""Rich terminal output formatters."""

from typing import Any, Optional, Sequence

from rich.console import Console
from rich.table import Table


def format_success(console: Console, message: str) -> None:
    console.print(f"[green]{message}[/green]")


def format_error(console: Console, message: str, hint: Optional[str] = None) -> None:
    """Display error message in red with optional hint."""
    console.print(f"[red]Error:[/red] {message}")
    if hint:
        console.print(f"[yellow]Hint:[/yellow] {hint}")


def format_warning(console: Console, message: str) -> None:
    console.print(f"[yellow]Warning:[/yellow] {message}")


def format_credits(amount: int, signed: bool = False) -> str:
    """Markup for a credit amount; signed amounts are green for credits, red for debits."""
    if not signed:
        return f"{amount} credits"
    color = "green" if amount > 0 else "red"
    return f"[{color}]{amount:+d}[/{color}]"


def format_paired(paired: bool) -> str:
    return "[green]yes[/green]" if paired else "[yellow]no, needs pairing[/yellow]"


def format_table(
    console: Console,
    title: str,
    columns: Sequence[str],
    rows: Sequence[Sequence[Any]],
    numeric: Sequence[str] = (),
    caption: Optional[str] = None,
) -> None:
    """Display rows as a table. Columns named in ``numeric`` are right aligned."""
    table = Table(title=title, caption=caption)
    for col in columns:
        table.add_column(col, justify="right" if col in numeric else "left")
    for row in rows:
        table.add_row(*("-" if cell is None else str(cell) for cell in row))
    console.print(table)


def format_key_value(console: Console, data: dict[str, Any]) -> None:
    """Display aligned key-value pairs; None shows as a dash."""
    max_key_len = max(len(k) for k in data.keys()) if data else 0
    for key, value in data.items():
        console.print(f"[cyan]{key.ljust(max_key_len)}[/cyan]: {'-' if value is None else value}")
