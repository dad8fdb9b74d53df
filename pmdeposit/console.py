"""Clean console interface for pmdeposit.

Usage:
    from pmdeposit.console import console

    with console.spinner("Depositing..."):
        grid = deposit_pass.run(buffer)

    console.success("Done", detail="total mass 2.0")
    console.warn("Degenerate bounds")
    console.error("Failed", detail=str(err))
    console.info("Device: cpu")
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Mapping, Optional

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


class Console:
    """Minimal logging interface with rich output."""

    __slots__ = ('_console', 'quiet')

    def __init__(self, *, quiet: bool = False) -> None:
        self._console = RichConsole(stderr=True)
        self.quiet = quiet

    @contextmanager
    def spinner(self, message: str):
        """Show a spinner while work is in progress."""
        if self.quiet:
            yield
            return
        with self._console.status(f"[bold cyan]{message}", spinner="dots"):
            yield

    def success(self, message: str, *, detail: Optional[str] = None, title: Optional[str] = None) -> None:
        """Green success message."""
        if self.quiet:
            return
        text = Text(message, style="bold green")
        if detail:
            text.append(f"\n{detail}", style="dim")
        if title:
            self._console.print(Panel(text, title=f"[cyan]{title}[/cyan]", border_style="green"))
        else:
            self._console.print(f"[bold green]✓[/bold green] {message}" + (f" [dim]{detail}[/dim]" if detail else ""))

    def warn(self, message: str, *, detail: Optional[str] = None) -> None:
        """Yellow warning message."""
        if self.quiet:
            return
        self._console.print(f"[yellow]⚠[/yellow] {message}" + (f" [dim]{detail}[/dim]" if detail else ""))

    def error(self, message: str, *, detail: Optional[str] = None) -> None:
        """Red error message. Never silenced."""
        self._console.print(f"[bold red]✗[/bold red] {message}" + (f" [dim]{detail}[/dim]" if detail else ""))

    def info(self, message: str, *, detail: Optional[str] = None) -> None:
        """Blue info message."""
        if self.quiet:
            return
        self._console.print(f"[blue]•[/blue] {message}" + (f" [dim]{detail}[/dim]" if detail else ""))

    def header(self, title: str, **fields: str) -> None:
        """Show a panel with key-value fields."""
        if self.quiet:
            return
        lines = [f"[bold]{k}:[/bold] {v}" for k, v in fields.items()]
        self._console.print(Panel("\n".join(lines), title=f"[cyan]{title}[/cyan]", border_style="blue"))

    def table(self, title: str, rows: Mapping[str, object]) -> None:
        """Two-column key/value table (deposit summaries)."""
        if self.quiet:
            return
        table = Table(title=title, show_header=False, title_style="bold cyan")
        table.add_column("field", style="bold")
        table.add_column("value")
        for k, v in rows.items():
            table.add_row(str(k), str(v))
        self._console.print(table)


console = Console()
