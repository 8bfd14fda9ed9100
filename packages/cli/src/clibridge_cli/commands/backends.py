"""backends command — show which backend CLIs are installed."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.command("backends")
@click.pass_context
def backends_cmd(ctx):
    """List backends, whether their CLI is on PATH, and their models."""
    registry = ctx.obj["registry"]

    table = Table(title="Backends", show_header=True, header_style="bold cyan")
    table.add_column("Backend", style="bold")
    table.add_column("Binary")
    table.add_column("Available")
    table.add_column("Default Model")
    table.add_column("File Refs")
    table.add_column("Models")
    for backend in registry.all():
        available = "[green]yes[/green]" if backend.is_available() else "[red]no[/red]"
        table.add_row(
            backend.name.value,
            backend.binary,
            available,
            backend.DEFAULT_MODEL,
            backend.get_file_ref_syntax() if backend.supports_file_refs() else "inlined",
            ", ".join(backend.get_models()),
        )
    console.print(table)
