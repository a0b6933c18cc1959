"""Maintenance CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from stormlink.tasks.maintenance import prune_expired_tokens

console = Console()
app = typer.Typer(help="Maintenance and cleanup commands")


@app.command("prune-tokens")
def prune_tokens(
    dry_run: bool = typer.Option(True, "--dry-run/--execute", help="Only report, don't delete"),
):
    """Delete verification tokens that expired without being used.

    By default runs in dry-run mode to show what would be deleted.
    """
    result = asyncio.run(prune_expired_tokens(dry_run=dry_run))

    if not result.get("success"):
        console.print(f"[red]Error:[/red] {result.get('error')}")
        raise typer.Exit(1)

    table = Table(title="Token Prune Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Cutoff", result["cutoff"])
    table.add_row("Expired Tokens", str(result["tokens_would_delete"]))
    if not dry_run:
        table.add_row("Deleted", str(result["tokens_deleted"]))

    console.print(table)

    if dry_run and result["tokens_would_delete"] > 0:
        console.print("\n[yellow]Dry run mode - no tokens were deleted.[/yellow]")
        console.print("Run with --execute to delete them.")
