"""Database migration CLI commands."""

from pathlib import Path

import typer
from alembic import command
from alembic.config import Config
from alembic.util import CommandError
from rich.console import Console

console = Console()
app = typer.Typer(help="Database migration commands")

config_option = typer.Option(Path("alembic.ini"), "--config", "-c", help="Alembic config file")


def load_config(path: Path) -> Config:
    if not path.is_file():
        console.print(f"[red]Alembic config not found:[/red] {path}")
        raise typer.Exit(1)
    return Config(str(path))


@app.command("migrate")
def migrate(
    revision: str = typer.Argument("head", help="Target revision (default: head)"),
    config: Path = config_option,
):
    """Upgrade the schema to a revision."""
    console.print(f"[dim]Upgrading to {revision}...[/dim]")
    try:
        command.upgrade(load_config(config), revision)
    except CommandError as e:
        console.print(f"[red]Migration failed:[/red] {e}")
        raise typer.Exit(1) from e
    console.print("[green]Schema is up to date[/green]")


@app.command("rollback")
def rollback(
    revision: str = typer.Argument("-1", help="Target revision (default: one step back)"),
    config: Path = config_option,
):
    """Downgrade the schema to a revision."""
    console.print(f"[dim]Downgrading to {revision}...[/dim]")
    try:
        command.downgrade(load_config(config), revision)
    except CommandError as e:
        console.print(f"[red]Rollback failed:[/red] {e}")
        raise typer.Exit(1) from e
    console.print("[green]Rollback complete[/green]")


@app.command("current")
def current(config: Path = config_option):
    """Show the revision the database is at."""
    command.current(load_config(config), verbose=True)


@app.command("history")
def history(config: Path = config_option):
    """List known revisions, newest first."""
    command.history(load_config(config))
