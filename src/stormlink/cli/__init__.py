"""CLI commands using Typer."""

import typer

from stormlink.cli.db import app as db_app
from stormlink.cli.maintenance import app as maintenance_app
from stormlink.cli.users import app as users_app

app = typer.Typer(name="stormlink", help="Stormlink CLI")

# Register sub-apps
app.add_typer(db_app, name="db")
app.add_typer(users_app, name="users")
app.add_typer(maintenance_app, name="maintenance")


@app.command()
def version():
    """Show version information."""
    from stormlink import __version__

    typer.echo(f"Stormlink v{__version__}")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
):
    """Run the API server."""
    import uvicorn

    from stormlink.logging import get_uvicorn_log_config

    uvicorn.run(
        "stormlink.main:app",
        host=host,
        port=port,
        reload=reload,
        log_config=get_uvicorn_log_config(),
    )


@app.command()
def worker(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
):
    """Run the email verification worker."""
    from stormlink.worker import run

    raise typer.Exit(run(verbose=verbose))


if __name__ == "__main__":
    app()
