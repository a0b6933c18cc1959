"""User management CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table
from sqlmodel import select

from stormlink.database import get_session_context
from stormlink.models import User
from stormlink.services.email import build_verification_link
from stormlink.services.verification import VerificationError, VerificationService

console = Console()
app = typer.Typer(help="User management commands")


@app.command("list")
def list_users(
    unverified: bool = typer.Option(False, "--unverified", help="Only show unverified users"),
):
    """List users."""

    async def _list():
        async with get_session_context() as session:
            stmt = select(User).order_by(User.email)
            if unverified:
                stmt = stmt.where(User.is_verified == False)  # noqa: E712
            result = await session.execute(stmt)
            users = result.scalars().all()

            table = Table(title="Users")
            table.add_column("ID", style="cyan")
            table.add_column("Email", style="green")
            table.add_column("Verified", style="magenta")
            table.add_column("Created", style="dim")

            for user in users:
                verified_str = "[green]Yes[/green]" if user.is_verified else "No"
                created = user.created_at.strftime("%Y-%m-%d") if user.created_at else "-"
                table.add_row(str(user.id), user.email, verified_str, created)

            console.print(table)

    asyncio.run(_list())


@app.command("create")
def create_user(
    email: str = typer.Argument(..., help="User email"),
    name: str | None = typer.Option(None, "--name", "-n", help="Display name"),
):
    """Register a user and queue their verification email."""

    async def _create():
        async with get_session_context() as session:
            service = VerificationService(session)
            try:
                user, _ = await service.register(email=email, name=name)
            except VerificationError as e:
                console.print(f"[red]Error:[/red] {e}")
                raise typer.Exit(1) from e

            name_str = f" ({name})" if name else ""
            console.print(f"[green]Created user:[/green] {email}{name_str} [dim]{user.id}[/dim]")
            console.print("[dim]Verification email queued[/dim]")

    asyncio.run(_create())


@app.command("resend")
def resend(email: str = typer.Argument(..., help="User email")):
    """Issue a fresh verification token and queue its delivery."""

    async def _resend():
        async with get_session_context() as session:
            service = VerificationService(session)
            try:
                record = await service.issue_or_resend(email=email)
            except VerificationError as e:
                console.print(f"[red]Error:[/red] {e}")
                raise typer.Exit(1) from e

            console.print(f"[green]Verification email queued for:[/green] {email}")
            console.print(f"[dim]Expires: {record.expires_at}[/dim]")

    asyncio.run(_resend())


@app.command("verify-url")
def verify_url(email: str = typer.Argument(..., help="User email")):
    """Issue a verification token and print its link without emailing it.

    Earlier tokens for the user stop working.
    """

    async def _generate():
        async with get_session_context() as session:
            service = VerificationService(session)
            try:
                record = await service.issue_or_resend(email=email, publish=False)
            except VerificationError as e:
                console.print(f"[red]Error:[/red] {e}")
                raise typer.Exit(1) from e

            console.print(f"[green]Verification URL:[/green] {build_verification_link(record.token)}")
            console.print(f"[dim]Expires: {record.expires_at}[/dim]")

    asyncio.run(_generate())
