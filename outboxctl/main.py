"""Outbox CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

from .client.endpoints import OutboxClient, OutboxError
from .commands import config, jobs
from .utils.config_manager import config as config_manager
from .utils.formatting import print_error, print_info

console = Console()

app = typer.Typer(
    name="outboxctl",
    help="📬 Technifold Outbox - job queue operator CLI",
    rich_markup_mode="rich",
)

app.add_typer(jobs.app, name="jobs")
app.add_typer(config.app, name="config")


@app.command()
def status():
    """📊 Check API, database and queue status"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with OutboxClient(base_url) as client:
            health = client.health_check()
    except OutboxError as e:
        print_error(f"Failed to connect: {e}")
        console.print(Panel(
            f"🚫 [red]Connection Failed[/red]\n\n"
            f"Make sure the Outbox API is running at:\n"
            f"[blue]{base_url}[/blue]\n\n"
            f"You can update the API URL with:\n"
            f"[cyan]outboxctl config set api.base_url <url>[/cyan]",
            title="Connection Error",
            border_style="red",
        ))
        raise typer.Exit(1) from None

    database = health.get("database") or {}
    queue = health.get("queue") or {}
    db_line = (
        f"[green]connected[/green] ({database.get('response_time_ms')} ms)"
        if database.get("connected")
        else f"[red]unavailable[/red] {database.get('error') or ''}"
    )

    console.print(Panel(
        f"🚀 [green]Connected Successfully![/green]\n\n"
        f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
        f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
        f"• Database: {db_line}\n"
        f"• Queue depth: [yellow]{queue.get('queue_depth', '-')}[/yellow]\n"
        f"• Expired leases: {queue.get('expired_leases', '-')}\n"
        f"• API URL: [blue]{base_url}[/blue]",
        title="System Status",
        border_style="green" if health.get("ok") else "yellow",
    ))

    if not health.get("ok"):
        raise typer.Exit(1)


@app.command()
def version():
    """📎 Show CLI version information"""
    from . import __version__

    console.print(Panel(
        f"📬 [bold cyan]Outbox CLI[/bold cyan]\n\n"
        f"• Version: [green]{__version__}[/green]",
        title="Version Info",
        border_style="cyan",
    ))


@app.command()
def quickstart():
    """🚀 Quick start guide"""
    console.print(Panel(
        "📬 [bold cyan]Outbox Quick Start[/bold cyan]\n\n"
        "[bold]1. Check Status[/bold]\n"
        "   [dim]outboxctl status[/dim]\n\n"
        "[bold]2. Queue Overview[/bold]\n"
        "   [dim]outboxctl jobs stats[/dim]\n\n"
        "[bold]3. Find Failures[/bold]\n"
        "   [dim]outboxctl jobs list --status failed[/dim]\n\n"
        "[bold]4. Inspect and Retry[/bold]\n"
        "   [dim]outboxctl jobs show <job_id>[/dim]\n"
        "   [dim]outboxctl jobs retry <job_id>[/dim]\n\n"
        "[bold yellow]Tip:[/bold yellow] Use [cyan]--help[/cyan] with any command for more options!",
        title="Quick Start Guide",
        border_style="green",
    ))


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None, "--version", "-v", help="Show version and exit", is_eager=True
    ),
):
    """
    📬 Outbox CLI

    Inspect the outbox queue, find failed jobs and send them back for another try.
    """
    if version:
        from . import __version__

        console.print(f"Outbox CLI v{__version__}")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


if __name__ == "__main__":
    app()
