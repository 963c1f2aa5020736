"""Rich Formatting Utilities for CLI Output"""

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "processing": "blue",
    "completed": "green",
    "failed": "red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def format_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _short_time(value: str | None) -> str:
    if not value:
        return "-"
    # 2026-10-17T09:30:12.123456+00:00 -> 2026-10-17 09:30:12
    return value.replace("T", " ")[:19]


def _truncate(text: str | None, limit: int = 60) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[: limit - 1] + "…"


def create_jobs_table(jobs: list[dict[str, Any]]) -> Table:
    """Create a formatted table for the jobs list"""
    table = Table(title="Outbox Jobs", box=box.ROUNDED)

    table.add_column("Job ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Attempts", justify="center", style="yellow")
    table.add_column("Scheduled", justify="left", style="blue")
    table.add_column("Last Error", justify="left", style="red")

    for job in jobs:
        table.add_row(
            str(job.get("job_id", "")),
            job.get("job_type", ""),
            format_status(job.get("status", "")),
            f"{job.get('attempts', 0)}/{job.get('max_attempts', 0)}",
            _short_time(job.get("scheduled_for")),
            _truncate(job.get("last_error")),
        )

    return table


def display_job(job: dict[str, Any], show_payload: bool = True):
    """Display a single job with its lease and outcome fields"""
    details = (
        f"🆔 [bold]ID:[/bold] [cyan]{job.get('job_id')}[/cyan]\n"
        f"📝 [bold]Type:[/bold] [magenta]{job.get('job_type')}[/magenta]\n"
        f"📊 [bold]Status:[/bold] {format_status(job.get('status', ''))}\n"
        f"🔁 [bold]Attempts:[/bold] [yellow]{job.get('attempts')}/{job.get('max_attempts')}[/yellow]\n"
        f"⏰ [bold]Scheduled for:[/bold] {_short_time(job.get('scheduled_for'))}\n"
        f"🔒 [bold]Locked by:[/bold] {job.get('locked_by') or '-'} "
        f"until {_short_time(job.get('locked_until'))}\n"
        f"📅 [bold]Created:[/bold] {_short_time(job.get('created_at'))}\n"
        f"✅ [bold]Completed:[/bold] {_short_time(job.get('completed_at'))}"
    )
    if job.get("idempotency_key"):
        details += f"\n🔑 [bold]Idempotency key:[/bold] {job['idempotency_key']}"

    console.print(Panel(details, title="Job", border_style="blue"))

    if job.get("last_error"):
        console.print(Panel(f"[red]{job['last_error']}[/red]", title="Last Error"))

    if show_payload:
        console.print("\n[bold blue]Payload:[/bold blue]")
        console.print_json(json.dumps(job.get("payload") or {}))

    if job.get("result"):
        console.print("\n[bold green]Result:[/bold green]")
        console.print_json(json.dumps(job["result"]))


def create_stats_panel(stats: dict[str, Any]) -> Panel:
    """Create a panel summarizing queue statistics"""
    by_status = stats.get("by_status", {})
    lines = [
        f"📦 [bold]Total jobs:[/bold] [cyan]{stats.get('total_jobs', 0)}[/cyan]",
        f"📥 [bold]Queue depth:[/bold] [yellow]{stats.get('queue_depth', 0)}[/yellow]",
        f"🔥 [bold]Failed last hour:[/bold] [red]{stats.get('failed_last_hour', 0)}[/red]",
        f"⌛ [bold]Expired leases:[/bold] {stats.get('expired_leases', 0)}",
    ]
    oldest = stats.get("oldest_pending_age_seconds")
    lines.append(
        f"🐢 [bold]Oldest pending:[/bold] {f'{oldest}s' if oldest is not None else '-'}"
    )
    lines.append("")
    for status, count in by_status.items():
        lines.append(f"• {format_status(status)}: {count}")

    by_type = stats.get("by_type", {})
    if by_type:
        lines.append("")
        for job_type, count in sorted(by_type.items()):
            lines.append(f"• [magenta]{job_type}[/magenta]: {count}")

    return Panel("\n".join(lines), title="Queue Statistics", border_style="cyan")
