"""Jobs Commands - Inspect, retry and enqueue outbox jobs"""

import json

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.endpoints import OutboxClient, OutboxError
from ..utils.config_manager import config
from ..utils.formatting import (
    create_jobs_table,
    create_stats_panel,
    display_job,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()
app = typer.Typer(name="jobs", help="Outbox job inspection and recovery commands")

VALID_STATUSES = ("pending", "processing", "completed", "failed")


@app.command("list")
def list_jobs(
    status: list[str] | None = typer.Option(
        None, "--status", "-s", help="Filter by status (repeatable)"
    ),
    job_type: str | None = typer.Option(None, "--type", "-t", help="Filter by job type"),
    limit: int = typer.Option(50, "--limit", "-l", help="Number of jobs to show"),
    offset: int = typer.Option(0, "--offset", "-o", help="Skip first N jobs"),
):
    """📋 List jobs, newest first"""
    for value in status or []:
        if value not in VALID_STATUSES:
            print_error(f"Unknown status '{value}'. Use one of: {', '.join(VALID_STATUSES)}")
            raise typer.Exit(1)

    try:
        with OutboxClient(config.get("api.base_url")) as client:
            data = client.list_jobs(
                status=status, job_type=job_type, limit=limit, offset=offset
            )
    except OutboxError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None

    jobs = data.get("jobs", [])
    total = data.get("total", len(jobs))

    if not jobs:
        console.print(Panel(
            "📭 [yellow]No jobs found![/yellow]\n\n"
            f"• Status: {', '.join(status) if status else 'any'}\n"
            f"• Type: {job_type or 'any'}",
            title="Empty Results",
            border_style="yellow",
        ))
        return

    console.print(create_jobs_table(jobs))
    console.print(f"\n📊 Showing [cyan]{len(jobs)}[/cyan] of [yellow]{total}[/yellow] jobs")

    if offset + limit < total:
        console.print(f"💡 Use [cyan]--offset {offset + limit}[/cyan] to see more")


@app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Job ID to show"),
    payload: bool = typer.Option(True, "--payload/--no-payload", help="Show payload"),
):
    """🔍 Show one job in detail"""
    try:
        with OutboxClient(config.get("api.base_url")) as client:
            job = client.get_job(job_id)
    except OutboxError as e:
        print_error(f"Failed to get job: {e}")
        raise typer.Exit(1) from None

    display_job(job, show_payload=payload)


@app.command("stats")
def job_stats():
    """📊 Show queue statistics"""
    try:
        with OutboxClient(config.get("api.base_url")) as client:
            stats = client.job_stats()
    except OutboxError as e:
        print_error(f"Failed to get stats: {e}")
        raise typer.Exit(1) from None

    console.print(create_stats_panel(stats))


@app.command("retry")
def retry_job(
    job_id: str = typer.Argument(..., help="ID of a failed job"),
):
    """🔁 Move a failed job back to pending"""
    try:
        with OutboxClient(config.get("api.base_url")) as client:
            client.retry_job(job_id)
    except OutboxError as e:
        if e.status_code == 409:
            print_warning(f"Job {job_id} is not failed; nothing to retry")
        else:
            print_error(f"Failed to retry job: {e}")
        raise typer.Exit(1) from None

    print_success(f"Job {job_id} re-queued")


@app.command("enqueue")
def enqueue_job(
    job_type: str = typer.Argument(..., help="Handler key, e.g. send_offer_email"),
    payload: str = typer.Option("{}", "--payload", "-p", help="JSON payload"),
    max_attempts: int | None = typer.Option(
        None, "--max-attempts", "-m", help="Attempts before failing"
    ),
    idempotency_key: str | None = typer.Option(
        None, "--key", "-k", help="Idempotency key"
    ),
):
    """➕ Enqueue a job"""
    try:
        payload_data = json.loads(payload)
    except json.JSONDecodeError as e:
        print_error(f"Payload is not valid JSON: {e}")
        raise typer.Exit(1) from None

    if not isinstance(payload_data, dict):
        print_error("Payload must be a JSON object")
        raise typer.Exit(1)

    try:
        with OutboxClient(config.get("api.base_url")) as client:
            result = client.enqueue_job(
                job_type,
                payload_data,
                max_attempts=max_attempts,
                idempotency_key=idempotency_key,
            )
    except OutboxError as e:
        print_error(f"Failed to enqueue job: {e}")
        raise typer.Exit(1) from None

    if result.get("deduplicated"):
        print_info(f"Existing job returned: {result.get('job_id')} ({result.get('status')})")
    else:
        print_success(f"Job enqueued: {result.get('job_id')}")
