"""CLI entry point for the Warden recovery supervisor."""

from __future__ import annotations

import asyncio
import datetime as dt
import signal

import typer
from rich.console import Console

app = typer.Typer(help="Warden Self-Healing Supervisor", no_args_is_help=True)
console = Console()


@app.command()
def run(
    health_url: str = typer.Option("", "--health-url", help="Override the HTTP health endpoint"),
    health_command: str = typer.Option("", "--health-command", help="Probe with a shell command instead"),
    log_level: str = typer.Option("", "--log-level", help="Override WARDEN_LOG_LEVEL"),
) -> None:
    """Supervise the monitored capability until interrupted."""
    from warden.config import get_settings
    from warden.logging_config import setup_logging
    from warden.supervisor.scheduler import build_supervisor

    settings = get_settings()
    if health_url:
        settings.health_url = health_url
    if health_command:
        settings.health_command = health_command
    setup_logging(log_level or None)

    console.print("\n[bold cyan]🛡  Warden Self-Healing Supervisor[/bold cyan]\n")
    probe_desc = settings.health_command or settings.health_url
    console.print(f"  Probe:        [green]{probe_desc}[/green]")
    console.print(f"  Check every:  {settings.health_check_interval}s (deep: {settings.deep_check_interval}s)")
    console.print(f"  State file:   {settings.state_file}")
    console.print()

    async def _run() -> None:
        supervisor = build_supervisor(settings)
        stop_requested = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_requested.set)

        await supervisor.start()
        snapshot = supervisor.state.snapshot()
        console.print(
            f"[green]Supervisor running[/green], starting tier "
            f"[bold]{snapshot['tier']}[/bold] "
            f"(history: {snapshot['successful_recoveries']}/{snapshot['total_attempts']})"
        )
        await stop_requested.wait()

        console.print("\n[yellow]Shutting down supervisor...[/yellow]")
        await supervisor.stop()

    asyncio.run(_run())


@app.command()
def status(
    limit: int = typer.Option(10, "--limit", "-n", help="Number of audit entries to show"),
) -> None:
    """Show persisted recovery statistics and recent activity."""
    from warden.config import get_settings
    from warden.supervisor.audit import AuditLog
    from warden.supervisor.policy import tier_for_success_rate
    from warden.supervisor.state import success_rate
    from warden.supervisor.stats_store import JsonStatStore

    settings = get_settings()
    store = JsonStatStore(settings.state_file)

    console.print("\n[bold cyan]🛡  Supervisor Status[/bold cyan]\n")

    if store.path.exists():
        record = store.load()
        rate = success_rate(record.total_attempts, record.successful_recoveries)
        last_healthy = dt.datetime.fromtimestamp(record.last_healthy_at).isoformat(timespec="seconds")
        console.print("[bold]Recovery History:[/bold]")
        console.print(f"  Attempts:           {record.total_attempts}")
        console.print(f"  Successful:         [green]{record.successful_recoveries}[/green]")
        console.print(f"  Success rate:       {rate:.0%}")
        console.print(f"  Next starting tier: [bold]{tier_for_success_rate(rate)}[/bold]")
        console.print(f"  Last healthy:       {last_healthy}")

        extra = store.read_extra()
        if "last_session_uptime" in extra:
            console.print(f"  Last session:       {int(extra['last_session_uptime'])}s")
        if "total_uptime" in extra:
            console.print(f"  Current uptime:     {int(extra['total_uptime'])}s")
    else:
        console.print("[green]No recovery history (clean)[/green]")

    console.print()
    entries = AuditLog(settings.audit_file).recent(limit)
    if entries:
        console.print("[bold]Recent Activity:[/bold]")
        for entry in entries:
            ts = entry.get("timestamp", "")[:19]
            action = entry.get("action", "unknown")
            detail = entry.get("reason") or entry.get("new") or ""
            console.print(f"  {ts}  {action} {detail}".rstrip())
    else:
        console.print("[dim]No audit log yet[/dim]")
    console.print()


@app.command()
def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Forget the persisted recovery history."""
    from warden.config import get_settings
    from warden.supervisor.stats_store import JsonStatStore

    store = JsonStatStore(get_settings().state_file)
    if not yes and not typer.confirm(f"Delete {store.path}?"):
        raise typer.Exit(1)
    if store.clear():
        console.print("[green]Recovery history cleared[/green]")
    else:
        console.print("[dim]Nothing to clear[/dim]")


if __name__ == "__main__":
    app()
