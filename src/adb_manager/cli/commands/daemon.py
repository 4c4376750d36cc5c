"""Daemon lifecycle CLI commands."""

from __future__ import annotations

from typing import Any

import httpx
import typer

from adb_manager.cli.daemon_client import DaemonClient, DaemonController, format_json

app = typer.Typer(help="Daemon lifecycle commands")


@app.command("start")
def daemon_start() -> None:
    """Start the daemon process."""
    controller = DaemonController()
    already = controller.status()["pid_running"]
    pid = controller.start()
    if pid is None:
        typer.echo(f"Daemon already answering on {controller.paths.socket} (pid unknown)")
    elif already:
        typer.echo(f"Daemon already running (pid {pid})")
    else:
        typer.echo(f"Daemon started (pid {pid}), logs in {controller.paths.log_file}")


@app.command("stop")
def daemon_stop() -> None:
    """Stop the daemon process (running mirroring sessions are terminated)."""
    controller = DaemonController()
    if controller.stop():
        typer.echo("Daemon stopped")
    else:
        typer.echo("Daemon not running")


@app.command("status")
def daemon_status(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Show daemon status."""
    controller = DaemonController()
    status = controller.status()

    health: dict[str, Any] | None = None
    client = DaemonClient(auto_start=False)
    try:
        health = client.request("GET", "/health").json()
    except (httpx.HTTPError, ValueError):
        health = None
    finally:
        client.close()

    status["health"] = health
    if json_output:
        typer.echo(format_json(status))
        return

    if health is None:
        typer.echo(f"Daemon not responding on {status['socket']}")
        return
    typer.echo(
        f"Daemon running (pid {status['pid'] or 'unknown'}) "
        f"devices={health.get('devices')} sessions={health.get('sessions')} "
        f"tracking={health.get('tracking')}"
    )
