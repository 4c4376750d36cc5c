"""Screen mirroring CLI commands."""

from __future__ import annotations

from typing import Any

import typer

from adb_manager.cli.daemon_client import DaemonClient
from adb_manager.cli.utils import MIRROR_TIMEOUT, fetch, handle_response

app = typer.Typer(help="Screen mirroring (scrcpy) commands")


@app.command("start")
def mirror_start(
    device: str = typer.Option(..., "--device", "-d", help="Device serial or host:port"),
    quality: str | None = typer.Option(None, "--quality", "-q", help="good|medium|poor"),
    bitrate: int | None = typer.Option(None, "--bitrate", help="Video bitrate in bits/s"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Start mirroring a device."""
    payload: dict[str, Any] = {"device_id": device}
    if quality is not None:
        payload["quality"] = quality
    if bitrate is not None:
        payload["bitrate"] = bitrate

    client = DaemonClient(timeout=MIRROR_TIMEOUT)
    resp = client.request("POST", "/mirror/start", json_body=payload)
    client.close()

    data = fetch(resp, json_output=json_output)
    if data is None:
        return
    session = data.get("session", {})
    if session.get("state") == "exited":
        typer.echo(f"scrcpy exited (device {device})")
        return
    typer.echo(f"✓ Mirroring {device} (pid {session.get('pid')}, {session.get('bitrate')} bps)")


@app.command("stop")
def mirror_stop(
    device: str = typer.Option(..., "--device", "-d", help="Device serial or host:port"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Stop mirroring a device."""
    client = DaemonClient()
    resp = client.request("POST", "/mirror/stop", json_body={"device_id": device})
    client.close()
    handle_response(resp, json_output=json_output)


@app.command("list")
def mirror_list(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """List running mirroring sessions."""
    client = DaemonClient()
    resp = client.request("GET", "/mirror")
    client.close()

    data = fetch(resp, json_output=json_output)
    if data is None:
        return
    sessions = data.get("sessions", [])
    if not sessions:
        typer.echo("No active sessions")
        return
    for session in sessions:
        typer.echo(
            f"{session['device_id']}  pid={session['pid']} bitrate={session['bitrate']} "
            f"since={session['started_at']}"
        )
