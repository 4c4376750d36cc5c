"""Device management CLI commands."""

from __future__ import annotations

import httpx
import typer

from adb_manager.cli.daemon_client import DaemonClient, format_json
from adb_manager.cli.utils import fetch, handle_response

app = typer.Typer(help="Device management commands")


@app.command("list")
def device_list(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """List connected devices."""
    client = DaemonClient()
    resp = client.request("GET", "/devices")
    client.close()

    data = fetch(resp, json_output=json_output)
    if data is None:
        return
    devices = data.get("devices", [])
    if not devices:
        typer.echo("No devices")
        return
    for device in devices:
        typer.echo(
            f"{device['id']}  type={device['type']} state={device['state']} "
            f"model={device['model']} manufacturer={device['manufacturer']} "
            f"android={device['version']}"
        )


@app.command("connect")
def device_connect(
    host: str = typer.Argument(..., help="Device IP address or hostname"),
    port: int = typer.Option(5555, "--port", "-p", help="adb TCP/IP port"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Connect to a device over TCP/IP."""
    client = DaemonClient()
    resp = client.request("POST", "/devices/connect", json_body={"host": host, "port": port})
    client.close()
    handle_response(resp, json_output=json_output)


@app.command("disconnect")
def device_disconnect(
    host: str = typer.Argument(..., help="Device IP address or hostname"),
    port: int = typer.Option(5555, "--port", "-p", help="adb TCP/IP port"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Disconnect a TCP/IP device."""
    client = DaemonClient()
    resp = client.request("POST", "/devices/disconnect", json_body={"host": host, "port": port})
    client.close()
    handle_response(resp, json_output=json_output)


@app.command("watch")
def device_watch(
    snapshot: bool = typer.Option(
        True, "--snapshot/--no-snapshot", help="Print current devices first"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output one JSON object per event"),
) -> None:
    """Follow device added/removed/changed events until interrupted."""
    client = DaemonClient()
    try:
        for event in client.stream_lines("/events", params={"snapshot": snapshot}):
            if json_output:
                typer.echo(format_json(event))
                continue
            device = event.get("device", {})
            typer.echo(
                f"{event.get('event')}  {device.get('id')} state={device.get('state')} "
                f"model={device.get('model')}"
            )
    except KeyboardInterrupt:
        pass
    except httpx.HTTPError as exc:
        typer.echo(f"Event stream closed: {exc}")
        raise typer.Exit(code=1) from None
    finally:
        client.close()
