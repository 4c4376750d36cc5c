"""Wireless debugging pairing CLI commands."""

from __future__ import annotations

import typer

from adb_manager.cli.daemon_client import DaemonClient
from adb_manager.cli.utils import PAIR_TIMEOUT, handle_response

app = typer.Typer(help="Wireless debugging pairing (Android 11+)")


@app.command("code")
def pair_device(
    host: str = typer.Argument(..., help="IP address shown under 'Pair device with pairing code'"),
    code: str = typer.Argument(..., help="6-digit pairing code"),
    port: int = typer.Option(38627, "--port", "-p", help="Pairing port shown on the device"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Pair with a device and connect to it."""
    client = DaemonClient(timeout=PAIR_TIMEOUT)
    resp = client.request("POST", "/pair", json_body={"host": host, "port": port, "code": code})
    client.close()
    handle_response(resp, json_output=json_output)


@app.command("connect")
def pair_connect(
    host: str = typer.Argument(..., help="Device IP address or hostname"),
    port: int = typer.Option(5555, "--port", "-p", help="adb TCP/IP port"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Connect to an already paired device."""
    client = DaemonClient()
    resp = client.request("POST", "/pair/connect", json_body={"host": host, "port": port})
    client.close()
    handle_response(resp, json_output=json_output)
