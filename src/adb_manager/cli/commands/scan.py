"""Network discovery CLI command."""

from __future__ import annotations

import typer

from adb_manager.cli.daemon_client import DaemonClient
from adb_manager.cli.utils import SCAN_TIMEOUT, fetch


def scan(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Scan the local /24 for wireless debugging endpoints."""
    client = DaemonClient(timeout=SCAN_TIMEOUT)
    resp = client.request("POST", "/network/scan")
    client.close()

    data = fetch(resp, json_output=json_output)
    if data is None:
        return
    endpoints = data.get("devices", [])
    if not endpoints:
        typer.echo("No devices found")
        return
    for endpoint in endpoints:
        typer.echo(f"{endpoint['ip']}:{endpoint['port']}")
    typer.echo(f"{data.get('count', len(endpoints))} found")
