"""Input CLI command."""

from __future__ import annotations

import typer

from adb_manager.cli.daemon_client import DaemonClient
from adb_manager.cli.utils import handle_response


def send_input(
    action: str = typer.Argument(
        ...,
        help="back|home|volume_up|volume_down|notification|quick_settings|sleep|wakeup|power",
    ),
    device: str = typer.Option(..., "--device", "-d", help="Device serial or host:port"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Send a button-style input action to a device."""
    client = DaemonClient()
    resp = client.request("POST", "/input", json_body={"device_id": device, "action": action})
    client.close()
    handle_response(resp, json_output=json_output)
