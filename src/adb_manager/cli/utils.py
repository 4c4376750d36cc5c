"""Shared CLI helpers and constants."""

from __future__ import annotations

from typing import Any, cast

import typer

from adb_manager.cli.daemon_client import format_json

# Request timeouts for the slow daemon operations (seconds)
PAIR_TIMEOUT = 45.0
SCAN_TIMEOUT = 30.0
MIRROR_TIMEOUT = 15.0


def _parse_response_json(resp: Any) -> dict[str, Any]:
    try:
        return cast(dict[str, Any], resp.json())
    except ValueError as exc:
        typer.echo("Failed to parse response")
        raise typer.Exit(code=1) from exc


def _maybe_render_error(data: dict[str, Any]) -> None:
    if not (isinstance(data, dict) and data.get("error")):
        return
    error = data["error"]
    typer.echo(f"{error.get('code')}: {error.get('message')}")
    remediation = error.get("remediation")
    if remediation:
        typer.echo(f"Hint: {remediation}")
    raise typer.Exit(code=1)


def _maybe_render_done(data: dict[str, Any]) -> bool:
    if not (isinstance(data, dict) and data.get("status") == "done"):
        return False
    line = "✓ Done"
    if data.get("message"):
        line = f"✓ {data['message']}"
    if data.get("device_id"):
        line += f" ({data['device_id']})"
    typer.echo(line)
    return True


def fetch(resp: Any, json_output: bool = False) -> dict[str, Any] | None:
    """Decode a response for a command that renders its own listing.

    Returns None once the JSON output has been printed; errors exit.
    """
    data = _parse_response_json(resp)
    if json_output:
        typer.echo(format_json(data))
        return None
    _maybe_render_error(data)
    return data


def handle_response(resp: Any, json_output: bool = False) -> None:
    data = _parse_response_json(resp)
    if json_output:
        typer.echo(format_json(data))
        if data.get("status") == "error":
            raise typer.Exit(code=1)
        return

    _maybe_render_error(data)
    if _maybe_render_done(data):
        return
    typer.echo(format_json(data))
