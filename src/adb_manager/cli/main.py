"""CLI entry point using Typer."""

from __future__ import annotations

import typer

from adb_manager.cli.commands import daemon, device, mirror, pair
from adb_manager.cli.commands.input import send_input
from adb_manager.cli.commands.scan import scan

app = typer.Typer(
    name="adb-manager",
    help="Android device discovery, wireless pairing and screen mirroring",
    no_args_is_help=True,
)


@app.command()
def version() -> None:
    """Show version information."""
    from adb_manager import __version__

    typer.echo(f"adb-manager v{__version__}")


app.command("scan")(scan)
app.command("input")(send_input)

app.add_typer(daemon.app, name="daemon")
app.add_typer(device.app, name="device")
app.add_typer(pair.app, name="pair")
app.add_typer(mirror.app, name="mirror")


if __name__ == "__main__":
    app()
