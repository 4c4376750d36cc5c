"""ADB client facade - async wrapper over adbutils for one adb server."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING

import structlog

from adb_manager.device.models import ENRICHMENT_PROPS

if TYPE_CHECKING:
    from adbutils import AdbClient as AdbUtilsClient
    from adbutils._adb import AdbConnection

logger = structlog.get_logger()

# adb answers these when `host:connect` did not succeed
_CONNECT_FAILURE_MARKERS = ("failed", "unable", "cannot", "refused", "timed out", "timeout")


class AdbCommandError(RuntimeError):
    """The adb server rejected a request; ``str(exc)`` is the raw server text."""


def parse_device_block(block: str) -> dict[str, str]:
    """Parse a host:devices / host:track-devices payload into {serial: state}."""
    devices: dict[str, str] = {}
    for line in block.splitlines():
        line = line.strip()
        if not line:
            continue
        parts = line.split("\t")
        if len(parts) < 2:
            parts = line.split()
        if len(parts) < 2:
            continue
        devices[parts[0]] = parts[1]
    return devices


class TrackingStream:
    """Blocking iterator over device-list snapshots from `host:track-devices`.

    Each item is the complete {serial: state} map at that moment. ``close()``
    may be called from another thread to unblock a pending read.
    """

    def __init__(self, connection: AdbConnection) -> None:
        self._connection = connection

    def __iter__(self) -> Iterator[dict[str, str]]:
        while True:
            block = self._connection.read_string_block()
            yield parse_device_block(block)

    def close(self) -> None:
        with contextlib.suppress(Exception):
            self._connection.close()


class AdbClient:
    """Owns the connection settings for one adb server.

    Blocking adbutils calls run in worker threads so the event loop stays free.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 5037,
        socket_timeout: float = 10.0,
        connect_timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.socket_timeout = socket_timeout
        self.connect_timeout = connect_timeout
        self._adb: AdbUtilsClient | None = None

    def _client(self) -> AdbUtilsClient:
        if self._adb is None:
            from adbutils import AdbClient as AdbUtilsClient

            self._adb = AdbUtilsClient(
                host=self.host, port=self.port, socket_timeout=self.socket_timeout
            )
        return self._adb

    async def list_devices(self) -> list[tuple[str, str]]:
        """Return (serial, state) for every device the server knows."""

        def _list() -> list[tuple[str, str]]:
            return [(info.serial, info.state) for info in self._client().list()]

        return await asyncio.to_thread(_list)

    async def get_properties(
        self, serial: str, names: Sequence[str] = ENRICHMENT_PROPS
    ) -> dict[str, str]:
        """Read system properties from a device."""

        def _props() -> dict[str, str]:
            device = self._client().device(serial)
            return {name: str(device.prop.get(name) or "").strip() for name in names}

        return await asyncio.to_thread(_props)

    async def connect(self, host: str, port: int) -> str:
        """Ask the adb server to connect to host:port.

        Returns:
            Server reply, e.g. "connected to 192.168.1.20:5555"

        Raises:
            AdbCommandError: With the raw server text if the connect failed
        """
        from adbutils.errors import AdbError, AdbTimeout

        addr = f"{host}:{port}"

        def _connect() -> str:
            return str(self._client().connect(addr, timeout=self.connect_timeout))

        try:
            reply = await asyncio.to_thread(_connect)
        except AdbTimeout as exc:
            raise AdbCommandError(f"timeout connecting to {addr}: {exc}") from exc
        except AdbError as exc:
            raise AdbCommandError(str(exc)) from exc
        except OSError as exc:
            raise AdbCommandError(f"failed to connect to adb server: {exc}") from exc

        lowered = reply.lower()
        if "connected to" not in lowered or any(m in lowered for m in _CONNECT_FAILURE_MARKERS):
            raise AdbCommandError(reply.strip() or f"failed to connect to {addr}")
        logger.info("adb_connected", addr=addr, reply=reply.strip())
        return reply.strip()

    async def disconnect(self, host: str, port: int) -> str:
        """Ask the adb server to drop host:port. Never fails for unknown targets."""
        addr = f"{host}:{port}"

        def _disconnect() -> str:
            return str(self._client().disconnect(addr, raise_error=False))

        reply = await asyncio.to_thread(_disconnect)
        logger.info("adb_disconnected", addr=addr, reply=reply.strip())
        return reply.strip()

    def open_tracking(self) -> TrackingStream:
        """Open a `host:track-devices` stream. Blocking; call from a worker thread."""
        from adbutils import AdbClient as AdbUtilsClient

        # No socket timeout: the stream stays silent until something changes
        client = AdbUtilsClient(host=self.host, port=self.port, socket_timeout=None)
        connection = client.make_connection()
        connection.send_command("host:track-devices")
        connection.check_okay()
        return TrackingStream(connection)
