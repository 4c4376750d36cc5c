"""Daemon control and HTTP client for CLI commands."""

from __future__ import annotations

import json
import os
import signal
import subprocess
import sys
import time
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from adb_manager.config import ENV_PREFIX, SOCKET_PATH, STATE_DIR

BASE_URL = "http://adb-manager"
APP_PATH = "adb_manager.daemon.server:app"

STARTUP_TIMEOUT = 5.0
SHUTDOWN_TIMEOUT = 15.0
POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class DaemonPaths:
    """Filesystem locations shared by the CLI and the daemon it spawns."""

    socket: Path
    pid_file: Path
    log_file: Path

    @classmethod
    def from_env(cls) -> DaemonPaths:
        state_dir = Path(os.environ.get(f"{ENV_PREFIX}STATE_DIR", str(STATE_DIR))).expanduser()
        socket = Path(os.environ.get(f"{ENV_PREFIX}SOCKET", str(SOCKET_PATH)))
        return cls(
            socket=socket,
            pid_file=state_dir / "daemon.pid",
            log_file=state_dir / "daemon.log",
        )


def _uds_client(socket: Path, timeout: float | None) -> httpx.Client:
    return httpx.Client(
        transport=httpx.HTTPTransport(uds=str(socket)),
        base_url=BASE_URL,
        timeout=timeout,
    )


def _responds(client: httpx.Client) -> bool:
    try:
        return client.get("/health").status_code == 200
    except httpx.TransportError:
        return False


def _alive(pid: int | None) -> bool:
    if not pid:
        return False
    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True


class DaemonController:
    """Spawns, signals and inspects the uvicorn daemon process."""

    def __init__(self, paths: DaemonPaths | None = None) -> None:
        self.paths = paths or DaemonPaths.from_env()

    def _pid(self) -> int | None:
        try:
            return int(self.paths.pid_file.read_text().strip())
        except (OSError, ValueError):
            return None

    def _forget(self) -> None:
        self.paths.pid_file.unlink(missing_ok=True)

    def health(self) -> bool:
        """Return True if something answers /health on the socket."""
        if not self.paths.socket.exists():
            return False
        with _uds_client(self.paths.socket, timeout=1.0) as client:
            return _responds(client)

    def start(self) -> int | None:
        """Spawn the daemon unless one is already up.

        Returns:
            PID of the running or spawned daemon, None when a daemon answers
            on the socket but was not started by this state dir.
        """
        pid = self._pid()
        if _alive(pid):
            return pid
        self._forget()
        if self.health():
            return None
        # uvicorn refuses to bind over a socket left by a killed daemon
        self.paths.socket.unlink(missing_ok=True)

        self.paths.log_file.parent.mkdir(parents=True, exist_ok=True)
        argv = [sys.executable, "-m", "uvicorn", APP_PATH, "--uds", str(self.paths.socket)]
        with self.paths.log_file.open("a", encoding="utf-8") as log:
            proc = subprocess.Popen(argv, stdout=log, stderr=log, start_new_session=True)
        self.paths.pid_file.write_text(str(proc.pid))
        return proc.pid

    def stop(self) -> bool:
        """SIGTERM the daemon and wait for it to finish its shutdown.

        Shutdown terminates mirroring sessions, so the wait is generous.
        """
        pid = self._pid()
        if not _alive(pid):
            self._forget()
            return False
        assert pid is not None
        os.kill(pid, signal.SIGTERM)
        deadline = time.monotonic() + SHUTDOWN_TIMEOUT
        while time.monotonic() < deadline:
            if not _alive(pid):
                self._forget()
                return True
            time.sleep(POLL_INTERVAL)
        return False

    def status(self) -> dict[str, Any]:
        pid = self._pid()
        return {
            "pid": pid,
            "pid_running": _alive(pid),
            "socket": str(self.paths.socket),
            "socket_exists": self.paths.socket.exists(),
            "log_file": str(self.paths.log_file),
        }


class DaemonClient:
    """HTTP-over-UDS client that brings the daemon up on first use."""

    def __init__(
        self,
        paths: DaemonPaths | None = None,
        *,
        auto_start: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.controller = DaemonController(paths)
        self.auto_start = auto_start
        self._client = _uds_client(self.controller.paths.socket, timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def request(
        self, method: str, path: str, json_body: dict[str, Any] | None = None
    ) -> httpx.Response:
        self._ensure_daemon()
        return self._client.request(method, path, json=json_body)

    def stream_lines(self, path: str, params: dict[str, Any] | None = None) -> Iterator[Any]:
        """Yield decoded NDJSON objects until the daemon closes the stream."""
        self._ensure_daemon()
        with self._client.stream("GET", path, params=params, timeout=None) as resp:
            for line in resp.iter_lines():
                if line.strip():
                    yield json.loads(line)

    def _ensure_daemon(self) -> None:
        if not self.auto_start or _responds(self._client):
            return
        self.controller.start()
        deadline = time.monotonic() + STARTUP_TIMEOUT
        while time.monotonic() < deadline:
            if _responds(self._client):
                return
            time.sleep(POLL_INTERVAL)
        raise RuntimeError(
            f"Daemon did not become healthy in time (see {self.controller.paths.log_file})"
        )


def format_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)
