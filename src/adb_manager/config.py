"""Settings - environment driven configuration for the daemon and CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "ADB_MANAGER_"

STATE_DIR = Path.home() / ".adb-manager"
SOCKET_PATH = Path("/tmp/adb-manager.sock")

DEFAULT_PAIRING_PORT = 38627
DEFAULT_SERVICE_PORT = 5555
DEFAULT_SEARCH_PATHS = ("/opt/homebrew/bin", "/usr/local/bin")


def _env(name: str, default: str) -> str:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(f"{ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(f"{ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(f"{ENV_PREFIX}{name}")
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Runtime settings.

    Every field can be overridden with an ``ADB_MANAGER_<FIELD>`` environment
    variable, e.g. ``ADB_MANAGER_GRACE_PERIOD=1.5``.
    """

    adb_path: str = "adb"
    scrcpy_path: str = "scrcpy"
    extra_search_paths: tuple[str, ...] = DEFAULT_SEARCH_PATHS
    adb_server_host: str = "127.0.0.1"
    adb_server_port: int = 5037

    pairing_port: int = DEFAULT_PAIRING_PORT
    service_port: int = DEFAULT_SERVICE_PORT
    pair_settle_delay: float = 1.0
    pair_timeout: float = 30.0
    input_timeout: float = 10.0

    scan_probe_timeout: float = 2.0
    scan_concurrency: int = 512

    grace_period: float = 2.0

    track_restart: bool = False
    track_restart_max_delay: float = 30.0

    locale: str = "en"
    log_level: str = "info"
    log_json: bool = False

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the process environment."""
        search_raw = os.environ.get(f"{ENV_PREFIX}EXTRA_SEARCH_PATHS")
        search_paths = (
            tuple(p for p in search_raw.split(os.pathsep) if p)
            if search_raw is not None
            else DEFAULT_SEARCH_PATHS
        )
        return cls(
            adb_path=_env("ADB_PATH", "adb"),
            scrcpy_path=_env("SCRCPY_PATH", "scrcpy"),
            extra_search_paths=search_paths,
            adb_server_host=_env("ADB_SERVER_HOST", "127.0.0.1"),
            adb_server_port=_env_int("ADB_SERVER_PORT", 5037),
            pairing_port=_env_int("PAIRING_PORT", DEFAULT_PAIRING_PORT),
            service_port=_env_int("SERVICE_PORT", DEFAULT_SERVICE_PORT),
            pair_settle_delay=_env_float("PAIR_SETTLE_DELAY", 1.0),
            pair_timeout=_env_float("PAIR_TIMEOUT", 30.0),
            input_timeout=_env_float("INPUT_TIMEOUT", 10.0),
            scan_probe_timeout=_env_float("SCAN_TIMEOUT", 2.0),
            scan_concurrency=_env_int("SCAN_CONCURRENCY", 512),
            grace_period=_env_float("GRACE_PERIOD", 2.0),
            track_restart=_env_bool("TRACK_RESTART", False),
            track_restart_max_delay=_env_float("TRACK_RESTART_MAX_DELAY", 30.0),
            locale=_env("LOCALE", "en"),
            log_level=_env("LOG_LEVEL", "info"),
            log_json=_env_bool("LOG_JSON", False),
        )
