"""Session supervisor - scrcpy mirroring sessions, one per device."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog

from adb_manager.errors import (
    invalid_quality_error,
    mirror_failed_error,
    session_active_error,
)
from adb_manager.process.runner import ProcessRunner, SupervisedProcess

logger = structlog.get_logger()

QUALITY_BITRATES = {
    "good": 8_000_000,
    "medium": 4_000_000,
    "poor": 2_000_000,
}
DEFAULT_BITRATE = QUALITY_BITRATES["good"]
WINDOW_TITLE_PREFIX = "ADB Manager - "


@dataclass
class _DeviceLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SessionState(Enum):
    RUNNING = "running"
    EXITED = "exited"


@dataclass
class MirrorSession:
    """A launched mirroring session."""

    device_id: str
    bitrate: int
    pid: int
    started_at: datetime
    state: SessionState = SessionState.RUNNING
    process: SupervisedProcess | None = field(default=None, repr=False, compare=False)

    @property
    def is_alive(self) -> bool:
        return self.process is not None and self.process.is_alive

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "bitrate": self.bitrate,
            "pid": self.pid,
            "started_at": self.started_at.isoformat(),
            "state": self.state.value,
        }


def resolve_bitrate(quality: str | None = None, bitrate: int | None = None) -> int:
    """Quality tier wins over an explicit bitrate; neither means the default."""
    if quality is not None:
        if quality not in QUALITY_BITRATES:
            raise invalid_quality_error(quality)
        return QUALITY_BITRATES[quality]
    if bitrate is not None:
        return bitrate
    return DEFAULT_BITRATE


def build_args(device_id: str, bitrate: int) -> list[str]:
    """scrcpy argument vector (without the executable)."""
    return [
        "-s",
        device_id,
        "--window-title",
        f"{WINDOW_TITLE_PREFIX}{device_id}",
        "--always-on-top",
        "--video-bit-rate",
        str(bitrate),
    ]


class SessionSupervisor:
    """Launches scrcpy and decides success with a grace window."""

    def __init__(
        self,
        runner: ProcessRunner,
        *,
        scrcpy_path: str = "scrcpy",
        grace: float = 2.0,
    ) -> None:
        self._runner = runner
        self._scrcpy_path = scrcpy_path
        self._grace = grace
        self._sessions: dict[str, MirrorSession] = {}
        self._locks: dict[str, _DeviceLock] = {}

    @contextlib.asynccontextmanager
    async def _device_lock(self, device_id: str) -> AsyncIterator[None]:
        """Serialize start/stop per device; the entry lives only while in use."""
        entry = self._locks.setdefault(device_id, _DeviceLock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if not entry.users:
                del self._locks[device_id]

    async def start_session(
        self,
        device_id: str,
        *,
        quality: str | None = None,
        bitrate: int | None = None,
    ) -> MirrorSession:
        """Launch mirroring for a device.

        Returns once scrcpy either outlived the grace window (state running)
        or exited cleanly inside it (state exited).

        Raises:
            ManagerError: Invalid quality, session already running, scrcpy
                missing, or scrcpy exited non-zero inside the grace window
        """
        rate = resolve_bitrate(quality, bitrate)
        async with self._device_lock(device_id):
            existing = self._sessions.get(device_id)
            if existing is not None:
                if existing.is_alive:
                    raise session_active_error(device_id, existing.pid)
                # Exited sessions are replaced
                del self._sessions[device_id]

            logger.info("mirror_starting", device=device_id, bitrate=rate, grace=self._grace)
            process = await self._runner.start_supervised(
                self._scrcpy_path, build_args(device_id, rate), grace=self._grace
            )
            result = await process.wait_started()

            if not result.running:
                outcome = result.outcome
                if outcome is None:
                    raise mirror_failed_error(
                        device_id,
                        process.returncode,
                        f"{self._scrcpy_path} exited before its start was decided",
                    )
                if not outcome.success:
                    logger.warning(
                        "mirror_failed",
                        device=device_id,
                        returncode=outcome.returncode,
                        error=outcome.error,
                    )
                    raise mirror_failed_error(device_id, outcome.returncode, outcome.error)

            session = MirrorSession(
                device_id=device_id,
                bitrate=rate,
                pid=process.pid,
                started_at=datetime.now(timezone.utc),
                state=SessionState.RUNNING if result.running else SessionState.EXITED,
                process=process,
            )
            if result.running:
                self._sessions[device_id] = session
            logger.info(
                "mirror_started", device=device_id, pid=session.pid, state=session.state.value
            )
            return session

    async def stop_session(self, device_id: str) -> bool:
        """Terminate a device's session. Returns False if none was tracked."""
        async with self._device_lock(device_id):
            session = self._sessions.pop(device_id, None)
            if session is None:
                return False
            if session.process is not None:
                await session.process.terminate()
            session.state = SessionState.EXITED
            logger.info("mirror_stopped", device=device_id, pid=session.pid)
            return True

    def list_sessions(self) -> list[MirrorSession]:
        """Live sessions; sessions whose process has exited are pruned."""
        for device_id, session in list(self._sessions.items()):
            if not session.is_alive:
                session.state = SessionState.EXITED
                del self._sessions[device_id]
        return list(self._sessions.values())

    def get_session(self, device_id: str) -> MirrorSession | None:
        session = self._sessions.get(device_id)
        if session is None or not session.is_alive:
            return None
        return session

    async def stop_all(self) -> None:
        """Terminate every session concurrently; used on daemon shutdown."""
        results = await asyncio.gather(
            *(self.stop_session(device_id) for device_id in list(self._sessions)),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.error("mirror_stop_failed", error=str(result))
