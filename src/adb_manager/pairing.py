"""Pairing orchestrator - wireless debugging pairing followed by auto-connect."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from adb_manager.config import DEFAULT_PAIRING_PORT, DEFAULT_SERVICE_PORT
from adb_manager.device.client import AdbCommandError
from adb_manager.errors import (
    ManagerError,
    connect_failed_error,
    connect_refused_error,
    connect_timeout_error,
    connect_unreachable_error,
    pair_auth_error,
    pair_connection_error,
    pair_failed_error,
    pair_timeout_error,
)
from adb_manager.messages import message
from adb_manager.validation import validate_host, validate_pairing_code, validate_port

if TYPE_CHECKING:
    from adb_manager.device.tracker import DeviceTracker
    from adb_manager.process.runner import ProcessRunner

logger = structlog.get_logger()


class PairingStage(Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PAIRING = "pairing"
    CONNECTING = "connecting"
    PAIRED = "paired"


@dataclass
class PairingResult:
    """Outcome reported to the caller; the pairing code is never part of it."""

    success: bool
    message: str

    def to_dict(self) -> dict[str, bool | str]:
        return {"success": self.success, "message": self.message}


def classify_pair_error(text: str, host: str, port: int) -> ManagerError:
    """Map raw `adb pair` / connect output to a pairing error."""
    lowered = text.lower()
    if "failed to connect" in lowered:
        return pair_connection_error(host, port)
    if "authentication" in lowered or "pairing" in lowered:
        return pair_auth_error(host, port)
    if "timeout" in lowered or "timed out" in lowered:
        return pair_timeout_error(host, port)
    return pair_failed_error(host, port, text.strip())


def classify_connect_error(text: str, host: str, port: int) -> ManagerError:
    """Map raw adb connect output to a connect error."""
    lowered = text.lower()
    if "refused" in lowered:
        return connect_refused_error(host, port)
    if "timeout" in lowered or "timed out" in lowered:
        return connect_timeout_error(host, port)
    if "unreachable" in lowered:
        return connect_unreachable_error(host, port)
    return connect_failed_error(host, port, text.strip())


class PairingOrchestrator:
    """Drives one attempt through Validating -> Pairing -> Connecting -> Paired."""

    def __init__(
        self,
        runner: ProcessRunner,
        tracker: DeviceTracker,
        *,
        adb_path: str = "adb",
        service_port: int = DEFAULT_SERVICE_PORT,
        settle_delay: float = 1.0,
        pair_timeout: float | None = 30.0,
    ) -> None:
        self._runner = runner
        self._tracker = tracker
        self._adb_path = adb_path
        self._service_port = service_port
        self._settle_delay = settle_delay
        self._pair_timeout = pair_timeout

    async def pair(
        self, host: str, port: int = DEFAULT_PAIRING_PORT, code: str = ""
    ) -> PairingResult:
        """Pair with a device, then connect to its service port.

        Args:
            host: IPv4 address or hostname shown on the device
            port: Pairing port shown on the device
            code: 6-digit pairing code

        Raises:
            ManagerError: Validation error (nothing spawned) or classified failure
        """
        stage = PairingStage.VALIDATING
        validate_pairing_code(code)
        validate_host(host)
        validate_port(port)

        stage = PairingStage.PAIRING
        logger.info("pair_started", host=host, port=port, stage=stage.value)
        outcome = await self._runner.run(
            self._adb_path, ["pair", f"{host}:{port}", code], timeout=self._pair_timeout
        )
        if not outcome.success:
            logger.warning(
                "pair_failed",
                host=host,
                port=port,
                stage=stage.value,
                returncode=outcome.returncode,
                error=outcome.error,
            )
            raise classify_pair_error(outcome.error, host, port)
        logger.info("pair_succeeded", host=host, port=port, output=outcome.output)

        stage = PairingStage.CONNECTING
        await asyncio.sleep(self._settle_delay)
        try:
            await self._tracker.connect(host, self._service_port)
        except AdbCommandError as exc:
            logger.warning(
                "pair_failed", host=host, port=self._service_port, stage=stage.value, error=str(exc)
            )
            raise classify_pair_error(str(exc), host, self._service_port) from exc

        stage = PairingStage.PAIRED
        logger.info("pair_completed", host=host, stage=stage.value)
        return PairingResult(success=True, message=message("pair_success"))

    async def connect_paired(self, host: str, port: int = DEFAULT_SERVICE_PORT) -> PairingResult:
        """Connect to an already paired device.

        Raises:
            ManagerError: Validation error or classified connect failure
        """
        validate_host(host)
        validate_port(port)
        logger.info("connect_started", host=host, port=port)
        try:
            await self._tracker.connect(host, port)
        except AdbCommandError as exc:
            logger.warning("connect_failed", host=host, port=port, error=str(exc))
            raise classify_connect_error(str(exc), host, port) from exc
        return PairingResult(success=True, message=message("connect_success"))
