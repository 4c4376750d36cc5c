"""Daemon core - owns and wires the device, pairing, scan and mirror services."""

import structlog

from adb_manager.config import Settings
from adb_manager.device.client import AdbClient
from adb_manager.device.input import InputController
from adb_manager.device.tracker import DeviceTracker
from adb_manager.messages import set_locale
from adb_manager.mirror.supervisor import SessionSupervisor
from adb_manager.network.scanner import SubnetProber
from adb_manager.pairing import PairingOrchestrator
from adb_manager.process.runner import ProcessRunner

logger = structlog.get_logger()


class ManagerCore:
    """Central daemon coordinator managing all subsystems."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings.from_env()
        s = self.settings
        self.runner = ProcessRunner(s.extra_search_paths)
        self.adb_client = AdbClient(host=s.adb_server_host, port=s.adb_server_port)
        self.tracker = DeviceTracker(
            self.adb_client,
            restart=s.track_restart,
            restart_max_delay=s.track_restart_max_delay,
        )
        self.prober = SubnetProber(
            ports=(s.pairing_port, s.service_port),
            probe_timeout=s.scan_probe_timeout,
            max_concurrency=s.scan_concurrency,
        )
        self.pairing = PairingOrchestrator(
            self.runner,
            self.tracker,
            adb_path=s.adb_path,
            service_port=s.service_port,
            settle_delay=s.pair_settle_delay,
            pair_timeout=s.pair_timeout,
        )
        self.input = InputController(self.runner, s.adb_path, s.input_timeout)
        self.supervisor = SessionSupervisor(
            self.runner, scrcpy_path=s.scrcpy_path, grace=s.grace_period
        )
        self._running = False

    async def start(self) -> None:
        """Initialize all subsystems."""
        logger.info("manager_core_starting")
        set_locale(self.settings.locale)
        await self.tracker.start()
        self._running = True
        logger.info("manager_core_started")

    async def stop(self) -> None:
        """Gracefully shutdown all subsystems."""
        logger.info("manager_core_stopping")
        self._running = False
        await self.supervisor.stop_all()
        await self.tracker.stop()
        logger.info("manager_core_stopped")

    @property
    def is_running(self) -> bool:
        """Check if daemon is running."""
        return self._running
