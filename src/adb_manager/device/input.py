"""Input controller - physical-button style commands sent through adb shell."""

from __future__ import annotations

from enum import Enum

import structlog

from adb_manager.errors import command_failed_error, unknown_action_error
from adb_manager.process.runner import ProcessRunner

logger = structlog.get_logger()


class InputAction(Enum):
    """Supported input actions."""

    BACK = "back"
    HOME = "home"
    VOLUME_UP = "volume_up"
    VOLUME_DOWN = "volume_down"
    NOTIFICATION = "notification"
    QUICK_SETTINGS = "quick_settings"
    SLEEP = "sleep"
    WAKEUP = "wakeup"
    POWER = "power"


SHELL_COMMANDS: dict[InputAction, tuple[str, ...]] = {
    InputAction.BACK: ("input", "keyevent", "KEYCODE_BACK"),
    InputAction.HOME: ("input", "keyevent", "KEYCODE_HOME"),
    InputAction.VOLUME_UP: ("input", "keyevent", "KEYCODE_VOLUME_UP"),
    InputAction.VOLUME_DOWN: ("input", "keyevent", "KEYCODE_VOLUME_DOWN"),
    InputAction.NOTIFICATION: ("cmd", "statusbar", "expand-notifications"),
    InputAction.QUICK_SETTINGS: ("cmd", "statusbar", "expand-settings"),
    InputAction.SLEEP: ("input", "keyevent", "KEYCODE_SLEEP"),
    InputAction.WAKEUP: ("input", "keyevent", "KEYCODE_WAKEUP"),
    InputAction.POWER: ("input", "keyevent", "KEYCODE_POWER"),
}


def parse_action(action: str) -> InputAction:
    """Resolve an action name.

    Raises:
        ManagerError: If the action is not supported
    """
    try:
        return InputAction(action)
    except ValueError:
        raise unknown_action_error(action) from None


def build_command(device_id: str, action: InputAction) -> list[str]:
    """adb argument vector (without the executable) for an action."""
    return ["-s", device_id, "shell", *SHELL_COMMANDS[action]]


class InputController:
    """Sends input actions to a device via the adb executable."""

    def __init__(self, runner: ProcessRunner, adb_path: str = "adb", timeout: float = 10.0) -> None:
        self._runner = runner
        self._adb_path = adb_path
        self._timeout = timeout

    async def send_input(self, device_id: str, action: str) -> bool:
        """Send one action to a device.

        Args:
            device_id: Device serial or host:port
            action: One of the InputAction values

        Returns:
            True on success

        Raises:
            ManagerError: Unknown action, missing adb, or non-zero exit
        """
        resolved = parse_action(action)
        outcome = await self._runner.run(
            self._adb_path, build_command(device_id, resolved), timeout=self._timeout
        )
        if not outcome.success:
            logger.warning(
                "input_failed",
                device=device_id,
                action=resolved.value,
                returncode=outcome.returncode,
                error=outcome.error,
            )
            raise command_failed_error(device_id, resolved.value, outcome.returncode)
        logger.info("input_sent", device=device_id, action=resolved.value)
        return True
