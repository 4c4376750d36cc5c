"""Error model - classified, localized errors with remediation hints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from adb_manager.messages import message


@dataclass
class ManagerError(Exception):
    """
    Base error with context and remediation guidance.

    ``message`` is already localized and safe to show to a user. Raw tool
    output stays in the logs; only the generic classes carry it in ``message``.
    """

    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    remediation: str = ""

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "remediation": self.remediation,
        }


# Validation


def invalid_host_error(host: str) -> ManagerError:
    """Create error for a malformed IP address or hostname."""
    return ManagerError(
        code="ERR_INVALID_HOST",
        message=message("invalid_host"),
        context={"host": host},
        remediation="Use a dotted-quad IPv4 address (192.168.1.20) or a hostname.",
    )


def invalid_pairing_code_error() -> ManagerError:
    """Create error for a pairing code that is not exactly 6 digits."""
    return ManagerError(
        code="ERR_INVALID_PAIRING_CODE",
        message=message("invalid_pairing_code"),
        context={},
        remediation="Copy the 6-digit code from Wireless debugging > Pair device with pairing code.",
    )


def invalid_port_error(port: object) -> ManagerError:
    """Create error for an out-of-range port."""
    return ManagerError(
        code="ERR_INVALID_PORT",
        message=message("invalid_port", port=port),
        context={"port": port},
        remediation="Use a port between 1 and 65535.",
    )


def invalid_quality_error(quality: str) -> ManagerError:
    """Create error for an unknown mirroring quality tier."""
    return ManagerError(
        code="ERR_INVALID_QUALITY",
        message=message("invalid_quality", quality=quality),
        context={"quality": quality},
        remediation="Use one of: good, medium, poor.",
    )


def unknown_action_error(action: str) -> ManagerError:
    """Create error for an unsupported input action."""
    return ManagerError(
        code="ERR_UNKNOWN_ACTION",
        message=message("unknown_action", action=action),
        context={"action": action},
        remediation=(
            "Use back, home, volume_up, volume_down, notification, "
            "quick_settings, sleep, wakeup or power."
        ),
    )


# Pairing


def pair_connection_error(host: str, port: int) -> ManagerError:
    """Create error for a pairing endpoint that could not be reached."""
    return ManagerError(
        code="ERR_PAIR_CONNECTION",
        message=message("pair_connection"),
        context={"host": host, "port": port},
        remediation="Re-open 'Pair device with pairing code' and use the address shown there.",
    )


def pair_auth_error(host: str, port: int) -> ManagerError:
    """Create error for a rejected pairing code."""
    return ManagerError(
        code="ERR_PAIR_AUTH",
        message=message("pair_auth"),
        context={"host": host, "port": port},
        remediation="Pairing codes expire quickly; request a new code and retry.",
    )


def pair_timeout_error(host: str, port: int) -> ManagerError:
    """Create error for a pairing attempt that timed out."""
    return ManagerError(
        code="ERR_PAIR_TIMEOUT",
        message=message("pair_timeout"),
        context={"host": host, "port": port},
        remediation="Check the device is awake and on the same network, then retry.",
    )


def pair_failed_error(host: str, port: int, reason: str) -> ManagerError:
    """Create error for an unclassified pairing failure."""
    return ManagerError(
        code="ERR_PAIR_FAILED",
        message=message("pair_failed", reason=reason),
        context={"host": host, "port": port},
        remediation="Retry pairing; run 'adb pair' manually to see the full output.",
    )


# Connect


def connect_refused_error(host: str, port: int) -> ManagerError:
    """Create error for a refused adb connection."""
    return ManagerError(
        code="ERR_CONNECT_REFUSED",
        message=message("connect_refused"),
        context={"host": host, "port": port},
        remediation="Pair the device first, or run 'adb tcpip 5555' over USB.",
    )


def connect_timeout_error(host: str, port: int) -> ManagerError:
    """Create error for an adb connection that timed out."""
    return ManagerError(
        code="ERR_CONNECT_TIMEOUT",
        message=message("connect_timeout"),
        context={"host": host, "port": port},
        remediation="Check the device is reachable on the network and retry.",
    )


def connect_unreachable_error(host: str, port: int) -> ManagerError:
    """Create error for an unreachable device."""
    return ManagerError(
        code="ERR_CONNECT_UNREACHABLE",
        message=message("connect_unreachable"),
        context={"host": host, "port": port},
        remediation="Verify the IP address, e.g. with 'scan', and retry.",
    )


def connect_failed_error(host: str, port: int, reason: str) -> ManagerError:
    """Create error for an unclassified connect failure."""
    return ManagerError(
        code="ERR_CONNECT_FAILED",
        message=message("connect_failed", reason=reason),
        context={"host": host, "port": port},
        remediation="Check adb connection and retry.",
    )


# Network / processes


def network_unavailable_error() -> ManagerError:
    """Create error for a host without a usable IPv4 interface."""
    return ManagerError(
        code="ERR_NETWORK_UNAVAILABLE",
        message=message("network_unavailable"),
        context={},
        remediation="Connect this computer to the same Wi-Fi network as the device.",
    )


def tool_not_found_error(tool: str) -> ManagerError:
    """Create error for a missing external executable."""
    return ManagerError(
        code="ERR_TOOL_NOT_FOUND",
        message=message("tool_not_found", tool=tool),
        context={"tool": tool},
        remediation=f"Install {tool} and ensure it is in PATH.",
    )


def spawn_failed_error(tool: str, reason: str) -> ManagerError:
    """Create error for an executable that could not be started."""
    return ManagerError(
        code="ERR_SPAWN_FAILED",
        message=message("spawn_failed", tool=tool, reason=reason),
        context={"tool": tool, "reason": reason},
        remediation=f"Check that {tool} is executable by the current user.",
    )


def process_failed_error(tool: str, returncode: int | None, reason: str) -> ManagerError:
    """Create error for an external command that exited non-zero."""
    return ManagerError(
        code="ERR_PROCESS_FAILED",
        message=reason,
        context={"tool": tool, "returncode": returncode},
        remediation="Check the command output in the daemon log.",
    )


def command_failed_error(device_id: str, action: str, returncode: int | None) -> ManagerError:
    """Create error for a failed input command."""
    return ManagerError(
        code="ERR_COMMAND_FAILED",
        message=message("command_failed", code=returncode),
        context={"device_id": device_id, "action": action, "returncode": returncode},
        remediation="Check the device is connected and authorized with 'device list'.",
    )


# Mirroring


def mirror_failed_error(device_id: str, returncode: int | None, reason: str) -> ManagerError:
    """Create error for a mirroring process that exited during the grace window."""
    return ManagerError(
        code="ERR_MIRROR_FAILED",
        message=reason,
        context={"device_id": device_id, "returncode": returncode},
        remediation="Check the device is online and authorized, and that scrcpy is up to date.",
    )


def session_active_error(device_id: str, pid: int | None) -> ManagerError:
    """Create error for a second mirroring session on the same device."""
    return ManagerError(
        code="ERR_SESSION_ACTIVE",
        message=message("session_active", device_id=device_id),
        context={"device_id": device_id, "pid": pid},
        remediation="Stop the running session with 'mirror stop' first.",
    )


def invalid_request_error(reason: str, fields: list[str]) -> ManagerError:
    """Create error for a request body that failed schema validation."""
    return ManagerError(
        code="ERR_INVALID_REQUEST",
        message=message("invalid_request", reason=reason),
        context={"fields": fields},
        remediation="Check the request parameters and retry.",
    )


def internal_error(reason: str) -> ManagerError:
    """Create error for an unexpected failure at the daemon boundary."""
    return ManagerError(
        code="ERR_INTERNAL",
        message=message("internal", reason=reason),
        context={},
        remediation="See the daemon log for details.",
    )
