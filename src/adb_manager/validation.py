"""Validation helpers for user input."""

from __future__ import annotations

import re

from adb_manager.errors import (
    invalid_host_error,
    invalid_pairing_code_error,
    invalid_port_error,
)

# Four dot-separated digit groups: judged as IPv4 only, never as a hostname
IPV4_SHAPE = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$", re.ASCII)

# Labels of 1-63 alphanumerics/hyphens, no leading or trailing hyphen
HOSTNAME_PATTERN = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

PAIRING_CODE_PATTERN = re.compile(r"^\d{6}$", re.ASCII)


def is_valid_host(host: str) -> bool:
    """Return True if host is a well-formed IPv4 address or hostname.

    Pure syntactic check, no DNS lookup.
    """
    if not isinstance(host, str):
        return False
    if IPV4_SHAPE.fullmatch(host):
        return all(0 <= int(octet) <= 255 for octet in host.split("."))
    return HOSTNAME_PATTERN.fullmatch(host) is not None


def validate_host(host: str) -> None:
    """Validate an IP address or hostname.

    Raises:
        ManagerError: If the host is malformed
    """
    if not is_valid_host(host):
        raise invalid_host_error(host)


def validate_pairing_code(code: str) -> None:
    """Validate a wireless debugging pairing code (exactly 6 digits).

    Raises:
        ManagerError: If the code is malformed
    """
    if not isinstance(code, str) or not PAIRING_CODE_PATTERN.fullmatch(code):
        raise invalid_pairing_code_error()


def validate_port(port: int) -> None:
    """Validate a TCP port number.

    Raises:
        ManagerError: If the port is outside 1-65535
    """
    if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
        raise invalid_port_error(port)
