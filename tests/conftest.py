"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Generator, Sequence
from typing import Any

import pytest

from adb_manager.device.client import AdbCommandError
from adb_manager.process.runner import ProcessOutcome


class FakeRunner:
    """ProcessRunner stand-in that records argv and replays scripted outcomes."""

    def __init__(self, outcomes: Sequence[ProcessOutcome] = ()) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[tuple[str, list[str], float | None]] = []
        self.supervised: list[Any] = []
        self.supervised_calls: list[tuple[str, list[str], float]] = []

    async def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        extra_env: Any = None,
        timeout: float | None = None,
    ) -> ProcessOutcome:
        self.calls.append((command, list(args), timeout))
        if self.outcomes:
            return self.outcomes.pop(0)
        return ProcessOutcome(command=command, args=list(args), returncode=0)

    async def start_supervised(
        self, command: str, args: Sequence[str], *, grace: float, extra_env: Any = None
    ) -> Any:
        self.supervised_calls.append((command, list(args), grace))
        return self.supervised.pop(0)


class FakeAdbClient:
    """AdbClient stand-in backed by plain dictionaries."""

    def __init__(
        self,
        devices: list[tuple[str, str]] | None = None,
        props: dict[str, dict[str, str]] | None = None,
    ) -> None:
        self.devices = devices or []
        self.props = props or {}
        self.failing_props: set[str] = set()
        self.connect_error: str | None = None
        self.connect_calls: list[tuple[str, int]] = []
        self.disconnect_calls: list[tuple[str, int]] = []

    async def list_devices(self) -> list[tuple[str, str]]:
        return list(self.devices)

    async def get_properties(self, serial: str, names: Any = None) -> dict[str, str]:
        if serial in self.failing_props:
            raise AdbCommandError(f"device '{serial}' not found")
        return dict(self.props.get(serial, {}))

    async def connect(self, host: str, port: int) -> str:
        self.connect_calls.append((host, port))
        if self.connect_error is not None:
            raise AdbCommandError(self.connect_error)
        return f"connected to {host}:{port}"

    async def disconnect(self, host: str, port: int) -> str:
        self.disconnect_calls.append((host, port))
        return f"disconnected {host}:{port}"


def _outcome(
    returncode: int | None = 0, stdout: str = "", stderr: str = "", timed_out: bool = False
) -> ProcessOutcome:
    return ProcessOutcome(
        command="adb",
        args=[],
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
        timeout=30.0 if timed_out else None,
    )


@pytest.fixture(autouse=True)
def english_messages() -> Generator[None, None, None]:
    """Run every test with the English catalog."""
    from adb_manager.messages import set_locale

    set_locale("en")
    yield
    set_locale("en")


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_adb() -> FakeAdbClient:
    return FakeAdbClient(
        devices=[("emulator-5554", "device")],
        props={
            "emulator-5554": {
                "ro.product.model": "Pixel 7",
                "ro.product.manufacturer": "Google",
                "ro.build.version.release": "14",
            }
        },
    )


@pytest.fixture
def sample_device_dict() -> dict[str, str]:
    """Wire form of the fake_adb device."""
    return {
        "id": "emulator-5554",
        "type": "usb",
        "state": "device",
        "model": "Pixel 7",
        "manufacturer": "Google",
        "version": "14",
    }


@pytest.fixture
def make_outcome() -> Any:
    """Factory for ProcessOutcome values of the adb executable."""
    return _outcome
