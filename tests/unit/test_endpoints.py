"""Tests for daemon endpoints."""

from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any
from unittest.mock import patch

from fastapi.testclient import TestClient

from adb_manager.device.models import Device, DeviceEvent, EventKind
from adb_manager.errors import (
    ManagerError,
    network_unavailable_error,
    pair_auth_error,
    session_active_error,
    unknown_action_error,
)
from adb_manager.mirror.supervisor import MirrorSession
from adb_manager.network.scanner import DiscoveredEndpoint
from adb_manager.pairing import PairingResult

PIXEL = Device(
    id="emulator-5554", model="Pixel 7", manufacturer="Google", version="14", state="device"
)


class DummySubscription:
    def __init__(self, events: list[DeviceEvent]) -> None:
        self._events = list(events)
        self.closed = False

    def __aiter__(self) -> DummySubscription:
        return self

    async def __anext__(self) -> DeviceEvent:
        if not self._events:
            raise StopAsyncIteration
        return self._events.pop(0)

    def close(self) -> None:
        self.closed = True


class DummyTracker:
    def __init__(self) -> None:
        self.devices: list[Device] = [PIXEL]
        self.events: list[DeviceEvent] = []
        self.subscriptions: list[DummySubscription] = []
        self.disconnects: list[tuple[str, int]] = []
        self.list_error: Exception | None = None
        self.is_tracking = True

    async def list_devices(self) -> list[Device]:
        if self.list_error is not None:
            raise self.list_error
        return self.devices

    def snapshot(self) -> list[Device]:
        return list(self.devices)

    async def disconnect(self, host: str, port: int = 5555) -> bool:
        self.disconnects.append((host, port))
        return True

    def subscribe(self) -> DummySubscription:
        subscription = DummySubscription(self.events)
        self.subscriptions.append(subscription)
        return subscription


class DummyPairing:
    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.error: ManagerError | None = None

    async def pair(self, host: str, port: int, code: str) -> PairingResult:
        self.calls.append(("pair", host, port, code))
        if self.error is not None:
            raise self.error
        return PairingResult(success=True, message="Paired and connected")

    async def connect_paired(self, host: str, port: int = 5555) -> PairingResult:
        self.calls.append(("connect", host, port))
        if self.error is not None:
            raise self.error
        return PairingResult(success=True, message="Connected")


class DummyProber:
    def __init__(self) -> None:
        self.error: ManagerError | None = None

    async def scan_network(self) -> list[DiscoveredEndpoint]:
        if self.error is not None:
            raise self.error
        return [DiscoveredEndpoint("10.0.0.5", 5555), DiscoveredEndpoint("10.0.0.7", 38627)]


class DummySupervisor:
    def __init__(self) -> None:
        self.sessions: dict[str, MirrorSession] = {}
        self.starts: list[tuple[str, str | None, int | None]] = []

    async def start_session(
        self, device_id: str, *, quality: str | None = None, bitrate: int | None = None
    ) -> MirrorSession:
        self.starts.append((device_id, quality, bitrate))
        if device_id in self.sessions:
            raise session_active_error(device_id, self.sessions[device_id].pid)
        session = MirrorSession(
            device_id=device_id,
            bitrate=bitrate or 8_000_000,
            pid=4242,
            started_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        self.sessions[device_id] = session
        return session

    async def stop_session(self, device_id: str) -> bool:
        return self.sessions.pop(device_id, None) is not None

    def list_sessions(self) -> list[MirrorSession]:
        return list(self.sessions.values())

    async def stop_all(self) -> None:
        self.sessions.clear()


class DummyInput:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def send_input(self, device_id: str, action: str) -> bool:
        self.calls.append((device_id, action))
        if action not in {"back", "home"}:
            raise unknown_action_error(action)
        return True


class DummyCore:
    last: DummyCore | None = None

    def __init__(self, settings: Any = None) -> None:
        self.settings = settings
        self.tracker = DummyTracker()
        self.pairing = DummyPairing()
        self.prober = DummyProber()
        self.supervisor = DummySupervisor()
        self.input = DummyInput()
        self._running = False
        self.__class__.last = self

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running


@contextmanager
def _client() -> Any:
    from adb_manager.daemon import server

    with patch.object(server, "ManagerCore", DummyCore), TestClient(server.app) as client:
        assert DummyCore.last is not None
        yield client, DummyCore.last


class TestHealthAndDevices:
    """Tests for /health and /devices."""

    def test_health(self) -> None:
        """Should report running state and counts."""
        with _client() as (client, _core):
            resp = client.get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["running"] is True
        assert data["devices"] == 1
        assert data["sessions"] == 0

    def test_list_devices(self, sample_device_dict: dict[str, str]) -> None:
        """Should return device records in wire form."""
        with _client() as (client, _core):
            resp = client.get("/devices")

        assert resp.status_code == 200
        assert resp.json()["devices"] == [sample_device_dict]

    def test_unexpected_error_is_internal(self) -> None:
        """Should hide raw library errors behind ERR_INTERNAL."""
        with _client() as (client, core):
            core.tracker.list_error = ConnectionRefusedError("[Errno 111] 127.0.0.1:5037")
            resp = client.get("/devices")

        assert resp.status_code == 500
        error = resp.json()["error"]
        assert error["code"] == "ERR_INTERNAL"
        assert "5037" not in error["message"]


class TestConnectEndpoints:
    """Tests for connect, disconnect and pairing endpoints."""

    def test_connect_defaults_port(self) -> None:
        """Should connect on 5555 when no port is given."""
        with _client() as (client, core):
            resp = client.post("/devices/connect", json={"host": "192.168.1.20"})

        assert resp.status_code == 200
        assert resp.json()["device_id"] == "192.168.1.20:5555"
        assert core.pairing.calls == [("connect", "192.168.1.20", 5555)]

    def test_disconnect(self) -> None:
        """Should report the target as disconnected."""
        with _client() as (client, core):
            resp = client.post("/devices/disconnect", json={"host": "192.168.1.20"})

        assert resp.status_code == 200
        assert resp.json()["disconnected"] is True
        assert core.tracker.disconnects == [("192.168.1.20", 5555)]

    def test_disconnect_invalid_host(self) -> None:
        """Should reject a malformed host."""
        with _client() as (client, core):
            resp = client.post("/devices/disconnect", json={"host": "bad host"})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "ERR_INVALID_HOST"
        assert core.tracker.disconnects == []

    def test_pair_defaults_port(self) -> None:
        """Should pair on 38627 when no port is given."""
        with _client() as (client, core):
            resp = client.post("/pair", json={"host": "192.168.1.20", "code": "123456"})

        assert resp.status_code == 200
        assert resp.json() == {"status": "done", "success": True, "message": "Paired and connected"}
        assert core.pairing.calls == [("pair", "192.168.1.20", 38627, "123456")]

    def test_pair_failure_shape(self) -> None:
        """Should return classified pairing errors as 502."""
        with _client() as (client, core):
            core.pairing.error = pair_auth_error("192.168.1.20", 38627)
            resp = client.post("/pair", json={"host": "192.168.1.20", "code": "123456"})

        assert resp.status_code == 502
        data = resp.json()
        assert data["status"] == "error"
        assert data["error"]["code"] == "ERR_PAIR_AUTH"
        assert set(data["error"]) == {"code", "message", "context", "remediation"}

    def test_out_of_range_port(self) -> None:
        """Should reject ports outside 1-65535 in the error envelope."""
        with _client() as (client, core):
            resp = client.post("/pair/connect", json={"host": "192.168.1.20", "port": 70000})

        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "ERR_INVALID_REQUEST"
        assert error["context"]["fields"] == ["port"]
        assert core.pairing.calls == []


class TestScanEndpoint:
    """Tests for /network/scan."""

    def test_scan(self) -> None:
        """Should return endpoints and their count."""
        with _client() as (client, _core):
            resp = client.post("/network/scan")

        assert resp.status_code == 200
        data = resp.json()
        assert data["count"] == 2
        assert data["devices"] == [
            {"ip": "10.0.0.5", "port": 5555},
            {"ip": "10.0.0.7", "port": 38627},
        ]

    def test_scan_without_network(self) -> None:
        """Should report a missing network as 503."""
        with _client() as (client, core):
            core.prober.error = network_unavailable_error()
            resp = client.post("/network/scan")

        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "ERR_NETWORK_UNAVAILABLE"


class TestMirrorEndpoints:
    """Tests for /mirror routes."""

    def test_start_list_stop(self) -> None:
        """Should start, list and stop a session."""
        with _client() as (client, core):
            started = client.post(
                "/mirror/start", json={"device_id": "emulator-5554", "quality": "poor"}
            )
            listed = client.get("/mirror")
            stopped = client.post("/mirror/stop", json={"device_id": "emulator-5554"})

        assert started.status_code == 200
        assert started.json()["session"]["pid"] == 4242
        assert core.supervisor.starts == [("emulator-5554", "poor", None)]
        assert [s["device_id"] for s in listed.json()["sessions"]] == ["emulator-5554"]
        assert stopped.json()["stopped"] is True

    def test_second_start_conflicts(self) -> None:
        """Should return 409 for a device that is already mirrored."""
        with _client() as (client, _core):
            client.post("/mirror/start", json={"device_id": "emulator-5554"})
            resp = client.post("/mirror/start", json={"device_id": "emulator-5554"})

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "ERR_SESSION_ACTIVE"


class TestInputEndpoint:
    """Tests for /input."""

    def test_send_input(self) -> None:
        """Should forward the action."""
        with _client() as (client, core):
            resp = client.post("/input", json={"device_id": "emulator-5554", "action": "back"})

        assert resp.status_code == 200
        assert core.input.calls == [("emulator-5554", "back")]

    def test_unknown_action(self) -> None:
        """Should return 400 for unknown actions."""
        with _client() as (client, _core):
            resp = client.post("/input", json={"device_id": "emulator-5554", "action": "jump"})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "ERR_UNKNOWN_ACTION"


class TestEventsEndpoint:
    """Tests for the NDJSON event stream."""

    def test_streams_events_and_closes_subscription(self) -> None:
        """Should emit one JSON object per event and release the subscription."""
        with _client() as (client, core):
            core.tracker.events = [
                DeviceEvent(EventKind.CHANGED, PIXEL),
                DeviceEvent(EventKind.REMOVED, PIXEL),
            ]
            resp = client.get("/events")
            lines = [json.loads(line) for line in resp.text.splitlines() if line]

        assert resp.headers["content-type"].startswith("application/x-ndjson")
        assert [line["event"] for line in lines] == ["device-changed", "device-removed"]
        assert lines[0]["device"]["id"] == "emulator-5554"
        assert core.tracker.subscriptions[0].closed

    def test_snapshot_first(self) -> None:
        """Should send current devices as added events when asked."""
        with _client() as (client, _core):
            resp = client.get("/events", params={"snapshot": "true"})
            lines = [json.loads(line) for line in resp.text.splitlines() if line]

        assert lines == [{"event": "device-added", "device": PIXEL.to_dict()}]
