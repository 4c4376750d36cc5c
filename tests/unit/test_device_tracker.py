"""Tests for the device tracker."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from typing import Any

import pytest

from adb_manager.device.models import Device, DeviceEvent, EventKind
from adb_manager.device.tracker import DeviceTracker


class ScriptedStream:
    """Tracking stream replaying fixed snapshots, then ending."""

    def __init__(self, snapshots: list[dict[str, str]]) -> None:
        self.snapshots = snapshots
        self.closed = False

    def __iter__(self) -> Iterator[dict[str, str]]:
        yield from self.snapshots

    def close(self) -> None:
        self.closed = True


class TestListDevices:
    """Tests for point-in-time enumeration."""

    @pytest.mark.asyncio
    async def test_enriches_devices(self, fake_adb: Any, sample_device_dict: dict) -> None:
        """Should return enriched records and seed the live set."""
        tracker = DeviceTracker(fake_adb)
        devices = await tracker.list_devices()

        assert [d.to_dict() for d in devices] == [sample_device_dict]
        assert tracker.snapshot() == devices

    @pytest.mark.asyncio
    async def test_enrichment_failure_is_isolated(self, fake_adb: Any) -> None:
        """Should list a device with failing properties as Unknown and keep the others."""
        fake_adb.devices.append(("192.168.1.20:5555", "device"))
        fake_adb.failing_props.add("192.168.1.20:5555")
        tracker = DeviceTracker(fake_adb)

        devices = {d.id: d for d in await tracker.list_devices()}

        assert devices["emulator-5554"].model == "Pixel 7"
        broken = devices["192.168.1.20:5555"]
        assert (broken.model, broken.manufacturer, broken.version) == (
            "Unknown",
            "Unknown",
            "Unknown",
        )
        assert broken.type.value == "network"

    @pytest.mark.asyncio
    async def test_offline_devices_are_not_queried(self, fake_adb: Any) -> None:
        """Should skip getprop for devices that are not online."""
        fake_adb.devices = [("R58M123", "unauthorized")]
        fake_adb.failing_props.add("R58M123")
        tracker = DeviceTracker(fake_adb)

        [device] = await tracker.list_devices()

        assert device == Device(id="R58M123", state="unauthorized")


class TestApplySnapshot:
    """Tests for diffing tracking snapshots against the live set."""

    @pytest.mark.asyncio
    async def test_added_changed_removed(self, fake_adb: Any) -> None:
        """Should derive add, change and remove events in order."""
        tracker = DeviceTracker(fake_adb)

        added = await tracker.apply_snapshot({"emulator-5554": "offline"})
        changed = await tracker.apply_snapshot({"emulator-5554": "device"})
        unchanged = await tracker.apply_snapshot({"emulator-5554": "device"})
        removed = await tracker.apply_snapshot({})

        assert [e.kind for e in added] == [EventKind.ADDED]
        assert [e.kind for e in changed] == [EventKind.CHANGED]
        assert changed[0].device.model == "Pixel 7"
        assert unchanged == []
        assert [e.kind for e in removed] == [EventKind.REMOVED]
        assert tracker.snapshot() == []

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, fake_adb: Any) -> None:
        """Should replace, never duplicate, a device record."""
        tracker = DeviceTracker(fake_adb)
        await tracker.apply_snapshot({"emulator-5554": "device"})
        tracker.apply_event(
            DeviceEvent(EventKind.ADDED, Device(id="emulator-5554", state="offline"))
        )

        assert [d.state for d in tracker.snapshot()] == ["offline"]

    @pytest.mark.asyncio
    async def test_change_keeps_known_properties_when_offline(self, fake_adb: Any) -> None:
        """Should carry model data over when the device goes offline."""
        tracker = DeviceTracker(fake_adb)
        await tracker.apply_snapshot({"emulator-5554": "device"})
        [event] = await tracker.apply_snapshot({"emulator-5554": "offline"})

        assert event.kind is EventKind.CHANGED
        assert event.device.state == "offline"
        assert event.device.model == "Pixel 7"


class TestSubscriptions:
    """Tests for event fan-out."""

    @pytest.mark.asyncio
    async def test_every_subscriber_sees_events_in_order(self, fake_adb: Any) -> None:
        """Should deliver the same ordered events to each subscriber."""
        tracker = DeviceTracker(fake_adb)
        first = tracker.subscribe()
        second = tracker.subscribe()

        await tracker.apply_snapshot({"emulator-5554": "device"})
        await tracker.apply_snapshot({})

        for subscription in (first, second):
            kinds = [(await subscription.get()).kind, (await subscription.get()).kind]
            assert kinds == [EventKind.ADDED, EventKind.REMOVED]

    @pytest.mark.asyncio
    async def test_closed_subscription_stops_iteration(self, fake_adb: Any) -> None:
        """Should end async iteration after close and stop receiving events."""
        tracker = DeviceTracker(fake_adb)
        async with tracker.subscribe() as subscription:
            await tracker.apply_snapshot({"emulator-5554": "device"})
        await tracker.apply_snapshot({})

        received = [event async for event in subscription]

        assert [e.kind for e in received] == [EventKind.ADDED]
        assert subscription.closed

    @pytest.mark.asyncio
    async def test_stop_ends_subscriptions(self, fake_adb: Any) -> None:
        """Should end open subscriptions when the tracker stops."""
        tracker = DeviceTracker(fake_adb)
        subscription = tracker.subscribe()

        await tracker.stop()

        assert await subscription.get() is None


class TestTrackingStream:
    """Tests for the stream reader and publisher."""

    @pytest.mark.asyncio
    async def test_stream_snapshots_are_published(self, fake_adb: Any) -> None:
        """Should publish events for snapshots read on the tracking thread."""
        stream = ScriptedStream([{"emulator-5554": "device"}, {}])
        fake_adb.open_tracking = lambda: stream
        tracker = DeviceTracker(fake_adb)
        subscription = tracker.subscribe()

        await tracker.start()
        try:
            added = await asyncio.wait_for(subscription.get(), timeout=2.0)
            removed = await asyncio.wait_for(subscription.get(), timeout=2.0)
        finally:
            await tracker.stop()

        assert added is not None and added.kind is EventKind.ADDED
        assert added.device.model == "Pixel 7"
        assert removed is not None and removed.kind is EventKind.REMOVED
        assert stream.closed

    @pytest.mark.asyncio
    async def test_restart_reopens_stream(self, fake_adb: Any) -> None:
        """Should reopen an ended stream when restart is enabled."""
        opened: list[ScriptedStream] = []

        def open_tracking() -> ScriptedStream:
            stream = ScriptedStream([{"emulator-5554": "device"}] if not opened else [{}])
            opened.append(stream)
            return stream

        fake_adb.open_tracking = open_tracking
        tracker = DeviceTracker(fake_adb, restart=True, restart_max_delay=0.05)
        subscription = tracker.subscribe()

        await tracker.start()
        try:
            first = await asyncio.wait_for(subscription.get(), timeout=2.0)
            second = await asyncio.wait_for(subscription.get(), timeout=3.0)
        finally:
            await tracker.stop()

        assert first is not None and first.kind is EventKind.ADDED
        assert second is not None and second.kind is EventKind.REMOVED
        assert len(opened) >= 2


class TestConnectDisconnect:
    """Tests for pass-through connect and idempotent disconnect."""

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, fake_adb: Any) -> None:
        """Should return True twice and publish one removal."""
        tracker = DeviceTracker(fake_adb)
        await tracker.apply_snapshot({"192.168.1.20:5555": "device"})
        subscription = tracker.subscribe()

        assert await tracker.disconnect("192.168.1.20") is True
        assert await tracker.disconnect("192.168.1.20") is True

        event = await subscription.get()
        assert event is not None and event.kind is EventKind.REMOVED
        assert subscription._queue.empty()
        assert tracker.get("192.168.1.20:5555") is None
        assert fake_adb.disconnect_calls == [("192.168.1.20", 5555), ("192.168.1.20", 5555)]

    @pytest.mark.asyncio
    async def test_connect_passes_through(self, fake_adb: Any) -> None:
        """Should call the adb server with the default service port."""
        tracker = DeviceTracker(fake_adb)
        reply = await tracker.connect("192.168.1.20")

        assert reply == "connected to 192.168.1.20:5555"
        assert fake_adb.connect_calls == [("192.168.1.20", 5555)]
