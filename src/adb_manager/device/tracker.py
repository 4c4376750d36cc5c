"""Device tracker - live device set, enrichment and event fan-out."""

from __future__ import annotations

import asyncio
import contextlib
import threading
from typing import TYPE_CHECKING

import structlog

from adb_manager.config import DEFAULT_SERVICE_PORT
from adb_manager.device.models import Device, DeviceEvent, EventKind

if TYPE_CHECKING:
    from types import TracebackType

    from adb_manager.device.client import AdbClient, TrackingStream

logger = structlog.get_logger()

_CLOSED = object()


class Subscription:
    """One subscriber's ordered queue of device events.

    Iterate with ``async for``; iteration ends when the subscription is closed
    or the tracker stops. Always close it (or use ``async with``) on teardown.
    """

    def __init__(self, tracker: DeviceTracker) -> None:
        self._tracker = tracker
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, event: DeviceEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def _end(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def close(self) -> None:
        """Unregister from the tracker and end iteration."""
        self._tracker.unsubscribe(self)

    async def get(self) -> DeviceEvent | None:
        """Next event, or None once the subscription has ended."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep returning None for repeated calls
            self._queue.put_nowait(_CLOSED)
            return None
        assert isinstance(item, DeviceEvent)
        return item

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> DeviceEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class DeviceTracker:
    """Owns the live device set and the single tracking stream.

    The stream is read on one daemon thread; snapshots are handed to the event
    loop where a single publisher task diffs them against the live set, applies
    the resulting events in arrival order and fans them out to subscribers.
    """

    def __init__(
        self,
        client: AdbClient,
        *,
        restart: bool = False,
        restart_max_delay: float = 30.0,
    ) -> None:
        self._client = client
        self._restart = restart
        self._restart_max_delay = restart_max_delay
        self._devices: dict[str, Device] = {}
        self._subscribers: list[Subscription] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._snapshots: asyncio.Queue[dict[str, str]] | None = None
        self._publisher_task: asyncio.Task[None] | None = None
        self._reader: threading.Thread | None = None
        self._stop = threading.Event()
        self._stream_lock = threading.Lock()
        self._stream: TrackingStream | None = None

    @property
    def is_tracking(self) -> bool:
        return self._publisher_task is not None and not self._publisher_task.done()

    async def start(self) -> None:
        """Open the tracking stream. Calling start twice is a no-op."""
        if self.is_tracking:
            return
        logger.info("device_tracker_starting", restart=self._restart)
        self._loop = asyncio.get_running_loop()
        self._snapshots = asyncio.Queue()
        self._stop.clear()
        self._publisher_task = asyncio.create_task(self._publish_loop())
        self._reader = threading.Thread(
            target=self._read_stream, name="adb-track-devices", daemon=True
        )
        self._reader.start()
        logger.info("device_tracker_started")

    async def stop(self) -> None:
        """Close the stream, stop publishing and end every subscription."""
        logger.info("device_tracker_stopping")
        self._stop.set()
        with self._stream_lock:
            stream = self._stream
        if stream is not None:
            stream.close()
        if self._publisher_task:
            self._publisher_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._publisher_task
            self._publisher_task = None
        for subscription in list(self._subscribers):
            subscription._end()
        self._subscribers.clear()
        logger.info("device_tracker_stopped")

    # Subscribers

    def subscribe(self) -> Subscription:
        """Register a new subscriber; events arrive in live-set order."""
        subscription = Subscription(self)
        self._subscribers.append(subscription)
        logger.debug("device_subscriber_added", subscribers=len(self._subscribers))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
            logger.debug("device_subscriber_removed", subscribers=len(self._subscribers))
        subscription._end()

    # Live set

    def snapshot(self) -> list[Device]:
        """Copy of the live set."""
        return list(self._devices.values())

    def get(self, device_id: str) -> Device | None:
        return self._devices.get(device_id)

    def apply_event(self, event: DeviceEvent) -> None:
        """Apply one event to the live set and publish it.

        Added and changed both replace the record stored under the device id.
        """
        device = event.device
        if event.kind is EventKind.REMOVED:
            self._devices.pop(device.id, None)
        else:
            self._devices[device.id] = device
        logger.info("device_event", kind=event.kind.value, device=device.id, state=device.state)
        for subscription in list(self._subscribers):
            subscription._push(event)

    async def apply_snapshot(self, states: dict[str, str]) -> list[DeviceEvent]:
        """Diff a {serial: state} snapshot against the live set and apply the events."""
        events: list[DeviceEvent] = []
        for device_id in [d for d in self._devices if d not in states]:
            events.append(DeviceEvent(EventKind.REMOVED, self._devices[device_id]))

        for device_id, state in states.items():
            current = self._devices.get(device_id)
            if current is None:
                events.append(DeviceEvent(EventKind.ADDED, await self._build(device_id, state)))
            elif current.state != state:
                events.append(
                    DeviceEvent(EventKind.CHANGED, await self._build(device_id, state, current))
                )

        for event in events:
            self.apply_event(event)
        return events

    # Point-in-time operations

    async def list_devices(self) -> list[Device]:
        """Enumerate devices now, enriching each one independently.

        A device whose properties cannot be read is still listed, with Unknown
        fields. While tracking runs the stream owns the live set; otherwise the
        listing seeds it.
        """
        raw = await self._client.list_devices()
        devices = list(
            await asyncio.gather(*(self._build(serial, state) for serial, state in raw))
        )
        if not self.is_tracking:
            self._devices = {device.id: device for device in devices}
        return devices

    async def connect(self, host: str, port: int = DEFAULT_SERVICE_PORT) -> str:
        """Pass-through connect; the stream reports the device once adb sees it."""
        return await self._client.connect(host, port)

    async def disconnect(self, host: str, port: int = DEFAULT_SERVICE_PORT) -> bool:
        """Disconnect host:port. Idempotent: unknown targets still return True."""
        await self._client.disconnect(host, port)
        device = self._devices.get(f"{host}:{port}")
        if device is not None:
            self.apply_event(DeviceEvent(EventKind.REMOVED, device))
        return True

    # Internals

    async def _build(self, device_id: str, state: str, previous: Device | None = None) -> Device:
        if state != "device":
            # Offline/unauthorized devices cannot answer getprop
            return _carry_over(device_id, state, previous)
        try:
            props = await self._client.get_properties(device_id)
        except Exception as exc:
            logger.warning("device_properties_failed", device=device_id, error=str(exc))
            return _carry_over(device_id, state, previous)
        return Device.from_properties(device_id, state, props)

    async def _publish_loop(self) -> None:
        assert self._snapshots is not None
        while True:
            states = await self._snapshots.get()
            try:
                await self.apply_snapshot(states)
            except Exception:
                logger.exception("device_snapshot_error")

    def _post(self, states: dict[str, str]) -> None:
        loop, queue = self._loop, self._snapshots
        if loop is None or queue is None:
            return
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(queue.put_nowait, states)

    def _read_stream(self) -> None:
        """Reader thread: forward snapshots until the stream ends or stop()."""
        delay = 1.0
        while not self._stop.is_set():
            try:
                stream = self._client.open_tracking()
                with self._stream_lock:
                    self._stream = stream
                for states in stream:
                    if self._stop.is_set():
                        break
                    self._post(states)
                    delay = 1.0
                else:
                    logger.info("device_tracking_stopped", reason="end_of_stream")
            except Exception as exc:
                if self._stop.is_set():
                    break
                logger.warning("device_tracking_stopped", reason=str(exc))
            finally:
                with self._stream_lock:
                    stream, self._stream = self._stream, None
                if stream is not None:
                    stream.close()

            if self._stop.is_set() or not self._restart:
                break
            logger.info("device_tracking_restarting", delay=delay)
            if self._stop.wait(delay):
                break
            delay = min(delay * 2, self._restart_max_delay)


def _carry_over(device_id: str, state: str, previous: Device | None) -> Device:
    """Record for a device whose properties are unavailable right now."""
    if previous is None:
        return Device(id=device_id, state=state)
    return Device(
        id=device_id,
        state=state,
        model=previous.model,
        manufacturer=previous.manufacturer,
        version=previous.version,
    )
