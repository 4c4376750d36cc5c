"""Device records and tracking events."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

UNKNOWN = "Unknown"

# getprop keys used for enrichment
PROP_MODEL = "ro.product.model"
PROP_MANUFACTURER = "ro.product.manufacturer"
PROP_VERSION = "ro.build.version.release"
ENRICHMENT_PROPS = (PROP_MODEL, PROP_MANUFACTURER, PROP_VERSION)


class ConnectionKind(Enum):
    """How a device is attached."""

    USB = "usb"
    NETWORK = "network"


class EventKind(Enum):
    """Live-set change kinds published by the tracker."""

    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"

    @property
    def event_name(self) -> str:
        """Name used on the event stream, e.g. 'device-added'."""
        return f"device-{self.value}"


def connection_kind(device_id: str) -> ConnectionKind:
    """Network devices are addressed as host:port; anything else is a USB serial."""
    if ":" in device_id or "." in device_id:
        return ConnectionKind.NETWORK
    return ConnectionKind.USB


@dataclass(frozen=True)
class Device:
    """An attached or connected device. Immutable; changes replace the record."""

    id: str
    state: str = "device"
    model: str = UNKNOWN
    manufacturer: str = UNKNOWN
    version: str = UNKNOWN

    @property
    def type(self) -> ConnectionKind:
        return connection_kind(self.id)

    @classmethod
    def from_properties(cls, device_id: str, state: str, props: dict[str, str]) -> Device:
        """Build a record from getprop values, defaulting missing ones to Unknown."""
        return cls(
            id=device_id,
            state=state,
            model=props.get(PROP_MODEL) or UNKNOWN,
            manufacturer=props.get(PROP_MANUFACTURER) or UNKNOWN,
            version=props.get(PROP_VERSION) or UNKNOWN,
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "type": self.type.value,
            "state": self.state,
            "model": self.model,
            "manufacturer": self.manufacturer,
            "version": self.version,
        }


@dataclass(frozen=True)
class DeviceEvent:
    """A single add/remove/change of the live device set."""

    kind: EventKind
    device: Device

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.kind.event_name, "device": self.device.to_dict()}
