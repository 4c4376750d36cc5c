"""Subnet prober - sweep the local /24 for wireless-debugging endpoints."""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

import psutil
import structlog

from adb_manager.config import DEFAULT_PAIRING_PORT, DEFAULT_SERVICE_PORT
from adb_manager.errors import network_unavailable_error

logger = structlog.get_logger()

ProbeFunc = Callable[[str, int, float], Awaitable[bool]]
InterfaceFunc = Callable[[], list[str]]

HOST_SUFFIXES = range(1, 255)


@dataclass(frozen=True)
class DiscoveredEndpoint:
    """A (host, port) pair that accepted a TCP connection during one scan."""

    ip: str
    port: int

    def to_dict(self) -> dict[str, str | int]:
        return {"ip": self.ip, "port": self.port}


def local_ipv4_addresses() -> list[str]:
    """Return the non-loopback IPv4 addresses of every interface, in interface order."""
    addresses: list[str] = []
    for name, entries in psutil.net_if_addrs().items():
        for entry in entries:
            if entry.family != socket.AF_INET:
                continue
            try:
                ip = ipaddress.IPv4Address(entry.address)
            except ValueError:
                logger.debug("interface_address_invalid", interface=name, address=entry.address)
                continue
            if ip.is_loopback or ip.is_unspecified or entry.address in addresses:
                continue
            addresses.append(entry.address)
    return addresses


def segment_of(address: str) -> str:
    """First three octets of an IPv4 address: 192.168.1.100 -> 192.168.1."""
    return ".".join(address.split(".")[:3])


async def tcp_probe(host: str, port: int, timeout: float) -> bool:
    """Open and immediately close a TCP connection.

    Returns:
        True if the connection was accepted within ``timeout`` seconds
    """
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (TimeoutError, OSError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


class SubnetProber:
    """Probes the pairing and service ports on every host of the local /24."""

    def __init__(
        self,
        *,
        ports: Sequence[int] = (DEFAULT_PAIRING_PORT, DEFAULT_SERVICE_PORT),
        probe_timeout: float = 2.0,
        max_concurrency: int = 512,
        probe: ProbeFunc = tcp_probe,
        interfaces: InterfaceFunc = local_ipv4_addresses,
    ) -> None:
        self.ports = tuple(ports)
        self.probe_timeout = probe_timeout
        self.max_concurrency = max(1, max_concurrency)
        self._probe = probe
        self._interfaces = interfaces

    def local_segment(self) -> str:
        """Derive the /24 prefix from the first non-loopback IPv4 address.

        Raises:
            ManagerError: If no such address exists
        """
        addresses = self._interfaces()
        if not addresses:
            raise network_unavailable_error()
        return segment_of(addresses[0])

    async def scan_network(self) -> list[DiscoveredEndpoint]:
        """Scan the local /24 segment for reachable endpoints."""
        segment = self.local_segment()
        return await self.scan_segment(segment)

    async def scan_segment(self, segment: str) -> list[DiscoveredEndpoint]:
        """Probe every host of ``segment`` (e.g. "192.168.1") on all ports.

        Every probe is awaited; a failed or timed-out probe only means the
        endpoint is absent from the result.
        """
        targets = [(f"{segment}.{suffix}", port) for suffix in HOST_SUFFIXES for port in self.ports]
        logger.info(
            "network_scan_started",
            segment=segment,
            probes=len(targets),
            timeout=self.probe_timeout,
        )
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(host: str, port: int) -> bool:
            async with semaphore:
                return await self._probe(host, port, self.probe_timeout)

        results = await asyncio.gather(
            *(_bounded(host, port) for host, port in targets),
            return_exceptions=True,
        )

        seen: set[str] = set()
        endpoints: list[DiscoveredEndpoint] = []
        for (host, port), result in zip(targets, results, strict=True):
            if result is not True or host in seen:
                continue
            seen.add(host)
            endpoints.append(DiscoveredEndpoint(ip=host, port=port))

        logger.info("network_scan_finished", segment=segment, found=len(endpoints))
        return endpoints
