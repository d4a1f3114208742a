"""Network interface counters read from ``/sys/class/net``."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Union

SYSFS_NET = "/sys/class/net"

# The counters are small decimal numbers; this many bytes is always enough.
_READ_SIZE = 30

_COUNTER_FILES = (
    "rx_bytes",
    "tx_bytes",
    "rx_packets",
    "tx_packets",
    "rx_errors",
    "tx_errors",
)


def _sat_sub(a: int, b: int) -> int:
    return a - b if a > b else 0


@dataclass(frozen=True)
class Counters:
    """Cumulative counters of one interface."""

    rx_bytes: int = 0
    tx_bytes: int = 0
    rx_packets: int = 0
    tx_packets: int = 0
    rx_errors: int = 0
    tx_errors: int = 0


def read_counter(path: Union[str, Path]) -> int:
    """Return the number at the start of the file at *path*, or 0 if there is none."""
    try:
        with open(path, "rb") as handle:
            raw = handle.read(_READ_SIZE)
    except OSError:
        return 0
    value = 0
    for byte in raw:
        if not 0x30 <= byte <= 0x39:
            break
        value = value * 10 + (byte - 0x30)
    return value


def read_counters(folder: Union[str, Path]) -> Counters:
    """Read the counters of the interface directory *folder* (its ``statistics`` files)."""
    statistics = Path(folder) / "statistics"
    return Counters(**{name: read_counter(statistics / name) for name in _COUNTER_FILES})


@dataclass
class NetworkData:
    """Counters of one interface, with the values seen at the previous refresh."""

    totals: Counters = field(default_factory=Counters)
    previous: Counters = field(default_factory=Counters)
    updated: bool = True

    @classmethod
    def fresh(cls, counters: Counters) -> "NetworkData":
        """Create data for a newly seen interface; its deltas start at zero."""
        return cls(totals=counters, previous=counters)

    def update(self, counters: Counters) -> None:
        """Store new counters, keeping the current ones as the previous values."""
        self.previous = self.totals
        self.totals = counters

    def received(self) -> int:
        """Bytes received since the previous refresh."""
        return _sat_sub(self.totals.rx_bytes, self.previous.rx_bytes)

    def transmitted(self) -> int:
        """Bytes transmitted since the previous refresh."""
        return _sat_sub(self.totals.tx_bytes, self.previous.tx_bytes)

    def packets_received(self) -> int:
        """Packets received since the previous refresh."""
        return _sat_sub(self.totals.rx_packets, self.previous.rx_packets)

    def packets_transmitted(self) -> int:
        """Packets transmitted since the previous refresh."""
        return _sat_sub(self.totals.tx_packets, self.previous.tx_packets)

    def errors_on_received(self) -> int:
        """Receive errors since the previous refresh."""
        return _sat_sub(self.totals.rx_errors, self.previous.rx_errors)

    def errors_on_transmitted(self) -> int:
        """Transmit errors since the previous refresh."""
        return _sat_sub(self.totals.tx_errors, self.previous.tx_errors)


def refresh_from_sysfs(
    interfaces: dict[str, NetworkData], sysfs_net: Union[str, Path]
) -> None:
    """Update *interfaces* in place from the entries of *sysfs_net*.

    New interfaces are added, existing ones updated and vanished ones removed.
    Nothing changes if *sysfs_net* cannot be listed.
    """
    try:
        entries = list(os.scandir(sysfs_net))
    except OSError:
        return
    for data in interfaces.values():
        data.updated = False
    for entry in entries:
        counters = read_counters(entry.path)
        data = interfaces.get(entry.name)
        if data is None:
            interfaces[entry.name] = NetworkData.fresh(counters)
        else:
            data.update(counters)
            data.updated = True
    for name in [name for name, data in interfaces.items() if not data.updated]:
        del interfaces[name]


class Networks:
    """The network interfaces of the host and their traffic counters."""

    def __init__(self, sysfs_net: Union[str, Path] = SYSFS_NET) -> None:
        self.sysfs_net = Path(sysfs_net)
        self.interfaces: dict[str, NetworkData] = {}

    def refresh(self) -> None:
        """Re-read the counters of the known interfaces."""
        for name, data in self.interfaces.items():
            data.update(read_counters(self.sysfs_net / name))

    def refresh_list(self) -> None:
        """Rediscover interfaces, adding new ones and dropping vanished ones."""
        refresh_from_sysfs(self.interfaces, self.sysfs_net)

    def __iter__(self) -> Iterator[tuple[str, NetworkData]]:
        return iter(self.interfaces.items())

    def __len__(self) -> int:
        return len(self.interfaces)

    def __getitem__(self, name: str) -> NetworkData:
        return self.interfaces[name]