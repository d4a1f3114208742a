"""Mounted disks read from ``/proc/mounts`` and ``statvfs``."""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, NamedTuple, Optional, Sequence, Union

from hostprobe.utils import read_text

_log = logging.getLogger(__name__)

MOUNTS_PATH = "/proc/mounts"
BY_ID_DIR = "/dev/disk/by-id/"
_SYS_BLOCK = Path("/sys/block")
_DEV = "/dev/"

_IGNORED_FS = frozenset(
    {
        "rootfs",
        "sysfs",
        "proc",
        "tmpfs",
        "devtmpfs",
        "cgroup",
        "cgroup2",
        "pstore",
        "squashfs",
        "rpc_pipefs",
        "iso9660",
        "nfs4",  # statvfs on a mounted NFS may hang
        "nfs",
    }
)


class DiskKind(enum.Enum):
    """Kind of storage behind a disk."""

    HDD = "HDD"
    SSD = "SSD"
    UNKNOWN = "Unknown"


class MountEntry(NamedTuple):
    """One line of a mounts table."""

    device: str
    mount_point: str
    file_system: str


def _statvfs_space(mount_point: Union[str, Path]) -> Optional[tuple[int, int]]:
    try:
        stat = os.statvfs(mount_point)
    except OSError:
        return None
    return stat.f_bsize * stat.f_blocks, stat.f_bsize * stat.f_bavail


@dataclass
class Disk:
    """A mounted file system; sizes are in bytes."""

    kind: DiskKind
    name: str
    file_system: str
    mount_point: Path
    total_space: int
    available_space: int
    is_removable: bool

    def refresh(self) -> bool:
        """Re-read the available space; return whether it succeeded."""
        space = _statvfs_space(self.mount_point)
        if space is None:
            return False
        self.available_space = space[1]
        return True


def unescape_mount_path(path: str) -> str:
    """Decode the octal escapes the kernel uses in mount point paths."""
    return (
        path.replace("\\134", "\\")
        .replace("\\040", " ")
        .replace("\\011", "\t")
        .replace("\\012", "\n")
    )


def _is_ignored(entry: MountEntry) -> bool:
    mount_point = entry.mount_point
    return (
        entry.file_system in _IGNORED_FS
        or mount_point.startswith("/sys")
        or mount_point.startswith("/proc")
        or (mount_point.startswith("/run") and not mount_point.startswith("/run/media"))
        or entry.device.startswith("sunrpc")
    )


def parse_mounts(content: str) -> list[MountEntry]:
    """Parse a mounts table, leaving out pseudo and network file systems."""
    entries = []
    for line in content.split("\n"):
        fields = line.split()
        if not fields:
            continue
        fields += [""] * (3 - len(fields))
        entry = MountEntry(fields[0], unescape_mount_path(fields[1]), fields[2])
        if not _is_ignored(entry):
            entries.append(entry)
    return entries


def _trim_dev(path: str) -> str:
    while path.startswith(_DEV):
        path = path[len(_DEV):]
    return path


def _strip_partition(real_path: str) -> str:
    end = real_path.find("p")
    return real_path[len(_DEV): end] if end >= 0 else real_path[len(_DEV):]


def _canonical(device_name: str) -> str:
    try:
        return str(Path(device_name).resolve(strict=True))
    except (OSError, RuntimeError):
        return device_name


def disk_kind(device_name: str) -> DiskKind:
    """Tell from ``/sys/block`` whether *device_name* is rotational."""
    real_path = _canonical(device_name)
    if device_name.startswith("/dev/mapper/") or device_name.startswith("/dev/root"):
        # Resolve symbolic links such as /dev/dm-0 or /dev/mmcblk0p1.
        if real_path != device_name:
            return disk_kind(real_path)
    elif device_name.startswith("/dev/sd") or device_name.startswith("/dev/vd"):
        real_path = _trim_dev(real_path).rstrip("0123456789")
    elif device_name.startswith("/dev/nvme") or device_name.startswith("/dev/mmcblk"):
        real_path = _strip_partition(real_path)
    else:
        real_path = _trim_dev(real_path)

    rotational = _SYS_BLOCK / real_path / "queue" / "rotational"
    try:
        value = int(read_text(rotational).strip())
    except (OSError, UnicodeDecodeError, ValueError):
        return DiskKind.UNKNOWN
    if value == 1:
        return DiskKind.HDD
    if value == 0:
        return DiskKind.SSD
    return DiskKind.UNKNOWN


def removable_devices(by_id_dir: Union[str, Path] = BY_ID_DIR) -> list[Path]:
    """Return the resolved devices of the ``usb-*`` entries of *by_id_dir*."""
    try:
        entries = sorted(Path(by_id_dir).iterdir())
    except OSError:
        return []
    devices = []
    for entry in entries:
        if not entry.name.startswith("usb-"):
            continue
        try:
            devices.append(entry.resolve(strict=True))
        except (OSError, RuntimeError):
            continue
    return devices


def _new_disk(entry: MountEntry, removable_entries: Sequence[Path]) -> Optional[Disk]:
    space = _statvfs_space(entry.mount_point)
    total, available = space if space is not None else (0, 0)
    if total == 0:
        return None
    return Disk(
        kind=disk_kind(entry.device),
        name=entry.device,
        file_system=entry.file_system,
        mount_point=Path(entry.mount_point),
        total_space=total,
        available_space=available,
        is_removable=any(str(device) == entry.device for device in removable_entries),
    )


def collect_disks(content: str, removable_entries: Sequence[Path]) -> list[Disk]:
    """Build the disks of a mounts table; mounts without space are left out."""
    disks = []
    for entry in parse_mounts(content):
        disk = _new_disk(entry, removable_entries)
        if disk is not None:
            disks.append(disk)
    return disks


class Disks:
    """The disks mounted on the host."""

    def __init__(self, mounts_path: Union[str, Path] = MOUNTS_PATH) -> None:
        self.mounts_path = Path(mounts_path)
        self._disks: list[Disk] = []

    def refresh_list(self) -> None:
        """Rebuild the disk list from the mounts table."""
        try:
            content = read_text(self.mounts_path)
        except (OSError, UnicodeDecodeError) as exc:
            _log.debug("cannot read %s: %s", self.mounts_path, exc)
            content = ""
        self._disks = collect_disks(content, removable_devices())

    def __iter__(self) -> Iterator[Disk]:
        return iter(self._disks)

    def __len__(self) -> int:
        return len(self._disks)