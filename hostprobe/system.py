"""Host-wide information: memory, CPUs, processes, uptime and OS identity."""

from __future__ import annotations

import enum
import logging
import os
import re
import socket
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from hostprobe.cpu import SYS_CPU_DIR, Cpu, CpuRefreshKind, CpuSet
from hostprobe.cpuinfo import physical_core_count as _physical_core_count
from hostprobe.process import (
    Process,
    ProcessError,
    ProcessRefreshKind,
    ProcfsInfo,
    compute_cpu_usage,
    get_process_data,
    refresh_procs,
    unset_updated,
)
from hostprobe.utils import read_text, to_u64

_log = logging.getLogger(__name__)

PathArg = Union[str, Path]

_U64_MAX = 2**64 - 1
_UNSIGNED = re.compile(r"\+?[0-9]+")

_MEMINFO_FIELDS = {
    "MemTotal": "mem_total",
    "MemFree": "mem_free",
    "MemAvailable": "mem_available",
    "Buffers": "mem_buffers",
    "Cached": "mem_page_cache",
    "Shmem": "mem_shmem",
    "SReclaimable": "mem_slab_reclaimable",
    "SwapTotal": "swap_total",
    "SwapFree": "swap_free",
}

_CGROUP_STAT_FIELDS = {
    "slab_reclaimable": "mem_slab_reclaimable",
    "file": "mem_page_cache",
    "shmem": "mem_shmem",
}


def _sat_sub(a: int, b: int) -> int:
    return a - b if a > b else 0


def _parse_u64(text: str) -> Optional[int]:
    if not _UNSIGNED.fullmatch(text):
        return None
    value = int(text)
    return value if value <= _U64_MAX else None


class InfoType(enum.Enum):
    """Which piece of OS identity to look up."""

    NAME = "name"
    OS_VERSION = "os_version"
    DISTRIBUTION_ID = "distribution_id"


_OS_RELEASE_KEYS = {
    InfoType.NAME: "NAME=",
    InfoType.OS_VERSION: "VERSION_ID=",
    InfoType.DISTRIBUTION_ID: "ID=",
}

_LSB_RELEASE_KEYS = {
    InfoType.NAME: "DISTRIB_ID=",
    InfoType.OS_VERSION: "DISTRIB_RELEASE=",
}


@dataclass(frozen=True)
class LoadAvg:
    """System load averages over one, five and fifteen minutes."""

    one: float = 0.0
    five: float = 0.0
    fifteen: float = 0.0


def read_u64(path: PathArg) -> Optional[int]:
    """Return the unsigned number held by the file at *path*, or ``None``."""
    try:
        content = read_text(path)
    except (OSError, UnicodeDecodeError):
        return None
    return _parse_u64(content.strip())


def read_table(path: PathArg, colsep: str) -> Iterator[tuple[str, int]]:
    """Yield ``(key, number)`` pairs from a ``key<colsep> number ...`` file.

    Lines whose value is not an unsigned number are skipped; an unreadable
    file yields nothing.
    """
    try:
        content = read_text(path)
    except (OSError, UnicodeDecodeError):
        return
    for line in content.split("\n"):
        pieces = line.split(colsep)
        if len(pieces) < 2:
            continue
        value = _parse_u64(pieces[1].lstrip().split(" ")[0])
        if value is not None:
            yield pieces[0], value


def parse_load_average(text: str) -> LoadAvg:
    """Parse the first three numbers of ``/proc/loadavg``.

    Raises ``ValueError`` if they are missing or not numbers.
    """
    fields = text.strip().split(" ")[:3]
    if len(fields) < 3:
        raise ValueError(f"not a load average line: {text!r}")
    one, five, fifteen = (float(field) for field in fields)
    return LoadAvg(one=one, five=five, fifteen=fifteen)


def boot_time(stat_path: PathArg = "/proc/stat") -> int:
    """Return the boot time in seconds since the epoch from the ``btime`` line.

    Falls back to the boot clock if the line cannot be found.
    """
    try:
        with open(stat_path, "rb") as handle:
            content = handle.read()
    except OSError:
        content = None
    if content is not None:
        line = next(
            (line for line in content.split(b"\n") if line.startswith(b"btime")), None
        )
        if line is not None:
            fields = [field for field in line.split(b" ") if field]
            if len(fields) < 2:
                return 0
            try:
                return to_u64(fields[1])
            except ValueError:
                return 0
    clock = getattr(time, "CLOCK_BOOTTIME", None)
    if clock is None:
        _log.debug("no boot clock: boot time cannot be retrieved")
        return 0
    try:
        return int(time.clock_gettime(clock))
    except OSError:
        _log.debug("clock_gettime failed: boot time cannot be retrieved")
        return 0


def _read_lines(path: PathArg) -> Optional[list[str]]:
    try:
        with open(path, "rb") as handle:
            raw = handle.read()
    except OSError:
        return None
    lines = []
    for chunk in raw.split(b"\n"):
        if chunk.endswith(b"\r"):
            chunk = chunk[:-1]
        try:
            lines.append(chunk.decode("utf-8"))
        except UnicodeDecodeError:
            continue
    return lines


def _find_value(lines: list[str], prefix: str) -> Optional[str]:
    for line in lines:
        if line.startswith(prefix):
            return line[len(prefix):].replace('"', "")
    return None


def system_info_linux(
    info: InfoType, path: PathArg, fallback_path: PathArg
) -> Optional[str]:
    """Look *info* up in an os-release file, then in an lsb-release fallback."""
    lines = _read_lines(path) if str(path) else None
    if lines is not None:
        value = _find_value(lines, _OS_RELEASE_KEYS[info])
        if value is not None:
            return value

    # lsb-release has no distribution id.
    prefix = _LSB_RELEASE_KEYS.get(info)
    if prefix is None or not str(fallback_path):
        return None
    lines = _read_lines(fallback_path)
    if lines is None:
        return None
    return _find_value(lines, prefix)


def _default_info(stat_path: Path) -> ProcfsInfo:
    return ProcfsInfo(
        page_size_b=os.sysconf("SC_PAGE_SIZE"),
        clock_cycle=os.sysconf("SC_CLK_TCK"),
        boot_time=boot_time(stat_path),
    )


class System:
    """A snapshot of the host that is updated by the ``refresh_*`` methods."""

    def __init__(
        self,
        proc_root: PathArg = "/proc",
        cgroup_root: PathArg = "/sys/fs/cgroup",
        etc_root: PathArg = "/etc",
        sys_cpu_dir: PathArg = SYS_CPU_DIR,
        info: Optional[ProcfsInfo] = None,
    ) -> None:
        self.proc_root = Path(proc_root)
        self.cgroup_root = Path(cgroup_root)
        self.os_release = Path(etc_root) / "os-release"
        self.lsb_release = Path(etc_root) / "lsb-release"
        self._cpuinfo = self.proc_root / "cpuinfo"
        self._root = Process(pid=0)
        self.mem_total = 0
        self.mem_free = 0
        self.mem_available = 0
        self.mem_buffers = 0
        self.mem_page_cache = 0
        self.mem_shmem = 0
        self.mem_slab_reclaimable = 0
        self.swap_total = 0
        self.swap_free = 0
        self.cpus_set = CpuSet(
            stat_path=self.proc_root / "stat",
            cpuinfo_path=self._cpuinfo,
            sys_cpu_dir=sys_cpu_dir,
        )
        self.info = info if info is not None else _default_info(self.proc_root / "stat")

    # Memory

    def refresh_memory(self) -> None:
        """Read memory and swap figures, honouring cgroup limits."""
        mem_available_found = False
        for key, value_kib in read_table(self.proc_root / "meminfo", ":"):
            attribute = _MEMINFO_FIELDS.get(key)
            if attribute is None:
                continue
            if key == "MemAvailable":
                mem_available_found = True
            # /proc/meminfo says "kB" but means KiB.
            setattr(self, attribute, min(value_kib * 1024, _U64_MAX))

        if not mem_available_found:
            # Older kernels lack MemAvailable: estimate it.
            self.mem_available = _sat_sub(
                min(
                    self.mem_free
                    + self.mem_buffers
                    + self.mem_page_cache
                    + self.mem_slab_reclaimable,
                    _U64_MAX,
                ),
                self.mem_shmem,
            )

        cgroup = self.cgroup_root
        v2_current = read_u64(cgroup / "memory.current")
        v2_max = read_u64(cgroup / "memory.max")
        if v2_current is not None and v2_max is not None:
            self.mem_total = min(v2_max, self.mem_total)
            self.mem_free = _sat_sub(self.mem_total, v2_current)
            self.mem_available = self.mem_free
            swap_current = read_u64(cgroup / "memory.swap.current")
            if swap_current is not None:
                self.swap_free = _sat_sub(self.swap_total, swap_current)
            for key, value in read_table(cgroup / "memory.stat", " "):
                attribute = _CGROUP_STAT_FIELDS.get(key)
                if attribute is None:
                    continue
                setattr(self, attribute, value)
                self.mem_free = _sat_sub(self.mem_free, value)
            return

        v1_current = read_u64(cgroup / "memory" / "memory.usage_in_bytes")
        v1_max = read_u64(cgroup / "memory" / "memory.limit_in_bytes")
        if v1_current is not None and v1_max is not None:
            self.mem_total = min(v1_max, self.mem_total)
            self.mem_free = _sat_sub(self.mem_total, v1_current)
            self.mem_available = self.mem_free

    def total_memory(self) -> int:
        """Total memory in bytes."""
        return self.mem_total

    def free_memory(self) -> int:
        """Unused memory in bytes."""
        return self.mem_free

    def available_memory(self) -> int:
        """Memory available for new allocations, in bytes."""
        return self.mem_available

    def used_memory(self) -> int:
        """Memory in use, in bytes."""
        return _sat_sub(self.mem_total, self.mem_available)

    def total_swap(self) -> int:
        """Total swap in bytes."""
        return self.swap_total

    def free_swap(self) -> int:
        """Unused swap in bytes."""
        return self.swap_free

    def used_swap(self) -> int:
        """Swap in use, in bytes."""
        return _sat_sub(self.swap_total, self.swap_free)

    # CPUs

    def refresh_cpu_specifics(self, refresh_kind: CpuRefreshKind) -> None:
        """Refresh every CPU as *refresh_kind* asks."""
        self.cpus_set.refresh(False, refresh_kind)

    def global_cpu_info(self) -> Cpu:
        """The aggregate of all CPUs."""
        return self.cpus_set.global_cpu

    def cpus(self) -> list[Cpu]:
        """The logical CPUs."""
        return self.cpus_set.cpus

    def physical_core_count(self) -> Optional[int]:
        """Number of physical cores, or ``None`` if it cannot be read."""
        return _physical_core_count(self._cpuinfo)

    def _max_process_cpu_usage(self) -> float:
        # A process cannot use more than every CPU at once.
        return len(self.cpus_set) * 100.0

    # Processes

    def _clear_procs(self, refresh_kind: ProcessRefreshKind) -> None:
        total_time, compute_cpu, max_value = 0.0, False, 0.0
        if refresh_kind.cpu:
            self.cpus_set.refresh_if_needed(True, CpuRefreshKind(cpu_usage=True))
            if not len(self.cpus_set):
                _log.debug("cannot compute processes CPU usage: no CPU found")
            else:
                new, old = self.cpus_set.global_raw_times()
                total = 1 if old > new else new - old
                total_time = total / len(self.cpus_set)
                compute_cpu = True
                max_value = self._max_process_cpu_usage()

        tasks = self._root.tasks
        for pid in list(tasks):
            process = tasks[pid]
            if not process.updated:
                del tasks[pid]
                continue
            if compute_cpu:
                compute_cpu_usage(process, total_time, max_value)
            unset_updated(process)

    def refresh_processes_specifics(self, refresh_kind: ProcessRefreshKind) -> None:
        """Refresh every process, dropping those that have ended."""
        uptime = self.uptime()
        refresh_procs(self._root, self.proc_root, 0, uptime, self.info, refresh_kind)
        self._clear_procs(refresh_kind)
        self.cpus_set.set_need_cpus_update()

    def refresh_process_specifics(
        self, pid: int, refresh_kind: ProcessRefreshKind
    ) -> bool:
        """Refresh one process; return whether it could be read."""
        uptime = self.uptime()
        try:
            process, found = get_process_data(
                self.proc_root / str(pid),
                self._root,
                0,
                uptime,
                self.info,
                refresh_kind,
            )
        except ProcessError as exc:
            _log.debug("cannot get information for PID %s: %s", pid, exc)
            return False
        if process is not None:
            self._root.tasks[found] = process

        entry = self._root.tasks.get(pid)
        if refresh_kind.cpu:
            self.cpus_set.refresh(True, CpuRefreshKind(cpu_usage=True))
            if not len(self.cpus_set):
                _log.warning("cannot compute process CPU usage: no CPU found")
                return True
            new, old = self.cpus_set.global_raw_times()
            total = 1 if old >= new else new - old
            total_time = total / len(self.cpus_set)
            if entry is not None:
                compute_cpu_usage(entry, total_time, self._max_process_cpu_usage())
                unset_updated(entry)
        elif entry is not None:
            unset_updated(entry)
        return True

    def processes(self) -> dict[int, Process]:
        """All known processes by pid."""
        return self._root.tasks

    def process(self, pid: int) -> Optional[Process]:
        """The process with *pid*, if known."""
        return self._root.tasks.get(pid)

    # Time and load

    def uptime(self) -> int:
        """Seconds since boot, or 0 if unknown."""
        try:
            content = read_text(self.proc_root / "uptime")
        except (OSError, UnicodeDecodeError):
            return 0
        value = _parse_u64(content.split(".")[0])
        return 0 if value is None else value

    def boot_time(self) -> int:
        """Boot time in seconds since the epoch."""
        return self.info.boot_time

    def load_average(self) -> LoadAvg:
        """The load averages; all zero if they cannot be read."""
        try:
            content = read_text(self.proc_root / "loadavg")
        except (OSError, UnicodeDecodeError):
            return LoadAvg()
        return parse_load_average(content)

    # OS identity

    def name(self) -> Optional[str]:
        """The distribution name."""
        return system_info_linux(InfoType.NAME, self.os_release, self.lsb_release)

    def os_version(self) -> Optional[str]:
        """The distribution version."""
        return system_info_linux(InfoType.OS_VERSION, self.os_release, self.lsb_release)

    def long_os_version(self) -> Optional[str]:
        """A line such as ``Linux 20.10 Ubuntu``."""
        return f"Linux {self.os_version() or ''} {self.name() or ''}"

    def distribution_id(self) -> str:
        """The machine-readable distribution id, or the platform name."""
        found = system_info_linux(InfoType.DISTRIBUTION_ID, self.os_release, "")
        return found if found is not None else sys.platform

    def host_name(self) -> Optional[str]:
        """The host name, or ``None`` if it cannot be read."""
        try:
            return socket.gethostname()
        except OSError:
            _log.debug("gethostname failed: hostname cannot be retrieved")
            return None

    def kernel_version(self) -> Optional[str]:
        """The kernel release string."""
        try:
            return os.uname().release
        except OSError:
            return None