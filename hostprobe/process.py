"""Processes and their threads read from ``/proc``."""

from __future__ import annotations

import enum
import logging
import os
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from hostprobe.signals import Signal, signal_number
from hostprobe.utils import read_link_or_empty, read_text

_log = logging.getLogger(__name__)

_U64_MAX = 2**64 - 1
_U32_MAX = 2**32 - 1
_I32_MIN, _I32_MAX = -(2**31), 2**31 - 1

_UNSIGNED = re.compile(r"\+?[0-9]+")
_SIGNED = re.compile(r"[+-]?[0-9]+")

# Index of the last field of a stat line that is used (rss).
_STAT_FIELDS = 24

PathArg = Union[str, Path]


class ProcessError(Exception):
    """Raised when the data of a process cannot be read."""


class ProcessStatus(enum.Enum):
    """State of a process as shown in ``/proc/[pid]/stat``."""

    IDLE = "Idle"
    RUN = "Runnable"
    SLEEP = "Sleeping"
    STOP = "Stopped"
    ZOMBIE = "Zombie"
    TRACING = "Tracing"
    DEAD = "Dead"
    WAKEKILL = "Wakekill"
    WAKING = "Waking"
    PARKED = "Parked"
    UNINTERRUPTIBLE_DISK_SLEEP = "UninterruptibleDiskSleep"
    UNKNOWN = "Unknown"

    @classmethod
    def from_char(cls, char: str) -> "ProcessStatus":
        """Map the one-letter state code of the kernel to a status."""
        return _STATUS_CHARS.get(char, cls.UNKNOWN)

    def __str__(self) -> str:
        return self.value


_STATUS_CHARS = {
    "R": ProcessStatus.RUN,
    "S": ProcessStatus.SLEEP,
    "I": ProcessStatus.IDLE,
    "D": ProcessStatus.UNINTERRUPTIBLE_DISK_SLEEP,
    "Z": ProcessStatus.ZOMBIE,
    "T": ProcessStatus.STOP,
    "t": ProcessStatus.TRACING,
    "X": ProcessStatus.DEAD,
    "x": ProcessStatus.DEAD,
    "K": ProcessStatus.WAKEKILL,
    "W": ProcessStatus.WAKING,
    "P": ProcessStatus.PARKED,
}


@dataclass(frozen=True)
class DiskUsage:
    """Bytes read and written, since the previous refresh and in total."""

    written_bytes: int
    total_written_bytes: int
    read_bytes: int
    total_read_bytes: int


@dataclass(frozen=True)
class ProcessRefreshKind:
    """Which optional process information to refresh."""

    cpu: bool = False
    disk_usage: bool = False
    user: bool = False

    @classmethod
    def everything(cls) -> "ProcessRefreshKind":
        """Refresh CPU usage, disk usage and user ids."""
        return cls(cpu=True, disk_usage=True, user=True)


@dataclass(frozen=True)
class ProcfsInfo:
    """Host constants needed to interpret ``/proc`` values."""

    page_size_b: int
    clock_cycle: int
    boot_time: int


def _sat_sub(a: int, b: int) -> int:
    return a - b if a > b else 0


def _parse_int(text: str, pattern: re.Pattern, low: int, high: int) -> Optional[int]:
    if not pattern.fullmatch(text):
        return None
    value = int(text)
    return value if low <= value <= high else None


def _u64(text: str) -> int:
    value = _parse_int(text, _UNSIGNED, 0, _U64_MAX)
    return 0 if value is None else value


@dataclass(eq=False)
class Process:
    """A process (or a thread of one) and what is known about it."""

    pid: int
    parent: Optional[int] = None
    name: str = ""
    cmd: list[str] = field(default_factory=list)
    exe: str = ""
    environ: list[str] = field(default_factory=list)
    cwd: str = ""
    root: str = ""
    memory: int = 0
    virtual_memory: int = 0
    cpu_usage: float = 0.0
    utime: int = 0
    stime: int = 0
    old_utime: int = 0
    old_stime: int = 0
    start_time_without_boot_time: int = 0
    start_time: int = 0
    run_time: int = 0
    updated: bool = True
    user_id: Optional[int] = None
    effective_user_id: Optional[int] = None
    group_id: Optional[int] = None
    effective_group_id: Optional[int] = None
    status: ProcessStatus = ProcessStatus.UNKNOWN
    tasks: dict[int, "Process"] = field(default_factory=dict, repr=False)
    read_bytes: int = 0
    old_read_bytes: int = 0
    written_bytes: int = 0
    old_written_bytes: int = 0

    def disk_usage(self) -> DiskUsage:
        """Return the disk activity since the previous refresh and in total."""
        return DiskUsage(
            written_bytes=_sat_sub(self.written_bytes, self.old_written_bytes),
            total_written_bytes=self.written_bytes,
            read_bytes=_sat_sub(self.read_bytes, self.old_read_bytes),
            total_read_bytes=self.read_bytes,
        )

    def kill_with(self, signal: Signal) -> Optional[bool]:
        """Send *signal*; ``None`` if the host lacks it, else whether it was sent."""
        number = signal_number(signal)
        if number is None:
            return None
        try:
            os.kill(self.pid, number)
        except OSError:
            return False
        return True

    def wait(self) -> None:
        """Block until the process has ended."""
        try:
            os.waitpid(self.pid, 0)
            return
        except OSError:
            # Not our child: poll until it is gone.
            pass
        while _is_alive(self.pid):
            time.sleep(0.01)

    def session_id(self) -> Optional[int]:
        """Return the session id of the process, or ``None`` if it cannot be read."""
        try:
            return os.getsid(self.pid)
        except OSError:
            return None


def _is_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True


def parse_stat_file(data: str) -> Optional[list[str]]:
    """Split a ``/proc/[pid]/stat`` line into fields.

    The command name is everything between the first space and the last
    ``)``, so it may itself hold spaces and parentheses. Returns ``None`` if
    the line lacks either.
    """
    head, sep, rest = data.partition(" ")
    if not sep:
        return None
    command, sep, tail = rest.rpartition(")")
    if not sep:
        return None
    if command.startswith("("):
        command = command[1:]
    return [head, command, *tail.split()]


def _ids(line: str, prefix: str) -> Optional[tuple[int, int]]:
    if not line.startswith(prefix):
        return None
    fields = line.split()
    real = _parse_int(fields[1] if len(fields) > 1 else "0", _UNSIGNED, 0, _U32_MAX)
    effective = _parse_int(fields[2] if len(fields) > 2 else "0", _UNSIGNED, 0, _U32_MAX)
    if real is None or effective is None:
        return None
    return real, effective


def parse_uid_and_gid(
    text: str,
) -> Optional[tuple[tuple[int, int], tuple[int, int]]]:
    """Return ``((uid, euid), (gid, egid))`` from a ``status`` file, if both lines exist."""
    uids = gids = None
    for line in text.split("\n"):
        found = _ids(line, "Uid:")
        if found is not None:
            uids = found
        else:
            found = _ids(line, "Gid:")
            if found is None:
                continue
            gids = found
        if uids is not None and gids is not None:
            break
    if uids is None or gids is None:
        return None
    return uids, gids


def read_nul_separated(path: PathArg) -> list[str]:
    """Return the NUL-terminated strings of a file such as ``cmdline``.

    Each string is stripped; empty runs, invalid UTF-8 and a trailing part
    without a terminating NUL are left out. An unreadable file gives ``[]``.
    """
    try:
        with open(path, "rb") as handle:
            data = handle.read()
    except OSError as exc:
        _log.debug("failed to read %s: %s", path, exc)
        return []
    chunks = data.split(b"\0")[:-1]
    out = []
    for chunk in chunks:
        if not chunk:
            continue
        try:
            out.append(chunk.decode("utf-8").strip())
        except UnicodeDecodeError:
            continue
    return out


def compute_cpu_usage(process: Process, total_time: float, max_value: float) -> None:
    """Set the CPU usage of *process* and its tasks, capped at *max_value*.

    Nothing is computed until the process has been seen twice.
    """
    if process.old_utime == 0 and process.old_stime == 0:
        return
    work = _sat_sub(process.utime, process.old_utime) + _sat_sub(
        process.stime, process.old_stime
    )
    if total_time == 0:
        process.cpu_usage = max_value
    else:
        process.cpu_usage = min(work / total_time * 100.0, max_value)
    for task in process.tasks.values():
        compute_cpu_usage(task, total_time, max_value)


def unset_updated(process: Process) -> None:
    """Mark *process* and all its tasks as not updated."""
    process.updated = False
    for task in process.tasks.values():
        unset_updated(task)


def _set_time(process: Process, utime: int, stime: int) -> None:
    process.old_utime = process.utime
    process.old_stime = process.stime
    process.utime = utime
    process.stime = stime
    process.updated = True


def update_disk_activity(process: Process, path: PathArg) -> None:
    """Read ``read_bytes`` and ``write_bytes`` from the ``io`` file in *path*."""
    try:
        data = read_text(Path(path) / "io")
    except (OSError, UnicodeDecodeError):
        return
    done = 0
    for line in data.split("\n"):
        parts = line.split(": ")
        value = parts[1] if len(parts) > 1 else ""
        parsed = _parse_int(value, _UNSIGNED, 0, _U64_MAX)
        if parts[0] == "read_bytes":
            process.old_read_bytes = process.read_bytes
            process.read_bytes = process.old_read_bytes if parsed is None else parsed
        elif parts[0] == "write_bytes":
            process.old_written_bytes = process.written_bytes
            process.written_bytes = (
                process.old_written_bytes if parsed is None else parsed
            )
        else:
            continue
        done += 1
        if done > 1:
            break


def _start_time_without_boot_time(parts: list[str], info: ProcfsInfo) -> int:
    return _u64(parts[21]) // info.clock_cycle


def _read_stat(path: Path) -> list[str]:
    stat = path / "stat"
    try:
        data = read_text(stat)
    except (OSError, UnicodeDecodeError) as exc:
        raise ProcessError(f"cannot read {stat}") from exc
    parts = parse_stat_file(data)
    if parts is None or len(parts) < _STAT_FIELDS:
        raise ProcessError(f"malformed stat file {stat}")
    return parts


def _set_status(process: Process, part: str) -> None:
    process.status = (
        ProcessStatus.from_char(part[0]) if part else ProcessStatus.UNKNOWN
    )


def _refresh_user_group_ids(process: Process, path: Path) -> None:
    try:
        text = read_text(path / "status")
    except (OSError, UnicodeDecodeError):
        return
    ids = parse_uid_and_gid(text)
    if ids is None:
        return
    (process.user_id, process.effective_user_id), (
        process.group_id,
        process.effective_group_id,
    ) = ids


def _update_time_and_memory(
    path: Path,
    entry: Process,
    parts: list[str],
    parent_memory: int,
    parent_virtual_memory: int,
    uptime: int,
    info: ProcfsInfo,
    refresh_kind: ProcessRefreshKind,
) -> None:
    entry.memory = min(_u64(parts[23]) * info.page_size_b, _U64_MAX)
    if entry.memory >= parent_memory:
        entry.memory -= parent_memory
    entry.virtual_memory = _u64(parts[22])
    if entry.virtual_memory >= parent_virtual_memory:
        entry.virtual_memory -= parent_virtual_memory
    _set_time(entry, _u64(parts[13]), _u64(parts[14]))
    entry.run_time = _sat_sub(uptime, entry.start_time_without_boot_time)
    refresh_procs(entry, path / "task", entry.pid, uptime, info, refresh_kind)


def _new_process(
    pid: int,
    parent: Process,
    parts: list[str],
    path: Path,
    info: ProcfsInfo,
    refresh_kind: ProcessRefreshKind,
    uptime: int,
) -> Process:
    process = Process(pid=pid)
    if parent.pid != 0:
        process.parent = parent.pid
    else:
        ppid = _parse_int(parts[3], _SIGNED, _I32_MIN, _I32_MAX)
        process.parent = ppid if ppid else None

    process.start_time_without_boot_time = _start_time_without_boot_time(parts, info)
    process.start_time = min(
        process.start_time_without_boot_time + info.boot_time, _U64_MAX
    )
    _set_status(process, parts[2])
    if refresh_kind.user:
        _refresh_user_group_ids(process, path)
    process.name = parts[1]
    # The command line's first word is not the executable, so no fallback.
    process.exe = read_link_or_empty(path / "exe")
    process.cmd = read_nul_separated(path / "cmdline")
    process.environ = read_nul_separated(path / "environ")
    process.cwd = read_link_or_empty(path / "cwd")
    process.root = read_link_or_empty(path / "root")

    _update_time_and_memory(
        path,
        process,
        parts,
        parent.memory,
        parent.virtual_memory,
        uptime,
        info,
        refresh_kind,
    )
    if refresh_kind.disk_usage:
        update_disk_activity(process, path)
    return process


def get_process_data(
    path: PathArg,
    parent: Process,
    pid: int,
    uptime: int,
    info: ProcfsInfo,
    refresh_kind: ProcessRefreshKind,
) -> tuple[Optional[Process], int]:
    """Read the process whose ``/proc`` folder is *path*, a child of *parent*.

    Returns the new process (or ``None`` if *parent* already held it and it
    was updated in place) and its pid. Raises ``ProcessError`` if the folder
    is not a process other than *pid* or its stat file cannot be read.
    """
    path = Path(path)
    found = _parse_int(path.name, _SIGNED, _I32_MIN, _I32_MAX)
    # A folder with the parent's own pid links back to what was just read.
    if found is None or found == pid:
        raise ProcessError(f"{path} is not a distinct process folder")

    entry = parent.tasks.get(found)
    parts = _read_stat(path)
    if entry is None:
        return _new_process(found, parent, parts, path, info, refresh_kind, uptime), found

    # The same pid may now belong to another process: compare start times.
    if _start_time_without_boot_time(parts, info) == entry.start_time_without_boot_time:
        _set_status(entry, parts[2])
        _update_time_and_memory(
            path,
            entry,
            parts,
            parent.memory,
            parent.virtual_memory,
            uptime,
            info,
            refresh_kind,
        )
        if refresh_kind.disk_usage:
            update_disk_activity(entry, path)
        if refresh_kind.user and entry.user_id is None:
            _refresh_user_group_ids(entry, path)
        return None, found

    parent.tasks[found] = _new_process(
        found, parent, parts, path, info, refresh_kind, uptime
    )
    return None, found


def refresh_procs(
    parent: Process,
    path: PathArg,
    pid: int,
    uptime: int,
    info: ProcfsInfo,
    refresh_kind: ProcessRefreshKind,
) -> bool:
    """Refresh the tasks of *parent* from the folders in *path*.

    For the root (*pid* 0) vanished processes are kept for the caller to
    clear; for a real process, vanished threads are dropped here. Returns
    ``False`` if *path* cannot be listed.
    """
    try:
        folders = sorted(entry for entry in Path(path).iterdir() if entry.is_dir())
    except OSError:
        return False

    new_tasks: list[Process] = []
    updated: set[int] = set()
    for folder in folders:
        try:
            process, task_pid = get_process_data(
                folder, parent, pid, uptime, info, refresh_kind
            )
        except ProcessError as exc:
            _log.debug("skipping %s: %s", folder, exc)
            continue
        updated.add(task_pid)
        if process is not None:
            new_tasks.append(process)

    if pid != 0:
        for gone in [key for key in parent.tasks if key not in updated]:
            del parent.tasks[gone]
    for process in new_tasks:
        parent.tasks[process.pid] = process
    return True