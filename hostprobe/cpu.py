"""CPU usage and frequency read from ``/proc/stat`` and sysfs."""

from __future__ import annotations

import dataclasses
import logging
import math
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from hostprobe.cpuinfo import CPUINFO_PATH, vendor_ids_and_brands
from hostprobe.utils import read_text, to_u64

_log = logging.getLogger(__name__)

STAT_PATH = "/proc/stat"
SYS_CPU_DIR = "/sys/devices/system/cpu"

#: Minimum time, in seconds, between two CPU usage updates.
MINIMUM_CPU_UPDATE_INTERVAL = 0.2

_U64_MAX = 2**64 - 1
_TIME_FIELDS = 10


def _sat_sub(a: int, b: int) -> int:
    return a - b if a > b else 0


def _sat_sum(*values: int) -> int:
    return min(sum(values), _U64_MAX)


@dataclass(frozen=True)
class CpuRefreshKind:
    """Which CPU information to refresh."""

    cpu_usage: bool = False
    frequency: bool = False

    @classmethod
    def everything(cls) -> "CpuRefreshKind":
        """Refresh both usage and frequency."""
        return cls(cpu_usage=True, frequency=True)


@dataclass
class CpuValues:
    """Time counters of one CPU line of ``/proc/stat``, in clock ticks."""

    user: int = 0
    nice: int = 0
    system: int = 0
    idle: int = 0
    iowait: int = 0
    irq: int = 0
    softirq: int = 0
    steal: int = 0
    guest: int = 0
    guest_nice: int = 0

    def set(
        self,
        user: int,
        nice: int,
        system: int,
        idle: int,
        iowait: int,
        irq: int,
        softirq: int,
        steal: int,
        guest: int,
        guest_nice: int,
    ) -> None:
        """Store the counters; guest time is removed from user and nice time."""
        # `guest` is already accounted in `user`, `guest_nice` in `nice`.
        self.user = _sat_sub(user, guest)
        self.nice = _sat_sub(nice, guest_nice)
        self.system = system
        self.idle = idle
        self.iowait = iowait
        self.irq = irq
        self.softirq = softirq
        self.steal = steal
        self.guest = guest
        self.guest_nice = guest_nice

    def work_time(self) -> int:
        """Return the time spent doing work."""
        return _sat_sum(self.user, self.nice, self.system, self.irq, self.softirq)

    def total_time(self) -> int:
        """Return the work time plus idle, iowait, guest and steal time."""
        return _sat_sum(
            self.work_time(),
            self.idle,
            self.iowait,
            self.guest,
            self.guest_nice,
            self.steal,
        )


def _values_from(times: Sequence[int]) -> CpuValues:
    values = CpuValues()
    values.set(*times)
    return values


@dataclass
class Cpu:
    """One CPU (or the aggregate of all of them) with its usage in percent."""

    name: str = ""
    vendor_id: str = ""
    brand: str = ""
    frequency: int = 0
    cpu_usage: float = 0.0
    total_time: int = 0
    old_total_time: int = 0
    new_values: CpuValues = field(default_factory=CpuValues)
    old_values: CpuValues = field(default_factory=CpuValues)

    def update(self, times: Iterable[int]) -> None:
        """Record new time counters and recompute the usage since the last ones."""
        self.old_values = dataclasses.replace(self.new_values)
        self.new_values.set(*times)
        self.total_time = self.new_values.total_time()
        self.old_total_time = self.old_values.total_time()
        new_work = self.new_values.work_time()
        old_work = self.old_values.work_time()
        work = float(new_work - old_work) if new_work > old_work else 0.0
        total = (
            float(self.total_time - self.old_total_time)
            if self.total_time > self.old_total_time
            else 1.0
        )
        self.cpu_usage = min(work / total * 100.0, 100.0)


def _parse_times(parts: Sequence[str]) -> list[int]:
    times = [to_u64(part) for part in parts[:_TIME_FIELDS]]
    return times + [0] * (_TIME_FIELDS - len(times))


def _parse_u64(text: str) -> Optional[int]:
    digits = text[1:] if text.startswith("+") else text
    if digits and digits.isascii() and digits.isdigit():
        value = int(digits)
        return value if value <= _U64_MAX else None
    return None


def _float_to_u64(value: float) -> int:
    if math.isnan(value) or value <= 0:
        return 0
    if math.isinf(value) or value >= _U64_MAX:
        return _U64_MAX
    return int(value)


_MHZ_PREFIXES = ("cpu MHz\t", "BogoMIPS", "clock\t", "bogomips per cpu")


def cpu_frequency(
    index: int,
    sys_cpu_dir: Union[str, Path] = SYS_CPU_DIR,
    cpuinfo_path: Union[str, Path] = CPUINFO_PATH,
) -> int:
    """Return the frequency of CPU *index* in MHz, or 0 if it cannot be found."""
    scaling = Path(sys_cpu_dir) / f"cpu{index}" / "cpufreq" / "scaling_cur_freq"
    try:
        content = read_text(scaling)
    except (OSError, UnicodeDecodeError):
        content = None
    if content is not None:
        khz = _parse_u64(content.strip().split("\n")[0])
        if khz is not None:
            return khz // 1000

    try:
        cpuinfo = read_text(cpuinfo_path)
    except (OSError, UnicodeDecodeError):
        return 0
    line = next(
        (line for line in cpuinfo.split("\n") if line.startswith(_MHZ_PREFIXES)),
        None,
    )
    if line is None:
        return 0
    raw = line.split(":")[-1].replace("MHz", "").strip()
    try:
        return _float_to_u64(float(raw))
    except ValueError:
        return 0


class CpuSet:
    """The global CPU and every logical CPU of the host."""

    def __init__(
        self,
        stat_path: Union[str, Path] = STAT_PATH,
        cpuinfo_path: Union[str, Path] = CPUINFO_PATH,
        sys_cpu_dir: Union[str, Path] = SYS_CPU_DIR,
    ) -> None:
        self.stat_path = Path(stat_path)
        self.cpuinfo_path = Path(cpuinfo_path)
        self.sys_cpu_dir = Path(sys_cpu_dir)
        self.global_cpu = Cpu()
        self.cpus: list[Cpu] = []
        # Cleared by `refresh` and set again once processes were refreshed, so
        # that CPU times are not read more often than needed.
        self.need_cpus_update = True
        self.got_cpu_frequency = False
        self.last_update: Optional[float] = None

    def refresh_if_needed(
        self, only_update_global_cpu: bool, refresh_kind: CpuRefreshKind
    ) -> None:
        """Refresh only if an update was requested since the last one."""
        if self.need_cpus_update:
            self.refresh(only_update_global_cpu, refresh_kind)

    def refresh(self, only_update_global_cpu: bool, refresh_kind: CpuRefreshKind) -> None:
        """Read CPU times and, if asked, frequencies."""
        now = time.monotonic()
        need_usage_update = (
            self.last_update is None
            or now - self.last_update > MINIMUM_CPU_UPDATE_INTERVAL
        )
        first = not self.cpus
        vendors_brands = vendor_ids_and_brands(self.cpuinfo_path) if first else {}

        if need_usage_update:
            self.last_update = now
            try:
                content = read_text(self.stat_path)
            except (OSError, UnicodeDecodeError) as exc:
                _log.debug("failed to retrieve CPU information: %s", exc)
                return
            self.need_cpus_update = False
            lines = iter(content.split("\n"))

            if first or refresh_kind.cpu_usage:
                line = next(lines, None)
                if line is not None:
                    if not line.startswith("cpu "):
                        return
                    parts = line.split()
                    if first:
                        self.global_cpu.name = parts[0] if parts else ""
                    self.global_cpu.update(_parse_times(parts[1:]))
                if first or not only_update_global_cpu:
                    self._refresh_each(lines, first, vendors_brands)

        if refresh_kind.frequency:
            for pos, cpu in enumerate(self.cpus):
                cpu.frequency = cpu_frequency(pos, self.sys_cpu_dir, self.cpuinfo_path)
            self.got_cpu_frequency = True

    def _refresh_each(
        self,
        lines: Iterable[str],
        first: bool,
        vendors_brands: dict[int, tuple[str, str]],
    ) -> None:
        for i, line in enumerate(lines):
            if not line.startswith("cpu"):
                break
            parts = line.split()
            times = _parse_times(parts[1:])
            if first:
                vendor_id, brand = vendors_brands.pop(i, ("", ""))
                self.cpus.append(
                    Cpu(
                        name=parts[0] if parts else "",
                        vendor_id=vendor_id,
                        brand=brand,
                        new_values=_values_from(times),
                    )
                )
            else:
                self.cpus[i].update(times)

    def global_raw_times(self) -> tuple[int, int]:
        """Return the ``(new, old)`` total times of the global CPU."""
        return self.global_cpu.total_time, self.global_cpu.old_total_time

    def set_need_cpus_update(self) -> None:
        """Ask for the next `refresh_if_needed` to refresh."""
        self.need_cpus_update = True

    def __len__(self) -> int:
        return len(self.cpus)