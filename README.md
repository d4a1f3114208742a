# hostprobe

`hostprobe` is a library that reads information about the Linux host it runs on. The data
comes from `/proc`, `/sys` and a few system calls (`statvfs`, `uname`, `gethostname`).

It covers:

- **CPUs** (`hostprobe.cpu`, `hostprobe.cpuinfo`): usage of each logical CPU and of all CPUs
  together, frequency, vendor and brand (ARM implementers and parts included), and the number
  of physical cores.
- **Memory and swap** (`hostprobe.system`): figures from `/proc/meminfo`, with cgroup v2 and
  cgroup v1 memory limits taken into account.
- **Processes** (`hostprobe.process`): status, CPU usage, memory, disk I/O, command line,
  environment, executable, working and root directories, user and group ids, and threads.
- **Disks** (`hostprobe.disk`): mount point, file system, total and available space, SSD or
  HDD, removable (USB) or not. Pseudo, in-memory and network file systems are left out.
- **Network interfaces** (`hostprobe.network`): bytes, packets and errors received and
  transmitted, in total and since the previous refresh.
- **Temperature sensors** (`hostprobe.component`): readings from `hwmon`, with the maximum
  seen and the critical threshold.
- **Host identity** (`hostprobe.system`): host name, kernel version, distribution name,
  version and id, uptime, boot time and load average.
- **Signals** (`hostprobe.signals`): portable signal names mapped to the host's numbers.

## Installation

```
pip install hostprobe
```

Python 3.10 or later is required. The package has no third-party dependencies.

## Usage

```python
from hostprobe.system import System
from hostprobe.cpu import CpuRefreshKind
from hostprobe.process import ProcessRefreshKind

system = System()
system.refresh_memory()
print("memory:", system.used_memory(), "/", system.total_memory(), "bytes")
print("swap:", system.used_swap(), "/", system.total_swap(), "bytes")

system.refresh_cpu_specifics(CpuRefreshKind.everything())
for cpu in system.cpus():
    print(cpu.name, cpu.brand, cpu.frequency, "MHz", cpu.cpu_usage, "%")
print("physical cores:", system.physical_core_count())

system.refresh_processes_specifics(ProcessRefreshKind.everything())
for pid, process in system.processes().items():
    print(pid, process.name, process.status, process.memory, process.cpu_usage)

print(system.name(), system.os_version(), system.kernel_version())
print(system.long_os_version(), system.distribution_id(), system.host_name())
print("uptime:", system.uptime(), "boot time:", system.boot_time())
print("load:", system.load_average())
```

CPU usage, process CPU usage and the network and disk I/O deltas are worked out from the
difference between two readings, so refresh at least twice. CPU times are not re-read when
the previous reading is less than `hostprobe.cpu.MINIMUM_CPU_UPDATE_INTERVAL` (0.2 seconds)
old; the earlier figures are kept.

`System.refresh_process_specifics(pid, refresh_kind)` refreshes a single process and returns
whether it could be read; `System.process(pid)` returns it, or `None`.

### Disks, networks and sensors

```python
from hostprobe.disk import Disks
from hostprobe.network import Networks
from hostprobe.component import Components

disks = Disks()
disks.refresh_list()
for disk in disks:
    print(disk.mount_point, disk.kind, disk.total_space, disk.available_space, disk.is_removable)

networks = Networks()
networks.refresh_list()
networks.refresh()
for name, data in networks:
    print(name, data.received(), data.transmitted(), data.totals.rx_bytes)

components = Components()
components.refresh_list()
for component in components:
    print(component.label, component.temperature, component.max, component.critical)
```

`Networks.refresh_list()` adds new interfaces and drops vanished ones; `Networks.refresh()`
only re-reads the counters of the interfaces already known. `Disk.refresh()` and
`Component.refresh()` re-read a single disk's available space or a single sensor.

### Other source paths

Most readers take the location of their data as an argument, so they can be pointed at a copy
of these files, for example a snapshot or test fixtures:

- `System(proc_root=..., cgroup_root=..., etc_root=..., sys_cpu_dir=..., info=...)`, where
  `info` is a `hostprobe.process.ProcfsInfo` holding page size, clock ticks per second and
  boot time;
- `CpuSet(stat_path, cpuinfo_path, sys_cpu_dir)`;
- `Networks(sysfs_net)` and `refresh_from_sysfs(interfaces, sysfs_net)`;
- `Components(hwmon_root)` and `read_hwmon(folder)`;
- `Disks(mounts_path)`, `parse_mounts(content)` and `collect_disks(content, removable_entries)`.

Disk space always comes from `statvfs` on the real mount points, the SSD/HDD check always
reads `/sys/block`, and `Disks.refresh_list()` always looks for USB devices in
`/dev/disk/by-id/`.

Parsers that work on text alone are exposed too, for instance
`hostprobe.cpuinfo.parse_vendor_and_brand`, `hostprobe.cpuinfo.parse_physical_core_count`,
`hostprobe.process.parse_stat_file`, `hostprobe.process.parse_uid_and_gid`,
`hostprobe.system.parse_load_average` and `hostprobe.system.system_info_linux`.

### Signals

```python
from hostprobe.signals import Signal, signal_number, supported_signals

print(signal_number(Signal.TERM))
print(supported_signals())
```

`Process.kill_with(signal)` sends a signal to a process. It returns `None` if the host has no
such signal, otherwise whether the signal was sent. `Process.wait()` blocks until the process
has ended, and `Process.session_id()` returns its session id.

## What it does not do

- It works on Linux only; there is no support for other operating systems.
- It is a library only: there is no command-line tool and nothing to run.
- It does not list the host's users or groups, and it does not report the MAC or IP
  addresses of network interfaces.
- It keeps nothing between runs; every figure comes from a fresh read of the host.