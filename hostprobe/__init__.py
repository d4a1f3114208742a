"""Host information for Linux: CPUs, memory, processes, disks, networks and sensors."""

__version__ = "0.1.0"