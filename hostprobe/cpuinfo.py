"""CPU identification and core counting from ``/proc/cpuinfo``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from hostprobe.utils import read_text

_log = logging.getLogger(__name__)

CPUINFO_PATH = "/proc/cpuinfo"

_ARM_IMPLEMENTERS = {
    0x41: "ARM",
    0x42: "Broadcom",
    0x43: "Cavium",
    0x44: "DEC",
    0x46: "FUJITSU",
    0x48: "HiSilicon",
    0x49: "Infineon",
    0x4D: "Motorola/Freescale",
    0x4E: "NVIDIA",
    0x50: "APM",
    0x51: "Qualcomm",
    0x53: "Samsung",
    0x56: "Marvell",
    0x61: "Apple",
    0x66: "Faraday",
    0x69: "Intel",
    0x70: "Phytium",
    0xC0: "Ampere",
}

_ARM_PARTS = {
    # ARM
    (0x41, 0x810): "ARM810",
    (0x41, 0x920): "ARM920",
    (0x41, 0x922): "ARM922",
    (0x41, 0x926): "ARM926",
    (0x41, 0x940): "ARM940",
    (0x41, 0x946): "ARM946",
    (0x41, 0x966): "ARM966",
    (0x41, 0xA20): "ARM1020",
    (0x41, 0xA22): "ARM1022",
    (0x41, 0xA26): "ARM1026",
    (0x41, 0xB02): "ARM11 MPCore",
    (0x41, 0xB36): "ARM1136",
    (0x41, 0xB56): "ARM1156",
    (0x41, 0xB76): "ARM1176",
    (0x41, 0xC05): "Cortex-A5",
    (0x41, 0xC07): "Cortex-A7",
    (0x41, 0xC08): "Cortex-A8",
    (0x41, 0xC09): "Cortex-A9",
    (0x41, 0xC0D): "Cortex-A17",  # Originally A12
    (0x41, 0xC0F): "Cortex-A15",
    (0x41, 0xC0E): "Cortex-A17",
    (0x41, 0xC14): "Cortex-R4",
    (0x41, 0xC15): "Cortex-R5",
    (0x41, 0xC17): "Cortex-R7",
    (0x41, 0xC18): "Cortex-R8",
    (0x41, 0xC20): "Cortex-M0",
    (0x41, 0xC21): "Cortex-M1",
    (0x41, 0xC23): "Cortex-M3",
    (0x41, 0xC24): "Cortex-M4",
    (0x41, 0xC27): "Cortex-M7",
    (0x41, 0xC60): "Cortex-M0+",
    (0x41, 0xD01): "Cortex-A32",
    (0x41, 0xD02): "Cortex-A34",
    (0x41, 0xD03): "Cortex-A53",
    (0x41, 0xD04): "Cortex-A35",
    (0x41, 0xD05): "Cortex-A55",
    (0x41, 0xD06): "Cortex-A65",
    (0x41, 0xD07): "Cortex-A57",
    (0x41, 0xD08): "Cortex-A72",
    (0x41, 0xD09): "Cortex-A73",
    (0x41, 0xD0A): "Cortex-A75",
    (0x41, 0xD0B): "Cortex-A76",
    (0x41, 0xD0C): "Neoverse-N1",
    (0x41, 0xD0D): "Cortex-A77",
    (0x41, 0xD0E): "Cortex-A76AE",
    (0x41, 0xD13): "Cortex-R52",
    (0x41, 0xD20): "Cortex-M23",
    (0x41, 0xD21): "Cortex-M33",
    (0x41, 0xD40): "Neoverse-V1",
    (0x41, 0xD41): "Cortex-A78",
    (0x41, 0xD42): "Cortex-A78AE",
    (0x41, 0xD43): "Cortex-A65AE",
    (0x41, 0xD44): "Cortex-X1",
    (0x41, 0xD46): "Cortex-A510",
    (0x41, 0xD47): "Cortex-A710",
    (0x41, 0xD48): "Cortex-X2",
    (0x41, 0xD49): "Neoverse-N2",
    (0x41, 0xD4A): "Neoverse-E1",
    (0x41, 0xD4B): "Cortex-A78C",
    (0x41, 0xD4C): "Cortex-X1C",
    (0x41, 0xD4D): "Cortex-A715",
    (0x41, 0xD4E): "Cortex-X3",
    # Broadcom
    (0x42, 0x00F): "Brahma-B15",
    (0x42, 0x100): "Brahma-B53",
    (0x42, 0x516): "ThunderX2",
    # Cavium
    (0x43, 0x0A0): "ThunderX",
    (0x43, 0x0A1): "ThunderX-88XX",
    (0x43, 0x0A2): "ThunderX-81XX",
    (0x43, 0x0A3): "ThunderX-83XX",
    (0x43, 0x0AF): "ThunderX2-99xx",
    # DEC
    (0x44, 0xA10): "SA110",
    (0x44, 0xA11): "SA1100",
    # Fujitsu
    (0x46, 0x001): "A64FX",
    # HiSilicon
    (0x48, 0xD01): "Kunpeng-920",
    # NVIDIA
    (0x4E, 0x000): "Denver",
    (0x4E, 0x003): "Denver 2",
    (0x4E, 0x004): "Carmel",
    # APM
    (0x50, 0x000): "X-Gene",
    # Qualcomm
    (0x51, 0x00F): "Scorpion",
    (0x51, 0x02D): "Scorpion",
    (0x51, 0x04D): "Krait",
    (0x51, 0x06F): "Krait",
    (0x51, 0x201): "Kryo",
    (0x51, 0x205): "Kryo",
    (0x51, 0x211): "Kryo",
    (0x51, 0x800): "Falkor-V1/Kryo",
    (0x51, 0x801): "Kryo-V2",
    (0x51, 0x802): "Kryo-3XX-Gold",
    (0x51, 0x803): "Kryo-3XX-Silver",
    (0x51, 0x804): "Kryo-4XX-Gold",
    (0x51, 0x805): "Kryo-4XX-Silver",
    (0x51, 0xC00): "Falkor",
    (0x51, 0xC01): "Saphira",
    # Samsung
    (0x53, 0x001): "exynos-m1",
    # Marvell
    (0x56, 0x131): "Feroceon-88FR131",
    (0x56, 0x581): "PJ4/PJ4b",
    (0x56, 0x584): "PJ4B-MP",
    # Apple
    (0x61, 0x020): "Icestorm-A14",
    (0x61, 0x021): "Firestorm-A14",
    (0x61, 0x022): "Icestorm-M1",
    (0x61, 0x023): "Firestorm-M1",
    (0x61, 0x024): "Icestorm-M1-Pro",
    (0x61, 0x025): "Firestorm-M1-Pro",
    (0x61, 0x028): "Icestorm-M1-Max",
    (0x61, 0x029): "Firestorm-M1-Max",
    (0x61, 0x030): "Blizzard-A15",
    (0x61, 0x031): "Avalanche-A15",
    (0x61, 0x032): "Blizzard-M2",
    (0x61, 0x033): "Avalanche-M2",
    # Faraday
    (0x66, 0x526): "FA526",
    (0x66, 0x626): "FA626",
    # Intel
    (0x69, 0x200): "i80200",
    (0x69, 0x210): "PXA250A",
    (0x69, 0x212): "PXA210A",
    (0x69, 0x242): "i80321-400",
    (0x69, 0x243): "i80321-600",
    (0x69, 0x290): "PXA250B/PXA26x",
    (0x69, 0x292): "PXA210B",
    (0x69, 0x2C2): "i80321-400-B0",
    (0x69, 0x2C3): "i80321-600-B0",
    (0x69, 0x2D0): "PXA250C/PXA255/PXA26x",
    (0x69, 0x2D2): "PXA210C",
    (0x69, 0x411): "PXA27x",
    (0x69, 0x41C): "IPX425-533",
    (0x69, 0x41D): "IPX425-400",
    (0x69, 0x41F): "IPX425-266",
    (0x69, 0x682): "PXA32x",
    (0x69, 0x683): "PXA930/PXA935",
    (0x69, 0x688): "PXA30x",
    (0x69, 0x689): "PXA31x",
    (0x69, 0xB11): "SA1110",
    (0x69, 0xC12): "IPX1200",
    # Phytium
    (0x70, 0x660): "FTC660",
    (0x70, 0x661): "FTC661",
    (0x70, 0x662): "FTC662",
    (0x70, 0x663): "FTC663",
}


def arm_implementer(code: int) -> Optional[str]:
    """Return the vendor name of an ARM ``CPU implementer`` code, if known."""
    return _ARM_IMPLEMENTERS.get(code)


def arm_part(implementer: int, part: int) -> Optional[str]:
    """Return the core name of an ARM ``CPU part`` for its implementer, if known."""
    return _ARM_PARTS.get((implementer, part))


def _value(line: str) -> str:
    return line.split(":")[-1].strip()


def _hex_value(line: str) -> int:
    raw = line.split(":")[-1].strip()
    if not raw.startswith("0x"):
        return 0
    return int(raw[2:], 16)


def _is_new_processor(line: str) -> bool:
    return line.startswith("processor\t")


@dataclass
class _CpuEntry:
    index: int
    vendor_id: Optional[str] = None
    brand: Optional[str] = None
    implementer: Optional[int] = None
    part: Optional[int] = None

    def has_all_info(self) -> bool:
        return (self.brand is not None and self.vendor_id is not None) or (
            self.implementer is not None and self.part is not None
        )

    def resolve(self) -> tuple[str, str]:
        if self.implementer is not None and self.part is not None:
            vendor_id = arm_implementer(self.implementer)
            # "model name" may exist on ARM too; use it if the part is unknown.
            brand = arm_part(self.implementer, self.part)
            if brand is None:
                brand = self.brand
        else:
            vendor_id, brand = self.vendor_id, self.brand
        return vendor_id or "", brand or ""


def _read_entry(entry: _CpuEntry, lines: Iterator[str]) -> None:
    for line in lines:
        if line.startswith("vendor_id\t"):
            entry.vendor_id = _value(line)
        elif line.startswith("model name\t"):
            entry.brand = _value(line)
        elif line.startswith("CPU implementer\t"):
            entry.implementer = _hex_value(line)
        elif line.startswith("CPU part\t"):
            entry.part = _hex_value(line)
        elif entry.has_all_info() or _is_new_processor(line):
            break


def parse_vendor_and_brand(text: str) -> dict[int, tuple[str, str]]:
    """Map each processor index in cpuinfo *text* to its ``(vendor_id, brand)``.

    Raises ``ValueError`` if a ``0x`` hexadecimal field is malformed.
    """
    cpus: dict[int, tuple[str, str]] = {}
    lines = iter(text.split("\n"))
    for line in lines:
        if not _is_new_processor(line):
            continue
        fields = line.split(":")
        try:
            index = int(fields[1].strip()) if len(fields) > 1 else None
        except ValueError:
            index = None
        if index is None or index < 0:
            _log.debug("couldn't get processor ID from %r, ignoring this core", line)
            continue
        entry = _CpuEntry(index=index)
        _read_entry(entry, lines)
        cpus[entry.index] = entry.resolve()
    return cpus


def vendor_ids_and_brands(
    path: Union[str, Path] = CPUINFO_PATH,
) -> dict[int, tuple[str, str]]:
    """Read *path* and return its vendor and brand per processor; empty if unreadable."""
    try:
        text = read_text(path)
    except (OSError, UnicodeDecodeError):
        return {}
    return parse_vendor_and_brand(text)


def _lines(text: str) -> list[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _after_colon(line: str) -> str:
    return line.split(":", 1)[-1].strip()


def parse_physical_core_count(text: str) -> int:
    """Count the distinct physical cores described by cpuinfo *text*.

    Cores are told apart by their ``core id`` and ``physical id``; where these
    are missing, every ``processor`` entry counts as a physical core.
    """
    cores: set[str] = set()
    core_id = physical_id = cpu = ""

    def add_core() -> None:
        if core_id and physical_id:
            cores.add(f"{core_id} {physical_id}")
        elif cpu:
            cores.add(cpu)

    for line in _lines(text):
        if not line:
            add_core()
            core_id = physical_id = cpu = ""
        elif line.startswith("processor"):
            cpu = _after_colon(line)
        elif line.startswith("core id"):
            core_id = _after_colon(line)
        elif line.startswith("physical id"):
            physical_id = _after_colon(line)
    add_core()
    return len(cores)


def physical_core_count(path: Union[str, Path] = CPUINFO_PATH) -> Optional[int]:
    """Return the number of physical cores listed in *path*, or ``None`` if unreadable."""
    try:
        text = read_text(path)
    except (OSError, UnicodeDecodeError) as exc:
        _log.debug("cannot read %s: %s", path, exc)
        return None
    return parse_physical_core_count(text)