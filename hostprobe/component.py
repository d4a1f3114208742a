"""Temperature sensors read from the hwmon sysfs interface."""

from __future__ import annotations

import enum
import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

_log = logging.getLogger(__name__)

_UNSIGNED = re.compile(r"\+?[0-9]+")
_SIGNED = re.compile(r"[+-]?[0-9]+")

_I32_MIN, _I32_MAX = -(2**31), 2**31 - 1
_U32_MAX = 2**32 - 1


class ThermalSensorType(enum.Enum):
    """Kind of thermal sensor as reported in ``tempN_type``."""

    CPU_EMBEDDED_DIODE = "cpu_embedded_diode"
    TRANSISTOR_3904 = "transistor_3904"
    THERMAL_DIODE = "thermal_diode"
    THERMISTOR = "thermistor"
    AMD_AMDSI = "amd_amdsi"
    INTEL_PECI = "intel_peci"
    UNKNOWN = "unknown"

    @classmethod
    def from_raw(cls, value: int) -> "ThermalSensorType":
        """Map the raw number from sysfs to a sensor type."""
        return _RAW_SENSOR_TYPES.get(value, cls.UNKNOWN)


_RAW_SENSOR_TYPES = {
    0: ThermalSensorType.CPU_EMBEDDED_DIODE,
    1: ThermalSensorType.TRANSISTOR_3904,
    3: ThermalSensorType.THERMAL_DIODE,
    4: ThermalSensorType.THERMISTOR,
    5: ThermalSensorType.AMD_AMDSI,
    6: ThermalSensorType.INTEL_PECI,
}


def _read_line(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8").rstrip()
    except (OSError, UnicodeDecodeError):
        return None


def _parse_int(text: str, pattern: re.Pattern, low: int, high: int) -> Optional[int]:
    if not pattern.fullmatch(text):
        return None
    value = int(text)
    return value if low <= value <= high else None


def _read_number(path: Path, low: int, high: int) -> Optional[int]:
    try:
        with open(path, "rb") as handle:
            raw = handle.read(32)
        text = raw.decode("utf-8").strip()
    except (OSError, UnicodeDecodeError):
        return None
    return _parse_int(text, _SIGNED, low, high)


def _read_temperature(path: Path) -> Optional[float]:
    """Read a millidegree Celsius value and return degrees Celsius."""
    millis = _read_number(path, _I32_MIN, _I32_MAX)
    return None if millis is None else millis / 1000.0


@dataclass
class Component:
    """A temperature sensor; temperatures are in degrees Celsius."""

    name: str = ""
    label: str = ""
    device_model: Optional[str] = None
    temperature: Optional[float] = None
    max: Optional[float] = None
    threshold_max: Optional[float] = None
    threshold_min: Optional[float] = None
    threshold_critical: Optional[float] = None
    sensor_type: Optional[ThermalSensorType] = None
    input_file: Optional[Path] = None
    highest_file: Optional[Path] = None

    @property
    def critical(self) -> Optional[float]:
        """The critical threshold reported by the chip, if any."""
        return self.threshold_critical

    def format_label(self, kind: str, id: int) -> str:
        """Build a label from the chip name, sensor label and device model."""
        if self.label and self.device_model is not None:
            return f"{self.name} {self.label} {self.device_model} {kind}{id}"
        if self.label:
            return f"{self.name} {self.label}"
        if self.device_model is not None:
            return f"{self.name} {self.device_model}"
        return f"{self.name} {kind}{id}"

    def refresh(self) -> None:
        """Re-read the current temperature and update the maximum."""
        current = _read_temperature(self.input_file) if self.input_file is not None else None
        highest = (
            _read_temperature(self.highest_file) if self.highest_file is not None else None
        )
        if highest is None and self.temperature is not None and current is not None:
            highest = current if math.isnan(self.temperature) else max(self.temperature, current)
        self.max = highest
        self.temperature = current

    def _fill(self, item: str, path: Path) -> None:
        if item == "type":
            raw = _read_number(path, 0, 255)
            self.sensor_type = None if raw is None else ThermalSensorType.from_raw(raw)
        elif item == "input":
            temperature = _read_temperature(path)
            self.input_file = path
            self.temperature = temperature
            if self.max is None:
                self.max = temperature
        elif item == "label":
            self.label = _read_line(path) or ""
        elif item == "highest":
            highest = _read_temperature(path)
            self.max = highest if highest is not None else self.temperature
            self.highest_file = path
        elif item == "max":
            self.threshold_max = _read_temperature(path)
        elif item == "min":
            self.threshold_min = _read_temperature(path)
        elif item == "crit":
            self.threshold_critical = _read_temperature(path)
        else:
            _log.debug("unsupported hwmon temperature file: %s", path)


def read_hwmon(folder: Union[str, Path]) -> list[Component]:
    """Read the temperature sensors of one ``hwmonN`` folder.

    Sensors without a ``tempN_input`` file are left out. A temperature file
    whose name cannot be parsed makes the whole folder yield nothing.
    """
    folder = Path(folder)
    try:
        entries = sorted(folder.iterdir())
    except OSError:
        return []
    name = _read_line(folder / "name") or ""
    device_model = _read_line(folder / "device" / "model")

    found: dict[int, Component] = {}
    for entry in entries:
        filename = entry.name
        if entry.is_dir() or not filename.startswith("temp"):
            continue
        prefix, sep, item = filename.partition("_")
        if not sep:
            return []
        sensor_id = _parse_int(prefix[4:], _UNSIGNED, 0, _U32_MAX)
        if sensor_id is None:
            return []
        component = found.setdefault(
            sensor_id, Component(name=name, device_model=device_model)
        )
        component._fill(item, entry)

    components = []
    for sensor_id in sorted(found):
        component = found[sensor_id]
        component.label = component.format_label("temp", sensor_id)
        if component.input_file is not None:
            components.append(component)
    return components


class Components:
    """The temperature sensors found under a hwmon class directory."""

    def __init__(self, hwmon_root: Union[str, Path] = "/sys/class/hwmon") -> None:
        self._root = Path(hwmon_root)
        self._components: list[Component] = []

    def refresh_list(self) -> None:
        """Rebuild the sensor list from the ``hwmonN`` folders."""
        self._components = []
        try:
            entries = sorted(self._root.iterdir())
        except OSError:
            return
        for entry in entries:
            if entry.is_dir() and entry.name.startswith("hwmon"):
                self._components.extend(read_hwmon(entry))

    def __iter__(self) -> Iterator[Component]:
        return iter(self._components)

    def __len__(self) -> int:
        return len(self._components)