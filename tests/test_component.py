import math

import pytest

from hostprobe.component import Component, Components, ThermalSensorType, read_hwmon


def write_temp(path, celsius):
    path.write_text(f"{int(round(celsius * 1000))}\n")


@pytest.fixture
def hwmon(tmp_path):
    folder = tmp_path / "hwmon0"
    folder.mkdir()
    (folder / "name").write_text("coretemp\n")
    return folder


def test_sensor_type_mapping():
    assert ThermalSensorType.from_raw(0) is ThermalSensorType.CPU_EMBEDDED_DIODE
    assert ThermalSensorType.from_raw(1) is ThermalSensorType.TRANSISTOR_3904
    assert ThermalSensorType.from_raw(6) is ThermalSensorType.INTEL_PECI
    assert ThermalSensorType.from_raw(2) is ThermalSensorType.UNKNOWN
    assert ThermalSensorType.from_raw(200) is ThermalSensorType.UNKNOWN


def test_format_label_variants():
    both = Component(name="chip", label="Core 0", device_model="model")
    assert both.format_label("temp", 1) == "chip Core 0 model temp1"
    only_label = Component(name="chip", label="Core 0")
    assert only_label.format_label("temp", 1) == "chip Core 0"
    only_model = Component(name="chip", device_model="model")
    assert only_model.format_label("temp", 3) == "chip model"
    neither = Component(name="chip")
    assert neither.format_label("temp", 3) == "chip temp3"


def test_read_hwmon_basic(hwmon):
    write_temp(hwmon / "temp1_input", 45.0)
    write_temp(hwmon / "temp1_crit", 100.0)
    (hwmon / "temp1_label").write_text("Core 0\n")
    components = read_hwmon(hwmon)
    assert len(components) == 1
    comp = components[0]
    assert comp.label == "coretemp Core 0"
    assert comp.name == "coretemp"
    assert comp.temperature == 45.0
    assert comp.max == 45.0
    assert comp.critical == 100.0


def test_sensor_without_input_is_dropped(hwmon):
    write_temp(hwmon / "temp1_input", 30.0)
    write_temp(hwmon / "temp2_max", 80.0)
    components = read_hwmon(hwmon)
    assert [c.label for c in components] == ["coretemp temp1"]


def test_highest_file_sets_max(hwmon):
    write_temp(hwmon / "temp1_input", 40.0)
    write_temp(hwmon / "temp1_highest", 60.0)
    (comp,) = read_hwmon(hwmon)
    assert comp.max == 60.0
    assert comp.temperature == 40.0


def test_device_model_used_in_label(hwmon):
    (hwmon / "device").mkdir()
    (hwmon / "device" / "model").write_text("DISK-MODEL\n")
    write_temp(hwmon / "temp1_input", 35.0)
    (comp,) = read_hwmon(hwmon)
    assert comp.label == "coretemp DISK-MODEL"


def test_thresholds_and_type(hwmon):
    write_temp(hwmon / "temp1_input", 35.0)
    write_temp(hwmon / "temp1_max", 90.0)
    write_temp(hwmon / "temp1_min", 5.0)
    (hwmon / "temp1_type").write_text("3\n")
    (comp,) = read_hwmon(hwmon)
    assert comp.threshold_max == 90.0
    assert comp.threshold_min == 5.0
    assert comp.sensor_type is ThermalSensorType.THERMAL_DIODE


@pytest.mark.parametrize("bad_name", ["temp_foo", "tempX"])
def test_malformed_file_discards_folder(hwmon, bad_name):
    write_temp(hwmon / "temp1_input", 35.0)
    (hwmon / bad_name).write_text("1\n")
    assert read_hwmon(hwmon) == []


def test_missing_folder_gives_nothing(tmp_path):
    assert read_hwmon(tmp_path / "absent") == []


def test_refresh_updates_temperature_and_max(hwmon):
    write_temp(hwmon / "temp1_input", 45.0)
    (comp,) = read_hwmon(hwmon)
    write_temp(hwmon / "temp1_input", 50.0)
    comp.refresh()
    assert comp.temperature == 50.0
    assert comp.max == 50.0
    write_temp(hwmon / "temp1_input", 40.0)
    comp.refresh()
    assert comp.temperature == 40.0
    assert comp.max == 50.0


def test_refresh_with_unreadable_input(hwmon):
    write_temp(hwmon / "temp1_input", 45.0)
    (comp,) = read_hwmon(hwmon)
    (hwmon / "temp1_input").unlink()
    comp.refresh()
    assert comp.temperature is None
    assert comp.max is None


def test_unparsable_temperature_is_none(hwmon):
    (hwmon / "temp1_input").write_text("hot\n")
    (comp,) = read_hwmon(hwmon)
    assert comp.temperature is None
    assert not (comp.max is not None and math.isnan(comp.max))


def test_components_refresh_list(tmp_path):
    root = tmp_path / "hwmon-class"
    root.mkdir()
    first = root / "hwmon0"
    first.mkdir()
    (first / "name").write_text("acpitz\n")
    write_temp(first / "temp1_input", 27.8)
    other = root / "other0"
    other.mkdir()
    write_temp(other / "temp1_input", 20.0)
    (root / "hwmon9").write_text("not a directory")

    components = Components(root)
    assert len(components) == 0
    components.refresh_list()
    assert len(components) == 1
    assert [c.label for c in components] == ["acpitz temp1"]


def test_components_missing_root(tmp_path):
    components = Components(tmp_path / "nope")
    components.refresh_list()
    assert list(components) == []