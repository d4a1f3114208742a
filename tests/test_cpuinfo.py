import pytest

from hostprobe.cpuinfo import (
    arm_implementer,
    arm_part,
    parse_physical_core_count,
    parse_vendor_and_brand,
    physical_core_count,
    vendor_ids_and_brands,
)

X86_CPUINFO = (
    "processor\t: 0\n"
    "vendor_id\t: GenuineIntel\n"
    "cpu family\t: 6\n"
    "model name\t: Example CPU Model\n"
    "stepping\t: 10\n"
    "physical id\t: 0\n"
    "core id\t\t: 0\n"
    "\n"
    "processor\t: 1\n"
    "vendor_id\t: GenuineIntel\n"
    "cpu family\t: 6\n"
    "model name\t: Example CPU Model\n"
    "stepping\t: 10\n"
    "physical id\t: 0\n"
    "core id\t\t: 1\n"
    "\n"
)

RPI_CPUINFO = (
    "processor\t: 0\n"
    "model name\t: ARMv7 Processor rev 4 (v7l)\n"
    "BogoMIPS\t: 38.40\n"
    "CPU implementer\t: 0x41\n"
    "CPU architecture: 7\n"
    "CPU variant\t: 0x0\n"
    "CPU part\t: 0xd03\n"
    "CPU revision\t: 4\n"
    "\n"
)


def _x86_block(processor, core, physical):
    return (
        f"processor\t: {processor}\n"
        f"physical id\t: {physical}\n"
        f"core id\t\t: {core}\n"
        "\n"
    )


def test_arm_implementer_known_and_unknown():
    assert arm_implementer(0x41) == "ARM"
    assert arm_implementer(0xC0) == "Ampere"
    assert arm_implementer(0x99) is None


def test_arm_part_known_and_unknown():
    assert arm_part(0x41, 0xD03) == "Cortex-A53"
    assert arm_part(0x48, 0xD01) == "Kunpeng-920"
    assert arm_part(0x61, 0x023) == "Firestorm-M1"
    assert arm_part(0x41, 0xFFF) is None
    assert arm_part(0x99, 0xD03) is None


def test_parse_vendor_and_brand_x86():
    result = parse_vendor_and_brand(X86_CPUINFO)
    assert result == {
        0: ("GenuineIntel", "Example CPU Model"),
        1: ("GenuineIntel", "Example CPU Model"),
    }


def test_parse_vendor_and_brand_arm_uses_tables():
    assert parse_vendor_and_brand(RPI_CPUINFO) == {0: ("ARM", "Cortex-A53")}


def test_parse_vendor_and_brand_arm_unknown_part_falls_back_to_model_name():
    text = RPI_CPUINFO.replace("0xd03", "0xfff")
    assert parse_vendor_and_brand(text) == {0: ("ARM", "ARMv7 Processor rev 4 (v7l)")}


def test_parse_vendor_and_brand_unknown_implementer_gives_empty_vendor():
    text = RPI_CPUINFO.replace("CPU implementer\t: 0x41", "CPU implementer\t: 0x99")
    assert parse_vendor_and_brand(text) == {0: ("", "ARMv7 Processor rev 4 (v7l)")}


def test_parse_vendor_and_brand_ignores_bad_index():
    text = "processor\t: abc\nvendor_id\t: GenuineIntel\nmodel name\t: Example\n"
    assert parse_vendor_and_brand(text) == {}


def test_parse_vendor_and_brand_rejects_malformed_hex():
    text = "processor\t: 0\nCPU implementer\t: 0xzz\n"
    with pytest.raises(ValueError):
        parse_vendor_and_brand(text)


def test_vendor_ids_and_brands_reads_file(tmp_path):
    path = tmp_path / "cpuinfo"
    path.write_text(X86_CPUINFO)
    assert vendor_ids_and_brands(path) == parse_vendor_and_brand(X86_CPUINFO)


def test_vendor_ids_and_brands_missing_file(tmp_path):
    assert vendor_ids_and_brands(tmp_path / "missing") == {}


def test_physical_core_count_counts_hyperthreads_once():
    with_siblings = "".join(
        _x86_block(proc, core, 0) for proc, core in [(0, 0), (1, 1), (2, 0), (3, 1)]
    )
    without_siblings = "".join(_x86_block(proc, proc, 0) for proc in range(2))
    assert parse_physical_core_count(with_siblings) == parse_physical_core_count(
        without_siblings
    )
    assert parse_physical_core_count(with_siblings) == 2


def test_physical_core_count_distinguishes_sockets():
    same_socket = "".join(_x86_block(proc, 0, 0) for proc in range(2))
    two_sockets = "".join(_x86_block(proc, 0, proc) for proc in range(2))
    assert parse_physical_core_count(two_sockets) > parse_physical_core_count(same_socket)


def test_physical_core_count_without_core_ids_counts_processors():
    processors = [0, 1, 2, 3]
    text = "".join(f"processor\t: {p}\nBogoMIPS\t: 38.40\n\n" for p in processors)
    assert parse_physical_core_count(text) == len(processors)


def test_physical_core_count_last_block_without_blank_line():
    text = "processor\t: 0\n\nprocessor\t: 1"
    with_blank = text + "\n\n"
    assert parse_physical_core_count(text) == parse_physical_core_count(with_blank)
    assert parse_physical_core_count(text) == len(["0", "1"])


def test_physical_core_count_empty_text():
    assert parse_physical_core_count("") == 0


def test_physical_core_count_file(tmp_path):
    path = tmp_path / "cpuinfo"
    path.write_text(X86_CPUINFO)
    assert physical_core_count(path) == parse_physical_core_count(X86_CPUINFO)


def test_physical_core_count_missing_file(tmp_path):
    assert physical_core_count(tmp_path / "missing") is None