import os

import pytest

from hostprobe.utils import read_link_or_empty, read_text, to_u64


def test_read_text_returns_whole_content(tmp_path):
    path = tmp_path / "data"
    path.write_text("line one\nline two\n", encoding="utf-8")
    assert read_text(path) == "line one\nline two\n"


def test_read_text_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_text(tmp_path / "missing")


def test_read_text_invalid_utf8_raises(tmp_path):
    path = tmp_path / "bin"
    path.write_bytes(b"\xff\xfe\xfa")
    with pytest.raises(UnicodeDecodeError):
        read_text(path)


def test_read_link_returns_target(tmp_path):
    target = tmp_path / "target"
    target.write_text("x")
    link = tmp_path / "link"
    os.symlink(target, link)
    assert read_link_or_empty(link) == str(target)


def test_read_link_missing_gives_empty(tmp_path):
    assert read_link_or_empty(tmp_path / "nothing") == ""


def test_read_link_on_regular_file_gives_empty(tmp_path):
    path = tmp_path / "plain"
    path.write_text("x")
    assert read_link_or_empty(path) == ""


@pytest.mark.parametrize("data", [b"0", b"7", b"12345", b"18446744073709551615"])
def test_to_u64_parses_digits(data):
    assert to_u64(data) == int(data.decode())


def test_to_u64_accepts_str():
    assert to_u64("4096") == to_u64(b"4096")


def test_to_u64_empty_is_zero():
    assert to_u64(b"") == 0


@pytest.mark.parametrize("data", [b"12a", b"-1", b" 1", b"1.5"])
def test_to_u64_rejects_non_digits(data):
    with pytest.raises(ValueError):
        to_u64(data)