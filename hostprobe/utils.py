"""Small helpers for reading procfs and sysfs files."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Union

_log = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


def read_text(path: PathLike) -> str:
    """Return the whole content of a UTF-8 text file.

    Raises ``OSError`` if the file cannot be read and ``UnicodeDecodeError``
    if its content is not valid UTF-8.
    """
    with open(path, encoding="utf-8") as handle:
        return handle.read()


def read_link_or_empty(path: PathLike) -> str:
    """Return the target of the symbolic link at *path*, or ``""`` if it cannot be read."""
    try:
        return os.readlink(path)
    except OSError as exc:
        _log.debug("failed to get real path for %s: %s", Path(path), exc)
        return ""


def to_u64(data: Union[bytes, str]) -> int:
    """Parse a run of ASCII decimal digits; an empty input gives 0."""
    raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
    if not raw:
        return 0
    if not raw.isdigit():
        raise ValueError(f"not a decimal number: {raw!r}")
    return int(raw)