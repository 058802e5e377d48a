"""Small filesystem, PATH and polling helpers."""

from __future__ import annotations

import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

T = TypeVar("T")


def is_executable(path: str | os.PathLike[str]) -> bool:
    """Return True if the path has any execute permission bit set."""
    try:
        mode = os.stat(path).st_mode
    except OSError:
        return False
    return mode & 0o111 != 0


def which(name: str) -> Path | None:
    """Return the first executable file called ``name`` found on ``$PATH``."""
    search = os.environ.get("PATH")
    if search is None:
        return None
    for directory in search.split(os.pathsep):
        candidate = Path(directory) / name
        if candidate.is_file() and is_executable(candidate):
            return candidate
    return None


def has_command(name: str) -> bool:
    """Return True if ``name`` is available on ``$PATH``."""
    return which(name) is not None


def runtime_dir() -> Path:
    """Return ``$XDG_RUNTIME_DIR`` if set, otherwise the system temp directory."""
    value = os.environ.get("XDG_RUNTIME_DIR")
    if value is not None:
        return Path(value)
    return Path(tempfile.gettempdir())


def poll_until(
    timeout: float,
    interval: float,
    check: Callable[[], T | None],
) -> T | None:
    """Call ``check`` every ``interval`` seconds until it returns a value.

    ``check`` returns None to keep polling. The first other value is
    returned; None is returned once ``timeout`` seconds have elapsed.
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = check()
        if result is not None:
            return result
        time.sleep(interval)
    return None