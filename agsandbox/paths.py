"""Expansion of configured paths: ``~``, environment variables and cwd."""

from __future__ import annotations

import os
import re
from pathlib import Path

_VAR_PATTERN = re.compile(r"\$(?:\{([^}]*)\}?|([A-Za-z0-9_]*))")


class PathExpandError(Exception):
    """A path could not be expanded."""


def expand_path(raw: str) -> Path:
    """Expand ``~`` and ``$VAR``/``${VAR}``, then make the path absolute."""
    expanded = _expand_env_vars(_expand_tilde(raw))
    path = Path(expanded)
    if path.is_absolute():
        return path
    try:
        cwd = os.getcwd()
    except OSError as exc:
        raise PathExpandError(f"failed to get current directory: {exc}") from exc
    return Path(cwd) / path


def _expand_tilde(path: str) -> str:
    if path == "~" or path.startswith("~/"):
        return path.replace("~", _home_dir(), 1)
    return path


def _expand_env_vars(text: str) -> str:
    def substitute(match: re.Match[str]) -> str:
        braced, bare = match.group(1), match.group(2)
        name = braced if braced is not None else bare
        if not name:
            return "$"
        try:
            return os.environ[name]
        except KeyError:
            raise PathExpandError(f"environment variable ${name} not set") from None

    return _VAR_PATTERN.sub(substitute, text)


def _home_dir() -> str:
    try:
        return os.environ["HOME"]
    except KeyError:
        raise PathExpandError("HOME environment variable not set") from None