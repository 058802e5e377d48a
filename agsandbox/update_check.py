"""Background check for newer releases, cached for a day."""

from __future__ import annotations

import os
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path

CHECK_INTERVAL_SECS = 24 * 60 * 60
CURRENT_VERSION = "0.1.0"
REPO_ENV_VAR = "AGS_UPDATE_REPO"


def _repo() -> str:
    return os.environ.get(REPO_ENV_VAR, "").strip()


def _default_cache_dir() -> Path:
    xdg = os.environ.get("XDG_CACHE_HOME", "")
    if xdg and Path(xdg).is_absolute():
        return Path(xdg)
    home = os.environ.get("HOME", "")
    if home:
        return Path(home) / ".cache"
    return Path("/tmp")


@dataclass
class UpdateCheck:
    """Latest release version known from the cache, if any."""

    latest_version: str | None = None

    @classmethod
    def start(cls, cache_dir: Path) -> UpdateCheck:
        """Read the cache, refreshing it in the background when stale.

        Never waits on the network.
        """
        cache_path = Path(cache_dir) / "update-check"
        latest_version, stale = read_cache(cache_path)
        if stale:
            threading.Thread(
                target=_refresh, args=(cache_path,), daemon=True
            ).start()
        return cls(latest_version=latest_version)

    @classmethod
    def from_default_cache(cls) -> UpdateCheck:
        """Start from the user's default cache directory."""
        return cls.start(_default_cache_dir() / "ags")

    def notify_if_available(self) -> None:
        """Print a notice to stderr, if it is a terminal and a newer release exists."""
        if not sys.stderr.isatty():
            return
        latest = self.latest_version
        if latest is None or not is_newer(latest, CURRENT_VERSION):
            return
        message = (
            f"\n\x1b[2mA new release of ags is available: "
            f"v{CURRENT_VERSION} \u2192 v{latest}"
        )
        repo = _repo()
        if repo:
            message += f"\nhttps://github.com/{repo}/releases/tag/v{latest}"
        print(message + "\x1b[0m", file=sys.stderr)


def _refresh(cache_path: Path) -> None:
    tag = fetch_latest_tag()
    if tag is not None:
        write_cache(cache_path, tag)


def read_cache(path: Path) -> tuple[str | None, bool]:
    """Return the cached version and whether the cache is stale."""
    try:
        contents = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None, True
    lines = contents.splitlines()
    if not lines or not lines[0].isascii() or not lines[0].isdigit():
        return None, True
    timestamp = int(lines[0])
    if len(lines) < 2 or not lines[1]:
        return None, True
    now = int(time.time())
    stale = max(now - timestamp, 0) > CHECK_INTERVAL_SECS
    return lines[1], stale


def write_cache(path: Path, version: str) -> None:
    """Store ``version`` with the current time, ignoring errors."""
    path = Path(path)
    now = int(time.time())
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass
    try:
        path.write_text(f"{now}\n{version}\n", encoding="utf-8")
    except OSError:
        pass


def fetch_latest_tag() -> str | None:
    """Ask the release API for the latest tag, without a leading ``v``."""
    repo = _repo()
    if not repo:
        return None
    url = f"https://api.github.com/repos/{repo}/releases/latest"
    try:
        result = subprocess.run(
            ["curl", "-sf", "--max-time", "5", url],
            capture_output=True,
            check=False,
        )
    except OSError:
        return None
    if result.returncode != 0:
        return None
    body = result.stdout.decode("utf-8", errors="replace")
    parts = body.split('"tag_name"')
    if len(parts) < 2:
        return None
    quoted = parts[1].split('"')
    if len(quoted) < 2:
        return None
    return quoted[1].lstrip("v")


def _parse_version(text: str) -> tuple[int, int, int] | None:
    parts = text.lstrip("v").split(".", 2)
    if len(parts) != 3:
        return None
    numbers = []
    for part in parts:
        digits = part[1:] if part.startswith("+") else part
        if not digits or not digits.isascii() or not digits.isdigit():
            return None
        value = int(digits)
        if value >= 2**32:
            return None
        numbers.append(value)
    return numbers[0], numbers[1], numbers[2]


def is_newer(latest: str, current: str) -> bool:
    """Return True if ``latest`` is strictly newer than ``current``."""
    parsed_latest = _parse_version(latest)
    parsed_current = _parse_version(current)
    if parsed_latest is None or parsed_current is None:
        return False
    return parsed_latest > parsed_current