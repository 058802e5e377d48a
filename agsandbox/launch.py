"""Building blocks for a container launch plan: mounts, env and naming."""

from __future__ import annotations

import os
import stat
import time
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path, PurePath

from agsandbox.types import (
    DirCreateError,
    InvalidEnvError,
    MountKind,
    MountMissingError,
    MountMode,
    MountNotDirError,
    PlanMount,
    WorkdirMapping,
    WorkdirResolveError,
)

CONTAINER_HOME = "/home/dev"
CONTAINER_GITCONFIG = "/home/dev/.config/ags/gitconfig"
CONTAINER_SSH_SOCK = "/ssh-agent"
HOST_SERVICES_HOST = "host.containers.internal"
HOST_SERVICES_HINT = (
    "[ags] Host services: use host.containers.internal (localhost is container-local)"
)

# (host suffix under cache_dir, container path, env var); an empty env var
# means no variable is exported for that mount.
CACHE_MOUNTS: tuple[tuple[str, str, str], ...] = (
    ("pnpm-home", "/usr/local/pnpm", "PNPM_HOME"),
    ("claude-install", "/opt/claude-home", ""),
    ("cargo-home", "/home/dev/.cargo", "CARGO_HOME"),
    ("go-path", "/home/dev/go", "GOPATH"),
    ("go-build", "/home/dev/.cache/go-build", "GOCACHE"),
    ("sccache", "/home/dev/.cache/sccache", "SCCACHE_DIR"),
    ("cachepot", "/home/dev/.cache/cachepot", "CACHEPOT_DIR"),
    ("ags-hooks", "/home/dev/.config/ags/hooks", ""),
)

RUNTIME_ADD_DIR_CONTEXT = "runtime --add-dir mount"
MAX_SLUG_LEN = 40

_SAFE_SHELL_CHARS = frozenset("/.-_")
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass
class WaylandInfo:
    """A host Wayland socket to share with the container."""

    socket_path: Path
    display_name: str


def shell_quote(s: str) -> str:
    """Quote ``s`` for a POSIX shell unless it only holds safe characters."""
    if all(ch.isascii() and (ch.isalnum() or ch in _SAFE_SHELL_CHARS) for ch in s):
        return s
    escaped = s.replace("'", "'\\''")
    return f"'{escaped}'"


def json_string_array(items: Iterable[str]) -> str:
    """Encode the sorted, de-duplicated, non-empty items as a JSON array."""
    unique = sorted({item for item in items if item})
    escaped = (
        '"' + item.replace("\\", "\\\\").replace('"', '\\"') + '"' for item in unique
    )
    return "[" + ",".join(escaped) + "]"


def short_path_slug(path: str | os.PathLike[str]) -> str:
    """Make a short lower-case slug from the last three components of ``path``."""
    pure = PurePath(path)
    parts = list(pure.parts)
    if pure.anchor and parts:
        parts = parts[1:]
    parts = [part for part in parts if part not in ("", ".", "..")]
    if not parts:
        return "work"
    raw = "-".join(parts[-3:])

    pieces: list[str] = []
    prev_dash = False
    for ch in raw:
        if ch.isascii() and ch.isalnum():
            pieces.append(ch.lower())
            prev_dash = False
        elif not prev_dash:
            pieces.append("-")
            prev_dash = True

    slug = "".join(pieces).strip("-")
    if not slug:
        return "work"
    if len(slug) <= MAX_SLUG_LEN:
        return slug
    return slug[:MAX_SLUG_LEN].strip("-")


def short_id4() -> str:
    """Return four hex digits derived from the current time and PID."""
    digest = hash((time.time_ns(), os.getpid()))
    return f"{digest & 0xFFFF:04x}"


def clipboard_enabled() -> bool:
    """Read ``AGS_ENABLE_CLIPBOARD`` (default on); raise on an unknown value."""
    raw = os.environ.get("AGS_ENABLE_CLIPBOARD", "1")
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise InvalidEnvError("AGS_ENABLE_CLIPBOARD", raw)


def detect_wayland() -> WaylandInfo | None:
    """Return the host Wayland socket if clipboard sharing is on and it exists."""
    if not clipboard_enabled():
        return None
    runtime = os.environ.get("XDG_RUNTIME_DIR", "")
    display = os.environ.get("WAYLAND_DISPLAY", "")
    if not runtime or not display:
        return None
    socket_path = Path(runtime) / display
    try:
        is_socket = stat.S_ISSOCK(os.lstat(socket_path).st_mode)
    except OSError:
        is_socket = False
    if not is_socket:
        return None
    return WaylandInfo(socket_path=socket_path, display_name=display)


def ensure_dir(path: str | os.PathLike[str]) -> None:
    """Create ``path`` and its parents; raise DirCreateError on failure."""
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise DirCreateError(path, exc) from exc


def create_mount_host(path: str | os.PathLike[str], kind: MountKind) -> None:
    """Create a missing mount source as a directory or an empty file."""
    path = Path(path)
    if kind is MountKind.DIR:
        ensure_dir(path)
        return
    ensure_dir(path.parent)
    if not path.exists():
        try:
            path.touch()
        except OSError as exc:
            raise DirCreateError(path, exc) from exc


def resolve_workdir(workdir: str | os.PathLike[str]) -> WorkdirMapping:
    """Resolve the working directory on the host and its container path.

    An absolute ``workdir`` is kept as the container path; otherwise the
    resolved host path is used.
    """
    workdir = Path(workdir)
    try:
        host = workdir.resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        raise WorkdirResolveError(f"{workdir}: {exc}") from exc
    container = str(workdir) if workdir.is_absolute() else str(host)
    return WorkdirMapping(host=host, container=container)


def ensure_cache_dirs(cache_dir: str | os.PathLike[str]) -> None:
    """Create the cache directory and every cache volume beneath it."""
    cache_dir = Path(cache_dir)
    ensure_dir(cache_dir)
    for suffix, _, _ in CACHE_MOUNTS:
        ensure_dir(cache_dir / suffix)


def infrastructure_mounts(
    gitconfig_path: str | os.PathLike[str], cache_dir: str | os.PathLike[str]
) -> list[PlanMount]:
    """Return the gitconfig mount followed by the cache volume mounts."""
    cache_dir = Path(cache_dir)
    mounts = [PlanMount(Path(gitconfig_path), CONTAINER_GITCONFIG, MountMode.RO)]
    mounts += [
        PlanMount(cache_dir / suffix, container, MountMode.RW)
        for suffix, container, _ in CACHE_MOUNTS
    ]
    return mounts


def cache_env() -> list[tuple[str, str]]:
    """Return the environment variables pointing at the cache volumes."""
    return [(env, container) for _, container, env in CACHE_MOUNTS if env]


def add_runtime_dir_mounts(
    extra_mount_dirs: Iterable[str | os.PathLike[str]],
    mounts: list[PlanMount],
    read_roots: list[str],
    write_roots: list[str],
) -> None:
    """Add read-write mounts for extra directories given on the command line."""
    for raw_dir in extra_mount_dirs:
        raw = Path(raw_dir)
        try:
            host = raw.resolve(strict=True)
        except (OSError, RuntimeError):
            raise MountMissingError(raw, RUNTIME_ADD_DIR_CONTEXT) from None
        if not host.is_dir():
            raise MountNotDirError(host, RUNTIME_ADD_DIR_CONTEXT)

        container = str(host)
        if any(m.host == host and m.container == container for m in mounts):
            continue

        mounts.append(PlanMount(host, container, MountMode.RW))
        if container not in read_roots:
            read_roots.append(container)
        if container not in write_roots:
            write_roots.append(container)


def add_pub_key_mount(
    mounts: list[PlanMount], key_path: str | os.PathLike[str], container_name: str
) -> None:
    """Mount ``<key_path>.pub`` read-only if it is a non-empty file."""
    pub_path = Path(f"{os.fspath(key_path)}.pub")
    try:
        info = pub_path.stat()
    except OSError:
        return
    if stat.S_ISREG(info.st_mode) and info.st_size > 0:
        mounts.append(
            PlanMount(
                pub_path,
                f"{CONTAINER_HOME}/.ssh/{container_name}.pub",
                MountMode.RO,
            )
        )


def network_mode(browser_mode: bool) -> str:
    """Return the podman network mode; host loopback is reachable only for the browser."""
    if browser_mode:
        return "slirp4netns:allow_host_loopback=true"
    return "slirp4netns:allow_host_loopback=false"