"""A dedicated ssh-agent for the sandbox, with its keys loaded."""

from __future__ import annotations

import abc
import os
import re
import stat
import subprocess
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

_U32_PATTERN = re.compile(r"\+?[0-9]+")


@dataclass
class AgentState:
    """Agent state persisted in the env file."""

    auth_sock: Path
    pid: int


@dataclass
class SshAgentReady:
    """Outcome of ensuring the agent runs with its keys loaded."""

    auth_sock: Path
    warnings: list[str] = field(default_factory=list)


class SshError(Exception):
    """An ssh-agent or ssh-add operation failed."""


@dataclass
class SshKey:
    """A private key to load, with a label used in warnings."""

    private_path: Path
    label: str


class SshRunner(abc.ABC):
    """The process and filesystem operations the agent setup needs."""

    @abc.abstractmethod
    def is_pid_alive(self, pid: int) -> bool:
        """Return True if a process with this PID exists."""

    @abc.abstractmethod
    def socket_exists(self, path: Path) -> bool:
        """Return True if a Unix socket exists at ``path``."""

    @abc.abstractmethod
    def start_agent(self, sock_path: Path) -> AgentState:
        """Start an ssh-agent bound to ``sock_path``; raise SshError on failure."""

    @abc.abstractmethod
    def list_loaded_keys(self, auth_sock: Path) -> str | None:
        """Return the output of ``ssh-add -L``, or None on failure."""

    @abc.abstractmethod
    def read_pub_key(self, key_path: Path) -> str | None:
        """Return the trimmed public key belonging to ``key_path``, or None."""

    @abc.abstractmethod
    def add_key(self, auth_sock: Path, key_path: Path) -> None:
        """Add a private key to the agent; raise SshError on failure."""

    @abc.abstractmethod
    def remove_socket(self, path: Path) -> None:
        """Remove a socket file, ignoring errors."""

    @abc.abstractmethod
    def kill_socket_owner(self, path: Path) -> None:
        """Kill any process holding the socket at ``path``."""


class OsSshRunner(SshRunner):
    """Runner that uses the real ssh-agent, ssh-add and fuser."""

    def is_pid_alive(self, pid: int) -> bool:
        try:
            os.kill(pid, 0)
        except (OSError, OverflowError, ValueError):
            return False
        return True

    def socket_exists(self, path: Path) -> bool:
        try:
            return stat.S_ISSOCK(os.lstat(path).st_mode)
        except OSError:
            return False

    def start_agent(self, sock_path: Path) -> AgentState:
        try:
            result = subprocess.run(
                ["ssh-agent", "-s", "-a", str(sock_path)],
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            raise SshError(f"failed to start ssh-agent: {exc}") from exc
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace")
            raise SshError(f"failed to start ssh-agent: {stderr}")
        stdout = result.stdout.decode("utf-8", errors="replace")
        return parse_agent_output(stdout, Path(sock_path))

    def list_loaded_keys(self, auth_sock: Path) -> str | None:
        env = dict(os.environ, SSH_AUTH_SOCK=str(auth_sock))
        try:
            result = subprocess.run(
                ["ssh-add", "-L"], env=env, capture_output=True, check=False
            )
        except OSError:
            return None
        if result.returncode != 0:
            return None
        return result.stdout.decode("utf-8", errors="replace")

    def read_pub_key(self, key_path: Path) -> str | None:
        key_path = Path(key_path)
        if key_path.suffix:
            first = key_path.with_name(f"{key_path.stem}{key_path.suffix}.pub")
        else:
            first = key_path.with_name(f"{key_path.name}..pub")
        candidate = first if first.exists() else Path(f"{key_path}.pub")
        try:
            return candidate.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError):
            return None

    def add_key(self, auth_sock: Path, key_path: Path) -> None:
        # stdio is inherited so ssh-add can prompt for a passphrase.
        env = dict(os.environ, SSH_AUTH_SOCK=str(auth_sock))
        try:
            result = subprocess.run(["ssh-add", str(key_path)], env=env, check=False)
        except OSError as exc:
            raise SshError(str(exc)) from exc
        if result.returncode != 0:
            if result.returncode < 0:
                status = f"signal: {-result.returncode}"
            else:
                status = f"exit status: {result.returncode}"
            raise SshError(f"ssh-add exited with {status}")

    def remove_socket(self, path: Path) -> None:
        try:
            os.remove(path)
        except OSError:
            pass

    def kill_socket_owner(self, path: Path) -> None:
        try:
            subprocess.run(
                ["fuser", "-k", str(path)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except OSError:
            pass


def _parse_u32(text: str) -> int | None:
    if not _U32_PATTERN.fullmatch(text):
        return None
    value = int(text)
    return value if value < 2**32 else None


def parse_agent_output(stdout: str, sock_path: Path) -> AgentState:
    """Extract the agent PID from ``ssh-agent -s`` output."""
    pid: int | None = None
    for line in stdout.splitlines():
        if line.startswith("SSH_AGENT_PID="):
            rest = line[len("SSH_AGENT_PID="):]
            pid = _parse_u32(rest.split(";", 1)[0].strip())
    if pid is None:
        raise SshError(
            "failed to start ssh-agent: "
            "could not parse SSH_AGENT_PID from ssh-agent output"
        )
    return AgentState(auth_sock=Path(sock_path), pid=pid)


def read_agent_env(env_path: Path) -> AgentState | None:
    """Read the cached agent state, or None if it is missing or incomplete."""
    try:
        content = Path(env_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    sock: Path | None = None
    pid: int | None = None
    for raw in content.splitlines():
        line = raw.strip()
        if line.startswith("SSH_AUTH_SOCK="):
            sock = Path(line[len("SSH_AUTH_SOCK="):])
        elif line.startswith("SSH_AGENT_PID="):
            pid = _parse_u32(line[len("SSH_AGENT_PID="):])
    if sock is None or pid is None:
        return None
    return AgentState(auth_sock=sock, pid=pid)


def write_agent_env(env_path: Path, state: AgentState) -> None:
    """Persist agent state to the env file."""
    env_path = Path(env_path)
    env_path.parent.mkdir(parents=True, exist_ok=True)
    env_path.write_text(
        f"SSH_AUTH_SOCK={state.auth_sock}\nSSH_AGENT_PID={state.pid}\n",
        encoding="utf-8",
    )


def ensure_agent(
    cache_dir: Path, keys: Iterable[SshKey], runner: SshRunner
) -> SshAgentReady:
    """Make sure a dedicated agent runs and ``keys`` are loaded into it.

    The agent socket and env file live in ``cache_dir``.
    """
    cache_dir = Path(cache_dir)
    env_path = cache_dir / "ssh-agent.env"
    sock_path = cache_dir / "ssh-agent.sock"
    warnings: list[str] = []

    cached = read_agent_env(env_path)
    if (
        cached is not None
        and runner.is_pid_alive(cached.pid)
        and runner.socket_exists(cached.auth_sock)
    ):
        state = cached
    else:
        # Kill any orphaned agent still bound to the socket, then start fresh.
        runner.kill_socket_owner(sock_path)
        runner.remove_socket(sock_path)
        state = runner.start_agent(sock_path)
        try:
            write_agent_env(env_path, state)
        except OSError as exc:
            warnings.append(f"could not persist agent env: {exc}")

    for key in keys:
        _load_key_if_needed(state, key, runner, warnings)

    return SshAgentReady(auth_sock=state.auth_sock, warnings=warnings)


def _load_key_if_needed(
    state: AgentState, key: SshKey, runner: SshRunner, warnings: list[str]
) -> None:
    path = Path(key.private_path)
    if not path.exists():
        return
    try:
        size = path.stat().st_size
    except OSError:
        return
    if size == 0:
        warnings.append(f"{key.label} key file is empty: {path}")
        return

    pub_key = runner.read_pub_key(path)
    if pub_key is not None:
        loaded = runner.list_loaded_keys(state.auth_sock)
        if loaded is not None and any(
            line.strip() == pub_key for line in loaded.splitlines()
        ):
            return

    try:
        runner.add_key(state.auth_sock, path)
    except SshError as exc:
        warnings.append(f"failed to add {key.label} key {path}: {str(exc).strip()}")