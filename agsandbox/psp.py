"""The podman socket proxy (PSP) sidecar process."""

from __future__ import annotations

import os
import shutil
import signal
import socket
import subprocess
from pathlib import Path

from agsandbox.util import poll_until, runtime_dir, which

CONTAINER_PSP_DIR = "/run/psp"
CONTAINER_PSP_SOCK = "/run/psp/psp.sock"

READINESS_TIMEOUT = 10.0
POLL_INTERVAL = 0.1
SHUTDOWN_TIMEOUT = 5.0


class PspError(Exception):
    """The PSP sidecar could not be started."""


class PspGuard:
    """Owns a running PSP process and its per-run socket directory.

    Closing the guard stops the process (SIGTERM, then SIGKILL) and
    removes the socket directory.
    """

    def __init__(
        self, socket_path: Path, socket_dir: Path, child: subprocess.Popen
    ) -> None:
        self.socket_path = socket_path
        self._socket_dir = socket_dir
        self._child = child
        self._closed = False

    @staticmethod
    def container_socket_path() -> str:
        """Container-side socket path, used for DOCKER_HOST."""
        return CONTAINER_PSP_SOCK

    @staticmethod
    def container_socket_dir() -> str:
        """Container-side directory where the socket directory is mounted."""
        return CONTAINER_PSP_DIR

    def close(self) -> None:
        """Stop PSP and remove its socket directory."""
        if self._closed:
            return
        self._closed = True
        child = self._child
        if child.poll() is None:
            # SIGTERM first so PSP can clean up tracked containers.
            try:
                child.send_signal(signal.SIGTERM)
            except OSError:
                pass
        exited = poll_until(
            SHUTDOWN_TIMEOUT,
            POLL_INTERVAL,
            lambda: True if child.poll() is not None else None,
        )
        if exited is None:
            try:
                child.kill()
            except OSError:
                pass
            child.wait()
        shutil.rmtree(self._socket_dir, ignore_errors=True)

    def __enter__(self) -> PspGuard:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"PspGuard(socket_path={str(self.socket_path)!r})"


def resolve_binary(config_binary: str) -> Path:
    """Return the configured binary, or ``psp`` looked up on PATH."""
    if config_binary:
        return Path(config_binary)
    found = which("psp")
    if found is None:
        raise PspError(
            "psp binary not found: 'psp' "
            "(install podman-socket-proxy or set [psp].binary in config)"
        )
    return found


def start(config_binary: str, keep_on_failure: bool) -> PspGuard:
    """Start PSP with a per-process socket and wait until it accepts connections.

    With ``keep_on_failure`` PSP keeps its containers on shutdown.
    """
    binary = resolve_binary(config_binary)
    socket_dir = runtime_dir() / f"ags-psp-{os.getpid()}"
    try:
        socket_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise PspError(f"psp: failed to create socket directory: {exc}") from exc

    socket_path = socket_dir / "psp.sock"
    env = dict(os.environ, PSP_LISTEN_SOCKET=str(socket_path))
    if keep_on_failure:
        env["PSP_KEEP_ON_FAILURE"] = "true"

    try:
        child = subprocess.Popen(
            [str(binary), "run"],
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
        )
    except OSError as exc:
        raise PspError(f"psp: failed to start: {exc}") from exc

    guard = PspGuard(socket_path, socket_dir, child)
    try:
        _wait_ready(socket_path, child)
    except PspError:
        guard.close()
        raise
    return guard


def _wait_ready(socket_path: Path, child: subprocess.Popen) -> None:
    def check() -> tuple[str, int | None] | None:
        code = child.poll()
        if code is not None:
            return ("exited", code)
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as probe:
            try:
                probe.connect(str(socket_path))
            except OSError:
                return None
        return ("ready", None)

    result = poll_until(READINESS_TIMEOUT, POLL_INTERVAL, check)
    if result is None:
        raise PspError(
            f"psp: timed out waiting for readiness ({int(READINESS_TIMEOUT)}s)"
        )
    kind, code = result
    if kind == "exited":
        assert code is not None
        status = f"signal: {-code}" if code < 0 else f"exit status: {code}"
        raise PspError(f"psp: process exited immediately ({status})")