"""Rendering and running ``podman run`` from a launch plan."""

from __future__ import annotations

import os
import subprocess
import sys
from collections.abc import Iterable, Sequence
from pathlib import Path

from agsandbox.types import LaunchPlan
from agsandbox.util import runtime_dir


class PodmanError(Exception):
    """Error talking to podman."""


class ImageBuildError(PodmanError):
    """The sandbox image could not be built."""

    def __init__(self, message: str) -> None:
        super().__init__(f"image build failed: {message}")
        self.message = message


class EnvFileCreateError(PodmanError):
    """The env file could not be written."""

    def __init__(self, error: OSError) -> None:
        super().__init__(f"failed to create env file: {error}")
        self.error = error


class SpawnFailedError(PodmanError):
    """podman could not be started."""

    def __init__(self, error: OSError) -> None:
        super().__init__(f"failed to start podman: {error}")
        self.error = error


def build_run_args(plan: LaunchPlan, env_file: str | os.PathLike[str]) -> list[str]:
    """Build the ``podman run`` arguments, without the ``podman`` binary itself."""
    security = plan.security
    args = ["run", "--rm", "-it", "--pull=never", f"--userns={security.userns}"]
    args += [f"--security-opt={opt}" for opt in security.security_opts]
    args += [
        f"--cap-drop={security.cap_drop}",
        f"--pids-limit={security.pids_limit}",
        "--network",
        plan.network_mode,
        "--name",
        plan.container_name,
    ]

    for key, value in plan.env.inline:
        args += ["-e", f"{key}={value}"]
    for name in plan.env.passthrough_names:
        args += ["-e", name]
    args += ["-e", f"AGS_GUARD_READ_ROOTS_JSON={plan.env.read_roots_json}"]
    args += ["-e", f"AGS_GUARD_WRITE_ROOTS_JSON={plan.env.write_roots_json}"]

    args += ["--env-file", os.fspath(env_file)]

    # The first mount is the workdir; it is followed by -w.
    for index, mount in enumerate(plan.mounts):
        args += ["-v", f"{mount.host}:{mount.container}:{mount.mode.value},z"]
        if index == 0:
            args += ["-w", plan.workdir.container]

    args += [plan.image, "bash", "-lc", plan.entrypoint, "_"]
    return args


def image_exists(image: str) -> bool:
    """Return True if the image exists locally."""
    try:
        result = subprocess.run(["podman", "image", "exists", image], check=False)
    except OSError:
        return False
    return result.returncode == 0


def image_has_binary(image: str, binary: str) -> bool:
    """Return True if ``binary`` is on PATH inside ``image``."""
    command = [
        "podman", "run", "--rm", "--entrypoint", "bash", image, "-lc",
        f"command -v {_shell_word(binary)} >/dev/null 2>&1",
    ]
    try:
        result = subprocess.run(command, check=False)
    except OSError as exc:
        raise SpawnFailedError(exc) from exc
    return result.returncode == 0


def ensure_image(image: str, containerfile: str | os.PathLike[str]) -> None:
    """Build the image from the Containerfile unless it already exists."""
    if image_exists(image):
        return

    print(f"Building sandbox image: {image}", file=sys.stderr)
    containerfile = Path(containerfile)
    context_dir = containerfile.parent
    command = ["podman", "build", "-t", image, "-f", str(containerfile), str(context_dir)]
    try:
        result = subprocess.run(command, check=False)
    except OSError as exc:
        raise ImageBuildError(str(exc)) from exc
    if result.returncode != 0:
        raise ImageBuildError(
            f"podman build exited with {_describe_status(result.returncode)}"
        )


def write_env_file(
    entries: Iterable[tuple[str, str]], directory: str | os.PathLike[str]
) -> Path:
    """Write ``KEY=VALUE`` lines to a private (mode 0600) env file.

    The caller removes the file once the container has exited.
    """
    directory = Path(directory)
    path = directory / f"ags-env.{os.getpid()}"
    content = "".join(f"{key}={value}\n" for key, value in entries)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
    except OSError as exc:
        raise EnvFileCreateError(exc) from exc
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass
    return path


def execute(plan: LaunchPlan, passthrough_args: Sequence[str]) -> int:
    """Run the container described by ``plan`` and return its exit code."""
    ensure_image(plan.image, plan.containerfile)
    env_file = write_env_file(plan.env.env_file_entries, runtime_dir())
    try:
        return _run_container(plan, env_file, passthrough_args)
    finally:
        try:
            env_file.unlink()
        except OSError:
            pass


def _run_container(plan: LaunchPlan, env_file: Path, passthrough_args: Sequence[str]) -> int:
    args = build_run_args(plan, env_file) + list(passthrough_args)
    try:
        result = subprocess.run(["podman", *args], check=False)
    except OSError as exc:
        raise SpawnFailedError(exc) from exc
    if result.returncode < 0:
        return 1
    return result.returncode & 0xFF


def _describe_status(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status: {returncode}"


def _shell_word(value: str) -> str:
    if value and all(ch.isascii() and (ch.isalnum() or ch in "._-/") for ch in value):
        return value
    if not value:
        return value
    escaped = value.replace("'", "'\\''")
    return f"'{escaped}'"