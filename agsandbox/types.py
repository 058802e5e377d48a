"""Data types describing a container launch plan."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path


class MountMode(enum.Enum):
    """Bind mount access mode."""

    RO = "ro"
    RW = "rw"

    def __str__(self) -> str:
        return self.value


class MountKind(enum.Enum):
    """Whether a mount source is a directory or a single file."""

    DIR = "dir"
    FILE = "file"

    def __str__(self) -> str:
        return self.value


class PlanError(Exception):
    """Error raised while building a launch plan."""


class WorkdirResolveError(PlanError):
    """The working directory could not be resolved."""

    def __init__(self, message: str) -> None:
        super().__init__(f"workdir resolve error: {message}")
        self.message = message


class DirCreateError(PlanError):
    """A required host directory or file could not be created."""

    def __init__(self, path: Path, source: OSError) -> None:
        super().__init__(f"failed to create {path}: {source}")
        self.path = path
        self.source = source


class MountMissingError(PlanError):
    """A required mount's host path does not exist."""

    def __init__(self, host: Path, context: str) -> None:
        super().__init__(f"required mount source missing: {host} ({context})")
        self.host = host
        self.context = context


class MountNotDirError(PlanError):
    """A requested mount path exists but is not a directory."""

    def __init__(self, host: Path, context: str) -> None:
        super().__init__(f"mount source is not a directory: {host} ({context})")
        self.host = host
        self.context = context


class InvalidEnvError(PlanError):
    """An environment variable holds an invalid value."""

    def __init__(self, var: str, value: str) -> None:
        super().__init__(f"invalid {var} value: {value}")
        self.var = var
        self.value = value


@dataclass
class WorkdirMapping:
    """Host-to-container working directory mapping."""

    host: Path
    container: str


@dataclass
class PlanMount:
    """A single bind mount."""

    host: Path
    container: str
    mode: MountMode


@dataclass
class PlanEnv:
    """Environment configuration for the container."""

    inline: list[tuple[str, str]] = field(default_factory=list)
    passthrough_names: list[str] = field(default_factory=list)
    env_file_entries: list[tuple[str, str]] = field(default_factory=list)
    read_roots_json: str = "[]"
    write_roots_json: str = "[]"


@dataclass
class SecurityConfig:
    """Podman security flags."""

    userns: str = "keep-id"
    security_opts: list[str] = field(
        default_factory=lambda: ["no-new-privileges", "label=disable"]
    )
    cap_drop: str = "all"
    pids_limit: int = 4096
    pull: str = "never"


@dataclass
class LaunchPlan:
    """Complete description of a container launch."""

    image: str
    containerfile: Path
    container_name: str
    workdir: WorkdirMapping
    mounts: list[PlanMount]
    env: PlanEnv
    security: SecurityConfig
    network_mode: str
    boot_dirs: list[str]
    entrypoint: str