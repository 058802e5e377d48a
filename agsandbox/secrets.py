"""Resolution of configured secrets from the environment or secret-tool."""

from __future__ import annotations

import abc
import os
import subprocess
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class EnvSource:
    """Read the secret from a host environment variable."""

    from_env: str


@dataclass(frozen=True)
class SecretToolSource:
    """Look the secret up with ``secret-tool`` using these attributes."""

    attributes: Mapping[str, str] = field(default_factory=dict)


SecretSource = Union[EnvSource, SecretToolSource]


@dataclass
class ValidatedSecret:
    """One source for a secret exported into the container."""

    env: str
    source: SecretSource
    origin: str
    tool: str | None = None


class SecretError(Exception):
    """A required secret could not be resolved from any source."""

    def __init__(self, env: str, sources_tried: int) -> None:
        super().__init__(f"secret '{env}' unresolved after {sources_tried} source(s)")
        self.env = env
        self.sources_tried = sources_tried


class SecretBackend(abc.ABC):
    """Where secret values come from."""

    @abc.abstractmethod
    def env_var(self, name: str) -> str | None:
        """Return the value of an environment variable, or None."""

    @abc.abstractmethod
    def secret_tool_lookup(self, attributes: Sequence[tuple[str, str]]) -> str | None:
        """Return the value stored under these attributes, or None."""


class OsSecretBackend(SecretBackend):
    """Backend using the process environment and the ``secret-tool`` binary."""

    def env_var(self, name: str) -> str | None:
        value = os.environ.get(name)
        return value or None

    def secret_tool_lookup(self, attributes: Sequence[tuple[str, str]]) -> str | None:
        pairs = list(attributes)
        if not pairs:
            return None
        command = ["secret-tool", "lookup"]
        for key, value in pairs:
            command += [key, value]
        try:
            result = subprocess.run(
                command,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                check=False,
            )
        except OSError:
            return None
        if result.returncode != 0:
            return None
        value = result.stdout.decode("utf-8", errors="replace").strip()
        return value or None


def _try_resolve_one(secret: ValidatedSecret, backend: SecretBackend) -> str | None:
    source = secret.source
    if isinstance(source, EnvSource):
        return backend.env_var(source.from_env)
    return backend.secret_tool_lookup(sorted(source.attributes.items()))


def resolve_secrets(
    secrets: Iterable[ValidatedSecret], backend: SecretBackend
) -> dict[str, str]:
    """Resolve secrets, trying entries that share an env name in order.

    The first source that yields a value wins. Secrets that resolve from
    no source are left out of the result.
    """
    resolved: dict[str, str] = {}
    for secret in secrets:
        if secret.env in resolved:
            continue
        value = _try_resolve_one(secret, backend)
        if value is not None:
            resolved[secret.env] = value
    return resolved