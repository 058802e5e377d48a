# agsandbox

`agsandbox` is a library of building blocks for launching rootless podman
containers that act as a sandbox for coding agents:

- `agsandbox.paths` expands configured paths (`~`, `$VAR`, `${VAR}`) into
  absolute paths;
- `agsandbox.secrets` resolves secrets from environment variables or the
  desktop secret store (`secret-tool`), trying alternative sources in order;
- `agsandbox.ssh` keeps a dedicated `ssh-agent` alive between runs and loads
  keys into it;
- `agsandbox.psp` starts a podman-socket-proxy (`psp`) sidecar with a
  per-run socket;
- `agsandbox.types` holds the launch plan data types, and
  `agsandbox.launch` the helpers for mounts, environment and naming;
- `agsandbox.podman` turns a launch plan into `podman run` arguments, writes
  a private (mode 0600) env file and runs the container;
- `agsandbox.update_check` gives an update notice based on a cached,
  once-a-day release check;
- `agsandbox.util` has small helpers (`which`, `has_command`, `runtime_dir`,
  `poll_until`).

## Requirements

Python 3.10 or later on Linux. No Python dependencies beyond the standard
library. At run time the package calls out to `podman`, and, where the
matching feature is used, `ssh-agent`, `ssh-add`, `fuser`, `secret-tool`,
`psp` and `curl`.

## Paths

```python
from agsandbox.paths import expand_path, PathExpandError

expand_path("~/.cache/ags")          # absolute path under $HOME
expand_path("$XDG_RUNTIME_DIR/ags")  # environment variables are substituted
expand_path("relative/dir")          # joined onto the current directory

try:
    expand_path("$SURELY_UNSET_VARIABLE/x")
except PathExpandError as exc:
    print(exc)  # environment variable $SURELY_UNSET_VARIABLE not set
```

## Secrets

Each `ValidatedSecret` names the environment variable it exports (`env`) and
one source: `EnvSource(from_env)` or `SecretToolSource(attributes)`. Secrets
sharing the same `env` name are alternatives: the first source that yields a
non-empty value wins, and secrets that resolve from no source are left out of
the result.

```python
from agsandbox.secrets import (
    EnvSource, OsSecretBackend, SecretToolSource, ValidatedSecret, resolve_secrets,
)

secrets = [
    ValidatedSecret("GH_TOKEN", EnvSource("GH_TOKEN"), origin="config"),
    ValidatedSecret(
        "GH_TOKEN",
        SecretToolSource({"service": "github", "username": "user"}),
        origin="config",
    ),
]
resolved = resolve_secrets(secrets, OsSecretBackend())  # {"GH_TOKEN": ...} or {}
```

`OsSecretBackend` reads the process environment (empty values count as
unset) and runs `secret-tool lookup` with the attribute pairs in sorted key
order. To resolve against something else, subclass `SecretBackend` and
implement `env_var(name)` and `secret_tool_lookup(attributes)`.

## Running a container

A `LaunchPlan` (from `agsandbox.types`) holds the image, Containerfile,
container name, working directory mapping, mounts (`PlanMount` with a
`MountMode`), environment (`PlanEnv`), security flags (`SecurityConfig`,
defaulting to `keep-id`, `no-new-privileges`, `label=disable`,
`--cap-drop=all`, `--pids-limit=4096`), network mode, boot directories and
entrypoint script.

`agsandbox.podman.build_run_args(plan, env_file)` returns the arguments for
`podman run` (without `podman` itself): the security flags, `--network`,
`--name`, inline `-e KEY=VALUE` pairs, pass-through `-e NAME` entries,
`AGS_GUARD_READ_ROOTS_JSON` and `AGS_GUARD_WRITE_ROOTS_JSON`, `--env-file`,
the `-v host:container:mode,z` mounts (the first one is the working directory
and is followed by `-w`), the image, and finally `bash -lc <entrypoint> _`.

`agsandbox.podman.execute(plan, passthrough_args)` builds the image with
`podman build` if it is missing, writes the env file into the runtime
directory, runs podman with the extra arguments appended, removes the env
file again and returns the container's exit code. Failures raise
`PodmanError` subclasses (`ImageBuildError`, `EnvFileCreateError`,
`SpawnFailedError`). `image_exists`, `image_has_binary`, `ensure_image` and
`write_env_file` are available on their own.

Helpers in `agsandbox.launch`:

- `shell_quote`, `json_string_array`, `short_path_slug`, `short_id4`;
- `network_mode(browser_mode)` — host loopback is reachable only in browser
  mode;
- `clipboard_enabled` and `detect_wayland`, controlled by
  `AGS_ENABLE_CLIPBOARD` (`1/true/yes/on` or `0/false/no/off`, default on;
  other values raise `InvalidEnvError`);
- `resolve_workdir`, `ensure_dir`, `create_mount_host`, `ensure_cache_dirs`;
- `infrastructure_mounts` and `cache_env` for the gitconfig and cache volume
  mounts and their variables;
- `add_runtime_dir_mounts` for extra directories (raising
  `MountMissingError` or `MountNotDirError`) and `add_pub_key_mount` for a
  non-empty `<key>.pub` file.

Errors raised while assembling a plan derive from `PlanError`.

## SSH agent

```python
from pathlib import Path
from agsandbox.ssh import OsSshRunner, SshKey, ensure_agent

ready = ensure_agent(
    Path("~/.cache/ags").expanduser(),
    [SshKey(Path("~/.ssh/ags-agent-auth").expanduser(), "auth")],
    OsSshRunner(),
)
for warning in ready.warnings:
    print("warning:", warning)
print(ready.auth_sock)
```

A cached agent recorded in `ssh-agent.env` is reused as long as its process
is alive and its socket exists; otherwise any process still holding
`ssh-agent.sock` is killed, a fresh agent is started and its state written.
Missing key files are skipped, empty ones produce a warning, and keys already
present in the agent are not added again. `SshRunner` can be subclassed to
replace the process operations.

## PSP sidecar

```python
from agsandbox import psp

with psp.start("", keep_on_failure=False) as guard:
    print(guard.socket_path)
```

An empty binary name looks up `psp` on `PATH`. `start` waits up to ten
seconds for the socket to accept connections and raises `PspError` on
timeout or if the process exits. Leaving the block (or calling `close()`)
sends SIGTERM, waits up to five seconds, kills the process if it is still
running and removes the per-run socket directory.

## Update notice

```python
from agsandbox.update_check import UpdateCheck

check = UpdateCheck.from_default_cache()
# ... do the actual work ...
check.notify_if_available()
```

The cache lives in `$XDG_CACHE_HOME/ags/update-check` (or
`~/.cache/ags/update-check`). When it is older than a day it is refreshed in
a background thread, which asks the release API of the repository named in
the `AGS_UPDATE_REPO` environment variable; without that variable no refresh
happens. The notice is printed only when stderr is a terminal and the cached
version is newer than the running one.

## What this package does not do

It has no command-line program and does not read a configuration file. It
does not assemble a complete launch plan on its own: agent profiles, the
entrypoint script, configured mounts, the browser and auth-proxy sidecars and
git metadata discovery are not included, so a caller builds the `LaunchPlan`
from the pieces above.

## Tests

The test suite uses pytest; install the `test` extra to get it.