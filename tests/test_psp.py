import os
import socket
import sys
import tempfile
from pathlib import Path

import pytest

from agsandbox.psp import PspError, PspGuard, resolve_binary, start

FAKE_PSP = """#!/bin/sh
exec "{python}" -c '
import os, socket, sys, time
marker = os.environ.get("AGS_TEST_MARKER")
if marker:
    with open(marker, "w") as handle:
        handle.write(os.environ.get("PSP_KEEP_ON_FAILURE", "unset") + " " + " ".join(sys.argv[1:]))
server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
server.bind(os.environ["PSP_LISTEN_SOCKET"])
server.listen(4)
while True:
    time.sleep(0.05)
' "$@"
"""


@pytest.fixture
def runtime(monkeypatch):
    with tempfile.TemporaryDirectory(prefix="agp") as directory:
        monkeypatch.setenv("XDG_RUNTIME_DIR", directory)
        yield Path(directory)


def _script(path, content):
    path.write_text(content)
    path.chmod(0o755)
    return path


def test_container_paths():
    assert PspGuard.container_socket_path() == "/run/psp/psp.sock"
    assert PspGuard.container_socket_dir() == "/run/psp"


def test_resolve_binary_prefers_config():
    assert resolve_binary("/opt/bin/psp") == Path("/opt/bin/psp")


def test_resolve_binary_missing_on_path(tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", str(tmp_path))
    with pytest.raises(PspError, match="psp binary not found"):
        resolve_binary("")


def test_resolve_binary_found_on_path(tmp_path, monkeypatch):
    binary = _script(tmp_path / "psp", "#!/bin/sh\nexit 0\n")
    monkeypatch.setenv("PATH", str(tmp_path))
    assert resolve_binary("") == binary


def test_start_waits_for_socket_and_cleans_up(runtime, tmp_path, monkeypatch):
    marker = tmp_path / "marker"
    monkeypatch.setenv("AGS_TEST_MARKER", str(marker))
    script = _script(tmp_path / "fake-psp", FAKE_PSP.format(python=sys.executable))
    socket_dir = runtime / f"ags-psp-{os.getpid()}"

    with start(str(script), False) as guard:
        assert guard.socket_path == socket_dir / "psp.sock"
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as client:
            client.connect(str(guard.socket_path))
        assert marker.read_text() == "unset run"
        child = guard._child

    assert not socket_dir.exists()
    assert child.poll() is not None
    guard.close()
    assert not socket_dir.exists()


def test_start_keep_on_failure_sets_env(runtime, tmp_path, monkeypatch):
    marker = tmp_path / "marker"
    monkeypatch.setenv("AGS_TEST_MARKER", str(marker))
    script = _script(tmp_path / "fake-psp", FAKE_PSP.format(python=sys.executable))

    guard = start(str(script), True)
    try:
        assert marker.read_text() == "true run"
    finally:
        guard.close()


def test_start_reports_child_that_exits(runtime, tmp_path):
    script = _script(tmp_path / "dying-psp", "#!/bin/sh\nexit 3\n")
    with pytest.raises(PspError, match="exited immediately") as info:
        start(str(script), False)
    assert "3" in str(info.value)
    assert not (runtime / f"ags-psp-{os.getpid()}").exists()


def test_start_reports_spawn_failure(runtime, tmp_path):
    with pytest.raises(PspError, match="psp: failed to start"):
        start(str(tmp_path / "does-not-exist"), False)