import os
import stat
import tempfile
from pathlib import Path

from agsandbox import util


def _make_file(path: Path, executable: bool) -> Path:
    path.write_text("#!/bin/sh\n")
    mode = 0o755 if executable else 0o644
    path.chmod(mode)
    return path


def test_is_executable_true_for_exec_bit(tmp_path):
    target = _make_file(tmp_path / "tool", executable=True)
    assert util.is_executable(target) is True


def test_is_executable_false_without_exec_bit(tmp_path):
    target = _make_file(tmp_path / "plain", executable=False)
    assert util.is_executable(target) is False


def test_is_executable_false_for_missing_path(tmp_path):
    assert util.is_executable(tmp_path / "missing") is False


def test_which_finds_first_executable(tmp_path, monkeypatch):
    first = tmp_path / "a"
    second = tmp_path / "b"
    first.mkdir()
    second.mkdir()
    _make_file(first / "mytool", executable=True)
    _make_file(second / "mytool", executable=True)
    monkeypatch.setenv("PATH", os.pathsep.join([str(first), str(second)]))
    assert util.which("mytool") == first / "mytool"


def test_which_skips_non_executable(tmp_path, monkeypatch):
    first = tmp_path / "a"
    second = tmp_path / "b"
    first.mkdir()
    second.mkdir()
    _make_file(first / "mytool", executable=False)
    _make_file(second / "mytool", executable=True)
    monkeypatch.setenv("PATH", os.pathsep.join([str(first), str(second)]))
    assert util.which("mytool") == second / "mytool"


def test_which_skips_directories(tmp_path, monkeypatch):
    (tmp_path / "mytool").mkdir()
    (tmp_path / "mytool").chmod(stat.S_IRWXU)
    monkeypatch.setenv("PATH", str(tmp_path))
    assert util.which("mytool") is None


def test_which_without_path_variable(monkeypatch):
    monkeypatch.delenv("PATH", raising=False)
    assert util.which("anything") is None


def test_has_command(tmp_path, monkeypatch):
    _make_file(tmp_path / "present", executable=True)
    monkeypatch.setenv("PATH", str(tmp_path))
    assert util.has_command("present") is True
    assert util.has_command("absent") is False


def test_runtime_dir_uses_xdg(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path))
    assert util.runtime_dir() == tmp_path


def test_runtime_dir_falls_back_to_temp(monkeypatch):
    monkeypatch.delenv("XDG_RUNTIME_DIR", raising=False)
    assert util.runtime_dir() == Path(tempfile.gettempdir())


def test_poll_until_returns_first_value():
    calls = []

    def check():
        calls.append(1)
        return "ready" if len(calls) >= 3 else None

    result = util.poll_until(5.0, 0.001, check)
    assert result == "ready"
    assert len(calls) == 3


def test_poll_until_times_out():
    calls = []

    def check():
        calls.append(1)
        return None

    assert util.poll_until(0.02, 0.005, check) is None
    assert len(calls) >= 1


def test_poll_until_zero_timeout_never_calls():
    calls = []

    def check():
        calls.append(1)
        return True

    assert util.poll_until(0.0, 0.001, check) is None
    assert calls == []