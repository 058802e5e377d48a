import io
import os
import sys
from pathlib import Path

import pytest

from agsandbox.update_check import (
    CURRENT_VERSION,
    UpdateCheck,
    fetch_latest_tag,
    is_newer,
    read_cache,
    write_cache,
)


class _Tty(io.StringIO):
    def isatty(self):
        return True


def test_is_newer_compares_semver():
    assert is_newer("0.4.0", "0.3.0")
    assert is_newer("1.0.0", "0.9.9")
    assert not is_newer("0.3.0", "0.3.0")
    assert not is_newer("0.2.0", "0.3.0")


def test_is_newer_handles_v_prefix():
    assert is_newer("v0.4.0", "v0.3.0")


def test_is_newer_rejects_unparsable():
    assert not is_newer("1.0", "0.1.0")
    assert not is_newer("2.0.0-beta", "0.1.0")


def test_read_cache_returns_stale_on_missing_file():
    version, stale = read_cache(Path("/nonexistent/path"))
    assert version is None
    assert stale


def test_write_and_read_cache_roundtrips(tmp_path):
    path = tmp_path / "update-check"
    write_cache(path, "0.5.0")
    version, stale = read_cache(path)
    assert version == "0.5.0"
    assert not stale


def test_old_cache_is_stale_but_keeps_version(tmp_path):
    path = tmp_path / "update-check"
    path.write_text("0\n0.5.0\n")
    assert read_cache(path) == ("0.5.0", True)


def test_cache_without_version_is_ignored(tmp_path):
    path = tmp_path / "update-check"
    path.write_text("12345\n")
    assert read_cache(path) == (None, True)


def test_start_uses_fresh_cache(tmp_path):
    write_cache(tmp_path / "update-check", "0.5.0")
    assert UpdateCheck.start(tmp_path).latest_version == "0.5.0"


def test_start_with_empty_cache_has_no_version(tmp_path, monkeypatch):
    monkeypatch.delenv("AGS_UPDATE_REPO", raising=False)
    assert UpdateCheck.start(tmp_path).latest_version is None


def test_fetch_without_repo_returns_none(monkeypatch):
    monkeypatch.delenv("AGS_UPDATE_REPO", raising=False)
    assert fetch_latest_tag() is None


def test_fetch_parses_tag_name(tmp_path, monkeypatch):
    curl = tmp_path / "curl"
    curl.write_text("#!/bin/sh\nprintf '%s' '{\"tag_name\": \"v1.2.3\", \"x\": 1}'\n")
    curl.chmod(0o755)
    monkeypatch.setenv("PATH", f"{tmp_path}{os.pathsep}{os.environ.get('PATH', '')}")
    monkeypatch.setenv("AGS_UPDATE_REPO", "example/sandbox")
    assert fetch_latest_tag() == "1.2.3"


def test_notify_prints_for_newer_release(monkeypatch):
    stream = _Tty()
    monkeypatch.setattr(sys, "stderr", stream)
    UpdateCheck(latest_version="999.0.0").notify_if_available()
    output = stream.getvalue()
    assert "A new release of ags is available" in output
    assert f"v{CURRENT_VERSION}" in output
    assert "v999.0.0" in output


@pytest.mark.parametrize("latest", [None, CURRENT_VERSION, "0.0.0"])
def test_notify_silent_when_not_newer(monkeypatch, latest):
    stream = _Tty()
    monkeypatch.setattr(sys, "stderr", stream)
    UpdateCheck(latest_version=latest).notify_if_available()
    assert stream.getvalue() == ""


def test_notify_silent_without_terminal(monkeypatch):
    stream = io.StringIO()
    monkeypatch.setattr(sys, "stderr", stream)
    UpdateCheck(latest_version="999.0.0").notify_if_available()
    assert stream.getvalue() == ""