"""Tests for CLI detection and process tree termination."""

from __future__ import annotations

import shutil
import subprocess
import sys
from unittest.mock import patch

import pytest

from conductor.runtime.process.detection import (
    detect_cli_installation,
    find_executable,
    get_cli_version,
)
from conductor.runtime.process.termination import kill_process_tree


class TestFindExecutable:

    def test_configured_path_wins(self, monkeypatch):
        monkeypatch.setenv("CONDUCTOR_CODEX_CLI", sys.executable)
        assert find_executable("codex", "definitely-not-a-real-cli") == shutil.which(sys.executable)

    def test_falls_back_to_path(self):
        python = shutil.which("python3") or shutil.which("python")
        assert find_executable("codex", "python3" if shutil.which("python3") else "python") == python

    def test_not_found(self):
        with patch("conductor.runtime.process.detection.common_install_paths", return_value=[]):
            assert find_executable("codex", "definitely-not-a-real-cli") is None

    def test_common_install_path(self, tmp_path):
        fake = tmp_path / "fake-cli"
        fake.write_text("#!/bin/sh\n")
        fake.chmod(0o755)
        with patch("conductor.runtime.process.detection.common_install_paths", return_value=[fake]):
            assert find_executable("codex", "definitely-not-a-real-cli") == str(fake)


class TestDetectInstallation:

    def test_configured_cli(self, monkeypatch):
        monkeypatch.setenv("CONDUCTOR_CODEX_CLI", sys.executable)
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

        status = detect_cli_installation("codex", "definitely-not-a-real-cli", "OPENAI_API_KEY")

        assert status.installed is True
        assert status.method == "configured"
        assert status.has_api_key is True
        assert status.version.startswith("Python")

    def test_api_key_only(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "key")
        with patch("conductor.runtime.process.detection.find_executable", return_value=None):
            status = detect_cli_installation("gemini", "gemini", "GEMINI_API_KEY")

        assert status.installed is False
        assert status.method == "api-key-only"
        assert status.to_dict()["has_api_key"] is True

    def test_nothing_found(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with patch("conductor.runtime.process.detection.find_executable", return_value=None):
            status = detect_cli_installation("gemini", "gemini", "GEMINI_API_KEY")

        assert status.installed is False
        assert status.method == "none"

    def test_version_failure_returns_none(self, tmp_path):
        assert get_cli_version(str(tmp_path / "missing")) is None


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups")
class TestKillProcessTree:

    def test_invalid_pid(self):
        assert kill_process_tree(0) is False
        assert kill_process_tree(None) is False

    def test_kills_process_group(self):
        parent = subprocess.Popen(
            [
                sys.executable,
                "-c",
                "import subprocess, sys, time; "
                "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)']); "
                "time.sleep(30)",
            ],
            start_new_session=True,
        )
        try:
            assert kill_process_tree(parent.pid) is True
            assert parent.wait(timeout=10) != 0
        finally:
            if parent.poll() is None:
                parent.kill()

    def test_already_exited(self):
        proc = subprocess.Popen([sys.executable, "-c", "pass"])
        proc.wait()
        assert kill_process_tree(proc.pid) is False
