"""Tests for the subprocess runner (spawn replaced by fake processes)."""
from __future__ import annotations

import os
from unittest.mock import AsyncMock, patch

import pytest

from src.shared.process import ProcessRunner, merged_env
from src.shared.run_log import MemoryRunLog
from src.shared.utils import atomic_write_text
from tests.fixtures import FakeProcess


class TestMergedEnv:
    def test_overrides_on_top_of_environ(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("IMAGE_RELEASE_TEST", "base")
        env = merged_env({"IMAGE_RELEASE_TEST": "override", "DOCKER_CONFIG": "/tmp/x"})
        assert env["IMAGE_RELEASE_TEST"] == "override"
        assert env["DOCKER_CONFIG"] == "/tmp/x"
        assert os.environ["IMAGE_RELEASE_TEST"] == "base"


class TestProcessRunnerRun:
    @pytest.mark.asyncio
    async def test_captures_and_streams_output(self):
        proc = FakeProcess(["line one\nline two\n"], ["warn\n"], exit_code=0)
        runner = ProcessRunner()
        log = MemoryRunLog()
        with patch.object(ProcessRunner, "spawn", AsyncMock(return_value=proc)):
            result = await runner.run("docker", ["build", "."], log=log)
        assert result.success
        assert result.command == ["docker", "build", "."]
        assert result.stdout == "line one\nline two\n"
        assert result.stderr == "warn\n"
        assert log.entries[0] == "Running: docker build .\n"
        assert "line one\n" in log.entries
        assert "warn\n" in log.entries

    @pytest.mark.asyncio
    async def test_non_zero_exit(self):
        proc = FakeProcess(["nope\n"], exit_code=3)
        with patch.object(ProcessRunner, "spawn", AsyncMock(return_value=proc)):
            result = await ProcessRunner().run("docker", ["push", "x"])
        assert not result.success
        assert result.exit_code == 3

    @pytest.mark.asyncio
    async def test_command_line_can_be_hidden(self):
        proc = FakeProcess(["Login Succeeded\n"])
        log = MemoryRunLog()
        with patch.object(ProcessRunner, "spawn", AsyncMock(return_value=proc)):
            await ProcessRunner().run(
                "docker", ["login", "--password", "s3cret"], log=log, log_command=False
            )
        assert "s3cret" not in log.log
        assert "Login Succeeded" in log.log

    @pytest.mark.asyncio
    async def test_spawn_error_propagates(self):
        with patch.object(
            ProcessRunner, "spawn", AsyncMock(side_effect=FileNotFoundError("docker"))
        ):
            with pytest.raises(OSError):
                await ProcessRunner().run("docker", ["version"])


class TestAtomicWriteText:
    def test_creates_parents_and_leaves_no_temp(self, tmp_path):
        target = tmp_path / "a" / "b" / "config.json"
        atomic_write_text(target, "{}")
        assert target.read_text(encoding="utf-8") == "{}"
        assert not (target.parent / "config.json.tmp").exists()
