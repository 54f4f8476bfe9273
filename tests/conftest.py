"""Shared test fixtures for the image-release test suite."""
from __future__ import annotations

from pathlib import Path

import pytest

from src.image_release.models import BuildRequest
from src.image_release.project import LocalProject
from src.shared.run_log import MemoryRunLog
from tests.fixtures import SAMPLE_DOCKERFILE, FakeRunner


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def memory_log() -> MemoryRunLog:
    return MemoryRunLog()


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A checked-out project named ``demo-app`` with a Dockerfile."""
    root = tmp_path / "demo-app"
    root.mkdir()
    (root / "Dockerfile").write_text(SAMPLE_DOCKERFILE, encoding="utf-8")
    return root


@pytest.fixture
def project(project_dir: Path) -> LocalProject:
    return LocalProject(project_dir)


@pytest.fixture
def build_request() -> BuildRequest:
    return BuildRequest(
        owner="acme",
        repo="demo-app",
        sha="26e18ee3e30c0df0f0f2ff0bc42a4bd08a7024b9",
        branch="main",
        default_branch="main",
        run_id="run-1",
        workspace_id="W1",
    )
