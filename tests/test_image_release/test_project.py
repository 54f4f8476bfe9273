"""Tests for local project access and project configuration lookup."""
from __future__ import annotations

import pytest

from src.image_release.project import (
    FixedVersionResolver,
    LocalProject,
    ProjectSource,
    load_project_config,
    project_configuration_value,
)


class TestLocalProject:
    def test_name_defaults_to_directory(self, project):
        assert project.name == "demo-app"
        assert isinstance(project, ProjectSource)

    def test_read_write_list(self, project):
        project.write("nested/dir/file.txt", "hi")
        assert project.read("nested/dir/file.txt") == "hi"
        assert project.read("absent.txt") is None
        assert project.list_files("**/*.txt") == ["nested/dir/file.txt"]


class TestProjectConfiguration:
    def test_dotted_lookup(self, project):
        project.write(".image-release.yaml", "docker:\n  push:\n    enabled: false\n")
        assert project_configuration_value(project, "docker.push.enabled") is False

    def test_missing_key_gives_default(self, project):
        project.write(".image-release.yaml", "docker: {}\n")
        assert project_configuration_value(project, "docker.tag.latest", "dflt") == "dflt"

    def test_no_project(self):
        assert project_configuration_value(None, "docker.push.enabled", 3) == 3

    def test_unreadable_yaml_is_ignored(self, project):
        project.write(".image-release.yaml", "docker: [unclosed\n")
        assert load_project_config(project) == {}


@pytest.mark.asyncio
async def test_fixed_version_resolver():
    assert await FixedVersionResolver("9.9.9").resolve("r", "s", "b") == "9.9.9"
