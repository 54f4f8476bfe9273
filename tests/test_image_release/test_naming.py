"""Tests for image name and tag resolution."""
from __future__ import annotations

import dataclasses

import pytest

from src.image_release.models import BuildOptions, RegistryTarget
from src.image_release.naming import ImageNameResolver, sanitize_image_name, sanitize_tag
from src.image_release.project import FixedVersionResolver, LocalProject
from src.shared.errors import ConfigurationError

REGISTRIES = [RegistryTarget(url="reg-a.io/team"), RegistryTarget(url="reg-b.io/")]


class TestSanitize:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Demo-App", "demo-app"),
            ("my app!!", "my-app"),
            ("--weird__name--", "weird-name"),
            ("org/Sub Project", "org/sub-project"),
            ("***", ""),
        ],
    )
    def test_image_name(self, raw, expected):
        assert sanitize_image_name(raw) == expected

    def test_tag(self):
        assert sanitize_tag("1.2.3+build/7") == "1.2.3-build-7"
        assert len(sanitize_tag("x" * 300)) == 128


class TestImageNameResolver:
    @pytest.mark.asyncio
    async def test_one_version_tag_per_registry(self, project, build_request):
        resolver = ImageNameResolver(FixedVersionResolver("1.0.0"))
        ref = await resolver.resolve(project, build_request, BuildOptions(registries=REGISTRIES))
        assert ref.name == "demo-app"
        assert ref.tags == ["reg-a.io/team/demo-app:1.0.0", "reg-b.io/demo-app:1.0.0"]

    @pytest.mark.asyncio
    async def test_latest_on_default_branch(self, project, build_request):
        resolver = ImageNameResolver(FixedVersionResolver("1.0.0"))
        options = BuildOptions(registries=REGISTRIES, tag_latest=True)
        ref = await resolver.resolve(project, build_request, options)
        assert ref.tags == [
            "reg-a.io/team/demo-app:1.0.0",
            "reg-a.io/team/demo-app:latest",
            "reg-b.io/demo-app:1.0.0",
            "reg-b.io/demo-app:latest",
        ]

    @pytest.mark.asyncio
    async def test_no_latest_on_feature_branch(self, project, build_request):
        request = dataclasses.replace(build_request, branch="feature/x")
        resolver = ImageNameResolver(FixedVersionResolver("1.0.0"))
        options = BuildOptions(registries=REGISTRIES, tag_latest=True)
        ref = await resolver.resolve(project, request, options)
        assert all(not t.endswith(":latest") for t in ref.tags)

    @pytest.mark.asyncio
    async def test_project_config_overrides_latest(self, project, build_request):
        project.write(".image-release.yaml", "docker:\n  tag:\n    latest: false\n")
        resolver = ImageNameResolver(FixedVersionResolver("1.0.0"))
        options = BuildOptions(registries=REGISTRIES, tag_latest=True)
        ref = await resolver.resolve(project, build_request, options)
        assert len(ref.tags) == 2

    @pytest.mark.asyncio
    async def test_local_build_without_registry(self, project, build_request):
        resolver = ImageNameResolver(FixedVersionResolver("1.0.0"))
        ref = await resolver.resolve(project, build_request, BuildOptions())
        assert ref.tags == ["demo-app:1.0.0"]

    @pytest.mark.asyncio
    async def test_push_without_registry_rejected(self, project, build_request):
        resolver = ImageNameResolver(FixedVersionResolver("1.0.0"))
        with pytest.raises(ConfigurationError):
            await resolver.resolve(project, build_request, BuildOptions(), push_required=True)

    @pytest.mark.asyncio
    async def test_unusable_project_name(self, tmp_path, build_request):
        bad = LocalProject(tmp_path, name="!!!")
        resolver = ImageNameResolver(FixedVersionResolver("1.0.0"))
        with pytest.raises(ConfigurationError):
            await resolver.resolve(bad, build_request, BuildOptions())

    @pytest.mark.asyncio
    async def test_empty_version(self, project, build_request):
        resolver = ImageNameResolver(FixedVersionResolver("   "))
        with pytest.raises(ConfigurationError):
            await resolver.resolve(project, build_request, BuildOptions())

    @pytest.mark.asyncio
    async def test_identical_runs_give_identical_tags(self, project, build_request):
        resolver = ImageNameResolver(FixedVersionResolver("2.1.0"))
        options = BuildOptions(registries=REGISTRIES, tag_latest=True)
        first = await resolver.resolve(project, build_request, options)
        second = await resolver.resolve(project, build_request, options)
        assert first.tags == second.tags
