"""Image name and tag resolution across registries."""

from __future__ import annotations

import logging
import re

from src.image_release.models import BuildOptions, BuildRequest, ImageReference
from src.image_release.project import (
    ProjectSource,
    VersionResolver,
    project_configuration_value,
)
from src.shared.errors import ConfigurationError

logger = logging.getLogger(__name__)

LATEST_TAG = "latest"

_NAME_INVALID = re.compile(r"[^a-z0-9._/-]+")
_NAME_SEPARATOR_RUNS = re.compile(r"[._-]{2,}")
_TAG_INVALID = re.compile(r"[^A-Za-z0-9_.-]+")
_MAX_TAG_LENGTH = 128


def sanitize_image_name(raw: str) -> str:
    """Lowercase *raw* and strip characters not allowed in image names."""
    name = _NAME_INVALID.sub("-", raw.strip().lower())
    name = _NAME_SEPARATOR_RUNS.sub("-", name)
    parts = [p.strip("._-") for p in name.split("/")]
    return "/".join(p for p in parts if p)


def sanitize_tag(raw: str) -> str:
    """Make *raw* a valid tag: ``[A-Za-z0-9_.-]``, at most 128 characters."""
    tag = _TAG_INVALID.sub("-", raw.strip()).lstrip(".-")
    return tag[:_MAX_TAG_LENGTH]


class ImageNameResolver:
    """Builds the canonical image name and one tag per configured registry."""

    def __init__(self, version_resolver: VersionResolver) -> None:
        self.version_resolver = version_resolver

    async def resolve(
        self,
        project: ProjectSource,
        request: BuildRequest,
        options: BuildOptions,
        push_required: bool = False,
    ) -> ImageReference:
        """Resolve the :class:`ImageReference` for this build.

        Raises:
            ConfigurationError: If the name sanitizes to nothing, the version
                is empty, or push is required but no registry is configured.
        """
        if push_required and not options.registries:
            raise ConfigurationError(
                "Push is enabled but no registry is configured"
            )

        name = sanitize_image_name(project.name)
        if not name:
            raise ConfigurationError(
                f"Project name '{project.name}' is not a valid image name"
            )

        raw_version = await self.version_resolver.resolve(
            request.repo, request.sha, request.branch
        )
        version = sanitize_tag(raw_version or "")
        if not version:
            raise ConfigurationError(
                f"Version '{raw_version}' is not a valid image tag"
            )

        tag_latest = bool(
            project_configuration_value(project, "docker.tag.latest", options.tag_latest)
        )
        versions = [version]
        if tag_latest and request.is_default_branch and version != LATEST_TAG:
            versions.append(LATEST_TAG)

        if options.registries:
            tags = [
                f"{registry.url}/{name}:{v}"
                for registry in options.registries
                for v in versions
            ]
        else:
            tags = [f"{name}:{v}" for v in versions]

        logger.info("Resolved image %s with tags %s", name, ", ".join(tags))
        return ImageReference(name=name, tags=tags)
