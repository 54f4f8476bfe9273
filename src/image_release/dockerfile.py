"""Dockerfile facts: base image, exposed ports, location and fingerprints.

A line-oriented reader, not a Dockerfile grammar.  It understands comments,
``\\`` line continuations, ``FROM [--flag=...] image[:tag][@digest] [AS name]``
and ``EXPOSE port[/proto] ...``, which is all the release pipeline needs.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from src.image_release.project import ProjectSource

logger = logging.getLogger(__name__)

DOCKERFILE_GLOB = "**/Dockerfile"
FINGERPRINT_VERSION = "0.0.1"

BASE_IMAGE_TYPE = "docker-base-image"
PORTS_TYPE = "docker-ports"
PATH_TYPE = "docker-path"

# ---------------------------------------------------------------------------
# Module-level compiled regex patterns
# ---------------------------------------------------------------------------
_RE_INSTRUCTION = re.compile(r"^\s*(?P<keyword>[A-Za-z]+)\s+(?P<rest>.*)$")
_RE_FROM_LINE = re.compile(
    r"^(?P<head>\s*FROM\s+(?:--\S+\s+)*)(?P<image>\S+)(?P<tail>.*)$",
    re.IGNORECASE,
)
_RE_PORT_NUMBER = re.compile(r"^(\d+)")


@dataclass
class ImageName:
    """A parsed ``FROM`` image reference."""

    name: str
    tag: str | None = None
    digest: str | None = None

    def render(self) -> str:
        text = self.name
        if self.tag:
            text += f":{self.tag}"
        if self.digest:
            text += f"@{self.digest}"
        return text


@dataclass
class DockerfileFacts:
    """What the pipeline knows about one Dockerfile."""

    path: str
    base_images: list[ImageName] = field(default_factory=list)
    ports: list[str] = field(default_factory=list)

    @property
    def base_image(self) -> ImageName | None:
        return self.base_images[0] if self.base_images else None


@dataclass
class Fingerprint:
    """A content fingerprint: typed data plus its sha256."""

    type: str
    name: str
    abbreviation: str
    data: Any
    sha: str
    version: str = FINGERPRINT_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "abbreviation": self.abbreviation,
            "version": self.version,
            "data": self.data,
            "sha": self.sha,
        }


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def split_image(reference: str) -> ImageName:
    """Split ``registry:5000/name:tag@sha256:...`` into its parts.

    A ``:`` only starts a tag when no ``/`` follows it, so registry ports are
    kept in the name.
    """
    rest, _, digest = reference.partition("@")
    head, sep, tail = rest.rpartition(":")
    if sep and "/" not in tail:
        return ImageName(name=head, tag=tail or None, digest=digest or None)
    return ImageName(name=rest, digest=digest or None)


def logical_lines(content: str) -> list[str]:
    """Join ``\\`` continuations and drop comments and blank lines."""
    lines: list[str] = []
    pending = ""
    for raw in content.splitlines():
        stripped = raw.strip()
        if stripped.startswith("#"):
            continue
        if stripped.endswith("\\"):
            pending += stripped[:-1].rstrip() + " "
            continue
        line = (pending + stripped).strip()
        pending = ""
        if line:
            lines.append(line)
    if pending.strip():
        lines.append(pending.strip())
    return lines


def parse_dockerfile(content: str, path: str = "Dockerfile") -> DockerfileFacts:
    """Extract base images and exposed ports from Dockerfile *content*."""
    facts = DockerfileFacts(path=path)
    for line in logical_lines(content):
        match = _RE_INSTRUCTION.match(line)
        if not match:
            continue
        keyword = match.group("keyword").upper()
        tokens = match.group("rest").split()
        if keyword == "FROM":
            images = [t for t in tokens if not t.startswith("--")]
            if images:
                facts.base_images.append(split_image(images[0]))
        elif keyword == "EXPOSE":
            facts.ports.extend(tokens)
    return facts


def find_dockerfiles(project: ProjectSource) -> list[DockerfileFacts]:
    """Parse every non-empty ``Dockerfile`` in *project*."""
    found: list[DockerfileFacts] = []
    for path in project.list_files(DOCKERFILE_GLOB):
        content = project.read(path)
        if not content:
            continue
        found.append(parse_dockerfile(content, path))
    return found


def exposed_port(project: ProjectSource, dockerfile: str = "Dockerfile") -> int | None:
    """First numeric ``EXPOSE`` port of *dockerfile*, or ``None``."""
    content = project.read(dockerfile)
    if not content:
        return None
    for port in parse_dockerfile(content, dockerfile).ports:
        match = _RE_PORT_NUMBER.match(port)
        if match:
            return int(match.group(1))
    return None


# ---------------------------------------------------------------------------
# Fingerprints
# ---------------------------------------------------------------------------


def sha256_of(data: Any) -> str:
    """sha256 over the compact JSON rendering of *data*."""
    text = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def base_image_fingerprint(image: str, version: str, path: str) -> Fingerprint:
    data = {"image": image, "version": version, "path": path}
    return Fingerprint(
        type=BASE_IMAGE_TYPE,
        name=image,
        abbreviation=f"dbi-{image}",
        data=data,
        sha=sha256_of(data),
    )


def base_image_fingerprints(project: ProjectSource) -> list[Fingerprint]:
    """One base-image fingerprint per Dockerfile; a missing tag means ``latest``."""
    fingerprints: list[Fingerprint] = []
    for facts in find_dockerfiles(project):
        base = facts.base_image
        if base is None:
            logger.debug("No FROM instruction in %s", facts.path)
            continue
        fingerprints.append(
            base_image_fingerprint(base.name, base.tag or "latest", facts.path)
        )
    return fingerprints


def ports_fingerprint(project: ProjectSource) -> Fingerprint | None:
    """Fingerprint of all exposed ports across Dockerfiles, if any."""
    ports = [p for facts in find_dockerfiles(project) for p in facts.ports]
    if not ports:
        return None
    return Fingerprint(
        type=PORTS_TYPE, name=PORTS_TYPE, abbreviation="dps",
        data=ports, sha=sha256_of(ports),
    )


def path_fingerprint(project: ProjectSource) -> Fingerprint | None:
    """Fingerprint of the Dockerfile location, only when there is exactly one."""
    paths = project.list_files(DOCKERFILE_GLOB)
    if len(paths) != 1:
        return None
    return Fingerprint(
        type=PATH_TYPE, name=PATH_TYPE, abbreviation="dpa",
        data=paths[0], sha=sha256_of(paths[0]),
    )


def update_base_image_tag(project: ProjectSource, path: str, version: str) -> bool:
    """Rewrite the tag of every tagged ``FROM`` image in *path* to *version*.

    Untagged images are left alone.  Everything else in the file, including
    whitespace, is preserved.

    Returns:
        ``True`` if the file exists (whether or not anything changed).
    """
    content = project.read(path)
    if content is None:
        logger.warning("Cannot update base image: %s not found", path)
        return False

    updated: list[str] = []
    for line in content.split("\n"):
        match = _RE_FROM_LINE.match(line)
        if match:
            image = split_image(match.group("image"))
            if image.tag:
                image.tag = version
                line = match.group("head") + image.render() + match.group("tail")
        updated.append(line)

    new_content = "\n".join(updated)
    if new_content != content:
        project.write(path, new_content)
        logger.info("Updated base image tag in %s to %s", path, version)
    return True
