"""Project access and the narrow collaborator protocols the pipeline consumes."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILE = ".image-release.yaml"


@runtime_checkable
class ProjectSource(Protocol):
    """Read/write access to a checked-out working directory."""

    @property
    def name(self) -> str:
        ...

    @property
    def base_dir(self) -> Path:
        ...

    def list_files(self, pattern: str) -> list[str]:
        ...

    def read(self, path: str) -> str | None:
        ...

    def write(self, path: str, content: str) -> None:
        ...


@runtime_checkable
class VersionResolver(Protocol):
    """Computes the release version of a commit."""

    async def resolve(self, repo: str, sha: str, branch: str) -> str:
        ...


class LocalProject:
    """A project that lives in a local directory."""

    def __init__(self, base_dir: Path | str, name: str | None = None) -> None:
        self._base_dir = Path(base_dir).resolve()
        self._name = name or self._base_dir.name

    @property
    def name(self) -> str:
        return self._name

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def list_files(self, pattern: str) -> list[str]:
        """Return project-relative POSIX paths matching a glob *pattern*."""
        return sorted(
            p.relative_to(self._base_dir).as_posix()
            for p in self._base_dir.glob(pattern)
            if p.is_file()
        )

    def read(self, path: str) -> str | None:
        target = self._base_dir / path
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8")

    def write(self, path: str, content: str) -> None:
        target = self._base_dir / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")


class FixedVersionResolver:
    """Version resolver that always answers the same version."""

    def __init__(self, version: str) -> None:
        self.version = version

    async def resolve(self, repo: str, sha: str, branch: str) -> str:
        return self.version


def load_project_config(project: ProjectSource) -> dict[str, Any]:
    """Load ``.image-release.yaml`` from the project root, or ``{}``."""
    content = project.read(PROJECT_CONFIG_FILE)
    if content is None:
        return {}
    try:
        data = yaml.safe_load(content) or {}
    except yaml.YAMLError as exc:
        logger.warning("Ignoring unreadable %s: %s", PROJECT_CONFIG_FILE, exc)
        return {}
    return data if isinstance(data, dict) else {}


def project_configuration_value(
    project: ProjectSource | None,
    key: str,
    default: Any = None,
) -> Any:
    """Look up a dotted *key* (e.g. ``docker.push.enabled``) in project config.

    Returns *default* when there is no project, no config file, or the key
    is absent.
    """
    if project is None:
        return default
    node: Any = load_project_config(project)
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node
