"""Data models for per-branch container deployment."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

DEFAULT_MAX_CONTAINERS = 5


@dataclass
class DeployerOptions:
    """Configuration of a :class:`BranchDeploymentManager`.

    Attributes:
        lower_port: First host port scanned for a free port.
        success_patterns: Regexes tested against accumulated stdout; any
            match means the container started.  Overly broad patterns such
            as ``.*`` report false positives.
        base_url: Base URL of the docker host, e.g. ``http://localhost``.
        source_port: Port exposed inside the container.
        max_containers: Ceiling on concurrently tracked containers.
        docker_command: Docker binary.
    """

    lower_port: int = 9090
    success_patterns: list[str] = field(default_factory=list)
    base_url: str = "http://localhost"
    source_port: int = 8080
    max_containers: int = DEFAULT_MAX_CONTAINERS
    docker_command: str = "docker"

    def compiled_patterns(self) -> list[re.Pattern[str]]:
        return [re.compile(p) for p in self.success_patterns]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeployerOptions:
        """Build options from a config mapping, ignoring unknown keys."""
        known = {
            "lower_port", "success_patterns", "base_url",
            "source_port", "max_containers", "docker_command",
        }
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class Deployment:
    """A container started for one repository branch."""

    repository: str
    branch: str
    port: int
    container_name: str
    image: str
    endpoint: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository": self.repository,
            "branch": self.branch,
            "port": self.port,
            "container_name": self.container_name,
            "image": self.image,
            "endpoint": self.endpoint,
        }
