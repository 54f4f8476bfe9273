"""Data models for the image release pipeline."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from src.shared.errors import ConfigurationError


class BuilderKind(str, Enum):
    """The two supported image builders."""
    NATIVE = "native"
    ISOLATED = "isolated"


class ReleaseStage(str, Enum):
    """States of the release state machine."""
    RESOLVING = "resolving"
    AUTHENTICATING = "authenticating"
    BUILDING = "building"
    PUSHING = "pushing"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class BuildRequest:
    """One build invocation for a commit on a branch."""
    owner: str
    repo: str
    sha: str
    branch: str
    default_branch: str
    project_dir: str = "."
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    workspace_id: str = ""

    @property
    def is_default_branch(self) -> bool:
        return self.branch == self.default_branch


@dataclass
class RegistryTarget:
    """A registry the image is tagged for and pushed to."""
    url: str
    display_url: str | None = None
    browse_path: str | None = None
    label: str | None = None
    username: str | None = None
    password: str | None = None
    anonymous: bool = False

    def __post_init__(self) -> None:
        self.url = (self.url or "").strip().rstrip("/")

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)


@dataclass
class ImageReference:
    """A bare image name and its fully-qualified tags, in push order."""
    name: str
    tags: list[str] = field(default_factory=list)

    def tags_for(self, registry: RegistryTarget) -> list[str]:
        """Return the tags that belong to *registry*."""
        prefix = f"{registry.url}/{self.name}:"
        return [t for t in self.tags if t.startswith(prefix)]


@dataclass
class BuildOptions:
    """Fully-typed build configuration after merging all layers."""
    builder: BuilderKind = BuilderKind.NATIVE
    builder_args: list[str] = field(default_factory=list)
    dockerfile: str = "Dockerfile"
    context: str | None = None
    push: bool | None = None
    registries: list[RegistryTarget] = field(default_factory=list)
    inline_auth: str | None = None
    cache_path: str | None = None
    tag_latest: bool = False

    @property
    def has_credentials(self) -> bool:
        """True when any registry or an inline payload supplies credentials."""
        return bool(self.inline_auth) or any(
            r.has_credentials for r in self.registries
        )

    def validate(self, push_enabled: bool) -> None:
        """Reject configurations that cannot work for this run.

        Raises:
            ConfigurationError: On a registry without a URL, an inline
                payload that is not a JSON object, or a push against a
                registry for which no credentials can be resolved.
        """
        for registry in self.registries:
            if not registry.url:
                raise ConfigurationError("Registry configured without a URL")

        if self.inline_auth:
            try:
                document = json.loads(self.inline_auth)
            except json.JSONDecodeError as exc:
                raise ConfigurationError(
                    f"Inline authentication payload is not valid JSON: {exc}"
                ) from exc
            if not isinstance(document, dict):
                raise ConfigurationError(
                    "Inline authentication payload must be a JSON object"
                )

        if not push_enabled:
            return
        for registry in self.registries:
            if registry.anonymous or registry.has_credentials or self.inline_auth:
                continue
            raise ConfigurationError(
                "Required configuration missing for pushing docker image. "
                "Please make sure to set 'registry', 'user' and 'password' "
                f"in your configuration (registry '{registry.url}')."
            )


@dataclass
class ExternalUrl:
    """A human-facing link to a pushed image."""
    url: str
    label: str | None = None


@dataclass
class BuildResult:
    """Terminal artifact of a pipeline run."""
    code: int = 0
    message: str = ""
    external_urls: list[ExternalUrl] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.code == 0


@dataclass
class AuthResult:
    """What the credential materializer did for one target."""
    method: str = "none"  # "login", "config" or "none"
    registry: str | None = None
    config_dir: Path | None = None
    stdout: str = ""
    stderr: str = ""


@dataclass
class RunModeHints:
    """Facts about the current run that feed the push heuristic."""
    local_mode: bool = False
