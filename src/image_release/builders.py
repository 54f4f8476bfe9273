"""Builder strategies: native ``docker build`` and the isolated kaniko executor.

The builder is a closed variant over exactly two kinds.  Each implements
``probe()`` (pre-flight) and ``execute(context)``; the orchestrator never
branches on the builder kind itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from src.image_release.models import BuilderKind, BuildOptions, BuildResult, ImageReference
from src.shared.errors import BuilderUnavailableError, BuildFailure
from src.shared.process import ProcessRunner
from src.shared.run_log import RunLog

if TYPE_CHECKING:
    from src.image_release.project import ProjectSource

logger = logging.getLogger(__name__)

DEFAULT_KANIKO_ARGS = ["--snapshotMode=time", "--reproducible"]
BASE_IMAGE_CACHE_DIR = "base-image-cache"


@dataclass
class BuildContext:
    """Everything a builder needs for one run."""

    project: ProjectSource
    images: ImageReference
    options: BuildOptions
    push_enabled: bool
    log: RunLog
    env: dict[str, str] = field(default_factory=dict)
    cache_path: str | None = None

    @property
    def dockerfile_path(self) -> Path:
        return self.project.base_dir / self.options.dockerfile

    @property
    def context_path(self) -> Path:
        if self.options.context:
            return self.project.base_dir / self.options.context
        return self.project.base_dir


def _dedupe(args: list[str]) -> list[str]:
    """Drop repeated arguments, keeping the first occurrence."""
    seen: set[str] = set()
    result: list[str] = []
    for arg in args:
        if arg not in seen:
            seen.add(arg)
            result.append(arg)
    return result


def _repository(tag: str) -> str:
    """Strip the ``:tag`` suffix (registry ports are left alone)."""
    head, sep, tail = tag.rpartition(":")
    if sep and "/" not in tail:
        return head
    return tag


def build_kaniko_args(
    images: ImageReference,
    push: bool,
    builder_args: list[str] | None = None,
    cache_path: str | None = None,
) -> list[str]:
    """Compose the kaniko executor options for *images*.

    Operator-supplied *builder_args* replace the default snapshot flags
    entirely.  Push adds one ``-d`` per tag plus a cache repository; no push
    adds ``--no-push``.  An existing *cache_path* enables a local base-image
    cache, creating ``<cache_path>/base-image-cache`` when needed.

    Returns:
        De-duplicated argument list, first occurrence wins.
    """
    args = list(builder_args) if builder_args else list(DEFAULT_KANIKO_ARGS)

    if push:
        args.extend(f"-d={tag}" for tag in images.tags)
        if images.tags:
            args.append("--cache=true")
            args.append(f"--cache-repo={_repository(images.tags[0])}/cache")
    else:
        args.append("--no-push")

    if cache_path:
        root = Path(cache_path)
        if root.is_dir():
            cache_dir = root / BASE_IMAGE_CACHE_DIR
            cache_dir.mkdir(parents=True, exist_ok=True)
            args.append("--cache=true")
            args.append(f"--cache-dir={cache_dir.as_posix()}")
        else:
            logger.warning(
                "Cannot enable kaniko cache, path %s doesn't exist", cache_path
            )

    return _dedupe(args)


class BuilderStrategy:
    """Abstract base for the two image builders."""

    kind: BuilderKind
    pushes_on_build = False

    def __init__(self, runner: ProcessRunner, command: str) -> None:
        self.runner = runner
        self.command = command

    async def probe(self, log: RunLog | None = None) -> None:
        """Verify the builder binary is callable.

        Raises:
            BuilderUnavailableError: If the probe cannot run or exits non-zero.
        """
        try:
            result = await self.runner.run(self.command, ["--help"], log=None)
        except OSError as exc:
            raise BuilderUnavailableError(
                f"{self.kind.value} builder '{self.command}' is not available: {exc}"
            ) from exc
        if not result.success:
            raise BuilderUnavailableError(
                f"{self.kind.value} builder '{self.command}' failed its probe",
                code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        if log is not None:
            log.write(f"Using {self.kind.value} builder '{self.command}'\n")

    def command_args(self, context: BuildContext) -> list[str]:
        raise NotImplementedError

    async def execute(self, context: BuildContext) -> BuildResult:
        """Run the build and return a success result.

        Raises:
            BuildFailure: If the build cannot be prepared or spawned, or
                exits non-zero.
        """
        try:
            args = self.command_args(context)
            result = await self.runner.run(
                self.command,
                args,
                cwd=context.project.base_dir,
                env=context.env,
                log=context.log,
            )
        except OSError as exc:
            raise BuildFailure(f"Unable to run {self.kind.value} build: {exc}") from exc
        if not result.success:
            raise BuildFailure(
                f"{self.kind.value} build exited with code {result.exit_code}",
                code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return BuildResult(
            code=0,
            images=list(context.images.tags),
            stdout=result.stdout,
            stderr=result.stderr,
        )


class NativeBuilder(BuilderStrategy):
    """``docker build`` against the local daemon."""

    kind = BuilderKind.NATIVE

    def command_args(self, context: BuildContext) -> list[str]:
        args = ["build", "-f", str(context.dockerfile_path)]
        for tag in context.images.tags:
            args.extend(["-t", tag])
        args.extend(context.options.builder_args)
        args.append(str(context.context_path))
        return args


class IsolatedBuilder(BuilderStrategy):
    """Daemon-less kaniko executor; pushes while it builds."""

    kind = BuilderKind.ISOLATED
    pushes_on_build = True

    def command_args(self, context: BuildContext) -> list[str]:
        return [
            f"--dockerfile={context.dockerfile_path}",
            f"--context=dir://{context.context_path}",
            *build_kaniko_args(
                context.images,
                context.push_enabled,
                context.options.builder_args,
                context.cache_path,
            ),
        ]


def create_builder(
    kind: BuilderKind,
    runner: ProcessRunner,
    docker_command: str = "docker",
    kaniko_command: str = "/kaniko/executor",
) -> BuilderStrategy:
    """Return the strategy for *kind*."""
    if kind is BuilderKind.NATIVE:
        return NativeBuilder(runner, docker_command)
    if kind is BuilderKind.ISOLATED:
        return IsolatedBuilder(runner, kaniko_command)
    raise ValueError(f"Unknown builder kind: {kind!r}")
