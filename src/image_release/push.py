"""Push decision and execution."""

from __future__ import annotations

import logging

from src.image_release.credentials import AuthSession, CredentialMaterializer
from src.image_release.models import (
    BuilderKind,
    BuildOptions,
    BuildResult,
    ImageReference,
    RunModeHints,
)
from src.image_release.project import ProjectSource, project_configuration_value
from src.shared.errors import PushFailure
from src.shared.process import ProcessRunner
from src.shared.run_log import RunLog

logger = logging.getLogger(__name__)

PUSH_ENABLED_KEY = "docker.push.enabled"


class PushGate:
    """Decides whether this run pushes and performs the pushes."""

    def __init__(
        self,
        runner: ProcessRunner,
        materializer: CredentialMaterializer,
        docker_command: str = "docker",
    ) -> None:
        self.runner = runner
        self.materializer = materializer
        self.docker_command = docker_command

    def should_push(
        self,
        options: BuildOptions,
        hints: RunModeHints,
        project: ProjectSource | None = None,
    ) -> bool:
        """Decide whether push is enabled for this run.

        Precedence: an explicit ``options.push`` wins over the credential
        heuristic; without it, push only when a registry is configured,
        credentials are present and the run is not local.  A project
        ``docker.push.enabled`` value then gates the decision.
        """
        if options.push is not None:
            decision = bool(options.push)
        elif hints.local_mode or not options.registries:
            decision = False
        else:
            decision = options.has_credentials

        override = project_configuration_value(project, PUSH_ENABLED_KEY, None)
        if override is not None:
            decision = decision and bool(override)
        logger.debug(
            "Push decision: explicit=%s local=%s override=%s -> %s",
            options.push, hints.local_mode, override, decision,
        )
        return decision

    async def push(
        self,
        images: ImageReference,
        options: BuildOptions,
        session: AuthSession,
        *,
        enabled: bool,
        log: RunLog,
        pushed_by_builder: bool = False,
    ) -> BuildResult:
        """Push every tag, registry by registry.

        The first failing push is returned as-is; later tags are not
        attempted.

        Raises:
            PushFailure: If ``docker push`` cannot be spawned.
        """
        if not enabled:
            log.write("Skipping 'docker push'\n")
            return BuildResult(code=0, images=list(images.tags))
        if pushed_by_builder:
            log.write("Images were pushed by the builder\n")
            return BuildResult(code=0, images=list(images.tags))

        for registry in options.registries:
            await self.materializer.ensure(
                registry,
                session=session,
                inline_auth=options.inline_auth,
                builder=BuilderKind.NATIVE,
                log=log,
            )
            for tag in images.tags_for(registry):
                try:
                    result = await self.runner.run(
                        self.docker_command, ["push", tag], env=session.env, log=log
                    )
                except OSError as exc:
                    raise PushFailure(f"Unable to run docker push: {exc}") from exc
                if not result.success:
                    logger.error(
                        "Push of %s failed with code %d", tag, result.exit_code,
                        extra={"registry": registry.url},
                    )
                    return BuildResult(
                        code=result.exit_code,
                        message=f"docker push {tag} failed",
                        images=list(images.tags),
                        stdout=result.stdout,
                        stderr=result.stderr,
                    )
        return BuildResult(code=0, images=list(images.tags))
