"""Release orchestrator -- drives one image build-and-release run.

    resolving → authenticating → building → pushing → publishing → done

Any stage that does not succeed sends the run straight to ``failed`` with
that stage's code and message unchanged.

.. rubric:: Key design decisions

* **State-machine-driven** -- the ``transitions`` machine owns the stage
  order; a phase handler map supplies the work for each state.
* **Errors become results** -- stages raise :class:`DeliveryError`
  subclasses; the loop converts them into a failed :class:`BuildResult`, so
  callers never see a bare traceback.
* **Fail closed on linking** -- an image that was pushed but could not be
  linked to its commit is an incomplete release.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable

from src.image_release.builders import BuildContext, BuilderStrategy, create_builder
from src.image_release.credentials import AuthSession, CredentialMaterializer
from src.image_release.links import LinkPublisher, derive_external_urls
from src.image_release.models import (
    BuildOptions,
    BuildRequest,
    BuildResult,
    ImageReference,
    ReleaseStage,
    RunModeHints,
)
from src.image_release.naming import ImageNameResolver
from src.image_release.project import ProjectSource, VersionResolver
from src.image_release.push import PushGate
from src.image_release.state_machine import (
    NEXT_TRIGGER,
    TERMINAL_STATES,
    create_release_machine,
)
from src.shared.config import ReleaseSettings
from src.shared.errors import DeliveryError, LinkPublishFailure
from src.shared.logging import run_context
from src.shared.process import ProcessRunner
from src.shared.run_log import LoggingRunLog, RunLog

logger = logging.getLogger(__name__)


@dataclass
class ReleaseRun:
    """Mutable state of one run, shared by the stage handlers."""

    request: BuildRequest
    options: BuildOptions
    project: ProjectSource
    log: RunLog
    push_enabled: bool = False
    images: ImageReference | None = None
    session: AuthSession | None = None
    builder: BuilderStrategy | None = None
    history: list[str] = field(default_factory=list)

    def require(self, stage: str, *names: str) -> None:
        """Raise :class:`DeliveryError` if *stage* runs before *names* are set."""
        missing = [name for name in names if getattr(self, name) is None]
        if missing:
            raise DeliveryError(
                f"Release stage '{stage}' ran before {', '.join(missing)} was resolved"
            )


class ReleaseModel:
    """Model object for the ``transitions`` async state machine."""

    def __init__(self) -> None:
        self.state: str = ReleaseStage.RESOLVING.value
        self.result: BuildResult = BuildResult()

    def stage_succeeded(self, *args, **kwargs) -> bool:
        """True when the last stage finished with code 0."""
        return self.result.code == 0


StageHandler = Callable[[ReleaseRun], Awaitable[BuildResult]]


class ReleaseOrchestrator:
    """Composes name resolution, credentials, build, push and linking."""

    def __init__(
        self,
        version_resolver: VersionResolver,
        link_publisher: LinkPublisher,
        runner: ProcessRunner | None = None,
        settings: ReleaseSettings | None = None,
        materializer: CredentialMaterializer | None = None,
    ) -> None:
        self.settings = settings or ReleaseSettings()
        self.runner = runner or ProcessRunner()
        self.resolver = ImageNameResolver(version_resolver)
        self.materializer = materializer or CredentialMaterializer(
            self.runner,
            credentials_root=Path(self.settings.credentials_root),
            docker_command=self.settings.docker_command,
        )
        self.push_gate = PushGate(
            self.runner, self.materializer, docker_command=self.settings.docker_command
        )
        self.link_publisher = link_publisher

    async def release(
        self,
        request: BuildRequest,
        options: BuildOptions,
        project: ProjectSource,
        log: RunLog | None = None,
    ) -> BuildResult:
        """Run the whole pipeline and return its terminal result."""
        run = ReleaseRun(
            request=request,
            options=options,
            project=project,
            log=log or LoggingRunLog(),
        )
        model = ReleaseModel()
        create_release_machine(model)

        handlers: dict[str, StageHandler] = {
            ReleaseStage.RESOLVING.value: self._resolve,
            ReleaseStage.AUTHENTICATING.value: self._authenticate,
            ReleaseStage.BUILDING.value: self._build,
            ReleaseStage.PUSHING.value: self._push,
            ReleaseStage.PUBLISHING.value: self._publish,
        }

        with run_context(request.run_id):
            logger.info(
                "Starting release of %s/%s@%s on %s",
                request.owner, request.repo, request.sha, request.branch,
            )
            while model.state not in TERMINAL_STATES:
                current = model.state
                run.history.append(current)
                try:
                    model.result = await handlers[current](run)
                except DeliveryError as exc:
                    logger.error(
                        "Stage '%s' failed: %s", current, exc.message,
                        extra={"stage": current},
                    )
                    model.result = BuildResult(
                        code=exc.code,
                        message=exc.message,
                        images=list(run.images.tags) if run.images else [],
                        stdout=exc.stdout,
                        stderr=exc.stderr,
                    )

                if not model.result.success:
                    await model.fail()  # type: ignore[attr-defined]
                    break
                await getattr(model, NEXT_TRIGGER[current])()

            run.history.append(model.state)
            logger.info(
                "Release finished in state '%s' with code %d",
                model.state, model.result.code,
            )
        return model.result

    # ------------------------------------------------------------------
    # Stage handlers
    # ------------------------------------------------------------------

    async def _resolve(self, run: ReleaseRun) -> BuildResult:
        hints = RunModeHints(local_mode=self.settings.local_mode)
        run.push_enabled = self.push_gate.should_push(run.options, hints, run.project)
        run.options.validate(run.push_enabled)
        run.images = await self.resolver.resolve(
            run.project, run.request, run.options, push_required=run.push_enabled
        )
        return BuildResult(code=0, images=list(run.images.tags))

    async def _authenticate(self, run: ReleaseRun) -> BuildResult:
        run.builder = create_builder(
            run.options.builder,
            self.runner,
            docker_command=self.settings.docker_command,
            kaniko_command=self.settings.kaniko_command,
        )
        # Registries only matter when this run pushes; base images may still
        # need the inline payload.
        run.session = await self.materializer.materialize(
            run.options.registries if run.push_enabled else [],
            run_id=run.request.run_id,
            inline_auth=run.options.inline_auth,
            builder=run.options.builder,
            log=run.log,
        )
        return BuildResult(code=0)

    async def _build(self, run: ReleaseRun) -> BuildResult:
        run.require(ReleaseStage.BUILDING.value, "builder", "images")
        await run.builder.probe(run.log)
        context = BuildContext(
            project=run.project,
            images=run.images,
            options=run.options,
            push_enabled=run.push_enabled,
            log=run.log,
            env=run.session.env if run.session else {},
            cache_path=run.options.cache_path or self.settings.cache_path,
        )
        return await run.builder.execute(context)

    async def _push(self, run: ReleaseRun) -> BuildResult:
        run.require(ReleaseStage.PUSHING.value, "images", "session")
        return await self.push_gate.push(
            run.images,
            run.options,
            run.session,
            enabled=run.push_enabled,
            log=run.log,
            pushed_by_builder=bool(run.builder and run.builder.pushes_on_build),
        )

    async def _publish(self, run: ReleaseRun) -> BuildResult:
        run.require(ReleaseStage.PUBLISHING.value, "images")
        request = run.request
        linked = await self.link_publisher.publish(
            request.owner,
            request.repo,
            request.sha,
            run.images.tags[0],
            request.workspace_id,
        )
        if not linked:
            raise LinkPublishFailure("Image link failed")
        return BuildResult(
            code=0,
            images=list(run.images.tags),
            external_urls=derive_external_urls(run.images, run.options.registries),
        )
