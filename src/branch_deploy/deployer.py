"""Per-branch container deployment with ``docker run``.

Each ``repository:branch`` gets a host port on first deploy and keeps it for
the lifetime of the process.  Redeploying a branch force-removes the
container on its port and starts the new image there.  Container names are
deterministic, so a container left behind by an earlier process (for example
a previous CLI invocation) is force-removed by name before the branch's
first port scan, which frees its port for reuse.
A deploy succeeds once a success pattern shows up in the container's stdout
and fails if the container exits first.

.. rubric:: Key design decisions

* **Store-owned state** -- the port and container tables are only mutated
  through :class:`DeploymentStore`, under its lock.
* **Registration survives crashes** -- a container that dies during startup
  stays registered, so the next deploy of that branch removes it.
* **Retained pump tasks** -- output keeps flowing to the run log after the
  deploy resolves; tasks are kept until shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import re
import socket
from typing import Callable

from src.branch_deploy.models import DeployerOptions, Deployment
from src.branch_deploy.readiness import ReadinessWatcher
from src.branch_deploy.store import DeploymentStore, allocation_key
from src.shared.errors import DeploySpawnError, DeployTimeoutOrCrash
from src.shared.process import ProcessRunner
from src.shared.run_log import LoggingRunLog, RunLog

logger = logging.getLogger(__name__)

MAX_PORT = 65535

_CONTAINER_NAME_INVALID = re.compile(r"[^a-zA-Z0-9_.-]+")

PortProbe = Callable[[int], bool]


def is_port_free(port: int, host: str = "0.0.0.0") -> bool:
    """True when *port* can be bound on *host* right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def find_free_port(
    lower_port: int,
    taken: set[int] | None = None,
    probe: PortProbe = is_port_free,
    upper_port: int = MAX_PORT,
) -> int:
    """First port >= *lower_port* that is bindable and not in *taken*.

    Raises:
        DeploySpawnError: If the range is exhausted.
    """
    taken = taken or set()
    for port in range(lower_port, upper_port + 1):
        if port in taken:
            continue
        if probe(port):
            return port
    raise DeploySpawnError(f"No free port between {lower_port} and {upper_port}")


def container_name(repository: str, branch: str) -> str:
    """``<repo>_<branch>`` reduced to docker's container name charset."""
    name = _CONTAINER_NAME_INVALID.sub("-", f"{repository}_{branch}")
    return name.lstrip("_.-") or "branch"


class BranchDeploymentManager:
    """Runs at most ``max_containers`` branch containers on the local docker host."""

    def __init__(
        self,
        options: DeployerOptions,
        runner: ProcessRunner | None = None,
        store: DeploymentStore | None = None,
        port_probe: PortProbe | None = None,
    ) -> None:
        self.options = options
        self.runner = runner or ProcessRunner()
        self.store = store or DeploymentStore()
        self._port_probe = port_probe or is_port_free
        self._patterns = options.compiled_patterns()
        self._deployments: dict[str, Deployment] = {}
        self._processes: dict[int, asyncio.subprocess.Process] = {}
        self._tasks: set[asyncio.Task] = set()
        self._watchers: dict[int, asyncio.Task] = {}

    async def deploy(
        self,
        repository: str,
        branch: str,
        image: str,
        internal_port: int | None = None,
        *,
        log: RunLog | None = None,
        timeout: float | None = None,
    ) -> Deployment:
        """Start *image* for *repository*/*branch*, replacing any previous container.

        Args:
            repository: Repository name.
            branch: Branch name.
            image: Image reference to run.
            internal_port: Container port to publish; defaults to
                ``options.source_port``.
            log: Run log receiving the container output.
            timeout: Seconds to wait for readiness; ``None`` waits until the
                container matches a success pattern or exits.

        Raises:
            CapacityExceededError: If a new container would exceed the ceiling.
            DeploySpawnError: If ``docker run`` cannot be spawned.
            DeployTimeoutOrCrash: If the container exits, or *timeout*
                elapses, before a success pattern matches.
        """
        log = log or LoggingRunLog()
        key = allocation_key(repository, branch)
        name = container_name(repository, branch)
        if self.store.port_for(key) is None:
            # a container left by an earlier process still holds its port
            await self._remove_container(name, log, quiet=True)
        port = await self.store.get_or_allocate(key, self._find_port)

        existing = await self.store.reserve(port, name, self.options.max_containers)
        if existing is not None:
            logger.info(
                "Replacing container %s on port %d", existing, port,
                extra={"container": existing, "port": port},
            )
            await self._remove_container(existing, log)

        source_port = internal_port or self.options.source_port
        try:
            process = await self.runner.spawn(
                self.options.docker_command,
                ["run", f"-p{port}:{source_port}", f"--name={name}", image],
            )
        except OSError as exc:
            await self.store.release(port, name)
            raise DeploySpawnError(
                f"Fatal error deploying using Docker: {exc}"
            ) from exc

        self._processes[port] = process
        watcher = ReadinessWatcher(self._patterns, log)
        task = asyncio.create_task(watcher.watch(process))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._watchers[port] = task

        try:
            ready = await watcher.wait(timeout)
        except asyncio.TimeoutError as exc:
            raise DeployTimeoutOrCrash(
                f"Container {name} did not report readiness within {timeout}s",
                stdout=watcher.stdout,
                stderr=watcher.stderr,
            ) from exc

        if not ready:
            logger.error(
                "Docker deployment failure\nstdout:\n%s\nstderr:\n%s",
                watcher.stdout, watcher.stderr,
            )
            raise DeployTimeoutOrCrash(
                code=watcher.exit_code or 1,
                stdout=watcher.stdout,
                stderr=watcher.stderr,
            )

        deployment = Deployment(
            repository=repository,
            branch=branch,
            port=port,
            container_name=name,
            image=image,
            endpoint=f"{self.options.base_url}:{port}",
        )
        self._deployments[key] = deployment
        logger.info(
            "Deployed %s at %s", image, deployment.endpoint,
            extra={"container": name, "port": port},
        )
        return deployment

    async def stop(self, repository: str, branch: str, log: RunLog | None = None) -> bool:
        """Remove the branch's container; its port stays allocated.

        Returns:
            ``True`` if a container was registered for the branch.
        """
        key = allocation_key(repository, branch)
        port = self.store.port_for(key)
        self._deployments.pop(key, None)
        if port is None:
            return False
        name = self.store.container_on(port)
        if name is None:
            return False
        await self._remove_container(name, log or LoggingRunLog())
        await self.store.release(port, name)
        process = self._processes.pop(port, None)
        if process is not None and process.returncode is None:
            process.kill()
        return True

    def port_for(self, repository: str, branch: str) -> int | None:
        return self.store.port_for(allocation_key(repository, branch))

    async def wait(self, repository: str, branch: str) -> int | None:
        """Block until the branch's container process exits.

        Returns:
            The exit code, or ``None`` if nothing was started for the branch.
        """
        port = self.port_for(repository, branch)
        task = self._watchers.get(port) if port is not None else None
        if task is None:
            return None
        await asyncio.shield(task)
        process = self._processes.get(port)
        return process.returncode if process is not None else None

    def deployments(self) -> list[Deployment]:
        """Snapshot of the deployments that reported readiness."""
        return list(self._deployments.values())

    async def shutdown(self) -> None:
        """Remove every tracked container and stop the output pumps."""
        for key in list(self.store.ports()):
            repository, _, branch = key.partition(":")
            await self.stop(repository, branch)
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _find_port(self, taken: set[int]) -> int:
        return await asyncio.to_thread(
            find_free_port, self.options.lower_port, taken, self._port_probe
        )

    async def _remove_container(
        self, name: str, log: RunLog, quiet: bool = False
    ) -> None:
        """``docker rm -f`` *name*; failures are logged, never raised.

        With *quiet*, a failed removal (usually "No such container") is only
        logged at debug level.
        """
        try:
            result = await self.runner.run(
                self.options.docker_command, ["rm", "-f", name], log=log
            )
        except OSError as exc:
            logger.warning("Unable to remove container %s: %s", name, exc)
            return
        if not result.success:
            logger.log(
                logging.DEBUG if quiet else logging.WARNING,
                "docker rm -f %s exited with code %d: %s",
                name, result.exit_code, result.stderr.strip(),
            )
