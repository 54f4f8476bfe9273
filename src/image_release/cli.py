"""Command line interface: ``image-release build | deploy | fingerprint``."""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer

from src.branch_deploy.deployer import BranchDeploymentManager
from src.branch_deploy.models import DeployerOptions
from src.image_release import __version__
from src.image_release.config import load_release_config, merge_build_options
from src.image_release.display import (
    print_build_result,
    print_deployments,
    print_error_panel,
    print_fingerprints,
    print_notice,
    print_release_header,
)
from src.image_release.dockerfile import (
    base_image_fingerprints,
    exposed_port,
    path_fingerprint,
    ports_fingerprint,
)
from src.image_release.links import HttpLinkPublisher, LinkPublisher, NoopLinkPublisher
from src.image_release.models import BuildRequest
from src.image_release.orchestrator import ReleaseOrchestrator
from src.image_release.project import FixedVersionResolver, LocalProject
from src.shared.config import DeploySettings, ReleaseSettings
from src.shared.errors import DeliveryError
from src.shared.logging import setup_logging
from src.shared.process import ProcessRunner

app = typer.Typer(
    name="image-release",
    help="Build, tag, push and deploy container images per branch.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"image-release {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True,
        help="Show the version and exit.",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL."),
) -> None:
    """Container image release tooling."""
    settings = ReleaseSettings()
    setup_logging("image-release", log_level or settings.log_level)


def _link_publisher(settings: ReleaseSettings) -> LinkPublisher:
    if settings.link_webhook_url:
        return HttpLinkPublisher(settings.link_webhook_url)
    return NoopLinkPublisher()


@app.command()
def build(
    project_dir: Path = typer.Argument(Path("."), help="Project root containing the Dockerfile."),
    owner: str = typer.Option(..., help="Repository owner."),
    repo: Optional[str] = typer.Option(None, help="Repository name (defaults to the directory name)."),
    sha: str = typer.Option(..., help="Commit sha being built."),
    branch: str = typer.Option("main", help="Branch being built."),
    default_branch: str = typer.Option("main", help="The repository's default branch."),
    image_version: str = typer.Option(..., "--image-version", help="Version tag for the image."),
    config: Optional[Path] = typer.Option(None, help="Release config YAML."),
    registry: Optional[list[str]] = typer.Option(None, help="Registry URL; repeatable."),
    builder: Optional[str] = typer.Option(None, help="'native' or 'isolated'."),
    dockerfile: Optional[str] = typer.Option(None, help="Dockerfile path relative to the project."),
    push: Optional[bool] = typer.Option(None, "--push/--no-push", help="Force push on or off."),
    tag_latest: Optional[bool] = typer.Option(None, "--latest/--no-latest", help="Also tag 'latest' on the default branch."),
) -> None:
    """Build an image for a commit and release it."""
    settings = ReleaseSettings()
    release_config = load_release_config(config)
    if release_config.credentials_root and "credentials_root" not in settings.model_fields_set:
        settings.credentials_root = release_config.credentials_root
    if release_config.cache_path and settings.cache_path is None:
        settings.cache_path = release_config.cache_path

    flags: dict[str, Any] = {
        "registries": registry or None,
        "builder": builder,
        "dockerfile": dockerfile,
        "push": push,
        "tag_latest": tag_latest,
    }
    project = LocalProject(project_dir, name=repo)
    request = BuildRequest(
        owner=owner,
        repo=project.name,
        sha=sha,
        branch=branch,
        default_branch=default_branch,
        project_dir=str(project.base_dir),
    )

    try:
        options = merge_build_options(release_config.build, flags)
        orchestrator = ReleaseOrchestrator(
            FixedVersionResolver(image_version),
            _link_publisher(settings),
            settings=settings,
        )
        print_release_header(owner, request.repo, sha, branch)
        result = asyncio.run(orchestrator.release(request, options, project))
    except DeliveryError as exc:
        print_error_panel(exc.message)
        raise typer.Exit(code=exc.code)

    print_build_result(result)
    if not result.success:
        raise typer.Exit(code=result.code)


@app.command()
def deploy(
    image: str = typer.Argument(..., help="Image reference to run."),
    repo: str = typer.Option(..., help="Repository name."),
    branch: str = typer.Option(..., help="Branch name."),
    project_dir: Path = typer.Option(Path("."), help="Project root, used to read EXPOSE."),
    port: Optional[int] = typer.Option(None, help="Container port to publish."),
    pattern: Optional[list[str]] = typer.Option(None, help="Readiness regex; repeatable."),
    config: Optional[Path] = typer.Option(None, help="Release config YAML."),
    timeout: Optional[float] = typer.Option(None, help="Seconds to wait for readiness."),
    follow: bool = typer.Option(
        True, "--follow/--detach",
        help="Stay attached and stream container output until it exits.",
    ),
) -> None:
    """Run an image for a branch on its stable local port.

    Each invocation is a fresh process.  The branch's previous container is
    found by its deterministic name and removed before a port is chosen,
    which gives the branch its old port back unless another process took it.
    With ``--detach`` the command returns once the container is ready and
    the container keeps running under the docker daemon.
    """
    settings = DeploySettings()
    release_config = load_release_config(config)
    options = DeployerOptions.from_dict(
        {
            "lower_port": settings.deploy_lower_port,
            "base_url": settings.deploy_base_url,
            "docker_command": settings.docker_command,
            **release_config.deploy,
        }
    )
    if pattern:
        options.success_patterns = list(pattern)

    internal_port = port or exposed_port(LocalProject(project_dir))
    manager = BranchDeploymentManager(options, runner=ProcessRunner())

    async def _run() -> None:
        deployment = await manager.deploy(
            repo, branch, image, internal_port, timeout=timeout
        )
        print_deployments([deployment])
        if follow:
            await manager.wait(repo, branch)

    try:
        asyncio.run(_run())
    except DeliveryError as exc:
        print_error_panel(exc.message)
        raise typer.Exit(code=exc.code)


@app.command()
def fingerprint(
    project_dir: Path = typer.Argument(Path("."), help="Project root to scan."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
) -> None:
    """Show Dockerfile base image, port and path fingerprints."""
    project = LocalProject(project_dir)
    fingerprints = list(base_image_fingerprints(project))
    for extra in (ports_fingerprint(project), path_fingerprint(project)):
        if extra is not None:
            fingerprints.append(extra)

    if as_json:
        typer.echo(json.dumps([fp.to_dict() for fp in fingerprints], indent=2))
        return
    if not fingerprints:
        print_notice("No Dockerfile found")
        return
    print_fingerprints(fingerprints)
