"""Rich-based terminal display for release and deployment results.

Uses a module-level :class:`~rich.console.Console` singleton so every
command renders consistently.
"""

from __future__ import annotations

from typing import Iterable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.image_release.dockerfile import Fingerprint
from src.image_release.models import BuildResult

# ---------------------------------------------------------------------------
# Module-level Console singleton
# ---------------------------------------------------------------------------

_console = Console()


def print_release_header(owner: str, repo: str, sha: str, branch: str) -> None:
    """Print a panel identifying the commit being released."""
    header = Text()
    header.append("Repository: ", style="bold")
    header.append(f"{owner}/{repo}\n", style="cyan")
    header.append("Commit: ", style="bold")
    header.append(f"{sha}\n", style="green")
    header.append("Branch: ", style="bold")
    header.append(branch, style="magenta")
    _console.print(
        Panel(
            header,
            title="[bold]Image Release[/bold]",
            border_style="blue",
            expand=False,
        )
    )


def print_build_result(result: BuildResult) -> None:
    """Print the terminal result of a release run."""
    if not result.success:
        print_error_panel(result.message or f"Release failed with code {result.code}")
        return

    table = Table(title="Images", show_header=True, header_style="bold")
    table.add_column("Tag", style="cyan")
    for image in result.images:
        table.add_row(image)
    _console.print(table)

    if result.external_urls:
        links = Table(title="Links", show_header=True, header_style="bold")
        links.add_column("Label")
        links.add_column("URL", style="green")
        for link in result.external_urls:
            links.add_row(link.label or "-", link.url)
        _console.print(links)


def print_deployments(deployments: Iterable) -> None:
    """Print a table of running branch deployments."""
    table = Table(title="Deployments", show_header=True, header_style="bold")
    table.add_column("Repository")
    table.add_column("Branch", style="magenta")
    table.add_column("Port", justify="right")
    table.add_column("Container", style="cyan")
    table.add_column("Endpoint", style="green")
    for d in deployments:
        table.add_row(d.repository, d.branch, str(d.port), d.container_name, d.endpoint)
    _console.print(table)


def print_fingerprints(fingerprints: Iterable[Fingerprint]) -> None:
    table = Table(title="Dockerfile fingerprints", show_header=True, header_style="bold")
    table.add_column("Type")
    table.add_column("Name", style="cyan")
    table.add_column("Data")
    table.add_column("sha256", style="dim")
    for fp in fingerprints:
        table.add_row(fp.type, fp.name, str(fp.data), fp.sha)
    _console.print(table)


def print_error_panel(error: str | Exception) -> None:
    """Print an error message in a red Rich panel."""
    _console.print(
        Panel(
            Text(str(error), style="bold white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            expand=False,
        )
    )


def print_notice(message: str) -> None:
    _console.print(f"[yellow]{message}[/yellow]")
