"""Subprocess execution for builders, registries and containers.

All external tools (``docker``, the kaniko executor) are driven through
:class:`ProcessRunner`.  Output is streamed line by line into a
:class:`~src.shared.run_log.RunLog` while it is also captured, so failures
can surface the complete stdout/stderr.

.. rubric:: Design decisions

* **asyncio subprocesses** -- every call is an ``await`` point; multiple
  pipelines share one event loop.
* **No timeouts** -- a hung tool hangs its pipeline; callers that need a
  deadline wrap the call in ``asyncio.wait_for``.
* **try/finally cleanup** -- a cancelled call kills its child process.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from src.shared.run_log import RunLog

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Outcome of a finished subprocess."""

    command: list[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def merged_env(overrides: dict[str, str] | None = None) -> dict[str, str]:
    """Return ``os.environ`` with *overrides* applied on top."""
    env = dict(os.environ)
    if overrides:
        env.update(overrides)
    return env


class ProcessRunner:
    """Spawn external commands and stream their output into run logs."""

    async def spawn(
        self,
        command: str,
        args: list[str],
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
    ) -> asyncio.subprocess.Process:
        """Start *command* with piped stdout/stderr.

        Raises:
            OSError: If the binary cannot be executed (e.g. not found).
        """
        return await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=str(cwd) if cwd is not None else None,
            env=merged_env(env),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    async def run(
        self,
        command: str,
        args: list[str],
        *,
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
        log: RunLog | None = None,
        log_command: bool = True,
    ) -> ProcessResult:
        """Run *command* to completion, streaming output into *log*.

        Args:
            command: Executable name or path.
            args: Arguments passed verbatim.
            cwd: Working directory.
            env: Environment overrides on top of ``os.environ``.
            log: Sink for the command line and its output.
            log_command: Write the command line to *log* first.  Disabled
                for commands that carry secrets.

        Returns:
            The captured :class:`ProcessResult`.

        Raises:
            OSError: If the process cannot be spawned.
        """
        cmd = [command, *args]
        if log is not None and log_command:
            log.write(f"Running: {' '.join(cmd)}\n")
        logger.debug("Running: %s", command if not log_command else " ".join(cmd))

        proc = await self.spawn(command, args, cwd=cwd, env=env)
        stdout_parts: list[str] = []
        stderr_parts: list[str] = []
        try:
            await asyncio.gather(
                _pump(proc.stdout, stdout_parts, log),
                _pump(proc.stderr, stderr_parts, log),
            )
            exit_code = await proc.wait()
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

        return ProcessResult(
            command=cmd,
            exit_code=exit_code,
            stdout="".join(stdout_parts),
            stderr="".join(stderr_parts),
        )


async def _pump(
    stream: asyncio.StreamReader | None,
    sink: list[str],
    log: RunLog | None,
) -> None:
    """Copy *stream* line by line into *sink* and *log* until EOF."""
    if stream is None:
        return
    while True:
        line = await stream.readline()
        if not line:
            break
        text = line.decode("utf-8", errors="replace")
        sink.append(text)
        if log is not None:
            log.write(text)
