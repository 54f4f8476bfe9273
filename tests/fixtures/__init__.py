"""Test doubles for subprocess-driven code and sample project content."""
from __future__ import annotations

import asyncio

from src.shared.process import ProcessResult, ProcessRunner

SAMPLE_DOCKERFILE = """\
FROM python:3.12-slim
WORKDIR /app
COPY . /app
EXPOSE 8080
CMD ["python", "-m", "app"]
"""


class FakeProcess:
    """Stand-in for ``asyncio.subprocess.Process`` fed from the test.

    Must be created inside a running event loop.
    """

    def __init__(
        self,
        stdout_chunks: tuple[str, ...] | list[str] = (),
        stderr_chunks: tuple[str, ...] | list[str] = (),
        exit_code: int = 0,
        auto_exit: bool = True,
    ) -> None:
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.returncode: int | None = None
        self.killed = False
        self._exit_code = exit_code
        self._exited = asyncio.Event()
        for chunk in stdout_chunks:
            self.stdout.feed_data(chunk.encode("utf-8"))
        for chunk in stderr_chunks:
            self.stderr.feed_data(chunk.encode("utf-8"))
        if auto_exit:
            self.finish()

    def emit(self, text: str) -> None:
        self.stdout.feed_data(text.encode("utf-8"))

    def finish(self, exit_code: int | None = None) -> None:
        if self.returncode is not None:
            return
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self.returncode = self._exit_code if exit_code is None else exit_code
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        self.finish(-9)


class FakeRunner(ProcessRunner):
    """Records every command and answers from a script instead of spawning.

    ``outcomes`` maps either the first two arguments (``"push reg/app:1"``) or
    the first argument alone (``"push"``) to ``(exit_code, stdout, stderr)``.
    Commands listed in ``missing`` raise ``FileNotFoundError``.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.envs: list[dict[str, str]] = []
        self.cwds: list[object] = []
        self.logged_commands: list[bool] = []
        self.outcomes: dict[str, tuple[int, str, str]] = {}
        self.missing: set[str] = set()
        self.processes: list[FakeProcess] = []
        self.spawned: list[list[str]] = []
        self.spawn_error: OSError | None = None
        self.process_factory = None

    async def run(self, command, args, *, cwd=None, env=None, log=None, log_command=True):
        cmd = [command, *args]
        self.calls.append(cmd)
        self.envs.append(dict(env or {}))
        self.cwds.append(cwd)
        self.logged_commands.append(log_command)
        if command in self.missing:
            raise FileNotFoundError(command)
        code, out, err = self._outcome(args)
        if log is not None:
            if log_command:
                log.write(f"Running: {' '.join(cmd)}\n")
            if out:
                log.write(out)
        return ProcessResult(command=cmd, exit_code=code, stdout=out, stderr=err)

    async def spawn(self, command, args, cwd=None, env=None):
        self.spawned.append([command, *args])
        if self.spawn_error is not None:
            raise self.spawn_error
        if not self.processes and self.process_factory is not None:
            return self.process_factory()
        return self.processes.pop(0)

    def _outcome(self, args: list[str]) -> tuple[int, str, str]:
        keys = [" ".join(args[:2]), args[0] if args else ""]
        for key in keys:
            if key in self.outcomes:
                return self.outcomes[key]
        return (0, "", "")

    def subcommand(self, name: str) -> list[list[str]]:
        """Calls whose first argument is *name* (e.g. ``"push"``)."""
        return [c for c in self.calls if len(c) > 1 and c[1] == name]

