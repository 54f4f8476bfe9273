"""Startup detection for a freshly spawned container.

The watcher accumulates the container's stdout and tests the success
patterns against the whole accumulated text after every chunk, so a marker
split across two chunks is still found.  The outcome is a one-shot future:
the first match, or process exit, decides it and later events change
nothing.  Output keeps flowing to the run log after the decision.
"""

from __future__ import annotations

import asyncio
import logging
import re

from src.shared.run_log import DelimitedRunLog, RunLog

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 4096


class ReadinessWatcher:
    """Resolve ``True`` on the first success pattern match, ``False`` on exit."""

    def __init__(self, patterns: list[re.Pattern[str]], log: RunLog | None = None) -> None:
        self._patterns = patterns
        self._ready: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._log = DelimitedRunLog(log) if log is not None else None
        self.stdout = ""
        self.stderr = ""
        self.exit_code: int | None = None

    @property
    def resolved(self) -> bool:
        return self._ready.done()

    def matched(self) -> bool:
        return any(p.search(self.stdout) for p in self._patterns)

    def feed_stdout(self, chunk: str) -> None:
        self.stdout += chunk
        if self._log is not None:
            self._log.write(chunk)
        if not self._ready.done() and self.matched():
            self._ready.set_result(True)

    def feed_stderr(self, chunk: str) -> None:
        self.stderr += chunk
        if self._log is not None:
            self._log.write(chunk)

    def on_exit(self, exit_code: int | None) -> None:
        self.exit_code = exit_code
        if self._log is not None:
            self._log.flush()
        if not self._ready.done():
            self._ready.set_result(self.matched())

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait for the outcome.

        Raises:
            asyncio.TimeoutError: If *timeout* elapses first.
        """
        return await asyncio.wait_for(asyncio.shield(self._ready), timeout)

    async def watch(self, process: asyncio.subprocess.Process) -> None:
        """Pump *process* output into the watcher until it exits."""
        try:
            await asyncio.gather(
                _pump(process.stdout, self.feed_stdout),
                _pump(process.stderr, self.feed_stderr),
            )
            await process.wait()
        finally:
            self.on_exit(process.returncode)


async def _pump(stream: asyncio.StreamReader | None, feed) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_CHUNK_SIZE)
        if not chunk:
            break
        feed(chunk.decode("utf-8", errors="replace"))
