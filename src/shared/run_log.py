"""Append-only, line-oriented sinks for subprocess output."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable


@runtime_checkable
class RunLog(Protocol):
    """Sink that receives subprocess output and diagnostic text."""

    def write(self, text: str) -> None:
        ...


class LoggingRunLog:
    """Forward every written line to a stdlib logger."""

    def __init__(self, name: str = "src.run", level: int = logging.INFO) -> None:
        self._logger = logging.getLogger(name)
        self._level = level

    def write(self, text: str) -> None:
        for line in text.splitlines():
            if line.strip():
                self._logger.log(self._level, "%s", line)


class MemoryRunLog:
    """Keep every write in memory; handy for reports and tests."""

    def __init__(self) -> None:
        self.entries: list[str] = []

    def write(self, text: str) -> None:
        self.entries.append(text)

    @property
    def log(self) -> str:
        return "".join(
            e if e.endswith("\n") else e + "\n" for e in self.entries
        )


class DelimitedRunLog:
    """Buffer partial writes and forward only complete lines.

    Raw stream chunks rarely end on a newline; this decorator keeps the
    remainder until the delimiter arrives or :meth:`flush` is called.
    """

    def __init__(self, delegate: RunLog, delimiter: str = "\n") -> None:
        self._delegate = delegate
        self._delimiter = delimiter
        self._buffer = ""

    def write(self, text: str) -> None:
        self._buffer += text
        if self._delimiter not in self._buffer:
            return
        complete, _, self._buffer = self._buffer.rpartition(self._delimiter)
        for line in complete.split(self._delimiter):
            self._delegate.write(line + self._delimiter)

    def flush(self) -> None:
        if self._buffer:
            self._delegate.write(self._buffer)
            self._buffer = ""
