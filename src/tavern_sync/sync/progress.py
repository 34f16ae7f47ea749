"""Progress reporting hooks for long-running sync steps.

The engine and local store accept any object with ``start`` / ``advance`` /
``finish``.  ``NullReporter`` does nothing (tests); ``LoggingReporter``
writes start and finish lines to the module logger (default).
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class ProgressReporter(Protocol):
    """Receives coarse progress for one step at a time."""

    def start(self, message: str, total: int | None = None) -> None: ...

    def advance(self, step: int = 1) -> None: ...

    def finish(self, message: str | None = None) -> None: ...


class NullReporter:
    """Discards all progress."""

    def start(self, message: str, total: int | None = None) -> None:
        pass

    def advance(self, step: int = 1) -> None:
        pass

    def finish(self, message: str | None = None) -> None:
        pass


class LoggingReporter:
    """Logs step boundaries at INFO and per-item progress at DEBUG."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger
        self._message = ""
        self._total: int | None = None
        self._done = 0

    def start(self, message: str, total: int | None = None) -> None:
        self._message = message
        self._total = total
        self._done = 0
        self._log.info("%s...", message)

    def advance(self, step: int = 1) -> None:
        self._done += step
        if self._total:
            self._log.debug(
                "%s: %d/%d", self._message, self._done, self._total
            )

    def finish(self, message: str | None = None) -> None:
        self._log.info("%s", message or f"{self._message}: done")
