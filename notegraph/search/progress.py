"""Progress reporting for a single search invocation."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    """Receives branch lifecycle events and recovered-failure warnings.

    Branches may report from worker threads.
    """

    def branch_started(self, name: str) -> None: ...

    def branch_finished(self, name: str, count: int) -> None: ...

    def warning(self, message: str) -> None: ...


class NullProgress:
    """Discards progress events; warnings still go to the log."""

    def branch_started(self, name: str) -> None:
        pass

    def branch_finished(self, name: str, count: int) -> None:
        pass

    def warning(self, message: str) -> None:
        logger.debug("Search warning: %s", message)


@dataclass
class RecordingProgress:
    """Collects events in memory, for callers that report after the search."""

    counts: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def branch_started(self, name: str) -> None:
        logger.debug("Branch started: %s", name)

    def branch_finished(self, name: str, count: int) -> None:
        with self._lock:
            self.counts[name] = count

    def warning(self, message: str) -> None:
        with self._lock:
            self.warnings.append(message)
