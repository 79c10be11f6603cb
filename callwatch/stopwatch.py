"""Named, restartable stopwatch for manually delimited code regions."""

from __future__ import annotations

from typing import Callable, Optional

from .compat_logger import CompatibleLogger
from .utils import monotonic_ms


class StopWatch:
    """
    Accumulates elapsed milliseconds and a completed-interval count.

    idle --start()--> running --stop()--> idle (count + 1, elapsed accumulated)

    Misuse (start while running, stop while idle) is logged at ERROR level and
    otherwise ignored.
    """

    def __init__(
        self,
        name: str,
        logger: Optional[CompatibleLogger] = None,
        clock: Callable[[], int] = monotonic_ms,
    ):
        self.name = name
        self.count = 0
        self.elapsed_ms = 0
        self.running_since: Optional[int] = None
        self.logger = logger or CompatibleLogger("profiler")
        self._clock = clock

    @property
    def running(self) -> bool:
        return self.running_since is not None

    def start(self) -> None:
        if self.running_since is not None:
            self.logger.error("StopWatch({})#start is called without stop.", self.name)
            return
        self.running_since = self._clock()

    def stop(self) -> None:
        if self.running_since is None:
            self.logger.error("StopWatch({})#stop is called without start.", self.name)
            return
        self.elapsed_ms += max(0, self._clock() - self.running_since)
        self.running_since = None
        self.count += 1

    def __enter__(self) -> "StopWatch":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def __repr__(self) -> str:
        state = "running" if self.running else "idle"
        return f"StopWatch({self.name!r}, count={self.count}, elapsed_ms={self.elapsed_ms}, {state})"
