"""
Progress event bus and observer utilities.

Loaders report ``callback(percent, message)``; hosts (CLI, tests) subscribe
renderers to a ProgressBus and hand its callbacks to the loaders.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Sequence
import logging
import sys
import time


VIEWER_STAGES = ("load", "render")


@dataclass(frozen=True)
class ProgressEvent:
    """Immutable progress payload."""

    percent: int
    message: str
    stage: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


class ProgressObserver(Protocol):
    """Observer protocol for progress events."""

    def on_progress(self, event: ProgressEvent) -> None:
        ...


Listener = Callable[[ProgressEvent], None]


class ProgressBus:
    """
    Observer-style event bus for progress propagation.
    """

    def __init__(self, mapper: Optional["StageProgressMapper"] = None) -> None:
        self._observers: list[Listener | ProgressObserver] = []
        self._mapper = mapper

    def subscribe(self, observer: Listener | ProgressObserver) -> "ProgressBus":
        self._observers.append(observer)
        return self

    def unsubscribe(self, observer: Listener | ProgressObserver) -> "ProgressBus":
        try:
            self._observers.remove(observer)
        except ValueError:
            pass
        return self

    def emit(self, event: ProgressEvent) -> None:
        for observer in tuple(self._observers):
            if hasattr(observer, "on_progress"):
                observer.on_progress(event)  # type: ignore[attr-defined]
            else:
                observer(event)  # type: ignore[misc]

    def stage_callback(self, stage: str) -> Callable[[int, str], None]:
        """Loader-style callback; percentages are remapped when the bus has a mapper."""
        def callback(percent: int, message: str) -> None:
            p = max(0, min(100, int(percent)))
            if self._mapper is not None:
                p = self._mapper.map(stage, p)
            self.emit(ProgressEvent(percent=p, message=message, stage=stage))

        return callback


class StageProgressMapper:
    """
    Map per-stage local percentage [0..100] into overall [0..100].
    """

    def __init__(self, stages: Sequence[str] = VIEWER_STAGES) -> None:
        stage_list = list(stages)
        self._count = max(len(stage_list), 1)
        self._index = {name: idx for idx, name in enumerate(stage_list)}

    def map(self, stage: Optional[str], local_percent: int) -> int:
        local = max(0, min(100, int(local_percent)))
        if not stage or stage not in self._index:
            return local

        idx = self._index[stage]
        base = int(100 * idx / self._count)
        span = max(int(100 / self._count), 1)
        if idx == self._count - 1:
            span = 100 - base
        return min(100, base + int(local * span / 100))


class CancelFlagObserver:
    """
    Raises InterruptedError when the cancellation flag is set.
    """

    def __init__(self, is_cancelled: Callable[[], bool], message: str = "Operation cancelled by user.") -> None:
        self._is_cancelled = is_cancelled
        self._message = message

    def on_progress(self, _event: ProgressEvent) -> None:
        if self._is_cancelled():
            raise InterruptedError(self._message)


class LoggingProgressObserver:
    """Forward progress events to a logger at INFO (DEBUG for intermediate steps)."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger("progress")

    def on_progress(self, event: ProgressEvent) -> None:
        level = logging.INFO if event.percent in (0, 100) else logging.DEBUG
        self._logger.log(level, "[%s] %3d%% %s", event.stage or "task", event.percent, event.message)


class TerminalProgressObserver:
    """
    Text renderer for CLI usage.
    """

    def __init__(self, bar_width: int = 30, stream=None) -> None:
        self.bar_width = bar_width
        self.stream = stream or sys.stdout

    def on_progress(self, event: ProgressEvent) -> None:
        stage = event.stage or "task"
        filled = int(self.bar_width * event.percent / 100)
        bar = "#" * filled + "." * (self.bar_width - filled)
        self.stream.write(f"\r  [{stage}] [{bar}] {event.percent:3d}%  {event.message:<48}")
        if event.percent >= 100:
            self.stream.write("\n")
        self.stream.flush()


__all__ = [
    "VIEWER_STAGES",
    "ProgressEvent",
    "ProgressObserver",
    "ProgressBus",
    "StageProgressMapper",
    "CancelFlagObserver",
    "LoggingProgressObserver",
    "TerminalProgressObserver",
]
