"""
FocusPosition: the navigable 3D point of interest.

Writers go through ``set`` under a lock; readers take ``snapshot()``, which
returns an immutable (x, y, z) tuple captured in one step, so a reader never
sees a half-applied update.
"""

from __future__ import annotations

import threading
from typing import NamedTuple, Tuple


class FocusSnapshot(NamedTuple):
    position: Tuple[float, float, float]
    generation: int


class FocusPosition:
    """Single-writer, lock-guarded world position (mm)."""

    def __init__(self, position: Tuple[float, float, float]) -> None:
        self._lock = threading.Lock()
        self._state = FocusSnapshot(self._as_tuple(position), 0)

    @staticmethod
    def _as_tuple(position) -> Tuple[float, float, float]:
        x, y, z = position
        return (float(x), float(y), float(z))

    def snapshot(self) -> FocusSnapshot:
        # Reference read of an immutable tuple
        return self._state

    @property
    def position(self) -> Tuple[float, float, float]:
        return self._state.position

    @property
    def generation(self) -> int:
        """Bumped on every accepted update; callers drop results from older generations."""
        return self._state.generation

    def set(self, position: Tuple[float, float, float]) -> FocusSnapshot:
        new_pos = self._as_tuple(position)
        with self._lock:
            self._state = FocusSnapshot(new_pos, self._state.generation + 1)
            return self._state

    def __repr__(self) -> str:
        x, y, z = self.position
        return f"FocusPosition(({x:.2f}, {y:.2f}, {z:.2f}), gen={self.generation})"
