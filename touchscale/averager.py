"""Sliding-window mean over scalar samples."""
from __future__ import annotations

from collections import deque
from typing import Deque, Tuple


class CircularAverager:
    """Fixed-capacity ring buffer; once full, each push overwrites the oldest sample."""

    def __init__(self, capacity: int) -> None:
        capacity = int(capacity)
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._samples: Deque[float] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._samples.maxlen or 0

    def push(self, value: float) -> None:
        self._samples.append(float(value))

    def mean(self) -> float:
        if not self._samples:
            return 0.0
        return sum(self._samples) / len(self._samples)

    def clear(self) -> None:
        self._samples.clear()

    def values(self) -> Tuple[float, ...]:
        return tuple(self._samples)

    def __len__(self) -> int:
        return len(self._samples)


__all__ = ["CircularAverager"]
