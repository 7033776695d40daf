"""Touch input model and per-event contact frame aggregation."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence, Tuple


class TouchPhase(str, Enum):
    DOWN = "down"
    POINTER_DOWN = "pointer_down"
    MOVE = "move"
    UP = "up"
    POINTER_UP = "pointer_up"
    CANCEL = "cancel"


def _unit_interval(value: float) -> float:
    value = float(value)
    if value != value:  # NaN
        return 0.0
    return min(1.0, max(0.0, value))


@dataclass(frozen=True, slots=True)
class Pointer:
    """One active touch point; ``size`` and ``pressure`` are normalized to [0, 1]."""

    size: float
    pressure: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "size", _unit_interval(self.size))
        object.__setattr__(self, "pressure", _unit_interval(self.pressure))


@dataclass(frozen=True, slots=True)
class TouchEvent:
    """A touch callback: the phase plus every pointer still on the surface."""

    phase: TouchPhase
    pointers: Tuple[Pointer, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, phase: TouchPhase, pointers: Iterable[Tuple[float, float]]) -> "TouchEvent":
        return cls(phase=TouchPhase(phase), pointers=tuple(Pointer(size, pressure) for size, pressure in pointers))


@dataclass(frozen=True, slots=True)
class ContactFrame:
    contact_area: float = 0.0
    pressure_intensity: float = 0.0
    pointer_count: int = 0

    @property
    def total_area(self) -> float:
        return self.contact_area * self.pointer_count


EMPTY_FRAME = ContactFrame()


class ContactFrameBuilder:
    """Averages pointer size and pressure over all active pointers of one event."""

    def build(self, pointers: Sequence[Pointer]) -> ContactFrame:
        count = len(pointers)
        if count == 0:
            return EMPTY_FRAME
        divisor = max(count, 1)
        total_area = sum(pointer.size for pointer in pointers)
        total_pressure = sum(pointer.pressure for pointer in pointers)
        return ContactFrame(
            contact_area=total_area / divisor,
            pressure_intensity=total_pressure / divisor,
            pointer_count=count,
        )

    def from_event(self, event: TouchEvent) -> ContactFrame:
        return self.build(event.pointers)


__all__ = [
    "ContactFrame",
    "ContactFrameBuilder",
    "EMPTY_FRAME",
    "Pointer",
    "TouchEvent",
    "TouchPhase",
]
