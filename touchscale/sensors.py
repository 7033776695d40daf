"""Ambient sensor samples and the source interface the session attaches to."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Protocol, Union

LOGGER = logging.getLogger("touchscale.sensors")


@dataclass(frozen=True, slots=True)
class PressureSample:
    hpa: float


@dataclass(frozen=True, slots=True)
class AccelerationSample:
    x: float
    y: float
    z: float

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)


SensorSample = Union[PressureSample, AccelerationSample]
SensorListener = Callable[[SensorSample], None]


class SensorSource(Protocol):
    """A push stream of samples for one kind of sensor."""

    def register(self, listener: SensorListener) -> None:  # pragma: no cover - protocol definition only
        ...

    def unregister(self, listener: SensorListener) -> None:  # pragma: no cover - protocol definition only
        ...


class PushSensorSource:
    """In-process source; whoever owns it pushes samples to the registered listeners."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: List[SensorListener] = []

    def register(self, listener: SensorListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unregister(self, listener: SensorListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def has_listeners(self) -> bool:
        return bool(self._listeners)

    def push(self, sample: SensorSample) -> bool:
        """Deliver ``sample``; returns ``False`` when nobody is listening."""

        if not self._listeners:
            LOGGER.debug("%s sample dropped: no listener registered", self.name)
            return False
        for listener in list(self._listeners):
            listener(sample)
        return True


__all__ = [
    "AccelerationSample",
    "PressureSample",
    "PushSensorSource",
    "SensorListener",
    "SensorSample",
    "SensorSource",
]
