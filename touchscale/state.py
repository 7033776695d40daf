"""Observable state published by a measurement session."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, List, TypeVar

from .calibration import CalibrationStep
from .estimator import WeightStatus

LOGGER = logging.getLogger("touchscale.state")

T = TypeVar("T")


class ValueCell(Generic[T]):
    """A single observable value with one writer and any number of readers."""

    def __init__(self, name: str, initial: T) -> None:
        self.name = name
        self._value = initial
        self._listeners: List[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback`` and call it once with the current value."""

        self._listeners.append(callback)
        self._call(callback, self._value)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def set(self, value: T) -> bool:
        """Store ``value``; listeners only hear about actual changes."""

        if value == self._value:
            return False
        self._value = value
        for listener in list(self._listeners):
            self._call(listener, value)
        return True

    def _call(self, listener: Callable[[T], None], value: T) -> None:
        try:
            listener(value)
        except Exception:
            # Subscribers should never break the state flow.
            LOGGER.exception("Listener for %s failed", self.name)


@dataclass(frozen=True)
class MeasurementState:
    """Snapshot of the values shown to the user."""

    raw_force_index: float = 0.0
    weight: float = 0.0
    unclamped_weight: float = 0.0
    status: WeightStatus = WeightStatus.EMPTY
    touch_active: bool = False
    session_active: bool = False
    pointer_count: int = 0
    updated_at: float = field(default_factory=time.time, compare=False)


class SessionState:
    """One cell per published field plus a combined measurement snapshot."""

    def __init__(self) -> None:
        self.force_index: ValueCell[float] = ValueCell("force_index", 0.0)
        self.weight: ValueCell[float] = ValueCell("weight", 0.0)
        self.session_active: ValueCell[bool] = ValueCell("session_active", False)
        self.sensor_available: ValueCell[bool] = ValueCell("sensor_available", False)
        self.touch_active: ValueCell[bool] = ValueCell("touch_active", False)
        self.status: ValueCell[WeightStatus] = ValueCell("status", WeightStatus.EMPTY)
        self.calibration_step: ValueCell[CalibrationStep] = ValueCell("calibration_step", CalibrationStep.IDLE)
        self.measurement: ValueCell[MeasurementState] = ValueCell("measurement", MeasurementState())

    def publish(self, snapshot: MeasurementState) -> None:
        self.measurement.set(snapshot)
        self.force_index.set(snapshot.raw_force_index)
        self.weight.set(snapshot.weight)
        self.touch_active.set(snapshot.touch_active)
        self.session_active.set(snapshot.session_active)
        self.status.set(snapshot.status)


__all__ = ["MeasurementState", "SessionState", "ValueCell"]
