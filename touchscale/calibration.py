"""Two-stage calibration: tare against the empty surface, then a reference weight."""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import NamedTuple, Optional

from .config import EngineConfig
from .trace import NullTracer, Tracer

DEFAULT_ZERO_OFFSET = 0.0
DEFAULT_WEIGHT_FACTOR = 1.0


class CalibrationStep(str, Enum):
    IDLE = "idle"
    ZERO_PENDING = "zero_pending"
    ZERO_COMPLETE = "zero_complete"
    WEIGHT_PENDING = "weight_pending"
    COMPLETE = "complete"


class MeasurementAccuracy(str, Enum):
    UNCALIBRATED = "uncalibrated"
    ZERO_ONLY = "zero_only"
    FULLY_CALIBRATED = "fully_calibrated"


_PROGRESS = {
    CalibrationStep.IDLE: 0.0,
    CalibrationStep.ZERO_PENDING: 0.25,
    CalibrationStep.ZERO_COMPLETE: 0.5,
    CalibrationStep.WEIGHT_PENDING: 0.75,
    CalibrationStep.COMPLETE: 1.0,
}


@dataclass(frozen=True, slots=True)
class CalibrationState:
    zero_offset: float = DEFAULT_ZERO_OFFSET
    weight_factor: float = DEFAULT_WEIGHT_FACTOR
    zero_calibrated: bool = False
    weight_calibrated: bool = False


class CalibrationData(NamedTuple):
    zero_offset: float
    accel_baseline: float
    weight_factor: float


@dataclass(frozen=True, slots=True)
class StoredCalibration:
    """Values handed to (and read back from) the settings collaborator."""

    zero_offset: float = DEFAULT_ZERO_OFFSET
    weight_factor: float = DEFAULT_WEIGHT_FACTOR
    calibrated: bool = False


class CalibrationController:
    """Owns the zero offset and weight factor and the step machine around them.

    Guard failures never raise: every operation returns ``{"ok": False,
    "reason": ...}`` and leaves the stored values alone.
    """

    def __init__(self, config: Optional[EngineConfig] = None, *, tracer: Optional[Tracer] = None) -> None:
        self._config = config or EngineConfig()
        self._tracer: Tracer = tracer or NullTracer()
        self._state = CalibrationState()
        self._step = CalibrationStep.IDLE

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def state(self) -> CalibrationState:
        return self._state

    @property
    def step(self) -> CalibrationStep:
        return self._step

    @property
    def in_progress(self) -> bool:
        return self._step not in (CalibrationStep.IDLE, CalibrationStep.COMPLETE)

    @property
    def progress(self) -> float:
        return _PROGRESS[self._step]

    @property
    def is_calibrated(self) -> bool:
        return self._state.zero_calibrated and self._state.weight_calibrated

    @property
    def accuracy(self) -> MeasurementAccuracy:
        if self.is_calibrated:
            return MeasurementAccuracy.FULLY_CALIBRATED
        if self._state.zero_calibrated:
            return MeasurementAccuracy.ZERO_ONLY
        return MeasurementAccuracy.UNCALIBRATED

    def corrected(self, raw_force_index: float) -> float:
        return max(0.0, raw_force_index - self._state.zero_offset)

    def _result(self, ok: bool, reason: Optional[str] = None) -> dict:
        result = {
            "ok": ok,
            "step": self._step.value,
            "zero_offset": self._state.zero_offset,
            "weight_factor": self._state.weight_factor,
            "zero_calibrated": self._state.zero_calibrated,
            "weight_calibrated": self._state.weight_calibrated,
        }
        if reason:
            result["reason"] = reason
        return result

    def _reject(self, operation: str, reason: str, **fields) -> dict:
        self._tracer.reject(f"calibration.{operation}", reason, step=self._step.value, **fields)
        return self._result(False, reason)

    # ------------------------------------------------------------------
    # Step machine
    # ------------------------------------------------------------------
    def start(self, session_active: bool) -> dict:
        if not session_active:
            return self._reject("start", "session_inactive")
        if self._step not in (CalibrationStep.IDLE, CalibrationStep.COMPLETE):
            return self._reject("start", "already_in_progress")
        self._step = CalibrationStep.ZERO_PENDING
        self._tracer.emit("calibration.start", step=self._step.value)
        return self._result(True)

    def perform_zero(self, raw_force_index: float, touch_active: bool) -> dict:
        if self._step is not CalibrationStep.ZERO_PENDING:
            return self._reject("zero", "not_zero_pending")
        if touch_active:
            return self._reject("zero", "touch_active")
        self._state = replace(self._state, zero_offset=float(raw_force_index), zero_calibrated=True)
        self._step = CalibrationStep.ZERO_COMPLETE
        self._tracer.emit("calibration.zero", zero_offset=self._state.zero_offset)
        return self._result(True)

    def perform_weight(self, known_weight: float, corrected_force_index: float, touch_active: bool) -> dict:
        if self._step not in (CalibrationStep.ZERO_COMPLETE, CalibrationStep.WEIGHT_PENDING):
            return self._reject("weight", "zero_not_complete")
        if not math.isfinite(known_weight) or known_weight <= 0:
            return self._reject("weight", "known_weight_invalid", known_weight=known_weight)
        if not touch_active:
            return self._reject("weight", "touch_inactive")

        self._step = CalibrationStep.WEIGHT_PENDING
        if not corrected_force_index > 0 or corrected_force_index < self._config.min_detectable_pressure:
            self._step = CalibrationStep.ZERO_COMPLETE
            return self._reject("weight", "insufficient_force", force_index=corrected_force_index)

        factor = corrected_force_index / known_weight
        # weight_calibrated must never be set with a factor the estimator cannot divide by
        if not math.isfinite(factor) or factor <= 0:
            self._step = CalibrationStep.ZERO_COMPLETE
            return self._reject("weight", "weight_factor_invalid", weight_factor=factor)
        self._state = replace(self._state, weight_factor=factor, weight_calibrated=True)
        self._step = CalibrationStep.COMPLETE
        self._tracer.emit(
            "calibration.weight",
            known_weight=known_weight,
            force_index=corrected_force_index,
            weight_factor=factor,
        )
        return self._result(True)

    def cancel(self) -> dict:
        if not self.in_progress:
            return self._reject("cancel", "nothing_to_cancel")
        self._step = CalibrationStep.IDLE
        self._tracer.emit("calibration.cancel")
        return self._result(True)

    def reset(self) -> dict:
        self._state = CalibrationState()
        self._step = CalibrationStep.IDLE
        self._tracer.emit("calibration.reset")
        return self._result(True)

    def apply(self, zero_offset: float, weight_factor: float, *, calibrated: Optional[bool] = None) -> dict:
        """Install persisted values.

        Without ``calibrated`` the flags are inferred from the values: a
        non-zero offset means a tare happened and a factor other than 1 means a
        reference weight was used.
        """

        zero_offset = float(zero_offset)
        weight_factor = float(weight_factor)
        if not math.isfinite(zero_offset):
            return self._reject("apply", "zero_offset_invalid", zero_offset=zero_offset)
        if not math.isfinite(weight_factor) or weight_factor <= 0:
            return self._reject("apply", "weight_factor_invalid", weight_factor=weight_factor)

        if calibrated is None:
            zero_calibrated = zero_offset != DEFAULT_ZERO_OFFSET
            weight_calibrated = weight_factor != DEFAULT_WEIGHT_FACTOR
        else:
            zero_calibrated = weight_calibrated = bool(calibrated)
        self._state = CalibrationState(
            zero_offset=zero_offset,
            weight_factor=weight_factor,
            zero_calibrated=zero_calibrated,
            weight_calibrated=weight_calibrated,
        )
        self._tracer.emit(
            "calibration.apply",
            zero_offset=zero_offset,
            weight_factor=weight_factor,
            zero_calibrated=zero_calibrated,
            weight_calibrated=weight_calibrated,
        )
        return self._result(True)

    def to_stored(self) -> StoredCalibration:
        return StoredCalibration(
            zero_offset=self._state.zero_offset,
            weight_factor=self._state.weight_factor,
            calibrated=self.is_calibrated,
        )


__all__ = [
    "CalibrationController",
    "CalibrationData",
    "CalibrationState",
    "CalibrationStep",
    "MeasurementAccuracy",
    "StoredCalibration",
]
