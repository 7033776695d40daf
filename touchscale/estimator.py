"""Force index to bounded weight conversion and safety classification."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .calibration import CalibrationState
from .config import EngineConfig
from .trace import NullTracer, Tracer


class WeightStatus(str, Enum):
    EMPTY = "empty"
    NORMAL = "normal"
    WARNING = "warning"
    DANGER = "danger"


@dataclass(frozen=True, slots=True)
class WeightEstimate:
    corrected_force_index: float
    unclamped_weight: float
    weight: float
    status: WeightStatus

    @property
    def clamped(self) -> bool:
        return self.weight != self.unclamped_weight


ZERO_ESTIMATE = WeightEstimate(0.0, 0.0, 0.0, WeightStatus.EMPTY)


class WeightEstimator:
    def __init__(self, config: Optional[EngineConfig] = None, *, tracer: Optional[Tracer] = None) -> None:
        self._config = config or EngineConfig()
        self._tracer: Tracer = tracer or NullTracer()

    def classify(self, weight: float) -> WeightStatus:
        config = self._config
        if weight > config.danger_weight_threshold:
            return WeightStatus.DANGER
        if weight > config.warning_weight_threshold:
            return WeightStatus.WARNING
        if weight < config.min_detectable_weight:
            return WeightStatus.EMPTY
        return WeightStatus.NORMAL

    def to_weight(self, corrected_force_index: float, calibration: CalibrationState) -> float:
        if corrected_force_index < self._config.force_epsilon:
            return 0.0
        # weight_calibrated is only ever set together with a positive factor
        if calibration.weight_calibrated:
            return corrected_force_index / calibration.weight_factor
        return corrected_force_index * self._config.uncalibrated_conversion

    def estimate(self, raw_force_index: float, calibration: CalibrationState) -> WeightEstimate:
        corrected = max(0.0, raw_force_index - calibration.zero_offset)
        unclamped = self.to_weight(corrected, calibration)
        weight = min(self._config.max_reasonable_weight, max(0.0, unclamped))
        status = self.classify(unclamped)
        self._tracer.emit(
            "estimator.weight",
            raw=raw_force_index,
            corrected=corrected,
            unclamped=unclamped,
            weight=weight,
            status=status.value,
            calibrated=calibration.weight_calibrated,
        )
        return WeightEstimate(
            corrected_force_index=corrected,
            unclamped_weight=unclamped,
            weight=weight,
            status=status,
        )


__all__ = ["WeightEstimate", "WeightEstimator", "WeightStatus", "ZERO_ESTIMATE"]
