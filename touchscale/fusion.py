"""Touch, barometer and accelerometer fusion into a raw force index."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .averager import CircularAverager
from .config import EngineConfig
from .contact import ContactFrame
from .trace import NullTracer, Tracer


@dataclass(frozen=True, slots=True)
class FusionResult:
    touch: float
    barometric: float
    accelerometer: float
    force_index: float


class SignalFusionEngine:
    """Blend the three contributions, touch first.

    The engine keeps the latest barometric pressure and acceleration magnitude
    plus the environmental baselines captured at session start. A sensor that
    is not attached contributes 0.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        pressure_available: bool = True,
        accelerometer_available: bool = True,
        tracer: Optional[Tracer] = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._tracer: Tracer = tracer or NullTracer()
        self.pressure_available = pressure_available
        self.accelerometer_available = accelerometer_available

        self._current_pressure = self._config.default_pressure_hpa
        self._current_acceleration = self._config.default_acceleration
        self._baseline_pressure = self._config.default_pressure_hpa
        self._baseline_acceleration = self._config.default_acceleration
        self._has_pressure = False
        self._has_acceleration = False
        self._pressure_baseline_pending = False
        self._acceleration_baseline_pending = False

        self._acceleration_buffer = CircularAverager(self._config.acceleration_window)
        self._force_buffer = CircularAverager(self._config.force_index_window)

    # ------------------------------------------------------------------
    # Sensor scalars
    # ------------------------------------------------------------------
    def update_pressure(self, hpa: float) -> None:
        self._current_pressure = float(hpa)
        self._has_pressure = True
        if self._pressure_baseline_pending:
            self._baseline_pressure = self._current_pressure
            self._pressure_baseline_pending = False
            self._tracer.emit("fusion.baseline.pressure", baseline=self._baseline_pressure)

    def update_acceleration(self, magnitude: float) -> None:
        self._current_acceleration = float(magnitude)
        self._has_acceleration = True
        self._acceleration_buffer.push(self._current_acceleration)
        if self._acceleration_baseline_pending:
            self._baseline_acceleration = self._current_acceleration
            self._acceleration_baseline_pending = False
            self._tracer.emit("fusion.baseline.acceleration", baseline=self._baseline_acceleration)

    def capture_baselines(self) -> None:
        """Use the current readings as the environmental reference.

        A stream that has not delivered anything yet takes its first sample as
        the baseline instead.
        """

        self._baseline_pressure = self._current_pressure
        self._baseline_acceleration = self._current_acceleration
        self._pressure_baseline_pending = not self._has_pressure
        self._acceleration_baseline_pending = not self._has_acceleration
        self._tracer.emit(
            "fusion.baselines",
            pressure=self._baseline_pressure,
            acceleration=self._baseline_acceleration,
            pressure_pending=self._pressure_baseline_pending,
            acceleration_pending=self._acceleration_baseline_pending,
        )

    def set_acceleration_baseline(self, value: float) -> None:
        self._baseline_acceleration = float(value)
        self._acceleration_baseline_pending = False

    def clear_buffers(self) -> None:
        self._acceleration_buffer.clear()
        self._force_buffer.clear()

    @property
    def current_pressure(self) -> float:
        return self._current_pressure

    @property
    def current_acceleration(self) -> float:
        return self._current_acceleration

    @property
    def baseline_pressure(self) -> float:
        return self._baseline_pressure

    @property
    def baseline_acceleration(self) -> float:
        return self._baseline_acceleration

    # ------------------------------------------------------------------
    # Contributions
    # ------------------------------------------------------------------
    def touch_contribution(self, frame: ContactFrame) -> float:
        if frame.pointer_count <= 0:
            return 0.0
        return frame.pressure_intensity * frame.total_area * self._config.force_index_scaling

    def barometric_contribution(self) -> float:
        if not self.pressure_available:
            return 0.0
        delta = self._current_pressure - self._baseline_pressure
        if abs(delta) < self._config.min_detectable_pressure:
            return 0.0
        return delta * self._config.barometric_gain

    def accelerometer_contribution(self) -> float:
        if not self.accelerometer_available:
            return 0.0
        if self._config.smooth_acceleration and len(self._acceleration_buffer):
            magnitude = self._acceleration_buffer.mean()
        else:
            magnitude = self._current_acceleration
        delta = magnitude - self._baseline_acceleration
        limit = self._config.accelerometer_limit
        return min(limit, max(-limit, delta * self._config.accelerometer_gain))

    def combine(self, touch: float, barometric: float, accelerometer: float) -> float:
        config = self._config
        if touch > 0:
            return (
                touch * config.touch_weight
                + barometric * config.touch_barometric_weight
                + accelerometer * config.touch_accelerometer_weight
            )
        if abs(barometric) >= config.min_detectable_pressure:
            return barometric * config.fallback_barometric_weight + accelerometer * config.fallback_accelerometer_weight
        return accelerometer

    def fuse(self, frame: ContactFrame) -> FusionResult:
        touch = self.touch_contribution(frame)
        barometric = self.barometric_contribution()
        accelerometer = self.accelerometer_contribution()
        force_index = self.combine(touch, barometric, accelerometer)
        if self._config.smooth_force_index:
            self._force_buffer.push(force_index)
            force_index = self._force_buffer.mean()
        self._tracer.emit(
            "fusion.result",
            touch=touch,
            barometric=barometric,
            accelerometer=accelerometer,
            force_index=force_index,
            pointers=frame.pointer_count,
        )
        return FusionResult(
            touch=touch,
            barometric=barometric,
            accelerometer=accelerometer,
            force_index=force_index,
        )


__all__ = ["FusionResult", "SignalFusionEngine"]
