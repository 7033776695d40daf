"""Measurement session: routes touch and sensor callbacks through the engine."""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Optional, Protocol

from .calibration import CalibrationController, CalibrationData, StoredCalibration
from .config import EngineConfig, dump_engine_config
from .contact import EMPTY_FRAME, ContactFrame, ContactFrameBuilder, TouchEvent, TouchPhase
from .estimator import ZERO_ESTIMATE, WeightEstimate, WeightEstimator
from .fusion import SignalFusionEngine
from .sensors import AccelerationSample, PressureSample, SensorSample, SensorSource
from .state import MeasurementState, SessionState
from .trace import LoggingTracer, Tracer

LOGGER = logging.getLogger("touchscale.session")


class CalibrationStore(Protocol):
    """Settings collaborator that keeps calibration across restarts."""

    def load(self) -> Optional[StoredCalibration]:  # pragma: no cover - protocol definition only
        ...

    def save(self, calibration: StoredCalibration) -> None:  # pragma: no cover - protocol definition only
        ...


class MeasurementSession:
    """Single owner of all mutable measurement state.

    Every callback is expected on one thread (or one event loop); nothing in
    here blocks or locks.
    """

    def __init__(
        self,
        *,
        config: Optional[EngineConfig] = None,
        pressure_source: Optional[SensorSource] = None,
        accelerometer_source: Optional[SensorSource] = None,
        calibration_store: Optional[CalibrationStore] = None,
        tracer: Optional[Tracer] = None,
        state: Optional[SessionState] = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._tracer: Tracer = tracer or LoggingTracer()
        self._pressure_source = pressure_source
        self._accelerometer_source = accelerometer_source
        self._store = calibration_store

        self._frames = ContactFrameBuilder()
        self._fusion = SignalFusionEngine(
            self._config,
            pressure_available=pressure_source is not None,
            accelerometer_available=accelerometer_source is not None,
            tracer=self._tracer,
        )
        self._calibration = CalibrationController(self._config, tracer=self._tracer)
        self._estimator = WeightEstimator(self._config, tracer=self._tracer)

        self.state = state or SessionState()
        self._active = False
        self._touch_active = False
        self._frame: ContactFrame = EMPTY_FRAME
        self._raw_force_index = 0.0
        self._estimate: WeightEstimate = ZERO_ESTIMATE
        self._calibration_loaded = False
        self._last_update: Optional[float] = None

        self.state.sensor_available.set(pressure_source is not None or accelerometer_source is not None)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._active:
            return
        self._load_persisted_calibration()
        self._active = True
        self._fusion.capture_baselines()
        for source in self._sources():
            source.register(self.on_sensor_sample)
        self._publish()
        LOGGER.info(
            "Measurement session started (pressure=%s, accelerometer=%s, calibrated=%s)",
            self._pressure_source is not None,
            self._accelerometer_source is not None,
            self.is_calibrated(),
        )

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        for source in self._sources():
            source.unregister(self.on_sensor_sample)
        if self._calibration.in_progress:
            self._calibration.cancel()
        self._reset_measurement()
        self._fusion.clear_buffers()
        self._publish()
        LOGGER.info("Measurement session stopped")

    @property
    def active(self) -> bool:
        return self._active

    @property
    def touch_active(self) -> bool:
        return self._touch_active

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def calibration(self) -> CalibrationController:
        return self._calibration

    @property
    def fusion(self) -> SignalFusionEngine:
        return self._fusion

    def is_ready_for_measurement(self) -> bool:
        return self._active and self.state.sensor_available.value

    def _sources(self) -> list[SensorSource]:
        return [source for source in (self._pressure_source, self._accelerometer_source) if source is not None]

    # ------------------------------------------------------------------
    # Input callbacks
    # ------------------------------------------------------------------
    def on_sensor_sample(self, sample: SensorSample) -> bool:
        if not self._active:
            self._tracer.reject("sensor", "session_inactive", kind=type(sample).__name__)
            return False
        if isinstance(sample, PressureSample):
            self._fusion.update_pressure(sample.hpa)
        elif isinstance(sample, AccelerationSample):
            self._fusion.update_acceleration(sample.magnitude)
        else:
            self._tracer.reject("sensor", "unknown_sample", kind=type(sample).__name__)
            return False
        return True

    def handle_touch_event(self, event: TouchEvent) -> bool:
        """Process one touch callback; ``False`` means the event was not consumed."""

        if not self._active:
            self._tracer.reject("touch", "session_inactive", phase=event.phase.value)
            return False

        phase = event.phase
        if phase in (TouchPhase.DOWN, TouchPhase.POINTER_DOWN):
            if event.pointers:
                self._touch_active = True
                self._recompute(event)
            else:
                self._end_touch()
        elif phase is TouchPhase.MOVE:
            if self._touch_active and event.pointers:
                self._recompute(event)
        elif phase is TouchPhase.POINTER_UP:
            if self._touch_active and event.pointers:
                self._recompute(event)
            else:
                self._end_touch()
        else:
            self._end_touch()
        return True

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    def _recompute(self, event: TouchEvent) -> None:
        self._frame = self._frames.from_event(event)
        fused = self._fusion.fuse(self._frame)
        self._raw_force_index = fused.force_index
        self._estimate = self._estimator.estimate(self._raw_force_index, self._calibration.state)
        self._publish()

    def _refresh_estimate(self) -> None:
        if not self._touch_active:
            return
        self._estimate = self._estimator.estimate(self._raw_force_index, self._calibration.state)
        self._publish()

    def _end_touch(self) -> None:
        self._reset_measurement()
        self._publish()

    def _reset_measurement(self) -> None:
        self._touch_active = False
        self._frame = EMPTY_FRAME
        self._raw_force_index = 0.0
        self._estimate = ZERO_ESTIMATE

    def _publish(self) -> None:
        self._last_update = time.time()
        self.state.publish(
            MeasurementState(
                raw_force_index=self._estimate.corrected_force_index,
                weight=self._estimate.weight,
                unclamped_weight=self._estimate.unclamped_weight,
                status=self._estimate.status,
                touch_active=self._touch_active,
                session_active=self._active,
                pointer_count=self._frame.pointer_count,
            )
        )
        self.state.calibration_step.set(self._calibration.step)

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------
    def start_calibration(self) -> dict:
        result = self._calibration.start(self._active)
        self.state.calibration_step.set(self._calibration.step)
        return result

    def perform_zero_calibration(self) -> dict:
        # Tare against the published raw index; 0 once the surface is released.
        result = self._calibration.perform_zero(self._raw_force_index, self._touch_active)
        if result["ok"]:
            self._fusion.clear_buffers()
            self._reset_measurement()
            self._publish()
            LOGGER.info("Tare set (force index offset %.6f)", self._calibration.state.zero_offset)
        self.state.calibration_step.set(self._calibration.step)
        return result

    def perform_weight_calibration(self, known_weight: float) -> dict:
        result = self._calibration.perform_weight(
            float(known_weight),
            self._estimate.corrected_force_index,
            self._touch_active,
        )
        if result["ok"]:
            self._refresh_estimate()
            self._persist_calibration()
            LOGGER.info(
                "Calibration updated: known=%.3f g -> weight_factor=%.6f",
                known_weight,
                self._calibration.state.weight_factor,
            )
        self.state.calibration_step.set(self._calibration.step)
        return result

    def cancel_calibration(self) -> dict:
        result = self._calibration.cancel()
        self.state.calibration_step.set(self._calibration.step)
        return result

    def reset_calibration(self) -> dict:
        result = self._calibration.reset()
        self._fusion.capture_baselines()
        self._fusion.clear_buffers()
        self._reset_measurement()
        self._publish()
        self._persist_calibration()
        LOGGER.info("Calibration reset")
        return result

    def get_calibration_data(self) -> CalibrationData:
        state = self._calibration.state
        return CalibrationData(
            zero_offset=state.zero_offset,
            accel_baseline=self._fusion.baseline_acceleration,
            weight_factor=state.weight_factor,
        )

    def apply_calibration(self, zero_offset: float, accel_baseline: float, weight_factor: float) -> dict:
        result = self._calibration.apply(zero_offset, weight_factor)
        if result["ok"]:
            self._fusion.set_acceleration_baseline(accel_baseline)
            self._refresh_estimate()
        return result

    def is_calibrated(self) -> bool:
        return self._calibration.is_calibrated

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def _load_persisted_calibration(self) -> None:
        if self._store is None or self._calibration_loaded:
            return
        self._calibration_loaded = True
        try:
            stored = self._store.load()
        except Exception as exc:
            LOGGER.error("Failed to load calibration: %s", exc)
            return
        if stored is None:
            return
        result = self._calibration.apply(
            stored.zero_offset,
            stored.weight_factor,
            calibrated=True if stored.calibrated else None,
        )
        if not result["ok"]:
            LOGGER.warning("Ignoring persisted calibration: %s", result.get("reason"))

    def _persist_calibration(self) -> None:
        if self._store is None:
            return
        payload = self._calibration.to_stored()
        try:
            self._store.save(payload)
        except Exception as exc:
            LOGGER.error("Failed to persist calibration: %s", exc)

    # ------------------------------------------------------------------
    # Public snapshots
    # ------------------------------------------------------------------
    def get_status(self) -> dict:
        calibration = self._calibration
        state = calibration.state
        status = {
            "ok": self._active,
            "session_active": self._active,
            "sensor_available": self.state.sensor_available.value,
            "pressure_sensor": self._pressure_source is not None,
            "accelerometer": self._accelerometer_source is not None,
            "touch_active": self._touch_active,
            "baselines": {
                "pressure_hpa": self._fusion.baseline_pressure,
                "acceleration": self._fusion.baseline_acceleration,
            },
            "current": {
                "pressure_hpa": self._fusion.current_pressure,
                "acceleration": self._fusion.current_acceleration,
            },
            "calibration": {
                "step": calibration.step.value,
                "progress": calibration.progress,
                "accuracy": calibration.accuracy.value,
                "calibrated": calibration.is_calibrated,
                "zero_offset": state.zero_offset,
                "weight_factor": state.weight_factor,
                "zero_calibrated": state.zero_calibrated,
                "weight_calibrated": state.weight_calibrated,
            },
            "config": dump_engine_config(self._config),
        }
        if not self._active:
            status["reason"] = "session_inactive"
        return status

    def get_reading(self) -> dict:
        if not self._active:
            return {"ok": False, "reason": "session_inactive"}
        estimate = self._estimate
        ts_value = self._last_update or time.time()
        return {
            "ok": True,
            "grams": estimate.weight,
            "unclamped": estimate.unclamped_weight,
            "force_index": estimate.corrected_force_index,
            "raw_force_index": self._raw_force_index,
            "status": estimate.status.value,
            "touch_active": self._touch_active,
            "pointers": self._frame.pointer_count,
            "calibrated": self._calibration.is_calibrated,
            "ts": datetime.fromtimestamp(ts_value, tz=timezone.utc).isoformat(),
        }


__all__ = ["CalibrationStore", "MeasurementSession"]
