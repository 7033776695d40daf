from typing import List, Optional

import pytest

from touchscale.calibration import CalibrationState, CalibrationStep, StoredCalibration
from touchscale.config import EngineConfig
from touchscale.contact import TouchEvent, TouchPhase
from touchscale.estimator import WeightStatus
from touchscale.sensors import AccelerationSample, PressureSample, PushSensorSource
from touchscale.session import MeasurementSession
from touchscale.trace import NullTracer


class MemoryStore:
    def __init__(self, stored: Optional[StoredCalibration] = None, fail: bool = False) -> None:
        self.stored = stored
        self.saved: List[StoredCalibration] = []
        self.fail = fail

    def load(self) -> Optional[StoredCalibration]:
        if self.fail:
            raise OSError("disk unavailable")
        return self.stored

    def save(self, calibration: StoredCalibration) -> None:
        if self.fail:
            raise OSError("disk unavailable")
        self.saved.append(calibration)


class RecordingTracer(NullTracer):
    def __init__(self) -> None:
        self.rejections: List[tuple] = []

    def reject(self, event, reason, **fields):
        self.rejections.append((event, reason))


def _make_session(**overrides):
    pressure = PushSensorSource("pressure")
    accel = PushSensorSource("accelerometer")
    session = MeasurementSession(
        config=overrides.get("config"),
        pressure_source=pressure,
        accelerometer_source=accel,
        calibration_store=overrides.get("store"),
        tracer=overrides.get("tracer", NullTracer()),
    )
    return session, pressure, accel


def _touch(phase: TouchPhase, *pointers) -> TouchEvent:
    return TouchEvent.of(phase, pointers)


def test_events_are_rejected_while_inactive():
    tracer = RecordingTracer()
    session, pressure, _ = _make_session(tracer=tracer)

    assert not session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.5)))
    assert not session.on_sensor_sample(PressureSample(1000.0))
    assert not pressure.push(PressureSample(1000.0))
    assert session.state.weight.value == 0.0
    assert ("touch", "session_inactive") in tracer.rejections
    assert session.get_reading() == {"ok": False, "reason": "session_inactive"}


def test_touch_down_publishes_force_index_and_weight():
    session, _, _ = _make_session()
    session.start()

    assert session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.5)))

    assert session.state.force_index.value == pytest.approx(45.0)
    assert session.state.weight.value == pytest.approx(22.5)
    assert session.state.touch_active.value
    reading = session.get_reading()
    assert reading["ok"]
    assert reading["grams"] == pytest.approx(22.5)
    assert reading["pointers"] == 1


def test_release_leaves_no_residual_reading():
    session, _, _ = _make_session()
    session.start()
    session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.5)))

    session.handle_touch_event(_touch(TouchPhase.UP))

    assert session.state.force_index.value == 0.0
    assert session.state.weight.value == 0.0
    assert not session.touch_active


def test_move_only_counts_during_a_touch():
    session, _, _ = _make_session()
    session.start()

    assert session.handle_touch_event(_touch(TouchPhase.MOVE, (1.0, 0.5)))
    assert session.state.weight.value == 0.0

    session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.5)))
    session.handle_touch_event(_touch(TouchPhase.MOVE, (1.0, 1.0)))
    assert session.state.force_index.value == pytest.approx(90.0)


def test_pointer_down_and_up_track_remaining_pointers():
    session, _, _ = _make_session()
    session.start()
    session.handle_touch_event(_touch(TouchPhase.DOWN, (0.5, 0.5)))
    session.handle_touch_event(_touch(TouchPhase.POINTER_DOWN, (0.5, 0.5), (0.5, 0.5)))

    assert session.state.force_index.value == pytest.approx(45.0)

    session.handle_touch_event(_touch(TouchPhase.POINTER_UP, (0.5, 0.5)))
    assert session.state.force_index.value == pytest.approx(22.5)
    assert session.touch_active

    session.handle_touch_event(_touch(TouchPhase.POINTER_UP))
    assert session.state.force_index.value == 0.0
    assert not session.touch_active


def test_cancel_ends_the_touch():
    session, _, _ = _make_session()
    session.start()
    session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.5)))

    session.handle_touch_event(_touch(TouchPhase.CANCEL))

    assert session.state.weight.value == 0.0


def test_weight_is_clamped_to_safe_range():
    session, _, _ = _make_session()
    session.start()

    session.handle_touch_event(_touch(TouchPhase.DOWN, *[(1.0, 1.0)] * 10))

    assert session.state.weight.value == pytest.approx(300.0)
    assert session.state.status.value is WeightStatus.DANGER
    assert session.state.measurement.value.unclamped_weight == pytest.approx(450.0)


def test_stop_zeroes_measurement_and_restart_reads_zero():
    session, pressure, _ = _make_session()
    session.start()
    session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.5)))

    session.stop()

    assert session.state.weight.value == 0.0
    assert session.state.force_index.value == 0.0
    assert not session.state.session_active.value
    assert not pressure.has_listeners

    session.start()
    assert session.state.session_active.value
    assert session.state.weight.value == 0.0
    assert session.get_reading()["grams"] == 0.0


def test_start_and_stop_are_idempotent():
    session, pressure, _ = _make_session()
    session.start()
    session.start()
    assert pressure.has_listeners

    session.stop()
    session.stop()
    assert not session.active


def test_stop_clears_smoothing_buffers():
    config = EngineConfig(smooth_force_index=True, force_index_window=10)
    session, _, _ = _make_session(config=config)
    session.start()
    session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 1.0)))
    assert session.state.force_index.value == pytest.approx(90.0)

    session.stop()
    session.start()
    session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.5)))

    assert session.state.force_index.value == pytest.approx(45.0)


def test_sensor_samples_reach_the_fusion_engine():
    session, pressure, accel = _make_session()
    session.start()

    assert pressure.push(PressureSample(1000.0))
    assert accel.push(AccelerationSample(0.0, 0.0, 9.7))
    assert pressure.push(PressureSample(1002.0))

    assert session.fusion.baseline_pressure == pytest.approx(1000.0)
    assert session.fusion.current_pressure == pytest.approx(1002.0)
    assert session.fusion.current_acceleration == pytest.approx(9.7)
    # sensor updates alone do not produce a reading
    assert session.state.weight.value == 0.0


def test_full_calibration_flow_persists_result():
    store = MemoryStore()
    session, _, _ = _make_session(store=store)
    session.start()

    assert session.start_calibration()["ok"]
    assert session.perform_zero_calibration()["ok"]
    assert session.calibration.state.zero_offset == 0.0

    session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.5)))
    result = session.perform_weight_calibration(9.0)

    assert result["ok"]
    assert session.calibration.state.weight_factor == pytest.approx(5.0)
    assert session.is_calibrated()
    assert session.state.weight.value == pytest.approx(9.0)
    assert session.state.calibration_step.value is CalibrationStep.COMPLETE
    assert store.saved[-1] == StoredCalibration(zero_offset=0.0, weight_factor=pytest.approx(5.0), calibrated=True)

    session.handle_touch_event(_touch(TouchPhase.MOVE, (1.0, 0.25)))
    assert session.state.weight.value == pytest.approx(4.5)


def test_zero_calibration_while_touching_is_a_no_op():
    session, _, _ = _make_session()
    session.start()
    session.start_calibration()
    session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.5)))
    before = session.calibration.state

    result = session.perform_zero_calibration()

    assert not result["ok"]
    assert session.calibration.state == before
    assert session.calibration.step is CalibrationStep.ZERO_PENDING


def test_zero_calibration_uses_published_index_not_ambient_drift():
    session, pressure, _ = _make_session()
    session.start()
    pressure.push(PressureSample(1013.25))
    pressure.push(PressureSample(1015.25))
    assert session.state.force_index.value == 0.0

    session.start_calibration()
    assert session.perform_zero_calibration()["ok"]
    assert session.calibration.state.zero_offset == 0.0

    session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.01)))

    # 0.9 * touch 1.0 + 0.05 * barometric 0.2
    assert session.state.force_index.value == pytest.approx(0.91)


def test_zero_calibration_after_release_stores_zero():
    session, _, _ = _make_session()
    session.start()
    session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.5)))
    session.handle_touch_event(_touch(TouchPhase.UP))

    session.start_calibration()
    assert session.perform_zero_calibration()["ok"]

    assert session.calibration.state.zero_offset == 0.0
    assert session.calibration.state.zero_calibrated


def test_weight_calibration_without_touch_is_ignored():
    session, _, _ = _make_session()
    session.start()
    session.start_calibration()
    session.perform_zero_calibration()

    result = session.perform_weight_calibration(10.0)

    assert not result["ok"]
    assert not session.calibration.state.weight_calibrated


def test_reset_calibration_restores_defaults_and_saves():
    store = MemoryStore()
    session, _, _ = _make_session(store=store)
    session.start()
    session.apply_calibration(2.0, 9.7, 3.0)
    session.start_calibration()

    session.reset_calibration()

    assert session.calibration.state == CalibrationState(0.0, 1.0, False, False)
    assert session.calibration.step is CalibrationStep.IDLE
    assert store.saved[-1] == StoredCalibration(0.0, 1.0, False)


def test_stop_cancels_running_calibration_but_keeps_values():
    session, _, _ = _make_session()
    session.start()
    session.start_calibration()
    session.perform_zero_calibration()

    session.stop()

    assert session.calibration.step is CalibrationStep.IDLE
    assert session.calibration.state.zero_calibrated


def test_persisted_calibration_is_loaded_on_start():
    store = MemoryStore(StoredCalibration(zero_offset=0.0, weight_factor=4.0, calibrated=True))
    session, _, _ = _make_session(store=store)

    session.start()
    session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.4)))

    assert session.is_calibrated()
    assert session.state.weight.value == pytest.approx(9.0)


def test_store_failures_do_not_break_the_session():
    session, _, _ = _make_session(store=MemoryStore(fail=True))
    session.start()
    session.start_calibration()
    session.perform_zero_calibration()
    session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.5)))

    result = session.perform_weight_calibration(9.0)

    assert result["ok"]
    assert session.is_calibrated()


def test_calibration_data_round_trip():
    session, _, _ = _make_session()
    session.start()

    assert session.apply_calibration(1.5, 9.6, 2.5)["ok"]

    data = session.get_calibration_data()
    assert data.zero_offset == pytest.approx(1.5)
    assert data.accel_baseline == pytest.approx(9.6)
    assert data.weight_factor == pytest.approx(2.5)
    assert session.is_calibrated()


def test_apply_calibration_rejects_non_positive_factor():
    session, _, _ = _make_session()

    result = session.apply_calibration(0.0, 9.81, 0.0)

    assert not result["ok"]
    assert session.calibration.state.weight_factor == 1.0


def test_sensor_available_reflects_attached_sources():
    assert _make_session()[0].state.sensor_available.value
    assert not MeasurementSession(tracer=NullTracer()).state.sensor_available.value


def test_weight_listeners_follow_the_pipeline():
    session, _, _ = _make_session()
    seen: List[float] = []
    session.state.weight.subscribe(seen.append)
    session.start()

    session.handle_touch_event(_touch(TouchPhase.DOWN, (1.0, 0.5)))
    session.handle_touch_event(_touch(TouchPhase.UP))

    assert seen == [0.0, pytest.approx(22.5), 0.0]


def test_ready_for_measurement_needs_active_session_and_sensor():
    session, _, _ = _make_session()
    assert not session.is_ready_for_measurement()

    session.start()
    assert session.is_ready_for_measurement()

    bare = MeasurementSession(tracer=NullTracer())
    bare.start()
    assert not bare.is_ready_for_measurement()


def test_weightless_touch_cannot_calibrate_even_without_noise_gate():
    session, _, _ = _make_session(config=EngineConfig(min_detectable_pressure=0.0))
    session.start()
    session.start_calibration()
    session.perform_zero_calibration()
    session.handle_touch_event(_touch(TouchPhase.DOWN, (0.5, 0.0)))

    result = session.perform_weight_calibration(10.0)

    assert not result["ok"]
    assert not session.calibration.state.weight_calibrated
    session.handle_touch_event(_touch(TouchPhase.MOVE, (0.5, 0.5)))
    assert session.state.weight.value == pytest.approx(11.25)
