import logging

from touchscale.estimator import WeightStatus
from touchscale.state import MeasurementState, SessionState, ValueCell


def test_subscribe_replays_current_value():
    cell = ValueCell("weight", 1.5)
    seen = []

    cell.subscribe(seen.append)

    assert seen == [1.5]


def test_set_only_notifies_on_change():
    cell = ValueCell("weight", 0.0)
    seen = []
    cell.subscribe(seen.append)

    assert cell.set(2.0)
    assert not cell.set(2.0)

    assert seen == [0.0, 2.0]


def test_unsubscribe_stops_notifications():
    cell = ValueCell("flag", False)
    seen = []
    unsubscribe = cell.subscribe(seen.append)

    unsubscribe()
    unsubscribe()
    cell.set(True)

    assert seen == [False]


def test_failing_listener_does_not_block_others():
    cell = ValueCell("weight", 0.0)
    seen = []

    def broken(_value):
        raise RuntimeError("boom")

    cell._listeners.append(broken)
    cell.subscribe(seen.append)
    cell.set(3.0)

    assert seen == [0.0, 3.0]
    assert cell.value == 3.0


def test_measurement_is_updated_before_derived_cells():
    state = SessionState()
    observed = []
    state.status.subscribe(lambda _status: observed.append(state.measurement.value.weight))

    state.publish(MeasurementState(raw_force_index=500.0, weight=260.0, status=WeightStatus.DANGER, session_active=True))

    assert observed == [0.0, 260.0]
    assert state.force_index.value == 500.0
    assert state.session_active.value


def test_snapshot_equality_ignores_timestamp():
    assert MeasurementState(weight=1.0, updated_at=1.0) == MeasurementState(weight=1.0, updated_at=2.0)


def test_failing_subscriber_does_not_raise_on_replay(caplog):
    cell = ValueCell("status", "empty")
    calls = []

    def broken(value):
        calls.append(value)
        raise RuntimeError("boom")

    with caplog.at_level(logging.ERROR, logger="touchscale.state"):
        unsubscribe = cell.subscribe(broken)
        cell.set("normal")

    assert calls == ["empty", "normal"]
    assert "Listener for status failed" in caplog.text
    unsubscribe()
