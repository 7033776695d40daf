import pytest

from touchscale.contact import EMPTY_FRAME, ContactFrameBuilder, Pointer, TouchEvent, TouchPhase


def test_frame_is_mean_over_active_pointers():
    builder = ContactFrameBuilder()
    frame = builder.build([Pointer(0.2, 0.4), Pointer(0.4, 0.8)])

    assert frame.pointer_count == 2
    assert frame.contact_area == pytest.approx(0.3)
    assert frame.pressure_intensity == pytest.approx(0.6)
    assert frame.total_area == pytest.approx(0.6)


@pytest.mark.parametrize(
    "pointers",
    [
        [(0.1, 0.9)],
        [(0.0, 0.0), (1.0, 1.0), (0.5, 0.25)],
        [(0.33, 0.66)] * 5,
    ],
)
def test_frame_values_stay_in_unit_interval(pointers):
    frame = ContactFrameBuilder().from_event(TouchEvent.of(TouchPhase.MOVE, pointers))

    sizes = [size for size, _ in pointers]
    pressures = [pressure for _, pressure in pointers]
    assert frame.contact_area == pytest.approx(sum(sizes) / len(sizes))
    assert frame.pressure_intensity == pytest.approx(sum(pressures) / len(pressures))
    assert 0.0 <= frame.contact_area <= 1.0
    assert 0.0 <= frame.pressure_intensity <= 1.0


def test_out_of_range_pointer_values_are_clamped():
    pointer = Pointer(size=1.7, pressure=-0.2)

    assert pointer.size == 1.0
    assert pointer.pressure == 0.0


def test_no_pointers_gives_empty_frame():
    frame = ContactFrameBuilder().build([])

    assert frame == EMPTY_FRAME
    assert frame.pointer_count == 0
    assert frame.total_area == 0.0
