import math

import pytest

from wheelie.calibrator import Calibrator, as_float
from wheelie.errors import InvalidInput, InvalidOperation, PersistenceError


class FakeSettings:
    def __init__(self, offset=None):
        self.offset = offset
        self.saved = []

    def load_offset(self):
        return self.offset

    def save_offset(self, value):
        self.saved.append(value)


def test_zero_offset_returns_magnitude():
    cal = Calibrator()
    assert cal.apply(-12.5) == 12.5
    assert cal.apply(12.5) == 12.5
    assert cal.apply(0) == 0


def test_offset_is_subtracted_from_magnitudes():
    cal = Calibrator(5.0)
    assert cal.apply(25) == 20
    assert cal.apply(-25) == 20
    # Below the offset the difference is folded back to positive
    assert cal.apply(2) == 3


def test_apply_is_not_a_fixed_point():
    cal = Calibrator(10.0)
    once = cal.apply(30)
    assert once == 20
    assert cal.apply(once) == 10


def test_apply_never_raises_on_garbage():
    cal = Calibrator(3.0)
    assert math.isnan(cal.apply(None))
    assert math.isnan(cal.apply("abc"))
    assert math.isnan(cal.apply(float("nan")))
    assert cal.apply("12") == 9


def test_as_float_rejects_bool():
    assert math.isnan(as_float(True))
    assert as_float("1.5") == 1.5


def test_set_offset_persists():
    settings = FakeSettings()
    cal = Calibrator(settings=settings)
    assert cal.set_offset(4.2) == 4.2
    assert cal.offset == 4.2
    assert settings.saved == [4.2]


def test_set_offset_rejected_while_measuring():
    settings = FakeSettings()
    cal = Calibrator(1.0, settings=settings, is_measuring=lambda: True)
    with pytest.raises(InvalidOperation):
        cal.set_offset(7.0)
    assert cal.offset == 1.0
    assert settings.saved == []


def test_set_offset_rejects_non_numbers():
    cal = Calibrator(1.0)
    with pytest.raises(InvalidInput):
        cal.set_offset("level")
    assert cal.offset == 1.0


def test_restore_from_settings():
    cal = Calibrator.restore(FakeSettings(offset=6.5))
    assert cal.offset == 6.5
    assert Calibrator.restore(FakeSettings()).offset == 0.0
    assert Calibrator.restore(None).offset == 0.0


class ReadOnlySettings(FakeSettings):
    def save_offset(self, value):
        raise PermissionError("settings.yaml is read-only")


def test_failed_save_keeps_previous_offset():
    cal = Calibrator(2.0, settings=ReadOnlySettings())
    with pytest.raises(PersistenceError):
        cal.set_offset(5.0)
    assert cal.offset == 2.0
