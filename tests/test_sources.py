import math

import pytest

from sensors.base import BaseTiltSensor
from sensors.icm20948 import ICM20948TiltSensor, pitch_from_acceleration
from sources.replay_source import ReplaySource, read_samples
from sources.tilt_source import TiltSource
from wheelie.event_bus import EventBus
from wheelie.registry import SOURCE_REGISTRY, get_source_class
from wheelie.errors import ConfigError


class FlakySensor(BaseTiltSensor):
    def __init__(self, readings, present=True):
        self.readings = list(readings)
        self.present = present
        super().__init__()

    def open(self):
        return self.present

    def pitch(self):
        value = self.readings.pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    def simulate(self):
        return 12.0


class BrokenSensor(FlakySensor):
    def open(self):
        raise OSError("no device at 0x68")


def test_sensor_retries_once_then_succeeds():
    sensor = FlakySensor([OSError("i2c"), 21.5])
    assert sensor.read() == 21.5
    assert sensor.failures == 0


def test_sensor_failed_read_returns_none():
    sensor = FlakySensor([OSError("a"), OSError("b"), 3.0])
    assert sensor.read() is None
    assert sensor.failures == 1
    assert sensor.read() == 3.0
    assert sensor.failures == 0


def test_absent_sensor_reads_nothing():
    sensor = FlakySensor([1.0], present=False)
    assert sensor.simulated
    assert sensor.read() is None
    assert sensor.readings == [1.0]


def test_sensor_open_error_marks_unavailable():
    sensor = BrokenSensor([])
    assert not sensor.available
    assert sensor.read() is None


def test_pitch_from_acceleration():
    assert pitch_from_acceleration(0, 0, 9.81) == pytest.approx(0)
    assert pitch_from_acceleration(9.81, 0, 0) == pytest.approx(90)
    assert pitch_from_acceleration(1, 0, 1) == pytest.approx(45)


def test_icm20948_without_hardware_simulates():
    sensor = ICM20948TiltSensor({"sim_period": 8, "sim_duration": 2, "sim_peak": 35})
    assert sensor.simulated
    assert sensor.read() is None
    assert math.isfinite(sensor.simulate())


def test_read_samples(tmp_path):
    path = tmp_path / "ride.csv"
    path.write_text(
        "timestamp,beta\n"
        "0.0,5\n"
        "# comment\n"
        "0.1,25.5\n"
        "oops,30\n"
        "0.2\n"
        "0.3,nan-ish\n"
    )
    samples = read_samples(path)
    assert samples == [(0.0, "5"), (0.1, "25.5"), (0.3, "nan-ish")]


def test_replay_source_publishes_and_exhausts():
    bus = EventBus()
    source = ReplaySource("r", bus, {"speed": 2.0}, samples=[(0.0, 10), (1.0, 30)])
    first = source.fetch()
    assert source.next_delay() == 0.5
    second = source.fetch()
    assert second["timestamp"] - first["timestamp"] == pytest.approx(0.5)
    assert second["beta"] == 30
    with pytest.raises(StopIteration):
        source.fetch()


def test_replay_source_loops():
    source = ReplaySource("r", EventBus(), {"loop": True}, samples=[(0.0, 10)])
    source.fetch()
    assert source.fetch()["beta"] == 10


def test_replay_thread_feeds_session_topic():
    bus = EventBus()
    got = []
    bus.subscribe("tilt.raw", got.append)
    source = ReplaySource("r", bus, {"speed": 1000.0}, samples=[(0.0, 10), (0.1, 30), (0.2, 0)])
    source._run()  # runs until the recording is exhausted
    assert [p["beta"] for p in got] == [10, 30, 0]


def test_tilt_source_wraps_sensor():
    sensor = FlakySensor([22.0])
    source = TiltSource("imu", EventBus(), {}, sensor=sensor)
    data = source.fetch()
    assert data["beta"] == 22.0
    assert data["_source"] == "imu"
    assert source.interval == 0.05


def test_tilt_source_demo_uses_simulation():
    sensor = FlakySensor([], present=False)
    data = TiltSource("imu", EventBus(), {"demo": True}, sensor=sensor).fetch()
    assert data["beta"] == 12.0
    assert data["_simulated"] is True


def test_tilt_source_skips_failed_reads():
    sensor = FlakySensor([IOError("x"), IOError("y")])
    assert TiltSource("imu", EventBus(), {}, sensor=sensor).fetch() is None


def test_registry():
    assert SOURCE_REGISTRY["tilt"] is TiltSource
    assert get_source_class("replay") is ReplaySource
    with pytest.raises(ConfigError):
        get_source_class("carrier-pigeon")
