"""ICM20948 9-DOF IMU as a pitch sensor (I2C).

Only the accelerometer is used: with the board mounted flat on the
frame, pitch = atan2(ax, sqrt(ay^2 + az^2)). When the front wheel lifts
the gravity vector tilts towards the x axis and pitch rises.

I2C Address: 0x68 (can be 0x69 with jumper)
"""

import logging
import math
import random
import time

from sensors.base import BaseTiltSensor

logger = logging.getLogger(__name__)

try:
    import board
    import busio
    import adafruit_icm20x
    _lib_available = True
except ImportError:
    _lib_available = False


def pitch_from_acceleration(ax: float, ay: float, az: float) -> float:
    """Pitch angle in degrees from an accelerometer reading."""
    return math.degrees(math.atan2(ax, math.sqrt(ay * ay + az * az)))


class ICM20948TiltSensor(BaseTiltSensor):
    """Pitch from the ICM20948 accelerometer.

    Config keys:
        address        -- I2C address (default 0x68)
        sim_period     -- seconds between simulated wheelies (default 8)
        sim_duration   -- length of a simulated wheelie (default 2)
        sim_peak       -- peak simulated angle in degrees (default 35)
    """

    def open(self) -> bool:
        self._sensor = None
        self._sim_t0 = time.monotonic()
        if not _lib_available:
            logger.info("ICM20948: adafruit_icm20x library not installed")
            return False

        address = int(self._cfg.get("address", 0x68))
        i2c = busio.I2C(board.SCL, board.SDA)
        self._sensor = adafruit_icm20x.ICM20948(i2c, address=address)
        logger.info("ICM20948: ready on I2C 0x%02x", address)
        return True

    def pitch(self) -> float:
        ax, ay, az = self._sensor.acceleration
        return round(pitch_from_acceleration(ax, ay, az), 2)

    def simulate(self) -> float:
        """Flat riding with a smooth wheelie every sim_period seconds."""
        period = float(self._cfg.get("sim_period", 8.0))
        duration = float(self._cfg.get("sim_duration", 2.0))
        peak = float(self._cfg.get("sim_peak", 35.0))

        phase = (time.monotonic() - self._sim_t0) % period
        angle = 0.0
        if phase < duration:
            angle = peak * math.sin(math.pi * phase / duration)
        return round(angle + random.gauss(0.0, 1.5), 2)

    def close(self) -> None:
        self._sensor = None
