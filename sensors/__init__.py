"""Tilt sensors for server-side measuring.

Each sensor subclasses sensors.base.BaseTiltSensor and implements open(),
pitch() and simulate(). SENSOR_CLASSES maps the `sensor` key of a tilt
source config to its class.
"""

from sensors.base import BaseTiltSensor
from sensors.icm20948 import ICM20948TiltSensor

SENSOR_CLASSES = {
    "icm20948": ICM20948TiltSensor,
}

__all__ = ["BaseTiltSensor", "ICM20948TiltSensor", "SENSOR_CLASSES"]
