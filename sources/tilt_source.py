"""Tilt data source -- wraps a BaseTiltSensor.

Polls one tilt sensor on the server (e.g. an ICM20948 on the bike's
Raspberry Pi) and publishes raw pitch samples to the EventBus, where the
measurement session picks them up exactly like samples posted by a
phone browser.

Config example (in wheelie.yaml):
    sources:
      - id: "imu"
        type: "tilt"
        sensor: "icm20948"
        interval: 0.05
        demo: false
"""

import logging
import time
from typing import Any, Dict, Optional

from wheelie.data_source import DataSource
from wheelie.registry import register_source
from sensors import SENSOR_CLASSES

logger = logging.getLogger(__name__)


@register_source("tilt")
class TiltSource(DataSource):
    """Publishes {"beta", "timestamp"} samples from a tilt sensor."""

    def __init__(self, source_id: str, bus, config: Dict, sensor=None):
        config.setdefault("interval", 0.05)
        super().__init__(source_id, bus, config)

        self.sensor_key = config.get("sensor", "icm20948")
        self.demo_mode = bool(config.get("demo", False))
        self._sensor = sensor

        if self._sensor is None:
            cls = SENSOR_CLASSES.get(self.sensor_key)
            if cls is None:
                logger.warning("TiltSource %s: unknown sensor %s", source_id, self.sensor_key)
            else:
                self._sensor = cls(config.get("sensor_config"))
                logger.info("TiltSource %s initialized (%r)", source_id, self._sensor)

    def fetch(self) -> Optional[Dict[str, Any]]:
        if self._sensor is None:
            return None
        angle = self._sensor.simulate() if self.demo_mode else self._sensor.read()
        if angle is None:
            return None
        return {
            "beta": angle,
            "timestamp": time.time(),
            "_source": self.source_id,
            "_simulated": self.demo_mode,
        }

    def close(self):
        super().close()
        if self._sensor:
            self._sensor.close()
