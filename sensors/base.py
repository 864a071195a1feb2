"""Tilt sensor interface.

A sensor reports the pitch of the bike in degrees. A failed I2C read is
tried once more and then reported as a missing sample (None), so the
polling thread in sources.tilt_source never sees a hardware exception.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class BaseTiltSensor(ABC):
    """Pitch sensor. Subclasses provide open(), pitch() and simulate()."""

    ATTEMPTS = 2

    def __init__(self, cfg: Optional[Dict[str, Any]] = None):
        self._cfg = cfg or {}
        self.failures = 0
        try:
            self.available = bool(self.open())
        except Exception as exc:
            logger.warning("%s unavailable: %s", type(self).__name__, exc)
            self.available = False

    @abstractmethod
    def open(self) -> bool:
        """Connect to the device. True when it can be read."""

    @abstractmethod
    def pitch(self) -> float:
        """One reading from the device, in degrees. May raise OSError."""

    @abstractmethod
    def simulate(self) -> float:
        """Plausible pitch for demo mode."""

    @property
    def simulated(self) -> bool:
        return not self.available

    def read(self) -> Optional[float]:
        """Pitch in degrees, or None when the device is absent or failing."""
        if not self.available:
            return None

        error = None
        for _ in range(self.ATTEMPTS):
            try:
                value = self.pitch()
            except (OSError, RuntimeError, ValueError) as exc:
                error = exc
                continue
            if self.failures:
                logger.info("%s recovered after %d failed read(s)",
                            type(self).__name__, self.failures)
                self.failures = 0
            return value

        self.failures += 1
        if self.failures == 1:
            logger.warning("%s read failed: %s", type(self).__name__, error)
        return None

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {'live' if self.available else 'absent'}>"
