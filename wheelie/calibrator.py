"""Static tilt calibration.

A single scalar offset is subtracted from every raw sample so that the
resting position of the device reads 0 degrees. Both the raw reading and
the offset are taken as unsigned magnitudes before differencing, which
keeps readings continuous when the device is mounted upside down.
"""

import logging
import math
from typing import Callable, Optional

from wheelie.errors import InvalidInput, InvalidOperation, PersistenceError

logger = logging.getLogger(__name__)


def as_float(value) -> float:
    """Convert a sensor value to float, returning NaN when impossible."""
    if isinstance(value, bool):
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


class Calibrator:
    """Holds the calibration offset and applies it to raw samples.

    Args:
        offset: Initial offset in degrees.
        settings: Optional store with save_offset(); written on every change.
        is_measuring: Callable reporting whether a measurement is running.
            Offset changes are refused while it returns True.
    """

    def __init__(
        self,
        offset: float = 0.0,
        settings=None,
        is_measuring: Optional[Callable[[], bool]] = None,
    ):
        self._offset = float(offset)
        self._settings = settings
        self._is_measuring = is_measuring or (lambda: False)

    @classmethod
    def restore(cls, settings, is_measuring: Optional[Callable[[], bool]] = None):
        """Build a calibrator from the offset persisted in settings."""
        saved = settings.load_offset() if settings is not None else None
        if saved is not None:
            logger.info("Calibration restored: %.1f°", saved)
        return cls(saved or 0.0, settings=settings, is_measuring=is_measuring)

    @property
    def offset(self) -> float:
        return self._offset

    def bind(self, is_measuring: Callable[[], bool]) -> None:
        """Attach the measuring-state query of the owning session."""
        self._is_measuring = is_measuring

    def set_offset(self, value: float) -> float:
        """Store a new offset.

        Raises:
            InvalidOperation: a measurement is running.
            InvalidInput: value is not a finite number.
            PersistenceError: the settings store could not be written; the
                previous offset stays in effect.
        """
        if self._is_measuring():
            raise InvalidOperation("Stop the measurement before calibrating")

        offset = as_float(value)
        if not math.isfinite(offset):
            raise InvalidInput(f"Calibration offset must be a number, got {value!r}")

        if self._settings is not None:
            try:
                self._settings.save_offset(offset)
            except OSError as exc:
                logger.error("Saving calibration %.1f° failed: %s", offset, exc)
                raise PersistenceError(f"Settings not written: {exc}") from exc

        self._offset = offset
        logger.info("Calibration offset set to %.1f°", offset)
        return offset

    def apply(self, raw_angle) -> float:
        """Return abs(abs(raw_angle) - offset). NaN for unusable input."""
        return abs(abs(as_float(raw_angle)) - self._offset)

    def __repr__(self) -> str:
        return f"<Calibrator offset={self._offset:.1f}>"
