"""Wheelie event detector.

Two-state machine fed with calibrated tilt angles in time order:

    IDLE      -- angle >= wheelie_threshold starts an event
    IN_EVENT  -- angles >= threshold extend it (max / sum / count updated),
                 the first angle below the threshold ends it and produces
                 exactly one EventRecord

Timing convention: the event starts at the timestamp of the first
qualifying sample and ends at the timestamp of the first sub-threshold
sample, so duration = end - start.

Unusable samples (non-numeric, NaN, infinite, beyond max_angle) count as
below threshold. They close an open event instead of raising, so a noisy
sensor stream can never stop the measurement loop.

An optional re-arm delay ignores new threshold crossings for a short
window after an event ends, which suppresses re-triggering from sensor
bounce right at the threshold.
"""

import logging
import math
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from wheelie.calibrator import as_float
from wheelie.errors import ConfigError, InvalidInput

logger = logging.getLogger(__name__)


class Phase(Enum):
    IDLE = "idle"
    IN_EVENT = "in_event"


class Classification(Enum):
    """Display class of a single angle."""
    IDLE = "idle"
    ACTIVE = "active"
    DANGER = "danger"


@dataclass
class DetectorConfig:
    """Detection options.

    danger_threshold only affects classify(); detection uses
    wheelie_threshold alone.
    """
    wheelie_threshold: float = 20.0
    danger_threshold: float = 45.0
    re_arm_delay: float = 0.0   # seconds
    max_angle: float = 360.0    # larger calibrated angles are sensor garbage

    # Option names used by the browser client
    ALIASES = {
        "wheelieThreshold": "wheelie_threshold",
        "dangerThreshold": "danger_threshold",
        "reArmDelay": "re_arm_delay",
        "maxAngle": "max_angle",
    }

    def __post_init__(self):
        for f in fields(self):
            value = as_float(getattr(self, f.name))
            if not math.isfinite(value) or value < 0:
                raise ConfigError(f"{f.name} must be a non-negative number, got {getattr(self, f.name)!r}")
            setattr(self, f.name, value)
        if self.danger_threshold < self.wheelie_threshold:
            raise ConfigError(
                f"danger_threshold ({self.danger_threshold}) is below "
                f"wheelie_threshold ({self.wheelie_threshold})"
            )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DetectorConfig":
        """Build from a mapping; unknown keys are ignored with a warning."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in (data or {}).items():
            name = cls.ALIASES.get(key, key)
            if name in known:
                kwargs[name] = value
            else:
                logger.warning("Ignoring unknown detector option: %s", key)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class DetectorState:
    """Live state of the detector. Owned by one EventDetector."""
    phase: Phase = Phase.IDLE
    start_time: Optional[float] = None
    max_angle: float = 0.0
    angle_sum: float = 0.0
    count: int = 0
    last_end: Optional[float] = None  # end of the previous event, for re-arm

    def reset(self) -> None:
        self.phase = Phase.IDLE
        self.start_time = None
        self.max_angle = 0.0
        self.angle_sum = 0.0
        self.count = 0
        self.last_end = None


@dataclass(frozen=True)
class EventRecord:
    """Summary of one finished wheelie."""
    duration: float     # seconds
    max_angle: float    # degrees
    avg_angle: float    # degrees, mean of all in-event samples
    timestamp: str      # local wall-clock time the event ended, HH:MM:SS
    session_id: str
    ended_at: float     # timestamp of the closing sample

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def summary(self) -> str:
        return f"{self.timestamp}: {self.duration:.2f}s ({self.max_angle:.1f}°)"


def _timestamp(value) -> float:
    ts = as_float(value)
    if not math.isfinite(ts):
        raise InvalidInput(f"Sample timestamp must be a number, got {value!r}")
    return ts


class EventDetector:
    """Threshold-crossing wheelie detector.

    Args:
        config: Detection thresholds and re-arm delay.
        session_id: Identifier stamped on every emitted record.
        on_record: Optional callback invoked with each EventRecord.
    """

    def __init__(
        self,
        config: Optional[DetectorConfig] = None,
        session_id: str = "",
        on_record: Optional[Callable[[EventRecord], None]] = None,
    ):
        self.config = config or DetectorConfig()
        self.session_id = session_id
        self.on_record = on_record
        self.invalid_samples = 0
        self._state = DetectorState()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> DetectorState:
        """Copy of the current state."""
        return replace(self._state)

    @property
    def in_event(self) -> bool:
        return self._state.phase is Phase.IN_EVENT

    def elapsed(self, now: float) -> float:
        """Running duration of the active event, 0 when idle."""
        if not self.in_event:
            return 0.0
        return max(0.0, now - self._state.start_time)

    def classify(self, angle) -> Classification:
        value = as_float(angle)
        if math.isnan(value):
            return Classification.IDLE
        if value >= self.config.danger_threshold:
            return Classification.DANGER
        if value >= self.config.wheelie_threshold:
            return Classification.ACTIVE
        return Classification.IDLE

    def is_armed(self, timestamp: float) -> bool:
        """False while inside the re-arm window after the last event.

        `timestamp` is in seconds, on the same clock as the samples.
        """
        timestamp = _timestamp(timestamp)
        last_end = self._state.last_end
        if last_end is None or self.config.re_arm_delay <= 0:
            return True
        return timestamp - last_end >= self.config.re_arm_delay

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def update(self, angle, timestamp: float) -> Optional[EventRecord]:
        """Feed one calibrated sample. Returns a record when an event ends.

        Raises:
            InvalidInput: timestamp is not a finite number of seconds.
        """
        timestamp = _timestamp(timestamp)
        value = self._validate(angle)
        above = value is not None and value >= self.config.wheelie_threshold
        state = self._state

        if state.phase is Phase.IN_EVENT:
            if above:
                state.max_angle = max(state.max_angle, value)
                state.angle_sum += value
                state.count += 1
                return None
            return self._finish(timestamp)

        if above and self.is_armed(timestamp):
            state.phase = Phase.IN_EVENT
            state.start_time = timestamp
            state.max_angle = value
            state.angle_sum = value
            state.count = 1
            logger.info("Wheelie started at %.1f° (t=%.3f)", value, timestamp)
        return None

    def reset(self) -> None:
        """Return to IDLE, discarding any event in progress without a record."""
        if self.in_event:
            logger.info(
                "Discarding wheelie in progress (%d samples)", self._state.count
            )
        self._state.reset()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _validate(self, angle) -> Optional[float]:
        value = as_float(angle)
        if math.isfinite(value) and abs(value) <= self.config.max_angle:
            return value
        self.invalid_samples += 1
        logger.debug("Invalid sample %r treated as below threshold", angle)
        return None

    def _finish(self, timestamp: float) -> EventRecord:
        state = self._state
        record = EventRecord(
            duration=max(0.0, timestamp - state.start_time),
            max_angle=state.max_angle,
            avg_angle=state.angle_sum / state.count,
            timestamp=datetime.now().strftime("%H:%M:%S"),
            session_id=self.session_id,
            ended_at=timestamp,
        )
        state.reset()
        state.last_end = timestamp
        logger.info(
            "Wheelie ended: %.2fs, max %.1f°, avg %.1f°",
            record.duration, record.max_angle, record.avg_angle,
        )
        if self.on_record is not None:
            try:
                self.on_record(record)
            except Exception as exc:
                logger.error("on_record callback error: %s", exc)
        return record
