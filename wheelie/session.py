"""Measurement session -- the layer that owns the calibrator and detector.

Raw samples go in through on_sample(); finished wheelies are appended to
the session history (most recent first), published on the event bus and,
on save(), pushed to the results sink. Display state (status line, gauge
fill, live duration) is derived here so the web layer only renders it.

Sink protocol:
    sink.append(records, nickname=...) -> int   # raises PersistenceError
"""

import logging
import math
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from wheelie.calibrator import Calibrator, as_float
from wheelie.data_source import RAW_TOPIC
from wheelie.detector import Classification, DetectorConfig, EventDetector, EventRecord
from wheelie.errors import InvalidInput, InvalidOperation, PersistenceError
from wheelie.gauge import get_gauge

logger = logging.getLogger(__name__)

NICKNAME_MIN = 3
NICKNAME_MAX = 20

STATUS_READY = "Ready to measure"
STATUS_WAITING = "Waiting for wheelie..."
STATUS_ACTIVE = "WHEELIE!"
STATUS_DANGER = "WARNING! ANGLE TOO HIGH!"


def new_session_id() -> str:
    return str(uuid.uuid4())


def validate_nickname(name) -> bool:
    """Nicknames are 3-20 characters after trimming whitespace."""
    if not isinstance(name, str):
        return False
    return NICKNAME_MIN <= len(name.strip()) <= NICKNAME_MAX


class SessionHistory:
    """Finished records of the current session, most recent first.

    Also tracks which records have not reached the results table yet.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._records: List[EventRecord] = []
        self._unsaved: List[EventRecord] = []  # oldest first

    def add(self, record: EventRecord) -> None:
        with self._lock:
            self._records.insert(0, record)
            self._unsaved.append(record)

    def records(self) -> List[EventRecord]:
        with self._lock:
            return list(self._records)

    def unsaved(self) -> List[EventRecord]:
        """Records not yet confirmed written, in the order they happened."""
        with self._lock:
            return list(self._unsaved)

    def has_unsaved(self) -> bool:
        with self._lock:
            return bool(self._unsaved)

    def mark_saved(self, saved: List[EventRecord]) -> None:
        """Drop records confirmed written. Matches by identity, not value."""
        saved_ids = {id(r) for r in saved}
        with self._lock:
            self._unsaved = [r for r in self._unsaved if id(r) not in saved_ids]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._unsaved.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class MeasurementSession:
    """Single orchestrator for one rider's measurement session.

    Args:
        config: Detector configuration.
        calibrator: Offset holder; a fresh zero-offset one when omitted.
        sink: Results sink used by save().
        bus: EventBus for live updates (optional).
        gauge: Name of the gauge-fill curve (see wheelie.gauge).
        clock: Time source for samples arriving without a timestamp.
    """

    def __init__(
        self,
        config: Optional[DetectorConfig] = None,
        calibrator: Optional[Calibrator] = None,
        sink=None,
        bus=None,
        gauge: str = "linear",
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or DetectorConfig()
        self.calibrator = calibrator or Calibrator()
        self.calibrator.bind(lambda: self.is_measuring)
        self.sink = sink
        self.bus = bus
        self.gauge_name = gauge
        self._gauge = get_gauge(gauge)
        self._clock = clock
        self._lock = threading.RLock()
        self._save_lock = threading.Lock()

        self.session_id = new_session_id()
        self.detector = EventDetector(self.config, self.session_id)
        self.history = SessionHistory()

        self.nickname: Optional[str] = None
        self.is_measuring = False
        self.current_angle = 0.0
        self.last_raw: Optional[float] = None
        self.last_record: Optional[EventRecord] = None
        self._last_ts: Optional[float] = None
        self._status = STATUS_READY

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, nickname: Optional[str] = None) -> None:
        """Begin measuring. A nickname is required once per process."""
        with self._lock:
            if self.is_measuring:
                return
            if nickname is not None:
                if not validate_nickname(nickname):
                    raise InvalidInput(
                        f"Nickname must be {NICKNAME_MIN}-{NICKNAME_MAX} characters"
                    )
                self.nickname = nickname.strip()
            if self.nickname is None:
                raise InvalidInput("A nickname is required before measuring")
            self.is_measuring = True
            self._status = STATUS_WAITING
            logger.info("Session %s: measuring started (%s)", self.session_id[:8], self.nickname)
        self._publish_session("start")

    def stop(self) -> None:
        """Stop measuring. An unfinished wheelie is discarded."""
        with self._lock:
            if not self.is_measuring:
                return
            self.is_measuring = False
            self.detector.reset()
            self._status = STATUS_READY
            logger.info("Session %s: measuring stopped", self.session_id[:8])
        self._publish_session("stop")

    def reset(self) -> None:
        """Start over: stop, drop history (saved or not) and take a new session id.

        A wheelie in progress is discarded silently; no record is emitted.
        """
        with self._lock:
            self.is_measuring = False
            self.detector.reset()
            self.detector.invalid_samples = 0
            self.history.clear()
            self.session_id = new_session_id()
            self.detector.session_id = self.session_id
            self.current_angle = 0.0
            self.last_record = None
            self._last_ts = None
            self._status = STATUS_READY
            logger.info("Session reset, new id %s", self.session_id[:8])
        self._publish_session("reset")

    # ------------------------------------------------------------------
    # Samples
    # ------------------------------------------------------------------

    def on_sample(self, raw_angle, timestamp: Optional[float] = None) -> Optional[EventRecord]:
        """Process one raw sensor sample. Returns a record when a wheelie ends."""
        ts = as_float(timestamp) if timestamp is not None else math.nan
        if not math.isfinite(ts):
            ts = self._clock()

        with self._lock:
            self.last_raw = as_float(raw_angle)
            if not self.is_measuring:
                return None

            angle = self.calibrator.apply(raw_angle)
            self.current_angle = angle
            self._last_ts = ts
            record = self.detector.update(angle, ts)
            if record is not None:
                self.history.add(record)
                self.last_record = record
            self._update_status(self.detector.classify(angle), record)
            snapshot = self.snapshot()

        if self.bus is not None:
            self.bus.publish("sample", snapshot)
            if record is not None:
                self.bus.publish("record", record.to_dict())
        return record

    def handle_raw(self, payload: Dict[str, Any]) -> None:
        """EventBus callback for samples published by server-side sources."""
        if not isinstance(payload, dict):
            return
        self.on_sample(payload.get("beta"), payload.get("timestamp"))

    def attach(self, bus) -> None:
        """Use `bus` for live updates and consume its raw sample topic."""
        self.bus = bus
        bus.subscribe(RAW_TOPIC, self.handle_raw)

    # ------------------------------------------------------------------
    # Calibration and persistence
    # ------------------------------------------------------------------

    def calibrate(self, offset: Optional[float] = None) -> float:
        """Set the calibration offset.

        Without an explicit offset the current position becomes zero, i.e.
        the magnitude of the most recent raw sample is used.

        Raises:
            InvalidOperation: measuring is in progress.
            InvalidInput: no usable reading / offset.
            PersistenceError: the offset could not be stored; status text
                reports it and the previous offset is kept.
        """
        with self._lock:
            if offset is None:
                offset = abs(self.last_raw) if self.last_raw is not None else math.nan
            try:
                value = self.calibrator.set_offset(offset)
            except PersistenceError as exc:
                self._status = f"Calibration failed: {exc}"
                error = exc
            else:
                self._status = f"Calibrated to current position ({value:.1f}°)"
                error = None
        if error is not None:
            self._publish_session("calibrate_failed")
            raise error
        self._publish_session("calibrate")
        return value

    def has_unsaved(self) -> bool:
        return self.history.has_unsaved()

    def save(self) -> int:
        """Write unsaved records to the sink. Returns the number written.

        Records stay unsaved when the write fails, so the user can retry.
        Only one save runs at a time; a concurrent call raises
        InvalidOperation instead of writing the same records twice.
        """
        if not self._save_lock.acquire(blocking=False):
            raise InvalidOperation("Save already in progress")
        try:
            return self._save_pending()
        finally:
            self._save_lock.release()

    def _save_pending(self) -> int:
        pending = self.history.unsaved()
        if not pending:
            raise InvalidOperation("No results to save")
        if self.sink is None:
            raise PersistenceError("No results store configured")

        try:
            count = self.sink.append(pending, nickname=self.nickname)
        except PersistenceError as exc:
            with self._lock:
                self._status = f"Save failed: {exc}"
            logger.error("Saving %d result(s) failed: %s", len(pending), exc)
            self._publish_session("save_failed")
            raise

        self.history.mark_saved(pending)
        with self._lock:
            self._status = f"Saved {count} results (session {self.session_id[:8]}...)"
        logger.info("Saved %d result(s) for session %s", count, self.session_id[:8])
        self._publish_session("save")
        return count

    # ------------------------------------------------------------------
    # Display state
    # ------------------------------------------------------------------

    def status_text(self) -> str:
        with self._lock:
            return self._status

    def snapshot(self) -> Dict[str, Any]:
        """Everything a display needs, JSON-serialisable."""
        with self._lock:
            angle = self.current_angle
            fill = self._gauge(angle, self.config)
            elapsed = self.detector.elapsed(self._last_ts) if self._last_ts is not None else 0.0
            return {
                "session_id": self.session_id,
                "nickname": self.nickname,
                "measuring": self.is_measuring,
                "in_event": self.detector.in_event,
                "angle": round(angle, 1) if math.isfinite(angle) else None,
                "classification": self.detector.classify(angle).value,
                "gauge": round(fill, 1),
                "elapsed": round(elapsed, 2),
                "offset": round(self.calibrator.offset, 1),
                "records": len(self.history),
                "unsaved": len(self.history.unsaved()),
                "invalid_samples": self.detector.invalid_samples,
                "status": self._status,
            }

    def _update_status(self, classification: Classification, record: Optional[EventRecord]) -> None:
        if classification is Classification.DANGER:
            self._status = STATUS_DANGER
        elif classification is Classification.ACTIVE:
            self._status = STATUS_ACTIVE
        elif record is not None:
            self._status = f"Wheelie: {record.duration:.2f}s ({record.max_angle:.1f}°)"
        elif self._status in (STATUS_ACTIVE, STATUS_DANGER):
            self._status = STATUS_WAITING

    def _publish_session(self, action: str) -> None:
        if self.bus is None:
            return
        payload = self.snapshot()
        payload["action"] = action
        self.bus.publish("session", payload)
