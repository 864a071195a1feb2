"""Background sample sources.

A DataSource produces raw tilt samples (from a sensor, a recording, ...)
in a background thread and publishes them to the EventBus. The session
subscribes to the topic; it does not care where samples come from.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from wheelie.event_bus import EventBus

logger = logging.getLogger(__name__)

RAW_TOPIC = "tilt.raw"


class DataSource(ABC):
    """Base class for all sample providers.

    Subclasses implement fetch() which runs in a background thread.
    Data is published to the EventBus under self.topic.
    """

    def __init__(self, source_id: str, bus: EventBus, config: Dict):
        self.source_id = source_id
        self.bus = bus
        self.config = config
        self.topic = config.get("topic", RAW_TOPIC)
        self.interval = float(config.get("interval", 0.05))  # seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        """Start the background polling thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, daemon=True, name=f"src-{self.source_id}"
        )
        self._thread.start()
        logger.info("DataSource %s started (%.3fs interval)", self.source_id, self.interval)

    def stop(self):
        """Signal the background thread to stop."""
        self._stop.set()

    def _run(self):
        """Poll loop -- fetch data and publish, then wait one interval."""
        while not self._stop.is_set():
            try:
                data = self.fetch()
                if data is not None:
                    self.bus.publish(self.topic, data)
            except StopIteration:
                logger.info("DataSource %s exhausted", self.source_id)
                break
            except Exception as exc:
                logger.error("DataSource %s fetch error: %s", self.source_id, exc)

            # Event.wait returns early when stop() is called
            self._stop.wait(self.next_delay())

    def next_delay(self) -> float:
        """Seconds to wait before the next fetch. Override for variable pacing."""
        return self.interval

    @abstractmethod
    def fetch(self) -> Optional[Dict[str, Any]]:
        """Fetch one sample. Runs in background thread.

        Returns:
            {"beta": degrees, "timestamp": seconds}, or None to skip.
            Raise StopIteration when the source is exhausted.
        """
        ...

    def close(self):
        """Release resources. Override if needed."""
        self.stop()
