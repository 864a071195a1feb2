"""Thread-safe event bus for Wheelie Meter.

Sample sources and the measurement session publish via publish() from
any thread. Browsers consume via the SSE generator; in-process
subscribers are called directly from the publisher thread.

Topics:
    tilt.raw  -- raw samples from server-side sources {"beta", "timestamp"}
    sample    -- processed sample snapshot (angle, class, gauge, elapsed)
    record    -- finished EventRecord as a dict
    session   -- session lifecycle changes (start/stop/reset/save/calibrate)
"""

import logging
import threading
from queue import Empty, Full, Queue
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventBus:
    """Publish/subscribe hub with a latest-value cache and SSE fan-out."""

    def __init__(self, client_queue_size: int = 100):
        self._latest: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._sse_clients: List[Queue] = []
        self._subscribers: Dict[str, List[Callable]] = {}
        self._client_queue_size = client_queue_size

    def publish(self, topic: str, payload: Any):
        """Push data from any thread. Thread-safe."""
        with self._lock:
            self._latest[topic] = payload
            clients = list(self._sse_clients)
            callbacks = list(self._subscribers.get(topic, []))

        # Slow SSE clients are dropped rather than blocking the publisher
        dead = []
        for q in clients:
            try:
                q.put_nowait((topic, payload))
            except Full:
                dead.append(q)
        if dead:
            with self._lock:
                for q in dead:
                    if q in self._sse_clients:
                        self._sse_clients.remove(q)
            logger.warning("Dropped %d stalled SSE client(s)", len(dead))

        for cb in callbacks:
            try:
                cb(payload)
            except Exception as exc:
                logger.error("EventBus callback error [%s]: %s", topic, exc)

    def subscribe(self, topic: str, callback: Callable):
        """Register a callback for a topic."""
        with self._lock:
            self._subscribers.setdefault(topic, []).append(callback)

    def unsubscribe(self, topic: str, callback: Callable):
        """Remove a callback."""
        with self._lock:
            if topic in self._subscribers:
                self._subscribers[topic] = [
                    cb for cb in self._subscribers[topic] if cb is not callback
                ]

    def get_latest(self, topic: Optional[str] = None) -> Any:
        """Get latest payload for a topic, or all topics."""
        with self._lock:
            if topic:
                return self._latest.get(topic)
            return dict(self._latest)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._sse_clients)

    def sse_stream(self, keepalive: float = 30.0):
        """Generator for SSE clients. Yields (topic, payload) tuples.

        Yields ("keepalive", None) when nothing was published for
        `keepalive` seconds.
        """
        q = Queue(maxsize=self._client_queue_size)
        with self._lock:
            self._sse_clients.append(q)
        try:
            while True:
                try:
                    yield q.get(timeout=keepalive)
                except Empty:
                    yield "keepalive", None
        finally:
            with self._lock:
                if q in self._sse_clients:
                    self._sse_clients.remove(q)
