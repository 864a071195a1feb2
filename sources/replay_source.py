"""Replay a recorded ride from CSV.

Recordings hold one sample per row, `timestamp,beta` (seconds, degrees).
A header row is optional. Rows whose timestamp cannot be parsed are
skipped; an unparsable angle is kept as-is so the detector treats it as
an invalid (below threshold) sample, as it would live.

Used by the command-line analyser (main.py) and as a live source:

    sources:
      - id: "ride-42"
        type: "replay"
        path: "rides/ride-42.csv"
        speed: 1.0
"""

import csv
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from wheelie.data_source import DataSource
from wheelie.registry import register_source

logger = logging.getLogger(__name__)

Sample = Tuple[float, Any]  # (timestamp, raw beta)


def read_samples(path) -> List[Sample]:
    """Load (timestamp, beta) pairs from a CSV recording, in file order."""
    samples: List[Sample] = []
    skipped = 0
    with open(Path(path), newline="", encoding="utf-8") as f:
        for lineno, row in enumerate(csv.reader(f), start=1):
            if not row or row[0].strip().startswith("#"):
                continue
            if len(row) < 2:
                skipped += 1
                continue
            try:
                ts = float(row[0])
            except ValueError:
                if lineno > 1:
                    skipped += 1
                continue  # header
            samples.append((ts, row[1].strip()))

    if skipped:
        logger.warning("%s: skipped %d malformed row(s)", path, skipped)
    logger.info("Loaded %d samples from %s", len(samples), path)
    return samples


@register_source("replay")
class ReplaySource(DataSource):
    """Publishes a recording at its original pace (scaled by `speed`).

    Timestamps are shifted so the first sample is stamped with the time
    the replay started.
    """

    def __init__(self, source_id: str, bus, config: Dict, samples: Optional[List[Sample]] = None):
        super().__init__(source_id, bus, config)
        self.speed = float(config.get("speed", 1.0)) or 1.0
        self.loop = bool(config.get("loop", False))
        self._samples = samples if samples is not None else read_samples(config["path"])
        self._index = 0
        self._base: Optional[float] = None

    def fetch(self) -> Optional[Dict[str, Any]]:
        if self._index >= len(self._samples):
            if not self.loop or not self._samples:
                raise StopIteration
            self._index = 0
            self._base = None

        ts, beta = self._samples[self._index]
        self._index += 1
        if self._base is None:
            self._base = time.time() - ts / self.speed
        return {
            "beta": beta,
            "timestamp": self._base + ts / self.speed,
            "_source": self.source_id,
        }

    def next_delay(self) -> float:
        if 0 < self._index < len(self._samples):
            gap = self._samples[self._index][0] - self._samples[self._index - 1][0]
            return max(0.0, gap / self.speed)
        return self.interval
