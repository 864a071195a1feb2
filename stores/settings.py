"""Local settings persisted between runs.

A small YAML file holding the calibration offset and the UI theme:

    calibration: 3.5
    theme: dark
"""

import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from wheelie.errors import InvalidInput, PersistenceError

logger = logging.getLogger(__name__)

THEMES = ("dark", "light")


class SettingsStore:
    """YAML-backed key/value settings. Thread-safe."""

    def __init__(self, path="settings.yaml"):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Any]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Settings file %s unreadable, ignoring: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Settings file %s is not a mapping, ignoring", self.path)
            return {}
        return data

    def _update(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp, "w", encoding="utf-8") as f:
                    yaml.safe_dump(data, f, default_flow_style=False)
                os.replace(tmp, self.path)
            except OSError as exc:
                logger.error("Writing settings %s failed: %s", self.path, exc)
                raise PersistenceError(f"Could not write settings: {exc}") from exc

    def load_offset(self) -> Optional[float]:
        """Saved calibration offset in degrees, or None."""
        with self._lock:
            value = self._load().get("calibration")
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid saved calibration: %r", value)
            return None

    def save_offset(self, value: float) -> None:
        self._update("calibration", float(value))

    def load_theme(self) -> str:
        with self._lock:
            theme = self._load().get("theme")
        return theme if theme in THEMES else "dark"

    def save_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise InvalidInput(f"theme must be one of {THEMES}, got {theme!r}")
        self._update("theme", theme)
