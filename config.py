"""Wheelie Meter - Configuration

Defaults for every option, overridable from a YAML file (wheelie.yaml)
and, for the detector, from the command line.

YAML layout:

    detector:
      wheelie_threshold: 20     # degrees; an event lasts while angle >= this
      danger_threshold: 45      # degrees; display warning only
      re_arm_delay: 0           # seconds of cooldown after an event ends
    gauge: linear               # or "curved"
    settings_path: settings.yaml
    results:
      url: https://<ref>.supabase.co   # SUPABASE_URL overrides
      key: ...                          # SUPABASE_KEY overrides
      table: wheelie_results
    sources:                    # optional server-side sample sources
      - id: imu
        type: tilt
        sensor: icm20948
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from wheelie.errors import ConfigError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------
DETECTOR = {
    "wheelie_threshold": 20.0,
    "danger_threshold": 45.0,
    "re_arm_delay": 0.0,
    "max_angle": 360.0,
}

GAUGE = "linear"

# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------
SETTINGS_PATH = "settings.yaml"

RESULTS = {
    "url": "",
    "key": "",
    "table": "wheelie_results",
    "timeout": 10.0,
}

# ---------------------------------------------------------------------------
# Web server
# ---------------------------------------------------------------------------
WEB = {
    "host": "0.0.0.0",
    "port": 5000,
}

# Server-side sample sources; phones post samples over HTTP instead
SOURCES = []

DEFAULTS = {
    "detector": DETECTOR,
    "gauge": GAUGE,
    "settings_path": SETTINGS_PATH,
    "results": RESULTS,
    "web": WEB,
    "sources": SOURCES,
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge `override` into a copy of `base`."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Return the defaults merged with the YAML file at `path`.

    A missing file is not an error (defaults are used); a file that is
    not valid YAML or not a mapping raises ConfigError.
    """
    if not path:
        return copy.deepcopy(DEFAULTS)

    try:
        with open(Path(path), encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file not found: %s (using defaults)", path)
        return copy.deepcopy(DEFAULTS)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return _merge(DEFAULTS, data)
