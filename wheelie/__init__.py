"""Measurement core for Wheelie Meter.

Building blocks:
    Calibrator         -- static offset applied to every raw tilt sample
    EventDetector      -- threshold-crossing state machine producing EventRecords
    MeasurementSession -- owns calibrator + detector, history and save flow
    EventBus           -- thread-safe publish/subscribe with SSE fan-out
    DataSource         -- background sample producers (sensors, recordings)
    Registry           -- sample-source types and gauge curves by name
"""

__version__ = "1.2.0"

from wheelie.calibrator import Calibrator
from wheelie.detector import (
    Classification,
    DetectorConfig,
    DetectorState,
    EventDetector,
    EventRecord,
    Phase,
)
from wheelie.errors import (
    ConfigError,
    InvalidInput,
    InvalidOperation,
    PersistenceError,
    WheelieError,
)
from wheelie.event_bus import EventBus
from wheelie.data_source import DataSource
from wheelie.registry import GAUGE_REGISTRY, SOURCE_REGISTRY, register_gauge, register_source
from wheelie.session import MeasurementSession, SessionHistory, validate_nickname

__all__ = [
    "Calibrator",
    "Classification",
    "DetectorConfig",
    "DetectorState",
    "EventDetector",
    "EventRecord",
    "Phase",
    "ConfigError",
    "InvalidInput",
    "InvalidOperation",
    "PersistenceError",
    "WheelieError",
    "EventBus",
    "DataSource",
    "GAUGE_REGISTRY",
    "SOURCE_REGISTRY",
    "register_gauge",
    "register_source",
    "MeasurementSession",
    "SessionHistory",
    "validate_nickname",
]
