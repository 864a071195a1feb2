"""Sample source implementations for Wheelie Meter.

Importing this package registers all built-in source types.
"""

from sources.replay_source import ReplaySource, read_samples
from sources.tilt_source import TiltSource

__all__ = ["ReplaySource", "TiltSource", "read_samples"]
