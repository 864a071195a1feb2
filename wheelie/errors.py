"""Exception types for Wheelie Meter.

Only two of these ever reach the measurement core:
    InvalidOperation  -- an action not allowed in the current mode
                         (e.g. calibrating while measuring)
    InvalidInput      -- a sample or argument that cannot be used

Collaborators (results table, settings file) raise PersistenceError or
ConfigError; the web layer turns all of them into JSON error responses.
"""


class WheelieError(Exception):
    """Base class for all Wheelie Meter errors."""


class InvalidOperation(WheelieError):
    """Action rejected because of the current session mode."""


class InvalidInput(WheelieError):
    """Value that cannot be interpreted (non-numeric angle, bad nickname)."""


class PersistenceError(WheelieError):
    """Remote results table rejected a request or could not be reached."""


class ConfigError(WheelieError, ValueError):
    """Invalid configuration value."""
