"""Sample-source and gauge-strategy registries.

Register types by name so that wheelie.yaml can pick them:

    @register_source("tilt")
    class TiltSource(DataSource):
        ...

    @register_gauge("linear")
    def linear_fill(angle, config):
        ...
"""

import logging

from wheelie.errors import ConfigError

logger = logging.getLogger(__name__)

SOURCE_REGISTRY = {}
GAUGE_REGISTRY = {}


def register_source(name):
    """Decorator to register a data source class by type name."""
    def decorator(cls):
        SOURCE_REGISTRY[name] = cls
        logger.debug("Registered source type: %s -> %s", name, cls.__name__)
        return cls
    return decorator


def register_gauge(name):
    """Decorator to register a gauge-fill function by name."""
    def decorator(func):
        GAUGE_REGISTRY[name] = func
        logger.debug("Registered gauge: %s -> %s", name, func.__name__)
        return func
    return decorator


def get_source_class(name):
    """Look up a source type, raising ConfigError for unknown names."""
    try:
        return SOURCE_REGISTRY[name]
    except KeyError:
        raise ConfigError(f"Unknown source type: {name}") from None
