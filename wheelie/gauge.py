"""Gauge fill curves.

Pure display helpers: map a calibrated angle to a 0-100 fill percentage.
They never influence detection.
"""

import math

from wheelie.errors import ConfigError
from wheelie.registry import GAUGE_REGISTRY, register_gauge


@register_gauge("linear")
def linear_fill(angle: float, config) -> float:
    """One percent per degree, full at 100°."""
    if math.isnan(angle):
        return 0.0
    return max(0.0, min(angle, 100.0))


@register_gauge("curved")
def curved_fill(angle: float, config) -> float:
    """Square-root curve reaching 100% at the danger threshold.

    Small angles move the bar quickly so that lifting the front wheel is
    visible straight away, while the last stretch towards the danger
    threshold fills slowly.
    """
    if math.isnan(angle) or angle <= 0:
        return 0.0
    limit = config.danger_threshold or 1.0
    return min(100.0, math.sqrt(angle / limit) * 100.0)


def get_gauge(name: str):
    try:
        return GAUGE_REGISTRY[name]
    except KeyError:
        raise ConfigError(
            f"Unknown gauge '{name}' (available: {', '.join(sorted(GAUGE_REGISTRY))})"
        ) from None
