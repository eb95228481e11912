"""Deterministic speed profile along a route."""

from __future__ import annotations

import math

RAMP_FRACTION = 0.05
START_SPEED_RATIO = 0.3
END_SPEED_DROP = 0.7
CRUISE_VARIATION = 0.3 * 0.2
CRUISE_WAVES = 8


def speed_at(progress: float, base_speed: float) -> float:
    """Speed for the current tick: ramp up, cruise with a gentle wave, ramp down."""

    progress = min(max(progress, 0.0), 1.0)
    if progress < RAMP_FRACTION:
        return base_speed * START_SPEED_RATIO + base_speed * (1 - START_SPEED_RATIO) * (progress / RAMP_FRACTION)
    if progress > 1 - RAMP_FRACTION:
        return base_speed * (1 - (progress - (1 - RAMP_FRACTION)) / RAMP_FRACTION * END_SPEED_DROP)
    return base_speed + base_speed * CRUISE_VARIATION * math.sin(progress * math.pi * CRUISE_WAVES)
