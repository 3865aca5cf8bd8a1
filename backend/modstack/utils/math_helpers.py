"""Math helpers: progress ramps, angle steps. No engine imports."""

from __future__ import annotations

import math


def calculate_progress(index: int, total: int) -> float:
    """Position of ``index`` along a ramp of ``total`` items, in [0, 1]."""
    return index / (total - 1) if total > 1 else 0.0


def apply_scale_step(scale_step: float, progress: float) -> float:
    """Linear scale ramp from 1 to ``scale_step`` percent."""
    return 1 + ((scale_step / 100) - 1) * progress


def deg(value: float) -> float:
    """Degrees to radians."""
    return value * math.pi / 180


def angle_step(start_angle: float, end_angle: float, count: int) -> float:
    """Angular spacing in degrees for ``count`` items over [start, end].

    A full turn spreads items evenly without repeating the start angle;
    a partial arc puts items on both ends.
    """
    if count <= 1:
        return 0.0
    span = end_angle - start_angle
    if abs(span) >= 360:
        return span / count
    return span / (count - 1)


def percent_of(value: float, reference: float) -> float:
    return (value / 100) * reference
