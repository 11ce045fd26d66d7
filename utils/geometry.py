"""Room-space geometry utilities for bounds checks and position clamping."""

import numpy as np
from typing import List, Sequence, Tuple

# Clamp margins (meters) kept between a placement and the room's walls/ceiling
HARD_MARGIN = 0.25
SOFT_MARGIN = 0.15


def room_bounds(width: float, height: float, depth: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Axis-aligned bounds of a room centered on the origin, floor at y=0.

    Returns:
        Tuple of (min_corner, max_corner) as [x, y, z] arrays
    """
    half_x = max(0.0, width / 2)
    half_z = max(0.0, depth / 2)
    ceil_y = max(0.0, height)
    return np.array([-half_x, 0.0, -half_z]), np.array([half_x, ceil_y, half_z])


def clamp_bounds(
    width: float, height: float, depth: float, margin: float
) -> Tuple[np.ndarray, np.ndarray]:
    """Room bounds shrunk by a margin on every wall and the ceiling (not the floor)."""
    low, high = room_bounds(width, height, depth)
    low = low + np.array([margin, 0.0, margin])
    high = np.array([high[0] - margin, max(0.0, high[1] - margin), high[2] - margin])
    return low, high


def in_bounds(position: Sequence[float], low: np.ndarray, high: np.ndarray) -> bool:
    """Check a position lies inside (or on) the given bounds."""
    pos = np.asarray(position, dtype=float)
    return bool(np.all(pos >= low) and np.all(pos <= high))


def clamp(position: Sequence[float], low: np.ndarray, high: np.ndarray) -> np.ndarray:
    """Clamp each axis into [low, high]. An inverted interval collapses onto its upper end."""
    pos = np.asarray(position, dtype=float)
    return np.minimum(high, np.maximum(low, pos))


def snap(position: Sequence[float], step: float) -> np.ndarray:
    """Snap each axis to the nearest multiple of step (halves round up). step <= 0 is a no-op."""
    pos = np.asarray(position, dtype=float)
    if step <= 0:
        return pos
    return np.floor(pos / step + 0.5) * step


def to_vec3(values: np.ndarray) -> List[float]:
    """Convert to a plain 3-list of Python floats, folding -0.0 into 0.0."""
    return [float(v) + 0.0 for v in values]


def format_vec3(position: Sequence[float]) -> str:
    """Format a position for messages: [6, 0, 0.5]."""
    return "[" + ", ".join(format_number(v) for v in position) + "]"


def format_number(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)
