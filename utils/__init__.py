"""Utility functions for the Room Bundler."""

from .geometry import (
    room_bounds,
    clamp_bounds,
    in_bounds,
    clamp,
    snap,
)
from .validation import (
    RoomDescription,
    SchemaError,
    InvariantError,
    validate_room,
    parse_room,
    recheck,
    check_references,
)

__all__ = [
    "room_bounds",
    "clamp_bounds",
    "in_bounds",
    "clamp",
    "snap",
    "RoomDescription",
    "SchemaError",
    "InvariantError",
    "validate_room",
    "parse_room",
    "recheck",
    "check_references",
]
