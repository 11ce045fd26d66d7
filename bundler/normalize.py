"""
Normalization Pipeline Stage

Clamps and snaps device and decor positions to the room bounds.
Purely geometric: no colors, backgrounds or other visual defaults are injected.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence
from rich.console import Console

from utils.geometry import HARD_MARGIN, SOFT_MARGIN, clamp, clamp_bounds, snap, to_vec3
from utils.validation import Dimensions, RoomDescription, recheck

console = Console()


class ClampMode(str, Enum):
    NONE = "none"
    SOFT = "soft"
    HARD = "hard"


MARGINS: Dict[ClampMode, float] = {
    ClampMode.HARD: HARD_MARGIN,
    ClampMode.SOFT: SOFT_MARGIN,
}


@dataclass(frozen=True)
class ClampPolicy:
    """Geometric normalization rules: optional clamp to bounds, optional grid snap."""
    clamp_mode: ClampMode = ClampMode.NONE
    grid_step: float = 0.0

    def __post_init__(self):
        if self.grid_step < 0:
            raise ValueError(f"grid_step must be >= 0, got {self.grid_step}")
        object.__setattr__(self, "clamp_mode", ClampMode(self.clamp_mode))

    @property
    def is_identity(self) -> bool:
        return self.clamp_mode is ClampMode.NONE and self.grid_step == 0

    def describe(self) -> str:
        text = self.clamp_mode.value
        if self.grid_step > 0:
            text += f", grid={self.grid_step:g}"
        return text


def normalize_position(
    position: Sequence[float],
    dimensions: Dimensions,
    policy: ClampPolicy,
) -> List[float]:
    """
    Apply the policy to one position.

    Clamping (soft/hard) keeps X/Z a margin inside the walls and Y in [0, height - margin];
    snapping to grid_step applies afterwards regardless of clamp mode.
    """
    pos = position
    if policy.clamp_mode is not ClampMode.NONE:
        low, high = clamp_bounds(
            dimensions.width,
            dimensions.height,
            dimensions.depth,
            MARGINS[policy.clamp_mode],
        )
        pos = clamp(pos, low, high)
    return to_vec3(snap(pos, policy.grid_step))


def normalize_room(room: RoomDescription, policy: ClampPolicy) -> RoomDescription:
    """
    Return a new room with every device/decor position normalized under the policy.

    The input room is not modified. The result is re-validated against the contract.
    """
    document = room.to_document()
    if policy.is_identity:
        return recheck(document, stage="normalize")

    dimensions = room.structure.dimensions
    moved = 0

    devices = []
    for device in document.get("devices", []):
        if device.get("position") is not None:
            position = normalize_position(device["position"], dimensions, policy)
            moved += int(position != list(device["position"]))
            device = {**device, "position": position}
        devices.append(device)
    if "devices" in document:
        document["devices"] = devices

    structure = document["structure"]
    if "decor" in structure:
        decor = []
        for element in structure["decor"]:
            if element.get("position") is not None:
                position = normalize_position(element["position"], dimensions, policy)
                moved += int(position != list(element["position"]))
                element = {**element, "position": position}
            decor.append(element)
        document["structure"] = {**structure, "decor": decor}

    console.print(f"[green]Normalized positions ({policy.describe()}): {moved} moved[/green]")
    return recheck(document, stage="normalize")
