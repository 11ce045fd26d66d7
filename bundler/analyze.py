"""
Warning Analysis Stage

Read-only pass producing advisory (non-fatal) diagnostics for a room.
"""

from typing import Any, List
from rich.console import Console
from rich.markup import escape

from utils.geometry import format_number, format_vec3, in_bounds, room_bounds
from utils.validation import RoomDescription

console = Console()

# Thinner firewall walls z-fight with the floor/wall planes behind them
MIN_WALL_THICKNESS = 0.02


def _as_number(value: Any):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def analyze_room(room: RoomDescription) -> List[str]:
    """
    Collect advisory warnings for a room.

    Checks:
    - environment.background is set (visual style must be explicit)
    - firewall_wall decor is not thinner than MIN_WALL_THICKNESS
    - device and decor positions lie inside the room bounds

    Returns:
        List of warning messages (empty if nothing to report)
    """
    warnings = []

    if not room.environment.background:
        warnings.append(
            "environment.background is missing (visual style should be explicit in source JSON)"
        )

    decor = room.structure.decor
    for element in decor:
        if element.type != "firewall_wall":
            continue
        thickness = _as_number((element.model_extra or {}).get("thickness"))
        if thickness is not None and 0 < thickness < MIN_WALL_THICKNESS:
            warnings.append(
                f"decor.firewall_wall thickness < {MIN_WALL_THICKNESS} may cause z-fighting "
                f"(value: {format_number(thickness)})"
            )

    dims = room.structure.dimensions
    low, high = room_bounds(dims.width, dims.height, dims.depth)

    for device in room.devices:
        if not in_bounds(device.position, low, high):
            warnings.append(
                f"device '{device.alias}' position out of room bounds: {format_vec3(device.position)}"
            )

    for element in decor:
        if element.position is not None and not in_bounds(element.position, low, high):
            warnings.append(
                f"decor '{element.id}' ({element.type}) position out of room bounds: "
                f"{format_vec3(element.position)}"
            )

    return warnings


def print_warnings(warnings: List[str]) -> None:
    if not warnings:
        return
    console.print(f"[yellow]Warnings ({len(warnings)}):[/yellow]")
    for warning in warnings:
        console.print(f"  [yellow]• {escape(warning)}[/yellow]")
