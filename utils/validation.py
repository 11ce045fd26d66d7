"""Room contract models and validation utilities."""

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Tuple, Union
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    ValidationError,
    ValidationInfo,
    confloat,
    field_validator,
)

# Finite JSON numbers only; numeric strings and booleans are rejected
Number = confloat(strict=True, allow_inf_nan=False)
Vec3 = Tuple[Number, Number, Number]
Vec3OrNumber = Union[Number, Vec3]


# Pydantic models for the room contract (v1)


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, allow_inf_nan=False)

    @field_validator("*", mode="before")
    @classmethod
    def reject_null(cls, v, info: ValidationInfo):
        # Optional fields may be omitted, never set to null
        if v is None:
            raise ValueError(f"'{info.field_name}' must not be null (omit the field instead)")
        return v


class Device(StrictModel):
    alias: str = Field(..., min_length=1)
    category: Literal[
        "desktop", "laptop", "switch", "router", "firewall", "server", "earth", "misc"
    ]
    model: str = Field(..., min_length=1)
    position: Vec3
    rotation: Optional[Vec3] = None
    scale: Optional[Vec3OrNumber] = None
    quality: Optional[Literal["low", "medium", "high"]] = None
    metadata: Optional[Dict[str, Any]] = None


class DecorElement(StrictModel):
    """Decor primitive. Unknown keys pass through so new decor kinds need no schema change."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    position: Optional[Vec3] = None
    rotation: Optional[Vec3] = None
    scale: Optional[Vec3OrNumber] = None


class Link(StrictModel):
    from_: str = Field(..., min_length=1, alias="from")
    to: str = Field(..., min_length=1)


class FlowStyle(StrictModel):
    color: Optional[str] = None
    speed: Optional[Number] = None
    width: Optional[Number] = None
    shape: Optional[Literal["pill", "dot", "arrow"]] = None


class Flow(StrictModel):
    id: str = Field(..., min_length=1)
    path: List[str] = Field(..., min_length=2)
    style: FlowStyle = Field(default_factory=FlowStyle)

    @field_validator("path")
    @classmethod
    def validate_path_nodes(cls, v):
        if any(not node for node in v):
            raise ValueError("flow.path nodes must be non-empty aliases")
        return v


class ShowDecorAction(StrictModel):
    show_decor: List[str] = Field(..., min_length=1, alias="showDecor")


class HideDecorAction(StrictModel):
    hide_decor: List[str] = Field(..., min_length=1, alias="hideDecor")


class PlayFlowAction(StrictModel):
    play_flow: str = Field(..., min_length=1, alias="playFlow")


class PauseFlowAction(StrictModel):
    pause_flow: str = Field(..., min_length=1, alias="pauseFlow")


class HudAction(StrictModel):
    hud: str = Field(..., min_length=1)


class CameraTarget(StrictModel):
    target: str = Field(..., min_length=1)


class CameraToAction(StrictModel):
    camera_to: CameraTarget = Field(..., alias="cameraTo")


PhaseAction = Union[
    ShowDecorAction,
    HideDecorAction,
    PlayFlowAction,
    PauseFlowAction,
    HudAction,
    CameraToAction,
]


class Phase(StrictModel):
    id: str = Field(..., min_length=1)
    actions: List[PhaseAction] = Field(default_factory=list)


class PhaseEffect(StrictModel):
    phase: str = Field(..., min_length=1)


class FlowEffect(StrictModel):
    flow: str = Field(..., min_length=1)


class TerminalCommand(StrictModel):
    id: str = Field(..., min_length=1)
    match: str = Field(..., min_length=1)
    on_run: List[Union[PhaseEffect, FlowEffect]] = Field(..., min_length=1, alias="onRun")


class Terminal(StrictModel):
    commands: List[TerminalCommand] = Field(default_factory=list)


class Board(StrictModel):
    id: str = Field(..., min_length=1)
    anchor: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    md: str = Field(..., min_length=1)


class Content(StrictModel):
    boards: List[Board] = Field(default_factory=list)


class Meta(StrictModel):
    title: str = Field(..., min_length=1)
    summary: Optional[str] = None


class Theme(StrictModel):
    palette: Optional[str] = None
    lighting: Optional[str] = None


class Environment(StrictModel):
    background: Optional[str] = None
    shadows: Optional[StrictBool] = None


class Camera(StrictModel):
    position: Vec3
    target: Vec3
    fov: Optional[Number] = None


class Dimensions(StrictModel):
    width: Number
    height: Number
    depth: Number


class Structure(StrictModel):
    dimensions: Dimensions
    decor: List[DecorElement] = Field(default_factory=list)


class RoomDescription(StrictModel):
    """Pydantic model for the versioned room description document."""

    schema_version: Literal["1.0"] = Field(..., alias="schemaVersion")
    id: str = Field(..., min_length=1)
    meta: Meta
    theme: Theme = Field(default_factory=Theme)
    environment: Environment = Field(default_factory=Environment)
    camera: Camera
    structure: Structure
    devices: List[Device] = Field(default_factory=list)
    links: List[Link] = Field(default_factory=list)
    flows: List[Flow] = Field(default_factory=list)
    phases: List[Phase] = Field(default_factory=list)
    terminal: Terminal = Field(default_factory=Terminal)
    content: Content = Field(default_factory=Content)

    @field_validator("devices")
    @classmethod
    def validate_unique_aliases(cls, v):
        seen = set()
        for device in v:
            if device.alias in seen:
                raise ValueError(f"Duplicate device alias: {device.alias}")
            seen.add(device.alias)
        return v

    def to_document(self) -> Dict[str, Any]:
        """Plain JSON-compatible form. Only keys the author (or a transform) set are emitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


# Errors


@dataclass(frozen=True)
class SchemaIssue:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path} - {self.message}"


class SchemaError(Exception):
    """Document does not conform to the room contract."""

    def __init__(self, issues: List[SchemaIssue], source: Optional[str] = None):
        self.issues = issues
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(f"{len(issues)} schema issue(s){where}")


class InvariantError(Exception):
    """A pipeline transform produced a document that no longer conforms to the contract."""

    def __init__(self, stage: str, issues: List[SchemaIssue]):
        self.stage = stage
        self.issues = issues
        super().__init__(f"{stage} produced an invalid room description ({len(issues)} issue(s))")


def _issues_from(error: ValidationError) -> List[SchemaIssue]:
    issues = []
    for err in error.errors():
        path = ".".join(str(part) for part in err["loc"]) or "(root)"
        issues.append(SchemaIssue(path=path, message=err["msg"]))
    return issues


def validate_room(raw: Any) -> Tuple[bool, Optional[RoomDescription], List[SchemaIssue]]:
    """
    Validate an untyped document against the room contract.

    Returns:
        Tuple of (is_valid, parsed_room, list_of_issues)
    """
    if not isinstance(raw, dict):
        return False, None, [SchemaIssue("(root)", "Expected a JSON object")]

    try:
        room = RoomDescription.model_validate(raw)
    except ValidationError as e:
        return False, None, _issues_from(e)

    return True, room, []


def parse_room(raw: Any, source: Optional[str] = None) -> RoomDescription:
    """Validate and return the typed room, raising SchemaError on any issue."""
    is_valid, room, issues = validate_room(raw)
    if not is_valid:
        raise SchemaError(issues, source=source)
    return room


def recheck(document: Dict[str, Any], stage: str) -> RoomDescription:
    """Re-validate the output of a transform stage; failure is a pipeline bug, not bad input."""
    is_valid, room, issues = validate_room(document)
    if not is_valid:
        raise InvariantError(stage, issues)
    return room


def check_references(room: RoomDescription) -> Tuple[List[str], List[str]]:
    """
    Cross-check identifiers referenced between sections of a room.

    Checks:
    - Flow paths name existing device aliases
    - Phase actions name existing flows, devices and decor
    - Terminal effects name existing phases and flows

    Returns:
        Tuple of (errors, warnings)
    """
    errors = []
    warnings = []

    aliases = {d.alias for d in room.devices}
    flow_ids = {f.id for f in room.flows}
    phase_ids = {p.id for p in room.phases}
    decor_ids = {el.id for el in room.structure.decor}

    for flow in room.flows:
        for i, alias in enumerate(flow.path):
            if alias not in aliases:
                errors.append(f"Flow '{flow.id}': path[{i}] references missing device alias '{alias}'")

    for phase in room.phases:
        for action in phase.actions:
            if isinstance(action, PlayFlowAction) and action.play_flow not in flow_ids:
                errors.append(f"Phase '{phase.id}': playFlow references missing flow '{action.play_flow}'")
            elif isinstance(action, PauseFlowAction) and action.pause_flow not in flow_ids:
                errors.append(f"Phase '{phase.id}': pauseFlow references missing flow '{action.pause_flow}'")
            elif isinstance(action, CameraToAction) and action.camera_to.target not in aliases:
                errors.append(
                    f"Phase '{phase.id}': cameraTo.target references missing device alias "
                    f"'{action.camera_to.target}'"
                )
            elif isinstance(action, ShowDecorAction):
                for decor_id in action.show_decor:
                    if decor_id not in decor_ids:
                        warnings.append(f"Phase '{phase.id}': showDecor references unknown decor id '{decor_id}'")
            elif isinstance(action, HideDecorAction):
                for decor_id in action.hide_decor:
                    if decor_id not in decor_ids:
                        warnings.append(f"Phase '{phase.id}': hideDecor references unknown decor id '{decor_id}'")

    for command in room.terminal.commands:
        for effect in command.on_run:
            if isinstance(effect, PhaseEffect) and effect.phase not in phase_ids:
                errors.append(f"Terminal '{command.id}': references missing phase '{effect.phase}'")
            elif isinstance(effect, FlowEffect) and effect.flow not in flow_ids:
                errors.append(f"Terminal '{command.id}': references missing flow '{effect.flow}'")

    return errors, warnings
