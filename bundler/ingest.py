"""
Ingestion Pipeline Stage

Reads an author-written room description and validates it against the room contract.
"""

import re
from pathlib import Path
from typing import Any, Optional, Tuple
from rich.console import Console
from rich.markup import escape

from utils.io import read_json
from utils.validation import RoomDescription, SchemaError, parse_room

console = Console()

DEFAULT_SLUG = "test-room"
SLUG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_SUFFIX_RE = re.compile(r"\.(source|final)\.json$", re.IGNORECASE)
_JSON_RE = re.compile(r"\.json$", re.IGNORECASE)


class IngestError(Exception):
    """Error reading the input document."""
    pass


def derive_slug(input_path: Path, explicit: Optional[str] = None) -> str:
    """
    Pick the output slug: the explicit override, else the input filename
    without its .source.json / .final.json / .json suffix.
    """
    if explicit:
        slug = explicit
    else:
        name = _JSON_RE.sub("", _SUFFIX_RE.sub("", input_path.name))
        slug = name or DEFAULT_SLUG

    if not SLUG_RE.match(slug):
        raise IngestError(f"Invalid slug '{slug}': use letters, digits, '.', '_' or '-'")
    return slug


def read_room_json(input_path: Path) -> Any:
    """Read the raw (untyped) document."""
    if not input_path.exists():
        raise IngestError(f"Input not found: {input_path}")

    try:
        return read_json(input_path)
    except ValueError as e:
        raise IngestError(f"Invalid JSON at {input_path}: {e}")
    except OSError as e:
        raise IngestError(f"Failed to read {input_path}: {e}")


def load_room(input_path: Path) -> Tuple[Any, RoomDescription]:
    """
    Read and validate a room description.

    Returns:
        Tuple of (raw_document, parsed_room)

    Raises:
        IngestError: unreadable file or malformed JSON
        SchemaError: the document does not conform to the room contract
    """
    raw = read_room_json(input_path)
    room = parse_room(raw, source=str(input_path))
    console.print(f"[green]Loaded room '{room.id}': {escape(room.meta.title)}[/green]")
    console.print(f"  Devices: {len(room.devices)}, decor: {len(room.structure.decor)}, "
                  f"flows: {len(room.flows)}, boards: {len(room.content.boards)}")
    return raw, room


def print_schema_issues(error: SchemaError, heading: str = "Schema validation failed") -> None:
    where = f" for {error.source}" if error.source else ""
    console.print(f"[bold red]{heading}{where}:[/bold red]")
    for issue in error.issues:
        console.print(f"  [red]• {escape(str(issue))}[/red]")
