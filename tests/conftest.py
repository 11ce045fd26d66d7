"""Shared fixtures: room documents and a public asset root."""

import copy
import json
from pathlib import Path

import pytest

BASE_ROOM = {
    "schemaVersion": "1.0",
    "id": "lab",
    "meta": {"title": "Firewall Lab", "summary": "Packets meet the firewall"},
    "environment": {"background": "#101820"},
    "camera": {"position": [0, 2, 6], "target": [0, 1, 0]},
    "structure": {
        "dimensions": {"width": 10, "height": 3, "depth": 10},
        "decor": [
            {
                "id": "poster-1",
                "type": "poster",
                "position": [0, 1.5, -4.9],
                "imageUrl": "/textures/poster.png",
            },
        ],
    },
    "devices": [
        {
            "alias": "fw1",
            "category": "firewall",
            "model": "/models/firewall.glb",
            "position": [0, 0, 0],
        },
        {
            "alias": "pc1",
            "category": "desktop",
            "model": "/models/desktop.glb",
            "position": [-3, 0, 2],
        },
    ],
    "flows": [{"id": "f1", "path": ["pc1", "fw1"]}],
    "phases": [{"id": "p1", "actions": [{"playFlow": "f1"}, {"hud": "Watch the packet"}]}],
    "terminal": {"commands": [{"id": "c1", "match": "curl*", "onRun": [{"phase": "p1"}]}]},
    "content": {
        "boards": [
            {
                "id": "b1",
                "anchor": "fw1",
                "title": "Rules",
                "md": "# Rules\n\n![diagram](/textures/diagram.png)\n\nAllow 443 only.",
            }
        ]
    },
}


def make_room(**overrides) -> dict:
    """A valid room document; top-level keys can be replaced via keyword arguments."""
    room = copy.deepcopy(BASE_ROOM)
    room.update(copy.deepcopy(overrides))
    return room


def write_bytes(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def write_room(path: Path, room: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(room, indent=2))
    return path


@pytest.fixture
def room_doc() -> dict:
    return make_room()


@pytest.fixture
def public_dir(tmp_path) -> Path:
    """A public root holding every asset BASE_ROOM references."""
    public = tmp_path / "public"
    write_bytes(public / "models" / "firewall.glb", b"glTF-firewall" * 40)
    write_bytes(public / "models" / "desktop.glb", b"glTF-desktop" * 40)
    write_bytes(public / "textures" / "poster.png", bytes(range(256)) * 8)
    write_bytes(public / "textures" / "diagram.png", b"\x89PNG-diagram" * 30)
    return public
