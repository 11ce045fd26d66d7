"""JSON file helpers: strict reads and atomic writes."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, List, Sequence, Tuple


def _reject_constant(token: str):
    raise ValueError(f"{token} is not a valid JSON value")


def read_json(path: Path) -> Any:
    """Read and parse a JSON file. Raises OSError or ValueError (NaN/Infinity included)."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f, parse_constant=_reject_constant)


def dump_json(payload: Any) -> str:
    """Serialize the way every published file is written (stable, 2-space indent)."""
    return json.dumps(payload, indent=2, ensure_ascii=False, allow_nan=False) + "\n"


def write_json_atomic(path: Path, payload: Any) -> Path:
    """
    Write JSON through a temp file in the target directory, then rename over the target.

    Readers see either the previous file or the complete new one, never a partial write.
    """
    return write_json_files_atomic([(path, payload)])[0]


def write_json_files_atomic(payloads: Sequence[Tuple[Path, Any]]) -> List[Path]:
    """
    Write several JSON files as one step.

    Every payload is serialized and staged to a temp file before any target is
    replaced, so a serialization or write error leaves all targets untouched.
    """
    texts = [(Path(path), dump_json(payload)) for path, payload in payloads]
    staged: List[Tuple[Path, Path]] = []
    try:
        for path, text in texts:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                staged.append((Path(handle.name), path))
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
        for tmp_path, path in staged:
            os.replace(tmp_path, path)
    finally:
        for tmp_path, _ in staged:
            if tmp_path.exists():
                tmp_path.unlink()
    return [path for path, _ in texts]
