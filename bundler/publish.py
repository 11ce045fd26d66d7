"""
Publishing Pipeline Stage

Writes the final room and its build manifest atomically, then runs the
best-effort side steps: preview capture (+ thumbnail) and the slug index.

Output layout under out_dir:
├── index.json               (optional)
├── <slug>.final.json
├── <slug>.manifest.json
└── <slug>/
    ├── assets/<name>.<hash>.<ext>   (optional)
    ├── preview.png                  (optional)
    └── thumbnail.jpg                (optional)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional
from PIL import Image
from rich.console import Console
from rich.markup import escape

from utils.io import read_json, write_json_atomic, write_json_files_atomic
from utils.validation import RoomDescription

from .assets import AssetRecord
from .preview import TIMEOUT_SECONDS, Screenshotter

console = Console()


class PublishError(Exception):
    """Error writing the primary outputs."""
    pass


@dataclass(frozen=True)
class BundleLayout:
    """File locations and public URLs for one slug's bundle."""
    out_dir: Path
    slug: str
    url_prefix: str = "/rooms"

    def _url(self, name: str) -> str:
        return f"{self.url_prefix.rstrip('/')}/{name}"

    @property
    def final_path(self) -> Path:
        return self.out_dir / f"{self.slug}.final.json"

    @property
    def manifest_path(self) -> Path:
        return self.out_dir / f"{self.slug}.manifest.json"

    @property
    def index_path(self) -> Path:
        return self.out_dir / "index.json"

    @property
    def bundle_dir(self) -> Path:
        return self.out_dir / self.slug

    @property
    def assets_dir(self) -> Path:
        return self.bundle_dir / "assets"

    @property
    def preview_path(self) -> Path:
        return self.bundle_dir / "preview.png"

    @property
    def thumbnail_path(self) -> Path:
        return self.bundle_dir / "thumbnail.jpg"

    @property
    def final_url(self) -> str:
        return self._url(f"{self.slug}.final.json")

    @property
    def manifest_url(self) -> str:
        return self._url(f"{self.slug}.manifest.json")

    @property
    def assets_url(self) -> str:
        return self._url(f"{self.slug}/assets")

    @property
    def preview_url(self) -> str:
        return self._url(f"{self.slug}/preview.png")

    @property
    def thumbnail_url(self) -> str:
        return self._url(f"{self.slug}/thumbnail.jpg")


@dataclass
class PublishResult:
    layout: BundleLayout
    manifest: Dict
    dry_run: bool
    written: List[Path] = field(default_factory=list)
    preview_path: Optional[Path] = None
    index_updated: bool = False


def create_manifest(
    layout: BundleLayout,
    source: RoomDescription,
    assets: List[AssetRecord],
    warnings: List[str],
) -> Dict:
    """
    Build the manifest for a bundle.

    Element counts come from the validated source room (before asset rewriting).

    Args:
        layout: Bundle layout (slug and output pointers)
        source: Room as parsed from the input
        assets: Asset records from the rewrite stage (empty when not bundling)
        warnings: Advisory warnings from analysis
    """
    return {
        "slug": layout.slug,
        "schemaVersion": source.schema_version,
        "meta": source.meta.model_dump(mode="json", exclude_unset=True),
        "counts": {
            "devices": len(source.devices),
            "decor": len(source.structure.decor),
            "flows": len(source.flows),
            "phases": len(source.phases),
            "boards": len(source.content.boards),
        },
        "assets": [record.to_dict() for record in assets],
        "warnings": list(warnings),
        "files": {
            "final": layout.final_url,
            "manifest": layout.manifest_url,
            "preview": layout.preview_url,
        },
        "generatedAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


def generate_thumbnail(
    preview_path: Path,
    output_path: Path,
    size: tuple = (400, 300)
) -> Path:
    """
    Generate a JPEG thumbnail from the captured preview.

    Args:
        preview_path: Captured preview PNG
        output_path: Output path for thumbnail
        size: Thumbnail size (width, height)

    Returns:
        Path to generated thumbnail
    """
    with Image.open(preview_path) as img:
        img = img.convert("RGB")
        img.thumbnail(size, Image.Resampling.LANCZOS)
        output_path = output_path.with_suffix('.jpg')
        output_path.parent.mkdir(parents=True, exist_ok=True)
        img.save(output_path, 'JPEG', quality=85)

    console.print(f"[green]Generated thumbnail: {output_path}[/green]")
    return output_path


def capture_preview(
    screenshotter: Screenshotter,
    url: str,
    layout: BundleLayout,
    timeout: float = TIMEOUT_SECONDS,
) -> Optional[Path]:
    """
    Best-effort preview capture. Any failure is reported as a warning and
    returns None; it never affects the already-published outputs.
    """
    console.print(f"[blue]Capturing preview: {escape(url)}[/blue]")
    try:
        preview_path = screenshotter.capture(url, layout.preview_path, timeout=timeout)
    except Exception as e:
        console.print(f"[yellow]Warning: failed to generate preview: {escape(str(e))}[/yellow]")
        return None

    try:
        generate_thumbnail(preview_path, layout.thumbnail_path)
    except (OSError, ValueError) as e:
        console.print(f"[yellow]Warning: failed to generate thumbnail: {escape(str(e))}[/yellow]")

    return preview_path


def load_index(index_path: Path) -> List[Dict]:
    """Read the slug index. A missing, unreadable or malformed file counts as empty."""
    if not index_path.exists():
        return []
    try:
        entries = read_json(index_path)
    except (OSError, ValueError):
        return []
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, dict)]


def update_index(layout: BundleLayout, source: RoomDescription) -> Path:
    """
    Upsert this slug's entry into index.json, keeping entries sorted by slug.

    Returns:
        Path to the rewritten index
    """
    entry = {
        "slug": layout.slug,
        "title": source.meta.title,
        "summary": source.meta.summary or "",
        "final": layout.final_url,
        "manifest": layout.manifest_url,
    }
    if layout.preview_path.exists():
        entry["preview"] = layout.preview_url
    if layout.thumbnail_path.exists():
        entry["thumbnail"] = layout.thumbnail_url

    entries = [e for e in load_index(layout.index_path) if e.get("slug") != layout.slug]
    entries.append(entry)
    entries.sort(key=lambda e: str(e.get("slug", "")))

    return write_json_atomic(layout.index_path, entries)


def publish(
    room: RoomDescription,
    manifest: Dict,
    layout: BundleLayout,
    dry_run: bool = False,
    screenshotter: Optional[Screenshotter] = None,
    screenshot_url: Optional[str] = None,
    index: bool = False,
    source: Optional[RoomDescription] = None,
) -> PublishResult:
    """
    Write <slug>.final.json and <slug>.manifest.json, then run the optional steps.

    Args:
        room: Final (validated, normalized, asset-rewritten) room
        manifest: Manifest from create_manifest
        layout: Bundle layout
        dry_run: Write nothing at all
        screenshotter: Preview capability, used only with screenshot_url
        screenshot_url: Viewer URL to capture
        index: Upsert this slug into index.json
        source: Room as parsed from the input (index title/summary); defaults to room

    Returns:
        PublishResult describing what was (or would have been) written
    """
    result = PublishResult(layout=layout, manifest=manifest, dry_run=dry_run)
    if dry_run:
        console.print("[yellow]Dry run: no files written[/yellow]")
        return result

    try:
        result.written = write_json_files_atomic([
            (layout.final_path, room.to_document()),
            (layout.manifest_path, manifest),
        ])
    except (OSError, ValueError) as e:
        raise PublishError(f"Failed to write outputs for '{layout.slug}': {e}")

    for path in result.written:
        console.print(f"[green]Wrote {path}[/green]")

    if screenshot_url and screenshotter is not None:
        result.preview_path = capture_preview(screenshotter, screenshot_url, layout)

    if index:
        try:
            update_index(layout, source or room)
            result.index_updated = True
            console.print(f"[green]Updated {layout.index_path}[/green]")
        except OSError as e:
            console.print(f"[yellow]Warning: failed to update index: {escape(str(e))}[/yellow]")

    return result
