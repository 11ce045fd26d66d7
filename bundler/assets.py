"""
Asset Bundling Stage

Copies locally referenced assets into a per-room, content-addressed asset
directory and rewrites the references to their published URLs.

Published name: <basename>.<sha256[:8]>.<ext>, under <out_dir>/<slug>/assets/.
Identical content always maps to one published file.
"""

import hashlib
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from rich.console import Console

from utils.tree import rewrite_strings
from utils.validation import RoomDescription, recheck

console = Console()

ASSET_EXTENSIONS = {".glb", ".gltf", ".png", ".jpg", ".jpeg", ".webp", ".gif", ".svg"}
MODEL_EXTENSIONS = {".glb", ".gltf"}
HASH_LENGTH = 8

ASSET_KEY_RE = re.compile(r"(url$|image|texture|src)", re.IGNORECASE)
MARKDOWN_IMAGE_RE = re.compile(r"(!\[[^\]]*\]\()([^)]+)(\))")
HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)
DATA_RE = re.compile(r"^data:", re.IGNORECASE)

# Decor identity fields are never treated as asset references
DECOR_SKIP_KEYS = frozenset({"id", "type"})


class AssetResolutionError(Exception):
    """A referenced asset is missing or ambiguous."""
    pass


def is_remote(ref: str) -> bool:
    return bool(HTTP_RE.match(ref) or DATA_RE.match(ref))


def extension_of(ref: str) -> str:
    return Path(ref).suffix.lower()


def is_asset_path(ref: str) -> bool:
    """A local reference to a model or image file (not a network URL or data URI)."""
    return extension_of(ref) in ASSET_EXTENSIONS and not is_remote(ref)


def to_public_relative(ref: str) -> str:
    """Normalize authoring forms to a path under the public root: /public/x, /x and x all map to x."""
    if ref.startswith("/public/"):
        return ref[len("/public/"):]
    return ref.lstrip("/")


@dataclass
class AssetRecord:
    original_path: str
    url: str
    hash: str
    bytes: int
    ext: str

    def to_dict(self) -> Dict:
        return {
            "originalPublicPath": self.original_path,
            "url": self.url,
            "hash": self.hash,
            "bytes": self.bytes,
            "ext": self.ext,
        }


@dataclass
class AssetCache:
    """Run-scoped rewrite state. Create one per invocation; never share across runs."""
    path_to_url: Dict[Path, str] = field(default_factory=dict)
    digest_to_name: Dict[str, str] = field(default_factory=dict)
    records: Dict[str, AssetRecord] = field(default_factory=dict)
    written: int = 0


@dataclass
class RewriteResult:
    room: RoomDescription
    records: List[AssetRecord]
    replaced: int
    unique: int
    written: int

    @property
    def stats(self) -> Dict:
        return {"replaced": self.replaced, "unique": self.unique, "written": self.written}


class AssetBundler:
    """
    Resolves, hashes and copies local asset references for one room.

    Args:
        public_dir: Root that local references are resolved against
        assets_dir: Destination directory for published files (<out_dir>/<slug>/assets)
        url_base: Public URL of assets_dir (e.g. /rooms/<slug>/assets)
        dry_run: Compute names and records but write nothing
        cache: Run-scoped state; a fresh one is created when omitted
    """

    def __init__(
        self,
        public_dir: Path,
        assets_dir: Path,
        url_base: str,
        dry_run: bool = False,
        cache: Optional[AssetCache] = None,
    ):
        self.public_dir = public_dir.resolve()
        self.assets_dir = assets_dir
        self.url_base = url_base.rstrip("/")
        self.dry_run = dry_run
        self.cache = cache if cache is not None else AssetCache()

    def is_published(self, ref: str) -> bool:
        return ref.startswith(self.url_base + "/")

    def resolve(self, ref: str, owner: str) -> Path:
        rel = to_public_relative(ref)
        path = (self.public_dir / rel).resolve()
        if not path.is_relative_to(self.public_dir):
            raise AssetResolutionError(f"Asset '{ref}' resolves outside the public root ({owner})")
        if not path.is_file():
            raise AssetResolutionError(
                f"Asset not found in public/: '{rel}' (resolved to {path}) referenced by {owner}"
            )
        return path

    def publish(self, ref: str, owner: str) -> str:
        """Return the published URL for a reference, copying the file on first sight."""
        if self.is_published(ref):
            return ref

        source = self.resolve(ref, owner)
        cached = self.cache.path_to_url.get(source)
        if cached is not None:
            return cached

        data = source.read_bytes()
        digest = hashlib.sha256(data).hexdigest()[:HASH_LENGTH]
        ext = source.suffix.lower()
        name = self.cache.digest_to_name.setdefault(digest, f"{source.stem}.{digest}{ext}")
        url = f"{self.url_base}/{name}"

        destination = self.assets_dir / name
        if not self.dry_run and not destination.exists():
            self.assets_dir.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(data)
            self.cache.written += 1
            console.print(f"  Copied {to_public_relative(ref)} -> {name}")

        self.cache.path_to_url[source] = url
        self.cache.records.setdefault(
            url,
            AssetRecord(
                original_path=to_public_relative(ref),
                url=url,
                hash=digest,
                bytes=len(data),
                ext=ext,
            ),
        )
        return url

    def rewrite_device(self, device: Dict) -> Tuple[Dict, int]:
        ref = device.get("model")
        if not isinstance(ref, str) or is_remote(ref) or self.is_published(ref):
            return device, 0

        owner = f"device '{device.get('alias', 'unknown')}'"
        ext = extension_of(ref)
        if ext == "":
            raise AssetResolutionError(
                f"Device model must point to a concrete .glb/.gltf: '{ref}' ({owner})"
            )
        if ext not in MODEL_EXTENSIONS:
            return device, 0
        return {**device, "model": self.publish(ref, owner)}, 1

    def rewrite_decor(self, element: Dict) -> Tuple[Dict, int]:
        owner = f"decor '{element.get('id', element.get('type', 'unknown'))}'"

        # Any string in the tree qualifies by value; key names are not required to look asset-like
        return rewrite_strings(
            element,
            lambda key, value: is_asset_path(value),
            lambda key, value: self.publish(value, owner),
            skip_keys=DECOR_SKIP_KEYS,
        )

    def rewrite_board(self, board: Dict) -> Tuple[Dict, int]:
        """Rewrite markdown image links; each distinct link is published once."""
        md = board.get("md")
        if not isinstance(md, str):
            return board, 0

        owner = f"board '{board.get('id', 'unknown')}'"
        urls: Dict[str, str] = {}
        for match in MARKDOWN_IMAGE_RE.finditer(md):
            ref = match.group(2)
            if ref in urls or not is_asset_path(ref) or self.is_published(ref):
                continue
            urls[ref] = self.publish(ref, owner)

        if not urls:
            return board, 0

        def substitute(match: re.Match) -> str:
            ref = match.group(2)
            return match.group(1) + urls.get(ref, ref) + match.group(3)

        return {**board, "md": MARKDOWN_IMAGE_RE.sub(substitute, md)}, len(urls)


def rewrite_assets(
    room: RoomDescription,
    public_dir: Path,
    assets_dir: Path,
    url_base: str,
    dry_run: bool = False,
) -> RewriteResult:
    """
    Bundle every local asset reference of a room.

    Visits device models, every string anywhere in the decor tree, and markdown
    image links in content boards. The input room is not modified; the rewritten
    room is re-validated against the contract.

    Raises:
        AssetResolutionError: missing file or extensionless device model
    """
    bundler = AssetBundler(public_dir, assets_dir, url_base, dry_run=dry_run)
    document = room.to_document()
    replaced = 0

    if "devices" in document:
        devices = []
        for device in document["devices"]:
            device, count = bundler.rewrite_device(device)
            devices.append(device)
            replaced += count
        document["devices"] = devices

    structure = document["structure"]
    if "decor" in structure:
        decor = []
        for element in structure["decor"]:
            element, count = bundler.rewrite_decor(element)
            decor.append(element)
            replaced += count
        document["structure"] = {**structure, "decor": decor}

    content = document.get("content")
    if content and "boards" in content:
        boards = []
        for board in content["boards"]:
            board, count = bundler.rewrite_board(board)
            boards.append(board)
            replaced += count
        document["content"] = {**content, "boards": boards}

    rewritten = recheck(document, stage="asset rewrite")
    cache = bundler.cache
    return RewriteResult(
        room=rewritten,
        records=list(cache.records.values()),
        replaced=replaced,
        unique=len(cache.digest_to_name),
        written=cache.written,
    )


def find_missing_assets(room: RoomDescription, public_dir: Path) -> Tuple[List[str], List[str]]:
    """
    Report asset references that do not exist under the public root.

    Device models are errors; decor fields with asset-like keys or pointing at an
    image are warnings. Network URLs and data URIs are skipped.

    Returns:
        Tuple of (errors, warnings)
    """
    errors = []
    warnings = []
    root = public_dir.resolve()

    def exists(ref: str) -> bool:
        return (root / to_public_relative(ref)).is_file()

    for device in room.devices:
        if not is_remote(device.model) and not exists(device.model):
            errors.append(
                f"Device '{device.alias}': model not found at '{device.model}' (expected under {public_dir})"
            )

    for element in room.structure.decor:
        for key, value in (element.model_extra or {}).items():
            if not isinstance(value, str) or is_remote(value):
                continue
            is_image = extension_of(value) in ASSET_EXTENSIONS - MODEL_EXTENSIONS
            if (ASSET_KEY_RE.search(key) and extension_of(value)) or is_image:
                if not exists(value):
                    warnings.append(f"Decor '{element.id}': asset not found '{value}'")

    return errors, warnings
