"""
Room Bundling Pipeline Orchestrator

Compiles an author-written room description into a published bundle:
final room JSON, build manifest, and optionally hashed assets, a preview
and an index entry.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
import typer

from utils.io import write_json_atomic
from utils.validation import InvariantError, RoomDescription, SchemaError, check_references

from .analyze import analyze_room, print_warnings
from .assets import AssetResolutionError, find_missing_assets, rewrite_assets
from .ingest import IngestError, derive_slug, load_room, print_schema_issues
from .normalize import ClampMode, ClampPolicy, normalize_room
from .preview import PlaywrightScreenshotter, Screenshotter
from .publish import BundleLayout, PublishError, PublishResult, create_manifest, publish

console = Console()
app = typer.Typer(help="Room Bundling Pipeline")


@dataclass
class PipelineConfig:
    """Configuration for the bundling pipeline."""
    slug: Optional[str] = None

    # Normalization
    clamp_mode: ClampMode = ClampMode.NONE
    grid_step: float = 0.0

    # Assets (opt-in)
    bundle_assets: bool = False

    # Output
    public_dir: Path = Path("public")
    out_dir: Optional[Path] = None  # Default: <public_dir>/rooms
    url_prefix: str = "/rooms"
    dry_run: bool = False
    update_index: bool = False
    screenshot_url: Optional[str] = None

    @property
    def policy(self) -> ClampPolicy:
        return ClampPolicy(clamp_mode=self.clamp_mode, grid_step=self.grid_step)

    @property
    def rooms_dir(self) -> Path:
        return self.out_dir if self.out_dir is not None else self.public_dir / "rooms"


@dataclass
class PipelineStats:
    """Statistics collected during pipeline execution."""
    start_time: float = 0
    end_time: float = 0
    stages: Dict = field(default_factory=dict)

    def start(self):
        self.start_time = time.time()

    def stop(self):
        self.end_time = time.time()

    def record_stage(self, name: str, duration: float, **kwargs):
        self.stages[name] = {"duration_seconds": duration, **kwargs}

    @property
    def total_duration(self) -> float:
        return self.end_time - self.start_time


@dataclass
class BundleOutcome:
    """Everything one run produced (or would have produced, under dry run)."""
    room: RoomDescription
    manifest: Dict
    published: PublishResult
    asset_stats: Optional[Dict]
    stats: PipelineStats


def run_pipeline(
    input_path: Path,
    config: Optional[PipelineConfig] = None,
    screenshotter: Optional[Screenshotter] = None,
) -> BundleOutcome:
    """
    Run the complete bundling pipeline.

    Stages run strictly in order; validation and asset errors abort before
    anything is written.

    Args:
        input_path: Path to the room description JSON
        config: Pipeline configuration
        screenshotter: Preview capability (defaults to Playwright when a screenshot URL is set)

    Returns:
        BundleOutcome with the final room, manifest and publish result

    Raises:
        IngestError / SchemaError: bad input
        InvariantError: a transform stage produced a non-conforming room
        AssetResolutionError: missing or ambiguous asset reference
        PublishError: primary outputs could not be written
    """
    config = config or PipelineConfig()
    policy = config.policy
    stats = PipelineStats()
    stats.start()

    slug = derive_slug(input_path, config.slug)
    layout = BundleLayout(out_dir=config.rooms_dir, slug=slug, url_prefix=config.url_prefix)

    console.print(Panel.fit(
        "[bold blue]Room Bundling Pipeline[/bold blue]\n"
        f"Input: {escape(str(input_path))}\n"
        f"Slug: {slug}\n"
        f"Output: {escape(str(layout.out_dir))}",
        border_style="blue"
    ))

    # Stage 1: Ingest
    console.print("\n[bold]Stage 1: Ingest[/bold]")
    stage_start = time.time()
    _, source = load_room(input_path)
    stats.record_stage("ingest", time.time() - stage_start, room_id=source.id)

    # Stage 2: Normalize
    console.print("\n[bold]Stage 2: Normalize[/bold]")
    stage_start = time.time()
    room = normalize_room(source, policy)
    stats.record_stage("normalize", time.time() - stage_start, policy=policy.describe())

    # Stage 3: Assets
    asset_stats = None
    records = []
    if config.bundle_assets:
        console.print("\n[bold]Stage 3: Bundle Assets[/bold]")
        stage_start = time.time()
        result = rewrite_assets(
            room,
            public_dir=config.public_dir,
            assets_dir=layout.assets_dir,
            url_base=layout.assets_url,
            dry_run=config.dry_run,
        )
        room = result.room
        records = result.records
        asset_stats = result.stats
        stats.record_stage("assets", time.time() - stage_start, **asset_stats)
    else:
        console.print("\n[bold]Stage 3: Bundle Assets (SKIPPED)[/bold]")

    # Stage 4: Analyze
    # Bounds are checked on the source room so notices report pre-clamp positions
    console.print("\n[bold]Stage 4: Analyze[/bold]")
    warnings = analyze_room(source)
    print_warnings(warnings)

    # Stage 5: Publish
    console.print("\n[bold]Stage 5: Publish[/bold]")
    stage_start = time.time()
    if config.screenshot_url and screenshotter is None:
        screenshotter = PlaywrightScreenshotter()
    manifest = create_manifest(layout, source, records, warnings)
    published = publish(
        room,
        manifest,
        layout,
        dry_run=config.dry_run,
        screenshotter=screenshotter,
        screenshot_url=config.screenshot_url,
        index=config.update_index,
        source=source,
    )
    stats.record_stage("publish", time.time() - stage_start, files=len(published.written))
    stats.stop()

    print_summary(layout, config, warnings, asset_stats, published, stats)
    return BundleOutcome(
        room=room,
        manifest=manifest,
        published=published,
        asset_stats=asset_stats,
        stats=stats,
    )


def print_summary(layout, config, warnings, asset_stats, published, stats) -> None:
    lines = [
        f"[bold green]Bundle complete{' (dry-run)' if config.dry_run else ''}![/bold green]\n",
        f"Slug: {layout.slug}",
        f"Clamp: {config.policy.describe()}",
        f"Warnings: {len(warnings)}",
    ]
    if asset_stats is None:
        lines.append("Assets: skipped (use --bundle-assets to enable)")
    else:
        lines.append(
            f"Assets: replaced={asset_stats['replaced']}, unique={asset_stats['unique']}, "
            f"written={asset_stats['written']}"
        )
    for path in published.written:
        lines.append(f"Wrote: {escape(str(path))}")
    if published.preview_path:
        lines.append(f"Wrote: {escape(str(published.preview_path))}")
    if published.index_updated:
        lines.append(f"Updated: {escape(str(layout.index_path))}")
    lines.append(f"Total time: {stats.total_duration:.2f}s")

    console.print(Panel.fit("\n".join(lines), border_style="green"))


@app.command()
def bundle(
    input_path: Path = typer.Argument(..., help="Path to room description JSON"),
    slug: Optional[str] = typer.Option(None, help="Output slug (default: derived from filename)"),
    clamp: ClampMode = typer.Option(ClampMode.NONE, help="Clamp positions to room bounds"),
    grid: float = typer.Option(0.0, min=0.0, help="Snap positions to this grid step (0 = off)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Run everything but write no files"),
    bundle_assets: bool = typer.Option(False, "--bundle-assets", help="Copy and hash local assets"),
    update_index: bool = typer.Option(False, "--update-index", help="Upsert the slug into index.json"),
    screenshot_url: Optional[str] = typer.Option(None, help="Viewer URL to capture as preview.png"),
    public_dir: Path = typer.Option(Path("public"), help="Root that asset paths resolve against"),
    out_dir: Optional[Path] = typer.Option(None, help="Output directory (default: <public-dir>/rooms)"),
    url_prefix: str = typer.Option("/rooms", help="Public URL of the output directory"),
):
    """
    Bundle a room description into <slug>.final.json and <slug>.manifest.json.
    """
    config = PipelineConfig(
        slug=slug,
        clamp_mode=clamp,
        grid_step=grid,
        bundle_assets=bundle_assets,
        public_dir=public_dir,
        out_dir=out_dir,
        url_prefix=url_prefix,
        dry_run=dry_run,
        update_index=update_index,
        screenshot_url=screenshot_url,
    )

    try:
        run_pipeline(input_path, config)
    except SchemaError as e:
        print_schema_issues(e)
        raise typer.Exit(1)
    except InvariantError as e:
        console.print(f"[bold red]Internal error:[/bold red] {e.stage} produced an invalid room "
                      "(this is a pipeline bug, not an input problem)")
        for issue in e.issues:
            console.print(f"  [red]• {escape(str(issue))}[/red]")
        raise typer.Exit(1)
    except (IngestError, AssetResolutionError, PublishError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command("validate")
def validate(
    input_path: Path = typer.Argument(..., help="Path to room description JSON"),
    public_dir: Path = typer.Option(Path("public"), help="Root that asset paths resolve against"),
):
    """Validate a room: schema, cross-references and asset existence."""
    try:
        _, room = load_room(input_path)
    except SchemaError as e:
        print_schema_issues(e)
        raise typer.Exit(1)
    except IngestError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    errors, warnings = check_references(room)
    asset_errors, asset_warnings = find_missing_assets(room, public_dir)
    errors += asset_errors
    warnings += asset_warnings

    if errors:
        console.print("[red]Validation errors:[/red]")
        for error in errors:
            console.print(f"  [red]• {escape(error)}[/red]")
    print_warnings(warnings)

    if errors:
        raise typer.Exit(1)
    if warnings:
        console.print(f"[green]No errors.[/green] {len(warnings)} warning(s).")
    else:
        console.print("[green]Validation passed with no issues[/green]")


@app.command("schema")
def export_schema(
    output_path: Path = typer.Option(
        Path("public/schemas/RoomConfigV1.schema.json"), "--output", "-o", help="Output path"
    ),
):
    """Write the room contract as JSON Schema."""
    schema = RoomDescription.model_json_schema(by_alias=True)
    schema["title"] = "RoomConfigV1"
    write_json_atomic(output_path, schema)
    console.print(f"[green]Wrote JSON Schema: {output_path}[/green]")


@app.command("stages")
def list_stages():
    """List all pipeline stages."""
    stages = [
        ("1. Ingest", "Read and validate the room description"),
        ("2. Normalize", "Clamp/snap device and decor positions (re-validated)"),
        ("3. Bundle Assets", "Hash, copy and rewrite local assets (opt-in, re-validated)"),
        ("4. Analyze", "Collect advisory warnings"),
        ("5. Publish", "Atomic write of final + manifest, optional preview and index"),
    ]

    console.print("[bold]Pipeline Stages:[/bold]\n")
    for name, desc in stages:
        console.print(f"  [blue]{name}[/blue]: {desc}")


if __name__ == "__main__":
    app()
