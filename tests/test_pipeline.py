"""Integration tests for the bundling pipeline and CLI."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import make_room, write_room
from bundler.assets import AssetResolutionError
from bundler.ingest import IngestError, derive_slug
from bundler.normalize import ClampMode
from bundler.process import PipelineConfig, app, run_pipeline
from utils.validation import SchemaError

runner = CliRunner()


def create_test_room(tmp_path: Path, name: str = "lab.source.json", **overrides) -> Path:
    """Write a room description next to the public root."""
    return write_room(tmp_path / "src" / name, make_room(**overrides))


def config_for(public_dir: Path, **kwargs) -> PipelineConfig:
    return PipelineConfig(public_dir=public_dir, **kwargs)


def files_under(root: Path):
    return sorted(str(p.relative_to(root)) for p in root.rglob("*") if p.is_file())


class TestSlug:
    """Tests for slug derivation."""

    def test_from_filename(self):
        assert derive_slug(Path("rooms/firewall.source.json")) == "firewall"
        assert derive_slug(Path("firewall.FINAL.json")) == "firewall"
        assert derive_slug(Path("dmz.json")) == "dmz"

    def test_explicit_override(self):
        assert derive_slug(Path("firewall.source.json"), "dmz-v2") == "dmz-v2"

    def test_fallback(self):
        assert derive_slug(Path(".json")) == "test-room"

    def test_rejects_path_like_slug(self):
        with pytest.raises(IngestError):
            derive_slug(Path("x.json"), "../escape")


class TestRunPipeline:
    """End-to-end tests for run_pipeline."""

    def test_default_run(self, tmp_path, public_dir):
        input_path = create_test_room(tmp_path)
        outcome = run_pipeline(input_path, config_for(public_dir))
        rooms = public_dir / "rooms"

        final = json.loads((rooms / "lab.final.json").read_text())
        manifest = json.loads((rooms / "lab.manifest.json").read_text())
        assert final["devices"][0]["model"] == "/models/firewall.glb"
        assert manifest["assets"] == []
        assert manifest["warnings"] == []
        assert outcome.asset_stats is None

    def test_hard_clamp_scenario(self, tmp_path, public_dir):
        """Out-of-bounds device is clamped; the warning reports the pre-clamp position."""
        devices = [{"alias": "fw1", "category": "firewall", "model": "/models/firewall.glb",
                    "position": [6, 0, 0]}]
        input_path = create_test_room(tmp_path, devices=devices)
        outcome = run_pipeline(input_path, config_for(public_dir, clamp_mode=ClampMode.HARD))

        final = json.loads((public_dir / "rooms" / "lab.final.json").read_text())
        assert final["devices"][0]["position"] == [4.75, 0.0, 0.0]
        assert outcome.manifest["warnings"] == [
            "device 'fw1' position out of room bounds: [6, 0, 0]"
        ]

    def test_bundle_assets(self, tmp_path, public_dir):
        input_path = create_test_room(tmp_path)
        outcome = run_pipeline(input_path, config_for(public_dir, bundle_assets=True))

        assets = files_under(public_dir / "rooms" / "lab" / "assets")
        assert len(assets) == 4
        assert len(outcome.manifest["assets"]) == 4
        assert outcome.asset_stats == {"replaced": 4, "unique": 4, "written": 4}
        decor = outcome.room.structure.decor[0].model_extra
        assert decor["imageUrl"].startswith("/rooms/lab/assets/poster.")

    def test_deterministic(self, tmp_path, public_dir):
        """Repeated runs produce identical final documents and manifests (ignoring time)."""
        input_path = create_test_room(tmp_path)
        config = config_for(public_dir, bundle_assets=True, clamp_mode=ClampMode.SOFT, grid_step=0.25)
        rooms = public_dir / "rooms"

        run_pipeline(input_path, config)
        final_1 = (rooms / "lab.final.json").read_bytes()
        manifest_1 = json.loads((rooms / "lab.manifest.json").read_text())
        run_pipeline(input_path, config)
        final_2 = (rooms / "lab.final.json").read_bytes()
        manifest_2 = json.loads((rooms / "lab.manifest.json").read_text())

        assert final_1 == final_2
        manifest_1.pop("generatedAt")
        manifest_2.pop("generatedAt")
        assert manifest_1 == manifest_2

    def test_dry_run_with_assets(self, tmp_path, public_dir):
        """Dry run reports the full asset list but writes nothing."""
        input_path = create_test_room(tmp_path)
        before = files_under(tmp_path)
        outcome = run_pipeline(
            input_path,
            config_for(public_dir, bundle_assets=True, dry_run=True, update_index=True),
        )

        assert len(outcome.manifest["assets"]) == 4
        assert outcome.published.written == []
        assert files_under(tmp_path) == before

    def test_schema_error_writes_nothing(self, tmp_path, public_dir):
        input_path = create_test_room(tmp_path, schemaVersion="2.0")
        with pytest.raises(SchemaError):
            run_pipeline(input_path, config_for(public_dir))

        assert not (public_dir / "rooms").exists()

    def test_missing_asset_writes_nothing(self, tmp_path, public_dir):
        (public_dir / "textures" / "diagram.png").unlink()
        input_path = create_test_room(tmp_path)
        with pytest.raises(AssetResolutionError):
            run_pipeline(input_path, config_for(public_dir, bundle_assets=True))

        assert not (public_dir / "rooms" / "lab.final.json").exists()
        assert not (public_dir / "rooms" / "lab.manifest.json").exists()

    def test_invalid_json(self, tmp_path, public_dir):
        input_path = tmp_path / "broken.json"
        input_path.write_text("{")
        with pytest.raises(IngestError):
            run_pipeline(input_path, config_for(public_dir))

    def test_non_finite_number_is_input_error(self, tmp_path, public_dir):
        """NaN is not JSON: the run fails at ingest and publishes nothing."""
        room = make_room()
        room["devices"][0]["position"] = [float("nan"), 0, 0]
        input_path = tmp_path / "src" / "lab.source.json"
        input_path.parent.mkdir(parents=True)
        input_path.write_text(json.dumps(room))

        with pytest.raises(IngestError):
            run_pipeline(input_path, config_for(public_dir, clamp_mode=ClampMode.HARD))
        assert not (public_dir / "rooms").exists()

    def test_null_optional_is_schema_error(self, tmp_path, public_dir):
        input_path = create_test_room(tmp_path, meta={"title": "Lab", "summary": None})
        with pytest.raises(SchemaError) as exc_info:
            run_pipeline(input_path, config_for(public_dir))

        assert [issue.path for issue in exc_info.value.issues] == ["meta.summary"]
        assert not (public_dir / "rooms").exists()

    def test_custom_out_dir_and_index(self, tmp_path, public_dir):
        input_path = create_test_room(tmp_path)
        out_dir = tmp_path / "site" / "rooms"
        run_pipeline(input_path, config_for(public_dir, out_dir=out_dir, update_index=True, slug="dmz"))

        assert files_under(out_dir) == ["dmz.final.json", "dmz.manifest.json", "index.json"]
        index = json.loads((out_dir / "index.json").read_text())
        assert index[0]["final"] == "/rooms/dmz.final.json"


class TestCli:
    """Tests for the typer CLI."""

    def test_bundle_command(self, tmp_path, public_dir):
        input_path = create_test_room(tmp_path)
        result = runner.invoke(app, [
            "bundle", str(input_path),
            "--public-dir", str(public_dir),
            "--clamp", "hard",
            "--grid", "0.5",
            "--bundle-assets",
            "--update-index",
        ])

        assert result.exit_code == 0, result.output
        assert (public_dir / "rooms" / "lab.final.json").exists()
        assert (public_dir / "rooms" / "index.json").exists()

    def test_bundle_warnings_exit_zero(self, tmp_path, public_dir):
        input_path = create_test_room(tmp_path, environment={})
        result = runner.invoke(app, ["bundle", str(input_path), "--public-dir", str(public_dir)])

        assert result.exit_code == 0, result.output
        manifest = json.loads((public_dir / "rooms" / "lab.manifest.json").read_text())
        assert len(manifest["warnings"]) == 1

    def test_bundle_schema_failure(self, tmp_path, public_dir):
        input_path = create_test_room(tmp_path, extra_field=True)
        result = runner.invoke(app, ["bundle", str(input_path), "--public-dir", str(public_dir)])

        assert result.exit_code == 1
        assert "extra_field" in result.output

    def test_bundle_missing_asset(self, tmp_path, public_dir):
        devices = [{"alias": "r1", "category": "router", "model": "/models/router", "position": [0, 0, 0]}]
        input_path = create_test_room(tmp_path, devices=devices)
        result = runner.invoke(app, [
            "bundle", str(input_path), "--public-dir", str(public_dir), "--bundle-assets",
        ])

        assert result.exit_code == 1
        assert not (public_dir / "rooms").exists()

    def test_bundle_rejects_negative_grid(self, tmp_path, public_dir):
        input_path = create_test_room(tmp_path)
        result = runner.invoke(app, ["bundle", str(input_path), "--grid", "-1"])

        assert result.exit_code != 0

    def test_validate_command(self, tmp_path, public_dir):
        input_path = create_test_room(tmp_path)
        result = runner.invoke(app, ["validate", str(input_path), "--public-dir", str(public_dir)])

        assert result.exit_code == 0, result.output

    def test_validate_reference_errors(self, tmp_path, public_dir):
        input_path = create_test_room(tmp_path, flows=[{"id": "f1", "path": ["pc1", "nowhere"]}])
        result = runner.invoke(app, ["validate", str(input_path), "--public-dir", str(public_dir)])

        assert result.exit_code == 1

    def test_schema_command(self, tmp_path):
        output_path = tmp_path / "schemas" / "room.schema.json"
        result = runner.invoke(app, ["schema", "--output", str(output_path)])

        assert result.exit_code == 0, result.output
        schema = json.loads(output_path.read_text())
        assert schema["title"] == "RoomConfigV1"
        assert "schemaVersion" in schema["properties"]

    def test_stages_command(self):
        result = runner.invoke(app, ["stages"])

        assert result.exit_code == 0
        assert "Normalize" in result.output
