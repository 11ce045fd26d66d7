"""Tests for geometric normalization."""

import numpy as np
import pytest

from conftest import make_room
from bundler.normalize import ClampMode, ClampPolicy, normalize_position, normalize_room
from utils.geometry import clamp_bounds, in_bounds, room_bounds, snap
from utils.validation import parse_room


def scattered_room(width=10, height=3, depth=10):
    """A room with placements far outside its bounds in every direction."""
    return parse_room(make_room(
        structure={
            "dimensions": {"width": width, "height": height, "depth": depth},
            "decor": [
                {"id": "sign", "type": "poster", "position": [-40, 9, 0.3], "caption": "Exit"},
                {"id": "ceiling", "type": "ceiling_soffit"},
            ],
        },
        devices=[
            {"alias": "fw1", "category": "firewall", "model": "/m/fw.glb", "position": [6, 0, 0]},
            {"alias": "sw1", "category": "switch", "model": "/m/sw.glb", "position": [-7.3, -1, 12]},
            {"alias": "pc1", "category": "desktop", "model": "/m/pc.glb", "position": [1.26, 0.74, -0.2]},
        ],
    ))


class TestGeometry:
    """Tests for bounds and snapping helpers."""

    def test_room_bounds(self):
        low, high = room_bounds(10, 3, 8)
        np.testing.assert_array_almost_equal(low, [-5, 0, -4])
        np.testing.assert_array_almost_equal(high, [5, 3, 4])

    def test_clamp_bounds_keep_floor(self):
        low, high = clamp_bounds(10, 3, 8, 0.25)
        np.testing.assert_array_almost_equal(low, [-4.75, 0, -3.75])
        np.testing.assert_array_almost_equal(high, [4.75, 2.75, 3.75])

    def test_in_bounds_inclusive(self):
        low, high = room_bounds(10, 3, 10)
        assert in_bounds([5, 3, -5], low, high)
        assert not in_bounds([5.01, 0, 0], low, high)

    def test_snap_rounds_half_up(self):
        np.testing.assert_array_almost_equal(snap([0.25, -0.25, 0.74], 0.5), [0.5, 0.0, 0.5])

    def test_snap_disabled(self):
        np.testing.assert_array_almost_equal(snap([0.33, 1.7, 2.1], 0), [0.33, 1.7, 2.1])


class TestClampPolicy:
    """Tests for policy construction."""

    def test_negative_grid_rejected(self):
        with pytest.raises(ValueError):
            ClampPolicy(ClampMode.HARD, grid_step=-0.5)

    def test_mode_from_string(self):
        policy = ClampPolicy("soft", 0.5)
        assert policy.clamp_mode is ClampMode.SOFT
        assert policy.describe() == "soft, grid=0.5"

    def test_identity(self):
        assert ClampPolicy().is_identity
        assert not ClampPolicy(grid_step=0.1).is_identity


class TestNormalizeRoom:
    """Tests for normalize_room."""

    def test_hard_clamp_scenario(self):
        """A device at x=6 in a 10-wide room is clamped to 4.75 under hard mode."""
        room = normalize_room(scattered_room(), ClampPolicy(ClampMode.HARD))
        assert room.devices[0].position == (4.75, 0.0, 0.0)

    @pytest.mark.parametrize("mode,margin", [(ClampMode.HARD, 0.25), (ClampMode.SOFT, 0.15)])
    def test_clamp_margins(self, mode, margin):
        """Every device X lies in [-W/2 + margin, W/2 - margin]."""
        room = normalize_room(scattered_room(width=10, height=3), ClampPolicy(mode))

        for device in room.devices:
            x, y, z = device.position
            assert -5 + margin - 1e-9 <= x <= 5 - margin + 1e-9
            assert -5 + margin - 1e-9 <= z <= 5 - margin + 1e-9
            assert 0 <= y <= 3 - margin + 1e-9

    def test_clamp_applies_to_decor(self):
        room = normalize_room(scattered_room(), ClampPolicy(ClampMode.SOFT))
        sign = room.structure.decor[0]

        assert sign.position == pytest.approx((-4.85, 2.85, 0.3))
        assert room.structure.decor[1].position is None

    def test_grid_without_clamp(self):
        """With clamp none and grid 0.5 every component is a multiple of 0.5."""
        room = normalize_room(scattered_room(), ClampPolicy(ClampMode.NONE, grid_step=0.5))

        positions = [d.position for d in room.devices] + [room.structure.decor[0].position]
        for position in positions:
            for value in position:
                assert (value / 0.5).is_integer()
        # Out-of-bounds positions are left in place when not clamping
        assert room.devices[1].position == (-7.5, -1.0, 12.0)

    def test_snap_after_clamp(self):
        position = normalize_position([6, 0, 0], scattered_room().structure.dimensions,
                                      ClampPolicy(ClampMode.HARD, grid_step=0.5))
        assert position == [5.0, 0.0, 0.0]

    def test_no_negative_zero(self):
        position = normalize_position([-0.0, 0, 0], scattered_room().structure.dimensions,
                                      ClampPolicy(ClampMode.HARD))
        assert str(position[0]) == "0.0"

    def test_identity_policy_keeps_positions(self):
        source = scattered_room()
        room = normalize_room(source, ClampPolicy())
        assert room.to_document() == source.to_document()

    def test_input_not_modified(self):
        source = scattered_room()
        before = source.to_document()
        normalize_room(source, ClampPolicy(ClampMode.HARD, grid_step=0.25))

        assert source.to_document() == before

    def test_only_positions_change(self):
        """Normalization never adds visual defaults or drops passthrough fields."""
        raw = make_room()
        del raw["environment"]
        source = parse_room(raw)
        document = normalize_room(source, ClampPolicy(ClampMode.HARD, grid_step=0.5)).to_document()

        assert "environment" not in document
        assert "theme" not in document
        assert document["structure"]["decor"][0]["imageUrl"] == "/textures/poster.png"
        assert set(document) == set(source.to_document())
