"""Tests for mesh I/O and the head transform."""
import numpy as np
import pytest
import trimesh

from leaf_mask.contracts import InputError, TransformSpec
from leaf_mask.geometry import (
    apply_transform,
    export_solid,
    load_mesh,
    mesh_stats,
    transform_matrix,
)
from leaf_mask.kernel import empty_mesh


class TestTransform:

    def test_identity(self):
        assert np.allclose(transform_matrix(TransformSpec()), np.eye(4))

    def test_scale_then_rotate_then_translate(self):
        spec = TransformSpec(scale=2.0, rotation_deg=(0.0, 0.0, 90.0), translation=(5.0, 0.0, 0.0))
        point = transform_matrix(spec) @ np.array([1.0, 0.0, 0.0, 1.0])
        # (1,0,0) -> scaled (2,0,0) -> rotated (0,2,0) -> translated (5,2,0)
        assert point[:3] == pytest.approx([5.0, 2.0, 0.0])

    def test_rotation_order_is_x_then_z(self):
        spec = TransformSpec(rotation_deg=(90.0, 0.0, 90.0))
        point = transform_matrix(spec) @ np.array([0.0, 1.0, 0.0, 1.0])
        # X turns +Y into +Z, and Z leaves +Z alone.
        assert point[:3] == pytest.approx([0.0, 0.0, 1.0], abs=1e-9)

    def test_apply_transform_copies(self, cube_10):
        moved = apply_transform(cube_10, TransformSpec(translation=(0.0, 0.0, 10.0)))
        assert moved is not cube_10
        assert cube_10.bounds[0][2] == pytest.approx(-5.0)
        assert moved.bounds[0][2] == pytest.approx(5.0)


class TestLoadMesh:

    def test_loads_stl(self, box_head_file):
        mesh = load_mesh(box_head_file)
        assert mesh.is_watertight
        assert mesh.bounds[0][2] == pytest.approx(0.0)

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputError, match="not found"):
            load_mesh(tmp_path / "missing.stl")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.stl"
        path.write_bytes(b"")
        with pytest.raises(InputError):
            load_mesh(path)

    def test_open_mesh_loads_with_warning(self, open_box, tmp_path, caplog):
        path = tmp_path / "open.ply"
        open_box.export(path)
        mesh = load_mesh(path)
        assert not mesh.is_watertight
        assert "not watertight" in caplog.text


def test_export_and_stats(cube_10, tmp_path):
    path = export_solid(cube_10, tmp_path / "out" / "cube.stl")
    assert path.exists()
    reloaded = trimesh.load(path, force="mesh")
    assert reloaded.volume == pytest.approx(1000.0)

    stats = mesh_stats(cube_10)
    assert stats["faces"] == 12
    assert stats["watertight"] is True
    assert stats["bounds_mm"] == [[-5.0, -5.0, -5.0], [5.0, 5.0, 5.0]]

    empty = mesh_stats(empty_mesh())
    assert empty["faces"] == 0
    assert empty["bounds_mm"] is None
