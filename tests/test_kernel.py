"""Tests for the boolean/offset kernel."""
import math

import numpy as np
import pytest
import trimesh

from leaf_mask.contracts import ConfigError, GeometryError
from leaf_mask.kernel import (
    boolean,
    empty_mesh,
    inflate,
    is_empty,
    solid_volume,
    sphere_kernel,
    validate_solid,
)


def _box_at(extents, center):
    return trimesh.creation.box(
        extents=extents,
        transform=trimesh.transformations.translation_matrix(center),
    )


class TestBoolean:

    def test_union_of_disjoint_boxes_adds_volume(self, cube_10):
        other = _box_at([10, 10, 10], [30, 0, 0])
        result = boolean("union", [cube_10, other])
        assert result.is_watertight
        assert solid_volume(result) == pytest.approx(2000.0, rel=1e-6)

    def test_intersection_of_overlapping_boxes(self, cube_10):
        shifted = _box_at([10, 10, 10], [5, 0, 0])
        result = boolean("intersection", [cube_10, shifted])
        assert solid_volume(result) == pytest.approx(500.0, rel=1e-6)

    def test_difference_subtracts_every_cutter(self, cube_10):
        cut_a = _box_at([4, 20, 20], [-5, 0, 0])
        cut_b = _box_at([4, 20, 20], [5, 0, 0])
        result = boolean("difference", [cube_10, cut_a, cut_b])
        assert solid_volume(result) == pytest.approx(600.0, rel=1e-6)

    def test_disjoint_intersection_is_empty_not_an_error(self, cube_10):
        far = _box_at([10, 10, 10], [100, 0, 0])
        result = boolean("intersection", [cube_10, far])
        assert is_empty(result)

    def test_empty_operands_never_reach_the_engine(self, cube_10):
        assert is_empty(boolean("intersection", [cube_10, empty_mesh()]))
        assert is_empty(boolean("difference", [empty_mesh(), cube_10]))
        assert is_empty(boolean("union", [empty_mesh(), empty_mesh()]))

        kept = boolean("difference", [cube_10, empty_mesh()])
        assert solid_volume(kept) == pytest.approx(1000.0)
        assert kept is not cube_10

    def test_unknown_op_raises(self, cube_10):
        with pytest.raises(ValueError):
            boolean("xor", [cube_10, cube_10])

    def test_no_operands_reports_stage(self):
        with pytest.raises(GeometryError) as info:
            boolean("union", [], stage="empty_union")
        assert info.value.stage == "empty_union"


class TestInflate:

    def test_cube_dilation_volume_and_front_extent(self, cube_10):
        r = 2.0
        result = inflate(cube_10, r, segments=16)
        assert result.is_watertight

        exact = 10 ** 3 + 6 * 10 ** 2 * r + 3 * math.pi * 10 * r ** 2 + 4.0 / 3.0 * math.pi * r ** 3
        volume = solid_volume(result)
        # Tessellated sphere is inscribed: never larger than the exact sum.
        assert volume <= exact + 1e-6
        assert volume > 1000.0 + 6 * 100 * r * 0.95

        # Sphere poles lie on the Z axis, so Z grows by exactly r each side.
        extents = result.extents
        assert extents[2] == pytest.approx(10.0 + 2 * r, abs=1e-6)
        assert extents[0] <= 10.0 + 2 * r + 1e-6

    def test_zero_radius_is_a_copy(self, cube_10):
        result = inflate(cube_10, 0.0)
        assert result is not cube_10
        assert solid_volume(result) == pytest.approx(1000.0)

    def test_negative_radius_is_a_config_error(self, cube_10):
        with pytest.raises(ConfigError):
            inflate(cube_10, -1.0)

    def test_face_budget(self, cube_10):
        with pytest.raises(GeometryError) as info:
            inflate(cube_10, 1.0, max_faces=4, stage="outer_offset")
        assert info.value.stage == "outer_offset"
        assert "budget" in info.value.reason

    def test_empty_input_stays_empty(self):
        assert is_empty(inflate(empty_mesh(), 3.0))

    def test_kernel_vertices_lie_on_sphere(self):
        points = sphere_kernel(3.0, 10)
        radii = np.linalg.norm(points, axis=1)
        assert np.allclose(radii, 3.0)
        # Poles are present.
        assert points[:, 2].max() == pytest.approx(3.0)
        assert points[:, 2].min() == pytest.approx(-3.0)


class TestValidateSolid:

    def test_closed_solid_passes(self, cube_10):
        validate_solid(cube_10, stage="ok")

    def test_empty_is_allowed(self):
        validate_solid(empty_mesh(), stage="empty")

    def test_open_surface_is_flagged(self, open_box):
        with pytest.raises(GeometryError) as info:
            validate_solid(open_box, stage="base_mask")
        assert info.value.stage == "base_mask"
        assert "non-manifold" in info.value.reason
