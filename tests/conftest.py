"""
Shared fixtures for the leaf mask tests.

The "head" used throughout is a 200 x 240 x 200 mm box whose front face sits
at z=0 and looks toward -Z, so every stage has a closed-form expected shape
and the offset/boolean work stays small.
"""
import sys
from pathlib import Path

import numpy as np
import pytest
import trimesh

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from leaf_mask.contracts import MaskConfig
from leaf_mask.kernel import boolean, solid_volume

HEAD_EXTENTS = (200.0, 240.0, 200.0)


def make_config(mesh_path: str = "head.stl", **overrides) -> MaskConfig:
    """Small, fast config framing the box head: clip box spans z in [-10, 80]."""
    defaults = dict(
        mesh_path=mesh_path,
        design_name="test_mask",
        front_z=-10.0,
        segments=8,
        parallel=False,
    )
    defaults.update(overrides)
    return MaskConfig(**defaults)


def occupied(mesh: trimesh.Trimesh, point, size: float = 0.5) -> bool:
    """True when a small cube around *point* overlaps the solid."""
    cell = trimesh.creation.box(
        extents=[size, size, size],
        transform=trimesh.transformations.translation_matrix(point),
    )
    return solid_volume(boolean("intersection", [mesh, cell])) > 1e-6


@pytest.fixture
def box_head():
    mesh = trimesh.creation.box(extents=HEAD_EXTENTS)
    mesh.apply_translation([0.0, 0.0, HEAD_EXTENTS[2] / 2.0])
    return mesh


@pytest.fixture
def box_head_file(box_head, tmp_path: Path) -> str:
    path = tmp_path / "head.stl"
    box_head.export(path)
    return str(path)


@pytest.fixture
def cube_10():
    """10 mm cube centred on the origin."""
    return trimesh.creation.box(extents=[10.0, 10.0, 10.0])


@pytest.fixture
def open_box():
    """Box with one face removed: not watertight."""
    mesh = trimesh.creation.box(extents=[10.0, 10.0, 10.0])
    keep = np.ones(len(mesh.faces), dtype=bool)
    keep[0] = False
    mesh.update_faces(keep)
    return mesh


@pytest.fixture
def ellipsoid_head_file(tmp_path: Path) -> str:
    """Curved head: 160 x 200 x 180 mm ellipsoid with its front at z=0."""
    mesh = trimesh.creation.icosphere(subdivisions=2, radius=1.0)
    mesh.apply_scale([80.0, 100.0, 90.0])
    mesh.apply_translation([0.0, 0.0, 90.0])
    path = tmp_path / "ellipsoid_head.stl"
    mesh.export(path)
    return str(path)
