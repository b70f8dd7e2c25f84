"""Procedural leaf field: staggered grid of jittered plates.

Leaves are plain descriptors until ``leaf_field`` turns them into CSG nodes,
so what leaves exist is decided independently of how they get unioned.
"""

from __future__ import annotations

import logging
import math
from typing import Iterator, List, Tuple

import numpy as np
import trimesh
from shapely.geometry import Point
from shapely.ops import unary_union

from leaf_mask.contracts import GridSpec, LeafPrimitive, MaskConfig
from leaf_mask.csg import BooleanOp, Node, Primitive, Transform

logger = logging.getLogger(__name__)

# Trigonometric hash constants; fixed so fabricated parts are reproducible.
_HASH_X = 12.9898
_HASH_Y = 78.233
_HASH_GAIN = 43758.5453


def perturbation(x: float, y: float, spread: float) -> float:
    """Deterministic rotation offset in ``[-spread, spread]`` for a grid cell."""
    spread = abs(float(spread))
    if spread == 0.0:
        return 0.0
    value = math.sin(float(x) * _HASH_X + float(y) * _HASH_Y) * _HASH_GAIN
    fraction = value - math.floor(value)
    return (2.0 * fraction - 1.0) * spread


def leaf_grid(config: MaskConfig) -> GridSpec:
    half_w = config.face_width / 2.0
    half_h = config.face_height / 2.0
    return GridSpec(
        spacing=config.leaf_spacing,
        x_min=-half_w,
        x_max=half_w,
        y_min=-half_h,
        y_max=half_h,
    )


class LeafSequence:
    """Finite, restartable sequence of the leaves for one config."""

    def __init__(self, config: MaskConfig):
        self.config = config
        self.grid = leaf_grid(config)

    def __len__(self) -> int:
        return len(self.grid.xs()) * len(self.grid.ys())

    def __iter__(self) -> Iterator[LeafPrimitive]:
        config = self.config
        grid = self.grid
        xs = grid.xs()
        index = 0
        for grid_y in grid.ys():
            row = grid.row_index(grid_y)
            shift = grid.spacing / 2.0 if grid.is_staggered(row) else 0.0
            for col, grid_x in enumerate(xs):
                yield LeafPrimitive(
                    index=index,
                    row=row,
                    col=col,
                    grid_x=grid_x,
                    grid_y=grid_y,
                    x=grid_x + shift,
                    y=grid_y,
                    angle_deg=perturbation(grid_x, grid_y, config.twist_spread_deg),
                    length=config.leaf_length,
                    width=config.leaf_width,
                    thickness=config.leaf_thickness,
                    push=config.leaf_push,
                    front_z=config.front_z,
                )
                index += 1


def iter_leaves(config: MaskConfig) -> Iterator[LeafPrimitive]:
    return iter(LeafSequence(config))


def leaf_node(leaf: LeafPrimitive) -> Node:
    """Plate primitive for *leaf*, twisted about Z and pushed through the front plane.

    The plate starts ``push`` in front of ``front_z`` so it passes through the
    whole shell, including any surface bulging past the clip plane, and the
    later intersection leaves it following the shell surface.
    """
    plate = Primitive.box(
        f"leaf_{leaf.index}_plate",
        size=(leaf.length, leaf.width, leaf.depth),
        center=(0.0, 0.0, leaf.depth / 2.0 - leaf.push),
    )
    rotation = trimesh.transformations.rotation_matrix(
        math.radians(leaf.angle_deg), [0.0, 0.0, 1.0]
    )
    translation = trimesh.transformations.translation_matrix([leaf.x, leaf.y, leaf.front_z])
    return Transform.of(f"leaf_{leaf.index}", translation @ rotation, plate)


def leaf_field(config: MaskConfig) -> Node:
    leaves = LeafSequence(config)
    logger.debug("Leaf field: %d leaves at spacing %.2f", len(leaves), config.leaf_spacing)
    return BooleanOp.of("union", *(leaf_node(leaf) for leaf in leaves), label="leaf_field")


# ---------------------------------------------------------------------------
# Coverage
# ---------------------------------------------------------------------------

def coverage_holds(config: MaskConfig) -> bool:
    """Spacing rule under which footprints provably leave no gap."""
    return config.leaf_spacing <= min(config.leaf_length, config.leaf_width)


def coverage_gaps(config: MaskConfig, samples: int = 41) -> List[Tuple[float, float]]:
    """Sampled face-window points not covered by any leaf footprint."""
    covered = unary_union([leaf.footprint() for leaf in LeafSequence(config)])
    half_w = config.face_width / 2.0
    half_h = config.face_height / 2.0
    gaps: List[Tuple[float, float]] = []
    for y in np.linspace(-half_h, half_h, samples):
        for x in np.linspace(-half_w, half_w, samples):
            if not covered.covers(Point(float(x), float(y))):
                gaps.append((float(x), float(y)))
    return gaps
