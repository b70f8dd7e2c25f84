"""Mesh kernel: booleans and sphere offsets on watertight trimesh solids.

Every boolean runs through trimesh's ``manifold`` engine (manifold3d). Empty
operands are resolved here so no zero-extent solid ever reaches the engine:

* union drops empty operands,
* intersection with any empty operand is empty,
* difference drops empty cutters and is empty when the base is empty.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import numpy as np
import trimesh

from leaf_mask.contracts import ConfigError, GeometryError

logger = logging.getLogger(__name__)

BOOLEAN_ENGINE = "manifold"
BOOLEAN_OPS = ("union", "intersection", "difference")

_BOOLEAN_FUNCS = {
    "union": trimesh.boolean.union,
    "intersection": trimesh.boolean.intersection,
    "difference": trimesh.boolean.difference,
}


def empty_mesh() -> trimesh.Trimesh:
    return trimesh.Trimesh(
        vertices=np.zeros((0, 3), dtype=float),
        faces=np.zeros((0, 3), dtype=np.int64),
        process=False,
    )


def is_empty(mesh: Optional[trimesh.Trimesh]) -> bool:
    return mesh is None or len(mesh.faces) == 0


def solid_volume(mesh: Optional[trimesh.Trimesh]) -> float:
    if is_empty(mesh):
        return 0.0
    return float(mesh.volume)


def boolean(
    op: str,
    meshes: Iterable[trimesh.Trimesh],
    stage: str = "boolean",
) -> trimesh.Trimesh:
    """Apply *op* across *meshes* in order (difference subtracts the rest from the first)."""
    if op not in BOOLEAN_OPS:
        raise ValueError(f"Unknown boolean op: {op}")
    operands = list(meshes)
    if not operands:
        raise GeometryError(stage, f"{op} called without operands")

    if op == "union":
        operands = [m for m in operands if not is_empty(m)]
        if not operands:
            return empty_mesh()
    elif op == "intersection":
        if any(is_empty(m) for m in operands):
            return empty_mesh()
    else:
        if is_empty(operands[0]):
            return empty_mesh()
        operands = [operands[0]] + [m for m in operands[1:] if not is_empty(m)]

    if len(operands) == 1:
        return operands[0].copy()

    try:
        result = _BOOLEAN_FUNCS[op](operands, engine=BOOLEAN_ENGINE)
    except Exception as exc:
        raise GeometryError(stage, f"{op} of {len(operands)} operands failed: {exc}") from exc
    if result is None:
        return empty_mesh()
    return result


def sphere_kernel(radius: float, segments: int) -> np.ndarray:
    """Vertices of the tessellated sphere swept over the surface."""
    segments = max(3, int(segments))
    sphere = trimesh.creation.uv_sphere(radius=float(radius), count=[segments, segments])
    return np.unique(np.round(np.asarray(sphere.vertices, dtype=float), 12), axis=0)


def inflate(
    mesh: trimesh.Trimesh,
    radius: float,
    segments: int = 16,
    max_faces: Optional[int] = None,
    stage: str = "offset",
) -> trimesh.Trimesh:
    """Minkowski sum of *mesh* with a sphere of *radius*.

    The sum of a solid with a convex kernel equals the solid unioned with the
    sweep of the kernel over every boundary triangle, and each triangle sweep
    is the convex hull of the kernel placed at the three corners. Cost is
    faces x kernel vertices, so *max_faces* caps the input size.
    """
    radius = float(radius)
    if radius < 0.0:
        raise ConfigError([f"offset radius must be >= 0, got {radius}"])
    if is_empty(mesh):
        return empty_mesh()
    if radius == 0.0:
        return mesh.copy()

    face_count = int(len(mesh.faces))
    if max_faces is not None and face_count > int(max_faces):
        raise GeometryError(
            stage,
            f"offset input has {face_count} faces, budget is {int(max_faces)}",
        )

    kernel = sphere_kernel(radius, segments)
    parts: List[trimesh.Trimesh] = [mesh]
    for corners in np.asarray(mesh.triangles, dtype=float):
        swept = (corners[:, None, :] + kernel[None, :, :]).reshape(-1, 3)
        parts.append(trimesh.convex.convex_hull(swept))

    logger.debug(
        "%s: inflating %d faces by r=%.3f with %d kernel vertices",
        stage, face_count, radius, len(kernel),
    )
    return boolean("union", parts, stage=stage)


def validate_solid(mesh: trimesh.Trimesh, stage: str) -> None:
    """Raise when a non-empty result is not a closed manifold.

    An empty result is a legitimate outcome (e.g. disjoint operands) and is
    left for the caller to interpret.
    """
    if is_empty(mesh):
        return
    if not mesh.is_watertight:
        raise GeometryError(
            stage,
            f"non-manifold result: {len(mesh.faces)} faces, not watertight",
        )
    if solid_volume(mesh) <= 0.0:
        raise GeometryError(stage, "result encloses no positive volume")
