"""Head mesh I/O and the pre-clip transform."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

import numpy as np
import trimesh

from leaf_mask.contracts import InputError, TransformSpec
from leaf_mask.kernel import is_empty, solid_volume

logger = logging.getLogger(__name__)


def load_mesh(mesh_path: Path) -> trimesh.Trimesh:
    """Read a triangulated surface; scenes are flattened into one mesh."""
    mesh_path = Path(mesh_path)
    if not mesh_path.is_file():
        raise InputError(f"Mesh file not found: {mesh_path}")
    try:
        loaded = trimesh.load(mesh_path, force="mesh")
    except Exception as exc:
        raise InputError(f"Unreadable mesh {mesh_path}: {exc}") from exc

    if isinstance(loaded, trimesh.Scene):
        meshes = [g for g in loaded.geometry.values() if isinstance(g, trimesh.Trimesh)]
        if not meshes:
            raise InputError(f"Scene has no mesh geometry: {mesh_path}")
        loaded = trimesh.util.concatenate(meshes)
    if not isinstance(loaded, trimesh.Trimesh):
        raise InputError(f"Unsupported mesh type from {mesh_path}")
    if is_empty(loaded):
        raise InputError(f"Empty mesh: {mesh_path}")

    if not loaded.is_watertight:
        # Not repaired here; booleans downstream will report the failing stage.
        logger.warning("Input mesh %s is not watertight", mesh_path)
    return loaded


def transform_matrix(spec: TransformSpec) -> np.ndarray:
    """Scale, then rotate about X, Y, Z (static axes), then translate."""
    scale = np.diag([spec.scale, spec.scale, spec.scale, 1.0])
    rx, ry, rz = np.radians(np.asarray(spec.rotation_deg, dtype=float))
    rotation = trimesh.transformations.euler_matrix(rx, ry, rz, axes="sxyz")
    translation = trimesh.transformations.translation_matrix(spec.translation)
    return translation @ rotation @ scale


def apply_transform(mesh: trimesh.Trimesh, spec: TransformSpec) -> trimesh.Trimesh:
    out = mesh.copy()
    out.apply_transform(transform_matrix(spec))
    return out


def export_solid(mesh: trimesh.Trimesh, path: Path, file_type: str = "stl") -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    mesh.export(path, file_type=file_type)
    return path


def mesh_stats(mesh: trimesh.Trimesh) -> Dict[str, object]:
    if is_empty(mesh):
        return {
            "faces": 0,
            "vertices": 0,
            "volume_mm3": 0.0,
            "watertight": False,
            "bounds_mm": None,
        }
    bounds = np.asarray(mesh.bounds, dtype=float)
    return {
        "faces": int(len(mesh.faces)),
        "vertices": int(len(mesh.vertices)),
        "volume_mm3": solid_volume(mesh),
        "watertight": bool(mesh.is_watertight),
        "bounds_mm": [[float(v) for v in row] for row in bounds],
    }
