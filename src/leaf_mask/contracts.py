"""Contracts for the leaf-plate mask pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from shapely import affinity
from shapely.geometry import Polygon, box

Vec3 = Tuple[float, float, float]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class MaskError(Exception):
    """Base class for every failure raised by the mask pipeline."""


class InputError(MaskError, ValueError):
    """Input mesh is missing, unreadable or empty."""


class ConfigError(MaskError, ValueError):
    """Parameter set cannot produce a valid mask."""

    def __init__(self, problems: Sequence[str]):
        self.problems = [str(p) for p in problems]
        super().__init__("; ".join(self.problems) or "invalid configuration")


class GeometryError(MaskError, RuntimeError):
    """A boolean or offset stage produced an unusable result."""

    def __init__(self, stage: str, reason: str):
        self.stage = stage
        self.reason = reason
        super().__init__(f"[{stage}] {reason}")


# ---------------------------------------------------------------------------
# Geometry records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransformSpec:
    """Uniform scale, XYZ rotation (degrees) and translation of the head."""

    scale: float = 1.0
    rotation_deg: Vec3 = (0.0, 0.0, 0.0)
    translation: Vec3 = (0.0, 0.0, 0.0)

    @property
    def is_identity(self) -> bool:
        return (
            self.scale == 1.0
            and not any(self.rotation_deg)
            and not any(self.translation)
        )


@dataclass(frozen=True)
class ClipBox:
    """Face window prism, centred in X/Y, spanning ``[front_z, front_z + depth]``.

    ``expand`` grows (positive) or insets (negative) every face by the same
    amount, so the front plane moves to ``front_z - expand``.
    """

    width: float
    height: float
    depth: float
    front_z: float = 0.0
    expand: float = 0.0

    @property
    def size(self) -> Vec3:
        grow = 2.0 * self.expand
        return (self.width + grow, self.height + grow, self.depth + grow)

    @property
    def z_min(self) -> float:
        return self.front_z - self.expand

    @property
    def z_max(self) -> float:
        return self.front_z + self.depth + self.expand

    @property
    def center(self) -> Vec3:
        return (0.0, 0.0, 0.5 * (self.z_min + self.z_max))

    @property
    def is_valid(self) -> bool:
        return min(self.size) > 0.0

    def expanded(self, delta: float) -> "ClipBox":
        return replace(self, expand=self.expand + float(delta))


@dataclass(frozen=True)
class GridSpec:
    """Leaf placement grid; both axes reach or pass their max endpoint."""

    spacing: float
    x_min: float
    x_max: float
    y_min: float
    y_max: float

    def xs(self) -> List[float]:
        return _axis_samples(self.x_min, self.x_max, self.spacing)

    def ys(self) -> List[float]:
        return _axis_samples(self.y_min, self.y_max, self.spacing)

    def row_index(self, y: float) -> int:
        return int(round((y - self.y_min) / self.spacing))

    @staticmethod
    def is_staggered(row: int) -> bool:
        return row % 2 == 1


@dataclass(frozen=True)
class LeafPrimitive:
    """One plate of the leaf field.

    ``grid_x``/``grid_y`` are the un-staggered cell coordinates (jitter seed),
    ``x``/``y`` the placed centre. The plate is pushed ``push`` in front of
    ``front_z`` and extended by the same amount, so it spans
    ``[front_z - push, front_z + thickness]`` along Z.
    """

    index: int
    row: int
    col: int
    grid_x: float
    grid_y: float
    x: float
    y: float
    angle_deg: float
    length: float
    width: float
    thickness: float
    push: float
    front_z: float

    @property
    def depth(self) -> float:
        return self.thickness + self.push

    @property
    def z_min(self) -> float:
        return self.front_z - self.push

    @property
    def z_max(self) -> float:
        return self.front_z + self.thickness

    def footprint(self) -> Polygon:
        """Pre-conformance footprint: the plate outline before twist."""
        hl, hw = self.length / 2.0, self.width / 2.0
        return box(self.x - hl, self.y - hw, self.x + hl, self.y + hw)

    def twisted_footprint(self) -> Polygon:
        return affinity.rotate(self.footprint(), self.angle_deg, origin=(self.x, self.y))


@dataclass(frozen=True)
class OpeningVolume:
    """Rounded prism subtracted from the mask (size is before rounding)."""

    name: str
    center: Vec3
    size: Vec3
    rounding: float


@dataclass(frozen=True)
class TabVolume:
    """Strap tab box added back after the openings are cut."""

    name: str
    center: Vec3
    size: Vec3


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MaskConfig:
    """Parameter set for one mask run (lengths in mm, angles in degrees)."""

    mesh_path: str
    design_name: str = "leaf_mask"
    transform: TransformSpec = field(default_factory=TransformSpec)

    # Face window
    face_width: float = 140.0
    face_height: float = 180.0
    clip_depth: float = 90.0
    front_z: float = 0.0

    # Shell
    clearance: float = 2.0
    thickness: float = 2.5
    edge_bleed: float = 3.0

    # Leaf field
    leaf_length: float = 36.0
    leaf_width: float = 26.0
    leaf_thickness: float = 40.0
    leaf_spacing: float = 24.0
    leaf_push: float = 10.0
    twist_spread_deg: float = 15.0

    # Openings
    enable_eyes: bool = True
    eye_width: float = 40.0
    eye_height: float = 22.0
    eye_depth: float = 120.0
    eye_offset_x: float = 32.0
    eye_offset_y: float = 25.0
    eye_z_offset: float = 45.0
    enable_nose: bool = True
    nose_width: float = 30.0
    nose_height: float = 20.0
    nose_depth: float = 120.0
    nose_offset_y: float = -35.0
    nose_z_offset: float = 45.0
    opening_rounding: float = 2.0

    # Strap tabs
    enable_tabs: bool = True
    tab_width: float = 12.0
    tab_height: float = 20.0
    tab_depth: float = 4.0
    tab_offset_y: float = 15.0
    tab_z_offset: float = 20.0

    # Tessellation and execution
    segments: int = 16
    parallel: bool = True
    max_workers: Optional[int] = None
    max_offset_faces: Optional[int] = 20000

    @property
    def outer_radius(self) -> float:
        return self.clearance + self.thickness

    @property
    def inner_radius(self) -> float:
        return self.clearance

    def clip_box(self) -> ClipBox:
        return ClipBox(
            width=self.face_width,
            height=self.face_height,
            depth=self.clip_depth,
            front_z=self.front_z,
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MaskConfig":
        """Build a config from a plain mapping such as a JSON params file."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ConfigError([f"unknown option: {key}" for key in unknown])

        problems: List[str] = []
        if "mesh_path" not in payload:
            problems.append("mesh_path: required")
        values: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in payload:
                continue
            try:
                values[f.name] = _coerce_option(f.type, payload[f.name])
            except (TypeError, ValueError) as exc:
                problems.append(f"{f.name}: {exc}")
        if problems:
            raise ConfigError(problems)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, TransformSpec):
                value = {
                    "scale": value.scale,
                    "rotation_deg": list(value.rotation_deg),
                    "translation": list(value.translation),
                }
            payload[f.name] = value
        return payload


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class StageStats:
    """Size and validity of one evaluated pipeline stage."""

    name: str
    faces: int
    vertices: int
    volume_mm3: float
    watertight: bool
    elapsed_s: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.faces == 0


@dataclass
class MaskRunResult:
    """In-memory result from a mask run."""

    run_id: str
    status: str  # "ok" | "empty"
    mesh_hash_sha256: str
    solid: Any  # trimesh.Trimesh
    stages: Dict[str, StageStats]
    csg_tree: Any  # leaf_mask.compositor.MaskTree
    openscad_code: str
    design_payload: Dict[str, object]
    checkpoints: List[Path]
    checkpoint_chain_path: Path
    debug: Dict[str, object] = field(default_factory=dict)

    @property
    def volume_mm3(self) -> float:
        if self.solid is None or len(self.solid.faces) == 0:
            return 0.0
        return float(self.solid.volume)


def to_vec3(values: Sequence[float]) -> Vec3:
    return (float(values[0]), float(values[1]), float(values[2]))


def _axis_samples(lo: float, hi: float, step: float) -> List[float]:
    count = max(0, int(math.ceil((hi - lo) / step - 1e-9)))
    return [lo + i * step for i in range(count + 1)]


def _number(value: Any) -> float:
    # JSON booleans are ints in Python; a flag is never a length.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {value!r}")
    return float(value)


def _coerce_option(type_name: str, value: Any) -> Any:
    """Check one params-file value against the annotated field type."""
    if type_name == "float":
        return _number(value)
    if type_name in ("int", "Optional[int]"):
        if value is None and type_name.startswith("Optional"):
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"expected an integer, got {value!r}")
        return value
    if type_name == "bool":
        if not isinstance(value, bool):
            raise TypeError(f"expected true or false, got {value!r}")
        return value
    if type_name == "str":
        if not isinstance(value, (str, Path)):
            raise TypeError(f"expected a string, got {value!r}")
        return str(value)
    if type_name == "TransformSpec":
        if isinstance(value, TransformSpec):
            return value
        if not isinstance(value, Mapping):
            raise TypeError(f"expected a mapping, got {value!r}")
        unknown = sorted(set(value) - {"scale", "rotation_deg", "translation"})
        if unknown:
            raise ValueError(f"unknown keys {unknown}")
        return TransformSpec(
            scale=_number(value.get("scale", 1.0)),
            rotation_deg=_vec3_option(value.get("rotation_deg", (0.0, 0.0, 0.0))),
            translation=_vec3_option(value.get("translation", (0.0, 0.0, 0.0))),
        )
    return value


def _vec3_option(value: Any) -> Vec3:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence) or len(value) != 3:
        raise TypeError(f"expected three numbers, got {value!r}")
    return to_vec3([_number(v) for v in value])
