#!/usr/bin/env python3
"""Build a leaf-plate mask solid from a head mesh."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from leaf_mask import ConfigError, GeometryError, InputError, MaskConfig, MaskError, run_mask_pipeline
from leaf_mask.audit import AuditTrail
from leaf_mask.runs import MaskRunFolder

EXIT_INPUT = 2
EXIT_CONFIG = 3
EXIT_GEOMETRY = 4

# CLI flag -> MaskConfig field; flags left unset keep the params file / default value.
_FLOAT_OPTIONS = {
    "face_width": "Face window width (X)",
    "face_height": "Face window height (Y)",
    "clip_depth": "Clip box depth (Z)",
    "front_z": "Z of the clip front plane",
    "clearance": "Gap between face and mask (inner offset radius)",
    "thickness": "Shell wall thickness",
    "edge_bleed": "Inset of the inner clip at the rim",
    "leaf_length": "Leaf plate length",
    "leaf_width": "Leaf plate width",
    "leaf_thickness": "Leaf plate depth before push",
    "leaf_spacing": "Leaf grid spacing",
    "leaf_push": "Extra leaf depth behind the front plane",
    "twist_spread_deg": "Leaf rotation jitter bound in degrees",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Synthesize a 3D-printable leaf-plate mask from a head mesh"
    )
    parser.add_argument("--mesh", required=True, help="Path to head mesh (.stl/.obj/.ply)")
    parser.add_argument("--name", default="leaf_mask", help="Design/run name")
    parser.add_argument("--runs-dir", default="runs", help="Runs output root")
    parser.add_argument("--params", default=None, help="JSON file of MaskConfig options")
    parser.add_argument("--scale", type=float, default=None, help="Uniform scale of the head")
    parser.add_argument(
        "--rotate", type=float, nargs=3, default=None, metavar=("RX", "RY", "RZ"),
        help="Head rotation in degrees, applied X then Y then Z",
    )
    parser.add_argument(
        "--translate", type=float, nargs=3, default=None, metavar=("TX", "TY", "TZ"),
        help="Head translation in mm",
    )
    for name, help_text in _FLOAT_OPTIONS.items():
        parser.add_argument(
            "--" + name.replace("_", "-"), dest=name, type=float, default=None, help=help_text
        )
    parser.add_argument("--no-eyes", action="store_true", help="Skip the eye openings")
    parser.add_argument("--no-nose", action="store_true", help="Skip the nose/mouth slot")
    parser.add_argument("--no-tabs", action="store_true", help="Skip the strap tabs")
    parser.add_argument(
        "--segments", type=int, default=None, help="Tessellation resolution of curved parts"
    )
    parser.add_argument("--serial", action="store_true", help="Evaluate without a thread pool")
    parser.add_argument("--format", default="stl", help="Output mesh format (stl, ply, obj)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logs")
    return parser


def load_params(path: str) -> Dict[str, Any]:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError([f"cannot read params file {path}: {exc.strerror or exc}"]) from exc
    except json.JSONDecodeError as exc:
        raise ConfigError([f"params file {path} is not valid JSON: {exc}"]) from exc
    if not isinstance(payload, dict):
        raise ConfigError([f"params file {path} must hold a JSON object"])
    return payload


def build_config(args: argparse.Namespace, mesh_path: str) -> MaskConfig:
    values: Dict[str, Any] = {}
    if args.params:
        values.update(load_params(args.params))

    transform = values.get("transform") or {}
    if not isinstance(transform, dict):
        raise ConfigError(["transform: expected an object with scale, rotation_deg, translation"])
    transform = dict(transform)
    if args.scale is not None:
        transform["scale"] = args.scale
    if args.rotate is not None:
        transform["rotation_deg"] = args.rotate
    if args.translate is not None:
        transform["translation"] = args.translate
    if transform:
        values["transform"] = transform

    for name in _FLOAT_OPTIONS:
        value = getattr(args, name)
        if value is not None:
            values[name] = value
    if args.no_eyes:
        values["enable_eyes"] = False
    if args.no_nose:
        values["enable_nose"] = False
    if args.no_tabs:
        values["enable_tabs"] = False
    if args.segments is not None:
        values["segments"] = args.segments
    if args.serial:
        values["parallel"] = False

    values["mesh_path"] = mesh_path
    values["design_name"] = args.name
    return MaskConfig.from_dict(values)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    started = time.perf_counter()
    try:
        config = build_config(args, args.mesh)
        folder = MaskRunFolder.open(Path(args.runs_dir), args.name, args.mesh)
        config = replace(config, mesh_path=str(folder.staged_mesh))
        result = run_mask_pipeline(
            config=config,
            run_id=folder.run_id,
            artifacts_dir=folder.artifacts_dir,
            audit=AuditTrail(run_id=folder.run_id, artifacts_dir=folder.artifacts_dir),
        )
    except InputError as exc:
        print(f"Input error: {exc}", file=sys.stderr)
        return EXIT_INPUT
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    except GeometryError as exc:
        print(f"Geometry error in stage {exc.stage}: {exc.reason}", file=sys.stderr)
        return EXIT_GEOMETRY
    except MaskError as exc:
        print(f"Mask error: {exc}", file=sys.stderr)
        return 1
    elapsed = time.perf_counter() - started

    solid_path = folder.write_result(result, config, elapsed, args.format)
    folder.mark_latest(result.status)

    print(f"Run ID: {result.run_id}")
    print(f"Run dir: {folder.run_dir}")
    print(f"Status: {result.status.upper()}")
    print(f"Volume: {result.volume_mm3:.1f} mm^3")
    if solid_path:
        print(f"Solid: {solid_path}")
    print(f"OpenSCAD: {folder.scad_path}")
    print(f"Design JSON: {folder.design_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
