"""Run folders for mask builds.

Layout of one run::

    <runs_root>/<run_id>/
        input/<head mesh>
        artifacts/design_leaf_mask.json, leaf_mask.scad, checkpoints/...
        output/<run_id>.<fmt>
        manifest.json, metrics.json, summary.md
    <runs_root>/latest.json

The head mesh is checked before anything is created on disk, so a bad
``--mesh`` never leaves an empty run behind.
"""

from __future__ import annotations

import json
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from leaf_mask.contracts import InputError, MaskConfig, MaskRunResult
from leaf_mask.geometry import export_solid

LATEST_POINTER = "latest.json"


def make_run_id(design_name: str, now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
    slug = re.sub(r"[^a-z0-9]+", "_", design_name.lower()).strip("_")
    return f"{stamp}_{slug or 'leaf_mask'}"


def _dump_json(path: Path, payload: Dict[str, Any]) -> None:
    path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")


class MaskRunFolder:
    """One self-contained mask build on disk."""

    def __init__(self, run_dir: Path):
        self.run_dir = Path(run_dir)
        self.run_id = self.run_dir.name
        self.input_dir = self.run_dir / "input"
        self.artifacts_dir = self.run_dir / "artifacts"
        self.output_dir = self.run_dir / "output"
        self.staged_mesh: Optional[Path] = None

    @property
    def design_path(self) -> Path:
        return self.artifacts_dir / "design_leaf_mask.json"

    @property
    def scad_path(self) -> Path:
        return self.artifacts_dir / "leaf_mask.scad"

    @property
    def manifest_path(self) -> Path:
        return self.run_dir / "manifest.json"

    @property
    def metrics_path(self) -> Path:
        return self.run_dir / "metrics.json"

    @property
    def summary_path(self) -> Path:
        return self.run_dir / "summary.md"

    def solid_path(self, file_type: str) -> Path:
        return self.output_dir / f"{self.run_id}.{file_type}"

    @classmethod
    def open(
        cls,
        runs_root: Path,
        design_name: str,
        mesh_path: str,
        now: Optional[datetime] = None,
    ) -> "MaskRunFolder":
        """Create a fresh run folder and copy the head mesh into it.

        Raises InputError before touching the disk when the mesh is missing.
        Two builds started in the same second get ``_2``, ``_3``... suffixes.
        """
        mesh = Path(mesh_path)
        if not mesh.is_file():
            raise InputError(f"Mesh file not found: {mesh}")

        root = Path(runs_root)
        run_id = make_run_id(design_name, now)
        run_dir = root / run_id
        suffix = 2
        while run_dir.exists():
            run_dir = root / f"{run_id}_{suffix}"
            suffix += 1

        folder = cls(run_dir)
        for directory in (folder.input_dir, folder.artifacts_dir, folder.output_dir):
            directory.mkdir(parents=True)
        folder.staged_mesh = Path(shutil.copy2(mesh, folder.input_dir / mesh.name))
        return folder

    def write_result(
        self,
        result: MaskRunResult,
        config: MaskConfig,
        elapsed_s: float,
        file_type: str = "stl",
    ) -> Optional[Path]:
        """Write every artifact of a finished build; returns the solid path, if any."""
        _dump_json(self.design_path, result.design_payload)
        self.scad_path.write_text(result.openscad_code, encoding="utf-8")

        solid_path = None
        if result.status == "ok":
            solid_path = export_solid(result.solid, self.solid_path(file_type), file_type)

        _dump_json(
            self.metrics_path,
            {
                "run_id": result.run_id,
                "status": result.status,
                "elapsed_s": round(elapsed_s, 3),
                "mesh_hash_sha256": result.mesh_hash_sha256,
                "volume_mm3": result.volume_mm3,
                "stages": result.design_payload["stages"],
                "debug": result.debug,
            },
        )
        self.summary_path.write_text(self._summary(result, elapsed_s), encoding="utf-8")
        _dump_json(
            self.manifest_path,
            {
                "run_id": result.run_id,
                "design_name": config.design_name,
                "created_utc": datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
                "input_mesh": str(self.staged_mesh) if self.staged_mesh else config.mesh_path,
                "status": result.status,
                "config": config.to_dict(),
                "artifacts": {
                    "solid": str(solid_path) if solid_path else None,
                    "design_json": str(self.design_path),
                    "openscad_code": str(self.scad_path),
                    "metrics": str(self.metrics_path),
                    "summary": str(self.summary_path),
                    "checkpoints": [str(path) for path in result.checkpoints],
                    "checkpoint_chain": str(result.checkpoint_chain_path),
                },
            },
        )
        return solid_path

    def mark_latest(self, status: str) -> Path:
        pointer = self.run_dir.parent / LATEST_POINTER
        _dump_json(pointer, {"run_id": self.run_id, "run_dir": self.run_id, "status": status})
        return pointer

    @staticmethod
    def _summary(result: MaskRunResult, elapsed_s: float) -> str:
        lines = [
            f"# Leaf mask {result.run_id}",
            "",
            f"- Status: **{result.status.upper()}**",
            f"- Duration: {elapsed_s:.2f}s",
            f"- Output volume: {result.volume_mm3:.1f} mm^3",
            "",
            "| stage | faces | volume mm^3 | seconds |",
            "|---|---:|---:|---:|",
        ]
        for name, stats in result.stages.items():
            lines.append(
                f"| {name} | {stats.faces} | {stats.volume_mm3:.1f} | {stats.elapsed_s:.2f} |"
            )
        lines.append("")
        return "\n".join(lines)


def latest_run(runs_root: Path) -> Optional[Path]:
    pointer = Path(runs_root) / LATEST_POINTER
    if not pointer.is_file():
        return None
    return Path(runs_root) / json.loads(pointer.read_text(encoding="utf-8"))["run_dir"]
