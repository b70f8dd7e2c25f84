"""Leaf-plate mask pipeline: head mesh -> single manifold mask solid."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Dict, Optional

import trimesh

from leaf_mask.audit import AuditTrail, sha256_file
from leaf_mask.compositor import MaskTree, build_mask_tree, compositor_stages
from leaf_mask.contracts import (
    GeometryError,
    MaskConfig,
    MaskRunResult,
    StageStats,
)
from leaf_mask.csg import Evaluator, Node, count_nodes
from leaf_mask.features import opening_volumes, tab_volumes
from leaf_mask.geometry import load_mesh, mesh_stats
from leaf_mask.kernel import empty_mesh, is_empty, solid_volume
from leaf_mask.leaves import LeafSequence
from leaf_mask.scad_writer import render_openscad
from leaf_mask.validation import validate_config

logger = logging.getLogger(__name__)


def run_mask_pipeline(
    *,
    config: MaskConfig,
    run_id: str,
    artifacts_dir: Path,
    audit: Optional[AuditTrail] = None,
) -> MaskRunResult:
    if audit is None:
        audit = AuditTrail(run_id=run_id, artifacts_dir=artifacts_dir)

    mesh_path = Path(config.mesh_path)
    mesh = load_mesh(mesh_path)
    mesh_hash = sha256_file(mesh_path)
    validate_config(config)

    tree = build_mask_tree(mesh, config)
    leaves = LeafSequence(config)
    node_counts = count_nodes(tree.root)
    audit.record(
        "preflight",
        counts={
            "vertices": int(len(mesh.vertices)),
            "faces": int(len(mesh.faces)),
            "leaves": len(leaves),
            "openings": len(opening_volumes(config)),
            "tabs": len(tab_volumes(config)),
            "csg_nodes": int(sum(node_counts.values())),
        },
        metrics={
            "outer_radius_mm": float(config.outer_radius),
            "inner_radius_mm": float(config.inner_radius),
            "edge_bleed_mm": float(config.edge_bleed),
            "leaf_spacing_mm": float(config.leaf_spacing),
        },
        invariants={
            "units": "mm",
            "depth_axis": "z",
            "input_watertight": bool(mesh.is_watertight),
            "compositor_stages": compositor_stages(config),
        },
        outputs={"csg_node_counts": node_counts, "mesh_sha256": mesh_hash},
    )
    logger.info(
        "Mask %s: %d faces in, %d leaves, stages %s",
        config.design_name, len(mesh.faces), len(leaves), ", ".join(compositor_stages(config)),
    )

    stages: Dict[str, StageStats] = {}
    with Evaluator(parallel=config.parallel, max_workers=config.max_workers) as evaluator:
        face = _run_stage(evaluator, "face_section", tree.face_section, stages)
        if is_empty(face):
            logger.warning("Clip box does not intersect the head mesh; mask is empty")
            checkpoint = audit.record(
                "face_section",
                counts={"faces": 0},
                metrics={"volume_mm3": 0.0},
                invariants={"status": "empty"},
                notes=["clip box misses head; nothing to build"],
            )
            return _finish(
                config=config,
                run_id=run_id,
                audit=audit,
                status="empty",
                mesh_hash=mesh_hash,
                solid=empty_mesh(),
                tree=tree,
                stages=stages,
                debug={"final_checkpoint_sha256": checkpoint.sha256},
            )
        audit.record_stage(stages["face_section"])

        base = _run_stage(evaluator, "base_mask", tree.base_mask, stages)
        if solid_volume(base) <= 0.0:
            raise GeometryError("base_mask", "shell has no volume despite a non-empty face section")
        audit.record_stage(stages["base_mask"], wall_thickness_mm=float(config.thickness))

        _run_stage(evaluator, "leaf_field", tree.leaf_field, stages)
        audit.record_stage(
            stages["leaf_field"],
            twist_spread_deg=float(config.twist_spread_deg),
            leaf_push_mm=float(config.leaf_push),
        )

        solid = _run_stage(evaluator, "composition", tree.root, stages)
        if is_empty(solid):
            raise GeometryError("composition", "final boolean sequence produced an empty solid")
        composition_checkpoint = audit.record_stage(
            stages["composition"], compositor_stages=compositor_stages(config)
        )
        timings = dict(evaluator.timings)

    return _finish(
        config=config,
        run_id=run_id,
        audit=audit,
        status="ok",
        mesh_hash=mesh_hash,
        solid=solid,
        tree=tree,
        stages=stages,
        debug={
            "final_checkpoint_sha256": composition_checkpoint.sha256,
            "slowest_nodes": _slowest(timings),
        },
    )


def _run_stage(
    evaluator: Evaluator, name: str, node: Node, stages: Dict[str, StageStats]
) -> trimesh.Trimesh:
    started = time.perf_counter()
    try:
        mesh = evaluator.run(node)
    except GeometryError as exc:
        logger.error("Stage %s failed at %s: %s", name, exc.stage, exc.reason)
        raise
    elapsed = time.perf_counter() - started
    stats = mesh_stats(mesh)
    stages[name] = StageStats(
        name=name,
        faces=int(stats["faces"]),
        vertices=int(stats["vertices"]),
        volume_mm3=float(stats["volume_mm3"]),
        watertight=bool(stats["watertight"]),
        elapsed_s=elapsed,
    )
    logger.info(
        "Stage %s: %d faces, %.1f mm^3 in %.2fs",
        name, stages[name].faces, stages[name].volume_mm3, elapsed,
    )
    return mesh


def _finish(
    *,
    config: MaskConfig,
    run_id: str,
    audit: AuditTrail,
    status: str,
    mesh_hash: str,
    solid: trimesh.Trimesh,
    tree: MaskTree,
    stages: Dict[str, StageStats],
    debug: Dict[str, object],
) -> MaskRunResult:
    scad_code = render_openscad(tree.root, design_name=config.design_name, segments=config.segments)
    chain_path = audit.finalize(status, mesh_hash)
    return MaskRunResult(
        run_id=run_id,
        status=status,
        mesh_hash_sha256=mesh_hash,
        solid=solid,
        stages=stages,
        csg_tree=tree,
        openscad_code=scad_code,
        design_payload=_build_design_payload(
            run_id=run_id,
            config=config,
            status=status,
            mesh_hash=mesh_hash,
            solid=solid,
            stages=stages,
        ),
        checkpoints=[c.path for c in audit.checkpoints],
        checkpoint_chain_path=chain_path,
        debug=debug,
    )


def _build_design_payload(
    *,
    run_id: str,
    config: MaskConfig,
    status: str,
    mesh_hash: str,
    solid: trimesh.Trimesh,
    stages: Dict[str, StageStats],
) -> Dict[str, object]:
    return {
        "schema_version": "leaf_mask.design.v1",
        "run_id": run_id,
        "design_name": config.design_name,
        "status": status,
        "mesh_sha256": mesh_hash,
        "config": config.to_dict(),
        "compositor_stages": compositor_stages(config),
        "leaves": [
            {
                "index": leaf.index,
                "row": leaf.row,
                "x": leaf.x,
                "y": leaf.y,
                "angle_deg": leaf.angle_deg,
            }
            for leaf in LeafSequence(config)
        ],
        "openings": [
            {"name": v.name, "center": list(v.center), "size": list(v.size), "rounding": v.rounding}
            for v in opening_volumes(config)
        ],
        "tabs": [
            {"name": v.name, "center": list(v.center), "size": list(v.size)}
            for v in tab_volumes(config)
        ],
        "stages": {
            name: {
                "faces": s.faces,
                "volume_mm3": s.volume_mm3,
                "watertight": s.watertight,
            }
            for name, s in stages.items()
        },
        "solid": mesh_stats(solid),
    }


def _slowest(timings: Dict[str, float], limit: int = 5) -> Dict[str, float]:
    ranked = sorted(timings.items(), key=lambda item: (-item[1], item[0]))[:limit]
    return {label: round(seconds, 3) for label, seconds in ranked}
