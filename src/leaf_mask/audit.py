"""Hash-chained stage checkpoints for mask runs.

Every pipeline stage leaves one JSON record under ``artifacts/checkpoints``.
Each record carries the digest of the one before it, so the chain file
written at the end pins the whole sequence and ``verify_chain`` can detect
an edited, missing or reordered checkpoint.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from leaf_mask.contracts import StageStats

CHECKPOINT_SCHEMA = "leaf_mask.checkpoint.v1"
CHAIN_SCHEMA = "leaf_mask.checkpoint_chain.v1"
GENESIS_SHA256 = "0" * 64


def _canonical_json(payload: Mapping[str, object]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()


@dataclass(frozen=True)
class Checkpoint:
    index: int
    stage: str
    path: Path
    sha256: str


class AuditTrail:
    """Append-only checkpoint chain for one run."""

    def __init__(self, run_id: str, artifacts_dir: Path):
        self.run_id = run_id
        self.checkpoints_dir = Path(artifacts_dir) / "checkpoints"
        self.chain_path = Path(artifacts_dir) / "checkpoint_chain.json"
        self.checkpoints_dir.mkdir(parents=True, exist_ok=True)
        self._chain: List[Checkpoint] = []

    @property
    def checkpoints(self) -> List[Checkpoint]:
        return list(self._chain)

    @property
    def head_sha256(self) -> str:
        return self._chain[-1].sha256 if self._chain else GENESIS_SHA256

    def record(
        self,
        stage: str,
        *,
        counts: Mapping[str, int],
        metrics: Mapping[str, float],
        invariants: Optional[Mapping[str, object]] = None,
        outputs: Optional[Mapping[str, object]] = None,
        notes: Optional[List[str]] = None,
    ) -> Checkpoint:
        """Write the next checkpoint; indices follow call order."""
        index = len(self._chain)
        body: Dict[str, object] = {
            "schema": CHECKPOINT_SCHEMA,
            "run_id": self.run_id,
            "index": index,
            "stage": stage,
            "created_utc": datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
            "prev_sha256": self.head_sha256,
            "counts": dict(counts),
            "metrics": dict(metrics),
            "invariants": dict(invariants or {}),
            "outputs": dict(outputs or {}),
            "notes": list(notes or []),
        }
        digest = sha256_text(_canonical_json(body))
        path = self.checkpoints_dir / f"{index:02d}_{stage}.json"
        path.write_text(json.dumps({**body, "sha256": digest}, indent=2, sort_keys=True), encoding="utf-8")

        checkpoint = Checkpoint(index=index, stage=stage, path=path, sha256=digest)
        self._chain.append(checkpoint)
        return checkpoint

    def record_stage(self, stats: StageStats, **invariants: object) -> Checkpoint:
        """Checkpoint an evaluated stage from its mesh statistics."""
        return self.record(
            stats.name,
            counts={"faces": stats.faces, "vertices": stats.vertices},
            metrics={"volume_mm3": stats.volume_mm3, "elapsed_s": round(stats.elapsed_s, 3)},
            invariants={"watertight": stats.watertight, **invariants},
        )

    def finalize(self, status: str, mesh_sha256: str) -> Path:
        payload = {
            "schema": CHAIN_SCHEMA,
            "run_id": self.run_id,
            "status": status,
            "mesh_sha256": mesh_sha256,
            "head_sha256": self.head_sha256,
            "checkpoints": [
                {"index": c.index, "stage": c.stage, "file": c.path.name, "sha256": c.sha256}
                for c in self._chain
            ],
        }
        self.chain_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        return self.chain_path


def verify_chain(chain_path: Path) -> List[str]:
    """Re-hash every checkpoint listed in a chain file; returns the problems found."""
    chain_path = Path(chain_path)
    chain = json.loads(chain_path.read_text(encoding="utf-8"))
    checkpoints_dir = chain_path.parent / "checkpoints"

    problems: List[str] = []
    expected_prev = GENESIS_SHA256
    for entry in chain["checkpoints"]:
        path = checkpoints_dir / entry["file"]
        if not path.is_file():
            problems.append(f"{entry['file']}: missing")
            break
        record = json.loads(path.read_text(encoding="utf-8"))
        stored = record.pop("sha256", None)
        if record.get("prev_sha256") != expected_prev:
            problems.append(f"{entry['file']}: chain broken before this checkpoint")
        actual = sha256_text(_canonical_json(record))
        if actual != stored or actual != entry["sha256"]:
            problems.append(f"{entry['file']}: content does not match its digest")
        expected_prev = entry["sha256"]

    if not problems and expected_prev != chain["head_sha256"]:
        problems.append("chain head does not match the last checkpoint")
    return problems
