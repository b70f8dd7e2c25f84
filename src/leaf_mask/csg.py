"""Explicit CSG tree for the mask and its evaluator.

Nodes are immutable and hashed by identity, so a subtree shared by several
parents (the face section feeds both offsets) is evaluated once. The
evaluator schedules nodes by height: every node in a level depends only on
lower levels, so a level can run on a thread pool and each boolean/offset
waits for all of its inputs.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import trimesh

from leaf_mask import kernel
from leaf_mask.contracts import GeometryError, MaskError, Vec3, to_vec3

logger = logging.getLogger(__name__)

Matrix4 = Tuple[Tuple[float, float, float, float], ...]


class Node:
    """Base class for CSG nodes."""

    label: str

    @property
    def children(self) -> Tuple["Node", ...]:
        return ()

    def compute(self, inputs: Sequence[trimesh.Trimesh]) -> trimesh.Trimesh:
        raise NotImplementedError


@dataclass(frozen=True, eq=False)
class Primitive(Node):
    """Leaf of the tree: a centred box or an imported solid."""

    label: str
    kind: str  # "box" | "solid"
    size: Optional[Vec3] = None
    center: Vec3 = (0.0, 0.0, 0.0)
    mesh: Optional[trimesh.Trimesh] = None
    source: Optional[str] = None

    @classmethod
    def box(cls, label: str, size: Sequence[float], center: Sequence[float] = (0.0, 0.0, 0.0)) -> "Primitive":
        return cls(label=label, kind="box", size=to_vec3(size), center=to_vec3(center))

    @classmethod
    def solid(cls, label: str, mesh: trimesh.Trimesh, source: Optional[str] = None) -> "Primitive":
        return cls(label=label, kind="solid", mesh=mesh, source=source)

    def compute(self, inputs: Sequence[trimesh.Trimesh]) -> trimesh.Trimesh:
        if self.kind == "box":
            return trimesh.creation.box(
                extents=self.size,
                transform=trimesh.transformations.translation_matrix(self.center),
            )
        if self.mesh is None:
            raise GeometryError(self.label, "solid primitive has no mesh")
        return self.mesh.copy()


@dataclass(frozen=True, eq=False)
class Transform(Node):
    """Affine 4x4 transform of a single child."""

    label: str
    matrix: Matrix4
    child: Node

    @classmethod
    def of(cls, label: str, matrix: np.ndarray, child: Node) -> "Transform":
        rows = tuple(tuple(float(v) for v in row) for row in np.asarray(matrix, dtype=float))
        return cls(label=label, matrix=rows, child=child)

    @property
    def children(self) -> Tuple[Node, ...]:
        return (self.child,)

    def compute(self, inputs: Sequence[trimesh.Trimesh]) -> trimesh.Trimesh:
        mesh = inputs[0].copy()
        if not kernel.is_empty(mesh):
            mesh.apply_transform(np.asarray(self.matrix, dtype=float))
        return mesh


@dataclass(frozen=True, eq=False)
class BooleanOp(Node):
    """Ordered boolean over owned operands (difference subtracts the rest from the first)."""

    label: str
    op: str
    operands: Tuple[Node, ...]

    @classmethod
    def of(cls, op: str, *operands: Optional[Node], label: Optional[str] = None) -> Optional[Node]:
        """Build a boolean, treating ``None`` operands as absent features.

        Absent operands vanish from the tree instead of becoming empty
        geometry: a boolean left with a single operand is that
        operand, and a difference without a base is absent.
        """
        if op not in kernel.BOOLEAN_OPS:
            raise ValueError(f"Unknown boolean op: {op}")
        if op == "difference" and (not operands or operands[0] is None):
            return None
        present = tuple(node for node in operands if node is not None)
        if not present:
            return None
        if len(present) == 1:
            return present[0]
        return cls(label=label or op, op=op, operands=present)

    @property
    def children(self) -> Tuple[Node, ...]:
        return self.operands

    def compute(self, inputs: Sequence[trimesh.Trimesh]) -> trimesh.Trimesh:
        return kernel.boolean(self.op, inputs, stage=self.label)


@dataclass(frozen=True, eq=False)
class Offset(Node):
    """Sphere dilation ("inflate") of a single child."""

    label: str
    radius: float
    child: Node
    segments: int = 16
    max_faces: Optional[int] = None

    @property
    def children(self) -> Tuple[Node, ...]:
        return (self.child,)

    def compute(self, inputs: Sequence[trimesh.Trimesh]) -> trimesh.Trimesh:
        return kernel.inflate(
            inputs[0],
            self.radius,
            segments=self.segments,
            max_faces=self.max_faces,
            stage=self.label,
        )


def iter_nodes(root: Node) -> Iterator[Node]:
    """Yield every distinct node once, children before parents."""
    seen = set()
    stack: List[Tuple[Node, bool]] = [(root, False)]
    while stack:
        node, expanded = stack.pop()
        if expanded:
            yield node
            continue
        if node in seen:
            continue
        seen.add(node)
        stack.append((node, True))
        for child in reversed(node.children):
            if child not in seen:
                stack.append((child, False))


def count_nodes(root: Node) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for node in iter_nodes(root):
        name = type(node).__name__
        counts[name] = counts.get(name, 0) + 1
    return counts


def find_node(root: Node, label: str) -> Optional[Node]:
    for node in iter_nodes(root):
        if node.label == label:
            return node
    return None


class Evaluator:
    """Evaluates CSG nodes bottom-up, caching every intermediate solid."""

    def __init__(self, *, parallel: bool = True, max_workers: Optional[int] = None):
        self.parallel = parallel
        self.max_workers = max_workers
        self.timings: Dict[str, float] = {}
        self._results: Dict[Node, trimesh.Trimesh] = {}
        self._pool: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> "Evaluator":
        if self.parallel and self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="csg"
            )
        return self

    def __exit__(self, *exc_info) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def result(self, node: Node) -> Optional[trimesh.Trimesh]:
        return self._results.get(node)

    def run(self, root: Node) -> trimesh.Trimesh:
        for level in _levels(root, self._results):
            if self._pool is not None and len(level) > 1:
                computed = list(self._pool.map(self._compute, level))
            else:
                computed = [self._compute(node) for node in level]
            # Workers only return; shared state is updated on this thread.
            for node, (mesh, elapsed) in zip(level, computed):
                self._results[node] = mesh
                self.timings[node.label] = self.timings.get(node.label, 0.0) + elapsed
        return self._results[root]

    def _compute(self, node: Node) -> Tuple[trimesh.Trimesh, float]:
        inputs = [self._results[child] for child in node.children]
        started = time.perf_counter()
        try:
            mesh = node.compute(inputs)
        except MaskError:
            raise
        except Exception as exc:
            raise GeometryError(
                node.label, f"{type(node).__name__} evaluation failed: {exc}"
            ) from exc
        if not isinstance(node, Primitive):
            kernel.validate_solid(mesh, stage=node.label)
        elapsed = time.perf_counter() - started
        if not isinstance(node, Primitive):
            logger.debug(
                "%s %s -> %d faces in %.3fs",
                type(node).__name__, node.label, len(mesh.faces), elapsed,
            )
        return mesh, elapsed


def evaluate(
    root: Node, *, parallel: bool = True, max_workers: Optional[int] = None
) -> trimesh.Trimesh:
    with Evaluator(parallel=parallel, max_workers=max_workers) as evaluator:
        return evaluator.run(root)


def _levels(root: Node, done: Dict[Node, trimesh.Trimesh]) -> List[List[Node]]:
    heights: Dict[Node, int] = {}
    for node in iter_nodes(root):
        if node in done:
            heights[node] = -1
            continue
        heights[node] = 1 + max((heights[c] for c in node.children), default=-1)

    pending = [node for node, height in heights.items() if height >= 0]
    if not pending:
        return []
    levels: List[List[Node]] = [[] for _ in range(max(heights[n] for n in pending) + 1)]
    for node in pending:
        levels[heights[node]].append(node)
    return levels
