"""Tests for the CSG tree and its evaluator."""
import numpy as np
import pytest
import trimesh

from leaf_mask.contracts import GeometryError
from leaf_mask.csg import (
    BooleanOp,
    Evaluator,
    Offset,
    Primitive,
    Transform,
    count_nodes,
    evaluate,
    find_node,
    iter_nodes,
)


def _tree():
    a = Primitive.box("a", (10, 10, 10))
    b = Primitive.box("b", (10, 10, 10), center=(5, 0, 0))
    c = Primitive.box("c", (2, 2, 30), center=(0, 0, 0))
    shifted = Transform.of("shifted", trimesh.transformations.translation_matrix([0, 3, 0]), c)
    body = BooleanOp.of("union", a, b, label="body")
    return BooleanOp.of("difference", body, shifted, label="root")


class TestBooleanOf:

    def test_absent_operands_vanish(self):
        a = Primitive.box("a", (1, 1, 1))
        assert BooleanOp.of("union", a, None) is a
        assert BooleanOp.of("intersection", None, a) is a
        assert BooleanOp.of("union", None, None) is None

    def test_difference_without_base_is_absent(self):
        cutter = Primitive.box("cutter", (1, 1, 1))
        assert BooleanOp.of("difference", None, cutter) is None

    def test_difference_without_cutters_is_the_base(self):
        base = Primitive.box("base", (1, 1, 1))
        assert BooleanOp.of("difference", base, None) is base

    def test_label_defaults_to_op(self):
        a = Primitive.box("a", (1, 1, 1))
        b = Primitive.box("b", (1, 1, 1))
        node = BooleanOp.of("intersection", a, b)
        assert node.label == "intersection"
        assert node.operands == (a, b)

    def test_unknown_op(self):
        with pytest.raises(ValueError):
            BooleanOp.of("xor", Primitive.box("a", (1, 1, 1)))


class TestTraversal:

    def test_children_come_before_parents(self):
        root = _tree()
        order = [node.label for node in iter_nodes(root)]
        assert order[-1] == "root"
        assert order.index("a") < order.index("body")
        assert order.index("c") < order.index("shifted")

    def test_shared_subtree_is_visited_once(self):
        shared = Primitive.box("shared", (4, 4, 4))
        left = Offset(label="left", radius=1.0, child=shared, segments=6)
        right = Offset(label="right", radius=0.5, child=shared, segments=6)
        root = BooleanOp.of("difference", left, right, label="root")

        labels = [node.label for node in iter_nodes(root)]
        assert labels.count("shared") == 1
        assert count_nodes(root) == {"Primitive": 1, "Offset": 2, "BooleanOp": 1}

    def test_find_node(self):
        root = _tree()
        assert find_node(root, "shifted").label == "shifted"
        assert find_node(root, "missing") is None


class TestEvaluator:

    def test_result_volume(self):
        mesh = evaluate(_tree(), parallel=False)
        # 15 x 10 x 10 slab minus the 2 x 2 x 10 part of the pin inside it.
        assert mesh.is_watertight
        assert mesh.volume == pytest.approx(1500.0 - 40.0, rel=1e-6)

    def test_parallel_matches_serial(self):
        serial = evaluate(_tree(), parallel=False)
        parallel = evaluate(_tree(), parallel=True, max_workers=4)
        assert parallel.volume == pytest.approx(serial.volume, rel=1e-9)
        assert np.allclose(parallel.bounds, serial.bounds)

    def test_intermediate_results_are_cached(self):
        root = _tree()
        with Evaluator(parallel=False) as evaluator:
            evaluator.run(root)
            body = evaluator.result(find_node(root, "body"))
            assert body.volume == pytest.approx(1500.0, rel=1e-6)
            first = evaluator.result(root)
            # A second run reuses the cached solids.
            assert evaluator.run(root) is first
        assert "body" in evaluator.timings

    def test_solid_primitive_returns_a_copy(self, cube_10):
        node = Primitive.solid("head", cube_10, source="cube.stl")
        mesh = evaluate(node, parallel=False)
        assert mesh is not cube_10
        assert mesh.volume == pytest.approx(1000.0)

    def test_solid_primitive_without_mesh(self):
        node = Primitive(label="ghost", kind="solid")
        with pytest.raises(GeometryError) as info:
            evaluate(node, parallel=False)
        assert info.value.stage == "ghost"

    def test_non_manifold_result_names_the_node(self, open_box):
        head = Primitive.solid("head", open_box)
        moved = Transform.of("head_transform", np.eye(4), head)
        with pytest.raises(GeometryError) as info:
            evaluate(moved, parallel=False)
        assert info.value.stage == "head_transform"

    def test_offset_node(self, cube_10):
        node = Offset(
            label="outer_offset",
            radius=1.0,
            child=Primitive.solid("cube", cube_10),
            segments=8,
        )
        mesh = evaluate(node, parallel=False)
        assert mesh.is_watertight
        assert mesh.extents[2] == pytest.approx(12.0, abs=1e-6)

    def test_workers_leave_timings_to_the_caller(self):
        evaluator = Evaluator(parallel=False)
        mesh, elapsed = evaluator._compute(Primitive.box("solo", (1, 1, 1)))
        assert mesh.volume == pytest.approx(1.0)
        assert elapsed >= 0.0
        assert evaluator.timings == {}

    def test_shared_labels_accumulate_under_the_pool(self):
        # Every union below keeps the default "union" label.
        pairs = [
            BooleanOp.of(
                "union",
                Primitive.box(f"a{i}", (1, 1, 1), center=(3 * i, 0, 0)),
                Primitive.box(f"b{i}", (1, 1, 1), center=(3 * i, 2, 0)),
            )
            for i in range(6)
        ]
        root = BooleanOp.of("union", *pairs, label="root")
        with Evaluator(parallel=True, max_workers=4) as evaluator:
            mesh = evaluator.run(root)
        assert mesh.volume == pytest.approx(12.0, rel=1e-6)
        assert set(evaluator.timings) == {"root", "union"} | {
            f"{p}{i}" for p in "ab" for i in range(6)
        }
