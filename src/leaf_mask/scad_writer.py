"""Render a mask CSG tree as OpenSCAD source for inspection."""

from __future__ import annotations

from typing import List, Sequence

from leaf_mask.csg import BooleanOp, Node, Offset, Primitive, Transform

_INDENT = "  "


def render_openscad(root: Node, *, design_name: str, segments: int) -> str:
    lines: List[str] = [
        f"// {design_name}: leaf-plate mask",
        "// Generated from the mask CSG tree; lengths in mm.",
        f"$fn = {int(segments)};",
        "",
        "leaf_mask();",
        "",
        "module leaf_mask() {",
    ]
    _emit(root, 1, lines)
    lines.append("}")
    lines.append("")
    return "\n".join(lines)


def _emit(node: Node, depth: int, lines: List[str]) -> None:
    pad = _INDENT * depth
    if isinstance(node, Primitive):
        lines.append(f"{pad}// {node.label}")
        if node.kind == "box":
            lines.append(
                f"{pad}translate({_vec(node.center)}) cube({_vec(node.size)}, center = true);"
            )
        else:
            lines.append(f'{pad}import("{node.source or node.label + ".stl"}");')
        return

    if isinstance(node, Transform):
        rows = ", ".join(_vec(row) for row in node.matrix)
        lines.append(f"{pad}// {node.label}")
        lines.append(f"{pad}multmatrix([{rows}]) {{")
        _emit(node.child, depth + 1, lines)
        lines.append(f"{pad}}}")
        return

    if isinstance(node, Offset):
        lines.append(f"{pad}// {node.label}: inflate r={_num(node.radius)}")
        lines.append(f"{pad}minkowski() {{")
        _emit(node.child, depth + 1, lines)
        lines.append(f"{pad}{_INDENT}sphere(r = {_num(node.radius)});")
        lines.append(f"{pad}}}")
        return

    if isinstance(node, BooleanOp):
        lines.append(f"{pad}// {node.label}")
        lines.append(f"{pad}{node.op}() {{")
        for child in node.operands:
            _emit(child, depth + 1, lines)
        lines.append(f"{pad}}}")
        return

    raise TypeError(f"Cannot render node type {type(node).__name__}")


def _num(value: float) -> str:
    text = f"{float(value):.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def _vec(values: Sequence[float]) -> str:
    return "[" + ", ".join(_num(v) for v in values) + "]"
