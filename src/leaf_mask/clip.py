"""Face window clip volume and face section extraction."""

from __future__ import annotations

from typing import Optional

from leaf_mask.contracts import ClipBox, ConfigError
from leaf_mask.csg import BooleanOp, Node, Primitive


def clip_volume(box: ClipBox, expand: float = 0.0, label: Optional[str] = None) -> Primitive:
    """Prism for *box* grown (positive) or inset (negative) by *expand*."""
    grown = box.expanded(expand)
    if not grown.is_valid:
        w, h, d = grown.size
        raise ConfigError(
            [
                f"clip box {w:g} x {h:g} x {d:g} mm is inverted after "
                f"expand={grown.expand:+g}"
            ]
        )
    return Primitive.box(
        label or f"clip_box[{grown.expand:+g}]",
        size=grown.size,
        center=grown.center,
    )


def face_section(head: Node, box: ClipBox) -> Node:
    """Region of the head surface inside the face window."""
    return BooleanOp.of("intersection", head, clip_volume(box, label="clip_box"), label="face_section")
