"""Final boolean sequence and assembly of the full mask tree.

The sequence is fixed:

1. ``masked_leaves = base_mask & leaf_field``
2. ``cut_openings  = masked_leaves - openings``
3. ``append_tabs   = cut_openings | strap_tabs``

Openings are cut after the leaves conform to the shell, and tabs are added
after the cuts so a tab crossing an opening stays solid.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import trimesh

from leaf_mask import features
from leaf_mask.clip import face_section
from leaf_mask.contracts import MaskConfig
from leaf_mask.csg import BooleanOp, Node, Primitive, Transform
from leaf_mask.geometry import transform_matrix
from leaf_mask.leaves import leaf_field
from leaf_mask.shell import base_mask

STAGE_MASKED_LEAVES = "masked_leaves"
STAGE_CUT_OPENINGS = "cut_openings"
STAGE_APPEND_TABS = "append_tabs"


@dataclass(frozen=True)
class MaskTree:
    """Named entry points into one mask CSG tree."""

    head: Node
    face_section: Node
    base_mask: Node
    leaf_field: Node
    openings: Optional[Node]
    tabs: Optional[Node]
    root: Node


def compose(
    base: Node,
    leaves: Node,
    openings: Optional[Node] = None,
    tabs: Optional[Node] = None,
) -> Node:
    node = BooleanOp.of("intersection", base, leaves, label=STAGE_MASKED_LEAVES)
    node = BooleanOp.of("difference", node, openings, label=STAGE_CUT_OPENINGS)
    return BooleanOp.of("union", node, tabs, label=STAGE_APPEND_TABS)


def compositor_stages(config: MaskConfig) -> List[str]:
    stages = [STAGE_MASKED_LEAVES]
    if config.enable_eyes or config.enable_nose:
        stages.append(STAGE_CUT_OPENINGS)
    if config.enable_tabs:
        stages.append(STAGE_APPEND_TABS)
    return stages


def head_node(mesh: trimesh.Trimesh, config: MaskConfig) -> Node:
    source = Path(config.mesh_path).name if config.mesh_path else None
    head = Primitive.solid("head", mesh, source=source)
    if config.transform.is_identity:
        return head
    return Transform.of("head_transform", transform_matrix(config.transform), head)


def build_mask_tree(mesh: trimesh.Trimesh, config: MaskConfig) -> MaskTree:
    head = head_node(mesh, config)
    face = face_section(head, config.clip_box())
    base = base_mask(face, config)
    leaves = leaf_field(config)
    cuts = features.openings(config)
    tabs = features.strap_tabs(config)
    return MaskTree(
        head=head,
        face_section=face,
        base_mask=base,
        leaf_field=leaves,
        openings=cuts,
        tabs=tabs,
        root=compose(base, leaves, cuts, tabs),
    )
