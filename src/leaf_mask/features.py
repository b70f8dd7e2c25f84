"""Eye / nose openings and strap tabs.

Disabled features produce no node at all (``None``), so they never enter the
boolean sequence as zero-size geometry.
"""

from __future__ import annotations

from typing import List, Optional

from leaf_mask.contracts import MaskConfig, OpeningVolume, TabVolume
from leaf_mask.csg import BooleanOp, Node, Offset, Primitive


def opening_volumes(config: MaskConfig) -> List[OpeningVolume]:
    return eye_volumes(config) + nose_volumes(config)


def eye_volumes(config: MaskConfig) -> List[OpeningVolume]:
    if not config.enable_eyes:
        return []
    z = config.front_z + config.eye_z_offset
    return [
        OpeningVolume(
            name=f"eye_{side}",
            center=(sign * config.eye_offset_x, config.eye_offset_y, z),
            size=(config.eye_width, config.eye_height, config.eye_depth),
            rounding=config.opening_rounding,
        )
        for side, sign in (("left", -1.0), ("right", 1.0))
    ]


def nose_volumes(config: MaskConfig) -> List[OpeningVolume]:
    if not config.enable_nose:
        return []
    return [
        OpeningVolume(
            name="nose_slot",
            center=(0.0, config.nose_offset_y, config.front_z + config.nose_z_offset),
            size=(config.nose_width, config.nose_height, config.nose_depth),
            rounding=config.opening_rounding,
        )
    ]


def tab_volumes(config: MaskConfig) -> List[TabVolume]:
    if not config.enable_tabs:
        return []
    half_w = config.face_width / 2.0
    z = config.front_z + config.tab_z_offset
    return [
        TabVolume(
            name=f"tab_{side}",
            center=(sign * half_w, config.tab_offset_y, z),
            size=(config.tab_width, config.tab_height, config.tab_depth),
        )
        for side, sign in (("left", -1.0), ("right", 1.0))
    ]


def opening_node(volume: OpeningVolume, config: MaskConfig) -> Node:
    """Rounded prism: the box dilated by the rounding sphere."""
    core = Primitive.box(f"{volume.name}_core", size=volume.size, center=volume.center)
    if volume.rounding <= 0.0:
        return core
    return Offset(
        label=volume.name,
        radius=volume.rounding,
        child=core,
        segments=config.segments,
        max_faces=config.max_offset_faces,
    )


def tab_node(volume: TabVolume) -> Node:
    return Primitive.box(volume.name, size=volume.size, center=volume.center)


def eye_openings(config: MaskConfig) -> Optional[Node]:
    nodes = [opening_node(v, config) for v in eye_volumes(config)]
    return BooleanOp.of("union", *nodes, label="eye_openings")


def nose_slot(config: MaskConfig) -> Optional[Node]:
    nodes = [opening_node(v, config) for v in nose_volumes(config)]
    return BooleanOp.of("union", *nodes, label="nose_slot")


def openings(config: MaskConfig) -> Optional[Node]:
    return BooleanOp.of("union", eye_openings(config), nose_slot(config), label="openings")


def strap_tabs(config: MaskConfig) -> Optional[Node]:
    nodes = [tab_node(v) for v in tab_volumes(config)]
    return BooleanOp.of("union", *nodes, label="strap_tabs")
