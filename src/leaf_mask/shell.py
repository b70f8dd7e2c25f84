"""Offset shells and the hollow base mask."""

from __future__ import annotations

from leaf_mask.clip import clip_volume
from leaf_mask.contracts import ConfigError, MaskConfig
from leaf_mask.csg import BooleanOp, Node, Offset


def offset_shell(face: Node, radius: float, config: MaskConfig, label: str) -> Offset:
    if radius < 0.0:
        raise ConfigError([f"{label}: offset radius must be >= 0, got {radius:g}"])
    return Offset(
        label=label,
        radius=float(radius),
        child=face,
        segments=config.segments,
        max_faces=config.max_offset_faces,
    )


def inner_core(face: Node, config: MaskConfig) -> Node:
    """Inner offset trimmed by the inset clip so the rim keeps a full wall."""
    inner = offset_shell(face, config.inner_radius, config, label="inner_offset")
    inset = clip_volume(config.clip_box(), -config.edge_bleed, label="inner_clip")
    return BooleanOp.of("intersection", inner, inset, label="inner_core")


def base_mask(face: Node, config: MaskConfig) -> Node:
    """Hollow shell: outer offset minus the inner core.

    Wall thickness away from sharp curvature is ``outer_radius - inner_radius``.
    """
    if config.outer_radius <= config.inner_radius:
        raise ConfigError(
            [
                f"outer radius {config.outer_radius:g} must exceed inner radius "
                f"{config.inner_radius:g}"
            ]
        )
    outer = offset_shell(face, config.outer_radius, config, label="outer_offset")
    return BooleanOp.of("difference", outer, inner_core(face, config), label="base_mask")
