"""Up-front parameter checks, run before any boolean work."""

from __future__ import annotations

import logging
from typing import List

from leaf_mask.contracts import ConfigError, MaskConfig
from leaf_mask.kernel import validate_solid
from leaf_mask.leaves import coverage_holds

logger = logging.getLogger(__name__)

__all__ = ["validate_config", "config_problems", "validate_solid"]


def config_problems(config: MaskConfig) -> List[str]:
    problems: List[str] = []

    def positive(name: str) -> None:
        value = getattr(config, name)
        if not value > 0.0:
            problems.append(f"{name} must be > 0, got {value}")

    def non_negative(name: str) -> None:
        value = getattr(config, name)
        if value < 0.0:
            problems.append(f"{name} must be >= 0, got {value}")

    if not config.transform.scale > 0.0:
        problems.append(f"transform.scale must be > 0, got {config.transform.scale}")

    for name in ("face_width", "face_height", "clip_depth"):
        positive(name)
    for name in ("clearance", "edge_bleed", "leaf_push", "twist_spread_deg", "opening_rounding"):
        non_negative(name)

    if config.outer_radius <= config.inner_radius:
        problems.append(
            f"outer radius {config.outer_radius:g} must exceed inner radius "
            f"{config.inner_radius:g} (thickness must be > 0)"
        )

    inset = config.clip_box().expanded(-config.edge_bleed)
    if not inset.is_valid:
        w, h, d = inset.size
        problems.append(
            f"edge_bleed {config.edge_bleed:g} inverts the inner clip ({w:g} x {h:g} x {d:g})"
        )

    for name in ("leaf_length", "leaf_width", "leaf_thickness", "leaf_spacing"):
        positive(name)
    if config.leaf_spacing > 0.0 and not coverage_holds(config):
        problems.append(
            f"leaf_spacing {config.leaf_spacing:g} exceeds min(leaf_length, leaf_width) "
            f"{min(config.leaf_length, config.leaf_width):g}; the leaf field would leave gaps"
        )
    if config.leaf_push < config.outer_radius:
        logger.warning(
            "leaf_push %.2f is less than the outer radius %.2f; shell in front of the clip "
            "plane may be cut flat",
            config.leaf_push, config.outer_radius,
        )

    if config.enable_eyes:
        for name in ("eye_width", "eye_height", "eye_depth"):
            positive(name)
        overlap = config.eye_width / 2.0 + config.opening_rounding - config.eye_offset_x
        if overlap >= 0.0:
            logger.warning("Eye openings overlap across the centre line by %.2f mm", overlap)
    if config.enable_nose:
        for name in ("nose_width", "nose_height", "nose_depth"):
            positive(name)
    if config.enable_tabs:
        for name in ("tab_width", "tab_height", "tab_depth"):
            positive(name)

    if int(config.segments) < 3:
        problems.append(f"segments must be >= 3, got {config.segments}")
    if config.max_offset_faces is not None and config.max_offset_faces < 1:
        problems.append(f"max_offset_faces must be >= 1, got {config.max_offset_faces}")
    return problems


def validate_config(config: MaskConfig) -> None:
    problems = config_problems(config)
    if problems:
        raise ConfigError(problems)
