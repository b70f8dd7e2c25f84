"""Public API for the leaf-plate mask pipeline."""

from leaf_mask.contracts import (
    ConfigError,
    GeometryError,
    InputError,
    MaskConfig,
    MaskError,
    MaskRunResult,
    TransformSpec,
)
from leaf_mask.pipeline import run_mask_pipeline

__all__ = [
    "ConfigError",
    "GeometryError",
    "InputError",
    "MaskConfig",
    "MaskError",
    "MaskRunResult",
    "TransformSpec",
    "run_mask_pipeline",
]
