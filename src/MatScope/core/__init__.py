"""Core utilities -- re-exports all public symbols for convenience."""

from .errors import (
    MatScopeError,
    InvalidParameter,
    LoadError,
    RuleEvaluationError,
    AnalysisCancelledError,
)
from .io import load_image, save_image, to_rgb, color_channels, luminance_bt601
from .texture import Texture, TextureSet, detect_slot, load_material, is_power_of_two
from .tiling import (
    TileabilityAnalysis,
    TileabilityFix,
    TileabilityEntry,
    edge_difference,
    analyze_tileability,
    fix_tileability,
    save_fixed_texture,
    analyze_materials_tileability,
)
from .logging import setup_logging

__all__ = [
    "MatScopeError", "InvalidParameter", "LoadError",
    "RuleEvaluationError", "AnalysisCancelledError",
    "load_image", "save_image", "to_rgb", "color_channels", "luminance_bt601",
    "Texture", "TextureSet", "detect_slot", "load_material", "is_power_of_two",
    "TileabilityAnalysis", "TileabilityFix", "TileabilityEntry",
    "edge_difference", "analyze_tileability", "fix_tileability",
    "save_fixed_texture", "analyze_materials_tileability",
    "setup_logging",
]
