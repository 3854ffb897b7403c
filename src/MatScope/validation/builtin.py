"""Built-in rule set, parameterized by ``ValidationConfig``."""

from typing import List

from ..config import EngineConfig
from .conditions import (
    AlbedoBrightness, EdgeSeam, MaxResolution, MaxTextureCount, MetallicMidGray,
    MinResolution, NormalMapStrength, PowerOfTwo, RequiredMaps, ResolutionMismatch,
    RoughnessUniformity,
)
from .issues import Severity
from .registry import Rule


def builtin_rules(config: EngineConfig) -> List[Rule]:
    """Return the built-in rules in evaluation order."""
    v = config.validation
    rules = []
    if v.required_maps:
        rules.append(Rule(
            "required_maps",
            "Material must provide the required texture maps",
            Severity.MAJOR,
            RequiredMaps(tuple(v.required_maps)),
        ))
    rules += [
        Rule(
            "max_resolution",
            f"Textures must not exceed {v.max_resolution}x{v.max_resolution}",
            Severity.MAJOR,
            MaxResolution(v.max_resolution, v.max_resolution),
        ),
        Rule(
            "min_resolution",
            f"Textures must be at least {v.min_resolution}x{v.min_resolution}",
            Severity.MAJOR,
            MinResolution(v.min_resolution, v.min_resolution),
        ),
        Rule(
            "power_of_two",
            "Texture dimensions should be powers of two",
            Severity.MINOR,
            PowerOfTwo(),
        ),
        Rule(
            "max_texture_count",
            f"Material should have at most {v.max_texture_count} textures",
            Severity.MAJOR,
            MaxTextureCount(v.max_texture_count),
        ),
    ]
    if v.check_resolution_mismatch:
        rules.append(Rule(
            "resolution_mismatch",
            "All textures of a material should share the same dimensions",
            Severity.MAJOR,
            ResolutionMismatch(),
        ))
    if v.content_checks:
        rules += [
            Rule(
                "albedo_brightness_range",
                "Albedo brightness should be in valid PBR range "
                "(not fully black or excessively bright)",
                Severity.MINOR,
                AlbedoBrightness(),
            ),
            Rule(
                "roughness_uniformity",
                "Roughness map should have variation; uniformly constant or "
                "black may indicate placeholder",
                Severity.MINOR,
                RoughnessUniformity(),
            ),
            Rule(
                "metallic_mid_gray",
                "Metallic map uniformly mid-gray may indicate placeholder",
                Severity.MINOR,
                MetallicMidGray(),
            ),
            Rule(
                "normal_map_strength",
                "Normal map blue channel should be dominant",
                Severity.MINOR,
                NormalMapStrength(),
            ),
            Rule(
                "tileability",
                "Detect obvious seams at albedo edges",
                Severity.MINOR,
                EdgeSeam(
                    threshold=v.edge_seam_threshold,
                    band_width=config.tileability.band_width,
                ),
            ),
        ]
    return rules
