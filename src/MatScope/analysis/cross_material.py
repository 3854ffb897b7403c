"""Consistency checks across a batch of materials."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from ..config import TextureSlot
from ..core.errors import InvalidParameter
from ..core.texture import TextureSet

logger = logging.getLogger("matscope.analysis")


@dataclass(frozen=True)
class ResolutionGroup:
    width: int
    height: int
    count: int
    materials: List[str]

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "count": self.count,
            "materials": list(self.materials),
        }


@dataclass(frozen=True)
class SlotCoverage:
    slot: str
    present_count: int
    total_count: int
    coverage_percent: float
    missing_in: List[str]

    def to_dict(self) -> dict:
        return {
            "slot": self.slot,
            "present_count": self.present_count,
            "total_count": self.total_count,
            "coverage_percent": round(self.coverage_percent, 4),
            "missing_in": list(self.missing_in),
        }


@dataclass
class CrossMaterialAnalysis:
    material_count: int
    resolution_distributions: List[ResolutionGroup] = field(default_factory=list)
    resolution_inconsistent: bool = False
    map_coverage: List[SlotCoverage] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def coverage_for(self, slot) -> SlotCoverage:
        name = TextureSlot.parse(slot).value if not isinstance(slot, TextureSlot) else slot.value
        for cov in self.map_coverage:
            if cov.slot == name:
                return cov
        raise KeyError(name)

    def to_dict(self) -> dict:
        return {
            "material_count": self.material_count,
            "resolution_distributions": [g.to_dict() for g in self.resolution_distributions],
            "resolution_inconsistent": self.resolution_inconsistent,
            "map_coverage": [c.to_dict() for c in self.map_coverage],
            "recommendations": list(self.recommendations),
        }


def analyze_cross_material(materials: Sequence[TextureSet],
                           coverage_threshold: float = 100.0) -> CrossMaterialAnalysis:
    """Summarize resolutions and slot coverage across materials.

    Materials without any texture have no resolution and are left out of the
    resolution groups, but still count toward coverage.
    """
    if not (0.0 <= coverage_threshold <= 100.0):
        raise InvalidParameter(f"coverage_threshold must be in [0, 100], got {coverage_threshold}")

    total = len(materials)
    groups: Dict[Tuple[int, int], List[str]] = defaultdict(list)
    for material in materials:
        dims = material.dimensions
        if dims is not None:
            groups[dims].append(material.display_name)

    distributions = [
        ResolutionGroup(width=w, height=h, count=len(names), materials=sorted(names))
        for (w, h), names in groups.items()
    ]
    distributions.sort(key=lambda g: (-g.count, g.width, g.height))
    inconsistent = len(distributions) > 1

    coverage = []
    for slot in TextureSlot:
        missing = [m.display_name for m in materials if not m.has(slot)]
        present = total - len(missing)
        coverage.append(SlotCoverage(
            slot=slot.value,
            present_count=present,
            total_count=total,
            coverage_percent=100.0 * present / total if total else 0.0,
            missing_in=missing,
        ))

    recommendations = []
    if inconsistent:
        majority = distributions[0]
        minority = ", ".join(
            f"{g.width}x{g.height} ({g.count} material(s))" for g in distributions[1:]
        )
        recommendations.append(
            f"Materials use different resolutions. Consider standardizing to "
            f"{majority.width}x{majority.height} (used by {majority.count} material(s)); "
            f"differing: {minority}."
        )
    for cov in coverage:
        if 0.0 < cov.coverage_percent < coverage_threshold:
            recommendations.append(
                f"Map '{cov.slot}' missing in {len(cov.missing_in)} material(s). "
                "Consider adding for consistency."
            )

    logger.debug(
        "Cross-material: %d materials, %d resolution group(s), %d recommendation(s)",
        total, len(distributions), len(recommendations),
    )
    return CrossMaterialAnalysis(
        material_count=total,
        resolution_distributions=distributions,
        resolution_inconsistent=inconsistent,
        map_coverage=coverage,
        recommendations=recommendations,
    )
