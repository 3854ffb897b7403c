"""Batch analysis entry point combining duplicates, consistency and tileability."""

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..batch import BatchFailure, BatchRunner
from ..config import EngineConfig, TextureSlot
from ..core.errors import InvalidParameter
from ..core.texture import TextureSet
from ..core.tiling import (
    TileabilityEntry, TileabilityFix, analyze_tileability,
)
from ..core import tiling
from .cross_material import CrossMaterialAnalysis, analyze_cross_material
from .duplicates import DuplicateAnalysis, check_thresholds, collect_texture_refs, detect_duplicates

logger = logging.getLogger("matscope.analysis")


@dataclass
class AdvancedAnalysisReport:
    duplicates: DuplicateAnalysis
    cross_material: CrossMaterialAnalysis
    tileability_analysis: List[TileabilityEntry] = field(default_factory=list)
    tileability_fixes: Optional[List[TileabilityFix]] = None
    failures: List[BatchFailure] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "duplicates": self.duplicates.to_dict(),
            "cross_material": self.cross_material.to_dict(),
            "tileability_analysis": [e.to_dict() for e in self.tileability_analysis],
            "tileability_fixes": (
                [f.to_dict() for f in self.tileability_fixes]
                if self.tileability_fixes is not None else None
            ),
            "failures": [f.to_dict() for f in self.failures],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def write_json(self, path: str) -> str:
        """Write the report as JSON (temp file + ``os.replace``)."""
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        tmp_path = f"{path}.tmp.{os.getpid()}.{threading.get_ident()}"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(self.to_json())
            os.replace(tmp_path, path)
        finally:
            if os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass
        logger.info("Wrote advanced analysis report: %s", path)
        return path


def analyze_advanced(materials: Sequence[TextureSet],
                     duplicate_threshold: Optional[float] = None,
                     similar_threshold: Optional[float] = None,
                     include_tileability: bool = True,
                     fix_tileability: bool = False,
                     config: Optional[EngineConfig] = None,
                     runner: Optional[BatchRunner] = None,
                     progress: bool = False) -> AdvancedAnalysisReport:
    """Run duplicate detection, cross-material checks and tileability analysis.

    Thresholds default to the ``duplicates`` section of ``config``.  When
    ``fix_tileability`` is set, the configured slots (albedo by default) are
    repaired in memory and only fixes that lowered the edge difference are
    reported.  Per-texture errors are collected in ``failures``.
    """
    config = config or EngineConfig()
    if duplicate_threshold is None:
        duplicate_threshold = config.duplicates.duplicate_threshold
    if similar_threshold is None:
        similar_threshold = config.duplicates.similar_threshold
    check_thresholds(duplicate_threshold, similar_threshold)
    materials = list(materials)
    runner = runner or BatchRunner(config=config)
    failures: List[BatchFailure] = []

    duplicates = detect_duplicates(
        materials,
        duplicate_threshold=duplicate_threshold,
        similar_threshold=similar_threshold,
        same_slot_only=config.duplicates.same_slot_only,
        runner=runner,
    )
    failures.extend(duplicates.failures)

    cross = analyze_cross_material(
        materials, coverage_threshold=config.cross_material.coverage_threshold,
    )

    tcfg = config.tileability
    entries: List[TileabilityEntry] = []
    if include_tileability:
        refs = collect_texture_refs(materials)

        def _measure(ref):
            result = analyze_tileability(ref.texture, threshold=tcfg.threshold,
                                         band_width=tcfg.band_width)
            return TileabilityEntry(
                path=ref.texture_id,
                slot=ref.slot.value,
                material=ref.material,
                edge_difference=result.edge_difference,
                needs_fix=result.needs_fix,
            )

        batch = runner.map(_measure, refs, keys=[r.texture_id for r in refs],
                           desc="Tileability", progress=progress)
        failures.extend(batch.failures)
        entries = [e for e in batch.results if e is not None]
        entries.sort(key=lambda e: (e.material, TextureSlot(e.slot).order))

    fixes: Optional[List[TileabilityFix]] = None
    if fix_tileability:
        fix_slots = {TextureSlot.parse(s) for s in tcfg.fix_slots}
        targets = [r for r in collect_texture_refs(materials) if r.slot in fix_slots]

        def _fix(ref):
            try:
                return tiling.fix_tileability(ref.texture, blend_width=tcfg.blend_width,
                                       band_width=tcfg.band_width)
            except InvalidParameter as exc:
                logger.debug("Skipping tileability fix for %s: %s", ref.texture_id, exc)
                return None

        batch = runner.map(_fix, targets, keys=[r.texture_id for r in targets],
                           desc="Tileability fix", progress=progress)
        failures.extend(batch.failures)
        fixes = [f for f in batch.results if f is not None and f.improved]

    failures.sort(key=lambda f: f.key)
    if failures:
        logger.warning("Advanced analysis finished with %d failed item(s)", len(failures))
    return AdvancedAnalysisReport(
        duplicates=duplicates,
        cross_material=cross,
        tileability_analysis=entries,
        tileability_fixes=fixes,
        failures=failures,
    )
