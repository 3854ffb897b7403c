"""Batch-level analysis across many materials."""

from .fingerprint import (
    Fingerprint, FingerprintIndex, IndexedPair, compute_fingerprint, max_distance_for,
)
from .duplicates import DuplicatePair, DuplicateAnalysis, detect_duplicates
from .cross_material import (
    ResolutionGroup, SlotCoverage, CrossMaterialAnalysis, analyze_cross_material,
)
from .report import AdvancedAnalysisReport, analyze_advanced

__all__ = [
    "Fingerprint", "FingerprintIndex", "IndexedPair", "compute_fingerprint",
    "max_distance_for",
    "DuplicatePair", "DuplicateAnalysis", "detect_duplicates",
    "ResolutionGroup", "SlotCoverage", "CrossMaterialAnalysis", "analyze_cross_material",
    "AdvancedAnalysisReport", "analyze_advanced",
]
