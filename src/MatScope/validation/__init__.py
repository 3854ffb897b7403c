"""Rule-based material validation."""

from .issues import Severity, ValidationIssue, ValidationResult, compute_score
from .conditions import (
    Finding, Condition, RequiredMaps, MaxResolution, MinResolution, PowerOfTwo,
    MaxTextureCount, Script, ResolutionMismatch, AlbedoBrightness,
    RoughnessUniformity, MetallicMidGray, NormalMapStrength, EdgeSeam,
    parse_condition,
)
from .registry import Rule, RuleRegistry
from .builtin import builtin_rules
from .script import ScriptRunner, material_summary, parse_response
from .engine import validate, validate_batch, evaluate_rule

__all__ = [
    "Severity", "ValidationIssue", "ValidationResult", "compute_score",
    "Finding", "Condition", "RequiredMaps", "MaxResolution", "MinResolution",
    "PowerOfTwo", "MaxTextureCount", "Script", "ResolutionMismatch",
    "AlbedoBrightness", "RoughnessUniformity", "MetallicMidGray",
    "NormalMapStrength", "EdgeSeam", "parse_condition",
    "Rule", "RuleRegistry", "builtin_rules",
    "ScriptRunner", "material_summary", "parse_response",
    "validate", "validate_batch", "evaluate_rule",
]
