"""Provide package metadata and the public engine entry points for `MatScope`."""

import logging as _logging

__version__ = "1.0.0"
_logging.getLogger("matscope").addHandler(_logging.NullHandler())

from .config import EngineConfig, TextureSlot  # noqa: E402
from .core import (  # noqa: E402
    Texture, TextureSet, load_material, InvalidParameter, LoadError,
)
from .validation import (  # noqa: E402
    Severity, ValidationIssue, ValidationResult, RuleRegistry, validate,
)
from .plugins import PluginLoader  # noqa: E402
from .analysis import analyze_advanced, AdvancedAnalysisReport  # noqa: E402

__all__ = [
    "__version__",
    "EngineConfig", "TextureSlot",
    "Texture", "TextureSet", "load_material",
    "InvalidParameter", "LoadError",
    "Severity", "ValidationIssue", "ValidationResult", "RuleRegistry", "validate",
    "PluginLoader",
    "analyze_advanced", "AdvancedAnalysisReport",
]
