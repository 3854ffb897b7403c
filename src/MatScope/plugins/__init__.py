"""Rule plugins: manifest parsing and directory discovery."""

from .manifest import (
    Plugin, RuleDefinition, PresetDefinition, parse_manifest, read_manifest,
    MANIFEST_NAMES,
)
from .loader import PluginLoader, PluginInfo, LoadedPlugins

__all__ = [
    "Plugin", "RuleDefinition", "PresetDefinition", "parse_manifest",
    "read_manifest", "MANIFEST_NAMES",
    "PluginLoader", "PluginInfo", "LoadedPlugins",
]
