"""Discover and load rule plugins from the standard plugin directories."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from ..config import EngineConfig, env_flag, resolve_user_plugin_dir
from ..core.errors import LoadError
from ..validation.registry import Rule, RuleRegistry
from .manifest import MANIFEST_NAMES, Plugin, PresetDefinition, read_manifest

logger = logging.getLogger("matscope.plugins")


@dataclass(frozen=True)
class PluginInfo:
    name: str
    version: str
    path: str
    rule_ids: List[str]
    preset_ids: List[str]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "path": self.path,
            "rule_ids": list(self.rule_ids),
            "preset_ids": list(self.preset_ids),
        }


@dataclass
class LoadedPlugins:
    """Everything a load pass produced, in discovery order."""

    plugins: List[Plugin] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def rules(self) -> List[Rule]:
        return [rule for plugin in self.plugins for rule in plugin.to_rules()]

    @property
    def presets(self) -> List[PresetDefinition]:
        return [preset for plugin in self.plugins for preset in plugin.presets]

    def registry(self, config: Optional[EngineConfig] = None,
                 include_builtins: bool = True) -> RuleRegistry:
        """Built-ins followed by plugin rules, last definition of an id winning."""
        return RuleRegistry.from_plugins(self.plugins, config, include_builtins=include_builtins)


def _manifest_in(directory: Path) -> Optional[Path]:
    """Return the manifest of a directory, preferring JSON over TOML."""
    for name in MANIFEST_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


class PluginLoader:
    """Find ``plugin.json`` / ``plugin.toml`` manifests and parse them.

    Search roots, in priority order: the project directory
    (``./.matscope/plugins``), the user config directory
    (``$XDG_CONFIG_HOME/matscope/plugins``), each entry of the
    ``MATSCOPE_PLUGINS`` path list, then ``extra_dirs``.  Later plugins
    override earlier ones when rule ids collide.  With ``strict=None`` the
    strict flag is read from ``MATSCOPE_PLUGINS_STRICT``.
    """

    def __init__(self, project_dir: Optional[str] = None, user_dir: Optional[str] = None,
                 env_var: str = "MATSCOPE_PLUGINS", extra_dirs: Iterable[str] = (),
                 strict: Optional[bool] = None, use_default_dirs: bool = True,
                 strict_env_var: str = "MATSCOPE_PLUGINS_STRICT"):
        self.project_dir = project_dir
        self.user_dir = user_dir
        self.env_var = env_var
        self.extra_dirs = [str(d) for d in extra_dirs]
        self.strict = env_flag(strict_env_var) if strict is None else strict
        self.use_default_dirs = use_default_dirs

    @classmethod
    def from_config(cls, config: EngineConfig) -> "PluginLoader":
        pc = config.plugins
        return cls(
            project_dir=pc.project_dir,
            user_dir=resolve_user_plugin_dir(pc),
            env_var=pc.env_var,
            extra_dirs=pc.extra_dirs,
            strict=config.plugin_strict(),
        )

    def search_roots(self) -> List[Path]:
        roots: List[str] = []
        if self.use_default_dirs:
            roots.append(self.project_dir or os.path.join(".", ".matscope", "plugins"))
            roots.append(self.user_dir or resolve_user_plugin_dir())
        env_value = os.environ.get(self.env_var, "") if self.env_var else ""
        roots.extend(p.strip() for p in env_value.split(os.pathsep) if p.strip())
        roots.extend(self.extra_dirs)

        # A repeated root keeps its last position, where it has the most priority.
        unique: List[Path] = []
        seen = set()
        for root in reversed(roots):
            path = Path(os.path.expanduser(root))
            key = os.path.normcase(os.path.abspath(path))
            if key in seen:
                continue
            seen.add(key)
            unique.append(path)
        unique.reverse()
        return unique

    def discover(self) -> List[Path]:
        """Return manifest paths in priority order.

        Inside a root, plugin sub-directories are visited in sorted order,
        followed by a manifest placed directly in the root.
        """
        manifests: List[Path] = []
        for root in self.search_roots():
            if not root.is_dir():
                logger.debug("Plugin directory not found, skipping: %s", root)
                continue
            for child in sorted(root.iterdir(), key=lambda p: p.name):
                if child.is_dir():
                    manifest = _manifest_in(child)
                    if manifest is not None:
                        manifests.append(manifest)
            manifest = _manifest_in(root)
            if manifest is not None:
                manifests.append(manifest)
        logger.debug("Discovered %d plugin manifest(s)", len(manifests))
        return manifests

    def load(self) -> LoadedPlugins:
        """Parse every discovered manifest.

        In non-strict mode a broken manifest is logged, recorded in
        ``warnings`` and skipped; in strict mode its LoadError propagates.
        """
        loaded = LoadedPlugins()
        for manifest in self.discover():
            try:
                plugin = read_manifest(manifest)
            except LoadError as exc:
                if self.strict:
                    raise
                logger.warning("Skipping plugin: %s", exc)
                loaded.warnings.append(str(exc))
                continue
            logger.info(
                "Loaded plugin '%s' %s (%d rules, %d presets) from %s",
                plugin.name, plugin.version or "", len(plugin.rules),
                len(plugin.presets), manifest,
            )
            loaded.plugins.append(plugin)
        return loaded

    def list_plugins(self) -> List[PluginInfo]:
        return [
            PluginInfo(
                name=p.name,
                version=p.version,
                path=p.path or "",
                rule_ids=[r.id for r in p.rules],
                preset_ids=[s.id for s in p.presets],
            )
            for p in self.load().plugins
        ]
