"""Plugin manifest schema (``plugin.json`` / ``plugin.toml``).

Both serializations decode to the same dict shape, which
:func:`parse_manifest` validates into frozen :class:`Plugin` values, so the
same rule set written in JSON or TOML compares equal.
"""

import json
import os
import tomllib
from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..core.errors import InvalidParameter, LoadError
from ..validation.conditions import Condition, parse_condition
from ..validation.issues import Severity
from ..validation.registry import Rule

MANIFEST_NAMES = ("plugin.json", "plugin.toml")

_RESOLUTIONS = {
    "4k": 4096, "4096": 4096,
    "2k": 2048, "2048": 2048,
    "1k": 1024, "1024": 1024,
    "512": 512,
    "256": 256,
    "128": 128,
}
DEFAULT_PRESET_DIMENSION = 2048


@dataclass(frozen=True)
class RuleDefinition:
    id: str
    condition: Condition
    description: str = ""
    severity: Severity = Severity.MAJOR


@dataclass(frozen=True)
class PresetDefinition:
    """Export preset declared by a plugin."""

    id: str
    name: str
    target_resolution: str
    include_lod: bool = False

    @property
    def max_dimension(self) -> int:
        """Longest-edge size for the preset; unknown names fall back to 2048."""
        return _RESOLUTIONS.get(self.target_resolution.strip().lower(), DEFAULT_PRESET_DIMENSION)


@dataclass(frozen=True)
class Plugin:
    name: str
    version: str = ""
    rules: Tuple[RuleDefinition, ...] = ()
    presets: Tuple[PresetDefinition, ...] = ()
    path: Optional[str] = field(default=None, compare=False)

    @property
    def directory(self) -> Optional[str]:
        return os.path.dirname(self.path) if self.path else None

    def to_rules(self):
        """Convert the declared rules to engine rules tagged with this plugin."""
        return [
            Rule(
                id=d.id,
                description=d.description or "Custom rule from plugin config",
                severity=d.severity,
                condition=d.condition,
                source=self.name,
                base_dir=self.directory,
            )
            for d in self.rules
        ]


def _require_str(data: dict, key: str, where: str, source, plugin=None, rule_id=None,
                 default=None) -> str:
    value = data.get(key, default)
    if value is None:
        raise LoadError(f"{where} is missing required field '{key}'",
                        path=source, plugin=plugin, rule_id=rule_id)
    if not isinstance(value, str):
        raise LoadError(f"{where} field '{key}' must be a string, got {type(value).__name__}",
                        path=source, plugin=plugin, rule_id=rule_id)
    return value


def _parse_rule(raw, index: int, plugin: str, source) -> RuleDefinition:
    if not isinstance(raw, dict):
        raise LoadError(f"rules[{index}] must be a table", path=source, plugin=plugin)
    rule_id = _require_str(raw, "id", f"rules[{index}]", source, plugin)
    if not rule_id.strip():
        raise LoadError(f"rules[{index}].id must not be empty", path=source, plugin=plugin)
    description = _require_str(raw, "description", "rule", source, plugin, rule_id, default="")
    try:
        severity = Severity.parse(raw.get("severity", "major"))
    except ValueError as exc:
        raise LoadError(str(exc), path=source, plugin=plugin, rule_id=rule_id) from exc
    if "condition" not in raw:
        raise LoadError("rule is missing required field 'condition'",
                        path=source, plugin=plugin, rule_id=rule_id)
    try:
        condition = parse_condition(raw["condition"])
    except InvalidParameter as exc:
        raise LoadError(str(exc), path=source, plugin=plugin, rule_id=rule_id) from exc
    unknown = sorted(set(raw) - {"id", "description", "severity", "condition"})
    if unknown:
        raise LoadError(f"unknown rule field(s): {', '.join(unknown)}",
                        path=source, plugin=plugin, rule_id=rule_id)
    return RuleDefinition(id=rule_id, condition=condition,
                          description=description, severity=severity)


def _parse_preset(raw, index: int, plugin: str, source) -> PresetDefinition:
    if not isinstance(raw, dict):
        raise LoadError(f"presets[{index}] must be a table", path=source, plugin=plugin)
    preset_id = _require_str(raw, "id", f"presets[{index}]", source, plugin)
    name = _require_str(raw, "name", f"preset '{preset_id}'", source, plugin)
    target = raw.get("target_resolution")
    if isinstance(target, int) and not isinstance(target, bool):
        target = str(target)
    if not isinstance(target, str):
        raise LoadError(f"preset '{preset_id}' needs a target_resolution string",
                        path=source, plugin=plugin)
    include_lod = raw.get("include_lod", False)
    if not isinstance(include_lod, bool):
        raise LoadError(f"preset '{preset_id}' include_lod must be a boolean",
                        path=source, plugin=plugin)
    return PresetDefinition(id=preset_id, name=name, target_resolution=target,
                            include_lod=include_lod)


def parse_manifest(data, source=None) -> Plugin:
    """Validate a decoded manifest dict into a :class:`Plugin`.

    Raises LoadError naming the manifest, plugin and rule on any schema
    violation.
    """
    source = str(source) if source is not None else None
    if not isinstance(data, dict):
        raise LoadError("manifest must be a table/object", path=source)
    name = _require_str(data, "name", "manifest", source)
    if not name.strip():
        raise LoadError("manifest 'name' must not be empty", path=source)
    version = data.get("version", "")
    if not isinstance(version, str):
        raise LoadError("'version' must be a string", path=source, plugin=name)

    raw_rules = data.get("rules", [])
    if not isinstance(raw_rules, list):
        raise LoadError("'rules' must be a list", path=source, plugin=name)
    raw_presets = data.get("presets", [])
    if not isinstance(raw_presets, list):
        raise LoadError("'presets' must be a list", path=source, plugin=name)

    rules = []
    seen = set()
    for idx, raw in enumerate(raw_rules):
        rule = _parse_rule(raw, idx, name, source)
        if rule.id in seen:
            raise LoadError("duplicate rule id in manifest",
                            path=source, plugin=name, rule_id=rule.id)
        seen.add(rule.id)
        rules.append(rule)
    presets = [_parse_preset(raw, idx, name, source) for idx, raw in enumerate(raw_presets)]

    return Plugin(name=name, version=version, rules=tuple(rules),
                  presets=tuple(presets), path=source)


def read_manifest(path) -> Plugin:
    """Read and parse a ``plugin.json`` or ``plugin.toml`` file."""
    path = str(path)
    try:
        if path.lower().endswith(".toml"):
            with open(path, "rb") as f:
                data = tomllib.load(f)
        else:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
    except OSError as exc:
        raise LoadError(f"cannot read manifest: {exc}", path=path) from exc
    except (json.JSONDecodeError, tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise LoadError(f"cannot parse manifest: {exc}", path=path) from exc
    return parse_manifest(data, source=path)
