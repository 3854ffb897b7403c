"""Ordered rule registry with last-wins overriding by rule id."""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from ..config import EngineConfig
from .conditions import Condition
from .issues import Severity

logger = logging.getLogger("matscope.validation")

BUILTIN_SOURCE = "builtin"


@dataclass(frozen=True)
class Rule:
    """A rule as the engine evaluates it.

    ``source`` is ``"builtin"`` or the name of the plugin that defined the
    rule; ``base_dir`` is the plugin directory script rules run in.
    """

    id: str
    description: str
    severity: Severity
    condition: Condition
    source: str = BUILTIN_SOURCE
    base_dir: Optional[str] = None

    @property
    def is_builtin(self) -> bool:
        return self.source == BUILTIN_SOURCE


class RuleRegistry:
    """Rules keyed by id, iterated in registration order.

    Re-adding an id replaces the previous rule and moves it to the end, so
    a run sees built-ins first, then plugin rules in discovery order.
    Presets follow the same last-wins policy.  Call :meth:`freeze` before
    handing the registry to concurrent workers.
    """

    def __init__(self, rules: Iterable[Rule] = ()):
        self._rules: Dict[str, Rule] = {}
        self._presets: Dict[str, object] = {}
        self._frozen = False
        for rule in rules:
            self.add(rule)

    @classmethod
    def default(cls, config: Optional[EngineConfig] = None) -> "RuleRegistry":
        from .builtin import builtin_rules
        return cls(builtin_rules(config or EngineConfig()))

    @classmethod
    def from_plugins(cls, plugins: Iterable, config: Optional[EngineConfig] = None,
                     include_builtins: bool = True) -> "RuleRegistry":
        """Build a registry of built-ins followed by every plugin's rules and presets."""
        registry = cls.default(config) if include_builtins else cls()
        for plugin in plugins:
            registry.add_plugin(plugin)
        return registry

    def _check_mutable(self):
        if self._frozen:
            raise RuntimeError("RuleRegistry is frozen; build a new registry per run")

    def add(self, rule: Rule) -> None:
        self._check_mutable()
        previous = self._rules.pop(rule.id, None)
        if previous is not None:
            logger.info(
                "Rule '%s' from %s overrides the one from %s",
                rule.id, rule.source, previous.source,
            )
        self._rules[rule.id] = rule

    def add_preset(self, preset) -> None:
        self._check_mutable()
        previous = self._presets.pop(preset.id, None)
        if previous is not None:
            logger.info("Preset '%s' overridden by a later plugin", preset.id)
        self._presets[preset.id] = preset

    def add_plugin(self, plugin) -> None:
        """Register all rules and presets of a parsed plugin."""
        for rule in plugin.to_rules():
            self.add(rule)
        for preset in plugin.presets:
            self.add_preset(preset)

    def remove(self, rule_id: str) -> Rule:
        self._check_mutable()
        return self._rules.pop(rule_id)

    def freeze(self) -> "RuleRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, rule_id: str) -> Optional[Rule]:
        return self._rules.get(rule_id)

    def preset(self, preset_id: str):
        return self._presets.get(preset_id)

    @property
    def rules(self) -> List[Rule]:
        return list(self._rules.values())

    @property
    def presets(self) -> List:
        return list(self._presets.values())

    def ids(self) -> List[str]:
        return list(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(list(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id) -> bool:
        return rule_id in self._rules
