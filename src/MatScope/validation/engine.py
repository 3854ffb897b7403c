"""Evaluate rules against materials and score the result."""

import logging
from typing import Iterable, List, Optional, Sequence, Union

from ..config import EngineConfig
from ..core.errors import InvalidParameter, RuleEvaluationError
from ..core.texture import TextureSet
from .conditions import Script
from .issues import Severity, ValidationIssue, ValidationResult, compute_score
from .registry import Rule, RuleRegistry
from .script import ScriptRunner

logger = logging.getLogger("matscope.validation")

Rules = Union[RuleRegistry, Iterable[Rule]]


def _check_min_score(min_score) -> None:
    if isinstance(min_score, bool) or not isinstance(min_score, (int, float)) \
            or not (0 <= min_score <= 100):
        raise InvalidParameter(f"min_score must be in [0, 100], got {min_score!r}")


def evaluate_rule(rule: Rule, material: TextureSet,
                  runner: Optional[ScriptRunner] = None) -> List[ValidationIssue]:
    """Return the issues one rule raises for one material (empty when satisfied)."""
    if isinstance(rule.condition, Script):
        runner = runner or ScriptRunner()
        return runner.run(rule, material)
    try:
        finding = rule.condition.check(material)
    except Exception as exc:
        raise RuleEvaluationError(rule.id, material.display_name, exc) from exc
    if finding is None:
        return []
    return [ValidationIssue(rule.id, finding.severity or rule.severity, finding.message)]


def validate(material: TextureSet, rules: Optional[Rules] = None,
             min_score: Optional[int] = None,
             runner: Optional[ScriptRunner] = None,
             config: Optional[EngineConfig] = None) -> ValidationResult:
    """Validate one material.

    Every rule is evaluated in registry order against the whole material.
    The score starts at 100 and loses each issue's severity weight, floored
    at 0.  The material passes when the score reaches ``min_score`` and no
    issue is Critical.  ``rules`` defaults to the built-in registry;
    ``min_score`` and the script timeout default to ``config`` values.
    """
    config = config or EngineConfig()
    if min_score is None:
        min_score = config.validation.min_score
    _check_min_score(min_score)
    if rules is None:
        rules = RuleRegistry.default(config)
    if runner is None:
        runner = ScriptRunner(config.scripts.timeout_seconds)

    issues: List[ValidationIssue] = []
    for rule in rules:
        issues.extend(evaluate_rule(rule, material, runner))

    score = compute_score(issues)
    has_critical = any(i.severity is Severity.CRITICAL for i in issues)
    passed = score >= min_score and not has_critical
    logger.debug(
        "Validated %s: score=%d passed=%s issues=%d",
        material.display_name, score, passed, len(issues),
    )
    return ValidationResult(issues=issues, score=score, passed=passed)


def validate_batch(materials: Sequence[TextureSet], rules: Optional[Rules] = None,
                   min_score: Optional[int] = None, max_workers: int = 0,
                   runner=None, progress: bool = False,
                   config: Optional[EngineConfig] = None):
    """Validate many materials on the batch worker pool.

    Returns a :class:`~MatScope.batch.BatchResult` whose ``results`` list is
    in input order; a material whose evaluation raised appears as ``None``
    there and as an entry in ``failures``.
    """
    from ..batch import BatchRunner

    config = config or EngineConfig()
    if min_score is None:
        min_score = config.validation.min_score
    _check_min_score(min_score)
    if rules is None:
        rules = RuleRegistry.default(config)
    if isinstance(rules, RuleRegistry):
        rules.freeze()
    rules = list(rules)

    batch = runner or BatchRunner(max_workers=max_workers, config=config)
    return batch.map(
        lambda m: validate(m, rules, min_score=min_score, runner=batch.scripts,
                           config=config),
        materials,
        keys=[m.display_name for m in materials],
        desc="Validating",
        progress=progress,
    )
