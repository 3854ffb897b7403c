"""Severity levels, validation issues and the scored result."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List

_SEVERITY_ALIASES = {
    "critical": "critical", "error": "critical",
    "major": "major", "warning": "major",
    "minor": "minor", "info": "minor",
}


class Severity(Enum):
    """Issue severity, ordered Critical > Major > Minor."""

    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"

    @property
    def weight(self) -> int:
        return _SEVERITY_WEIGHTS[self]

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value) -> "Severity":
        """Parse a severity name; accepts ``error``/``warning``/``info`` aliases."""
        if isinstance(value, Severity):
            return value
        key = _SEVERITY_ALIASES.get(str(value).strip().lower())
        if key is None:
            raise ValueError(
                f"Unknown severity '{value}' "
                f"(expected one of {sorted(_SEVERITY_ALIASES)})"
            )
        return cls(key)


_SEVERITY_WEIGHTS = {Severity.CRITICAL: 20, Severity.MAJOR: 10, Severity.MINOR: 5}
_SEVERITY_RANK = {Severity.CRITICAL: 3, Severity.MAJOR: 2, Severity.MINOR: 1}


@dataclass(frozen=True)
class ValidationIssue:
    rule_id: str
    severity: Severity
    message: str

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "severity": self.severity.value,
            "message": self.message,
        }


def compute_score(issues: Iterable[ValidationIssue]) -> int:
    """Return ``max(0, 100 - sum of severity weights)``."""
    penalty = sum(issue.severity.weight for issue in issues)
    return max(0, 100 - penalty)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one material."""

    issues: List[ValidationIssue] = field(default_factory=list)
    score: int = 100
    passed: bool = True

    @property
    def has_critical(self) -> bool:
        return any(i.severity is Severity.CRITICAL for i in self.issues)

    def by_severity(self, severity: Severity) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity is severity]

    def rule_ids(self) -> List[str]:
        return [i.rule_id for i in self.issues]

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "passed": self.passed,
            "issues": [i.to_dict() for i in self.issues],
        }
