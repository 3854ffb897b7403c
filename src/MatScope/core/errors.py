"""Exception taxonomy shared by the engine."""

from typing import Optional


class MatScopeError(Exception):
    """Base class for engine errors."""


class InvalidParameter(MatScopeError, ValueError):
    """Raised when a caller-supplied parameter is out of range or conflicting."""


class LoadError(MatScopeError):
    """Raised when a plugin manifest is unreadable, unparseable or schema-invalid."""

    def __init__(self, message: str, path: Optional[str] = None,
                 plugin: Optional[str] = None, rule_id: Optional[str] = None):
        self.path = path
        self.plugin = plugin
        self.rule_id = rule_id
        where = []
        if plugin:
            where.append(f"plugin '{plugin}'")
        if rule_id:
            where.append(f"rule '{rule_id}'")
        if path:
            where.append(f"({path})")
        prefix = " ".join(where)
        super().__init__(f"{prefix}: {message}" if prefix else message)
        self.reason = message


class RuleEvaluationError(MatScopeError):
    """Raised when a built-in rule fails while evaluating a material."""

    def __init__(self, rule_id: str, material: str, cause: BaseException):
        self.rule_id = rule_id
        self.material = material
        self.cause = cause
        super().__init__(
            f"Rule '{rule_id}' failed on material '{material}': "
            f"{cause.__class__.__name__}: {cause}"
        )


class AnalysisCancelledError(MatScopeError, RuntimeError):
    """Raised when a batch run observes a cancellation request."""
