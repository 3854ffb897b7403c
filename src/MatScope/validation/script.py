"""Run script rules as child processes speaking JSON over stdin/stdout.

The child receives a one-object material summary on stdin and answers on
stdout with ``{"issues": [{"rule_id", "severity", "message"}, ...]}``.
Every failure mode (spawn error, non-zero exit, timeout, malformed output)
is turned into a validation issue rather than an exception.
"""

import json
import logging
import os
import subprocess
import threading
from typing import List, Optional

from ..config import TextureSlot
from ..core.errors import AnalysisCancelledError
from ..core.texture import TextureSet
from .conditions import Script
from .issues import Severity, ValidationIssue

logger = logging.getLogger("matscope.scripts")

DEFAULT_TIMEOUT = 10.0
EXECUTION_FAILED = "script_execution_failed"
OUTPUT_INVALID = "script_output_invalid"


def material_summary(material: TextureSet) -> dict:
    """Build the request object a script receives on stdin."""
    dims = material.dimensions
    return {
        "path": material.origin,
        "name": material.name,
        "texture_count": material.texture_count,
        "dimensions": {"width": dims[0], "height": dims[1]} if dims else None,
        "maps": {slot.value: material.has(slot) for slot in TextureSlot},
        "dimensions_consistent": material.dimensions_consistent,
    }


class ScriptOutputError(ValueError):
    """Raised internally when a script's stdout does not follow the protocol."""


def parse_response(stdout: str, default_rule_id: str) -> List[ValidationIssue]:
    """Parse a script response into issues.  A missing ``issues`` key means none."""
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as exc:
        raise ScriptOutputError(f"stdout is not valid JSON ({exc.msg})") from exc
    if not isinstance(data, dict):
        raise ScriptOutputError(f"expected a JSON object, got {type(data).__name__}")
    raw_issues = data.get("issues", [])
    if raw_issues is None:
        raw_issues = []
    if not isinstance(raw_issues, list):
        raise ScriptOutputError("'issues' must be a list")

    issues = []
    for idx, item in enumerate(raw_issues):
        if not isinstance(item, dict):
            raise ScriptOutputError(f"issues[{idx}] must be an object")
        message = item.get("message")
        if not isinstance(message, str):
            raise ScriptOutputError(f"issues[{idx}].message must be a string")
        rule_id = item.get("rule_id") or default_rule_id
        if not isinstance(rule_id, str):
            raise ScriptOutputError(f"issues[{idx}].rule_id must be a string")
        try:
            severity = Severity.parse(item.get("severity", ""))
        except ValueError as exc:
            raise ScriptOutputError(f"issues[{idx}]: {exc}") from exc
        issues.append(ValidationIssue(rule_id, severity, message))
    return issues


class ScriptRunner:
    """Spawn script rules and track the live children so they can be killed.

    One runner is shared by all workers of a batch.  :meth:`cancel` kills
    every running child and makes later :meth:`run` calls raise
    :class:`AnalysisCancelledError`.
    """

    def __init__(self, default_timeout: float = DEFAULT_TIMEOUT):
        self.default_timeout = default_timeout
        self._lock = threading.Lock()
        self._procs = set()
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()
        with self._lock:
            procs = list(self._procs)
        for proc in procs:
            _kill(proc)
        if procs:
            logger.info("Killed %d running script rule(s)", len(procs))

    @staticmethod
    def _resolve_command(command: str, base_dir: Optional[str]) -> str:
        if base_dir and not os.path.isabs(command) and (os.sep in command or "/" in command):
            return os.path.normpath(os.path.join(base_dir, command))
        return command

    def run(self, rule, material: TextureSet) -> List[ValidationIssue]:
        """Evaluate one script rule against one material."""
        condition: Script = rule.condition
        if self.cancelled:
            raise AnalysisCancelledError("Analysis cancelled; not starting script rules")

        timeout = condition.timeout or self.default_timeout
        command = self._resolve_command(condition.command, rule.base_dir)
        argv = [command, *condition.args]
        payload = json.dumps(material_summary(material))
        cwd = rule.base_dir if rule.base_dir and os.path.isdir(rule.base_dir) else None

        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            logger.warning("Script rule '%s' could not start %s: %s", rule.id, command, exc)
            return [ValidationIssue(
                EXECUTION_FAILED, Severity.CRITICAL,
                f"Script rule '{rule.id}' failed to run {condition.command}: {exc}",
            )]

        with self._lock:
            self._procs.add(proc)
            # cancel() may have taken its snapshot before this child existed.
            if self.cancelled:
                _kill(proc)
        try:
            try:
                stdout, stderr = proc.communicate(payload, timeout=timeout)
            except subprocess.TimeoutExpired:
                _kill(proc)
                proc.communicate()
                logger.warning(
                    "Script rule '%s' timed out after %.1fs; process killed", rule.id, timeout
                )
                return [ValidationIssue(
                    EXECUTION_FAILED, Severity.CRITICAL,
                    f"Script rule '{rule.id}' timed out after {timeout:g}s "
                    f"(exit code {proc.returncode})",
                )]
        finally:
            with self._lock:
                self._procs.discard(proc)

        if self.cancelled:
            raise AnalysisCancelledError(f"Analysis cancelled while running '{rule.id}'")
        if stderr:
            logger.debug("Script rule '%s' stderr: %s", rule.id, stderr.strip())

        if proc.returncode != 0:
            logger.warning("Script rule '%s' exited with code %d", rule.id, proc.returncode)
            return [ValidationIssue(
                EXECUTION_FAILED, Severity.CRITICAL,
                f"Script rule '{rule.id}' failed (exit code {proc.returncode})",
            )]

        try:
            return parse_response(stdout, rule.id)
        except ScriptOutputError as exc:
            logger.warning("Script rule '%s' produced invalid output: %s", rule.id, exc)
            return [ValidationIssue(
                OUTPUT_INVALID, Severity.MAJOR,
                f"Script rule '{rule.id}' returned invalid output: {exc}",
            )]


def _kill(proc: subprocess.Popen) -> None:
    try:
        proc.kill()
    except OSError:
        pass
