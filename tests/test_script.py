"""Tests for script rules run as child processes."""

import json
import os
import threading
import time

import pytest

from MatScope.config import EngineConfig
from MatScope.core import AnalysisCancelledError, Texture, TextureSet
from MatScope.validation import (
    Rule, ScriptRunner, Severity, material_summary, parse_response, validate,
)
from MatScope.validation.conditions import Script
from MatScope.validation.script import ScriptOutputError
from helpers import write_script


def _script_rule(tmp_dir, body, rule_id="custom", timeout=None, name="rule.py"):
    argv = write_script(tmp_dir, name, body)
    return Rule(
        rule_id, "script rule", Severity.MAJOR,
        Script(command=argv[0], args=tuple(argv[1:]), timeout=timeout),
        source="test_plugin", base_dir=tmp_dir,
    )


def _material():
    return TextureSet("brick", {
        "albedo": Texture.solid(64, 64),
        "normal": Texture.solid(64, 64),
    }, origin="/assets/brick")


def test_material_summary_shape():
    summary = material_summary(_material())
    assert summary == {
        "path": "/assets/brick",
        "name": "brick",
        "texture_count": 2,
        "dimensions": {"width": 64, "height": 64},
        "maps": {
            "albedo": True, "normal": True, "roughness": False,
            "metallic": False, "ao": False, "height": False,
        },
        "dimensions_consistent": True,
    }
    assert material_summary(TextureSet())["dimensions"] is None


def test_script_issues_are_reported(tmp_dir):
    rule = _script_rule(tmp_dir, """
        import json, sys
        req = json.load(sys.stdin)
        issues = []
        if not req["maps"]["roughness"]:
            issues.append({"severity": "warning", "message": "no roughness in " + req["name"]})
        issues.append({"rule_id": "naming", "severity": "minor", "message": "bad name"})
        print(json.dumps({"issues": issues}))
    """)
    result = validate(_material(), [rule])
    assert [(i.rule_id, i.severity) for i in result.issues] == [
        ("custom", Severity.MAJOR),
        ("naming", Severity.MINOR),
    ]
    assert result.issues[0].message == "no roughness in brick"
    assert result.score == 85


def test_empty_response_means_no_issues(tmp_dir):
    rule = _script_rule(tmp_dir, """
        import sys
        sys.stdin.read()
        print("{}")
    """)
    assert validate(_material(), [rule]).issues == []


def test_non_zero_exit_is_single_critical(tmp_dir):
    rule = _script_rule(tmp_dir, """
        import sys
        print('{"issues": [{"severity": "minor", "message": "ignored"}]}')
        sys.exit(2)
    """)
    result = validate(_material(), [rule])
    assert len(result.issues) == 1
    issue = result.issues[0]
    assert issue.rule_id == "script_execution_failed"
    assert issue.severity is Severity.CRITICAL
    assert "custom" in issue.message
    assert "2" in issue.message
    assert not result.passed


def test_invalid_json_is_major(tmp_dir):
    rule = _script_rule(tmp_dir, """
        print("this is not json")
    """)
    result = validate(_material(), [rule])
    assert [(i.rule_id, i.severity) for i in result.issues] == [
        ("script_output_invalid", Severity.MAJOR),
    ]
    assert result.passed


def test_timeout_kills_child(tmp_dir):
    rule = _script_rule(tmp_dir, """
        import time
        time.sleep(30)
    """, timeout=0.5)
    start = time.monotonic()
    result = validate(_material(), [rule])
    assert time.monotonic() - start < 10
    assert result.issues[0].rule_id == "script_execution_failed"
    assert result.issues[0].severity is Severity.CRITICAL
    assert "timed out" in result.issues[0].message


def test_timeout_defaults_to_config(tmp_dir):
    rule = _script_rule(tmp_dir, """
        import time
        time.sleep(30)
    """)
    config = EngineConfig()
    config.scripts.timeout_seconds = 0.5
    start = time.monotonic()
    result = validate(_material(), [rule], config=config)
    assert time.monotonic() - start < 10
    assert "timed out after 0.5s" in result.issues[0].message


def test_missing_command_is_critical(tmp_dir):
    rule = Rule(
        "ghost", "", Severity.MAJOR,
        Script(command=os.path.join(tmp_dir, "does-not-exist")),
    )
    result = validate(_material(), [rule])
    assert result.issues[0].rule_id == "script_execution_failed"
    assert result.issues[0].severity is Severity.CRITICAL


def test_runs_in_plugin_directory(tmp_dir):
    with open(os.path.join(tmp_dir, "marker.txt"), "w", encoding="utf-8") as f:
        f.write("here")
    rule = _script_rule(tmp_dir, """
        import json, os
        found = os.path.exists("marker.txt")
        print(json.dumps({"issues": [] if found else [
            {"severity": "critical", "message": "wrong cwd"}]}))
    """)
    assert validate(_material(), [rule]).issues == []


def test_cancelled_runner_refuses_to_start(tmp_dir):
    rule = _script_rule(tmp_dir, "print('{}')\n")
    runner = ScriptRunner()
    runner.cancel()
    with pytest.raises(AnalysisCancelledError):
        runner.run(rule, _material())


def test_cancel_kills_running_child(tmp_dir):
    rule = _script_rule(tmp_dir, """
        import time
        time.sleep(30)
    """, timeout=60)
    runner = ScriptRunner()
    timer = threading.Timer(0.5, runner.cancel)
    timer.start()
    start = time.monotonic()
    try:
        with pytest.raises(AnalysisCancelledError):
            runner.run(rule, _material())
    finally:
        timer.cancel()
    assert time.monotonic() - start < 10


class TestParseResponse:
    def test_default_rule_id(self):
        issues = parse_response(json.dumps({"issues": [
            {"severity": "error", "message": "x"},
        ]}), "fallback")
        assert issues[0].rule_id == "fallback"
        assert issues[0].severity is Severity.CRITICAL

    @pytest.mark.parametrize("stdout", [
        "[]",
        '{"issues": {}}',
        '{"issues": [{"severity": "major"}]}',
        '{"issues": [{"severity": "loud", "message": "x"}]}',
        '{"issues": ["text"]}',
    ])
    def test_malformed(self, stdout):
        with pytest.raises(ScriptOutputError):
            parse_response(stdout, "r")
