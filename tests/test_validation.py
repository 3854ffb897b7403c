"""Tests for the validation engine, built-in rules and scoring."""

import unittest

import numpy as np

from MatScope.config import EngineConfig
from MatScope.core import InvalidParameter, RuleEvaluationError, Texture, TextureSet
from MatScope.validation import (
    Condition, MaxResolution, PowerOfTwo, RequiredMaps, Rule, RuleRegistry,
    Severity, ValidationIssue, compute_score, validate, validate_batch,
)
from MatScope.validation.conditions import EdgeSeam
from helpers import full_material, noise_texture


class TestScoring(unittest.TestCase):
    def test_weights(self):
        issues = [
            ValidationIssue("a", Severity.CRITICAL, ""),
            ValidationIssue("b", Severity.MAJOR, ""),
            ValidationIssue("c", Severity.MINOR, ""),
        ]
        self.assertEqual(compute_score(issues), 65)

    def test_score_floors_at_zero(self):
        issues = [ValidationIssue(str(i), Severity.CRITICAL, "") for i in range(10)]
        self.assertEqual(compute_score(issues), 0)

    def test_score_monotonically_non_increasing(self):
        issues = []
        previous = compute_score(issues)
        for sev in [Severity.MINOR, Severity.MAJOR, Severity.CRITICAL] * 4:
            issues.append(ValidationIssue("r", sev, "m"))
            score = compute_score(issues)
            self.assertLessEqual(score, previous)
            self.assertTrue(0 <= score <= 100)
            previous = score

    def test_severity_order_and_aliases(self):
        self.assertGreater(Severity.CRITICAL, Severity.MAJOR)
        self.assertGreater(Severity.MAJOR, Severity.MINOR)
        self.assertIs(Severity.parse("error"), Severity.CRITICAL)
        self.assertIs(Severity.parse("Warning"), Severity.MAJOR)
        self.assertIs(Severity.parse("info"), Severity.MINOR)
        with self.assertRaises(ValueError):
            Severity.parse("fatal")


class TestDefaultRules(unittest.TestCase):
    def test_complete_material_scores_100(self):
        result = validate(full_material(size=1024))
        self.assertEqual(result.issues, [])
        self.assertEqual(result.score, 100)
        self.assertTrue(result.passed)

    def test_missing_normal_and_oversized_albedo(self):
        material = TextureSet("big", {"albedo": Texture.solid(4100, 4100, 0.5)})
        result = validate(material)
        self.assertEqual(
            [(i.rule_id, i.severity) for i in result.issues],
            [
                ("required_maps", Severity.MAJOR),
                ("max_resolution", Severity.MAJOR),
                ("power_of_two", Severity.MINOR),
            ],
        )
        self.assertEqual(result.score, 75)
        self.assertTrue(result.passed)
        self.assertIn("normal", result.issues[0].message)
        self.assertIn("4100x4100", result.issues[1].message)
        self.assertIn("4096x4096", result.issues[1].message)

    def test_required_maps_lists_every_missing_slot(self):
        result = validate(TextureSet("empty"))
        self.assertEqual(result.rule_ids(), ["required_maps"])
        self.assertIn("albedo, normal", result.issues[0].message)

    def test_power_of_two_one_issue_for_all_textures(self):
        material = TextureSet("npot", {
            "albedo": Texture.solid(100, 100),
            "normal": Texture.solid(100, 100),
        })
        result = validate(material)
        npot = result.by_severity(Severity.MINOR)
        self.assertEqual(len(npot), 1)
        self.assertIn("albedo (100x100)", npot[0].message)
        self.assertIn("normal (100x100)", npot[0].message)

    def test_min_resolution(self):
        material = TextureSet("tiny", {
            "albedo": Texture.solid(2, 2),
            "normal": Texture.solid(2, 2),
        })
        self.assertIn("min_resolution", validate(material).rule_ids())

    def test_resolution_mismatch(self):
        material = TextureSet("mixed", {
            "albedo": Texture.solid(64, 64),
            "normal": Texture.solid(32, 32),
        })
        result = validate(material)
        self.assertEqual(result.rule_ids(), ["resolution_mismatch"])
        self.assertEqual(result.score, 90)

    def test_max_texture_count(self):
        config = EngineConfig()
        config.validation.max_texture_count = 2
        result = validate(full_material(size=64), RuleRegistry.default(config))
        self.assertEqual(result.rule_ids(), ["max_texture_count"])

    def test_min_score_gates_pass(self):
        material = TextureSet("big", {"albedo": Texture.solid(4100, 4100, 0.5)})
        self.assertFalse(validate(material, min_score=80).passed)
        with self.assertRaises(InvalidParameter):
            validate(material, min_score=101)

    def test_min_score_defaults_to_config(self):
        material = TextureSet("m", {"albedo": Texture.solid(8, 8)})
        rules = [Rule("req", "", Severity.MAJOR, RequiredMaps(("normal",)))]
        config = EngineConfig()
        config.validation.min_score = 95
        self.assertTrue(validate(material, rules).passed)
        self.assertFalse(validate(material, rules, config=config).passed)
        self.assertTrue(validate(material, rules, min_score=50, config=config).passed)
        batch = validate_batch([material], rules, max_workers=1, config=config)
        self.assertEqual([r.passed for r in batch.results], [False])

    def test_content_checks_opt_in(self):
        material = TextureSet("dark", {
            "albedo": Texture.solid(64, 64, 0.0),
            "normal": Texture.solid(64, 64, 0.2),
            "roughness": Texture.solid(64, 64, 0.5),
            "metallic": Texture.solid(64, 64, 128 / 255),
        })
        self.assertEqual(validate(material).issues, [])

        config = EngineConfig()
        config.validation.content_checks = True
        result = validate(material, RuleRegistry.default(config))
        found = {i.rule_id: i.severity for i in result.issues}
        self.assertEqual(found["albedo_brightness_range"], Severity.MAJOR)
        self.assertEqual(found["roughness_uniformity"], Severity.MINOR)
        self.assertEqual(found["metallic_mid_gray"], Severity.MINOR)
        self.assertEqual(found["normal_map_strength"], Severity.MINOR)
        self.assertNotIn("tileability", found)

    def test_edge_seam_rule_threshold_per_channel(self):
        arr = np.zeros((8, 8, 3), dtype=np.float32)
        arr[:, -1, :] = 30 / 255
        material = TextureSet("m", {"albedo": Texture(arr)})
        finding = EdgeSeam().check(material)
        self.assertIsNotNone(finding)
        self.assertIn("15.0", finding.message)
        self.assertIsNone(EdgeSeam(threshold=15.5).check(material))

    def test_edge_seam_content_rule(self):
        ramp = np.tile(np.linspace(0, 1, 64, dtype=np.float32), (64, 1))
        material = TextureSet("seam", {
            "albedo": Texture(np.repeat(ramp[:, :, None], 3, axis=2)),
            "normal": noise_texture(64, 64),
        })
        config = EngineConfig()
        config.validation.content_checks = True
        self.assertIn("tileability", validate(material, RuleRegistry.default(config)).rule_ids())


class _Boom(Condition):
    kind = "boom"

    def check(self, material):
        raise ZeroDivisionError("nope")


class TestEngine(unittest.TestCase):
    def test_deterministic(self):
        material = TextureSet("npot", {"albedo": Texture.solid(100, 60)})
        self.assertEqual(validate(material), validate(material))

    def test_rule_severity_applies(self):
        rules = [Rule("pot", "pot", Severity.CRITICAL, PowerOfTwo())]
        result = validate(TextureSet("m", {"albedo": Texture.solid(3, 3)}), rules)
        self.assertEqual(result.issues[0].severity, Severity.CRITICAL)
        self.assertEqual(result.score, 80)
        self.assertFalse(result.passed)

    def test_builtin_failure_wrapped(self):
        rules = [Rule("boom", "", Severity.MINOR, _Boom())]
        with self.assertRaises(RuleEvaluationError) as ctx:
            validate(TextureSet("m"), rules)
        self.assertEqual(ctx.exception.rule_id, "boom")
        self.assertIsInstance(ctx.exception.__cause__, ZeroDivisionError)

    def test_to_dict(self):
        result = validate(TextureSet("m", {"albedo": Texture.solid(8, 8)}),
                          [Rule("req", "", Severity.MAJOR, RequiredMaps(("normal",)))])
        self.assertEqual(result.to_dict(), {
            "score": 90,
            "passed": True,
            "issues": [{"rule_id": "req", "severity": "major",
                        "message": "Missing required maps: normal"}],
        })

    def test_custom_max_resolution_names_slot(self):
        material = TextureSet("m", {
            "albedo": Texture.solid(256, 256),
            "normal": Texture.solid(1024, 1024),
        })
        rules = [Rule("max", "", Severity.MAJOR, MaxResolution(512, 512))]
        self.assertIn("normal", validate(material, rules).issues[0].message)


class TestValidateBatch(unittest.TestCase):
    def test_results_in_input_order(self):
        materials = [
            full_material("a", size=64),
            TextureSet("b", {"albedo": Texture.solid(100, 100)}),
            full_material("c", size=64),
        ]
        batch = validate_batch(materials, max_workers=3)
        self.assertTrue(batch.ok)
        self.assertEqual([r.score for r in batch.results], [100, 85, 100])

    def test_failure_isolated(self):
        rules = RuleRegistry([Rule("boom", "", Severity.MINOR, _Boom())])
        materials = [full_material("a", size=8), full_material("b", size=8)]
        batch = validate_batch(materials, rules, max_workers=2)
        self.assertEqual(len(batch.failures), 2)
        self.assertEqual([f.key for f in batch.failures], ["a", "b"])
        self.assertEqual(batch.failures[0].error_type, "RuleEvaluationError")
        self.assertTrue(rules.frozen)


if __name__ == "__main__":
    unittest.main(verbosity=2)
