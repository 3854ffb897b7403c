"""Tests for duplicate and near-duplicate detection across materials."""

import os
import shutil
import tempfile
import unittest

from MatScope.analysis import detect_duplicates
from MatScope.batch import BatchRunner
from MatScope.core import InvalidParameter, Texture, TextureSet, load_material
from helpers import noise_texture, write_material_folder


def _copy(tex, path):
    return Texture(tex.pixels.copy(), path=path)


class TestDetectDuplicates(unittest.TestCase):
    def test_identical_albedo_across_materials(self):
        shared = noise_texture(32, 32, seed=1)
        a = TextureSet("wall_b", {
            "albedo": _copy(shared, "/b/albedo.png"),
            "normal": noise_texture(32, 32, seed=2),
        })
        b = TextureSet("wall_a", {
            "albedo": _copy(shared, "/a/albedo.png"),
            "normal": noise_texture(32, 32, seed=3),
        })
        result = detect_duplicates([a, b])
        self.assertEqual(len(result.duplicate_pairs), 1)
        pair = result.duplicate_pairs[0]
        self.assertEqual(pair.similarity, 1.0)
        self.assertEqual((pair.path_a, pair.path_b), ("/a/albedo.png", "/b/albedo.png"))
        self.assertEqual((pair.material_a, pair.material_b), ("wall_a", "wall_b"))
        self.assertEqual(pair.slot, "albedo")
        self.assertEqual(result.similar_pairs, [])

    def test_byte_identical_copy_on_disk(self):
        tmp = tempfile.mkdtemp()
        try:
            first = write_material_folder(os.path.join(tmp, "rock"),
                                          ["rock_albedo.png", "rock_normal.png"], seed=4)
            second = os.path.join(tmp, "rock_copy")
            shutil.copytree(first, second)
            materials = [load_material(first), load_material(second)]
            result = detect_duplicates(materials, duplicate_threshold=1.0,
                                       similar_threshold=1.0)
            self.assertEqual(
                sorted(p.slot for p in result.duplicate_pairs), ["albedo", "normal"],
            )
            self.assertTrue(all(p.similarity == 1.0 for p in result.duplicate_pairs))
        finally:
            shutil.rmtree(tmp, ignore_errors=True)

    def test_same_slot_only_by_default(self):
        shared = noise_texture(32, 32, seed=5)
        a = TextureSet("a", {"albedo": _copy(shared, "/a/albedo.png")})
        b = TextureSet("b", {"roughness": _copy(shared, "/b/rough.png")})
        self.assertEqual(detect_duplicates([a, b]).duplicate_pairs, [])

        cross = detect_duplicates([a, b], same_slot_only=False).duplicate_pairs
        self.assertEqual(len(cross), 1)
        self.assertEqual((cross[0].slot_a, cross[0].slot_b), ("albedo", "roughness"))

    def test_pairs_sorted(self):
        shared = noise_texture(32, 32, seed=6)
        materials = [
            TextureSet(name, {"albedo": _copy(shared, f"/{name}/albedo.png")})
            for name in ("c", "a", "b")
        ]
        pairs = detect_duplicates(materials).duplicate_pairs
        self.assertEqual(
            [(p.path_a, p.path_b) for p in pairs],
            [
                ("/a/albedo.png", "/b/albedo.png"),
                ("/a/albedo.png", "/c/albedo.png"),
                ("/b/albedo.png", "/c/albedo.png"),
            ],
        )

    def test_missing_paths_use_material_slot_id(self):
        materials = [
            TextureSet("m1", {"ao": Texture.solid(16, 16, 0.4)}),
            TextureSet("m2", {"ao": Texture.solid(16, 16, 0.4)}),
        ]
        pair = detect_duplicates(materials).duplicate_pairs[0]
        self.assertEqual((pair.path_a, pair.path_b), ("m1:ao", "m2:ao"))

    def test_flat_black_and_white_are_not_duplicates(self):
        materials = [
            TextureSet("steel", {"metallic": Texture.solid(16, 16, 1.0, path="/steel/metal.png")}),
            TextureSet("wood", {"metallic": Texture.solid(16, 16, 0.0, path="/wood/metal.png")}),
        ]
        result = detect_duplicates(materials)
        self.assertEqual(result.duplicate_pairs, [])
        self.assertEqual(len(result.similar_pairs), 1)
        self.assertLess(result.similar_pairs[0].similarity, 0.9)

    def test_threshold_validation(self):
        for dup, sim in [(0.8, 0.9), (1.1, 0.5), (0.9, -0.1)]:
            with self.subTest(dup=dup, sim=sim):
                with self.assertRaises(InvalidParameter):
                    detect_duplicates([], duplicate_threshold=dup, similar_threshold=sim)

    def test_runner_gives_same_result(self):
        shared = noise_texture(32, 32, seed=8)
        materials = [
            TextureSet(f"m{i}", {"albedo": _copy(shared, f"/m{i}.png"),
                                 "normal": noise_texture(32, 32, seed=20 + i)})
            for i in range(4)
        ]
        serial = detect_duplicates(materials)
        pooled = detect_duplicates(materials, runner=BatchRunner(max_workers=4))
        self.assertEqual(serial.duplicate_pairs, pooled.duplicate_pairs)
        self.assertEqual(len(pooled.duplicate_pairs), 6)
        self.assertEqual(pooled.failures, [])

    def test_to_dict(self):
        shared = noise_texture(16, 16, seed=9)
        result = detect_duplicates([
            TextureSet("a", {"albedo": _copy(shared, "/a.png")}),
            TextureSet("b", {"albedo": _copy(shared, "/b.png")}),
        ])
        data = result.to_dict()
        self.assertEqual(data["duplicate_threshold"], 0.99)
        self.assertEqual(data["duplicate_pairs"][0]["slot"], "albedo")
        self.assertEqual(data["duplicate_pairs"][0]["similarity"], 1.0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
