"""Synthetic texture and plugin helpers shared by the test modules."""

import os
import sys
import textwrap

import numpy as np

from MatScope.core import Texture, TextureSet, save_image


def noise_texture(width=64, height=64, channels=3, seed=0, path=None):
    rng = np.random.default_rng(seed)
    shape = (height, width) if channels == 1 else (height, width, channels)
    return Texture(rng.random(shape, dtype=np.float32), path=path)


def gradient_texture(width=64, height=64, path=None):
    """Horizontal ramp: left edge black, right edge white."""
    ramp = np.linspace(0.0, 1.0, width, dtype=np.float32)
    arr = np.repeat(np.tile(ramp, (height, 1))[:, :, None], 3, axis=2)
    return Texture(arr, path=path)


def full_material(name="mat", size=1024, slots=("albedo", "normal", "roughness", "metallic", "ao")):
    return TextureSet(
        name=name,
        textures={slot: Texture.solid(size, size, 0.5) for slot in slots},
    )


def write_material_folder(folder, files, size=32, seed=0):
    """Write random PNGs named ``files`` into ``folder``."""
    os.makedirs(folder, exist_ok=True)
    rng = np.random.default_rng(seed)
    for fname in files:
        save_image(rng.random((size, size, 3), dtype=np.float32), os.path.join(folder, fname))
    return folder


def write_script(directory, name, body):
    """Write a Python script rule and return the argv that runs it."""
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, name)
    with open(path, "w", encoding="utf-8") as f:
        f.write(textwrap.dedent(body))
    return [sys.executable, path]
