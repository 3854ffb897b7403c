"""Tiling helpers: edge-seam measurement and seam repair by edge blending."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np

from ..config import TextureSlot
from .errors import InvalidParameter
from .io import color_channels, save_image
from .texture import Texture, TextureSet

logger = logging.getLogger("matscope.tiling")

# Per-channel equivalents of 10 and 40 summed over RGB.
DEFAULT_THRESHOLD = 10.0 / 3
SEAM_RULE_THRESHOLD = 40.0 / 3
DEFAULT_BAND_WIDTH = 1
DEFAULT_BLEND_WIDTH = 4


@dataclass(frozen=True)
class TileabilityAnalysis:
    edge_difference: float
    needs_fix: bool
    threshold: float


@dataclass(frozen=True, eq=False)
class TileabilityFix:
    """A repaired texture together with its before/after seam metrics."""

    texture: Texture
    original_edge_difference: float
    fixed_edge_difference: float
    improved: bool

    @property
    def path(self) -> Optional[str]:
        return self.texture.path

    def to_dict(self) -> dict:
        return {
            "path": self.path or "unknown",
            "original_edge_difference": round(self.original_edge_difference, 4),
            "fixed_edge_difference": round(self.fixed_edge_difference, 4),
            "improved": self.improved,
        }


@dataclass(frozen=True)
class TileabilityEntry:
    path: str
    slot: str
    material: str
    edge_difference: float
    needs_fix: bool

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "slot": self.slot,
            "material": self.material,
            "edge_difference": round(self.edge_difference, 4),
            "needs_fix": self.needs_fix,
        }


def _pixels(texture_or_array: Union[Texture, np.ndarray]) -> np.ndarray:
    if isinstance(texture_or_array, Texture):
        return texture_or_array.pixels
    return np.asarray(texture_or_array, dtype=np.float32)


def edge_difference(texture_or_array: Union[Texture, np.ndarray],
                    band_width: int = DEFAULT_BAND_WIDTH) -> float:
    """Measure how visibly opposite edges disagree when the image is tiled.

    Compares the ``band_width`` columns at the left edge against the mirrored
    columns at the right edge, and likewise top rows against bottom rows.
    The result is the mean absolute per-channel difference on a 0-255 scale
    over both seams.  Alpha is ignored.  Higher means less tileable.
    """
    if band_width < 1:
        raise InvalidParameter(f"band_width must be >= 1, got {band_width}")
    arr = color_channels(_pixels(texture_or_array))
    h, w = arr.shape[:2]
    bx = min(band_width, w)
    by = min(band_width, h)

    left = arr[:, :bx, :]
    right = arr[:, w - bx:, :][:, ::-1, :]
    top = arr[:by, :, :]
    bottom = arr[h - by:, :, :][::-1, :, :]

    diff_lr = np.abs(left.astype(np.float64) - right.astype(np.float64))
    diff_tb = np.abs(top.astype(np.float64) - bottom.astype(np.float64))
    total = float(diff_lr.sum()) + float(diff_tb.sum())
    count = diff_lr.size + diff_tb.size
    if count == 0:
        return 0.0
    return total / count * 255.0


def analyze_tileability(texture: Texture, threshold: float = DEFAULT_THRESHOLD,
                        band_width: int = DEFAULT_BAND_WIDTH) -> TileabilityAnalysis:
    ed = edge_difference(texture, band_width=band_width)
    return TileabilityAnalysis(edge_difference=ed, needs_fix=ed > threshold, threshold=threshold)


def _blend_pass(arr: np.ndarray, blend_width: int, axis: int) -> None:
    """Cross-blend mirrored pixel pairs along one axis, in place."""
    size = arr.shape[axis]
    for d in range(blend_width):
        a = 0.5 * (1.0 - d / blend_width)
        near = np.take(arr, d, axis=axis).copy()
        far = np.take(arr, size - 1 - d, axis=axis).copy()
        new_near = (1.0 - a) * near + a * far
        new_far = (1.0 - a) * far + a * near
        if axis == 1:
            arr[:, d] = new_near
            arr[:, size - 1 - d] = new_far
        else:
            arr[d] = new_near
            arr[size - 1 - d] = new_far


def fix_tileability(texture: Texture, blend_width: int = DEFAULT_BLEND_WIDTH,
                    band_width: int = DEFAULT_BAND_WIDTH) -> TileabilityFix:
    """Blend opposite edges so the texture wraps without a visible seam.

    For each depth ``d < blend_width`` the pixel at ``d`` and its mirror at
    ``size - 1 - d`` are cross-blended with weight ``0.5 * (1 - d / blend_width)``,
    first left/right, then top/bottom.  The outermost pair ends up identical;
    the blend fades out toward the interior, which is left untouched.
    """
    w, h = texture.width, texture.height
    if blend_width < 1:
        raise InvalidParameter(f"blend_width must be >= 1, got {blend_width}")
    if blend_width >= min(w, h) / 2:
        raise InvalidParameter(
            f"blend_width {blend_width} too large for {w}x{h} texture "
            f"(must be < {min(w, h) / 2:g})"
        )

    arr = np.array(texture.pixels, dtype=np.float32, copy=True)
    _blend_pass(arr, blend_width, axis=1)
    _blend_pass(arr, blend_width, axis=0)
    fixed = texture.with_pixels(np.clip(arr, 0.0, 1.0))

    original_ed = edge_difference(texture, band_width=band_width)
    fixed_ed = edge_difference(fixed, band_width=band_width)
    logger.debug(
        "Tileability fix %s: edge difference %.3f -> %.3f (blend=%d)",
        texture.path or "<memory>", original_ed, fixed_ed, blend_width,
    )
    return TileabilityFix(
        texture=fixed,
        original_edge_difference=original_ed,
        fixed_edge_difference=fixed_ed,
        improved=fixed_ed < original_ed,
    )


def save_fixed_texture(fix: TileabilityFix, path: str, bits: int = 8) -> str:
    """Write a repaired texture with the atomic image writer and return the path."""
    save_image(fix.texture.pixels, path, bits=bits)
    logger.info("Saved tileability fix: %s", path)
    return path


def analyze_materials_tileability(materials: Sequence[TextureSet],
                                  threshold: float = DEFAULT_THRESHOLD,
                                  band_width: int = DEFAULT_BAND_WIDTH) -> List[TileabilityEntry]:
    """Measure every present texture of every material.

    Entries are ordered by material name, then canonical slot order.
    """
    entries = []
    for material in materials:
        for slot, tex in material.items():
            result = analyze_tileability(tex, threshold=threshold, band_width=band_width)
            entries.append(TileabilityEntry(
                path=material.texture_id(slot),
                slot=slot.value,
                material=material.display_name,
                edge_difference=result.edge_difference,
                needs_fix=result.needs_fix,
            ))
    entries.sort(key=lambda e: (e.material, TextureSlot(e.slot).order))
    return entries
