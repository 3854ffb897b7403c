"""Perceptual fingerprints and a banded index for near-duplicate search.

A fingerprint is 144 bits: 16 level bits (mean luminance as a thermometer
code), a 64-bit average hash over an 8x8 area-averaged luminance grid and a
64-bit difference hash over a 9x8 grid.  Hash bits are only set when a cell
exceeds its reference by more than a small epsilon, so flat maps hash to
zero structure and are told apart by their level bits alone.  It is computed
from decoded pixels only, so re-encoding an image losslessly does not change
it.

The index splits the bits into ``max_distance + 1`` bands.  Two
fingerprints within ``max_distance`` differing bits must agree exactly on at
least one band (pigeonhole), so bucketing by band value finds every match
without comparing all pairs.
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterator, List, Optional, Tuple

import cv2
import numpy as np

from ..core.errors import InvalidParameter
from ..core.io import luminance_bt601
from ..core.texture import Texture

logger = logging.getLogger("matscope.analysis")

FINGERPRINT_BITS = 144
_HASH_SIZE = 8
_LEVEL_BITS = 16
# Luminance steps below this are resampling noise, not structure.
_HASH_EPSILON = 1e-3


def _pack_bits(bits: np.ndarray) -> int:
    value = 0
    for bit in bits.ravel():
        value = (value << 1) | int(bool(bit))
    return value


@dataclass(frozen=True)
class Fingerprint:
    """144-bit perceptual hash; ``value`` holds the bits as an int."""

    value: int

    def distance(self, other: "Fingerprint") -> int:
        return (self.value ^ other.value).bit_count()

    def similarity(self, other: "Fingerprint") -> float:
        return 1.0 - self.distance(other) / FINGERPRINT_BITS

    def hex(self) -> str:
        return f"{self.value:0{FINGERPRINT_BITS // 4}x}"

    def __str__(self) -> str:
        return self.hex()


def _level_bits(mean: float) -> int:
    """Thermometer code: Hamming distance grows with the brightness gap."""
    filled = int(round(min(max(mean, 0.0), 1.0) * _LEVEL_BITS))
    return (1 << filled) - 1


def compute_fingerprint(texture: Texture) -> Fingerprint:
    """Fingerprint a texture from its luminance (alpha ignored)."""
    lum = np.array(luminance_bt601(texture.pixels), dtype=np.float32, order="C")
    small = cv2.resize(lum, (_HASH_SIZE, _HASH_SIZE), interpolation=cv2.INTER_AREA)
    ahash = small > float(small.mean(dtype=np.float64)) + _HASH_EPSILON
    wide = cv2.resize(lum, (_HASH_SIZE + 1, _HASH_SIZE), interpolation=cv2.INTER_AREA)
    dhash = wide[:, 1:] > wide[:, :-1] + _HASH_EPSILON
    level = _level_bits(float(lum.mean(dtype=np.float64)))
    return Fingerprint((level << 128) | (_pack_bits(ahash) << 64) | _pack_bits(dhash))


def max_distance_for(similar_threshold: float) -> int:
    """Largest Hamming distance whose similarity still meets the threshold."""
    if not (0.0 <= similar_threshold <= 1.0):
        raise InvalidParameter(f"similar_threshold must be in [0, 1], got {similar_threshold}")
    return int(math.floor((1.0 - similar_threshold) * FINGERPRINT_BITS + 1e-9))


def _band_masks(bands: int) -> List[Tuple[int, int]]:
    """Split the bit range into ``bands`` contiguous (shift, mask) pieces."""
    base, extra = divmod(FINGERPRINT_BITS, bands)
    masks = []
    shift = 0
    for i in range(bands):
        width = base + (1 if i < extra else 0)
        masks.append((shift, (1 << width) - 1))
        shift += width
    return masks


@dataclass(frozen=True)
class IndexedPair:
    a: int
    b: int
    distance: int

    @property
    def similarity(self) -> float:
        return 1.0 - self.distance / FINGERPRINT_BITS


class FingerprintIndex:
    """Collect fingerprints, then enumerate pairs above a similarity threshold.

    Entries with a ``group`` are only paired with entries of the same group;
    ``group=None`` entries form their own group.
    """

    def __init__(self):
        self._refs: List[Any] = []
        self._prints: List[Fingerprint] = []
        self._groups: List[Optional[Hashable]] = []

    def add(self, ref: Any, fingerprint: Fingerprint, group: Optional[Hashable] = None) -> int:
        self._refs.append(ref)
        self._prints.append(fingerprint)
        self._groups.append(group)
        return len(self._refs) - 1

    def __len__(self) -> int:
        return len(self._refs)

    def ref(self, idx: int) -> Any:
        return self._refs[idx]

    def fingerprint(self, idx: int) -> Fingerprint:
        return self._prints[idx]

    def _candidates(self, max_distance: int) -> Iterator[Tuple[int, int]]:
        n = len(self._prints)
        bands = max_distance + 1
        if bands > FINGERPRINT_BITS:
            for i in range(n):
                for j in range(i + 1, n):
                    if self._groups[i] == self._groups[j]:
                        yield i, j
            return

        masks = _band_masks(bands)
        buckets: Dict[Tuple, List[int]] = defaultdict(list)
        for idx, fp in enumerate(self._prints):
            for band, (shift, mask) in enumerate(masks):
                buckets[(self._groups[idx], band, (fp.value >> shift) & mask)].append(idx)
        seen = set()
        for members in buckets.values():
            if len(members) < 2:
                continue
            for x in range(len(members)):
                for y in range(x + 1, len(members)):
                    pair = (members[x], members[y])
                    if pair not in seen:
                        seen.add(pair)
                        yield pair

    def pairs(self, similar_threshold: float) -> List[IndexedPair]:
        """All pairs with similarity >= ``similar_threshold``, by index."""
        max_distance = max_distance_for(similar_threshold)
        found = []
        for i, j in self._candidates(max_distance):
            d = self._prints[i].distance(self._prints[j])
            if d <= max_distance:
                found.append(IndexedPair(i, j, d))
        logger.debug(
            "Fingerprint index: %d entries, %d pairs within distance %d",
            len(self._prints), len(found), max_distance,
        )
        return found
