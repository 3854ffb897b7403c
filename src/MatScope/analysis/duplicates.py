"""Duplicate and near-duplicate texture detection across materials."""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from ..config import TextureSlot
from ..core.errors import InvalidParameter
from ..core.texture import Texture, TextureSet
from .fingerprint import FingerprintIndex, compute_fingerprint

logger = logging.getLogger("matscope.analysis")

DEFAULT_DUPLICATE_THRESHOLD = 0.99
DEFAULT_SIMILAR_THRESHOLD = 0.80


@dataclass(frozen=True)
class TextureRef:
    material: str
    slot: TextureSlot
    texture: Texture
    texture_id: str
    material_index: int


@dataclass(frozen=True)
class DuplicatePair:
    path_a: str
    path_b: str
    slot_a: str
    slot_b: str
    material_a: str
    material_b: str
    similarity: float

    @property
    def slot(self) -> str:
        return self.slot_a

    def to_dict(self) -> dict:
        return {
            "path_a": self.path_a,
            "path_b": self.path_b,
            "slot": self.slot_a,
            "slot_a": self.slot_a,
            "slot_b": self.slot_b,
            "material_a": self.material_a,
            "material_b": self.material_b,
            "similarity": round(self.similarity, 6),
        }


@dataclass
class DuplicateAnalysis:
    duplicate_pairs: List[DuplicatePair]
    similar_pairs: List[DuplicatePair]
    duplicate_threshold: float
    similar_threshold: float
    failures: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "duplicate_pairs": [p.to_dict() for p in self.duplicate_pairs],
            "similar_pairs": [p.to_dict() for p in self.similar_pairs],
            "duplicate_threshold": self.duplicate_threshold,
            "similar_threshold": self.similar_threshold,
        }


def check_thresholds(duplicate_threshold: float, similar_threshold: float) -> None:
    if not (0.0 <= similar_threshold <= duplicate_threshold <= 1.0):
        raise InvalidParameter(
            "thresholds must satisfy 0 <= similar_threshold <= duplicate_threshold <= 1, "
            f"got similar={similar_threshold}, duplicate={duplicate_threshold}"
        )


def collect_texture_refs(materials: Sequence[TextureSet]) -> List[TextureRef]:
    """Every present texture of every material, in input then slot order."""
    refs = []
    for m_idx, material in enumerate(materials):
        for slot, tex in material.items():
            refs.append(TextureRef(
                material=material.display_name,
                slot=slot,
                texture=tex,
                texture_id=material.texture_id(slot),
                material_index=m_idx,
            ))
    return refs


def _make_pair(a: TextureRef, b: TextureRef, similarity: float) -> DuplicatePair:
    if (b.texture_id, b.slot.order) < (a.texture_id, a.slot.order):
        a, b = b, a
    return DuplicatePair(
        path_a=a.texture_id,
        path_b=b.texture_id,
        slot_a=a.slot.value,
        slot_b=b.slot.value,
        material_a=a.material,
        material_b=b.material,
        similarity=similarity,
    )


def _sort_key(pair: DuplicatePair):
    return (-pair.similarity, pair.path_a, pair.path_b)


def detect_duplicates(materials: Sequence[TextureSet],
                      duplicate_threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
                      similar_threshold: float = DEFAULT_SIMILAR_THRESHOLD,
                      same_slot_only: bool = True,
                      runner=None) -> DuplicateAnalysis:
    """Find texture pairs whose fingerprints are similar.

    Pairs at or above ``duplicate_threshold`` are duplicates; pairs in
    ``[similar_threshold, duplicate_threshold)`` are similar.  By default only
    textures of the same slot in different materials are compared.
    Fingerprints are computed on the batch pool when ``runner`` is given.
    """
    check_thresholds(duplicate_threshold, similar_threshold)
    refs = collect_texture_refs(materials)
    failures = []

    if runner is not None:
        batch = runner.map(
            lambda ref: compute_fingerprint(ref.texture),
            refs,
            keys=[r.texture_id for r in refs],
            desc="Fingerprinting",
        )
        prints = batch.results
        failures = list(batch.failures)
    else:
        prints = [compute_fingerprint(r.texture) for r in refs]

    index = FingerprintIndex()
    for ref, fp in zip(refs, prints):
        if fp is None:
            continue
        index.add(ref, fp, group=ref.slot if same_slot_only else None)

    duplicates: List[DuplicatePair] = []
    similar: List[DuplicatePair] = []
    for hit in index.pairs(similar_threshold):
        a, b = index.ref(hit.a), index.ref(hit.b)
        if a.material_index == b.material_index and (same_slot_only or a.slot == b.slot):
            continue
        sim = hit.similarity
        if sim < similar_threshold:
            continue
        pair = _make_pair(a, b, sim)
        if sim >= duplicate_threshold:
            duplicates.append(pair)
        else:
            similar.append(pair)

    duplicates.sort(key=_sort_key)
    similar.sort(key=_sort_key)
    logger.info(
        "Duplicate scan: %d textures, %d duplicate pair(s), %d similar pair(s)",
        len(refs), len(duplicates), len(similar),
    )
    return DuplicateAnalysis(
        duplicate_pairs=duplicates,
        similar_pairs=similar,
        duplicate_threshold=duplicate_threshold,
        similar_threshold=similar_threshold,
        failures=failures,
    )
