"""Texture and material (texture set) data structures, plus folder loading."""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

import numpy as np

from ..config import EngineConfig, SLOT_ALIASES, TextureSlot
from .io import load_image

logger = logging.getLogger("matscope.texture")

SlotKey = Union[TextureSlot, str]


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


@dataclass(frozen=True, eq=False)
class Texture:
    """One decoded texture map.

    ``pixels`` is a float32 array in [0, 1] shaped (H, W) for grayscale or
    (H, W, C) with C in {1, 2, 3, 4}.  The array is made read-only on
    construction so a texture cannot change after it is loaded.
    """

    pixels: np.ndarray
    path: Optional[str] = None

    def __post_init__(self) -> None:
        arr = np.asarray(self.pixels)
        if arr.ndim not in (2, 3) or arr.shape[0] < 1 or arr.shape[1] < 1:
            raise ValueError(f"Texture pixels must be (H, W) or (H, W, C), got shape {arr.shape}")
        if arr.ndim == 3 and arr.shape[2] not in (1, 2, 3, 4):
            raise ValueError(f"Unsupported channel count {arr.shape[2]} (expected 1-4)")
        if arr.dtype != np.float32:
            arr = arr.astype(np.float32)
        elif arr.flags.writeable and arr is self.pixels:
            arr = arr.copy()
        if arr.flags.writeable:
            arr.flags.writeable = False
        object.__setattr__(self, "pixels", arr)
        if self.path is not None:
            object.__setattr__(self, "path", str(self.path))

    @classmethod
    def solid(cls, width: int, height: int, value: float = 0.5,
              channels: int = 3, path: Optional[str] = None) -> "Texture":
        """Build a constant-color texture without allocating per-pixel storage."""
        shape = (height, width) if channels == 1 else (height, width, channels)
        return cls(np.broadcast_to(np.float32(value), shape), path=path)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    @property
    def dimensions(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def is_power_of_two(self) -> bool:
        return is_power_of_two(self.width) and is_power_of_two(self.height)

    def with_pixels(self, pixels: np.ndarray) -> "Texture":
        """Return a new texture sharing this texture's path."""
        return Texture(pixels, path=self.path)

    def __repr__(self) -> str:
        return f"Texture({self.width}x{self.height}x{self.channels}, path={self.path!r})"


def _coerce_slot(slot: SlotKey) -> TextureSlot:
    if isinstance(slot, TextureSlot):
        return slot
    return TextureSlot.parse(slot)


@dataclass(frozen=True, eq=False)
class TextureSet:
    """A material: at most one texture per slot, plus a display name and origin."""

    name: Optional[str] = None
    textures: Mapping[TextureSlot, Texture] = field(default_factory=dict)
    origin: Optional[str] = None

    def __post_init__(self) -> None:
        normalized: Dict[TextureSlot, Texture] = {}
        for key, tex in dict(self.textures).items():
            slot = _coerce_slot(key)
            if slot in normalized:
                raise ValueError(f"Duplicate texture for slot '{slot.value}'")
            if tex is None:
                continue
            if not isinstance(tex, Texture):
                raise TypeError(
                    f"Slot '{slot.value}' must hold a Texture, got {type(tex).__name__}"
                )
            normalized[slot] = tex
        ordered = {slot: normalized[slot] for slot in TextureSlot if slot in normalized}
        object.__setattr__(self, "textures", MappingProxyType(ordered))
        if self.origin is not None:
            object.__setattr__(self, "origin", str(self.origin))

    def get(self, slot: SlotKey) -> Optional[Texture]:
        return self.textures.get(_coerce_slot(slot))

    def has(self, slot: SlotKey) -> bool:
        return _coerce_slot(slot) in self.textures

    def items(self) -> Iterator[Tuple[TextureSlot, Texture]]:
        """Iterate present (slot, texture) pairs in canonical slot order."""
        return iter(self.textures.items())

    @property
    def present_slots(self) -> List[TextureSlot]:
        return list(self.textures)

    @property
    def missing_slots(self) -> List[TextureSlot]:
        return [slot for slot in TextureSlot if slot not in self.textures]

    @property
    def texture_count(self) -> int:
        return len(self.textures)

    @property
    def dimensions(self) -> Optional[Tuple[int, int]]:
        """Dimensions of the first present texture in slot order."""
        for tex in self.textures.values():
            return tex.dimensions
        return None

    @property
    def dimensions_consistent(self) -> bool:
        dims = self.dimensions
        if dims is None:
            return True
        return all(tex.dimensions == dims for tex in self.textures.values())

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.origin:
            base = os.path.basename(os.path.normpath(self.origin))
            if base:
                return base
        return "unnamed"

    def texture_id(self, slot: SlotKey) -> str:
        """Stable identifier for one texture: its path, else ``material:slot``."""
        slot = _coerce_slot(slot)
        tex = self.textures.get(slot)
        if tex is not None and tex.path:
            return tex.path
        return f"{self.display_name}:{slot.value}"

    def __repr__(self) -> str:
        slots = ", ".join(f"{s.value}={t.width}x{t.height}" for s, t in self.items())
        return f"TextureSet({self.display_name!r}, {slots})"


_ALIAS_PATTERNS = [
    (slot, alias, re.compile(r'(?<![a-z])' + re.escape(alias) + r'(?![a-z])'))
    for slot, aliases in SLOT_ALIASES.items()
    for alias in aliases
]


def detect_slot(filepath: str) -> Optional[TextureSlot]:
    """Classify a texture file into a slot by its filename stem.

    Aliases match at word boundaries (``brick_roughness`` but not
    ``roughnessless``).  When several aliases match, the one ending closest
    to the end of the stem wins (slot names are conventionally suffixes),
    then the longest one.
    """
    stem = Path(filepath).stem.lower()
    best = None
    best_key = (-1, -1)
    for slot, alias, pattern in _ALIAS_PATTERNS:
        for match in pattern.finditer(stem):
            key = (match.end(), len(alias))
            if key > best_key:
                best_key = key
                best = slot
    return best


def load_material(folder: str, config: Optional[EngineConfig] = None,
                  name: Optional[str] = None) -> TextureSet:
    """Load a material from a folder of texture images.

    Files are classified by name; candidates are sorted by filename and the
    first file wins for each slot.
    """
    config = config or EngineConfig()
    supported = {ext.lower() for ext in config.supported_formats}
    if not os.path.isdir(folder):
        raise FileNotFoundError(f"Material folder not found: {folder}")

    candidates = []
    for fname in sorted(os.listdir(folder)):
        fpath = os.path.join(folder, fname)
        if not os.path.isfile(fpath):
            continue
        if Path(fname).suffix.lower() not in supported:
            continue
        slot = detect_slot(fname)
        if slot is None:
            logger.debug("Skipping %s: no texture slot detected from filename", fname)
            continue
        candidates.append((fpath, slot))

    textures: Dict[TextureSlot, Texture] = {}
    for fpath, slot in candidates:
        if slot in textures:
            logger.debug(
                "Ignoring %s: slot '%s' already provided by %s",
                fpath, slot.value, textures[slot].path,
            )
            continue
        pixels = load_image(fpath, max_pixels=config.max_image_pixels)
        textures[slot] = Texture(pixels, path=fpath)

    material = TextureSet(
        name=name or os.path.basename(os.path.normpath(folder)),
        textures=textures,
        origin=folder,
    )
    logger.debug("Loaded material %r", material)
    return material
