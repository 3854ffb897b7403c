"""Rule conditions: the checks a rule applies to a material.

Structural conditions (required maps, resolution limits, power-of-two,
texture count) can be declared in plugin manifests.  Content conditions
inspect pixel statistics and are only used by built-in rules.  Script
conditions are run out of process by :mod:`MatScope.validation.script`.
"""

from dataclasses import dataclass
from typing import ClassVar, Dict, NamedTuple, Optional, Tuple, Type

import numpy as np

from ..config import TextureSlot
from ..core.errors import InvalidParameter
from ..core.io import luminance_bt601, to_rgb
from ..core.texture import Texture, TextureSet
from ..core.tiling import SEAM_RULE_THRESHOLD, edge_difference
from .issues import Severity


class Finding(NamedTuple):
    """A failed check.  ``severity`` overrides the rule's severity when set."""

    message: str
    severity: Optional[Severity] = None


def _positive_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidParameter(f"{name} must be a positive integer, got {value!r}")
    return value


class Condition:
    kind: ClassVar[str] = ""

    def check(self, material: TextureSet) -> Optional[Finding]:
        raise NotImplementedError


@dataclass(frozen=True)
class RequiredMaps(Condition):
    kind: ClassVar[str] = "required_maps"
    maps: Tuple[TextureSlot, ...] = ()

    def __post_init__(self):
        if isinstance(self.maps, (str, TextureSlot)):
            raise InvalidParameter("maps must be a list of slot names")
        if not self.maps:
            raise InvalidParameter("maps must list at least one texture slot")
        slots = []
        for name in self.maps:
            try:
                slot = TextureSlot.parse(name) if not isinstance(name, TextureSlot) else name
            except ValueError as exc:
                raise InvalidParameter(str(exc)) from exc
            if slot not in slots:
                slots.append(slot)
        object.__setattr__(self, "maps", tuple(slots))

    def check(self, material):
        missing = [slot.value for slot in self.maps if not material.has(slot)]
        if missing:
            return Finding(f"Missing required maps: {', '.join(missing)}")
        return None


@dataclass(frozen=True)
class MaxResolution(Condition):
    kind: ClassVar[str] = "max_resolution"
    max_width: int = 4096
    max_height: int = 4096

    def __post_init__(self):
        _positive_int("max_width", self.max_width)
        _positive_int("max_height", self.max_height)

    def check(self, material):
        for slot, tex in material.items():
            if tex.width > self.max_width or tex.height > self.max_height:
                return Finding(
                    f"{slot.value} resolution {tex.width}x{tex.height} exceeds "
                    f"max {self.max_width}x{self.max_height}"
                )
        return None


@dataclass(frozen=True)
class MinResolution(Condition):
    kind: ClassVar[str] = "min_resolution"
    min_width: int = 4
    min_height: int = 4

    def __post_init__(self):
        _positive_int("min_width", self.min_width)
        _positive_int("min_height", self.min_height)

    def check(self, material):
        for slot, tex in material.items():
            if tex.width < self.min_width or tex.height < self.min_height:
                return Finding(
                    f"{slot.value} resolution {tex.width}x{tex.height} below "
                    f"min {self.min_width}x{self.min_height}"
                )
        return None


@dataclass(frozen=True)
class PowerOfTwo(Condition):
    kind: ClassVar[str] = "power_of_two"

    def check(self, material):
        bad = [
            f"{slot.value} ({tex.width}x{tex.height})"
            for slot, tex in material.items()
            if not tex.is_power_of_two
        ]
        if bad:
            return Finding(f"Non-power-of-two: {', '.join(bad)}")
        return None


@dataclass(frozen=True)
class MaxTextureCount(Condition):
    kind: ClassVar[str] = "max_texture_count"
    max: int = 6

    def __post_init__(self):
        if isinstance(self.max, bool) or not isinstance(self.max, int) or self.max < 0:
            raise InvalidParameter(f"max must be a non-negative integer, got {self.max!r}")

    def check(self, material):
        count = material.texture_count
        if count > self.max:
            return Finding(f"Texture count {count} exceeds max {self.max}")
        return None


@dataclass(frozen=True)
class Script(Condition):
    """Delegate the check to an external program (see ``validation.script``)."""

    kind: ClassVar[str] = "script"
    command: str = ""
    args: Tuple[str, ...] = ()
    timeout: Optional[float] = None

    def __post_init__(self):
        if not isinstance(self.command, str) or not self.command.strip():
            raise InvalidParameter("script command must be a non-empty string")
        if isinstance(self.args, str) or not all(isinstance(a, str) for a in self.args):
            raise InvalidParameter("script args must be a list of strings")
        object.__setattr__(self, "args", tuple(self.args))
        if self.timeout is not None:
            if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)) \
                    or self.timeout <= 0:
                raise InvalidParameter(f"script timeout must be > 0, got {self.timeout!r}")
            object.__setattr__(self, "timeout", float(self.timeout))

    def check(self, material):
        raise TypeError("Script conditions are evaluated by ScriptRunner")


@dataclass(frozen=True)
class ResolutionMismatch(Condition):
    kind: ClassVar[str] = "resolution_mismatch"

    def check(self, material):
        if material.dimensions_consistent:
            return None
        sizes = ", ".join(f"{s.value} ({t.width}x{t.height})" for s, t in material.items())
        return Finding(f"Texture dimensions differ within the material: {sizes}")


# -- Content checks (0-255 scale) -------------------------------------------

def _to_255(arr: np.ndarray) -> np.ndarray:
    return np.asarray(arr, dtype=np.float64) * 255.0


def _first_channel(tex: Texture) -> np.ndarray:
    px = tex.pixels
    return px if px.ndim == 2 else px[:, :, 0]


def _stddev(values: np.ndarray) -> float:
    if values.size < 2:
        return 0.0
    return float(np.std(values, ddof=1))


@dataclass(frozen=True)
class AlbedoBrightness(Condition):
    kind: ClassVar[str] = "albedo_brightness"
    min_mean: float = 5.0
    max_value: float = 250.0
    max_clipped_percent: float = 5.0

    def check(self, material):
        albedo = material.get(TextureSlot.ALBEDO)
        if albedo is None:
            return None
        lum = _to_255(luminance_bt601(albedo.pixels))
        mean_lum = float(lum.mean())
        if mean_lum < self.min_mean:
            return Finding(
                f"Albedo appears nearly black (mean luminance {mean_lum:.1f}/255).",
                Severity.MAJOR,
            )
        max_lum = float(lum.max())
        if max_lum > self.max_value:
            return Finding(
                f"Albedo has very bright pixels (max {max_lum:.1f}/255). "
                "May indicate non-PBR or HDR.",
                Severity.MINOR,
            )
        rgb = np.rint(_to_255(to_rgb(albedo.pixels)))
        clipped = np.any((rgb <= 0.0) | (rgb >= 255.0), axis=-1)
        pct = 100.0 * float(clipped.mean())
        if pct > self.max_clipped_percent:
            return Finding(f"Albedo has {pct:.1f}% clipped pixels (255 or 0).", Severity.MINOR)
        return None


@dataclass(frozen=True)
class RoughnessUniformity(Condition):
    kind: ClassVar[str] = "roughness_uniformity"
    min_mean: float = 5.0
    min_stddev: float = 2.0

    def check(self, material):
        roughness = material.get(TextureSlot.ROUGHNESS)
        if roughness is None:
            return None
        values = _to_255(_first_channel(roughness))
        mean = float(values.mean())
        if mean < self.min_mean:
            return Finding(
                "Roughness map is nearly black. May indicate missing or incorrect texture.",
                Severity.MAJOR,
            )
        stddev = _stddev(values)
        if stddev < self.min_stddev:
            return Finding(
                f"Roughness map is nearly uniform (stddev {stddev:.2f}, mean {mean:.1f}).",
                Severity.MINOR,
            )
        return None


@dataclass(frozen=True)
class MetallicMidGray(Condition):
    kind: ClassVar[str] = "metallic_mid_gray"
    tolerance: float = 5.0
    min_stddev: float = 2.0

    def check(self, material):
        metallic = material.get(TextureSlot.METALLIC)
        if metallic is None:
            return None
        values = _to_255(_first_channel(metallic))
        mean = float(values.mean())
        if abs(mean - 128.0) < self.tolerance and _stddev(values) < self.min_stddev:
            return Finding(
                "Metallic map is uniformly mid-gray. May indicate uniform or placeholder.",
                Severity.MINOR,
            )
        return None


@dataclass(frozen=True)
class NormalMapStrength(Condition):
    kind: ClassVar[str] = "normal_map_strength"
    min_blue_mean: float = 100.0

    def check(self, material):
        normal = material.get(TextureSlot.NORMAL)
        if normal is None:
            return None
        mean_b = float(_to_255(to_rgb(normal.pixels)[:, :, 2]).mean())
        if mean_b < self.min_blue_mean:
            return Finding(
                f"Normal map blue channel low (mean {mean_b:.1f}). "
                "Tangent-space normals typically have dominant blue.",
                Severity.MINOR,
            )
        return None


@dataclass(frozen=True)
class EdgeSeam(Condition):
    kind: ClassVar[str] = "edge_seam"
    threshold: float = SEAM_RULE_THRESHOLD
    band_width: int = 1

    def check(self, material):
        albedo = material.get(TextureSlot.ALBEDO)
        if albedo is None or albedo.width < 4 or albedo.height < 4:
            return None
        diff = edge_difference(albedo, band_width=self.band_width)
        if diff > self.threshold:
            return Finding(
                f"High edge difference ({diff:.1f}). Texture may not tile seamlessly.",
                Severity.MINOR,
            )
        return None


# Condition types accepted in plugin manifests, keyed by their ``type`` tag.
MANIFEST_CONDITIONS: Dict[str, Type[Condition]] = {
    cls.kind: cls
    for cls in (RequiredMaps, MaxResolution, MinResolution, PowerOfTwo, MaxTextureCount, Script)
}

_CONDITION_FIELDS: Dict[str, Tuple[str, ...]] = {
    "required_maps": ("maps",),
    "max_resolution": ("max_width", "max_height"),
    "min_resolution": ("min_width", "min_height"),
    "power_of_two": (),
    "max_texture_count": ("max",),
    "script": ("command", "args", "timeout"),
}

_REQUIRED_FIELDS: Dict[str, Tuple[str, ...]] = {
    "required_maps": ("maps",),
    "max_resolution": ("max_width", "max_height"),
    "min_resolution": ("min_width", "min_height"),
    "power_of_two": (),
    "max_texture_count": ("max",),
    "script": ("command",),
}


def parse_condition(data) -> Condition:
    """Build a condition from a manifest table such as ``{"type": "power_of_two"}``.

    Raises InvalidParameter for unknown types, unknown or missing fields,
    and out-of-range values.
    """
    if not isinstance(data, dict):
        raise InvalidParameter(f"condition must be a table, got {type(data).__name__}")
    kind = data.get("type")
    if kind not in MANIFEST_CONDITIONS:
        raise InvalidParameter(
            f"unknown condition type {kind!r} (expected one of {sorted(MANIFEST_CONDITIONS)})"
        )
    allowed = _CONDITION_FIELDS[kind]
    params = {k: v for k, v in data.items() if k != "type"}
    unknown = sorted(set(params) - set(allowed))
    if unknown:
        raise InvalidParameter(f"unknown field(s) for condition '{kind}': {', '.join(unknown)}")
    missing = [f for f in _REQUIRED_FIELDS[kind] if f not in params]
    if missing:
        raise InvalidParameter(f"condition '{kind}' is missing field(s): {', '.join(missing)}")
    if kind == "required_maps":
        maps = params["maps"]
        if not isinstance(maps, list) or not all(isinstance(m, str) for m in maps):
            raise InvalidParameter("required_maps.maps must be a list of slot names")
        params["maps"] = tuple(maps)
    if kind == "script" and "args" in params:
        if not isinstance(params["args"], list):
            raise InvalidParameter("script args must be a list of strings")
        params["args"] = tuple(params["args"])
    return MANIFEST_CONDITIONS[kind](**params)


__all__ = [
    "Finding", "Condition", "RequiredMaps", "MaxResolution", "MinResolution",
    "PowerOfTwo", "MaxTextureCount", "Script", "ResolutionMismatch",
    "AlbedoBrightness", "RoughnessUniformity", "MetallicMidGray",
    "NormalMapStrength", "EdgeSeam", "MANIFEST_CONDITIONS", "parse_condition",
]
