"""Define typed configuration models for the validation and analysis engine.

Use `EngineConfig` to load, validate, and persist runtime settings.
"""

import os
import logging
import yaml
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from enum import Enum

logger = logging.getLogger("matscope.config")


class TextureSlot(Enum):
    """Enumerate the material slots a texture set can populate.

    Declaration order is the canonical slot order used for iteration,
    reporting and deterministic sorting.
    """

    ALBEDO = "albedo"
    NORMAL = "normal"
    ROUGHNESS = "roughness"
    METALLIC = "metallic"
    AO = "ao"
    HEIGHT = "height"

    @property
    def order(self) -> int:
        return _SLOT_ORDER[self]

    @classmethod
    def parse(cls, name: str) -> "TextureSlot":
        """Resolve a slot name or alias (e.g. ``basecolor``) to a slot."""
        key = str(name).strip().lower()
        for slot, aliases in SLOT_ALIASES.items():
            if key == slot.value or key in aliases:
                return slot
        raise ValueError(f"Unknown texture slot: '{name}'")


_SLOT_ORDER = {slot: idx for idx, slot in enumerate(TextureSlot)}

# Names accepted for each slot in manifests and file stems.
SLOT_ALIASES: Dict[TextureSlot, List[str]] = {
    TextureSlot.ALBEDO:    ["albedo", "basecolor", "base_color", "diffuse", "color", "diff"],
    TextureSlot.NORMAL:    ["normal", "norm", "nrm"],
    TextureSlot.ROUGHNESS: ["roughness", "rough"],
    TextureSlot.METALLIC:  ["metallic", "metalness", "metal"],
    TextureSlot.AO:        ["ao", "ambientocclusion", "ambient_occlusion", "occlusion"],
    TextureSlot.HEIGHT:    ["height", "displacement", "disp", "bump"],
}


@dataclass
class ValidationConfig:
    """Store parameters for the built-in validation rules."""

    min_score: int = 60
    required_maps: List[str] = field(default_factory=lambda: ["albedo", "normal"])
    max_resolution: int = 4096
    min_resolution: int = 4
    max_texture_count: int = 6
    check_resolution_mismatch: bool = True
    content_checks: bool = False
    edge_seam_threshold: float = 40.0 / 3  # per channel, 40 summed over RGB


@dataclass
class PluginConfig:
    """Plugin discovery locations and load policy."""

    project_dir: str = "./.matscope/plugins"
    user_dir: str = ""  # empty = $XDG_CONFIG_HOME/matscope/plugins
    env_var: str = "MATSCOPE_PLUGINS"
    strict_env_var: str = "MATSCOPE_PLUGINS_STRICT"
    extra_dirs: List[str] = field(default_factory=list)
    strict: bool = False


@dataclass
class ScriptConfig:
    """Limits applied to external script rules."""

    timeout_seconds: float = 10.0


@dataclass
class DuplicateConfig:
    """Fingerprint similarity thresholds for duplicate detection."""

    duplicate_threshold: float = 0.99
    similar_threshold: float = 0.80
    same_slot_only: bool = True


@dataclass
class CrossMaterialConfig:
    """Thresholds for cross-material standardization hints."""

    coverage_threshold: float = 100.0


@dataclass
class TileabilityConfig:
    """Edge-seam metric calibration and repair settings."""

    threshold: float = 10.0 / 3  # per channel, 10 summed over RGB
    band_width: int = 1
    blend_width: int = 4
    fix_slots: List[str] = field(default_factory=lambda: ["albedo"])


_SUPPORTED_CONFIG_VERSION = 1


@dataclass
class EngineConfig:
    """Master engine configuration."""

    config_version: int = 1
    supported_formats: List[str] = field(default_factory=lambda: [
        ".png", ".jpg", ".jpeg", ".tga", ".bmp", ".tiff", ".tif", ".exr",
    ])
    max_workers: int = 0  # 0 = one worker per CPU core
    log_level: str = "INFO"
    max_image_pixels: int = 67108864  # 8192x8192

    validation: ValidationConfig = field(default_factory=ValidationConfig)
    plugins: PluginConfig = field(default_factory=PluginConfig)
    scripts: ScriptConfig = field(default_factory=ScriptConfig)
    duplicates: DuplicateConfig = field(default_factory=DuplicateConfig)
    cross_material: CrossMaterialConfig = field(default_factory=CrossMaterialConfig)
    tileability: TileabilityConfig = field(default_factory=TileabilityConfig)

    @classmethod
    def from_yaml(cls, path: str) -> "EngineConfig":
        """Load engine configuration from YAML or return defaults."""
        if not os.path.exists(path):
            logger.info("Config file '%s' not found. Using defaults.", path)
            config = cls()
            config.validate()
            return config
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(
                f"Failed to parse YAML config '{path}': {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise ValueError(
                f"Config file '{path}' must contain a YAML mapping, "
                f"got {type(data).__name__}"
            )
        yaml_version = data.get("config_version", 1)
        if isinstance(yaml_version, int) and yaml_version > _SUPPORTED_CONFIG_VERSION:
            logger.warning(
                "Config file '%s' has config_version=%d, but this build only "
                "supports up to version %d. Some settings may be ignored.",
                path, yaml_version, _SUPPORTED_CONFIG_VERSION,
            )
        config = cls()
        _merge_dict_to_dataclass(config, data)
        try:
            config.validate()
        except ValueError as exc:
            raise ValueError(f"{path}: {exc}") from exc
        return config

    def to_yaml(self, path: str):
        """Write engine configuration to a YAML file."""
        import dataclasses
        import threading as _th
        data = dataclasses.asdict(self)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        ext = os.path.splitext(path)[1]
        tmp_path = f"{path}.tmp.{os.getpid()}.{_th.get_ident()}{ext}"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, path)
        finally:
            if os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass

    def resolve_workers(self) -> int:
        """Return the worker pool size, sized to available cores when unset."""
        if self.max_workers > 0:
            return self.max_workers
        return max(1, min(os.cpu_count() or 1, 32))

    def setup_logging(self, log_file: Optional[str] = None, force: bool = False):
        """Configure the matscope loggers at this config's ``log_level``."""
        from .core.logging import setup_logging
        setup_logging(self.log_level, log_file, force=force)

    def plugin_strict(self) -> bool:
        """Return True when strict plugin loading is requested by config or env."""
        if self.plugins.strict:
            return True
        return env_flag(self.plugins.strict_env_var)

    def validate(self):
        """Validate configuration values. Raises ValueError on invalid config."""
        errors = []

        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.log_level.upper() not in valid_log_levels:
            errors.append(
                f"log_level must be one of {sorted(valid_log_levels)}, "
                f"got '{self.log_level}'"
            )
        if self.max_workers < 0:
            errors.append("max_workers must be >= 0 (0 = auto)")
        if self.max_workers > 128:
            errors.append("max_workers must be <= 128")
        if self.max_image_pixels < 0:
            errors.append("max_image_pixels must be >= 0 (0 = unlimited)")
        if not self.supported_formats:
            errors.append(
                "supported_formats must not be empty; no textures would be loaded"
            )

        # Validation rules
        v = self.validation
        if not (0 <= v.min_score <= 100):
            errors.append("validation.min_score must be in [0, 100]")
        for name in v.required_maps:
            try:
                TextureSlot.parse(name)
            except ValueError:
                errors.append(
                    f"validation.required_maps: unknown slot '{name}', must be one of "
                    f"{[s.value for s in TextureSlot]}"
                )
        if v.max_resolution < 1:
            errors.append("validation.max_resolution must be >= 1")
        if v.min_resolution < 1:
            errors.append("validation.min_resolution must be >= 1")
        if v.min_resolution > v.max_resolution:
            errors.append("validation.min_resolution must be <= max_resolution")
        if v.max_texture_count < 0:
            errors.append("validation.max_texture_count must be >= 0")
        if v.edge_seam_threshold < 0:
            errors.append("validation.edge_seam_threshold must be >= 0")

        # Plugins / scripts
        if not self.plugins.env_var:
            errors.append("plugins.env_var must not be empty")
        if self.scripts.timeout_seconds <= 0:
            errors.append("scripts.timeout_seconds must be > 0")

        # Duplicates
        d = self.duplicates
        if not (0.0 <= d.similar_threshold <= 1.0):
            errors.append("duplicates.similar_threshold must be in [0, 1]")
        if not (0.0 <= d.duplicate_threshold <= 1.0):
            errors.append("duplicates.duplicate_threshold must be in [0, 1]")
        if d.similar_threshold > d.duplicate_threshold:
            errors.append("duplicates.similar_threshold must be <= duplicate_threshold")

        # Cross-material
        if not (0.0 <= self.cross_material.coverage_threshold <= 100.0):
            errors.append("cross_material.coverage_threshold must be in [0, 100]")

        # Tileability
        t = self.tileability
        if t.threshold < 0:
            errors.append("tileability.threshold must be >= 0")
        if t.band_width < 1:
            errors.append("tileability.band_width must be >= 1")
        if t.blend_width < 1:
            errors.append("tileability.blend_width must be >= 1")
        for name in t.fix_slots:
            try:
                TextureSlot.parse(name)
            except ValueError:
                errors.append(f"tileability.fix_slots: unknown slot '{name}'")

        if errors:
            raise ValueError(
                "Configuration validation failed:\n" +
                "\n".join(f"  - {e}" for e in errors)
            )


def _merge_dict_to_dataclass(obj, data: dict, _path: str = ""):
    import dataclasses
    for key, value in data.items():
        if hasattr(obj, key):
            field_val = getattr(obj, key)
            if dataclasses.is_dataclass(field_val) and isinstance(value, dict):
                _merge_dict_to_dataclass(field_val, value, f"{_path}{key}.")
            else:
                full_key = f"{_path}{key}"
                if value is None and field_val is not None:
                    logger.warning(
                        f"Config key '{full_key}' is null but field default is "
                        f"{type(field_val).__name__}. Using default value."
                    )
                    continue
                expected_type = type(field_val)
                # Allow int->float and exact float->int promotion
                if (field_val is not None
                        and not isinstance(value, expected_type)
                        and not (expected_type is float
                                 and isinstance(value, int))
                        and not (expected_type is int
                                 and isinstance(value, float)
                                 and value == int(value))):
                    logger.warning(
                        f"Config type mismatch for '{full_key}': "
                        f"expected {expected_type.__name__}, "
                        f"got {type(value).__name__} ({value!r}). "
                        f"Using default value."
                    )
                    continue
                if (expected_type is int and isinstance(value, float)
                        and value == int(value)):
                    value = int(value)
                if expected_type is float and isinstance(value, int):
                    value = float(value)
                setattr(obj, key, value)
        else:
            full_key = f"{_path}{key}"
            logger.warning(f"Unknown config key ignored: '{full_key}'")


def resolve_user_plugin_dir(config: Optional[PluginConfig] = None) -> str:
    """Return the per-user plugin directory (XDG config home aware)."""
    if config is not None and config.user_dir:
        return os.path.expanduser(config.user_dir)
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(
        os.path.expanduser("~"), ".config"
    )
    return os.path.join(base, "matscope", "plugins")


def env_flag(name: str) -> bool:
    """True when environment variable ``name`` holds 1/true/yes/on."""
    raw = os.environ.get(name, "")
    return raw.strip().lower() in {"1", "true", "yes", "on"}
