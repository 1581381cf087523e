"""Centralized configuration for cutintake.

This module exposes :func:`get_settings` returning the parser, validation and
vision defaults used across the package. Values can be customized via
environment variables or by pointing ``CUTINTAKE_CONFIG_FILE`` to a TOML/YAML
document with ``[parser]``, ``[validation]``, ``[vision]`` and ``[paths]``
sections.
"""
from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import yaml

__all__ = ["IntakeSettings", "get_settings", "reset_settings"]

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_CONFIG_CACHE: Optional["IntakeSettings"] = None
_CONFIG_SOURCE: Optional[Path] = None

_DEFAULT_MATERIAL_CODES: Tuple[str, ...] = ("W", "Ply", "B", "M", "MDF", "OAK", "BK", "WH", "NAT")


@dataclass(frozen=True)
class IntakeSettings:
    """Resolved runtime defaults for parsers, validation and the vision client."""

    default_material_id: str = ""
    default_thickness_mm: float = 18.0
    default_allow_rotation: bool = True
    min_confidence: float = 0.3
    strict_mode: bool = False
    max_dimension_mm: float = 3000.0
    min_dimension_mm: float = 10.0
    max_quantity: int = 500
    auto_swap_dimensions: bool = False
    review_threshold: float = 0.7
    material_codes: Tuple[str, ...] = _DEFAULT_MATERIAL_CODES
    dictation_flush_chars: int = 200
    vision_endpoint: Optional[str] = None
    vision_model: Optional[str] = None
    vision_api_key: Optional[str] = field(default=None, repr=False)
    vision_timeout: float = 60.0
    vision_confidence: float = 0.85
    materials_lexicon: Optional[Path] = None

    def as_dict(self) -> Dict[str, Any]:
        """Expose the settings as plain values (useful for logging)."""

        return {
            "default_material_id": self.default_material_id,
            "default_thickness_mm": self.default_thickness_mm,
            "default_allow_rotation": self.default_allow_rotation,
            "min_confidence": self.min_confidence,
            "strict_mode": self.strict_mode,
            "max_dimension_mm": self.max_dimension_mm,
            "min_dimension_mm": self.min_dimension_mm,
            "max_quantity": self.max_quantity,
            "auto_swap_dimensions": self.auto_swap_dimensions,
            "review_threshold": self.review_threshold,
            "material_codes": list(self.material_codes),
            "dictation_flush_chars": self.dictation_flush_chars,
            "vision_endpoint": self.vision_endpoint,
            "vision_model": self.vision_model,
            "vision_api_key": "***" if self.vision_api_key else None,
            "vision_timeout": self.vision_timeout,
            "vision_confidence": self.vision_confidence,
            "materials_lexicon": str(self.materials_lexicon) if self.materials_lexicon else None,
        }


def _normalize_path(value: Optional[str | Path], *, base: Optional[Path]) -> Optional[Path]:
    if value is None or value == "":
        return None
    candidate = Path(value).expanduser()
    if not candidate.is_absolute():
        if base is not None:
            candidate = (base / candidate).expanduser()
        if not candidate.is_absolute():
            candidate = (_PROJECT_ROOT / candidate).expanduser()
    return candidate.resolve()


def _load_config_file(path: Path) -> Mapping[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file '{path}' does not exist")
    suffix = path.suffix.lower()
    if suffix == ".toml":
        with path.open("rb") as handle:
            return tomllib.load(handle)
    if suffix in {".yaml", ".yml"}:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
            return loaded or {}
    raise ValueError(f"Unsupported config file format: '{suffix}'")


def _coalesce_mapping(source: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if not isinstance(source, Mapping):
        return {}
    return source


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off", ""}:
        return False
    raise ValueError(f"Cannot interpret {value!r} as a boolean")


def _parse_codes(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return tuple(str(item).strip() for item in items if str(item).strip())


def _resolve(
    env_name: str,
    section: Mapping[str, Any],
    key: str,
    default: Any,
    cast: Callable[[Any], Any],
) -> Any:
    raw = os.environ.get(env_name)
    if raw is None or raw == "":
        raw = section.get(key)
    if raw is None:
        return default
    return cast(raw)


def _build_settings(config_file: Optional[Path]) -> IntakeSettings:
    config_data: Mapping[str, Any] = {}
    config_dir: Optional[Path] = None
    if config_file is not None:
        config_file = _normalize_path(config_file, base=_PROJECT_ROOT)
        if config_file is not None:
            config_data = _load_config_file(config_file)
            config_dir = config_file.parent

    parser_section = _coalesce_mapping(config_data.get("parser"))
    validation_section = _coalesce_mapping(config_data.get("validation"))
    vision_section = _coalesce_mapping(config_data.get("vision"))
    paths_section = _coalesce_mapping(config_data.get("paths"))

    defaults = IntakeSettings()
    optional_str: Callable[[Any], Optional[str]] = lambda value: str(value) or None

    return IntakeSettings(
        default_material_id=_resolve(
            "CUTINTAKE_DEFAULT_MATERIAL", parser_section, "default_material", defaults.default_material_id, str
        ),
        default_thickness_mm=_resolve(
            "CUTINTAKE_DEFAULT_THICKNESS", parser_section, "default_thickness", defaults.default_thickness_mm, float
        ),
        default_allow_rotation=_resolve(
            "CUTINTAKE_ALLOW_ROTATION", parser_section, "allow_rotation", defaults.default_allow_rotation, _parse_bool
        ),
        min_confidence=_resolve(
            "CUTINTAKE_MIN_CONFIDENCE", parser_section, "min_confidence", defaults.min_confidence, float
        ),
        strict_mode=_resolve("CUTINTAKE_STRICT", parser_section, "strict", defaults.strict_mode, _parse_bool),
        dictation_flush_chars=_resolve(
            "CUTINTAKE_DICTATION_FLUSH_CHARS",
            parser_section,
            "dictation_flush_chars",
            defaults.dictation_flush_chars,
            int,
        ),
        max_dimension_mm=_resolve(
            "CUTINTAKE_MAX_DIMENSION", validation_section, "max_dimension", defaults.max_dimension_mm, float
        ),
        min_dimension_mm=_resolve(
            "CUTINTAKE_MIN_DIMENSION", validation_section, "min_dimension", defaults.min_dimension_mm, float
        ),
        max_quantity=_resolve(
            "CUTINTAKE_MAX_QUANTITY", validation_section, "max_quantity", defaults.max_quantity, int
        ),
        auto_swap_dimensions=_resolve(
            "CUTINTAKE_AUTO_SWAP", validation_section, "auto_swap", defaults.auto_swap_dimensions, _parse_bool
        ),
        review_threshold=_resolve(
            "CUTINTAKE_REVIEW_THRESHOLD", validation_section, "review_threshold", defaults.review_threshold, float
        ),
        material_codes=_resolve(
            "CUTINTAKE_MATERIAL_CODES", validation_section, "material_codes", defaults.material_codes, _parse_codes
        ),
        vision_endpoint=_resolve("CUTINTAKE_VISION_ENDPOINT", vision_section, "endpoint", None, optional_str),
        vision_model=_resolve("CUTINTAKE_VISION_MODEL", vision_section, "model", None, optional_str),
        vision_api_key=_resolve("CUTINTAKE_VISION_API_KEY", vision_section, "api_key", None, optional_str),
        vision_timeout=_resolve(
            "CUTINTAKE_VISION_TIMEOUT", vision_section, "timeout", defaults.vision_timeout, float
        ),
        vision_confidence=_resolve(
            "CUTINTAKE_VISION_CONFIDENCE", vision_section, "confidence", defaults.vision_confidence, float
        ),
        materials_lexicon=_normalize_path(
            os.environ.get("CUTINTAKE_MATERIALS_PATH") or paths_section.get("materials"),
            base=config_dir,
        ),
    )


def get_settings(*, refresh: bool = False, config_file: str | Path | None = None) -> IntakeSettings:
    """Return the cached :class:`IntakeSettings` configuration.

    Parameters
    ----------
    refresh:
        When ``True`` the cached configuration is discarded and recomputed.
    config_file:
        Optional explicit path to the configuration document. When provided the
        returned instance is not cached globally, allowing callers (e.g. tests)
        to override settings temporarily.
    """

    global _CONFIG_CACHE, _CONFIG_SOURCE

    explicit_path = Path(config_file).expanduser() if config_file is not None else None

    if explicit_path is not None:
        return _build_settings(explicit_path)

    env_path = os.getenv("CUTINTAKE_CONFIG_FILE")
    source_path = Path(env_path).expanduser() if env_path else None

    if refresh or _CONFIG_CACHE is None or _CONFIG_SOURCE != source_path:
        _CONFIG_CACHE = _build_settings(source_path)
        _CONFIG_SOURCE = source_path

    return _CONFIG_CACHE


def reset_settings() -> None:
    """Clear the cached configuration (mainly useful for tests)."""

    global _CONFIG_CACHE, _CONFIG_SOURCE
    _CONFIG_CACHE = None
    _CONFIG_SOURCE = None
