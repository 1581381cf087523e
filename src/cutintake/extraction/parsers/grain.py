"""Grain direction and rotation detection."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..part import GrainMode
from ..patterns import GRAIN_PATTERNS

__all__ = ["GrainSettings", "detect_grain", "resolve_rotation"]


@dataclass(frozen=True)
class GrainSettings:
    """Detected grain and rotation intent.

    ``allow_rotation`` is ``None`` when the text says nothing about rotation,
    leaving the caller's default in charge.
    """

    grain: GrainMode
    allow_rotation: Optional[bool]


def _matches(key: str, text: str) -> bool:
    return any(pattern.search(text) for pattern in GRAIN_PATTERNS[key])


def detect_grain(text: str) -> GrainSettings:
    """Detect grain direction and explicit rotation language in ``text``."""

    if _matches("grain_length", text):
        grain = GrainMode.ALONG_L
    elif _matches("grain_width", text):
        grain = GrainMode.ALONG_W
    else:
        grain = GrainMode.NONE

    if grain is not GrainMode.NONE or _matches("no_rotation", text):
        return GrainSettings(grain=grain, allow_rotation=False)
    if _matches("allow_rotation", text):
        return GrainSettings(grain=grain, allow_rotation=True)
    return GrainSettings(grain=grain, allow_rotation=None)


def resolve_rotation(grain: GrainMode, explicit: Optional[bool], default: bool) -> bool:
    """Explicit grain always locks rotation; otherwise explicit words beat the default."""

    if grain is not GrainMode.NONE:
        return False
    if explicit is not None:
        return explicit
    return default
