"""Canonicalise length units and convert values to millimetres."""
from __future__ import annotations

from typing import Optional

__all__ = ["MM_FACTORS", "normalize_unit", "to_millimeters"]

_CANONICAL_UNITS = {
    "mm": {"mm", "millimeter", "millimeters", "millimetre", "millimetres", "mil", "mils", "㎜"},
    "cm": {"cm", "centimeter", "centimeters", "centimetre", "centimetres", "㎝"},
    "m": {"m", "meter", "meters", "metre", "metres"},
    "in": {"in", "inch", "inches", '"', "''"},
    "ft": {"ft", "foot", "feet", "'"},
}

_ALIASES = {alias: canonical for canonical, aliases in _CANONICAL_UNITS.items() for alias in aliases}

MM_FACTORS = {
    "mm": 1.0,
    "cm": 10.0,
    "m": 1000.0,
    "in": 25.4,
    "ft": 304.8,
}


def normalize_unit(raw: Optional[str]) -> Optional[str]:
    """Return the canonical unit for ``raw`` or ``None`` when it is unknown."""

    if raw is None:
        return None
    token = raw.strip().lower().rstrip(".")
    if not token:
        return None
    return _ALIASES.get(token)


def to_millimeters(value: float, unit: Optional[str]) -> float:
    """Convert ``value`` expressed in ``unit`` to millimetres.

    Missing or unrecognised units are read as millimetres, the shop default.
    """

    canonical = normalize_unit(unit) or "mm"
    return round(value * MM_FACTORS[canonical], 3)
