"""Parsers for panel thickness expressions."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from ..patterns import THICKNESS_PATTERNS
from .numbers import parse_number

__all__ = ["THICKNESS_RANGE_MM", "ThicknessMatch", "extract_thickness"]

THICKNESS_RANGE_MM: Tuple[float, float] = (3.0, 100.0)


@dataclass(frozen=True)
class ThicknessMatch:
    """Thickness detected in text, expressed in millimetres."""

    value_mm: float
    raw: str
    span: Tuple[int, int]


def extract_thickness(
    text: str,
    patterns: Iterable[re.Pattern[str]] = THICKNESS_PATTERNS,
) -> Optional[ThicknessMatch]:
    """Return the first thickness inside the plausible 3–100 mm band.

    A pattern whose value falls outside the band is skipped so the next
    pattern in order gets a chance.
    """

    low, high = THICKNESS_RANGE_MM
    for pattern in patterns:
        for match in pattern.finditer(text):
            try:
                value = parse_number(match.group(1))
            except ValueError:
                continue
            if low <= value <= high:
                return ThicknessMatch(value_mm=value, raw=match.group(0), span=match.span())
    return None
