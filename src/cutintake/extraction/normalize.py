"""Normalization and scoring helpers shared by the parsers."""
from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

__all__ = [
    "CONFIDENCE_WEIGHTS",
    "ConfidenceFlags",
    "REASONABLE_DIMENSION_MM",
    "are_dimensions_reasonable",
    "calculate_confidence",
    "mask_spans",
    "normalize_confidence",
    "normalize_text",
    "split_lines",
]

REASONABLE_DIMENSION_MM: Tuple[float, float] = (10.0, 5000.0)

CONFIDENCE_WEIGHTS = {
    "dimensions": 0.30,
    "reasonable": 0.10,
    "quantity": 0.15,
    "label": 0.20,
    "material": 0.15,
    "thickness": 0.10,
}

# NFKC keeps "×" but folds full-width digits; the table covers what it leaves alone.
_TYPOGRAPHIC = str.maketrans(
    {
        "–": "-",
        "—": "-",
        "−": "-",
        "‘": "'",
        "’": "'",
        "′": "'",
        "“": '"',
        "”": '"',
        "″": '"',
        "\t": " ",
    }
)
_LINE_SPLIT = re.compile(r"\r\n|\r|\n")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str, *, lowercase: bool = True) -> str:
    """Apply NFKC, fold typographic punctuation and collapse whitespace."""

    if not text:
        return ""
    normalized = unicodedata.normalize("NFKC", text).translate(_TYPOGRAPHIC)
    normalized = _WHITESPACE.sub(" ", normalized).strip()
    return normalized.lower() if lowercase else normalized


def split_lines(text: str) -> List[str]:
    """Split pasted text into trimmed, non-empty lines."""

    if not text:
        return []
    return [line.strip() for line in _LINE_SPLIT.split(text) if line.strip()]


def mask_spans(text: str, spans: Iterable[Optional[Tuple[int, int]]]) -> str:
    """Blank out ``spans`` with spaces, keeping every other offset stable."""

    chars = list(text)
    for span in spans:
        if span is None:
            continue
        start, end = span
        for index in range(max(start, 0), min(end, len(chars))):
            chars[index] = " "
    return "".join(chars)


@dataclass(frozen=True)
class ConfidenceFlags:
    """Which fields a parser managed to detect for one part."""

    dimensions: bool
    reasonable: bool = False
    quantity: bool = False
    label: bool = False
    material: bool = False
    thickness: bool = False


def calculate_confidence(flags: ConfidenceFlags) -> float:
    """Additive confidence score in ``[0, 1]``.

    Finding dimensions is the floor contribution (0.30); every other detected
    field adds a fixed increment on top of it. Without dimensions the score is
    zero because nothing else can make a part parseable.
    """

    if not flags.dimensions:
        return 0.0
    score = CONFIDENCE_WEIGHTS["dimensions"]
    for name in ("reasonable", "quantity", "label", "material", "thickness"):
        if getattr(flags, name):
            score += CONFIDENCE_WEIGHTS[name]
    return normalize_confidence(round(score, 4))


def are_dimensions_reasonable(length: float, width: float) -> bool:
    """Both axes sit inside the 10–5000 mm band of real-world panels."""

    low, high = REASONABLE_DIMENSION_MM
    return low <= length <= high and low <= width <= high


def normalize_confidence(value: float | None) -> float:
    """Clamp confidence scores between 0 and 1."""

    if value is None:
        return 0.0
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(numeric):
        return 0.0
    return max(0.0, min(1.0, numeric))
