"""Utilities to parse written and spoken numbers."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Iterator, List, Mapping, Optional

from ..patterns import SPOKEN_NUMBER_WORDS

__all__ = [
    "NumberSpan",
    "coerce_number",
    "extract_numbers",
    "parse_number",
    "parse_spoken_number",
    "spoken_token_value",
]

_NUMBER_PATTERN = re.compile(r"(?<![\d.])\d+(?:[.,]\d+)?(?![\d])")
_THOUSANDS_PATTERN = re.compile(r"^\d{1,3}(?:,\d{3})+(?:\.\d+)?$")
_DIRECT_PATTERN = re.compile(r"^\d+(?:\.\d+)?$")
_LEADING_DIGITS = re.compile(r"^(\d+(?:\.\d+)?)")
_WORD_SPLIT = re.compile(r"[\s\-]+")
_FILLER_WORDS = frozenset({"and", "a"})


@dataclass(frozen=True)
class NumberSpan:
    """Representation of a numeric value extracted from text."""

    value: float
    raw: str
    start: int
    end: int


def parse_number(raw: str) -> float:
    """Parse a written number accepting ``,`` thousands or decimal separators."""

    candidate = raw.strip().replace("\u00a0", "").replace(" ", "")
    if not candidate:
        raise ValueError(f"Cannot parse numeric value from {raw!r}")
    if _THOUSANDS_PATTERN.match(candidate):
        candidate = candidate.replace(",", "")
    elif candidate.count(",") == 1 and "." not in candidate:
        candidate = candidate.replace(",", ".")
    try:
        return float(candidate)
    except ValueError as exc:
        raise ValueError(f"Invalid numeric value: {raw!r}") from exc


def coerce_number(value: Any) -> Optional[float]:
    """Tolerant numeric coercion used for spreadsheet cells and external payloads.

    Numbers pass through, strings are stripped of anything that is not a digit,
    a separator or a sign before parsing. ``None``, NaN and unparseable values
    yield ``None``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        numeric = float(value)
        return None if math.isnan(numeric) or math.isinf(numeric) else numeric
    text = re.sub(r"[^0-9.,\-]", "", str(value))
    if not text or not any(ch.isdigit() for ch in text):
        return None
    try:
        numeric = parse_number(text)
    except ValueError:
        return None
    return None if math.isnan(numeric) or math.isinf(numeric) else numeric


def extract_numbers(text: str) -> Iterator[NumberSpan]:
    """Yield every numeric literal found in ``text``."""

    for match in _NUMBER_PATTERN.finditer(text):
        raw = match.group(0)
        try:
            value = parse_number(raw)
        except ValueError:
            continue
        yield NumberSpan(value=value, raw=raw, start=match.start(), end=match.end())


def spoken_token_value(token: str, table: Mapping[str, int] = SPOKEN_NUMBER_WORDS) -> Optional[float]:
    """Value of a single token: a number word or a numeral with optional suffix (``720mm``)."""

    lowered = token.lower()
    if lowered in table:
        return float(table[lowered])
    match = _LEADING_DIGITS.match(lowered)
    if match:
        return float(match.group(1))
    return None


def _accumulate(values: List[float]) -> float:
    result = 0.0
    current = 0.0
    for value in values:
        if value == 100:
            current = 100.0 if current == 0 else current * 100
        elif value == 1000:
            current = 1000.0 if current == 0 else current * 1000
            result += current
            current = 0.0
        else:
            current += value
    return result + current


def parse_spoken_number(text: str, table: Mapping[str, int] = SPOKEN_NUMBER_WORDS) -> Optional[float]:
    """Parse numerals and spoken number phrases.

    ``"720"`` is returned directly. Two-word phrases follow the dictation
    convention: a single digit followed by a two-digit word reads as hundreds
    (``"five sixty"`` -> 560) while a tens word followed by a digit is additive
    (``"twenty five"`` -> 25). Anything else uses standard accumulation
    (``"seven hundred twenty"`` -> 720, ``"one thousand two hundred"`` -> 1200).
    Unknown words are ignored; ``None`` is returned when nothing positive is
    recognised.
    """

    if text is None:
        return None
    stripped = text.strip().replace(",", "")
    if _DIRECT_PATTERN.match(stripped):
        direct = float(stripped)
        return direct if direct > 0 else None

    words = [word for word in _WORD_SPLIT.split(stripped.lower()) if word and word not in _FILLER_WORDS]
    values = [value for value in (spoken_token_value(word, table) for word in words) if value is not None]
    if not values:
        return None

    if len(values) == 2:
        first, second = values
        if first < 10 and 10 <= second < 100:
            return first * 100 + second
        if 20 <= first < 100 and second < 10:
            return first + second

    total = _accumulate(values)
    return total if total > 0 else None
