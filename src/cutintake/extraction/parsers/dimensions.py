"""Deterministic parsers for written panel dimensions."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from ..patterns import DIMENSION_PATTERNS
from .numbers import parse_number
from .units import to_millimeters

__all__ = ["DimensionMatch", "extract_dimensions", "parse_dimension_value"]

_VALUE_PATTERN = re.compile(
    r"^\s*(?P<value>\d+(?:[.,]\d+)?)\s*(?P<unit>mm|cm|m|in|inch(?:es)?|ft|\"|')?\s*$",
    re.IGNORECASE,
)

_TWO_AXIS_PATTERNS = ("cross", "by", "labelled", "named")


@dataclass(frozen=True)
class DimensionMatch:
    """Length/width (and optional thickness) in millimetres found in a line.

    ``length`` is the first value as written; no orientation swap is applied.
    """

    length: float
    width: float
    thickness: Optional[float]
    raw: str
    span: Tuple[int, int]
    pattern: str


def parse_dimension_value(token: str) -> Optional[float]:
    """Parse ``"720"``, ``"72cm"`` or ``'24"'`` into millimetres."""

    if token is None:
        return None
    match = _VALUE_PATTERN.match(str(token))
    if not match:
        return None
    try:
        value = parse_number(match.group("value"))
    except ValueError:
        return None
    return to_millimeters(value, match.group("unit"))


def _unit(match: re.Match[str], name: str) -> Optional[str]:
    raw = match.groupdict().get(name)
    if raw is None:
        return None
    return raw.strip() or None


def _values(match: re.Match[str], names: Tuple[str, ...]) -> Tuple[float, ...]:
    units = [_unit(match, f"{name}_unit") for name in names]
    # A unit written on one side only applies to the whole expression.
    shared = next((unit for unit in units if unit), None)
    values = []
    for name, unit in zip(names, units):
        numeric = parse_number(match.group(name))
        values.append(to_millimeters(numeric, unit or shared))
    return tuple(values)


def _is_plausible_thickness(value: float, length: float, width: float) -> bool:
    return 3.0 <= value <= 100.0 and value < length and value < width


def _from_chain(text: str) -> Optional[DimensionMatch]:
    match = DIMENSION_PATTERNS["chain"].search(text)
    if match is None:
        return None
    first, second, third = _values(match, ("first", "second", "third"))
    # "600 x 300 mm x 4": a unit closing the second value ends the size, the tail is a count.
    closed = bool(_unit(match, "second_unit")) and not _unit(match, "third_unit")
    if not closed and _is_plausible_thickness(third, first, second):
        return DimensionMatch(first, second, third, match.group(0), match.span(), "chain")
    raw_first = match.group("first")
    if raw_first.isdigit() and first < 100 and first < second and first < third:
        attached = not match.group("first_unit") and not text[match.end("first") : match.end("first") + 1].isspace()
        if attached or first < 10:
            # "2x 720x560": the leading factor is a count, not an axis.
            start = match.start("second")
            return DimensionMatch(second, third, None, text[start : match.end()], (start, match.end()), "chain")
        if _is_plausible_thickness(first, second, third):
            # "18 x 600 x 300": thickness written first.
            return DimensionMatch(second, third, first, match.group(0), match.span(), "chain")
    end = match.end("second_unit") if match.group("second_unit") else match.end("second")
    return DimensionMatch(first, second, None, text[match.start() : end], (match.start(), end), "chain")


def extract_dimensions(text: str) -> Optional[DimensionMatch]:
    """Return the first dimension expression found in ``text``.

    Patterns are tried in declared order and the first match wins. Values with
    ``cm`` or attached inch units are converted to millimetres.
    """

    if not text:
        return None
    chained = _from_chain(text)
    if chained is not None:
        return chained
    for name in _TWO_AXIS_PATTERNS:
        match = DIMENSION_PATTERNS[name].search(text)
        if match is None:
            continue
        length, width = _values(match, ("first", "second"))
        return DimensionMatch(length, width, None, match.group(0), match.span(), name)
    return None
