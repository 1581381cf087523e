"""Recognizer tables shared by every ingestion channel.

Every table is ordered most-specific-first and consumers use the first
match, so the order of entries encodes precedence (an explicit ``qty:``
label beats a bare ``x2`` multiplier). The tables are immutable: tuples of
compiled patterns and read-only mappings.
"""
from __future__ import annotations

import re
from types import MappingProxyType
from typing import Mapping, Tuple

__all__ = [
    "COMMON_SHEET_SIZES",
    "DIMENSION_CONNECTORS",
    "DIMENSION_PATTERNS",
    "EDGEBAND_PATTERNS",
    "EDGE_KEYWORD_PATTERNS",
    "GRAIN_PATTERNS",
    "GRAIN_VALUE_PATTERNS",
    "GROOVE_PATTERNS",
    "HEADER_PATTERNS",
    "LABEL_CLEANUP_PATTERNS",
    "MATERIAL_KEYWORDS",
    "NUMBER_WORDS",
    "QUANTITY_INDICATORS",
    "QUANTITY_PATTERNS",
    "ROTATION_VALUE_PATTERNS",
    "SPOKEN_EDGE_PATTERNS",
    "SPOKEN_NUMBER_WORDS",
    "SPOKEN_THICKNESS_PATTERNS",
    "THICKNESS_PATTERNS",
    "UNIT_HEADER_PATTERNS",
    "VOICE_MATERIAL_HINTS",
]

_FLAGS = re.IGNORECASE

_NUM = r"\d+(?:\.\d+)?"
# mm/cm may be separated by whitespace; inches only when attached ("24in", '24"').
_UNIT = r"(?:\s*(?:mm|cm)(?![a-wyz])|(?:in|\")(?![a-wyz]))"
_SEP = r"\s*[x×*]\s*"


def _compile(*patterns: str) -> Tuple[re.Pattern[str], ...]:
    return tuple(re.compile(pattern, _FLAGS) for pattern in patterns)


# ---------------------------------------------------------------------------
# Dimensions
# ---------------------------------------------------------------------------

DIMENSION_PATTERNS: Mapping[str, re.Pattern[str]] = MappingProxyType(
    {
        "chain": re.compile(
            rf"(?<![\d.])(?P<first>{_NUM})(?P<first_unit>{_UNIT})?{_SEP}"
            rf"(?P<second>{_NUM})(?P<second_unit>{_UNIT})?{_SEP}"
            rf"(?P<third>{_NUM})(?P<third_unit>{_UNIT})?(?![\d.])",
            _FLAGS,
        ),
        "cross": re.compile(
            rf"(?<![\d.])(?P<first>{_NUM})(?P<first_unit>{_UNIT})?{_SEP}"
            rf"(?P<second>{_NUM})(?P<second_unit>{_UNIT})?(?![\d.])",
            _FLAGS,
        ),
        "by": re.compile(
            rf"(?<![\d.])(?P<first>{_NUM})(?P<first_unit>{_UNIT})?\s*\bby\b\s*"
            rf"(?P<second>{_NUM})(?P<second_unit>{_UNIT})?(?![\d.])",
            _FLAGS,
        ),
        "labelled": re.compile(
            rf"\bl\s*[:=]?\s*(?P<first>{_NUM})(?P<first_unit>{_UNIT})?[\s,;]*"
            rf"\bw\s*[:=]?\s*(?P<second>{_NUM})(?P<second_unit>{_UNIT})?(?![\d.])",
            _FLAGS,
        ),
        "named": re.compile(
            rf"\blength\s*[:=]?\s*(?P<first>{_NUM})(?P<first_unit>{_UNIT})?[\s,;]*"
            rf"(?:and\s+)?\bwidth\s*[:=]?\s*(?P<second>{_NUM})(?P<second_unit>{_UNIT})?(?![\d.])",
            _FLAGS,
        ),
    }
)

# ---------------------------------------------------------------------------
# Quantity, thickness
# ---------------------------------------------------------------------------

QUANTITY_PATTERNS: Tuple[re.Pattern[str], ...] = _compile(
    r"\b(?:qty|quantity)\s*[:=]?\s*(\d+)\b",
    r"(?<![a-z\d])[x×*]\s*(\d+)\b",
    r"\b(\d+)\s*(?:pcs?|pieces?|off)\b",
    r"\bq(\d+)\b",
    r"\b(\d+)\s*[x×](?=\s|$)",
    r"[(\[]\s*(\d+)\s*[)\]]\s*$",
    r"\btimes\s*(\d+)\b",
    r"^\s*(\d{1,4})(?=\s|$)(?!\s*(?:mm|cm|in\b|\"|[x×*]|by\b))",
)

THICKNESS_PATTERNS: Tuple[re.Pattern[str], ...] = _compile(
    r"\bt\s*[:=]?\s*(\d+(?:\.\d+)?)\s*(?:mm)?\b",
    r"\b(?:thk|thick(?:ness)?)\s*[:=]?\s*(\d+(?:\.\d+)?)\s*(?:mm)?",
    r"(?<![\d.])(\d+(?:\.\d+)?)\s*mm\s+thick\b",
    r"(?<![\d.])(1[2-9]|[2-4]\d|50)\s*mm\b",
)

# ---------------------------------------------------------------------------
# Grain / rotation
# ---------------------------------------------------------------------------

GRAIN_PATTERNS: Mapping[str, Tuple[re.Pattern[str], ...]] = MappingProxyType(
    {
        "grain_length": _compile(
            r"\bgl\b",
            r"\bgrain\s*(?:along\s*)?(?:the\s*)?length\b",
            r"\blength\s*grain\b",
            r"\|\|",
        ),
        "grain_width": _compile(
            r"\bgw\b",
            r"\bgrain\s*(?:along\s*)?(?:the\s*)?width\b",
            r"\bwidth\s*grain\b",
            r"(?:^|\s)=(?=\s|$)",
        ),
        "no_rotation": _compile(
            r"\bno\s*rotat(?:e|ion)\b",
            r"\bfixed\b",
            r"\blocked\b",
            r"\bdon'?t\s*rotate\b",
            r"\brotation\s*(?:off|no|false)\b",
        ),
        "allow_rotation": _compile(
            r"\brotat(?:e|ion)\s*(?:ok|yes|true|allowed)\b",
            r"\bcan\s*rotate\b",
            r"\bfree\b",
        ),
    }
)

# ---------------------------------------------------------------------------
# Edge banding and grooves
# ---------------------------------------------------------------------------

EDGEBAND_PATTERNS: Mapping[str, re.Pattern[str]] = MappingProxyType(
    {
        "specific": re.compile(
            r"\b(?:eb|edges?|edging|band(?:ed|ing)?)\s*[:=]?\s*((?:[lw][12]\b[\s,/+&]*)+)",
            _FLAGS,
        ),
        "code": re.compile(r"[lw][12]", _FLAGS),
    }
)

# First match wins: "2 long 1 short" must be tried before "long edges".
EDGE_KEYWORD_PATTERNS: Tuple[Tuple[str, re.Pattern[str], Tuple[str, ...]], ...] = tuple(
    (name, re.compile(pattern, _FLAGS), edges)
    for name, pattern, edges in (
        (
            "all",
            r"\b(?:all\s*(?:(?:4|four)\s*)?(?:edges?|sides?)|(?:4|four)\s*(?:edges?|sides?)|eb\s*all)\b",
            ("L1", "L2", "W1", "W2"),
        ),
        (
            "two_long_one_short",
            r"\b(?:(?:2|two)\s*long\s*(?:edges?\s*)?(?:and\s*|&\s*|\+\s*)?(?:1|one)\s*short|2l\s*1w)\b",
            ("L1", "L2", "W1"),
        ),
        ("three", r"\b(?:3|three)\s*(?:edges?|sides?)\b", ("L1", "L2", "W1")),
        ("long", r"\b(?:(?:2|two|both)\s*)?long\s*(?:edges?|sides?)\b", ("L1", "L2")),
        ("short", r"\b(?:(?:2|two|both)\s*)?short\s*(?:edges?|sides?)\b", ("W1", "W2")),
        ("front", r"\bfront\s*(?:edge|only)\b", ("L1",)),
    )
)

# Dictation drops the word "edges": "two long", "both short".
SPOKEN_EDGE_PATTERNS: Tuple[Tuple[str, re.Pattern[str], Tuple[str, ...]], ...] = tuple(
    (name, re.compile(pattern, _FLAGS), edges)
    for name, pattern, edges in (
        ("long", r"\b(?:2|two|both)\s*long\b", ("L1", "L2")),
        ("short", r"\b(?:2|two|both)\s*short\b", ("W1", "W2")),
    )
)

GROOVE_PATTERNS: Tuple[re.Pattern[str], ...] = _compile(
    r"\bback\s*groove\b",
    r"\bgroov(?:e|es|ed|ing)\b",
    r"\bdado(?:es|s)?\b",
    r"\brebate[ds]?\b",
)

# ---------------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------------

MATERIAL_KEYWORDS: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        "white-melamine": ("white melamine", "white mel", "wht mel", "white board"),
        "black-melamine": ("black melamine", "black mel", "blk mel"),
        "grey-melamine": ("grey melamine", "gray melamine", "grey mel"),
        "oak": ("oak", "white oak", "red oak"),
        "walnut": ("walnut", "american walnut"),
        "maple": ("maple", "hard maple"),
        "cherry": ("cherry", "american cherry"),
        "birch": ("birch", "baltic birch"),
        "beech": ("beech",),
        "ash": ("ash",),
        "pine": ("pine",),
        "mdf": ("mdf", "medium density"),
        "hdf": ("hdf", "high density"),
        "pb": ("pb", "particle board", "particleboard", "chipboard"),
        "plywood": ("plywood", "ply", "marine ply"),
        "osb": ("osb", "oriented strand"),
        "hpl": ("hpl", "high pressure laminate", "formica"),
        "melamine": ("melamine", "mel"),
    }
)

# Single words a dictating user says instead of the full material name.
VOICE_MATERIAL_HINTS: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        "white-melamine": ("white",),
        "black-melamine": ("black",),
        "plywood": ("plywood", "ply"),
    }
)

# ---------------------------------------------------------------------------
# Label cleanup (applied in order)
# ---------------------------------------------------------------------------

LABEL_CLEANUP_PATTERNS: Tuple[re.Pattern[str], ...] = _compile(
    rf"(?<![\d.])\d+(?:\.\d+)?{_UNIT}?{_SEP}\d+(?:\.\d+)?{_UNIT}?(?:{_SEP}\d+(?:\.\d+)?{_UNIT}?)?",
    rf"(?<![\d.])\d+(?:\.\d+)?{_UNIT}?\s*\bby\b\s*\d+(?:\.\d+)?{_UNIT}?",
    r"\bl\s*[:=]?\s*\d+(?:\.\d+)?\s*(?:mm|cm)?[\s,;]*\bw\s*[:=]?\s*\d+(?:\.\d+)?\s*(?:mm|cm)?",
    r"\blength\s*[:=]?\s*\d+(?:\.\d+)?\s*(?:mm|cm)?[\s,;]*(?:and\s+)?\bwidth\s*[:=]?\s*\d+(?:\.\d+)?\s*(?:mm|cm)?",
    r"\b(?:qty|quantity)\s*[:=]?\s*\d+",
    r"(?<![a-z\d])[x×*]\s*\d+\b",
    r"\b\d+\s*(?:pcs?|pieces?|off)\b",
    r"\bq\d+\b",
    r"\b\d+\s*[x×](?=\s|$)",
    r"[(\[]\s*\d+\s*[)\]]",
    r"\btimes\s*\d+\b",
    r"\bt\s*[:=]?\s*\d+(?:\.\d+)?\s*(?:mm)?\b",
    r"\b(?:thk|thick(?:ness)?)\s*[:=]?\s*\d+(?:\.\d+)?\s*(?:mm)?",
    r"\b\d+(?:\.\d+)?\s*mm(?:\s+thick)?\b",
    r"\b(?:gl|gw)\b",
    r"\bgrain\s*(?:along\s*)?(?:the\s*)?(?:length|width)\b",
    r"\b(?:length|width)\s*grain\b",
    r"\|\||(?:^|\s)=(?=\s|$)",
    r"\bno\s*rotat(?:e|ion)\b|\bdon'?t\s*rotate\b|\brotation\s*(?:off|no|false|ok|yes|true|allowed)\b",
    r"\b(?:fixed|locked|can\s*rotate)\b",
    r"\b(?:eb|edges?|edging|band(?:ed|ing)?)\s*[:=]?\s*(?:[lw][12]\b[\s,/+&]*)+",
    r"\b(?:2|two)\s*long\s*(?:edges?\s*)?(?:and\s*|&\s*|\+\s*)?(?:1|one)\s*short(?:\s*(?:edges?|sides?))?\b|\b2l\s*1w\b",
    r"\b(?:all\s*(?:(?:4|four)\s*)?|(?:4|four)\s*|(?:(?:2|two|3|three|both)\s*)?(?:long|short)\s*|(?:2|two|3|three|both)\s*)"
    r"(?:edges?|sides?)\b",
    r"\beb\s*all\b|\bfront\s*(?:edge|only)\b",
    r"\b(?:back\s*groove|groov(?:e|es|ed|ing)|dado(?:es|s)?|rebate[ds]?)\b",
    r"^\s*\d{1,4}(?=\s|$)",
    r"^\s*[-–—:,;]+\s*",
    r"\s*[-–—:,;]+\s*$",
)

# ---------------------------------------------------------------------------
# Spoken numbers
# ---------------------------------------------------------------------------

NUMBER_WORDS: Mapping[str, int] = MappingProxyType(
    {
        "zero": 0,
        "one": 1,
        "two": 2,
        "three": 3,
        "four": 4,
        "five": 5,
        "six": 6,
        "seven": 7,
        "eight": 8,
        "nine": 9,
        "ten": 10,
        "eleven": 11,
        "twelve": 12,
        "thirteen": 13,
        "fourteen": 14,
        "fifteen": 15,
        "sixteen": 16,
        "seventeen": 17,
        "eighteen": 18,
        "nineteen": 19,
        "twenty": 20,
        "thirty": 30,
        "forty": 40,
        "fifty": 50,
        "sixty": 60,
        "seventy": 70,
        "eighty": 80,
        "ninety": 90,
        "hundred": 100,
        "thousand": 1000,
    }
)

# Ordinals and common speech-recognition mishearings of number words.
SPOKEN_NUMBER_WORDS: Mapping[str, int] = MappingProxyType(
    {
        **NUMBER_WORDS,
        "first": 1,
        "second": 2,
        "third": 3,
        "fourth": 4,
        "fifth": 5,
        "to": 2,
        "too": 2,
        "for": 4,
        "won": 1,
        "ate": 8,
        "sex": 6,
    }
)

# Longest phrase first so "multiplied by" is not split on "by".
DIMENSION_CONNECTORS: Tuple[str, ...] = ("multiplied by", "by", "x", "×", "times", "cross")

QUANTITY_INDICATORS: Tuple[re.Pattern[str], ...] = _compile(
    r"\b(?:quantity|qty)\s*(?:of\s*)?(?P<value>[a-z0-9]+(?:[\s-]+[a-z]+)?)",
    r"\b(?P<value>[a-z0-9]+)\s*(?:pieces?|pcs?|off|units?)\b",
    r"\bneed\s+(?P<value>[a-z0-9]+(?:[\s-]+[a-z]+)?)",
    r"\bmake\s+(?P<value>[a-z0-9]+(?:[\s-]+[a-z]+)?)",
    r"\bcut\s+(?P<value>[a-z0-9]+(?:[\s-]+[a-z]+)?)",
    r"\btimes\s+(?P<value>[a-z0-9]+)\s*$",
)

# ---------------------------------------------------------------------------
# Tabular headers and cell values
# ---------------------------------------------------------------------------

HEADER_PATTERNS: Mapping[str, Tuple[re.Pattern[str], ...]] = MappingProxyType(
    {
        "label": _compile(
            r"^(?:label|name|part\s*name|part|description|desc|item|component)$",
            r"^(?:part|item)\s*(?:id|no\.?|#)$",
        ),
        "length": _compile(r"^(?:l|len|length|long|height|h)$", r"^length\s*\(?mm\)?$"),
        "width": _compile(r"^(?:w|wid|width|wide|breadth)$", r"^width\s*\(?mm\)?$"),
        "thickness": _compile(r"^(?:t|thk|thick|thickness|depth)$", r"^thickness\s*\(?mm\)?$"),
        "qty": _compile(r"^(?:qty|quantity|count|pcs|pieces|no\.?|#|num|number)$"),
        "material": _compile(r"^(?:material|mat|board|sheet|substrate|stock)$", r"^material\s*(?:id|code)$"),
        "grain": _compile(r"^(?:grain|grain\s*dir(?:ection)?|direction)$"),
        "rotation": _compile(r"^(?:rotat(?:e|ion|able)|can\s*rotate|allow\s*rotation)$"),
        "group": _compile(r"^(?:group|cabinet|assembly|unit|section)$"),
        "notes": _compile(r"^(?:notes?|comments?|remarks?)$"),
        "edging": _compile(r"^(?:edg(?:e|es|ing)|eb|banding|edge\s*band(?:ing)?)$"),
    }
)

# Bracket or unit suffixed headers such as "L (mm)" or "W[mm]".
UNIT_HEADER_PATTERNS: Mapping[str, re.Pattern[str]] = MappingProxyType(
    {
        "length": re.compile(r"^(?:l|len|length)\s*[\(\[]?\s*mm\b", _FLAGS),
        "width": re.compile(r"^(?:w|wid|width)\s*[\(\[]?\s*mm\b", _FLAGS),
        "thickness": re.compile(r"^(?:t|thk|thickness)\s*[\(\[]?\s*mm\b", _FLAGS),
    }
)

GRAIN_VALUE_PATTERNS: Mapping[str, re.Pattern[str]] = MappingProxyType(
    {
        "along_L": re.compile(r"^(?:l|length|along_l|gl)$", _FLAGS),
        "along_W": re.compile(r"^(?:w|width|along_w|gw)$", _FLAGS),
    }
)

ROTATION_VALUE_PATTERNS: Mapping[bool, re.Pattern[str]] = MappingProxyType(
    {
        False: re.compile(r"^(?:no|false|0|n)$", _FLAGS),
        True: re.compile(r"^(?:yes|true|1|y)$", _FLAGS),
    }
)

# Standard stock sheet sizes (L, W) in millimetres.
COMMON_SHEET_SIZES: Tuple[Tuple[float, float], ...] = (
    (2440.0, 1220.0),
    (2800.0, 2070.0),
    (2500.0, 1250.0),
    (3050.0, 1525.0),
)

# ---------------------------------------------------------------------------
# Spoken thickness
# ---------------------------------------------------------------------------

SPOKEN_THICKNESS_PATTERNS: Tuple[re.Pattern[str], ...] = _compile(
    r"\bthick(?:ness)?\s*(?:of\s*)?(?P<value>[a-z0-9]+(?:[\s-]+[a-z]+)?)",
    r"(?P<value>[a-z0-9]+(?:[\s-]+[a-z]+)?)\s*(?:mm|mils?|millimet(?:er|re)s?)\b",
)
