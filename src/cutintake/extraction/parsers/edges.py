"""Edge-banding and groove intent detection."""
from __future__ import annotations

import re
from typing import List

from ..part import EDGE_IDS, GrooveOp
from ..patterns import EDGEBAND_PATTERNS, EDGE_KEYWORD_PATTERNS, GROOVE_PATTERNS, SPOKEN_EDGE_PATTERNS

__all__ = [
    "BACK_GROOVE_DEPTH_MM",
    "BACK_GROOVE_OFFSET_MM",
    "BACK_GROOVE_WIDTH_MM",
    "detect_grooves",
    "order_edges",
    "parse_edges",
]

BACK_GROOVE_OFFSET_MM = 10.0
BACK_GROOVE_WIDTH_MM = 4.0
BACK_GROOVE_DEPTH_MM = 10.0

_BARE_EDGES = re.compile(r"\b(?:edges?|edge\s*band(?:ed|ing)?|edging|banded)\b", re.IGNORECASE)
_WIDTH_WORD = re.compile(r"\bwidth\b|\bgw\b|\bshort\s*(?:side|edge)\b", re.IGNORECASE)


def order_edges(edges: List[str]) -> List[str]:
    """De-duplicate edge codes and sort them as ``L1, L2, W1, W2``."""

    unique = {code.upper() for code in edges if code.upper() in EDGE_IDS}
    return [code for code in EDGE_IDS if code in unique]


def parse_edges(text: str, *, spoken: bool = False) -> List[str]:
    """Return the banded edges mentioned in ``text``.

    Explicit codes (``EB: L1,L2``) are combined with the first matching
    keyword phrase (``all edges``, ``2 long 1 short`` ...). Dictated text
    (``spoken=True``) also accepts ``two long`` / ``two short`` without the
    word "edges", and a lone mention of edges bands all four.
    """

    found: List[str] = []
    for match in EDGEBAND_PATTERNS["specific"].finditer(text):
        found.extend(EDGEBAND_PATTERNS["code"].findall(match.group(1)))

    keyword_patterns = EDGE_KEYWORD_PATTERNS + SPOKEN_EDGE_PATTERNS if spoken else EDGE_KEYWORD_PATTERNS
    for _, pattern, edges in keyword_patterns:
        if pattern.search(text):
            found.extend(edges)
            break

    if not found and spoken and _BARE_EDGES.search(text):
        found.extend(EDGE_IDS)
    return order_edges(found)


def detect_grooves(text: str, *, thickness_mm: float = 18.0) -> List[GrooveOp]:
    """Return a default back groove when ``text`` asks for a groove or dado.

    The groove runs along the width side (``W2``) when the width is mentioned,
    otherwise along the length (``L2``). Depth always leaves at least 1 mm of
    material behind the groove.
    """

    if not any(pattern.search(text) for pattern in GROOVE_PATTERNS):
        return []
    side = "W2" if _WIDTH_WORD.search(text) else "L2"
    depth = BACK_GROOVE_DEPTH_MM
    if thickness_mm > 0:
        depth = max(1.0, min(depth, thickness_mm - 1.0))
    return [
        GrooveOp(
            side=side,
            depth_mm=depth,
            width_mm=BACK_GROOVE_WIDTH_MM,
            offset_mm=BACK_GROOVE_OFFSET_MM,
            groove_id="back",
        )
    ]

