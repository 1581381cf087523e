"""Label extraction: keep only the descriptive words of a line."""
from __future__ import annotations

import re
from typing import Iterable, Optional, Tuple

from ..part import truncate_label
from ..patterns import LABEL_CLEANUP_PATTERNS

__all__ = ["clean_label", "extract_label"]

_EDGE_PUNCTUATION = re.compile(r"^[\s\-:,;|/.]+|[\s\-:,;|/]+$")
_WHITESPACE = re.compile(r"\s+")
_HAS_LETTER = re.compile(r"[^\W\d_]")
_HAS_WORD = re.compile(r"[^\W\d_]{3,}")
_HAS_DIGIT = re.compile(r"\d")


def clean_label(text: str, patterns: Iterable[re.Pattern[str]] = LABEL_CLEANUP_PATTERNS) -> str:
    """Remove every recognised token from ``text`` in pattern order.

    Residual punctuation at either end is trimmed and whitespace collapsed.
    A result without any letter is returned as an empty string.

    A vocabulary pattern (one whose matches carry no digits) is skipped when
    it would remove the last word of the label, so short labels such as
    ``Long side`` or ``Fixed`` survive their keyword cleanup.
    """

    cleaned = text or ""
    for pattern in patterns:
        removed = [match.group(0) for match in pattern.finditer(cleaned)]
        if not removed:
            continue
        candidate = _WHITESPACE.sub(" ", pattern.sub(" ", cleaned)).strip()
        if (
            _HAS_WORD.search(cleaned)
            and not _HAS_LETTER.search(candidate)
            and not any(_HAS_DIGIT.search(chunk) for chunk in removed)
        ):
            continue
        cleaned = candidate
    cleaned = _EDGE_PUNCTUATION.sub("", cleaned).strip()
    if not _HAS_LETTER.search(cleaned):
        return ""
    return cleaned


def _strip_surface(label: str, surface: str) -> str:
    pattern = re.compile(rf"(?<!\w){re.escape(surface)}(?!\w)", re.IGNORECASE)
    stripped = _WHITESPACE.sub(" ", pattern.sub(" ", label)).strip()
    return _EDGE_PUNCTUATION.sub("", stripped).strip()


def extract_label(
    text: str,
    *,
    dimension_span: Optional[Tuple[int, int]] = None,
    material_surface: Optional[str] = None,
    patterns: Iterable[re.Pattern[str]] = LABEL_CLEANUP_PATTERNS,
) -> Optional[str]:
    """Return the descriptive label of a line, or ``None``.

    The words written before the dimensions are preferred; when nothing useful
    precedes them the whole line is cleaned instead. The matched material
    keyword is removed too, unless that would leave nothing: a line reading
    only ``Oak 720x560`` keeps ``Oak`` rather than losing its label.
    """

    patterns = tuple(patterns)
    label = ""
    if dimension_span is not None and dimension_span[0] > 0:
        label = clean_label(text[: dimension_span[0]], patterns)
    if not label:
        label = clean_label(text, patterns)
    if label and material_surface:
        without_material = _strip_surface(label, material_surface)
        if _HAS_LETTER.search(without_material):
            label = without_material
    return truncate_label(label) if label else None
