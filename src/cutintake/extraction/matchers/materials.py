"""Lexical matcher mapping material keywords to canonical material ids."""
from __future__ import annotations

import json
import logging
import re
import unicodedata
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..patterns import MATERIAL_KEYWORDS

LOGGER = logging.getLogger(__name__)

__all__ = [
    "MaterialDefinition",
    "MaterialMatch",
    "MaterialMatcher",
    "default_matcher",
    "find_material_match",
    "load_material_lexicon",
]


@dataclass(frozen=True)
class MaterialMatch:
    """Structure describing a material keyword found in a text.

    ``value`` is the canonical material id written to ``Part.material_id``;
    ``surface`` preserves the text as it appeared so labels can drop it.
    """

    value: str
    surface: str
    span: Tuple[int, int]


@dataclass(frozen=True)
class MaterialDefinition:
    """Material id with the keywords that refer to it."""

    id: str
    keywords: Tuple[str, ...]


def _normalize_token(token: str) -> str:
    normalized = unicodedata.normalize("NFKD", token)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch)).lower()


def _definitions_from_table(table: Mapping[str, Sequence[str]]) -> List[MaterialDefinition]:
    return [
        MaterialDefinition(id=material_id, keywords=tuple(dict.fromkeys(keywords)))
        for material_id, keywords in table.items()
    ]


def load_material_lexicon(path: str | Path) -> List[MaterialDefinition]:
    """Load a JSON lexicon ``{"materials": [{"id": ..., "keywords": [...]}]}``.

    Entries extend the built-in keyword table; an id already present there
    gains the extra keywords.
    """

    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    merged: Dict[str, List[str]] = {key: list(value) for key, value in MATERIAL_KEYWORDS.items()}
    for entry in payload.get("materials", []):
        material_id = entry.get("id")
        if not material_id:
            continue
        keywords = entry.get("keywords") or entry.get("synonyms") or []
        merged.setdefault(material_id, []).extend(str(keyword) for keyword in keywords)
    LOGGER.debug("material lexicon loaded", extra={"path": str(path), "materials": len(merged)})
    return _definitions_from_table(merged)


class MaterialMatcher:
    """Detect material keywords on word boundaries, preferring the longest one."""

    def __init__(
        self,
        lexicon: Optional[Sequence[MaterialDefinition] | Mapping[str, Sequence[str]]] = None,
    ) -> None:
        if lexicon is None:
            definitions = _definitions_from_table(MATERIAL_KEYWORDS)
        elif isinstance(lexicon, Mapping):
            definitions = _definitions_from_table(lexicon)
        else:
            definitions = list(lexicon)
        self._definitions = definitions

        self._index: List[Tuple[re.Pattern[str], str, MaterialDefinition]] = []
        for definition in definitions:
            for keyword in definition.keywords:
                normalized = _normalize_token(keyword).strip()
                if not normalized:
                    continue
                pattern = re.compile(rf"(?<![\w-]){re.escape(normalized)}(?![\w-])")
                self._index.append((pattern, normalized, definition))
        # Longer keywords first: "white oak" must beat "oak".
        self._index.sort(key=lambda item: len(item[1]), reverse=True)

    @property
    def material_ids(self) -> Tuple[str, ...]:
        return tuple(definition.id for definition in self._definitions)

    def find(self, text: str) -> List[MaterialMatch]:
        """Return every keyword occurrence, longest keywords first."""

        normalized_text = _normalize_token(text or "")
        if len(normalized_text) != len(text or ""):
            # Decomposition changed offsets; fall back to a plain lowercase view.
            normalized_text = (text or "").lower()
        matches: List[MaterialMatch] = []
        for pattern, _, definition in self._index:
            for match in pattern.finditer(normalized_text):
                span = match.span()
                matches.append(MaterialMatch(value=definition.id, surface=text[span[0] : span[1]], span=span))
        return matches

    def best(self, text: str) -> Optional[MaterialMatch]:
        """Longest recognised keyword, earliest occurrence on ties; ``None`` otherwise."""

        matches = self.find(text)
        if not matches:
            return None
        return min(matches, key=lambda item: (-(item.span[1] - item.span[0]), item.span[0]))


@lru_cache(maxsize=1)
def default_matcher() -> MaterialMatcher:
    return MaterialMatcher()


def find_material_match(
    text: str,
    keyword_table: Optional[Mapping[str, Sequence[str]] | MaterialMatcher] = None,
) -> Optional[MaterialMatch]:
    """Match ``text`` against a keyword→id table; never guesses."""

    if keyword_table is None:
        matcher = default_matcher()
    elif isinstance(keyword_table, MaterialMatcher):
        matcher = keyword_table
    else:
        matcher = MaterialMatcher(keyword_table)
    return matcher.best(text)
