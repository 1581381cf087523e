"""Dictation parser: spoken phrases and live transcript streams.

A phrase such as ``"side panel seven twenty by five sixty quantity two"`` is
split on a connector word (``by``, ``x``, ``times``, ``cross``); the number
words touching the connector on each side are the two dimensions. Voice input
carries no grain cue, so the larger value always becomes ``L``.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..config import IntakeSettings, get_settings
from .matchers.materials import MaterialMatcher, default_matcher, load_material_lexicon
from .normalize import mask_spans, normalize_text
from .part import Part, PartAudit, PartOps, PartSize, SourceMethod, build_edging
from .parsers.edges import detect_grooves, parse_edges
from .parsers.grain import detect_grain, resolve_rotation
from .parsers.labels import clean_label
from .parsers.numbers import parse_spoken_number
from .parsers.units import normalize_unit, to_millimeters
from .patterns import (
    DIMENSION_CONNECTORS,
    NUMBER_WORDS,
    QUANTITY_INDICATORS,
    SPOKEN_NUMBER_WORDS,
    SPOKEN_THICKNESS_PATTERNS,
    VOICE_MATERIAL_HINTS,
)

__all__ = [
    "DictationStream",
    "VoiceParseResult",
    "VoiceParserOptions",
    "detect_spoken_edges",
    "parse_spoken_dimensions",
    "parse_spoken_number",
    "parse_spoken_quantity",
    "parse_voice_input",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_FLUSH_CHARS = 200

_TOKEN_PATTERN = re.compile(r"\d+(?:\.\d+)?|[a-z]+|×")
_FALLBACK_PATTERN = re.compile(r"(?<![\d.])(\d+(?:\.\d+)?)\D+?(\d+(?:\.\d+)?)")
_SINGLE_PIECE = re.compile(r"\b(?:one|single|1)\b")
_MISHEARINGS = frozenset(word for word in SPOKEN_NUMBER_WORDS if word not in NUMBER_WORDS)
_MULTIPLIERS = frozenset({"hundred", "thousand"})
# Nouns that turn the number before them into a count: "four pieces".
_COUNT_NOUNS = frozenset({"piece", "pieces", "pc", "pcs", "off", "unit", "units"})
# "in" and "m" are too common as plain words to be read as units in speech.
_SPOKEN_UNITS = frozenset(
    {"mm", "mil", "mils", "millimeter", "millimeters", "millimetre", "millimetres",
     "cm", "centimeter", "centimeters", "centimetre", "centimetres", "inch", "inches"}
)
_LABEL_FILLERS = re.compile(r"^(?:(?:a|an|the|cut|make|need|add|okay|ok|and|then)\s+)+", re.IGNORECASE)

POSITIONAL_QUANTITY_RANGE = (1, 99)
EXPLICIT_QUANTITY_LIMIT = 10000


class VoiceParserOptions(BaseModel):
    default_material_id: str = ""
    default_thickness_mm: float = Field(default=18.0, gt=0)
    default_allow_rotation: bool = True
    swap_to_landscape: bool = Field(default=True, description="Keep L >= W for dictated sizes")
    materials: Optional[Dict[str, Tuple[str, ...]]] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, settings: IntakeSettings | None = None, **overrides: Any) -> "VoiceParserOptions":
        settings = settings or get_settings()
        values: Dict[str, Any] = {
            "default_material_id": settings.default_material_id,
            "default_thickness_mm": settings.default_thickness_mm,
            "default_allow_rotation": settings.default_allow_rotation,
        }
        if settings.materials_lexicon is not None and settings.materials_lexicon.exists():
            values["materials"] = {
                definition.id: definition.keywords
                for definition in load_material_lexicon(settings.materials_lexicon)
            }
        values.update(overrides)
        return cls(**values)

    def matcher(self) -> MaterialMatcher:
        if self.materials is None:
            return default_matcher()
        return MaterialMatcher(self.materials)


@dataclass
class VoiceParseResult:
    part: Optional[Part]
    confidence: float
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    original_text: str = ""
    normalized_text: str = ""

    @property
    def success(self) -> bool:
        return self.part is not None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "part": self.part.model_dump(mode="json") if self.part else None,
            "confidence": self.confidence,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "original_text": self.original_text,
            "normalized_text": self.normalized_text,
        }


@dataclass(frozen=True)
class _Token:
    text: str
    start: int
    end: int

    @property
    def is_numeral(self) -> bool:
        return self.text[0].isdigit()

    @property
    def is_number(self) -> bool:
        return self.is_numeral or self.text in SPOKEN_NUMBER_WORDS


@dataclass(frozen=True)
class _SpokenSize:
    """Dimensions found in a phrase plus the leftovers around them."""

    length: float
    width: float
    spans: Tuple[Tuple[int, int], ...]
    before: Tuple[_Token, ...]
    after: Tuple[_Token, ...]
    start: int
    fallback: bool = False


def _tokenize(text: str) -> List[_Token]:
    return [_Token(match.group(0), match.start(), match.end()) for match in _TOKEN_PATTERN.finditer(text)]


def _trim_run(run: List[_Token]) -> Tuple[List[_Token], Optional[str]]:
    """Drop units, fillers and edge mishearings; return the run and its unit."""

    unit = next((normalize_unit(token.text) for token in run if token.text in _SPOKEN_UNITS), None)
    tokens = [token for token in run if token.text not in _SPOKEN_UNITS]
    while tokens and (tokens[0].text in _MISHEARINGS or tokens[0].text == "and"):
        tokens.pop(0)
    while tokens and (tokens[-1].text in _MISHEARINGS or tokens[-1].text == "and"):
        tokens.pop()
    return tokens, unit


def _collect(tokens: Sequence[_Token], index: int, step: int) -> List[_Token]:
    run: List[_Token] = []
    while 0 <= index < len(tokens):
        token = tokens[index]
        if not (token.is_number or token.text in _SPOKEN_UNITS or token.text == "and"):
            break
        following = index + 1
        if step > 0 and run and following < len(tokens) and tokens[following].text in _COUNT_NOUNS:
            break
        run.append(token)
        index += step
    return run if step > 0 else run[::-1]


def _split_operand(run: List[_Token], *, leading: bool) -> Tuple[List[_Token], List[_Token]]:
    """Split a number run into (operand, leftovers).

    ``leading`` is true for the run before the connector, whose operand is
    its tail; the run after the connector keeps its head.
    """

    edge = run[-1] if leading else run[0]
    if edge.is_numeral:
        return ([edge], run[:-1]) if leading else ([edge], run[1:])
    has_multiplier = any(token.text in _MULTIPLIERS for token in run)
    if len(run) >= 3 and not has_multiplier:
        return (run[-2:], run[:-2]) if leading else (run[:2], run[2:])
    return run, []


def _operand_value(tokens: List[_Token], unit: Optional[str]) -> Optional[float]:
    if not tokens:
        return None
    value = parse_spoken_number(" ".join(token.text for token in tokens))
    if value is None or value <= 0:
        return None
    return to_millimeters(value, unit)


def _connector_positions(tokens: Sequence[_Token]) -> List[Tuple[int, int]]:
    """(first, last) token indexes of every connector, in connector-table order."""

    words = [token.text for token in tokens]
    positions: List[Tuple[int, int]] = []
    for connector in DIMENSION_CONNECTORS:
        parts = connector.split()
        width = len(parts)
        for index in range(len(words) - width + 1):
            if words[index : index + width] == parts:
                positions.append((index, index + width - 1))
    return positions


def _find_spoken_size(text: str, *, swap: bool = True) -> Optional[_SpokenSize]:
    tokens = _tokenize(text)
    for first, last in _connector_positions(tokens):
        left_run, left_unit = _trim_run(_collect(tokens, first - 1, -1))
        right_run, right_unit = _trim_run(_collect(tokens, last + 1, 1))
        if not left_run or not right_run:
            continue
        left_operand, before = _split_operand(left_run, leading=True)
        right_operand, after = _split_operand(right_run, leading=False)
        shared_unit = left_unit or right_unit
        length = _operand_value(left_operand, left_unit or shared_unit)
        width = _operand_value(right_operand, right_unit or shared_unit)
        if length is None or width is None:
            continue
        if swap and width > length:
            length, width = width, length
        spans = tuple((token.start, token.end) for token in (*left_operand, *tokens[first : last + 1], *right_operand))
        start = (before[0] if before else left_operand[0]).start
        return _SpokenSize(length, width, spans, tuple(before), tuple(after), start)

    match = _FALLBACK_PATTERN.search(text)
    if match:
        length, width = float(match.group(1)), float(match.group(2))
        if length > 0 and width > 0:
            if swap and width > length:
                length, width = width, length
            spans = (match.span(1), match.span(2))
            return _SpokenSize(length, width, spans, (), (), match.start(), fallback=True)
    return None


def parse_spoken_dimensions(text: str, *, swap: bool = True) -> Optional[PartSize]:
    """``"seven twenty by five sixty"`` -> ``PartSize(L=720, W=560)``."""

    size = _find_spoken_size(normalize_text(text), swap=swap)
    if size is None:
        return None
    return PartSize(L=size.length, W=size.width)


def _count(tokens: Sequence[_Token] | Sequence[str]) -> Optional[int]:
    words = [token.text if isinstance(token, _Token) else token for token in tokens]
    if not words:
        return None
    value = parse_spoken_number(" ".join(words), NUMBER_WORDS)
    low, high = POSITIONAL_QUANTITY_RANGE
    if value is None or not value.is_integer() or not low <= value <= high:
        return None
    return int(value)


def _quantity(text: str, size: Optional[_SpokenSize]) -> Optional[int]:
    masked = mask_spans(text, size.spans if size else ())
    for pattern in QUANTITY_INDICATORS:
        for match in pattern.finditer(masked):
            value = parse_spoken_number(match.group("value"), NUMBER_WORDS)
            if value is not None and value.is_integer() and 0 < value < EXPLICIT_QUANTITY_LIMIT:
                return int(value)

    if size is not None:
        leading = _count(size.before)
        if leading is not None:
            return leading
        head = _tokenize(text[: size.start])
        if head and head[0].is_number and head[0].text not in _MISHEARINGS:
            leading = _count(head[:1])
            if leading is not None:
                return leading
        trailing = _count(size.after)
        if trailing is not None:
            return trailing

    tail = [token for token in _tokenize(masked) if token.text not in _SPOKEN_UNITS]
    if tail and tail[-1].is_number and tail[-1].text not in _MISHEARINGS:
        return _count(tail[-1:])
    return None


def parse_spoken_quantity(text: str) -> Optional[int]:
    """Quantity from indicator phrases, else a count next to the size or at the end."""

    normalized = normalize_text(text)
    return _quantity(normalized, _find_spoken_size(normalized))


def detect_spoken_edges(text: str) -> List[str]:
    """Edge codes named in a dictated phrase; a bare "edges" means all four."""

    return parse_edges(normalize_text(text), spoken=True)


def _spoken_thickness(masked: str) -> Optional[float]:
    for pattern in SPOKEN_THICKNESS_PATTERNS:
        for match in pattern.finditer(masked):
            value = parse_spoken_number(match.group("value"), NUMBER_WORDS)
            if value is not None and 3 <= value <= 100:
                return value
    return None


@lru_cache(maxsize=1)
def _hint_matcher() -> MaterialMatcher:
    return MaterialMatcher(VOICE_MATERIAL_HINTS)


def _label(cased: str, size: _SpokenSize, material_surface: Optional[str]) -> Optional[str]:
    prefix = _LABEL_FILLERS.sub("", cased[: size.start].strip())
    head = _tokenize(prefix.lower())
    if head and (head[0].is_numeral or head[0].text in NUMBER_WORDS):
        prefix = _LABEL_FILLERS.sub("", prefix[head[0].end :].strip())
    label = clean_label(prefix)
    if label and material_surface:
        stripped = clean_label(re.sub(rf"(?i)(?<!\w){re.escape(material_surface)}(?!\w)", " ", label))
        label = stripped or label
    return label or None


def parse_voice_input(text: str, options: VoiceParserOptions | None = None) -> VoiceParseResult:
    """Parse one complete dictated phrase. Never raises; failures are in ``errors``."""

    options = options or VoiceParserOptions()
    original = text or ""
    normalized = normalize_text(original)
    cased = normalize_text(original, lowercase=False)
    if len(cased) != len(normalized):
        cased = normalized

    size = _find_spoken_size(normalized, swap=options.swap_to_landscape)
    if size is None:
        return VoiceParseResult(
            part=None,
            confidence=0.0,
            errors=["Could not understand dimensions"],
            original_text=original,
            normalized_text=normalized,
        )

    warnings: List[str] = []
    confidence = 1.0
    if size.fallback:
        warnings.append("No dimension connector heard, using the first two numbers")
        confidence *= 0.8

    qty = _quantity(normalized, size)
    if qty is None:
        qty = 1
        if not _SINGLE_PIECE.search(normalized):
            warnings.append("No quantity detected, defaulting to 1")
            confidence *= 0.9

    masked = mask_spans(normalized, size.spans)
    thickness = _spoken_thickness(masked) or options.default_thickness_mm

    grain = detect_grain(masked)
    allow_rotation = resolve_rotation(grain.grain, grain.allow_rotation, options.default_allow_rotation)

    edges = parse_edges(masked, spoken=True)
    grooves = detect_grooves(masked, thickness_mm=thickness)
    ops = PartOps(edging=build_edging(edges), grooves=grooves) if edges or grooves else None

    material = options.matcher().best(masked) or _hint_matcher().best(masked)

    part = Part(
        label=_label(cased, size, material.surface if material else None),
        qty=qty,
        size=PartSize(L=size.length, W=size.width),
        thickness_mm=thickness,
        material_id=material.value if material else options.default_material_id,
        grain=grain.grain,
        allow_rotation=allow_rotation,
        ops=ops,
        audit=PartAudit(source_method=SourceMethod.VOICE, source_ref=normalized[:100], confidence=confidence),
        original_text=original,
        parse_warnings=list(warnings),
    )
    return VoiceParseResult(
        part=part,
        confidence=part.audit.confidence,
        warnings=warnings,
        original_text=original,
        normalized_text=normalized,
    )


class DictationStream:
    """Buffer for one live dictation session.

    Fragments accumulate until the speech source marks one final or the
    buffer grows past ``flush_chars``. A flush that yields a part clears the
    buffer; a flush without dimensions keeps the text so the next fragment
    can complete it. Instances hold per-session state and must not be shared.
    """

    def __init__(self, options: VoiceParserOptions | None = None, *, flush_chars: int = DEFAULT_FLUSH_CHARS) -> None:
        self._options = options or VoiceParserOptions()
        self._flush_chars = flush_chars
        self._buffer = ""

    @property
    def buffer(self) -> str:
        return self._buffer.strip()

    def append(self, fragment: str, is_final: bool = False) -> Optional[VoiceParseResult]:
        """Add a transcript fragment; return the emitted result when a part is produced."""

        self._buffer += " " + (fragment or "")
        if not (is_final or len(self._buffer) > self._flush_chars):
            return None
        text = self.buffer
        if not text:
            return None
        result = parse_voice_input(text, self._options)
        if result.part is None:
            LOGGER.debug("dictation_buffer_retained", extra={"chars": len(text)})
            return None
        self._buffer = ""
        return result

    def flush(self) -> Optional[VoiceParseResult]:
        """Force a parse of whatever is buffered and empty the buffer."""

        text = self.buffer
        self._buffer = ""
        if not text:
            return None
        return parse_voice_input(text, self._options)

    def clear(self) -> None:
        self._buffer = ""
