"""Free-text line parser turning pasted cutlists into parts.

Each line is handled independently: dimensions are mandatory, every other
field (quantity, thickness, grain, edges, grooves, material, label) is
optional and detected on its own. Lines without dimensions are reported as
errors and the batch carries on.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..config import IntakeSettings, get_settings
from .diagnostics import ParseIssue, ParseStats
from .matchers.materials import MaterialMatcher, default_matcher, load_material_lexicon
from .normalize import (
    ConfidenceFlags,
    are_dimensions_reasonable,
    calculate_confidence,
    mask_spans,
    normalize_text,
    split_lines,
)
from .part import Part, PartAudit, PartOps, PartSize, SourceMethod, build_edging
from .parsers.dimensions import extract_dimensions
from .parsers.edges import detect_grooves, parse_edges
from .parsers.grain import detect_grain, resolve_rotation
from .parsers.labels import extract_label
from .parsers.thickness import extract_thickness
from .patterns import QUANTITY_PATTERNS

__all__ = ["TextParseResult", "TextParserOptions", "detect_quantity", "parse_line", "parse_text"]

LOGGER = logging.getLogger(__name__)

MAX_QUANTITY = 10000


class TextParserOptions(BaseModel):
    """Caller policy for the text parser."""

    default_material_id: str = ""
    default_thickness_mm: float = Field(default=18.0, gt=0)
    default_allow_rotation: bool = True
    min_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    strict_mode: bool = Field(default=False, description="Reject lines below min_confidence instead of warning")
    source_method: SourceMethod = SourceMethod.PASTE_PARSER
    confidence_scale: float = Field(default=1.0, ge=0.0, le=1.0, description="Multiplier for upstream OCR quality")
    materials: Optional[Dict[str, Tuple[str, ...]]] = Field(
        default=None, description="Keyword table replacing the built-in material keywords"
    )

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, settings: IntakeSettings | None = None, **overrides: Any) -> "TextParserOptions":
        settings = settings or get_settings()
        values: Dict[str, Any] = {
            "default_material_id": settings.default_material_id,
            "default_thickness_mm": settings.default_thickness_mm,
            "default_allow_rotation": settings.default_allow_rotation,
            "min_confidence": settings.min_confidence,
            "strict_mode": settings.strict_mode,
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
class TextParseResult:
    parts: List[Part] = field(default_factory=list)
    errors: List[ParseIssue] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    stats: ParseStats = field(default_factory=ParseStats)

    @property
    def success(self) -> bool:
        return bool(self.parts)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "parts": [part.model_dump(mode="json") for part in self.parts],
            "errors": [error.as_dict() for error in self.errors],
            "warnings": list(self.warnings),
            "stats": self.stats.as_dict(),
        }


def detect_quantity(text: str, patterns: Sequence[Any] = QUANTITY_PATTERNS) -> Optional[int]:
    """First quantity pattern yielding a plausible count wins."""

    for pattern in patterns:
        match = pattern.search(text)
        if match is None:
            continue
        value = int(match.group(1))
        if 0 < value < MAX_QUANTITY:
            return value
    return None


def _build_part(
    raw_line: str,
    options: TextParserOptions,
    matcher: MaterialMatcher,
    source_ref: Optional[str],
) -> Optional[Part]:
    text = normalize_text(raw_line, lowercase=False)
    if not text:
        return None
    dimensions = extract_dimensions(text)
    if dimensions is None or dimensions.length <= 0 or dimensions.width <= 0:
        return None

    warnings: List[str] = []
    remainder = mask_spans(text, [dimensions.span])

    thickness_match = extract_thickness(remainder)
    if dimensions.thickness is not None:
        thickness = dimensions.thickness
    elif thickness_match is not None:
        thickness = thickness_match.value_mm
    else:
        thickness = options.default_thickness_mm

    quantity_text = mask_spans(remainder, [thickness_match.span if thickness_match else None])
    qty = detect_quantity(quantity_text)

    grain = detect_grain(remainder)
    allow_rotation = resolve_rotation(grain.grain, grain.allow_rotation, options.default_allow_rotation)

    edges = parse_edges(remainder)
    grooves = detect_grooves(remainder, thickness_mm=thickness)
    ops = None
    if edges or grooves:
        ops = PartOps(edging=build_edging(edges), grooves=grooves)

    material = matcher.best(remainder)
    label = extract_label(
        text,
        dimension_span=dimensions.span,
        material_surface=material.surface if material else None,
    )

    reasonable = are_dimensions_reasonable(dimensions.length, dimensions.width)
    if not reasonable:
        warnings.append(f"Dimensions {dimensions.length:g}x{dimensions.width:g} outside the usual panel range")

    flags = ConfidenceFlags(
        dimensions=True,
        reasonable=reasonable,
        quantity=qty is not None,
        label=label is not None,
        material=material is not None,
        thickness=dimensions.thickness is not None or thickness_match is not None,
    )
    confidence = calculate_confidence(flags) * options.confidence_scale

    return Part(
        label=label,
        qty=qty or 1,
        size=PartSize(L=dimensions.length, W=dimensions.width),
        thickness_mm=thickness,
        material_id=material.value if material else options.default_material_id,
        grain=grain.grain,
        allow_rotation=allow_rotation,
        ops=ops,
        audit=PartAudit(source_method=options.source_method, source_ref=source_ref, confidence=confidence),
        original_text=raw_line,
        parse_warnings=warnings,
    )


def parse_line(
    line: str,
    options: TextParserOptions | None = None,
    *,
    line_number: Optional[int] = None,
) -> Optional[Part]:
    """Parse a single line into a :class:`Part`, ``None`` when no dimensions are found."""

    options = options or TextParserOptions()
    source_ref = f"line:{line_number}" if line_number is not None else None
    return _build_part(line, options, options.matcher(), source_ref)


def parse_text(text: str, options: TextParserOptions | None = None) -> TextParseResult:
    """Parse multi-line text; statistics are always returned, even when empty."""

    options = options or TextParserOptions()
    matcher = options.matcher()
    result = TextParseResult()

    lines = split_lines(text)
    result.stats.total_lines = len(lines)

    for number, line in enumerate(lines, start=1):
        try:
            part = _build_part(line, options, matcher, f"line:{number}")
        except Exception as exc:  # a faulty line must not abort the batch
            LOGGER.warning("text_line_failed", extra={"line": number, "error": str(exc)}, exc_info=True)
            result.errors.append(ParseIssue(number, line, f"Unexpected parser error: {exc}"))
            result.stats.failed_lines += 1
            continue

        if part is None:
            result.errors.append(ParseIssue(number, line, "Could not find dimensions"))
            result.stats.failed_lines += 1
            continue

        if part.audit.confidence < options.min_confidence:
            message = f"Confidence {part.audit.confidence:.2f} below minimum {options.min_confidence:.2f}"
            if options.strict_mode:
                result.errors.append(ParseIssue(number, line, message))
                result.stats.failed_lines += 1
                continue
            part.parse_warnings.append(message)

        result.warnings.extend(f"Line {number}: {warning}" for warning in part.parse_warnings)
        result.parts.append(part)
        result.stats.parsed_lines += 1

    result.stats.total_parts = len(result.parts)
    result.stats.total_pieces = sum(part.qty for part in result.parts)
    LOGGER.debug(
        "text_parse_completed",
        extra={"lines": result.stats.total_lines, "parts": result.stats.total_parts, "errors": len(result.errors)},
    )
    return result
